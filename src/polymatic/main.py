"""FastAPI application factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI

from polymatic.auth.router import router as auth_router
from polymatic.chat.router import router as chat_router
from polymatic.config import get_settings
from polymatic.database import close_db, init_db
from polymatic.health.router import router as health_router
from polymatic.middleware import setup_middleware
from polymatic.profiles.router import router as profiles_router
from polymatic.redis_client import close_redis, init_redis
from polymatic.referrals.router import router as referrals_router
from polymatic.rewards.router import router as rewards_router
from polymatic.wallets.router import router as wallets_router

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    await init_redis(settings.redis_url, settings.redis_max_connections)
    logger.info(
        "app_started",
        environment=settings.environment,
        rewards_enabled=settings.rewards_enabled,
        referrals_enabled=settings.referrals_enabled,
    )

    yield

    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Polymatic API",
        description="Backend API for Polymatic, a daily Socratic tutoring chat with learning rewards",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(auth_router)
    app.include_router(profiles_router)
    app.include_router(chat_router)
    app.include_router(rewards_router)
    app.include_router(referrals_router)
    app.include_router(wallets_router)

    return app


app = create_app()
