"""Middleware registration."""

from fastapi import FastAPI

from polymatic.config import Settings
from polymatic.middleware.cors import setup_cors
from polymatic.middleware.error_handler import setup_error_handlers
from polymatic.middleware.logging import setup_logging
from polymatic.middleware.rate_limit import RateLimitMiddleware
from polymatic.middleware.request_id import RequestIdMiddleware
from polymatic.middleware.visit_cookies import VisitCookieMiddleware


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Install logging, error handlers and the middleware stack.

    Starlette runs the last-added middleware first. From the outside in:
    CORS, request id, rate limit, visit cookies. CORS wraps everything so
    429s and error bodies still carry the CORS headers; the request id is
    bound before the rate limiter can log.
    """
    setup_logging(settings)
    setup_error_handlers(app)

    app.add_middleware(
        VisitCookieMiddleware,
        secure=settings.cookie_secure,
        referral_max_age_days=settings.referral_cookie_max_age_days,
    )
    app.add_middleware(
        RateLimitMiddleware,
        requests_per_window=settings.rate_limit_requests,
        window_seconds=settings.rate_limit_window_seconds,
        chat_requests_per_window=settings.rate_limit_chat,
    )
    app.add_middleware(RequestIdMiddleware)
    setup_cors(app, settings)
