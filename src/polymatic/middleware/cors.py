"""CORS for the web client.

Credentials are allowed so the referral and visit cookies reach the API.
Preview deployments can be admitted with ``POLY_CORS_ORIGIN_REGEX``.
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from polymatic.config import Settings

_ALLOWED_HEADERS = ["Authorization", "Content-Type", "X-Request-Id", "X-Timezone"]
_EXPOSED_HEADERS = ["X-Request-Id", "X-RateLimit-Remaining", "X-RateLimit-Limit"]


def setup_cors(app: FastAPI, settings: Settings) -> None:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_origin_regex=settings.cors_origin_regex,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=_ALLOWED_HEADERS,
        expose_headers=_EXPOSED_HEADERS,
    )
