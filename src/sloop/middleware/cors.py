"""CORS middleware configuration."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from sloop.config import Settings

# Identity arrives in X-User-Id from the gateway; there are no cookies to share
ALLOWED_HEADERS = ["Content-Type", "Accept", "X-User-Id", "X-Request-Id"]
EXPOSED_HEADERS = ["X-Request-Id", "X-RateLimit-Remaining", "X-RateLimit-Limit", "Retry-After"]


def setup_cors(app: FastAPI, settings: Settings) -> None:
    """Open the player API to the configured web origins.

    Admin and webhook routes are called server to server, so their headers
    are not allowed cross-origin.
    """
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=False,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=ALLOWED_HEADERS,
        expose_headers=EXPOSED_HEADERS,
        max_age=600,
    )
