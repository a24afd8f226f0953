"""FastAPI application factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from sloop.boosters.router import router as boosters_router
from sloop.config import get_settings
from sloop.database import close_db, init_db
from sloop.entitlements.router import router as webhooks_router
from sloop.health.router import router as health_router
from sloop.leagues.router import router as leagues_router
from sloop.middleware import setup_middleware
from sloop.offline.router import router as offline_router
from sloop.progression.router import router as xp_router
from sloop.redis_client import close_redis, init_redis
from sloop.social.router import router as social_router
from sloop.streaks.router import router as streak_router
from sloop.users.router import router as users_router


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    await init_redis(settings.redis_url)

    yield

    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="ScriptureLoop API",
        description="Game-economy backend for ScriptureLoop: XP, streaks, boosters and weekly leagues",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(users_router)
    app.include_router(xp_router)
    app.include_router(streak_router)
    app.include_router(boosters_router)
    app.include_router(leagues_router)
    app.include_router(social_router)
    app.include_router(offline_router)
    app.include_router(webhooks_router)

    return app


app = create_app()
