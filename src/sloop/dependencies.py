"""Shared FastAPI dependencies."""

import secrets
from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, Header, HTTPException, status

from sloop.config import Settings, get_settings
from sloop.database import get_session_factory
from sloop.redis_client import get_redis_or_none
from sloop.storage.base import GameStore
from sloop.storage.sql import SqlGameStore


def get_store() -> GameStore:
    """The game store every operation runs against."""
    return SqlGameStore(get_session_factory())


async def get_redis_dep() -> AsyncGenerator[object, None]:
    """Yield the Redis client (or None) as a FastAPI dependency."""
    yield get_redis_or_none()


async def get_current_user_id(
    x_user_id: Annotated[str | None, Header()] = None,
) -> str:
    """User id asserted by the upstream gateway."""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-Id header",
        )
    return x_user_id.strip()


async def require_admin(
    settings: Annotated[Settings, Depends(get_settings)],
    x_admin_token: Annotated[str | None, Header()] = None,
) -> None:
    """Gate operator endpoints behind the configured admin token."""
    if not settings.admin_token or not x_admin_token or not secrets.compare_digest(
        x_admin_token, settings.admin_token
    ):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin token required")


StoreDep = Annotated[GameStore, Depends(get_store)]
RedisDep = Annotated[object, Depends(get_redis_dep)]
UserIdDep = Annotated[str, Depends(get_current_user_id)]
