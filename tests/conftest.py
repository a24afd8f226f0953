"""Shared test fixtures."""

from __future__ import annotations

import os

os.environ.setdefault("SLOOP_ADMIN_TOKEN", "test-admin-token")
os.environ.setdefault("SLOOP_PURCHASE_WEBHOOK_SECRET", "test-webhook-secret")
os.environ.setdefault("SLOOP_TRANSACTION_BACKOFF_MS", "0")
os.environ.setdefault("SLOOP_LOG_FORMAT", "console")

from collections.abc import AsyncGenerator, Awaitable, Callable  # noqa: E402
from datetime import datetime, timezone  # noqa: E402
from pathlib import Path  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402

from sloop.config import get_settings  # noqa: E402
from sloop.db.base import Base  # noqa: E402
from sloop.db import models  # noqa: E402, F401
from sloop.dependencies import get_store  # noqa: E402
from sloop.storage.base import GameStore, UserState  # noqa: E402
from sloop.storage.memory import MemoryGameStore  # noqa: E402
from sloop.storage.sql import SqlGameStore  # noqa: E402

get_settings.cache_clear()

# Wednesday noon UTC: outside the morning-bonus window
NOON = datetime(2026, 10, 21, 12, 0, tzinfo=timezone.utc)
MORNING = datetime(2026, 10, 21, 7, 0, tzinfo=timezone.utc)

UserFactory = Callable[..., Awaitable[UserState]]


def _user_factory(store: GameStore) -> UserFactory:
    async def make(user_id: str = "user-1", name: str | None = None, **fields: object) -> UserState:
        user = UserState(
            user_id=user_id,
            name=name or user_id.title(),
            created_at=NOON,
            updated_at=NOON,
            **fields,  # type: ignore[arg-type]
        )
        async with store.transaction() as tx:
            await tx.insert_user(user)
        return user

    return make


@pytest.fixture
def store() -> MemoryGameStore:
    """Fresh in-memory game store."""
    return MemoryGameStore()


@pytest.fixture
def make_user(store: MemoryGameStore) -> UserFactory:
    """Insert a user with starter defaults (overridable) into the memory store."""
    return _user_factory(store)


@pytest_asyncio.fixture
async def sql_store(tmp_path: Path) -> AsyncGenerator[SqlGameStore, None]:
    """SqlGameStore on a throwaway SQLite file."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'sloop.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    yield SqlGameStore(factory)
    await engine.dispose()


@pytest.fixture
def make_sql_user(sql_store: SqlGameStore) -> UserFactory:
    return _user_factory(sql_store)


@pytest_asyncio.fixture
async def client(store: MemoryGameStore) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app, backed by the memory store (no DB, no Redis)."""
    from sloop.main import create_app

    app = create_app()
    app.dependency_overrides[get_store] = lambda: store
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
