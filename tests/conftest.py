"""Pytest configuration and fixtures."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from polymarket_sports_sync.storage.database import SessionScope, session_scope_for
from polymarket_sports_sync.storage.models import Base

# Fixed "now" shared by window, pipeline and repository tests.
NOW = datetime(2026, 1, 15, 12, 0, tzinfo=UTC)


def iso(value: datetime) -> str:
    """Render an instant the way the catalog API does (millisecond Z)."""
    return value.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%S.") + (
        f"{value.microsecond // 1000:03d}Z"
    )


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
async def async_engine():
    """In-memory SQLite engine shared by every session of a test."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(async_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=async_engine, expire_on_commit=False)


@pytest.fixture
def session_scope(session_factory: async_sessionmaker[AsyncSession]) -> SessionScope:
    return session_scope_for(session_factory)


@pytest.fixture
async def async_session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncSession:
    """Create an async session for testing."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def make_market() -> Callable[..., dict[str, Any]]:
    """Build a raw catalog market payload."""

    def factory(market_id: Any, *, active: bool = True, end: datetime | None = None, **extra):
        raw: dict[str, Any] = {
            "id": str(market_id),
            "question": f"Market {market_id}?",
            "slug": f"market-{market_id}",
            "active": active,
            "closed": not active,
            "outcomes": '["Yes", "No"]',
            "outcomePrices": '["0.55", "0.45"]',
            "clobTokenIds": f'["{market_id}1", "{market_id}2"]',
        }
        if end is not None:
            raw["endDate"] = iso(end)
        raw.update(extra)
        return raw

    return factory


@pytest.fixture
def make_event(now: datetime) -> Callable[..., dict[str, Any]]:
    """Build a raw catalog event payload."""

    def factory(
        event_id: Any,
        *,
        active: bool = True,
        start: datetime | None = None,
        end: datetime | None = None,
        markets: list[dict[str, Any]] | None = None,
        tags: Any = None,
        **extra: Any,
    ) -> dict[str, Any]:
        raw: dict[str, Any] = {
            "id": str(event_id),
            "slug": f"event-{event_id}",
            "title": f"Event {event_id}",
            "active": active,
            "closed": not active,
            "startDate": iso(start or now - timedelta(days=1)),
            "endDate": iso(end or now + timedelta(hours=3)),
            "markets": markets if markets is not None else [],
        }
        if tags is not None:
            raw["tags"] = tags
        raw.update(extra)
        return raw

    return factory
