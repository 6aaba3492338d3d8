"""Repository pattern implementations for data access.

This module provides data access abstractions for the catalog snapshot:
idempotent batched upserts keyed by upstream natural ids, insert-or-ignore
join rows, ingestion-state bookkeeping, and the paginated listing queries.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any, TypeVar

from sqlalchemy import Select, func, or_, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from polymarket_sports_sync.storage.models import (
    EventModel,
    EventTagModel,
    IngestionStateModel,
    MarketModel,
    TagModel,
    new_surrogate_id,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 200

T = TypeVar("T")


def _chunked(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    size = max(1, size)
    for start in range(0, len(items), size):
        yield items[start : start + size]


def _insert_for(session: AsyncSession, model: type[Any]) -> Any:
    """Dialect-specific INSERT supporting ON CONFLICT clauses."""
    if session.get_bind().dialect.name == "postgresql":
        return pg_insert(model)
    return sqlite_insert(model)


def _columns(model: type[Any], *, exclude: tuple[str, ...] = ()) -> list[str]:
    return [c.name for c in model.__table__.columns if c.name not in exclude]


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _str(value: Decimal | None) -> str | None:
    return str(value) if value is not None else None


@dataclass(frozen=True)
class DayWindow:
    """Inclusive UTC instant range covering one calendar day."""

    start: datetime
    end: datetime


@dataclass
class EventDTO:
    """Data transfer object for events."""

    id: str
    polymarket_event_id: int
    slug: str | None
    title: str | None
    description: str | None
    start_date: datetime | None
    end_date: datetime | None
    active: bool | None
    closed: bool | None
    archived: bool | None
    featured: bool | None
    restricted: bool | None
    liquidity: Decimal | None
    volume: Decimal | None
    raw: dict[str, Any] | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_model(cls, model: EventModel) -> EventDTO:
        return cls(
            id=model.id,
            polymarket_event_id=model.polymarket_event_id,
            slug=model.slug,
            title=model.title,
            description=model.description,
            start_date=model.start_date,
            end_date=model.end_date,
            active=model.active,
            closed=model.closed,
            archived=model.archived,
            featured=model.featured,
            restricted=model.restricted,
            liquidity=model.liquidity,
            volume=model.volume,
            raw=model.raw,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "polymarket_event_id": self.polymarket_event_id,
            "slug": self.slug,
            "title": self.title,
            "description": self.description,
            "start_date": _iso(self.start_date),
            "end_date": _iso(self.end_date),
            "active": self.active,
            "closed": self.closed,
            "archived": self.archived,
            "featured": self.featured,
            "restricted": self.restricted,
            "liquidity": _str(self.liquidity),
            "volume": _str(self.volume),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


@dataclass
class MarketDTO:
    """Data transfer object for markets, with the parent event when joined."""

    id: str
    polymarket_market_id: int
    event_id: str | None
    slug: str | None
    question: str | None
    title: str | None
    category: str | None
    condition_id: str | None
    market_type: str | None
    format_type: str | None
    active: bool | None
    closed: bool | None
    status: str | None
    end_date: datetime | None
    resolve_time: datetime | None
    liquidity: Decimal | None
    volume: Decimal | None
    volume_24hr: Decimal | None
    outcome_prices: list[Any] | None
    outcomes: list[Any] | None
    clob_token_ids: list[str] | None
    raw: dict[str, Any] | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    event: EventDTO | None = None

    @classmethod
    def from_model(cls, model: MarketModel, event: EventModel | None = None) -> MarketDTO:
        return cls(
            id=model.id,
            polymarket_market_id=model.polymarket_market_id,
            event_id=model.event_id,
            slug=model.slug,
            question=model.question,
            title=model.title,
            category=model.category,
            condition_id=model.condition_id,
            market_type=model.market_type,
            format_type=model.format_type,
            active=model.active,
            closed=model.closed,
            status=model.status,
            end_date=model.end_date,
            resolve_time=model.resolve_time,
            liquidity=model.liquidity,
            volume=model.volume,
            volume_24hr=model.volume_24hr,
            outcome_prices=model.outcome_prices,
            outcomes=model.outcomes,
            clob_token_ids=model.clob_token_ids,
            raw=model.raw,
            created_at=model.created_at,
            updated_at=model.updated_at,
            event=EventDTO.from_model(event) if event is not None else None,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "polymarket_market_id": self.polymarket_market_id,
            "event_id": self.event_id,
            "slug": self.slug,
            "question": self.question,
            "title": self.title,
            "category": self.category,
            "condition_id": self.condition_id,
            "market_type": self.market_type,
            "format_type": self.format_type,
            "active": self.active,
            "closed": self.closed,
            "status": self.status,
            "end_date": _iso(self.end_date),
            "resolve_time": _iso(self.resolve_time),
            "liquidity": _str(self.liquidity),
            "volume": _str(self.volume),
            "volume_24hr": _str(self.volume_24hr),
            "outcome_prices": self.outcome_prices,
            "outcomes": self.outcomes,
            "clob_token_ids": self.clob_token_ids,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "event": self.event.to_dict() if self.event is not None else None,
        }


@dataclass
class IngestionStateDTO:
    key: str
    last_run_at: datetime
    events_count: int
    markets_count: int
    updated_at: datetime | None = None

    @classmethod
    def from_model(cls, model: IngestionStateModel) -> IngestionStateDTO:
        return cls(
            key=model.key,
            last_run_at=model.last_run_at,
            events_count=model.events_count,
            markets_count=model.markets_count,
            updated_at=model.updated_at,
        )


async def _count(session: AsyncSession, stmt: Select[Any]) -> int:
    total = await session.execute(
        select(func.count()).select_from(stmt.order_by(None).subquery())
    )
    return int(total.scalar_one())


class TagRepository:
    """Repository for tags (primary key is the upstream tag id)."""

    def __init__(self, session: AsyncSession, *, chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
        self.session = session
        self.chunk_size = chunk_size

    async def upsert_many(self, rows: Sequence[Mapping[str, Any]]) -> int:
        """Insert or fully refresh tags keyed by ``id``."""
        if not rows:
            return 0
        columns = _columns(TagModel)
        mutable = [c for c in columns if c != "id"]
        for chunk in _chunked(rows, self.chunk_size):
            stmt = _insert_for(self.session, TagModel).values(
                [{c: row.get(c) for c in columns} for row in chunk]
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=["id"],
                set_={c: stmt.excluded[c] for c in mutable},
            )
            await self.session.execute(stmt)
        await self.session.flush()
        return len(rows)


class EventRepository:
    """Repository for events keyed by ``polymarket_event_id``."""

    def __init__(self, session: AsyncSession, *, chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
        self.session = session
        self.chunk_size = chunk_size

    async def upsert_many(
        self,
        rows: Sequence[Mapping[str, Any]],
        *,
        now: datetime | None = None,
    ) -> int:
        """Insert new events and replace mutable fields of existing ones.

        The surrogate ``id`` and ``created_at`` of an existing row are kept.
        """
        if not rows:
            return 0
        now = now or datetime.now(UTC)
        fields = _columns(EventModel, exclude=("id", "created_at", "updated_at"))
        mutable = [c for c in fields if c != "polymarket_event_id"]
        for chunk in _chunked(rows, self.chunk_size):
            values = [
                {
                    **{c: row.get(c) for c in fields},
                    "id": new_surrogate_id(),
                    "created_at": now,
                    "updated_at": now,
                }
                for row in chunk
            ]
            stmt = _insert_for(self.session, EventModel).values(values)
            stmt = stmt.on_conflict_do_update(
                index_elements=["polymarket_event_id"],
                set_={**{c: stmt.excluded[c] for c in mutable}, "updated_at": now},
            )
            await self.session.execute(stmt)
        await self.session.flush()
        return len(rows)

    async def surrogate_ids(self, polymarket_event_ids: Sequence[int]) -> dict[int, str]:
        """Map upstream event ids to persisted surrogate ids (found ones only)."""
        found: dict[int, str] = {}
        unique_ids = list(dict.fromkeys(polymarket_event_ids))
        for chunk in _chunked(unique_ids, self.chunk_size):
            result = await self.session.execute(
                select(EventModel.polymarket_event_id, EventModel.id).where(
                    EventModel.polymarket_event_id.in_(chunk)
                )
            )
            for natural_id, surrogate_id in result.all():
                found[int(natural_id)] = surrogate_id
        return found

    async def count(self) -> int:
        return await _count(self.session, select(EventModel.id))

    async def list_page(
        self,
        *,
        search: str | None = None,
        day: DayWindow | None = None,
        offset: int = 0,
        limit: int = 50,
    ) -> tuple[list[EventDTO], int]:
        """Return one page of events plus the total matching count.

        Ordered by start time (newest first, undated last), then by upstream
        id descending.
        """
        stmt = select(EventModel)
        if search:
            pattern = f"%{search}%"
            stmt = stmt.where(or_(EventModel.title.ilike(pattern), EventModel.slug.ilike(pattern)))
        if day is not None:
            stmt = stmt.where(EventModel.start_date.between(day.start, day.end))

        total = await _count(self.session, stmt)
        stmt = (
            stmt.order_by(
                EventModel.start_date.desc().nulls_last(),
                EventModel.polymarket_event_id.desc(),
            )
            .offset(offset)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return [EventDTO.from_model(m) for m in result.scalars().all()], total


class MarketRepository:
    """Repository for markets keyed by ``polymarket_market_id``."""

    def __init__(self, session: AsyncSession, *, chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
        self.session = session
        self.chunk_size = chunk_size

    async def upsert_many(
        self,
        rows: Sequence[Mapping[str, Any]],
        *,
        now: datetime | None = None,
    ) -> int:
        """Insert new markets and replace mutable fields of existing ones.

        Every row must carry a resolved surrogate ``event_id``.
        """
        if not rows:
            return 0
        now = now or datetime.now(UTC)
        fields = _columns(MarketModel, exclude=("id", "created_at", "updated_at"))
        mutable = [c for c in fields if c != "polymarket_market_id"]
        for chunk in _chunked(rows, self.chunk_size):
            values = [
                {
                    **{c: row.get(c) for c in fields},
                    "id": new_surrogate_id(),
                    "created_at": now,
                    "updated_at": now,
                }
                for row in chunk
            ]
            stmt = _insert_for(self.session, MarketModel).values(values)
            stmt = stmt.on_conflict_do_update(
                index_elements=["polymarket_market_id"],
                set_={**{c: stmt.excluded[c] for c in mutable}, "updated_at": now},
            )
            await self.session.execute(stmt)
        await self.session.flush()
        return len(rows)

    async def find_by_polymarket_ids(self, polymarket_market_ids: Sequence[int]) -> list[MarketDTO]:
        """Fetch markets by upstream id, in the order requested (missing ones skipped)."""
        by_id: dict[int, MarketDTO] = {}
        unique_ids = list(dict.fromkeys(polymarket_market_ids))
        for chunk in _chunked(unique_ids, self.chunk_size):
            result = await self.session.execute(
                select(MarketModel).where(MarketModel.polymarket_market_id.in_(chunk))
            )
            for model in result.scalars().all():
                by_id[model.polymarket_market_id] = MarketDTO.from_model(model)
        return [by_id[mid] for mid in unique_ids if mid in by_id]

    async def count(self) -> int:
        return await _count(self.session, select(MarketModel.id))

    async def list_page(
        self,
        *,
        search: str | None = None,
        day: DayWindow | None = None,
        event_id: str | None = None,
        offset: int = 0,
        limit: int = 50,
    ) -> tuple[list[MarketDTO], int]:
        """Return one page of markets (with parent events) plus the total.

        The parent event is outer-joined so the search and date filters can
        match on it. Ordered by last update, newest first.
        """
        stmt = select(MarketModel, EventModel).outerjoin(
            EventModel, MarketModel.event_id == EventModel.id
        )
        if event_id:
            stmt = stmt.where(MarketModel.event_id == event_id)
        if search:
            pattern = f"%{search}%"
            stmt = stmt.where(
                or_(
                    MarketModel.question.ilike(pattern),
                    MarketModel.title.ilike(pattern),
                    MarketModel.slug.ilike(pattern),
                    EventModel.title.ilike(pattern),
                )
            )
        if day is not None:
            stmt = stmt.where(
                or_(
                    EventModel.start_date.between(day.start, day.end),
                    MarketModel.end_date.between(day.start, day.end),
                )
            )

        total = await _count(self.session, stmt)
        stmt = (
            stmt.order_by(MarketModel.updated_at.desc(), MarketModel.polymarket_market_id.desc())
            .offset(offset)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        items = [MarketDTO.from_model(market, event) for market, event in result.all()]
        return items, total


class EventTagRepository:
    """Repository for the insert-only event/tag association."""

    def __init__(self, session: AsyncSession, *, chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
        self.session = session
        self.chunk_size = chunk_size

    async def insert_ignore(self, pairs: Sequence[tuple[str, int]]) -> int:
        """Insert ``(event_id, tag_id)`` pairs, skipping existing ones."""
        if not pairs:
            return 0
        unique_pairs = list(dict.fromkeys(pairs))
        for chunk in _chunked(unique_pairs, self.chunk_size):
            stmt = _insert_for(self.session, EventTagModel).values(
                [{"event_id": event_id, "tag_id": tag_id} for event_id, tag_id in chunk]
            )
            stmt = stmt.on_conflict_do_nothing(index_elements=["event_id", "tag_id"])
            await self.session.execute(stmt)
        await self.session.flush()
        return len(unique_pairs)

    async def count(self) -> int:
        return await _count(self.session, select(EventTagModel.event_id))


class IngestionStateRepository:
    """Repository for per-key pipeline run bookkeeping."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def upsert(
        self,
        key: str,
        *,
        last_run_at: datetime,
        events_count: int,
        markets_count: int,
        now: datetime | None = None,
    ) -> None:
        now = now or datetime.now(UTC)
        values = {
            "key": key,
            "last_run_at": last_run_at,
            "events_count": events_count,
            "markets_count": markets_count,
            "updated_at": now,
        }
        stmt = _insert_for(self.session, IngestionStateModel).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["key"],
            set_={
                "last_run_at": stmt.excluded.last_run_at,
                "events_count": stmt.excluded.events_count,
                "markets_count": stmt.excluded.markets_count,
                "updated_at": now,
            },
        )
        await self.session.execute(stmt)
        await self.session.flush()

    async def get(self, key: str) -> IngestionStateDTO | None:
        result = await self.session.execute(
            select(IngestionStateModel).where(IngestionStateModel.key == key)
        )
        model = result.scalar_one_or_none()
        return IngestionStateDTO.from_model(model) if model is not None else None
