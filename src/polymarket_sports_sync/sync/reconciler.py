"""Ordered, foreign-key-respecting write sequence for one sync batch.

Phases:
    1. upsert tags by id
    2. upsert events by upstream event id
    3. re-read events to map upstream ids to surrogate ids
    4. insert-or-ignore event/tag links whose event resolved
    5. attach surrogate event ids to markets, dropping orphans
    6. upsert markets by upstream market id
    7. upsert the ingestion-state row

By default each phase commits on its own; a failing phase aborts the rest
and leaves earlier phases committed. With ``atomic=True`` all phases share
one transaction.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from polymarket_sports_sync.storage.database import SessionScope
from polymarket_sports_sync.storage.repos import (
    DEFAULT_CHUNK_SIZE,
    EventRepository,
    EventTagRepository,
    IngestionStateRepository,
    MarketRepository,
    TagRepository,
)
from polymarket_sports_sync.sync.merger import SyncBatch
from polymarket_sports_sync.sync.normalizer import EventRecord, MarketRecord, TagRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReconcileResult:
    """Row counts written by one reconciliation."""

    tags: int = 0
    events: int = 0
    links: int = 0
    markets: int = 0
    orphan_markets: int = 0


def _tag_row(tag: TagRecord) -> dict[str, Any]:
    return asdict(tag)


def _event_row(event: EventRecord) -> dict[str, Any]:
    return asdict(event)


def _market_row(market: MarketRecord, event_id: str) -> dict[str, Any]:
    row = asdict(market)
    del row["event_polymarket_id"]
    row["event_id"] = event_id
    return row


def _shared(session: AsyncSession) -> SessionScope:
    """Scope that reuses an already open session without committing."""

    @asynccontextmanager
    async def scope() -> AsyncGenerator[AsyncSession, None]:
        yield session

    return scope


class Reconciler:
    """Writes a ``SyncBatch`` into the catalog snapshot.

    Args:
        session_scope: Factory of commit-on-success session scopes.
        state_key: Ingestion-state key recorded after each run.
        chunk_size: Rows per upsert/lookup statement.
        atomic: Run every phase inside a single transaction.
    """

    def __init__(
        self,
        session_scope: SessionScope,
        *,
        state_key: str,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        atomic: bool = False,
    ) -> None:
        self._session_scope = session_scope
        self._state_key = state_key
        self._chunk_size = chunk_size
        self._atomic = atomic

    @property
    def state_key(self) -> str:
        return self._state_key

    async def apply(self, batch: SyncBatch, *, started_at: datetime) -> ReconcileResult:
        """Run phases 1-7 for ``batch``; errors propagate to the caller."""
        if self._atomic:
            async with self._session_scope() as session:
                return await self._write(batch, started_at, _shared(session))
        return await self._write(batch, started_at, self._session_scope)

    async def record_state(self, *, started_at: datetime, events: int, markets: int) -> None:
        """Upsert the ingestion-state row on its own."""
        async with self._session_scope() as session:
            await IngestionStateRepository(session).upsert(
                self._state_key,
                last_run_at=started_at,
                events_count=events,
                markets_count=markets,
            )

    async def _write(
        self, batch: SyncBatch, started_at: datetime, scope: SessionScope
    ) -> ReconcileResult:
        chunk = self._chunk_size

        async with scope() as session:
            tags = await TagRepository(session, chunk_size=chunk).upsert_many(
                [_tag_row(t) for t in batch.tags]
            )

        async with scope() as session:
            events = await EventRepository(session, chunk_size=chunk).upsert_many(
                [_event_row(e) for e in batch.events]
            )

        async with scope() as session:
            surrogate_ids = await EventRepository(session, chunk_size=chunk).surrogate_ids(
                [e.polymarket_event_id for e in batch.events]
            )

        pairs = [
            (surrogate_ids[link.event_polymarket_id], link.tag_id)
            for link in batch.links
            if link.event_polymarket_id in surrogate_ids
        ]
        async with scope() as session:
            links = await EventTagRepository(session, chunk_size=chunk).insert_ignore(pairs)

        market_rows = [
            _market_row(m, surrogate_ids[m.event_polymarket_id])
            for m in batch.markets
            if m.event_polymarket_id in surrogate_ids
        ]
        orphans = len(batch.markets) - len(market_rows)
        if orphans:
            logger.warning("Dropped %d markets whose event did not resolve", orphans)

        async with scope() as session:
            markets = await MarketRepository(session, chunk_size=chunk).upsert_many(market_rows)

        async with scope() as session:
            await IngestionStateRepository(session).upsert(
                self._state_key,
                last_run_at=started_at,
                events_count=events,
                markets_count=markets,
            )

        logger.debug(
            "Reconciled tags=%d events=%d links=%d markets=%d",
            tags,
            events,
            links,
            markets,
        )
        return ReconcileResult(
            tags=tags,
            events=events,
            links=links,
            markets=markets,
            orphan_markets=orphans,
        )
