"""Run-guarded catalog synchronizer.

``CatalogSync`` ties the pipeline together (fetch, window filter, normalize,
merge, reconcile) and owns the mutual-exclusion guard: a trigger arriving
while a run is in progress is skipped, not queued. Failures are caught at
the run boundary, logged and reported through the returned summary, so a
scheduler calling ``run_once`` never sees an exception.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from functools import partial
from typing import TYPE_CHECKING, Any, Protocol

from polymarket_sports_sync.ingestor.fetcher import EventsPageSource, FetchConfig, PagedFetcher
from polymarket_sports_sync.ingestor.gamma_client import EventFilters
from polymarket_sports_sync.storage.database import SessionScope
from polymarket_sports_sync.sync.merger import build_sync_batch, merge_events
from polymarket_sports_sync.sync.normalizer import NormalizedEvent, normalize_event
from polymarket_sports_sync.sync.reconciler import Reconciler
from polymarket_sports_sync.sync.window import EventWindow, WindowFilter

if TYPE_CHECKING:
    from polymarket_sports_sync.config import Settings

logger = logging.getLogger(__name__)

DEFAULT_SYNC_INTERVAL_SECONDS = 300


class CatalogSource(EventsPageSource, Protocol):
    """Upstream catalog operations the synchronizer needs (``GammaClient``)."""

    async def resolve_series_id(self, sport_code: str) -> int: ...


class SyncState(str, Enum):
    """State of the synchronizer."""

    STOPPED = "stopped"
    STARTING = "starting"
    SYNCING = "syncing"
    IDLE = "idle"
    STOPPING = "stopping"
    ERROR = "error"


class RunStatus(str, Enum):
    """Outcome of a single reconciliation trigger."""

    COMPLETED = "completed"
    EMPTY = "empty"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class SyncSummary:
    """Result of one ``run_once`` call."""

    status: RunStatus
    started_at: datetime | None = None
    finished_at: datetime | None = None
    fetched: int = 0
    candidates: int = 0
    tags: int = 0
    events: int = 0
    links: int = 0
    markets: int = 0
    orphan_markets: int = 0
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "fetched": self.fetched,
            "candidates": self.candidates,
            "tags": self.tags,
            "events": self.events,
            "links": self.links,
            "markets": self.markets,
            "orphan_markets": self.orphan_markets,
            "error": self.error,
        }


@dataclass
class SyncStats:
    """Statistics for the sync process."""

    total_runs: int = 0
    completed_runs: int = 0
    empty_runs: int = 0
    skipped_runs: int = 0
    failed_runs: int = 0
    last_run_time: datetime | None = None
    last_run_duration_seconds: float = 0.0
    last_events: int = 0
    last_markets: int = 0
    last_error: str | None = None


StateCallback = Callable[[SyncState], None]
RunCallback = Callable[[SyncSummary], None]


class CatalogSync:
    """Fetches, classifies and reconciles one sport's catalog.

    Example:
        ```python
        db = DatabaseManager(settings.database.url)
        async with GammaClient(base_url=settings.gamma.base_url) as gamma:
            sync = CatalogSync.from_settings(settings, gamma, db.get_async_session)
            summary = await sync.run_once()
        ```
    """

    def __init__(
        self,
        catalog: CatalogSource,
        reconciler: Reconciler,
        *,
        sport_code: str = "nba",
        fetch_config: FetchConfig | None = None,
        window_filter: WindowFilter | None = None,
        sync_interval_seconds: int = DEFAULT_SYNC_INTERVAL_SECONDS,
        on_state_change: StateCallback | None = None,
        on_run_complete: RunCallback | None = None,
    ) -> None:
        self._catalog = catalog
        self._reconciler = reconciler
        self._sport_code = sport_code
        self._fetcher = PagedFetcher(catalog, fetch_config)
        self._window = window_filter or WindowFilter()
        self._sync_interval = sync_interval_seconds
        self._on_state_change = on_state_change
        self._on_run_complete = on_run_complete

        self._guard = asyncio.Lock()
        self._state = SyncState.STOPPED
        self._stats = SyncStats()
        self._loop_task: asyncio.Task[None] | None = None
        self._stop_event = asyncio.Event()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        catalog: CatalogSource,
        session_scope: SessionScope,
        **kwargs: Any,
    ) -> CatalogSync:
        """Build a synchronizer from application settings."""
        sync = settings.sync
        reconciler = Reconciler(
            session_scope,
            state_key=sync.resolved_state_key,
            chunk_size=sync.upsert_chunk_size,
            atomic=sync.atomic_writes,
        )
        fetch_config = FetchConfig(
            page_size=sync.page_size,
            max_pages=sync.max_pages,
            filters=EventFilters(active=sync.active, closed=sync.closed, tag_id=sync.tag_id),
        )
        return cls(
            catalog,
            reconciler,
            sport_code=sync.sport_code,
            fetch_config=fetch_config,
            window_filter=WindowFilter(sync.upcoming_days),
            sync_interval_seconds=sync.interval_seconds,
            **kwargs,
        )

    @property
    def state(self) -> SyncState:
        """Current sync state."""
        return self._state

    @property
    def stats(self) -> SyncStats:
        """Current sync statistics."""
        return self._stats

    @property
    def is_running(self) -> bool:
        """True while a reconciliation holds the guard."""
        return self._guard.locked()

    def _set_state(self, new_state: SyncState) -> None:
        old_state = self._state
        self._state = new_state
        if self._on_state_change and old_state != new_state:
            try:
                self._on_state_change(new_state)
            except Exception as e:
                logger.warning("State change callback failed: %s", e)

    async def run_once(self) -> SyncSummary:
        """Run one guarded reconciliation.

        Returns a ``skipped`` summary immediately if another run holds the
        guard. Never raises for pipeline failures.
        """
        if self._guard.locked():
            logger.warning("Sync already running, skipping")
            self._stats.skipped_runs += 1
            return self._finish(SyncSummary(status=RunStatus.SKIPPED))

        async with self._guard:
            previous = self._state
            self._set_state(SyncState.SYNCING)
            summary = await self._run()
            if summary.status is RunStatus.FAILED:
                self._set_state(SyncState.ERROR)
            elif previous in (SyncState.STOPPED, SyncState.STARTING):
                self._set_state(previous)
            else:
                self._set_state(SyncState.IDLE)
        return self._finish(summary)

    def _finish(self, summary: SyncSummary) -> SyncSummary:
        if self._on_run_complete:
            try:
                self._on_run_complete(summary)
            except Exception as e:
                logger.warning("Run callback failed: %s", e)
        return summary

    async def _run(self) -> SyncSummary:
        started_at = datetime.now(UTC)
        self._stats.total_runs += 1
        try:
            summary = await self._reconcile(started_at)
        except Exception as e:
            logger.exception("Catalog sync failed: %s", e)
            self._stats.failed_runs += 1
            self._stats.last_error = str(e)
            summary = SyncSummary(
                status=RunStatus.FAILED,
                started_at=started_at,
                finished_at=datetime.now(UTC),
                error=str(e),
            )
        else:
            if summary.status is RunStatus.COMPLETED:
                self._stats.completed_runs += 1
            else:
                self._stats.empty_runs += 1
            self._stats.last_events = summary.events
            self._stats.last_markets = summary.markets
            self._stats.last_error = None

        self._stats.last_run_time = summary.finished_at
        self._stats.last_run_duration_seconds = (
            (summary.finished_at or started_at) - started_at
        ).total_seconds()
        return summary

    async def _reconcile(self, started_at: datetime) -> SyncSummary:
        series_id = await self._catalog.resolve_series_id(self._sport_code)
        raw_events = await self._fetcher.fetch_all(series_id)

        if not raw_events:
            logger.warning("No events returned from catalog api")
            await self._reconciler.record_state(started_at=started_at, events=0, markets=0)
            return SyncSummary(
                status=RunStatus.EMPTY,
                started_at=started_at,
                finished_at=datetime.now(UTC),
            )

        now = self._window.now()
        windowed = self._window.split(raw_events, now)
        active = self._normalize_all(windowed.active_future, EventWindow.ACTIVE_FUTURE, now)
        upcoming = self._normalize_all(windowed.upcoming, EventWindow.UPCOMING, now)
        candidates = merge_events(active, upcoming)

        if not candidates:
            logger.warning("No active or upcoming events found after filtering")
            await self._reconciler.record_state(started_at=started_at, events=0, markets=0)
            return SyncSummary(
                status=RunStatus.EMPTY,
                started_at=started_at,
                finished_at=datetime.now(UTC),
                fetched=len(raw_events),
            )

        batch = build_sync_batch(candidates)
        result = await self._reconciler.apply(batch, started_at=started_at)
        logger.info("synced events=%d markets=%d", result.events, result.markets)

        return SyncSummary(
            status=RunStatus.COMPLETED,
            started_at=started_at,
            finished_at=datetime.now(UTC),
            fetched=len(raw_events),
            candidates=len(candidates),
            tags=result.tags,
            events=result.events,
            links=result.links,
            markets=result.markets,
            orphan_markets=result.orphan_markets,
        )

    def _normalize_all(
        self,
        raw_events: list[dict[str, Any]],
        parent: EventWindow,
        now: datetime,
    ) -> list[NormalizedEvent]:
        market_filter = partial(self._window.market_eligible, parent=parent, now=now)
        normalized: list[NormalizedEvent] = []
        for raw in raw_events:
            item = normalize_event(raw, market_filter)
            if item is not None:
                normalized.append(item)
        dropped = len(raw_events) - len(normalized)
        if dropped:
            logger.debug("Dropped %d %s events without a usable id", dropped, parent.value)
        return normalized

    async def start(self) -> None:
        """Run an initial reconciliation, then keep syncing on the interval."""
        if self._state not in (SyncState.STOPPED, SyncState.ERROR):
            logger.warning("Cannot start sync: already in state %s", self._state.value)
            return

        self._set_state(SyncState.STARTING)
        self._stop_event.clear()
        await self.run_once()

        self._loop_task = asyncio.create_task(self._sync_loop())
        if self._state is not SyncState.ERROR:
            self._set_state(SyncState.IDLE)
        logger.info("Catalog sync started (interval=%ds)", self._sync_interval)

    async def stop(self) -> None:
        """Stop the background loop; an in-flight run is cancelled."""
        if self._state == SyncState.STOPPED:
            return

        self._set_state(SyncState.STOPPING)
        self._stop_event.set()

        if self._loop_task:
            self._loop_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._loop_task
            self._loop_task = None

        self._set_state(SyncState.STOPPED)
        logger.info("Catalog sync stopped")

    async def _sync_loop(self) -> None:
        """Background loop that periodically reconciles."""
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._sync_interval)
                break
            except TimeoutError:
                pass

            if self._stop_event.is_set():
                break
            await self.run_once()
