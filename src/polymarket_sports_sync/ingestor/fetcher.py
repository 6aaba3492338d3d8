"""Sequential paged retrieval of upstream events for one series."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

from polymarket_sports_sync.ingestor.gamma_client import EventFilters

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 50
DEFAULT_MAX_PAGES = 5


class EventsPageSource(Protocol):
    """Anything that can serve one page of raw events (``GammaClient``)."""

    async def list_events(
        self,
        series_id: int,
        filters: EventFilters,
        *,
        limit: int,
        offset: int,
    ) -> list[dict[str, Any]]: ...


@dataclass(frozen=True)
class FetchConfig:
    """Page bounds and upstream filters for one fetch."""

    page_size: int = DEFAULT_PAGE_SIZE
    max_pages: int = DEFAULT_MAX_PAGES
    filters: EventFilters = field(default_factory=EventFilters)

    def __post_init__(self) -> None:
        if self.page_size < 1:
            raise ValueError("page_size must be >= 1")
        if self.max_pages < 1:
            raise ValueError("max_pages must be >= 1")


class PagedFetcher:
    """Accumulates event pages in descending-id order.

    Each request's offset depends on the previous page, so pages are fetched
    one after another. Fetching stops at the first short (or empty) page or
    after ``max_pages`` requests. Errors from the source propagate unchanged.
    """

    def __init__(self, source: EventsPageSource, config: FetchConfig | None = None) -> None:
        self._source = source
        self._config = config or FetchConfig()

    @property
    def config(self) -> FetchConfig:
        return self._config

    async def fetch_all(self, series_id: int) -> list[dict[str, Any]]:
        """Return the concatenated raw events for ``series_id``."""
        page_size = self._config.page_size
        events: list[dict[str, Any]] = []
        offset = 0

        for page in range(self._config.max_pages):
            batch = await self._source.list_events(
                series_id,
                self._config.filters,
                limit=page_size,
                offset=offset,
            )
            events.extend(batch)
            logger.debug(
                "Fetched page %d (offset=%d): %d events",
                page + 1,
                offset,
                len(batch),
            )
            if len(batch) < page_size:
                break
            offset += page_size

        return events
