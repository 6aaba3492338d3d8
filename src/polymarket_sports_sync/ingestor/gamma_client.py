"""Async client for the Polymarket Gamma catalog API.

Only the two endpoints the reconciliation needs are wrapped: the sports
listing (to resolve a sport code into its series id) and the paginated
events listing. Transport failures are not retried here; they surface as
``GammaClientError`` and abort the current run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from polymarket_sports_sync.parsing import first_present, parse_positive_int

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://gamma-api.polymarket.com"
DEFAULT_TIMEOUT_SECONDS = 30.0


class GammaClientError(Exception):
    """Raised when the catalog API is unreachable, fails, or returns junk."""


class SeriesNotFoundError(GammaClientError):
    """Raised when no sports entry matches the requested sport code."""


@dataclass(frozen=True)
class EventFilters:
    """Optional upstream filters applied to every events page request."""

    active: bool | None = None
    closed: bool | None = None
    tag_id: str | None = None

    def to_params(self) -> dict[str, str]:
        params: dict[str, str] = {}
        if self.active is not None:
            params["active"] = "true" if self.active else "false"
        if self.closed is not None:
            params["closed"] = "true" if self.closed else "false"
        if self.tag_id:
            params["tag_id"] = self.tag_id
        return params


class GammaClient:
    """Thin async wrapper over the Gamma REST API.

    Example:
        >>> async with GammaClient() as gamma:
        ...     series_id = await gamma.resolve_series_id("nba")
        ...     page = await gamma.list_events(series_id, EventFilters(), limit=50, offset=0)
    """

    def __init__(
        self,
        *,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=timeout,
            headers={"Accept": "application/json"},
            transport=transport,
        )
        logger.info("Initialized GammaClient with base_url=%s", self._base_url)

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> GammaClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def _get_json(self, path: str, params: dict[str, Any] | None = None) -> Any:
        try:
            response = await self._client.get(path, params=params)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise GammaClientError(f"GET {path} failed: {e}") from e
        try:
            return response.json()
        except ValueError as e:
            raise GammaClientError(f"GET {path} returned a non-JSON body") from e

    async def list_sports(self) -> list[dict[str, Any]]:
        """Return the raw sports listing."""
        payload = await self._get_json("/sports")
        if not isinstance(payload, list):
            raise GammaClientError("Unexpected /sports response shape")
        return [item for item in payload if isinstance(item, dict)]

    async def resolve_series_id(self, sport_code: str) -> int:
        """Map a sport code (e.g. ``nba``) to its upstream series id.

        Raises:
            SeriesNotFoundError: If no sports entry matches, or the match
                carries no usable series id.
        """
        code = sport_code.strip().lower()
        for sport in await self.list_sports():
            if str(sport.get("sport") or "").strip().lower() != code:
                continue
            raw_series = first_present(sport, ("series", "seriesId", "series_id"))
            # Some entries list several series ids; the first one is the league.
            series_id = None
            if raw_series is not None:
                series_id = parse_positive_int(str(raw_series).split(",")[0])
            if series_id is None:
                raise SeriesNotFoundError(f"Sport {code!r} has no usable series id")
            logger.debug("Resolved sport %s to series_id=%d", code, series_id)
            return series_id
        raise SeriesNotFoundError(f"No sports entry matches {code!r}")

    async def list_events(
        self,
        series_id: int,
        filters: EventFilters,
        *,
        limit: int,
        offset: int,
    ) -> list[dict[str, Any]]:
        """Fetch one page of events, newest id first.

        The endpoint returns either a bare list or an object with an
        ``events`` list; both are accepted.
        """
        params: dict[str, Any] = {
            "series_id": str(series_id),
            "limit": str(limit),
            "offset": str(offset),
            "order": "id",
            "ascending": "false",
            **filters.to_params(),
        }
        payload = await self._get_json("/events", params=params)
        if isinstance(payload, dict):
            payload = payload.get("events")
        if not isinstance(payload, list):
            raise GammaClientError("Unexpected /events response shape")
        return [item for item in payload if isinstance(item, dict)]
