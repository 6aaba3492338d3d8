"""Read-side service over the persisted catalog snapshot.

Listing queries are paginated and filterable; live lookups resolve each
market's outcome tokens and fan out to the order-book API. Caller mistakes
raise ``QueryError`` subclasses carrying an HTTP-style ``status_code`` so
that any outer surface can tell client faults from server faults.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime, time
from typing import Any, Generic, Protocol, TypeVar

from polymarket_sports_sync.ingestor.models import Orderbook, PriceQuote, Side
from polymarket_sports_sync.parsing import (
    parse_day,
    parse_number,
    parse_positive_int,
    pick_string,
)
from polymarket_sports_sync.storage.database import SessionScope
from polymarket_sports_sync.storage.repos import (
    DayWindow,
    EventDTO,
    EventRepository,
    MarketDTO,
    MarketRepository,
)

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200
DEFAULT_LOOKUP_CONCURRENCY = 10

OUTCOME_NAME_KEYS = ("name", "title", "label", "outcome")

T = TypeVar("T")


class QueryError(Exception):
    """Base class for caller-input errors."""

    status_code = 400


class InvalidQueryError(QueryError):
    """Missing or malformed request parameters."""

    status_code = 400


class MarketNotFoundError(QueryError):
    """None of the requested markets exist."""

    status_code = 404


class LiveBookSource(Protocol):
    """Blocking order-book API (``ClobClient``); called via worker threads."""

    def get_price(self, token_id: str, side: Side = "BUY") -> PriceQuote: ...

    def get_orderbook(self, token_id: str) -> Orderbook: ...


@dataclass(frozen=True)
class Page(Generic[T]):
    """One page of a listing plus the total number of matches."""

    items: list[T]
    page: int
    page_size: int
    total: int

    def to_dict(self, serialize: Callable[[T], Any]) -> dict[str, Any]:
        return {
            "items": [serialize(item) for item in self.items],
            "page": self.page,
            "page_size": self.page_size,
            "total": self.total,
        }


@dataclass(frozen=True)
class TokenMeta:
    token_id: str
    outcome: str | None


def clamp_page(value: Any) -> int:
    """Missing or < 1 becomes 1; fractions are floored."""
    number = parse_number(value)
    if number is None or number < 1:
        return 1
    return int(number)


def clamp_page_size(value: Any) -> int:
    """Missing or <= 0 becomes the default; capped at ``MAX_PAGE_SIZE``."""
    number = parse_number(value)
    if number is None or number <= 0:
        return DEFAULT_PAGE_SIZE
    return max(1, min(int(number), MAX_PAGE_SIZE))


def day_window(value: str | None) -> DayWindow | None:
    """Turn ``YYYY-MM-DD`` into an inclusive UTC day window."""
    if value is None or value == "":
        return None
    day = parse_day(value)
    if day is None:
        raise InvalidQueryError(f"date must be YYYY-MM-DD, got {value!r}")
    start = datetime.combine(day, time.min, tzinfo=UTC)
    end = datetime.combine(day, time(23, 59, 59, 999_000), tzinfo=UTC)
    return DayWindow(start=start, end=end)


def normalize_side(value: str | None) -> Side:
    side = (value or "buy").strip().lower()
    if side == "buy":
        return "BUY"
    if side == "sell":
        return "SELL"
    raise InvalidQueryError("side must be buy or sell")


def normalize_market_ids(
    market_id: Any = None, market_ids: Iterable[Any] | None = None
) -> list[int]:
    """Collect positive upstream market ids, de-duplicated in order."""
    candidates = [market_id, *(market_ids or [])]
    ids: dict[int, None] = {}
    for candidate in candidates:
        parsed = parse_positive_int(candidate)
        if parsed is not None:
            ids.setdefault(parsed, None)
    return list(ids)


def pick_outcome_name(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, Mapping):
        return pick_string(value, OUTCOME_NAME_KEYS)
    return str(value)


def build_token_meta(market: MarketDTO) -> list[TokenMeta]:
    """Pair each token id with the outcome label at the same index."""
    outcomes = market.outcomes if isinstance(market.outcomes, list) else []
    return [
        TokenMeta(
            token_id=str(token_id),
            outcome=pick_outcome_name(outcomes[index]) if index < len(outcomes) else None,
        )
        for index, token_id in enumerate(market.clob_token_ids or [])
    ]


class QueryService:
    """Listing and live lookups over the catalog snapshot.

    Args:
        session_scope: Factory of session scopes for reads.
        clob: Order-book API used for live prices and books.
        concurrency: Maximum concurrent per-token lookups.
    """

    def __init__(
        self,
        session_scope: SessionScope,
        clob: LiveBookSource,
        *,
        concurrency: int = DEFAULT_LOOKUP_CONCURRENCY,
    ) -> None:
        self._session_scope = session_scope
        self._clob = clob
        self._semaphore = asyncio.Semaphore(max(1, concurrency))

    async def list_events(
        self,
        *,
        search: str | None = None,
        date: str | None = None,
        page: Any = None,
        page_size: Any = None,
    ) -> Page[EventDTO]:
        page_num = clamp_page(page)
        size = clamp_page_size(page_size)
        window = day_window(date)
        async with self._session_scope() as session:
            items, total = await EventRepository(session).list_page(
                search=search or None,
                day=window,
                offset=(page_num - 1) * size,
                limit=size,
            )
        return Page(items=items, page=page_num, page_size=size, total=total)

    async def list_markets(
        self,
        *,
        search: str | None = None,
        date: str | None = None,
        event_id: str | None = None,
        page: Any = None,
        page_size: Any = None,
    ) -> Page[MarketDTO]:
        """List markets; ``event_id`` is the parent's surrogate id."""
        page_num = clamp_page(page)
        size = clamp_page_size(page_size)
        window = day_window(date)
        async with self._session_scope() as session:
            items, total = await MarketRepository(session).list_page(
                search=search or None,
                day=window,
                event_id=event_id or None,
                offset=(page_num - 1) * size,
                limit=size,
            )
        return Page(items=items, page=page_num, page_size=size, total=total)

    async def get_live_prices(
        self,
        *,
        token_id: str | None = None,
        market_id: Any = None,
        market_ids: Iterable[Any] | None = None,
        side: str | None = None,
    ) -> dict[str, Any]:
        """Best prices for one token, or for every token of the given markets.

        Raises:
            InvalidQueryError: Bad side, or neither token nor market id given.
            MarketNotFoundError: No requested market exists.
            ClobClientError: A lookup failed (the whole request fails).
        """
        book_side = normalize_side(side)
        if token_id:
            quote = await self._call(self._clob.get_price, token_id, book_side)
            return {"token_id": token_id, "side": book_side.lower(), "price": _price(quote)}

        markets = await self._resolve_markets(market_id, market_ids)
        per_market = [build_token_meta(m) for m in markets]
        quotes = await asyncio.gather(
            *(
                self._call(self._clob.get_price, token.token_id, book_side)
                for tokens in per_market
                for token in tokens
            )
        )

        results = iter(quotes)
        return {
            "side": book_side.lower(),
            "markets": [
                {
                    "market_id": market.polymarket_market_id,
                    "prices": [
                        {
                            "token_id": token.token_id,
                            "outcome": token.outcome,
                            "side": book_side.lower(),
                            "price": _price(next(results)),
                        }
                        for token in tokens
                    ],
                }
                for market, tokens in zip(markets, per_market, strict=True)
            ],
        }

    async def get_orderbooks(
        self,
        *,
        token_id: str | None = None,
        market_id: Any = None,
        market_ids: Iterable[Any] | None = None,
    ) -> dict[str, Any]:
        """Order books for one token, or for every token of the given markets."""
        if token_id:
            book = await self._call(self._clob.get_orderbook, token_id)
            return {"token_id": token_id, "orderbook": book.to_dict()}

        markets = await self._resolve_markets(market_id, market_ids)
        per_market = [build_token_meta(m) for m in markets]
        books = await asyncio.gather(
            *(
                self._call(self._clob.get_orderbook, token.token_id)
                for tokens in per_market
                for token in tokens
            )
        )

        results = iter(books)
        return {
            "markets": [
                {
                    "market_id": market.polymarket_market_id,
                    "orderbooks": [
                        {
                            "token_id": token.token_id,
                            "outcome": token.outcome,
                            "orderbook": next(results).to_dict(),
                        }
                        for token in tokens
                    ],
                }
                for market, tokens in zip(markets, per_market, strict=True)
            ],
        }

    async def _resolve_markets(
        self, market_id: Any, market_ids: Iterable[Any] | None
    ) -> list[MarketDTO]:
        ids = normalize_market_ids(market_id, market_ids)
        if not ids:
            raise InvalidQueryError("tokenId or marketId is required")
        async with self._session_scope() as session:
            markets = await MarketRepository(session).find_by_polymarket_ids(ids)
        if not markets:
            raise MarketNotFoundError("market not found")
        return markets

    async def _call(self, func: Callable[..., T], *args: Any) -> T:
        async with self._semaphore:
            return await asyncio.to_thread(func, *args)


def _price(quote: PriceQuote) -> str | None:
    return str(quote.price) if quote.price is not None else None
