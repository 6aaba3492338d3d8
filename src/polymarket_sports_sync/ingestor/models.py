"""Data models for the ingestor module."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any, Literal

Side = Literal["BUY", "SELL"]


def _now_utc() -> datetime:
    return datetime.now(UTC)


def _decimal_or_none(value: Any) -> Decimal | None:
    if value is None or value == "":
        return None
    return Decimal(str(value))


@dataclass(frozen=True)
class OrderbookLevel:
    """Represents a single price level in an orderbook."""

    price: Decimal
    size: Decimal

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "OrderbookLevel":
        """Create an OrderbookLevel from a dictionary."""
        return cls(
            price=Decimal(str(data["price"])),
            size=Decimal(str(data["size"])),
        )

    def to_dict(self) -> dict[str, str]:
        return {"price": str(self.price), "size": str(self.size)}


@dataclass(frozen=True)
class Orderbook:
    """Order-book snapshot for one outcome token."""

    market: str
    asset_id: str
    bids: tuple[OrderbookLevel, ...]
    asks: tuple[OrderbookLevel, ...]
    tick_size: Decimal | None
    timestamp: datetime = field(default_factory=_now_utc)

    @classmethod
    def from_clob_orderbook(cls, orderbook: Any) -> "Orderbook":
        """Create an Orderbook from a py-clob-client ``OrderBookSummary``."""
        bids = tuple(
            OrderbookLevel(price=Decimal(str(bid.price)), size=Decimal(str(bid.size)))
            for bid in (orderbook.bids or [])
        )
        asks = tuple(
            OrderbookLevel(price=Decimal(str(ask.price)), size=Decimal(str(ask.size)))
            for ask in (orderbook.asks or [])
        )

        return cls(
            market=str(orderbook.market or ""),
            asset_id=str(orderbook.asset_id or ""),
            bids=bids,
            asks=asks,
            tick_size=_decimal_or_none(getattr(orderbook, "tick_size", None)),
        )

    @property
    def best_bid(self) -> Decimal | None:
        """Return the highest bid price, or None if no bids."""
        return max((level.price for level in self.bids), default=None)

    @property
    def best_ask(self) -> Decimal | None:
        """Return the lowest ask price, or None if no asks."""
        return min((level.price for level in self.asks), default=None)

    @property
    def spread(self) -> Decimal | None:
        if self.best_bid is not None and self.best_ask is not None:
            return self.best_ask - self.best_bid
        return None

    @property
    def midpoint(self) -> Decimal | None:
        if self.best_bid is not None and self.best_ask is not None:
            return (self.best_bid + self.best_ask) / 2
        return None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-friendly dictionary."""
        return {
            "market": self.market,
            "asset_id": self.asset_id,
            "bids": [level.to_dict() for level in self.bids],
            "asks": [level.to_dict() for level in self.asks],
            "tick_size": str(self.tick_size) if self.tick_size is not None else None,
            "best_bid": str(self.best_bid) if self.best_bid is not None else None,
            "best_ask": str(self.best_ask) if self.best_ask is not None else None,
            "spread": str(self.spread) if self.spread is not None else None,
            "midpoint": str(self.midpoint) if self.midpoint is not None else None,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class PriceQuote:
    """Best available price for one token on one side of the book."""

    token_id: str
    side: Side
    price: Decimal | None

    @classmethod
    def from_clob_response(cls, token_id: str, side: Side, response: Any) -> "PriceQuote":
        price = response.get("price") if isinstance(response, dict) else None
        return cls(token_id=token_id, side=side, price=_decimal_or_none(price))

    def to_dict(self) -> dict[str, Any]:
        return {
            "token_id": self.token_id,
            "side": self.side,
            "price": str(self.price) if self.price is not None else None,
        }
