"""Query layer - catalog listings and live price/order-book lookups."""

from polymarket_sports_sync.query.service import (
    InvalidQueryError,
    MarketNotFoundError,
    Page,
    QueryError,
    QueryService,
)

__all__ = [
    "InvalidQueryError",
    "MarketNotFoundError",
    "Page",
    "QueryError",
    "QueryService",
]
