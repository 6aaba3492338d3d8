"""Data ingestion layer - Gamma catalog and CLOB order-book clients."""

from polymarket_sports_sync.ingestor.clob_client import (
    ClobClient,
    ClobClientError,
    RetryError,
)
from polymarket_sports_sync.ingestor.fetcher import FetchConfig, PagedFetcher
from polymarket_sports_sync.ingestor.gamma_client import (
    EventFilters,
    GammaClient,
    GammaClientError,
    SeriesNotFoundError,
)
from polymarket_sports_sync.ingestor.models import Orderbook, OrderbookLevel, PriceQuote

__all__ = [
    "ClobClient",
    "ClobClientError",
    "EventFilters",
    "FetchConfig",
    "GammaClient",
    "GammaClientError",
    "Orderbook",
    "OrderbookLevel",
    "PagedFetcher",
    "PriceQuote",
    "RetryError",
    "SeriesNotFoundError",
]
