"""Wrapper around py-clob-client with rate limiting and retry logic."""

import logging
import threading
import time
from collections.abc import Callable
from functools import wraps
from typing import ParamSpec, TypeVar

from py_clob_client.client import ClobClient as BaseClobClient
from py_clob_client.exceptions import PolyApiException

from polymarket_sports_sync.ingestor.models import Orderbook, PriceQuote, Side

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")

# Constants
DEFAULT_HOST = "https://clob.polymarket.com"
MAX_REQUESTS_PER_SECOND = 10

DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_BASE_DELAY = 1.0
RETRY_STATUS_CODES = (429, 500, 502, 503, 504)


class RateLimiter:
    """Minimum-interval rate limiter for API requests.

    Lookups run on worker threads (see ``asyncio.to_thread`` in the query
    service), so slots are handed out under a thread lock.
    """

    def __init__(self, max_requests_per_second: float = MAX_REQUESTS_PER_SECOND) -> None:
        """Initialize the rate limiter.

        Args:
            max_requests_per_second: Maximum requests allowed per second.
        """
        self._min_interval = 1.0 / max_requests_per_second
        self._last_request_time: float = 0.0
        self._lock = threading.Lock()

    def acquire_sync(self) -> None:
        """Block until a request slot is available."""
        with self._lock:
            now = time.monotonic()
            elapsed = now - self._last_request_time
            if elapsed < self._min_interval:
                time.sleep(self._min_interval - elapsed)
            self._last_request_time = time.monotonic()


class RetryError(Exception):
    """Raised when all retry attempts are exhausted."""

    def __init__(self, message: str, last_exception: Exception | None = None) -> None:
        super().__init__(message)
        self.last_exception = last_exception


def with_retry(
    max_retries: int = DEFAULT_MAX_RETRIES,
    base_delay: float = DEFAULT_RETRY_BASE_DELAY,
    retry_on: tuple[type[Exception], ...] = (Exception,),
) -> Callable[[Callable[P, T]], Callable[P, T]]:
    """Decorator for adding retry logic with exponential backoff.

    Args:
        max_retries: Maximum number of retry attempts.
        base_delay: Base delay in seconds (doubles with each retry).
        retry_on: Tuple of exception types to retry on.

    Returns:
        Decorated function with retry logic.
    """

    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        @wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            last_exception: Exception | None = None

            for attempt in range(max_retries + 1):
                try:
                    return func(*args, **kwargs)
                except retry_on as e:
                    last_exception = e
                    if attempt == max_retries:
                        break

                    delay = base_delay * (2**attempt)
                    logger.warning(
                        "Attempt %d/%d failed: %s. Retrying in %.1f seconds...",
                        attempt + 1,
                        max_retries + 1,
                        str(e),
                        delay,
                    )
                    time.sleep(delay)

            raise RetryError(
                f"All {max_retries + 1} attempts failed for {func.__name__}",
                last_exception=last_exception,
            )

        return wrapper

    return decorator


class ClobClientError(Exception):
    """Base exception for ClobClient errors."""


class ClobClientTransientError(ClobClientError):
    """Raised for retryable errors (429/5xx, network issues)."""


def _classify(exc: Exception, message: str) -> ClobClientError:
    if isinstance(exc, PolyApiException):
        status = getattr(exc, "status_code", None)
        if status in RETRY_STATUS_CODES:
            return ClobClientTransientError(message)
        return ClobClientError(message)
    return ClobClientTransientError(message)


class ClobClient:
    """Read-only wrapper around py-clob-client for live prices and books.

    Requests are rate limited client-side and transient failures (429/5xx,
    network errors) are retried with exponential backoff. Non-retryable
    upstream errors raise ``ClobClientError`` immediately.

    Example:
        >>> client = ClobClient()
        >>> client.get_price("token_id_here", side="BUY")
        >>> client.get_orderbook("token_id_here")
    """

    def __init__(
        self,
        *,
        host: str = DEFAULT_HOST,
        chain_id: int = 137,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_base_delay: float = DEFAULT_RETRY_BASE_DELAY,
        requests_per_second: float = MAX_REQUESTS_PER_SECOND,
    ) -> None:
        """Initialize the CLOB client.

        Args:
            host: CLOB API endpoint URL.
            chain_id: Chain ID (Polygon=137).
            max_retries: Maximum retry attempts for transient failures.
            retry_base_delay: Initial backoff delay in seconds.
            requests_per_second: Rate limit for API requests.
        """
        self._host = host
        self._chain_id = chain_id
        self._rate_limiter = RateLimiter(requests_per_second)
        self._retry = with_retry(
            max_retries=max_retries,
            base_delay=retry_base_delay,
            retry_on=(ClobClientTransientError,),
        )

        # Level-0 client: public market data endpoints only.
        self._client = BaseClobClient(host, chain_id=chain_id)

        logger.info(
            "Initialized ClobClient with host=%s, rate_limit=%.1f req/s",
            host,
            requests_per_second,
        )

    def get_price(self, token_id: str, side: Side = "BUY") -> PriceQuote:
        """Fetch the best price for a token on a given side.

        Raises:
            ClobClientError: On non-retryable upstream errors.
            RetryError: When transient failures exhaust all attempts.
        """
        return self._retry(self._get_price_once)(token_id, side)

    def get_orderbook(self, token_id: str) -> Orderbook:
        """Fetch the orderbook for a specific token.

        Raises:
            ClobClientError: On non-retryable upstream errors.
            RetryError: When transient failures exhaust all attempts.
        """
        return self._retry(self._get_orderbook_once)(token_id)

    def _get_price_once(self, token_id: str, side: Side) -> PriceQuote:
        self._rate_limiter.acquire_sync()
        try:
            response = self._client.get_price(token_id, side=side)
        except Exception as e:
            raise _classify(e, f"Failed to get {side} price for {token_id}: {e}") from e
        try:
            return PriceQuote.from_clob_response(token_id, side, response)
        except Exception as e:
            raise ClobClientError(f"Unexpected price response for {token_id}: {e}") from e

    def _get_orderbook_once(self, token_id: str) -> Orderbook:
        self._rate_limiter.acquire_sync()
        try:
            orderbook = self._client.get_order_book(token_id)
        except Exception as e:
            raise _classify(e, f"Failed to fetch orderbook for {token_id}: {e}") from e
        try:
            return Orderbook.from_clob_orderbook(orderbook)
        except Exception as e:
            raise ClobClientError(f"Unexpected orderbook response for {token_id}: {e}") from e

