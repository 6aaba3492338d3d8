"""Tests for ClobClient wrapper."""

import time
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest
from py_clob_client.exceptions import PolyApiException

from polymarket_sports_sync.ingestor.clob_client import (
    ClobClient,
    ClobClientError,
    ClobClientTransientError,
    RateLimiter,
    RetryError,
    with_retry,
)
from polymarket_sports_sync.ingestor.models import Orderbook, PriceQuote


def _api_error(status_code: int) -> PolyApiException:
    exc = PolyApiException(error_msg=f"status {status_code}")
    exc.status_code = status_code
    return exc


class TestRateLimiter:
    """Tests for RateLimiter."""

    def test_acquire_sync_no_wait_first_call(self) -> None:
        """First call should not wait."""
        limiter = RateLimiter(max_requests_per_second=10)
        start = time.monotonic()
        limiter.acquire_sync()
        elapsed = time.monotonic() - start

        # Should be nearly instant
        assert elapsed < 0.05

    def test_acquire_sync_enforces_rate(self) -> None:
        """Subsequent calls should be rate limited."""
        limiter = RateLimiter(max_requests_per_second=10)  # 100ms between calls

        limiter.acquire_sync()

        start = time.monotonic()
        limiter.acquire_sync()
        elapsed = time.monotonic() - start

        # Should wait at least 90ms (allowing some tolerance)
        assert elapsed >= 0.08


class TestWithRetry:
    """Tests for retry decorator."""

    def test_success_first_try(self) -> None:
        """Function succeeds on first try."""
        call_count = 0

        @with_retry(max_retries=3)
        def succeed() -> str:
            nonlocal call_count
            call_count += 1
            return "success"

        assert succeed() == "success"
        assert call_count == 1

    def test_success_after_retries(self) -> None:
        """Function succeeds after some retries."""
        call_count = 0

        @with_retry(max_retries=3, base_delay=0.01)
        def succeed_eventually() -> str:
            nonlocal call_count
            call_count += 1
            if call_count < 3:
                raise ValueError("Not yet")
            return "success"

        assert succeed_eventually() == "success"
        assert call_count == 3

    def test_exhausted_retries(self) -> None:
        """Raises RetryError after exhausting retries."""

        @with_retry(max_retries=2, base_delay=0.01)
        def always_fails() -> str:
            raise ValueError("Always fails")

        with pytest.raises(RetryError) as exc_info:
            always_fails()

        assert "3 attempts failed" in str(exc_info.value)
        assert isinstance(exc_info.value.last_exception, ValueError)

    def test_specific_exception_types(self) -> None:
        """Only retries on specified exception types."""
        call_count = 0

        @with_retry(max_retries=3, base_delay=0.01, retry_on=(ValueError,))
        def raise_type_error() -> str:
            nonlocal call_count
            call_count += 1
            raise TypeError("Not retried")

        with pytest.raises(TypeError):
            raise_type_error()

        assert call_count == 1


class TestClobClient:
    """Tests for ClobClient wrapper."""

    @pytest.fixture
    def mock_base_client(self) -> MagicMock:
        """Create a mock base CLOB client."""
        with patch("polymarket_sports_sync.ingestor.clob_client.BaseClobClient") as mock:
            yield mock.return_value

    def _client(self) -> ClobClient:
        return ClobClient(retry_base_delay=0.001, requests_per_second=1000)

    def test_init_defaults(self) -> None:
        """Test client initialization with defaults."""
        with patch("polymarket_sports_sync.ingestor.clob_client.BaseClobClient") as base:
            client = ClobClient()

        assert client._host == "https://clob.polymarket.com"
        base.assert_called_once_with("https://clob.polymarket.com", chain_id=137)

    def test_get_price(self, mock_base_client: MagicMock) -> None:
        mock_base_client.get_price.return_value = {"price": "0.57"}

        quote = self._client().get_price("token123", side="SELL")

        assert quote == PriceQuote(token_id="token123", side="SELL", price=Decimal("0.57"))
        mock_base_client.get_price.assert_called_once_with("token123", side="SELL")

    def test_get_price_missing_price(self, mock_base_client: MagicMock) -> None:
        mock_base_client.get_price.return_value = {}

        quote = self._client().get_price("token123")

        assert quote.price is None
        assert quote.side == "BUY"

    def test_transient_errors_are_retried(self, mock_base_client: MagicMock) -> None:
        mock_base_client.get_price.side_effect = [_api_error(503), {"price": "0.4"}]

        quote = self._client().get_price("token123")

        assert quote.price == Decimal("0.4")
        assert mock_base_client.get_price.call_count == 2

    def test_retries_exhausted(self, mock_base_client: MagicMock) -> None:
        mock_base_client.get_price.side_effect = _api_error(429)

        with pytest.raises(RetryError) as exc_info:
            self._client().get_price("token123")

        assert isinstance(exc_info.value.last_exception, ClobClientTransientError)
        assert mock_base_client.get_price.call_count == 4

    def test_client_errors_are_not_retried(self, mock_base_client: MagicMock) -> None:
        mock_base_client.get_price.side_effect = _api_error(404)

        with pytest.raises(ClobClientError) as exc_info:
            self._client().get_price("missing")

        assert not isinstance(exc_info.value, ClobClientTransientError)
        assert mock_base_client.get_price.call_count == 1

    def test_network_errors_are_transient(self, mock_base_client: MagicMock) -> None:
        empty_book = MagicMock(
            market="0xmarket", asset_id="token123", tick_size="0.01", bids=[], asks=[]
        )
        mock_base_client.get_order_book.side_effect = [ConnectionError("reset"), empty_book]

        orderbook = self._client().get_orderbook("token123")

        assert orderbook.asset_id == "token123"
        assert mock_base_client.get_order_book.call_count == 2

    def test_get_orderbook(self, mock_base_client: MagicMock) -> None:
        """Test fetching an orderbook."""
        mock_bid = MagicMock()
        mock_bid.price = "0.50"
        mock_bid.size = "100"

        mock_ask = MagicMock()
        mock_ask.price = "0.52"
        mock_ask.size = "150"

        mock_orderbook = MagicMock()
        mock_orderbook.market = "0xmarket"
        mock_orderbook.asset_id = "token123"
        mock_orderbook.tick_size = "0.01"
        mock_orderbook.bids = [mock_bid]
        mock_orderbook.asks = [mock_ask]

        mock_base_client.get_order_book.return_value = mock_orderbook

        orderbook = self._client().get_orderbook("token123")

        assert isinstance(orderbook, Orderbook)
        assert orderbook.asset_id == "token123"
        assert orderbook.best_bid == Decimal("0.50")
        assert orderbook.best_ask == Decimal("0.52")

    def test_malformed_orderbook(self, mock_base_client: MagicMock) -> None:
        broken = MagicMock()
        broken.bids = [MagicMock(price="not-a-price", size="1")]
        broken.asks = []
        mock_base_client.get_order_book.return_value = broken

        with pytest.raises(ClobClientError, match="Unexpected orderbook response"):
            self._client().get_orderbook("token123")
