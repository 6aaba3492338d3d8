"""Tests for catalog listings and live lookups."""

from datetime import UTC, datetime
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from polymarket_sports_sync.ingestor.clob_client import ClobClient, ClobClientError
from polymarket_sports_sync.ingestor.models import Orderbook, OrderbookLevel, PriceQuote
from polymarket_sports_sync.query.service import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    InvalidQueryError,
    MarketNotFoundError,
    QueryService,
    build_token_meta,
    clamp_page,
    clamp_page_size,
    day_window,
    normalize_market_ids,
    normalize_side,
)
from polymarket_sports_sync.storage.database import SessionScope
from polymarket_sports_sync.storage.repos import MarketRepository
from polymarket_sports_sync.sync.merger import build_sync_batch
from polymarket_sports_sync.sync.normalizer import normalize_event
from polymarket_sports_sync.sync.reconciler import Reconciler


def _quote(token_id: str, side: str = "BUY") -> PriceQuote:
    # Deterministic per-token price: 0.5 plus one cent per character.
    price = Decimal("0.5") + len(token_id) / Decimal(100)
    return PriceQuote(token_id=token_id, side=side, price=price)


def _book(token_id: str) -> Orderbook:
    return Orderbook(
        market="0xcond",
        asset_id=token_id,
        bids=(OrderbookLevel(price=Decimal("0.40"), size=Decimal("100")),),
        asks=(OrderbookLevel(price=Decimal("0.45"), size=Decimal("50")),),
        tick_size=Decimal("0.01"),
    )


@pytest.fixture
def mock_clob() -> MagicMock:
    clob = MagicMock(spec=ClobClient)
    clob.get_price = MagicMock(side_effect=lambda token_id, side: _quote(token_id, side))
    clob.get_orderbook = MagicMock(side_effect=_book)
    return clob


@pytest.fixture
async def seeded(session_scope: SessionScope) -> SessionScope:
    """Two events: one with two outcome markets, one with a token-less market."""
    lakers = normalize_event(
        {
            "id": "1",
            "title": "Lakers vs. Celtics",
            "startDate": "2026-01-15T00:30:00Z",
            "markets": [
                {
                    "id": "100",
                    "question": "Winner?",
                    "outcomes": '["Lakers", "Celtics"]',
                    "clobTokenIds": '["t1", "t2"]',
                },
                {
                    "id": "101",
                    "question": "Over 220.5?",
                    "outcomes": [{"name": "Over"}],
                    "clobTokenIds": '["t3", "t4"]',
                },
            ],
        }
    )
    knicks = normalize_event(
        {
            "id": "2",
            "title": "Knicks vs. Heat",
            "startDate": "2026-01-16T23:00:00Z",
            "markets": [{"id": "200", "question": "Winner?"}],
        }
    )
    assert lakers is not None and knicks is not None
    await Reconciler(session_scope, state_key="test").apply(
        build_sync_batch([lakers, knicks]),
        started_at=datetime(2026, 1, 15, tzinfo=UTC),
    )
    return session_scope


@pytest.fixture
def service(seeded: SessionScope, mock_clob: MagicMock) -> QueryService:
    return QueryService(seeded, mock_clob, concurrency=2)


class TestHelpers:
    """Tests for input normalization helpers."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [(None, 1), ("", 1), (0, 1), (-1, 1), ("3", 3), (2.7, 2), ("abc", 1)],
    )
    def test_clamp_page(self, value: object, expected: int) -> None:
        assert clamp_page(value) == expected

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            (None, DEFAULT_PAGE_SIZE),
            (0, DEFAULT_PAGE_SIZE),
            (-1, DEFAULT_PAGE_SIZE),
            ("20", 20),
            (500, MAX_PAGE_SIZE),
            (0.5, 1),
        ],
    )
    def test_clamp_page_size(self, value: object, expected: int) -> None:
        assert clamp_page_size(value) == expected

    def test_day_window(self) -> None:
        window = day_window("2026-01-15")
        assert window is not None
        assert window.start == datetime(2026, 1, 15, tzinfo=UTC)
        assert window.end == datetime(2026, 1, 15, 23, 59, 59, 999_000, tzinfo=UTC)
        assert day_window(None) is None
        assert day_window("") is None

    def test_day_window_invalid(self) -> None:
        with pytest.raises(InvalidQueryError) as exc_info:
            day_window("15-01-2026")
        assert exc_info.value.status_code == 400

    def test_normalize_side(self) -> None:
        assert normalize_side(None) == "BUY"
        assert normalize_side(" Sell ") == "SELL"
        with pytest.raises(InvalidQueryError):
            normalize_side("hold")

    def test_normalize_market_ids(self) -> None:
        assert normalize_market_ids("5", ["7", "5", "x", 0, 9]) == [5, 7, 9]
        assert normalize_market_ids(None, None) == []


class TestListings:
    """Tests for paginated listings."""

    @pytest.mark.asyncio
    async def test_list_events(self, service: QueryService) -> None:
        page = await service.list_events(page_size=500)

        assert page.page == 1
        assert page.page_size == MAX_PAGE_SIZE
        assert page.total == 2
        assert [e.polymarket_event_id for e in page.items] == [2, 1]

    @pytest.mark.asyncio
    async def test_list_events_by_date_and_search(self, service: QueryService) -> None:
        page = await service.list_events(date="2026-01-15")
        assert [e.polymarket_event_id for e in page.items] == [1]

        page = await service.list_events(search="heat")
        assert [e.polymarket_event_id for e in page.items] == [2]

    @pytest.mark.asyncio
    async def test_list_events_past_last_page(self, service: QueryService) -> None:
        page = await service.list_events(page=5, page_size=1)
        assert page.items == []
        assert page.total == 2

    @pytest.mark.asyncio
    async def test_list_events_bad_date(self, service: QueryService) -> None:
        with pytest.raises(InvalidQueryError):
            await service.list_events(date="not-a-date")

    @pytest.mark.asyncio
    async def test_list_markets(self, service: QueryService) -> None:
        page = await service.list_markets(search="lakers")
        assert page.total == 2
        assert {m.polymarket_market_id for m in page.items} == {100, 101}
        assert page.items[0].event is not None

        events = await service.list_events(search="knicks")
        page = await service.list_markets(event_id=events.items[0].id)
        assert [m.polymarket_market_id for m in page.items] == [200]

        payload = page.to_dict(lambda item: item.to_dict())
        assert payload["total"] == 1
        assert payload["items"][0]["event"]["title"] == "Knicks vs. Heat"


class TestBuildTokenMeta:
    """Tests for outcome token pairing."""

    @pytest.mark.asyncio
    async def test_pairs_by_index(self, seeded: SessionScope) -> None:
        async with seeded() as session:
            markets = await MarketRepository(session).find_by_polymarket_ids([100, 101, 200])

        assert [(t.token_id, t.outcome) for t in build_token_meta(markets[0])] == [
            ("t1", "Lakers"),
            ("t2", "Celtics"),
        ]
        assert [(t.token_id, t.outcome) for t in build_token_meta(markets[1])] == [
            ("t3", "Over"),
            ("t4", None),
        ]
        assert build_token_meta(markets[2]) == []


class TestLivePrices:
    """Tests for live price lookups."""

    @pytest.mark.asyncio
    async def test_single_token(self, service: QueryService, mock_clob: MagicMock) -> None:
        result = await service.get_live_prices(token_id="abc", side="sell")

        assert result == {"token_id": "abc", "side": "sell", "price": "0.53"}
        mock_clob.get_price.assert_called_once_with("abc", "SELL")

    @pytest.mark.asyncio
    async def test_fan_out_over_markets(self, service: QueryService, mock_clob: MagicMock) -> None:
        result = await service.get_live_prices(market_ids=["101", "100", "999"])

        assert result["side"] == "buy"
        assert [m["market_id"] for m in result["markets"]] == [101, 100]
        prices = result["markets"][1]["prices"]
        assert [p["token_id"] for p in prices] == ["t1", "t2"]
        assert prices[0]["outcome"] == "Lakers"
        assert prices[0]["price"] == "0.52"
        assert mock_clob.get_price.call_count == 4

    @pytest.mark.asyncio
    async def test_market_without_tokens(self, service: QueryService, mock_clob: MagicMock) -> None:
        result = await service.get_live_prices(market_id=200)

        assert result["markets"] == [{"market_id": 200, "prices": []}]
        mock_clob.get_price.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_ids(self, service: QueryService) -> None:
        with pytest.raises(InvalidQueryError):
            await service.get_live_prices()

    @pytest.mark.asyncio
    async def test_bad_side(self, service: QueryService, mock_clob: MagicMock) -> None:
        with pytest.raises(InvalidQueryError):
            await service.get_live_prices(token_id="abc", side="hold")
        mock_clob.get_price.assert_not_called()

    @pytest.mark.asyncio
    async def test_not_found(self, service: QueryService) -> None:
        with pytest.raises(MarketNotFoundError) as exc_info:
            await service.get_live_prices(market_id="424242")
        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_one_failure_fails_request(
        self, service: QueryService, mock_clob: MagicMock
    ) -> None:
        def flaky(token_id: str, side: str) -> PriceQuote:
            if token_id == "t2":
                raise ClobClientError("Failed to get BUY price for t2")
            return _quote(token_id, side)

        mock_clob.get_price.side_effect = flaky

        with pytest.raises(ClobClientError):
            await service.get_live_prices(market_id="100")


class TestOrderbooks:
    """Tests for live order-book lookups."""

    @pytest.mark.asyncio
    async def test_single_token(self, service: QueryService) -> None:
        result = await service.get_orderbooks(token_id="t1")

        book = result["orderbook"]
        assert result["token_id"] == "t1"
        assert book["best_bid"] == "0.40"
        assert book["best_ask"] == "0.45"
        assert book["spread"] == "0.05"

    @pytest.mark.asyncio
    async def test_fan_out_over_markets(self, service: QueryService, mock_clob: MagicMock) -> None:
        result = await service.get_orderbooks(market_id="100", market_ids=["101"])

        assert [m["market_id"] for m in result["markets"]] == [100, 101]
        books = result["markets"][0]["orderbooks"]
        assert [(b["token_id"], b["outcome"]) for b in books] == [
            ("t1", "Lakers"),
            ("t2", "Celtics"),
        ]
        assert books[1]["orderbook"]["asset_id"] == "t2"
        assert mock_clob.get_orderbook.call_count == 4

    @pytest.mark.asyncio
    async def test_not_found(self, service: QueryService) -> None:
        with pytest.raises(MarketNotFoundError):
            await service.get_orderbooks(market_ids=["777"])
