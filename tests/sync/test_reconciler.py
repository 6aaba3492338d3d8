"""Tests for the ordered reconciliation write sequence."""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, patch

import pytest

from polymarket_sports_sync.storage.database import SessionScope
from polymarket_sports_sync.storage.repos import (
    EventRepository,
    EventTagRepository,
    IngestionStateRepository,
    MarketRepository,
)
from polymarket_sports_sync.sync.merger import SyncBatch, build_sync_batch
from polymarket_sports_sync.sync.normalizer import normalize_event, normalize_market
from polymarket_sports_sync.sync.reconciler import Reconciler

STATE_KEY = "polymarket_nba_last_sync"
STARTED_AT = datetime(2026, 1, 15, 12, 0, tzinfo=UTC)


def _batch() -> SyncBatch:
    first = normalize_event(
        {
            "id": "1",
            "title": "Lakers vs. Celtics",
            "tags": [{"id": "1", "label": "Sports"}, {"id": "745", "label": "NBA"}],
            "markets": [
                {"id": "100", "question": "Winner?", "clobTokenIds": '["a", "b"]'},
                {"id": "101", "question": "Total points?"},
            ],
        }
    )
    second = normalize_event(
        {
            "id": "2",
            "title": "Knicks vs. Heat",
            "tags": ["745"],
            "markets": [{"id": "200", "question": "Winner?"}],
        }
    )
    assert first is not None and second is not None
    return build_sync_batch([first, second])


async def _counts(session_scope: SessionScope) -> tuple[int, int, int]:
    async with session_scope() as session:
        return (
            await EventRepository(session).count(),
            await MarketRepository(session).count(),
            await EventTagRepository(session).count(),
        )


class TestReconciler:
    """Tests for Reconciler.apply."""

    @pytest.mark.asyncio
    async def test_apply_writes_everything(self, session_scope: SessionScope) -> None:
        reconciler = Reconciler(session_scope, state_key=STATE_KEY, chunk_size=1)

        result = await reconciler.apply(_batch(), started_at=STARTED_AT)

        assert result.tags == 2
        assert result.events == 2
        assert result.links == 3
        assert result.markets == 3
        assert result.orphan_markets == 0
        assert await _counts(session_scope) == (2, 3, 3)

        async with session_scope() as session:
            state = await IngestionStateRepository(session).get(STATE_KEY)
            ids = await EventRepository(session).surrogate_ids([1, 2])
            markets = await MarketRepository(session).find_by_polymarket_ids([100, 200])
        assert state is not None
        assert state.events_count == 2
        assert state.markets_count == 3
        assert state.last_run_at.replace(tzinfo=UTC) == STARTED_AT
        assert markets[0].event_id == ids[1]
        assert markets[1].event_id == ids[2]
        assert markets[0].clob_token_ids == ["a", "b"]

    @pytest.mark.asyncio
    async def test_apply_is_idempotent(self, session_scope: SessionScope) -> None:
        reconciler = Reconciler(session_scope, state_key=STATE_KEY)

        await reconciler.apply(_batch(), started_at=STARTED_AT)
        async with session_scope() as session:
            first_ids = await EventRepository(session).surrogate_ids([1, 2])

        await reconciler.apply(_batch(), started_at=STARTED_AT)
        async with session_scope() as session:
            second_ids = await EventRepository(session).surrogate_ids([1, 2])

        assert first_ids == second_ids
        assert await _counts(session_scope) == (2, 3, 3)

    @pytest.mark.asyncio
    async def test_updates_replace_mutable_fields(self, session_scope: SessionScope) -> None:
        reconciler = Reconciler(session_scope, state_key=STATE_KEY)
        await reconciler.apply(_batch(), started_at=STARTED_AT)

        renamed = normalize_event(
            {
                "id": "1",
                "title": "Lakers at Celtics",
                "markets": [{"id": "100", "question": "Moneyline?"}],
            }
        )
        assert renamed is not None
        await reconciler.apply(build_sync_batch([renamed]), started_at=STARTED_AT)

        async with session_scope() as session:
            events, _ = await EventRepository(session).list_page(search="lakers")
            markets = await MarketRepository(session).find_by_polymarket_ids([100])
        assert events[0].title == "Lakers at Celtics"
        assert markets[0].question == "Moneyline?"
        # Rows absent from the second run are left untouched.
        assert await _counts(session_scope) == (2, 3, 3)

    @pytest.mark.asyncio
    async def test_orphan_markets_are_dropped(self, session_scope: SessionScope) -> None:
        batch = _batch()
        orphan = normalize_market({"id": "999", "question": "Orphan?"}, 404)
        assert orphan is not None
        batch.markets.append(orphan)

        result = await Reconciler(session_scope, state_key=STATE_KEY).apply(
            batch, started_at=STARTED_AT
        )

        assert result.orphan_markets == 1
        assert result.markets == 3
        async with session_scope() as session:
            assert await MarketRepository(session).find_by_polymarket_ids([999]) == []

    @pytest.mark.asyncio
    async def test_failed_phase_keeps_earlier_phases(self, session_scope: SessionScope) -> None:
        reconciler = Reconciler(session_scope, state_key=STATE_KEY)

        with patch(
            "polymarket_sports_sync.sync.reconciler.MarketRepository.upsert_many",
            new=AsyncMock(side_effect=RuntimeError("boom")),
        ):
            with pytest.raises(RuntimeError, match="boom"):
                await reconciler.apply(_batch(), started_at=STARTED_AT)

        assert await _counts(session_scope) == (2, 0, 3)
        async with session_scope() as session:
            assert await IngestionStateRepository(session).get(STATE_KEY) is None

    @pytest.mark.asyncio
    async def test_atomic_failure_rolls_back_everything(
        self, session_scope: SessionScope
    ) -> None:
        reconciler = Reconciler(session_scope, state_key=STATE_KEY, atomic=True)

        with patch(
            "polymarket_sports_sync.sync.reconciler.MarketRepository.upsert_many",
            new=AsyncMock(side_effect=RuntimeError("boom")),
        ):
            with pytest.raises(RuntimeError, match="boom"):
                await reconciler.apply(_batch(), started_at=STARTED_AT)

        assert await _counts(session_scope) == (0, 0, 0)

    @pytest.mark.asyncio
    async def test_atomic_success(self, session_scope: SessionScope) -> None:
        reconciler = Reconciler(session_scope, state_key=STATE_KEY, atomic=True)
        result = await reconciler.apply(_batch(), started_at=STARTED_AT)
        assert result.markets == 3
        assert await _counts(session_scope) == (2, 3, 3)

    @pytest.mark.asyncio
    async def test_record_state_overwrites(self, session_scope: SessionScope) -> None:
        reconciler = Reconciler(session_scope, state_key=STATE_KEY)
        await reconciler.record_state(started_at=STARTED_AT, events=4, markets=9)
        await reconciler.record_state(started_at=STARTED_AT, events=0, markets=0)

        async with session_scope() as session:
            state = await IngestionStateRepository(session).get(STATE_KEY)
        assert state is not None
        assert (state.events_count, state.markets_count) == (0, 0)
