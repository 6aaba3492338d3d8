"""Merging of windowed event sets and de-duplication by natural key."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

from polymarket_sports_sync.sync.normalizer import (
    EventRecord,
    MarketRecord,
    NormalizedEvent,
    TagRecord,
)


@dataclass(frozen=True)
class EventTagLink:
    """Join candidate keyed by upstream ids; resolved at write time."""

    event_polymarket_id: int
    tag_id: int


@dataclass
class SyncBatch:
    """De-duplicated write set for one reconciliation run."""

    tags: list[TagRecord] = field(default_factory=list)
    events: list[EventRecord] = field(default_factory=list)
    markets: list[MarketRecord] = field(default_factory=list)
    links: list[EventTagLink] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.events


def merge_events(*event_sets: Iterable[NormalizedEvent]) -> list[NormalizedEvent]:
    """Merge event sets by event id, keeping the first occurrence.

    Pass the active-future set first so it wins over the upcoming set.
    """
    merged: dict[int, NormalizedEvent] = {}
    for events in event_sets:
        for item in events:
            merged.setdefault(item.event.polymarket_event_id, item)
    return list(merged.values())


def build_sync_batch(events: Iterable[NormalizedEvent]) -> SyncBatch:
    """Collapse merged events into unique tags, events, markets and links.

    Later occurrences of the same natural key replace earlier ones, while
    each key keeps the position of its first appearance.
    """
    tags: dict[int, TagRecord] = {}
    event_rows: dict[int, EventRecord] = {}
    markets: dict[int, MarketRecord] = {}
    links: dict[tuple[int, int], EventTagLink] = {}

    for item in events:
        event_id = item.event.polymarket_event_id
        event_rows[event_id] = item.event
        for tag in item.tags:
            tags[tag.id] = tag
            links[(event_id, tag.id)] = EventTagLink(event_polymarket_id=event_id, tag_id=tag.id)
        for market in item.markets:
            markets[market.polymarket_market_id] = market

    return SyncBatch(
        tags=list(tags.values()),
        events=list(event_rows.values()),
        markets=list(markets.values()),
        links=list(links.values()),
    )
