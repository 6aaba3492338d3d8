"""Mapping of raw upstream payloads into canonical catalog records.

This is the boundary past which no untyped upstream mapping travels: the
records below carry typed, coerced fields, and the original payload is kept
only as an opaque ``raw`` blob for storage.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any

from polymarket_sports_sync.parsing import (
    first_present,
    parse_bool,
    parse_date,
    parse_json_array,
    parse_number,
    parse_positive_int,
    parse_text_array,
    pick_string,
)

logger = logging.getLogger(__name__)

EVENT_ID_KEYS = ("id", "eventId", "polymarketEventId")
MARKET_ID_KEYS = ("id", "marketId", "polymarketMarketId")
TAG_ID_KEYS = ("id", "tag_id")

MarketPredicate = Callable[[Mapping[str, Any]], bool]


@dataclass(frozen=True)
class TagRecord:
    id: int
    label: str | None = None
    slug: str | None = None
    force_show: bool | None = None
    force_hide: bool | None = None
    is_carousel: bool | None = None
    published_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True)
class EventRecord:
    polymarket_event_id: int
    slug: str | None
    title: str | None
    description: str | None
    start_date: datetime | None
    end_date: datetime | None
    active: bool | None
    closed: bool | None
    archived: bool | None
    featured: bool | None
    restricted: bool | None
    liquidity: Decimal | None
    volume: Decimal | None
    raw: dict[str, Any]


@dataclass(frozen=True)
class MarketRecord:
    """A market still keyed to its parent by the upstream event id."""

    polymarket_market_id: int
    event_polymarket_id: int
    slug: str | None
    question: str | None
    title: str | None
    category: str | None
    condition_id: str | None
    market_type: str | None
    format_type: str | None
    active: bool | None
    closed: bool | None
    status: str | None
    end_date: datetime | None
    resolve_time: datetime | None
    liquidity: Decimal | None
    volume: Decimal | None
    volume_24hr: Decimal | None
    outcome_prices: list[Any] | None
    outcomes: list[Any] | None
    clob_token_ids: list[str] | None
    raw: dict[str, Any]


@dataclass(frozen=True)
class NormalizedEvent:
    """One event with the tags and (window-eligible) markets it carries."""

    event: EventRecord
    tags: tuple[TagRecord, ...]
    markets: tuple[MarketRecord, ...]


def event_id_of(raw: Mapping[str, Any]) -> int | None:
    return parse_positive_int(first_present(raw, EVENT_ID_KEYS))


def normalize_tags(value: Any) -> list[TagRecord]:
    """Accept tag objects, bare id strings, or a comma-separated id string.

    Entries without a positive integer id are dropped.
    """
    if not value:
        return []
    if isinstance(value, str):
        items: list[Any] = value.split(",")
    elif isinstance(value, (list, tuple)):
        items = list(value)
    else:
        return []

    tags: list[TagRecord] = []
    for item in items:
        if isinstance(item, Mapping):
            tag_id = parse_positive_int(first_present(item, TAG_ID_KEYS))
            if tag_id is None:
                continue
            tags.append(
                TagRecord(
                    id=tag_id,
                    label=pick_string(item, ("label",)),
                    slug=pick_string(item, ("slug",)),
                    force_show=parse_bool(first_present(item, ("forceShow", "force_show"))),
                    force_hide=parse_bool(first_present(item, ("forceHide", "force_hide"))),
                    is_carousel=parse_bool(first_present(item, ("isCarousel", "is_carousel"))),
                    published_at=parse_date(item.get("publishedAt")),
                    created_at=parse_date(item.get("createdAt")),
                    updated_at=parse_date(item.get("updatedAt")),
                )
            )
            continue
        tag_id = parse_positive_int(item)
        if tag_id is not None:
            tags.append(TagRecord(id=tag_id))
    return tags


def normalize_market(raw: Mapping[str, Any], event_polymarket_id: int) -> MarketRecord | None:
    """Map a raw market; returns None when it has no usable id."""
    market_id = parse_positive_int(first_present(raw, MARKET_ID_KEYS))
    if market_id is None:
        return None

    question = pick_string(raw, ("question", "questionTitle"))
    return MarketRecord(
        polymarket_market_id=market_id,
        event_polymarket_id=event_polymarket_id,
        slug=pick_string(raw, ("slug",)),
        question=question,
        title=pick_string(raw, ("title", "groupItemTitle")) or pick_string(raw, ("question",)),
        category=pick_string(raw, ("category",)),
        condition_id=pick_string(raw, ("conditionId", "condition_id")),
        market_type=pick_string(raw, ("marketType", "market_type", "sportsMarketType")),
        format_type=pick_string(raw, ("formatType", "format_type")),
        active=parse_bool(raw.get("active")),
        closed=parse_bool(raw.get("closed")),
        status=pick_string(raw, ("status", "umaResolutionStatus")),
        end_date=parse_date(raw.get("endDate")),
        resolve_time=parse_date(raw.get("resolveTime")),
        liquidity=parse_number(first_present(raw, ("liquidityNum", "liquidityClob", "liquidity"))),
        volume=parse_number(first_present(raw, ("volumeNum", "volumeClob", "volume"))),
        volume_24hr=parse_number(first_present(raw, ("volume24hr", "volume24Hour"))),
        outcome_prices=parse_json_array(raw.get("outcomePrices")),
        outcomes=parse_json_array(raw.get("outcomes")),
        clob_token_ids=parse_text_array(raw.get("clobTokenIds")),
        raw=dict(raw),
    )


def normalize_event(
    raw: Mapping[str, Any],
    market_filter: MarketPredicate | None = None,
) -> NormalizedEvent | None:
    """Map a raw event together with its nested tags and markets.

    Args:
        raw: Upstream event payload.
        market_filter: Window sub-filter deciding which nested markets to
            keep; all markets are kept when omitted.

    Returns:
        The normalized event, or None if the event id does not parse to a
        positive integer.
    """
    event_id = event_id_of(raw)
    if event_id is None:
        logger.debug("Dropping event without a usable id: %r", raw.get("id"))
        return None

    event = EventRecord(
        polymarket_event_id=event_id,
        slug=pick_string(raw, ("slug", "ticker")),
        title=pick_string(raw, ("title", "ticker")),
        description=pick_string(raw, ("description",)),
        start_date=parse_date(first_present(raw, ("startDate", "eventDate", "startTime"))),
        end_date=parse_date(raw.get("endDate")),
        active=parse_bool(raw.get("active")),
        closed=parse_bool(raw.get("closed")),
        archived=parse_bool(raw.get("archived")),
        featured=parse_bool(first_present(raw, ("featured", "new"))),
        restricted=parse_bool(raw.get("restricted")),
        liquidity=parse_number(first_present(raw, ("liquidityClob", "liquidity"))),
        volume=parse_number(first_present(raw, ("volumeClob", "volume"))),
        raw=dict(raw),
    )

    raw_markets = raw.get("markets")
    markets: list[MarketRecord] = []
    dropped = 0
    if isinstance(raw_markets, list):
        for raw_market in raw_markets:
            if not isinstance(raw_market, Mapping):
                dropped += 1
                continue
            if market_filter is not None and not market_filter(raw_market):
                continue
            market = normalize_market(raw_market, event_id)
            if market is None:
                dropped += 1
                continue
            markets.append(market)
    if dropped:
        logger.debug("Event %d: dropped %d malformed markets", event_id, dropped)

    return NormalizedEvent(
        event=event,
        tags=tuple(normalize_tags(raw.get("tags"))),
        markets=tuple(markets),
    )
