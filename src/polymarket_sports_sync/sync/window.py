"""Time-window classification of raw upstream events and markets.

Two independent predicates decide which events enter a reconciliation run:

* active-future: flagged ``active`` and ending strictly after now;
* upcoming: starting inside ``[today 00:00Z, today + N days 23:59:59.999Z]``.

Events matching neither are excluded along with their markets and tags.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime, time, timedelta
from enum import Enum
from typing import Any

from polymarket_sports_sync.parsing import first_present, parse_bool, parse_date

DEFAULT_UPCOMING_DAYS = 7

END_KEYS = ("endDate", "resolveTime")
START_KEYS = ("startDate", "eventDate", "startTime")

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(UTC)


class EventWindow(str, Enum):
    """Classification of a raw event against the time windows."""

    ACTIVE_FUTURE = "active_future"
    UPCOMING = "upcoming"
    EXCLUDED = "excluded"


def resolve_end(raw: Mapping[str, Any]) -> datetime | None:
    return parse_date(first_present(raw, END_KEYS))


def resolve_start(raw: Mapping[str, Any]) -> datetime | None:
    return parse_date(first_present(raw, START_KEYS))


@dataclass(frozen=True)
class UpcomingWindow:
    """Inclusive UTC interval covering today and the next ``days`` days."""

    start: datetime
    end: datetime

    @classmethod
    def for_days(cls, now: datetime, days: int) -> UpcomingWindow:
        today = now.astimezone(UTC).date()
        start = datetime.combine(today, time.min, tzinfo=UTC)
        end = datetime.combine(today + timedelta(days=days), time.max, tzinfo=UTC)
        # Millisecond resolution to match upstream timestamps.
        end = end.replace(microsecond=999_000)
        return cls(start=start, end=end)

    def contains(self, instant: datetime) -> bool:
        return self.start <= instant <= self.end


@dataclass(frozen=True)
class WindowedEvents:
    """Raw events split by window. An event may appear in both lists."""

    active_future: list[dict[str, Any]]
    upcoming: list[dict[str, Any]]


class WindowFilter:
    """Applies the active-future and upcoming policies.

    Args:
        upcoming_days: Days after today included in the upcoming window.
            ``None`` or a value <= 0 disables the upcoming set.
        clock: Returns the current aware UTC time; injectable for tests.
    """

    def __init__(
        self,
        upcoming_days: int | None = DEFAULT_UPCOMING_DAYS,
        *,
        clock: Clock = _utcnow,
    ) -> None:
        self._upcoming_days = upcoming_days
        self._clock = clock

    def now(self) -> datetime:
        return self._clock()

    def upcoming_window(self, now: datetime | None = None) -> UpcomingWindow | None:
        days = self._upcoming_days
        if days is None or isinstance(days, bool) or not isinstance(days, int) or days <= 0:
            return None
        return UpcomingWindow.for_days(now or self.now(), days)

    def is_active_future(self, raw: Mapping[str, Any], now: datetime | None = None) -> bool:
        if parse_bool(raw.get("active")) is not True:
            return False
        end = resolve_end(raw)
        return end is not None and end > (now or self.now())

    def is_upcoming(self, raw: Mapping[str, Any], window: UpcomingWindow | None) -> bool:
        if window is None:
            return False
        start = resolve_start(raw)
        return start is not None and window.contains(start)

    def classify(self, raw: Mapping[str, Any], now: datetime | None = None) -> EventWindow:
        """Classify one event; active-future takes precedence over upcoming."""
        now = now or self.now()
        if self.is_active_future(raw, now):
            return EventWindow.ACTIVE_FUTURE
        if self.is_upcoming(raw, self.upcoming_window(now)):
            return EventWindow.UPCOMING
        return EventWindow.EXCLUDED

    def split(
        self, events: Iterable[dict[str, Any]], now: datetime | None = None
    ) -> WindowedEvents:
        """Evaluate both predicates independently over ``events``."""
        now = now or self.now()
        window = self.upcoming_window(now)
        active: list[dict[str, Any]] = []
        upcoming: list[dict[str, Any]] = []
        for raw in events:
            if self.is_active_future(raw, now):
                active.append(raw)
            if self.is_upcoming(raw, window):
                upcoming.append(raw)
        return WindowedEvents(active_future=active, upcoming=upcoming)

    def market_eligible(
        self,
        raw_market: Mapping[str, Any],
        parent: EventWindow,
        now: datetime | None = None,
    ) -> bool:
        """Market sub-filter, chosen by the parent event's classification.

        Under an active-future parent the market must itself be active with a
        future end. Under an upcoming parent it is kept unless it has an end
        time that has already passed.
        """
        now = now or self.now()
        if parent is EventWindow.ACTIVE_FUTURE:
            return self.is_active_future(raw_market, now)
        if parent is EventWindow.UPCOMING:
            end = resolve_end(raw_market)
            return end is None or end > now
        return False
