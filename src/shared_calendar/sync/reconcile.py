"""
Reconciliation — split a session's records by owner and lay them out per day.
"""

from dataclasses import dataclass
from dataclasses import field
from datetime import date
from datetime import datetime
from datetime import time
from datetime import timedelta
from datetime import tzinfo
from typing import Iterable
from typing import Iterator

from shared_calendar.models import EventRecord
from shared_calendar.models import Interval


def _sort_key(record: EventRecord):
    return (record.start_date, record.id)


@dataclass
class Partition:
    """A session's records split into the caller's and everyone else's."""

    mine: list[EventRecord]
    others: list[EventRecord]


def partition(records: Iterable[EventRecord], owner_id: str) -> Partition:
    """
    Split records into those owned by ``owner_id`` and the rest.

    Every other owner is merged into ``others``. Both lists are sorted by
    start date, ties broken by id.
    """
    mine: list[EventRecord] = []
    others: list[EventRecord] = []
    for record in records:
        if record.owner_id == owner_id:
            mine.append(record)
        else:
            others.append(record)
    mine.sort(key=_sort_key)
    others.sort(key=_sort_key)
    return Partition(mine=mine, others=others)


def local_day(moment: datetime, tz: tzinfo | None = None) -> date:
    """Calendar day of ``moment`` in ``tz`` (the local zone when None)."""
    return moment.astimezone(tz).date()


@dataclass
class DayEvents:
    mine: list[EventRecord] = field(default_factory=list)
    others: list[EventRecord] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.mine) + len(self.others)


class DaySchedule:
    """
    Per-day view of two owned event sets.

    Iterating yields ``(day, DayEvents)`` pairs in ascending date order; a
    schedule can be iterated any number of times.
    """

    def __init__(self, days: dict[date, DayEvents]):
        self._days = days
        self._order = sorted(days)

    def __iter__(self) -> Iterator[tuple[date, DayEvents]]:
        return ((day, self._days[day]) for day in self._order)

    def __len__(self) -> int:
        return len(self._order)

    def __contains__(self, day: date) -> bool:
        return day in self._days

    def __getitem__(self, day: date) -> DayEvents:
        return self._days[day]

    def get(self, day: date) -> DayEvents:
        """Events on ``day``; an empty DayEvents for days with nothing on them."""
        return self._days.get(day) or DayEvents()

    @property
    def days(self) -> list[date]:
        return list(self._order)


def group_by_day(
    mine: Iterable[EventRecord],
    others: Iterable[EventRecord],
    tz: tzinfo | None = None,
) -> DaySchedule:
    """
    Group both sets by the local day their start falls on.

    Events crossing midnight stay on their start day. Only days that have at
    least one event are present.
    """
    days: dict[date, DayEvents] = {}
    for record in mine:
        days.setdefault(local_day(record.start_date, tz), DayEvents()).mine.append(record)
    for record in others:
        days.setdefault(local_day(record.start_date, tz), DayEvents()).others.append(record)
    for bucket in days.values():
        bucket.mine.sort(key=_sort_key)
        bucket.others.sort(key=_sort_key)
    return DaySchedule(days)


def day_bounds(day: date, start: time, end: time, tz: tzinfo | None = None) -> Interval:
    """The ``[start, end)`` window on ``day`` as aware datetimes."""
    if tz is None:
        begin = datetime.combine(day, start).astimezone()
        finish = datetime.combine(day, end).astimezone()
    else:
        begin = datetime.combine(day, start, tzinfo=tz)
        finish = datetime.combine(day, end, tzinfo=tz)
    return Interval(begin, finish)


def busy_intervals(
    events: Iterable[EventRecord], day: date, tz: tzinfo | None = None
) -> list[Interval]:
    """
    Merged busy spans of the timed events touching ``day``.

    All-day and zero-length events are ignored. Spans are clipped to the day.
    """
    # Not midnight + 24h: a DST day is 23 or 25 hours long.
    bounds = Interval(
        day_bounds(day, time.min, time.min, tz).start,
        day_bounds(day + timedelta(days=1), time.min, time.min, tz).start,
    )
    clipped = sorted(
        (
            Interval(max(event.start_date, bounds.start), min(event.end_date, bounds.end))
            for event in events
            if not event.is_all_day
            and event.start_date < event.end_date
            and event.start_date < bounds.end
            and event.end_date > bounds.start
        ),
        key=lambda interval: interval.start,
    )
    merged: list[Interval] = []
    for interval in clipped:
        if merged and interval.start <= merged[-1].end:
            if interval.end > merged[-1].end:
                merged[-1] = Interval(merged[-1].start, interval.end)
        else:
            merged.append(interval)
    return merged
