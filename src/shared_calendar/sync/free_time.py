"""
Free-time computation over a working window.
"""

from datetime import date
from datetime import time
from datetime import tzinfo
from typing import Iterable
from typing import Sequence

from shared_calendar.models import DEFAULT_WINDOW_END
from shared_calendar.models import DEFAULT_WINDOW_START
from shared_calendar.models import EventRecord
from shared_calendar.models import Interval
from shared_calendar.sync.reconcile import day_bounds


def sweep(busy: Sequence[Interval], window: Interval) -> list[Interval]:
    """
    Complement of ``busy`` within ``window``.

    ``busy`` must already be sorted by start. Overlaps need no merge pass:
    the cursor only ever moves forward.
    """
    if window.start >= window.end:
        return []

    free: list[Interval] = []
    cursor = window.start
    for interval in busy:
        start = min(interval.start, window.end)
        if start > cursor:
            free.append(Interval(cursor, start))
        cursor = max(cursor, min(interval.end, window.end))
    if cursor < window.end:
        free.append(Interval(cursor, window.end))
    return free


def free_slots(
    day: date,
    events: Iterable[EventRecord],
    window_start: time = DEFAULT_WINDOW_START,
    window_end: time = DEFAULT_WINDOW_END,
    tz: tzinfo | None = None,
) -> list[Interval]:
    """
    Free intervals on ``day`` between ``window_start`` and ``window_end``.

    Pass both people's events to get mutual free time. All-day and zero-length
    events do not block time.
    """
    window = day_bounds(day, window_start, window_end, tz)
    busy = sorted(
        (
            Interval(event.start_date, event.end_date)
            for event in events
            if not event.is_all_day
            and event.start_date < event.end_date
            and event.start_date < window.end
            and event.end_date > window.start
        ),
        key=lambda interval: interval.start,
    )
    return sweep(busy, window)
