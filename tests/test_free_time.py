"""
Unit tests for the free-time sweep.
"""

from datetime import date
from datetime import time
from datetime import timedelta
from datetime import timezone

from shared_calendar.models import Interval
from shared_calendar.sync.free_time import free_slots
from shared_calendar.sync.free_time import sweep
from shared_calendar.sync.reconcile import busy_intervals
from shared_calendar.sync.reconcile import day_bounds
from tests.conftest import ALICE
from tests.conftest import BERLIN
from tests.conftest import BOB
from tests.conftest import at
from tests.conftest import make_record

DAY = date(2026, 3, 2)


def _span(start: str, end: str, day: str = "2026-03-02", tz=timezone.utc):
    return (at(day, start, tz), at(day, end, tz))


def _pairs(intervals):
    return [(interval.start, interval.end) for interval in intervals]


def _slots(events, tz=timezone.utc, **kwargs):
    return free_slots(DAY, events, tz=tz, **kwargs)


class TestSweep:
    def test_empty_busy_returns_whole_window(self):
        window = Interval(*_span("07:00", "22:00"))
        assert _pairs(sweep([], window)) == [_span("07:00", "22:00")]

    def test_degenerate_window(self):
        assert sweep([], Interval(*_span("10:00", "10:00"))) == []
        assert sweep([], Interval(*_span("12:00", "10:00"))) == []

    def test_busy_past_window_edges(self):
        window = Interval(*_span("07:00", "22:00"))
        busy = [Interval(*_span("06:00", "08:00")), Interval(*_span("21:00", "23:00"))]
        assert _pairs(sweep(busy, window)) == [_span("08:00", "21:00")]

    def test_nested_interval_does_not_move_cursor_back(self):
        window = Interval(*_span("07:00", "22:00"))
        busy = [Interval(*_span("09:00", "12:00")), Interval(*_span("10:00", "11:00"))]
        assert _pairs(sweep(busy, window)) == [
            _span("07:00", "09:00"),
            _span("12:00", "22:00"),
        ]


class TestFreeSlots:
    def test_two_people_example(self):
        events = [
            make_record("A1", ALICE, "09:00", "10:00"),
            make_record("B1", BOB, "10:30", "11:00"),
        ]
        assert _pairs(_slots(events)) == [
            _span("07:00", "09:00"),
            _span("10:00", "10:30"),
            _span("11:00", "22:00"),
        ]

    def test_no_events(self):
        assert _pairs(_slots([])) == [_span("07:00", "22:00")]

    def test_all_day_events_do_not_block(self):
        events = [make_record("A1", all_day=True, start="00:00", end="23:59")]
        assert _pairs(_slots(events)) == [_span("07:00", "22:00")]

    def test_overlapping_events(self):
        events = [
            make_record("A1", ALICE, "09:00", "11:00"),
            make_record("B1", BOB, "10:00", "12:00"),
            make_record("B2", BOB, "11:30", "12:30"),
        ]
        assert _pairs(_slots(events)) == [
            _span("07:00", "09:00"),
            _span("12:30", "22:00"),
        ]

    def test_events_outside_window_ignored(self):
        events = [
            make_record("A1", ALICE, "05:00", "06:30"),
            make_record("B1", BOB, "22:30", "23:30"),
            make_record("B2", BOB, "09:00", "10:00", day="2026-03-03"),
        ]
        assert _pairs(_slots(events)) == [_span("07:00", "22:00")]

    def test_fully_booked(self):
        events = [make_record("A1", ALICE, "06:00", "23:00")]
        assert _slots(events) == []

    def test_zero_length_event_does_not_split_free_time(self):
        events = [make_record("A1", ALICE, "12:00", "12:00")]
        assert _pairs(_slots(events)) == [_span("07:00", "22:00")]

    def test_back_to_back_events_leave_no_gap(self):
        events = [
            make_record("A1", ALICE, "09:00", "10:00"),
            make_record("B1", BOB, "10:00", "11:00"),
        ]
        assert _pairs(_slots(events)) == [
            _span("07:00", "09:00"),
            _span("11:00", "22:00"),
        ]

    def test_custom_window(self):
        events = [make_record("A1", ALICE, "12:00", "13:00")]
        slots = _slots(events, window_start=time(9), window_end=time(17))
        assert _pairs(slots) == [_span("09:00", "12:00"), _span("13:00", "17:00")]

    def test_window_in_viewer_timezone(self):
        # 09:00 UTC is 10:00 in Berlin during winter time.
        events = [make_record("A1", ALICE, "09:00", "10:00")]
        slots = _slots(events, tz=BERLIN)
        assert _pairs(slots) == [
            _span("07:00", "10:00", tz=BERLIN),
            _span("11:00", "22:00", tz=BERLIN),
        ]

    def test_free_and_busy_tile_the_window(self):
        events = [
            make_record("A1", ALICE, "06:00", "08:00"),
            make_record("B1", BOB, "09:15", "10:45"),
            make_record("B2", BOB, "10:00", "11:00"),
            make_record("A2", ALICE, "21:30", "23:00"),
        ]
        window = day_bounds(DAY, time(7), time(22), timezone.utc)
        free = _slots(events)
        busy = [
            Interval(max(b.start, window.start), min(b.end, window.end))
            for b in busy_intervals(events, DAY, tz=timezone.utc)
            if b.end > window.start and b.start < window.end
        ]

        pieces = sorted(free + busy, key=lambda interval: interval.start)
        assert pieces[0].start == window.start
        assert pieces[-1].end == window.end
        for left, right in zip(pieces, pieces[1:]):
            assert left.end == right.start
        assert sum((p.duration for p in pieces), timedelta()) == window.duration
