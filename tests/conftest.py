"""
Shared pytest fixtures and record helpers.
"""

from datetime import datetime
from datetime import timezone
from zoneinfo import ZoneInfo

import pytest

from shared_calendar.adapters import to_document
from shared_calendar.models import EVENTS_COLLECTION
from shared_calendar.models import EventRecord
from shared_calendar.store import SQLiteDocumentStore
from shared_calendar.sync import SyncCoordinator
from shared_calendar.sync import document_id
from tests.fake_store import FakeDocumentStore

SESSION = "OurTrip2026"
ALICE = "owner-alice"
BOB = "owner-bob"
CAROL = "owner-carol"

BERLIN = ZoneInfo("Europe/Berlin")


def at(day: str, hhmm: str, tz=timezone.utc) -> datetime:
    """Aware datetime from 'YYYY-MM-DD' and 'HH:MM'."""
    return datetime.fromisoformat(f"{day}T{hhmm}").replace(tzinfo=tz)


def make_record(
    uid: str,
    owner_id: str = ALICE,
    start: str = "09:00",
    end: str = "10:00",
    day: str = "2026-03-02",
    all_day: bool = False,
    session_code: str = SESSION,
    title: str = "Test Event",
    tz=timezone.utc,
) -> EventRecord:
    """Return a minimal, valid EventRecord."""
    return EventRecord(
        id=uid,
        title=title,
        start_date=at(day, start, tz),
        end_date=at(day, end, tz),
        is_all_day=all_day,
        calendar_name="Personal",
        owner_id=owner_id,
        session_code=session_code,
    )


def seed(store: FakeDocumentStore, *records: EventRecord):
    """Put records into the fake store the way a previous sync would have."""
    for record in records:
        store.put(EVENTS_COLLECTION, document_id(record), to_document(record))


@pytest.fixture
def fake_store():
    return FakeDocumentStore()


@pytest.fixture
def store_path(tmp_path):
    return tmp_path / "store.db"


@pytest.fixture
def sqlite_store(store_path):
    with SQLiteDocumentStore(store_path) as store:
        yield store


@pytest.fixture
def coordinator(fake_store):
    return SyncCoordinator(fake_store)
