"""
Unit tests for EventRecord construction and the record adapters.
"""

import dataclasses
from datetime import datetime
from datetime import timedelta
from datetime import timezone

import pytest

from shared_calendar.adapters import from_document
from shared_calendar.adapters import from_raw_event
from shared_calendar.adapters import records_from_documents
from shared_calendar.adapters import to_document
from shared_calendar.models import NO_TITLE
from shared_calendar.models import MalformedRemoteRecord
from shared_calendar.models import RawEvent
from tests.conftest import ALICE
from tests.conftest import SESSION
from tests.conftest import at
from tests.conftest import make_record


class TestEventRecord:
    @pytest.mark.parametrize("missing", ["id", "owner_id", "session_code"])
    def test_required_identity_fields(self, missing):
        record = make_record("E1")
        with pytest.raises(ValueError, match=missing):
            dataclasses.replace(record, **{missing: ""})

    def test_start_after_end_rejected(self):
        with pytest.raises(ValueError, match="after"):
            make_record("E1", start="11:00", end="10:00")

    def test_zero_length_allowed(self):
        record = make_record("E1", start="10:00", end="10:00")
        assert record.start_date == record.end_date

    def test_frozen(self):
        record = make_record("E1")
        with pytest.raises(dataclasses.FrozenInstanceError):
            record.title = "changed"

    def test_equality_by_all_fields(self):
        assert make_record("E1") == make_record("E1")
        assert make_record("E1") != make_record("E1", title="Other")


class TestFromRawEvent:
    def test_tags_owner_and_session(self):
        raw = RawEvent(
            uid="abc",
            title="Dentist",
            start=at("2026-03-02", "09:00"),
            end=at("2026-03-02", "10:00"),
            calendar_name="Home",
        )
        record = from_raw_event(raw, ALICE, SESSION)
        assert record.id == "abc"
        assert record.owner_id == ALICE
        assert record.session_code == SESSION
        assert record.calendar_name == "Home"
        assert not record.is_all_day

    def test_missing_title_gets_placeholder(self):
        raw = RawEvent(uid="abc", start=at("2026-03-02", "09:00"), end=at("2026-03-02", "10:00"))
        assert from_raw_event(raw, ALICE, SESSION).title == NO_TITLE

    def test_floating_times_become_aware(self):
        raw = RawEvent(uid="abc", start=datetime(2026, 3, 2, 9), end=datetime(2026, 3, 2, 10))
        record = from_raw_event(raw, ALICE, SESSION)
        assert record.start_date.tzinfo is not None
        assert record.end_date - record.start_date == timedelta(hours=1)


class TestDocuments:
    def test_document_shape(self):
        doc = to_document(make_record("E1", all_day=True))
        assert doc["id"] == "E1"
        assert doc["ownerId"] == ALICE
        assert doc["sessionCode"] == SESSION
        assert doc["isAllDay"] is True
        assert doc["startDate"] == "2026-03-02T09:00:00+00:00"

    def test_parse_document(self):
        record = make_record("E1")
        assert from_document(to_document(record)) == record

    def test_parse_keeps_instant_across_offsets(self):
        doc = to_document(make_record("E1"))
        doc["startDate"] = "2026-03-02T10:00:00+01:00"
        parsed = from_document(doc)
        assert parsed.start_date == datetime(2026, 3, 2, 9, tzinfo=timezone.utc)

    @pytest.mark.parametrize("field", ["ownerId", "sessionCode", "startDate", "title"])
    def test_missing_field_is_malformed(self, field):
        doc = to_document(make_record("E1"))
        del doc[field]
        with pytest.raises(MalformedRemoteRecord):
            from_document(doc)

    def test_empty_owner_is_malformed(self):
        doc = to_document(make_record("E1"))
        doc["ownerId"] = ""
        with pytest.raises(MalformedRemoteRecord):
            from_document(doc)

    def test_bad_date_is_malformed(self):
        doc = to_document(make_record("E1"))
        doc["endDate"] = "next tuesday"
        with pytest.raises(MalformedRemoteRecord):
            from_document(doc)

    @pytest.mark.parametrize("value", ["false", "true", 0, 1])
    def test_non_boolean_all_day_is_malformed(self, value):
        doc = to_document(make_record("E1"))
        doc["isAllDay"] = value
        with pytest.raises(MalformedRemoteRecord, match="isAllDay"):
            from_document(doc)

    def test_malformed_documents_are_dropped(self):
        good = to_document(make_record("E1"))
        bad = to_document(make_record("E2"))
        del bad["endDate"]
        records = records_from_documents([good, bad, {"id": "E3"}])
        assert [record.id for record in records] == ["E1"]
