"""
Conversions into and out of EventRecord.

The local source and the remote store each have their own shape; these
functions are the only place that knows about either.
"""

import logging
from datetime import datetime
from typing import Any
from typing import Iterable

from shared_calendar.models import NO_TITLE
from shared_calendar.models import EventRecord
from shared_calendar.models import MalformedRemoteRecord
from shared_calendar.models import RawEvent

logger = logging.getLogger(__name__)

_REQUIRED_FIELDS = (
    "id",
    "title",
    "startDate",
    "endDate",
    "isAllDay",
    "calendarName",
    "ownerId",
    "sessionCode",
)


def _aware(value: datetime) -> datetime:
    """Attach the local timezone to floating datetimes."""
    if value.tzinfo is None:
        return value.astimezone()
    return value


def from_raw_event(raw: RawEvent, owner_id: str, session_code: str) -> EventRecord:
    """Build the canonical record for a locally loaded event."""
    return EventRecord(
        id=raw.uid,
        title=raw.title or NO_TITLE,
        start_date=_aware(raw.start),
        end_date=_aware(raw.end),
        is_all_day=raw.all_day,
        calendar_name=raw.calendar_name,
        owner_id=owner_id,
        session_code=session_code,
    )


def to_document(record: EventRecord) -> dict[str, Any]:
    """Serialise a record into the store's document shape."""
    return {
        "id": record.id,
        "title": record.title,
        "startDate": record.start_date.isoformat(),
        "endDate": record.end_date.isoformat(),
        "isAllDay": record.is_all_day,
        "calendarName": record.calendar_name,
        "ownerId": record.owner_id,
        "sessionCode": record.session_code,
    }


def from_document(document: dict[str, Any]) -> EventRecord:
    """
    Parse a store document back into a record.

    Raises:
        MalformedRemoteRecord: a required field is missing, empty where it
            must not be, or unparseable.
    """
    missing = [name for name in _REQUIRED_FIELDS if document.get(name) is None]
    if missing:
        raise MalformedRemoteRecord(
            f"Document {document.get('id')!r} is missing {', '.join(missing)}"
        )
    if not isinstance(document["isAllDay"], bool):
        raise MalformedRemoteRecord(
            f"Document {document.get('id')!r}: isAllDay must be a boolean, "
            f"got {document['isAllDay']!r}"
        )
    try:
        return EventRecord(
            id=str(document["id"]),
            title=str(document["title"]) or NO_TITLE,
            start_date=_aware(datetime.fromisoformat(document["startDate"])),
            end_date=_aware(datetime.fromisoformat(document["endDate"])),
            is_all_day=document["isAllDay"],
            calendar_name=str(document["calendarName"]),
            owner_id=str(document["ownerId"]),
            session_code=str(document["sessionCode"]),
        )
    except (TypeError, ValueError) as e:
        raise MalformedRemoteRecord(f"Document {document.get('id')!r}: {e}") from e


def records_from_documents(documents: Iterable[dict[str, Any]]) -> list[EventRecord]:
    """Parse every well-formed document; malformed ones are dropped."""
    records = []
    for document in documents:
        try:
            records.append(from_document(document))
        except MalformedRemoteRecord as e:
            logger.debug("Dropping malformed remote record: %s", e)
    return records
