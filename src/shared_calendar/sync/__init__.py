"""
SyncCoordinator — upload-then-download cycle for one session.
"""

import asyncio
import hashlib
import logging
from datetime import datetime
from typing import Callable
from typing import Iterable
from typing import Protocol

from shared_calendar.adapters import from_raw_event
from shared_calendar.adapters import records_from_documents
from shared_calendar.adapters import to_document
from shared_calendar.models import EVENTS_COLLECTION
from shared_calendar.models import EventRecord
from shared_calendar.models import RawEvent
from shared_calendar.models import RecordUpsertFailed
from shared_calendar.models import RemoteUnreachable
from shared_calendar.models import SessionContext
from shared_calendar.models import SharedCalendarError
from shared_calendar.models import SyncResult
from shared_calendar.models import SyncState
from shared_calendar.store import RemoteStore
from shared_calendar.sync.reconcile import Partition
from shared_calendar.sync.reconcile import partition

StatusListener = Callable[[SyncState, str], None]


class LocalCalendarSource(Protocol):
    def fetch_events(
        self, calendar_ids: set[str], start: datetime, end: datetime
    ) -> list[RawEvent]: ...


def document_id(record: EventRecord) -> str:
    """Store key for a record: one document per (session, owner, event)."""
    key = "\x1f".join((record.session_code, record.owner_id, record.id))
    return hashlib.sha256(key.encode("utf-8")).hexdigest()[:32]


def load_local_records(
    source: LocalCalendarSource,
    context: SessionContext,
    calendar_ids: Iterable[str],
    start: datetime,
    end: datetime,
) -> list[EventRecord]:
    """
    Read the selected calendars and tag every event for the session.

    Raises:
        SourceAccessDenied: the local source refused access.
    """
    raw_events = source.fetch_events(set(calendar_ids), start, end)
    records = {}
    for raw in raw_events:
        records[raw.uid] = from_raw_event(raw, context.owner_id, context.session_code)
    return list(records.values())


class SyncCoordinator:
    """Pushes a user's records to the store and pulls back the session."""

    def __init__(
        self,
        store: RemoteStore,
        listener: StatusListener | None = None,
        collection: str = EVENTS_COLLECTION,
    ):
        self.store = store
        self.listener = listener
        self.collection = collection
        self.logger = logging.getLogger(__name__)
        self.state = SyncState.IDLE
        self.status = ""

    def _set_status(self, message: str, state: SyncState | None = None):
        if state is not None:
            self.state = state
        self.status = message
        self.logger.debug("[%s] %s", self.state.value, message)
        if self.listener:
            self.listener(self.state, message)

    async def _upload(self, owner_id: str, session_code: str, record: EventRecord):
        if record.owner_id != owner_id or record.session_code != session_code:
            raise RecordUpsertFailed(
                f"Record {record.id} belongs to {record.owner_id}/{record.session_code}, "
                f"not {owner_id}/{session_code}"
            )
        await self.store.upsert(self.collection, document_id(record), to_document(record))

    async def fetch_session(self, owner_id: str, session_code: str) -> Partition:
        """
        Download every record in the session, split into mine and others.

        Malformed documents are dropped.

        Raises:
            RemoteUnreachable: the query failed.
        """
        try:
            documents = await self.store.query(self.collection, "sessionCode", session_code)
        except RemoteUnreachable:
            raise
        except Exception as e:
            raise RemoteUnreachable(f"Query for session {session_code!r} failed: {e}") from e
        remote = records_from_documents(documents)
        return partition(
            (record for record in remote if record.session_code == session_code), owner_id
        )

    async def sync(
        self, owner_id: str, session_code: str, local_records: Iterable[EventRecord]
    ) -> SyncResult:
        """
        Upload every local record, then download the whole session.

        Each upload stands alone: a failure is counted and the rest carry on.
        A failed download leaves the remote view empty instead of raising.
        """
        records = list(local_records)
        result = SyncResult()

        self._set_status(f"Uploading {len(records)} events...", SyncState.UPLOADING)
        outcomes = await asyncio.gather(
            *(self._upload(owner_id, session_code, record) for record in records),
            return_exceptions=True,
        )
        # gather() resumes here on the event loop thread only, so the
        # counters are never touched concurrently.
        for record, outcome in zip(records, outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                self.logger.error(f"Failed to upload {record.id} ({record.title}): {outcome}")
                result.failed += 1
            else:
                result.succeeded += 1
        self.logger.info(f"Uploaded {result.succeeded} events, {result.failed} failed")

        self._set_status("Downloading partner events...", SyncState.DOWNLOADING)
        try:
            split = await self.fetch_session(owner_id, session_code)
        except RemoteUnreachable as e:
            self.logger.warning(f"Could not download session {session_code!r}: {e}")
            split = Partition(mine=[], others=[])
            result.remote_refreshed = False

        result.mine = split.mine
        result.others = split.others
        result.partner_count = len(split.others)
        result.state = SyncState.DONE

        if result.remote_refreshed:
            message = f"Synced {result.succeeded} events"
        else:
            message = f"Uploaded {result.succeeded} events, but could not refresh partner view"
        if result.failed:
            message += f" ({result.failed} failed)"
        message += f". Partner has {result.partner_count} events."
        self._set_status(message, SyncState.DONE)
        return result

    async def leave_and_delete(self, owner_id: str, owned_records: Iterable[EventRecord]) -> int:
        """
        Best-effort removal of the caller's records from the store. Returns
        how many were deleted.

        Failures are logged and dropped; the caller has already cleared its
        local state. Records owned by someone else are never deleted.
        """
        targets = [record for record in owned_records if record.owner_id == owner_id]
        self._set_status(f"Deleting {len(targets)} events from the session...")

        async def _delete(record: EventRecord):
            await self.store.delete(self.collection, document_id(record))

        outcomes = await asyncio.gather(
            *(_delete(record) for record in targets), return_exceptions=True
        )
        failed = 0
        for record, outcome in zip(targets, outcomes):
            if isinstance(outcome, Exception):
                self.logger.warning(f"Failed to delete {record.id}: {outcome}")
                failed += 1
            elif isinstance(outcome, BaseException):
                raise outcome
        deleted = len(targets) - failed
        self.logger.info(f"Deleted {deleted} of {len(targets)} events")
        self._set_status(f"Left session; removed {deleted} events.", SyncState.IDLE)
        return deleted

    async def check_connection(self) -> str:
        """Return a human-readable health string for the store."""
        try:
            await self.store.ping()
        except SharedCalendarError as e:
            return f"Error: {e}"
        except Exception as e:
            self.logger.error(f"Unexpected error pinging store: {e}", exc_info=True)
            return f"Error: {e}"
        return "Connected"
