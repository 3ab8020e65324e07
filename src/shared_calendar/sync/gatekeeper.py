"""
Session admission — who may join a session, based on who is already in it.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable

from shared_calendar.adapters import records_from_documents
from shared_calendar.models import DEFAULT_CAPACITY
from shared_calendar.models import DEFAULT_PAGE_SIZE
from shared_calendar.models import EVENTS_COLLECTION
from shared_calendar.models import RemoteUnreachable
from shared_calendar.models import SessionFull
from shared_calendar.store import RemoteStore

logger = logging.getLogger(__name__)


class Reason(Enum):
    WELCOME_BACK = "welcome_back"
    AVAILABLE = "available"
    FULL = "full"
    UNREACHABLE = "unreachable"

    @property
    def message(self) -> str:
        return _MESSAGES[self]


_MESSAGES = {
    Reason.WELCOME_BACK: "Welcome back!",
    Reason.AVAILABLE: "Room available. Joining...",
    Reason.FULL: "This room is full.",
    Reason.UNREACHABLE: "Could not reach the server. Try again.",
}


@dataclass(frozen=True)
class Availability:
    allowed: bool
    reason: Reason

    @property
    def message(self) -> str:
        return self.reason.message


def check_availability(
    session_code: str,
    requester_id: str,
    existing_owner_ids: Iterable[str],
    capacity: int = DEFAULT_CAPACITY,
) -> Availability:
    """
    Decide whether ``requester_id`` may join ``session_code``.

    Rejoining is always allowed, even when the session is over capacity.
    """
    owners = set(existing_owner_ids)
    if requester_id in owners:
        return Availability(True, Reason.WELCOME_BACK)
    if len(owners) < capacity:
        return Availability(True, Reason.AVAILABLE)
    logger.info(
        f"Session {session_code!r} is full ({len(owners)}/{capacity} owners); "
        f"refusing {requester_id}"
    )
    return Availability(False, Reason.FULL)


class SessionGatekeeper:
    """Looks up a session's current owners and applies the admission policy."""

    def __init__(
        self,
        store: RemoteStore,
        capacity: int = DEFAULT_CAPACITY,
        page_size: int = DEFAULT_PAGE_SIZE,
        collection: str = EVENTS_COLLECTION,
    ):
        self.store = store
        self.capacity = capacity
        self.page_size = page_size
        self.collection = collection

    async def owners(self, session_code: str) -> set[str]:
        """
        Owners seen in one page of the session's most recent records.

        Only a page is read, so a session with a long history may be
        undercounted.

        Raises:
            RemoteUnreachable: the store query failed.
        """
        try:
            documents = await self.store.query(
                self.collection, "sessionCode", session_code, limit=self.page_size
            )
        except RemoteUnreachable:
            raise
        except Exception as e:
            raise RemoteUnreachable(f"Could not query session {session_code!r}: {e}") from e
        return {record.owner_id for record in records_from_documents(documents)}

    async def probe(self, session_code: str, requester_id: str) -> Availability:
        """Check availability against the live store; never raises for store failures."""
        try:
            owners = await self.owners(session_code)
        except RemoteUnreachable as e:
            logger.warning(f"Capacity check for {session_code!r} failed: {e}")
            return Availability(False, Reason.UNREACHABLE)
        logger.debug("Session %r has owners %s", session_code, sorted(owners))
        return check_availability(session_code, requester_id, owners, self.capacity)

    async def require_access(self, session_code: str, requester_id: str) -> Availability:
        """
        Like probe(), but refusals are raised.

        Raises:
            SessionFull: the session has no room for ``requester_id``.
            RemoteUnreachable: the session could not be checked.
        """
        availability = await self.probe(session_code, requester_id)
        if availability.reason is Reason.FULL:
            raise SessionFull(f"Session {session_code!r} is full")
        if availability.reason is Reason.UNREACHABLE:
            raise RemoteUnreachable(f"Could not check session {session_code!r}")
        return availability
