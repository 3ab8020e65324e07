"""
Pure data models — no EDS or sqlite imports.
"""

from dataclasses import dataclass
from dataclasses import field
from datetime import datetime
from datetime import time
from datetime import timedelta
from enum import Enum
from pathlib import Path

DEFAULT_STORE = Path.home() / ".local/share/shared-calendar/store.db"
DEFAULT_CONFIG = Path.home() / ".config/shared-calendar.conf"

EVENTS_COLLECTION = "shared_events"
NO_TITLE = "No Title"

DEFAULT_CAPACITY = 2
DEFAULT_PAGE_SIZE = 50
DEFAULT_RANGE_DAYS = 30
DEFAULT_WINDOW_START = time(7, 0)
DEFAULT_WINDOW_END = time(22, 0)


class SharedCalendarError(Exception):
    """Base exception for shared calendar errors."""

    pass


class SourceAccessDenied(SharedCalendarError):
    """The local calendar source refused access or could not be reached."""


class RemoteUnreachable(SharedCalendarError):
    """The remote store could not be reached or is misconfigured."""


class RecordUpsertFailed(SharedCalendarError):
    """A single record could not be written to the remote store."""


class RecordDeleteFailed(SharedCalendarError):
    """A single record could not be removed from the remote store."""


class SessionFull(SharedCalendarError):
    """The session already has as many owners as it allows."""


class MalformedRemoteRecord(SharedCalendarError):
    """A fetched document is missing required fields."""


@dataclass(frozen=True)
class RawEvent:
    """An event as produced by the local calendar source."""

    uid: str
    start: datetime
    end: datetime
    title: str | None = None
    all_day: bool = False
    calendar_name: str = ""


@dataclass(frozen=True)
class EventRecord:
    """A calendar event tagged with its owner and session."""

    id: str
    title: str
    start_date: datetime
    end_date: datetime
    is_all_day: bool
    calendar_name: str
    owner_id: str
    session_code: str

    def __post_init__(self):
        for name in ("id", "owner_id", "session_code"):
            if not getattr(self, name):
                raise ValueError(f"EventRecord.{name} must be non-empty")
        if self.start_date > self.end_date:
            raise ValueError(
                f"EventRecord {self.id}: start_date {self.start_date} is after "
                f"end_date {self.end_date}"
            )


@dataclass(frozen=True)
class Interval:
    """Half-open time span [start, end)."""

    start: datetime
    end: datetime

    @property
    def duration(self) -> timedelta:
        return self.end - self.start


@dataclass(frozen=True)
class SessionContext:
    """Who is syncing, and into which session."""

    owner_id: str
    session_code: str


class SyncState(Enum):
    IDLE = "idle"
    UPLOADING = "uploading"
    DOWNLOADING = "downloading"
    DONE = "done"


@dataclass
class SyncResult:
    """Outcome of one sync call."""

    succeeded: int = 0
    failed: int = 0
    partner_count: int = 0
    mine: list[EventRecord] = field(default_factory=list)
    others: list[EventRecord] = field(default_factory=list)
    remote_refreshed: bool = True
    state: SyncState = SyncState.IDLE


@dataclass
class AppConfig:
    """Configuration for the shared calendar client."""

    store_path: Path
    config_path: Path
    calendar_ids: list[str] = field(default_factory=list)
    range_days: int = DEFAULT_RANGE_DAYS
    window_start: time = DEFAULT_WINDOW_START
    window_end: time = DEFAULT_WINDOW_END
    capacity: int = DEFAULT_CAPACITY
    page_size: int = DEFAULT_PAGE_SIZE
    verbose: bool = False
