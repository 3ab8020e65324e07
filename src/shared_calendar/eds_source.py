"""
Evolution Data Server as the local calendar source.
"""

import logging
from datetime import datetime
from datetime import timezone
from typing import Optional
from typing import Tuple

import gi

gi.require_version("EDataServer", "1.2")
gi.require_version("ECal", "2.0")
gi.require_version("ICalGLib", "3.0")
from gi.repository import ECal
from gi.repository import EDataServer
from gi.repository import GLib
from gi.repository import ICalGLib

from shared_calendar.models import RawEvent
from shared_calendar.models import SourceAccessDenied

logger = logging.getLogger(__name__)


def open_registry() -> EDataServer.SourceRegistry:
    """Connect to the EDS source registry."""
    try:
        return EDataServer.SourceRegistry.new_sync(None)
    except GLib.Error as e:
        raise SourceAccessDenied(f"Evolution Data Server unreachable: {e.message}") from e


def get_calendar_display_info(registry, calendar_uid: str) -> Tuple[str, str, str]:
    """
    Get human-readable information about a calendar.

    Returns:
        Tuple of (display_name, account_name, uid)
    """
    source = registry.ref_source(calendar_uid)
    if not source:
        return ("Unknown Calendar", "", calendar_uid)

    display_name = source.get_display_name() or "Unnamed Calendar"
    account_name = ""
    parent_uid = source.get_parent()
    if parent_uid:
        parent_source = registry.ref_source(parent_uid)
        if parent_source:
            account_name = parent_source.get_display_name() or ""
    return (display_name, account_name, calendar_uid)


def list_calendars(registry) -> list[Tuple[str, str, str]]:
    """Return (display_name, account_name, uid) for every EDS calendar."""
    sources = registry.list_sources(EDataServer.SOURCE_EXTENSION_CALENDAR)
    return [get_calendar_display_info(registry, source.get_uid()) for source in sources]


def _to_datetime(t: ICalGLib.Time) -> Tuple[datetime, bool]:
    """Convert an ICalGLib.Time into (datetime, is_date).

    Date-only and floating values come back naive (local wall time); zoned
    and UTC values come back aware.
    """
    if t.is_date():
        return datetime(t.get_year(), t.get_month(), t.get_day()), True
    zone = t.get_timezone()
    if t.is_utc():
        return datetime.fromtimestamp(t.as_timet(), tz=timezone.utc), False
    if zone:
        return (
            datetime.fromtimestamp(t.as_timet_with_zone(zone), tz=timezone.utc).astimezone(),
            False,
        )
    return (
        datetime(
            t.get_year(),
            t.get_month(),
            t.get_day(),
            t.get_hour(),
            t.get_minute(),
            t.get_second(),
        ),
        False,
    )


class EDSCalendarSource:
    """Reads event instances from EDS calendars."""

    def __init__(self, registry: Optional[EDataServer.SourceRegistry] = None, timeout: int = 10):
        self.registry = registry
        self.timeout = timeout

    def _connect(self, calendar_uid: str) -> ECal.Client:
        if self.registry is None:
            self.registry = open_registry()
        source = self.registry.ref_source(calendar_uid)
        if not source:
            raise SourceAccessDenied(f"Calendar with UID '{calendar_uid}' not found in EDS")
        try:
            return ECal.Client.connect_sync(
                source, ECal.ClientSourceType.EVENTS, self.timeout, None
            )
        except GLib.Error as e:
            raise SourceAccessDenied(
                f"Failed to connect to calendar {calendar_uid}: {e.message}"
            ) from e

    def fetch_events(
        self, calendar_ids: set[str], start: datetime, end: datetime
    ) -> list[RawEvent]:
        """Expand every event occurrence in [start, end) across the given calendars."""
        events: list[RawEvent] = []
        for calendar_uid in sorted(calendar_ids):
            client = self._connect(calendar_uid)
            calendar_name = client.get_source().get_display_name() or calendar_uid
            before = len(events)

            def _collect(icomp, instance_start, instance_end, *args):
                uid = icomp.get_uid()
                if not uid:
                    return True
                begin, all_day = _to_datetime(instance_start)
                finish, _ = _to_datetime(instance_end)
                recurring = (
                    icomp.get_first_property(ICalGLib.PropertyKind.RRULE_PROPERTY) is not None
                    or icomp.get_first_property(ICalGLib.PropertyKind.RECURRENCEID_PROPERTY)
                    is not None
                )
                if recurring:
                    uid = f"{uid}@{begin:%Y%m%dT%H%M%S}"
                events.append(
                    RawEvent(
                        uid=uid,
                        title=icomp.get_summary(),
                        start=begin,
                        end=max(begin, finish),
                        all_day=all_day,
                        calendar_name=calendar_name,
                    )
                )
                return True

            try:
                client.generate_instances_sync(
                    int(start.timestamp()), int(end.timestamp()), None, _collect, None
                )
            except GLib.Error as e:
                raise SourceAccessDenied(
                    f"Failed to read events from {calendar_uid}: {e.message}"
                ) from e
            logger.debug(f"Loaded {len(events) - before} events from {calendar_name}")

        return events
