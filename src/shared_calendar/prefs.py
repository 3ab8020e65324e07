"""
INI-file configuration and the two durable local values (identity, last session).
"""

import logging
import uuid
from configparser import ConfigParser
from datetime import time
from pathlib import Path

from shared_calendar.models import DEFAULT_CAPACITY
from shared_calendar.models import DEFAULT_PAGE_SIZE
from shared_calendar.models import DEFAULT_RANGE_DAYS
from shared_calendar.models import DEFAULT_STORE
from shared_calendar.models import DEFAULT_WINDOW_END
from shared_calendar.models import DEFAULT_WINDOW_START
from shared_calendar.models import AppConfig
from shared_calendar.models import SharedCalendarError

logger = logging.getLogger(__name__)

SECTION = "shared-calendar"
USER_ID_KEY = "app_user_id"
SESSION_KEY = "saved_session_code"


def load_config_file(config_path: Path) -> dict[str, str]:
    if not config_path.exists():
        return {}
    parser = ConfigParser(interpolation=None)
    parser.read(config_path)
    if SECTION not in parser:
        return {}
    return dict(parser[SECTION])


def _parse_time(value: str, key: str) -> time:
    try:
        return time.fromisoformat(value.strip())
    except ValueError:
        raise SharedCalendarError(f"Invalid {key} {value!r} in config (expected HH:MM)") from None


def _parse_int(value: str, key: str) -> int:
    try:
        parsed = int(value.strip())
    except ValueError:
        raise SharedCalendarError(
            f"Invalid {key} {value!r} in config (expected a number)"
        ) from None
    if parsed < 1:
        raise SharedCalendarError(f"{key} must be at least 1, got {parsed}")
    return parsed


def build_config(
    config_path: Path,
    store_path: Path | None = None,
    calendar_ids: list[str] | None = None,
    verbose: bool = False,
) -> AppConfig:
    """Resolve configuration: explicit arguments, then the config file, then defaults."""
    values = load_config_file(config_path)

    if not calendar_ids:
        calendar_ids = [uid.strip() for uid in values.get("calendar_ids", "").split(",")]
    calendar_ids = [uid for uid in calendar_ids if uid]

    if store_path is None:
        if "store_path" in values:
            store_path = Path(values["store_path"]).expanduser()
        else:
            store_path = DEFAULT_STORE

    window_start = (
        _parse_time(values["window_start"], "window_start")
        if "window_start" in values
        else DEFAULT_WINDOW_START
    )
    window_end = (
        _parse_time(values["window_end"], "window_end")
        if "window_end" in values
        else DEFAULT_WINDOW_END
    )

    return AppConfig(
        store_path=store_path,
        config_path=config_path,
        calendar_ids=calendar_ids,
        range_days=_parse_int(values.get("range_days", str(DEFAULT_RANGE_DAYS)), "range_days"),
        window_start=window_start,
        window_end=window_end,
        capacity=_parse_int(values.get("capacity", str(DEFAULT_CAPACITY)), "capacity"),
        page_size=_parse_int(values.get("page_size", str(DEFAULT_PAGE_SIZE)), "page_size"),
        verbose=verbose,
    )


class LocalState:
    """
    The durable per-installation values: ``app_user_id`` and
    ``saved_session_code``. Both live in the config file's section so other
    keys there are preserved on write.
    """

    def __init__(self, config_path: Path):
        self.config_path = config_path

    def _read(self) -> ConfigParser:
        parser = ConfigParser(interpolation=None)
        if self.config_path.exists():
            parser.read(self.config_path)
        if SECTION not in parser:
            parser[SECTION] = {}
        return parser

    def _write(self, parser: ConfigParser):
        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.config_path, "w") as f:
            parser.write(f)

    def user_id(self) -> str:
        """The owner id for this installation, generated on first use."""
        parser = self._read()
        existing = parser[SECTION].get(USER_ID_KEY)
        if existing:
            return existing
        new_id = str(uuid.uuid4())
        parser[SECTION][USER_ID_KEY] = new_id
        self._write(parser)
        logger.info(f"Generated new user id {new_id}")
        return new_id

    def rotate_user_id(self) -> str:
        """Replace the owner id, becoming a new person as far as sessions can tell."""
        parser = self._read()
        new_id = str(uuid.uuid4())
        parser[SECTION][USER_ID_KEY] = new_id
        self._write(parser)
        logger.info(f"Switched identity to {new_id}")
        return new_id

    @property
    def session_code(self) -> str | None:
        return self._read()[SECTION].get(SESSION_KEY) or None

    @session_code.setter
    def session_code(self, value: str | None):
        parser = self._read()
        if value:
            parser[SECTION][SESSION_KEY] = value
        else:
            parser.remove_option(SECTION, SESSION_KEY)
        self._write(parser)
