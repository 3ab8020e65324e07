"""
Preflight checks run before sync to catch common misconfigurations early.
"""

import logging
import sqlite3

from rich.console import Console
from rich.panel import Panel
from rich.text import Text

from shared_calendar.models import AppConfig

logger = logging.getLogger(__name__)


def check_store(cfg: AppConfig) -> list[tuple[str, str, str]]:
    """Store parent dir writable and, if the store exists, readable and writable."""
    issues: list[tuple[str, str, str]] = []
    store_path = cfg.store_path
    try:
        store_path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.error("Cannot create store directory %s: %s", store_path.parent, e)
        issues.append(
            ("Shared store", f"{store_path}: {e}", f"Check permissions on {store_path.parent}")
        )
        return issues

    if store_path.exists():
        try:
            conn = sqlite3.connect(store_path)
            try:
                conn.execute("SELECT 1")
                # BEGIN IMMEDIATE needs a journal file next to the store.
                conn.execute("BEGIN IMMEDIATE")
                conn.execute("ROLLBACK")
            finally:
                conn.close()
        except sqlite3.Error as e:
            logger.error("Store not readable/writable (%s): %s", store_path, e)
            issues.append(
                (
                    "Shared store",
                    f"{store_path}: {e}",
                    f"Check permissions on {store_path.parent} "
                    f"(journal files must be creatable alongside the store)",
                )
            )
    return issues


def check_calendars(cfg: AppConfig) -> list[tuple[str, str, str]]:
    """EDS reachable and every selected calendar UID known to it."""
    if not cfg.calendar_ids:
        return [
            (
                "Calendars",
                "No calendars selected",
                "Pass --calendar UID or set calendar_ids in the config file",
            )
        ]

    from shared_calendar.eds_source import open_registry
    from shared_calendar.models import SourceAccessDenied

    try:
        registry = open_registry()
    except SourceAccessDenied as e:
        logger.error("EDS registry unreachable: %s", e)
        return [("EDS registry", str(e), "Is evolution-data-server running?")]

    issues: list[tuple[str, str, str]] = []
    for uid in cfg.calendar_ids:
        if registry.ref_source(uid) is None:
            logger.error("Calendar UID not found in EDS: %s", uid)
            issues.append(
                ("Calendar", f"UID not found: {uid}", "Run: shared-calendar calendars")
            )
    return issues


def run_preflight_checks(cfg: AppConfig, console: Console) -> bool:
    """Return True if sync may proceed; print issues and return False otherwise."""
    issues = check_store(cfg) + check_calendars(cfg)
    if issues:
        _print_issues(issues, console)
        return False
    return True


def _print_issues(issues: list[tuple[str, str, str]], console: Console) -> None:
    body = Text()
    for i, (label, detail, hint) in enumerate(issues):
        if i:
            body.append("\n")
        body.append(f"  ✗  {label}: ", style="bold red")
        body.append(detail, style="bold red")
        body.append(f"\n       → {hint}", style="yellow")

    console.print(Panel(body, title="[bold red]Preflight checks failed[/bold red]"))
