"""
Command-line interface for the shared calendar.
"""

import asyncio
import logging
from dataclasses import dataclass
from dataclasses import field
from datetime import date
from datetime import datetime
from datetime import timedelta
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from shared_calendar.models import DEFAULT_CONFIG
from shared_calendar.models import EVENTS_COLLECTION
from shared_calendar.models import AppConfig
from shared_calendar.models import EventRecord
from shared_calendar.models import RemoteUnreachable
from shared_calendar.models import SessionContext
from shared_calendar.models import SessionFull
from shared_calendar.models import SharedCalendarError
from shared_calendar.models import SyncState
from shared_calendar.prefs import LocalState
from shared_calendar.prefs import build_config
from shared_calendar.store import SQLiteDocumentStore
from shared_calendar.store import query_session_summary
from shared_calendar.sync import SyncCoordinator
from shared_calendar.sync import load_local_records
from shared_calendar.sync.free_time import free_slots
from shared_calendar.sync.gatekeeper import Reason
from shared_calendar.sync.gatekeeper import SessionGatekeeper
from shared_calendar.sync.reconcile import busy_intervals
from shared_calendar.sync.reconcile import group_by_day

# ---------------------------------------------------------------------------
# Typer app
# ---------------------------------------------------------------------------

app = typer.Typer(
    no_args_is_help=True,
    rich_markup_mode="rich",
    help="Share your calendar with one other person and find time you are both free.",
)

console = Console()


# ---------------------------------------------------------------------------
# Global state shared across subcommands
# ---------------------------------------------------------------------------


@dataclass
class _State:
    config_path: Path = field(default_factory=lambda: DEFAULT_CONFIG)
    store_path: Path | None = None
    verbose: bool = False


state = _State()


@app.callback()
def _global(
    config: Annotated[
        Path,
        typer.Option("--config", "-c", help=f"Config file path (default: {DEFAULT_CONFIG})"),
    ] = DEFAULT_CONFIG,
    store: Annotated[
        Path | None,
        typer.Option("--store", help="Shared store path (overrides config)"),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable verbose debug output"),
    ] = False,
) -> None:
    state.config_path = config
    state.store_path = store
    state.verbose = verbose
    _setup_logging(verbose)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False, console=console)],
        force=True,
    )


def _config(calendar_ids: list[str] | None = None) -> AppConfig:
    try:
        return build_config(
            state.config_path,
            store_path=state.store_path,
            calendar_ids=calendar_ids,
            verbose=state.verbose,
        )
    except SharedCalendarError as e:
        console.print(f"[bold red]Error:[/] {e}")
        raise typer.Exit(1) from None


def _open_store(cfg: AppConfig) -> SQLiteDocumentStore:
    store = SQLiteDocumentStore(cfg.store_path)
    try:
        store.connect()
    except RemoteUnreachable as e:
        console.print(f"[bold red]Store unreachable:[/] {e}")
        raise typer.Exit(1) from None
    return store


def _require_session(local: LocalState) -> str:
    session_code = local.session_code
    if not session_code:
        console.print(
            "[bold red]Error:[/] Not in a session — run [cyan]shared-calendar join CODE[/] first."
        )
        raise typer.Exit(1)
    return session_code


def _print_status(sync_state: SyncState, message: str) -> None:
    console.print(f"[dim]{message}[/dim]")


def _fmt_time(moment: datetime) -> str:
    return moment.astimezone().strftime("%H:%M")


def _fmt_event(record: EventRecord) -> str:
    if record.is_all_day:
        return f"All day  {record.title}"
    return f"{_fmt_time(record.start_date)}–{_fmt_time(record.end_date)}  {record.title}"


def _parse_day(value: str | None) -> date:
    if not value:
        return date.today()
    try:
        return date.fromisoformat(value)
    except ValueError:
        console.print(f"[bold red]Error:[/] Invalid date: {value!r}")
        raise typer.Exit(1) from None


# ---------------------------------------------------------------------------
# Subcommand: calendars
# ---------------------------------------------------------------------------


@app.command()
def calendars() -> None:
    """List the EDS calendars available to share."""
    from shared_calendar.eds_source import list_calendars
    from shared_calendar.eds_source import open_registry

    cfg = _config()
    try:
        entries = list_calendars(open_registry())
    except SharedCalendarError as e:
        console.print(f"[bold red]Error:[/] {e}")
        raise typer.Exit(1) from None

    selected = set(cfg.calendar_ids)
    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Display Name", style="bold")
    table.add_column("Account")
    table.add_column("Shared")
    table.add_column("UID", style="dim")
    for name, account, uid in entries:
        shared = Text("✓", style="green") if uid in selected else Text("")
        table.add_row(name, account, shared, uid)
    console.print(table)


# ---------------------------------------------------------------------------
# Subcommand: join
# ---------------------------------------------------------------------------


@app.command()
def join(
    code: Annotated[str, typer.Argument(help="Session code shared with your partner")],
) -> None:
    """Enter a session, if it has room for you."""
    cfg = _config()
    local = LocalState(cfg.config_path)
    owner_id = local.user_id()

    console.print("[dim]Checking room capacity...[/dim]")
    with _open_store(cfg) as store:
        gatekeeper = SessionGatekeeper(store, capacity=cfg.capacity, page_size=cfg.page_size)
        try:
            availability = asyncio.run(gatekeeper.require_access(code, owner_id))
        except SessionFull:
            console.print(Text(Reason.FULL.message, style="bold red"))
            raise typer.Exit(1) from None
        except RemoteUnreachable:
            console.print(Text(Reason.UNREACHABLE.message, style="yellow"))
            raise typer.Exit(1) from None

    console.print(Text(availability.message, style="green"))
    local.session_code = code


# ---------------------------------------------------------------------------
# Subcommand: sync
# ---------------------------------------------------------------------------


_CAL_OPT = Annotated[
    list[str] | None,
    typer.Option("--calendar", "-k", help="EDS calendar UID to share (repeatable)"),
]


@app.command()
def sync(
    calendar: _CAL_OPT = None,
    days: Annotated[
        int | None,
        typer.Option("--days", help="How many days ahead to share (default from config: 30)"),
    ] = None,
) -> None:
    """Upload your events and download your partner's."""
    from shared_calendar.eds_source import EDSCalendarSource
    from shared_calendar.preflight import run_preflight_checks

    cfg = _config(calendar)
    if not run_preflight_checks(cfg, console):
        raise typer.Exit(1)

    local = LocalState(cfg.config_path)
    context = SessionContext(owner_id=local.user_id(), session_code=_require_session(local))

    start = datetime.now().astimezone()
    end = start + timedelta(days=days or cfg.range_days)
    try:
        records = load_local_records(EDSCalendarSource(), context, cfg.calendar_ids, start, end)
    except SharedCalendarError as e:
        console.print(f"[bold red]Calendar access failed:[/] {e}")
        raise typer.Exit(1) from None

    info = Text()
    info.append("  Session:   ", style="bold")
    info.append(f"{context.session_code}\n")
    info.append("  Identity:  ", style="bold")
    info.append(f"{context.owner_id}\n", style="dim")
    info.append("  Range:     ", style="bold")
    info.append(f"{start:%Y-%m-%d} → {end:%Y-%m-%d}\n")
    info.append("  Events:    ", style="bold")
    info.append(str(len(records)))
    console.print(Panel(info, title="[bold]Shared Calendar Sync[/bold]"))

    try:
        with _open_store(cfg) as store:
            coordinator = SyncCoordinator(store, listener=_print_status)
            result = asyncio.run(
                coordinator.sync(context.owner_id, context.session_code, records)
            )
    except KeyboardInterrupt:
        console.print("[yellow]Interrupted by user[/]")
        raise typer.Exit(130) from None

    results = Table.grid(padding=(0, 2))
    results.add_column(style="bold")
    results.add_column(justify="right")
    results.add_row("Uploaded", str(result.succeeded))
    failed_val = Text(str(result.failed))
    if result.failed == 0:
        failed_val.append(" ✓", style="green")
    else:
        failed_val.stylize("bold red")
    results.add_row("Failed", failed_val)
    partner_val = Text(str(result.partner_count))
    if not result.remote_refreshed:
        partner_val = Text("unavailable", style="yellow")
    results.add_row("Partner events", partner_val)

    console.print(Panel(results, title="[bold]Results[/bold]", expand=False))

    if result.failed:
        raise typer.Exit(1)


# ---------------------------------------------------------------------------
# Subcommand: schedule
# ---------------------------------------------------------------------------


@app.command()
def schedule() -> None:
    """Show the session's events day by day, yours beside your partner's."""
    cfg = _config()
    local = LocalState(cfg.config_path)
    owner_id = local.user_id()
    session_code = _require_session(local)

    with _open_store(cfg) as store:
        try:
            split = asyncio.run(SyncCoordinator(store).fetch_session(owner_id, session_code))
        except RemoteUnreachable as e:
            console.print(f"[bold red]Could not load session:[/] {e}")
            raise typer.Exit(1) from None

    days = group_by_day(split.mine, split.others)
    if not len(days):
        console.print(
            "[yellow]No events in this session yet — run[/] [cyan]shared-calendar sync[/]"
        )
        return

    table = Table(show_header=True, header_style="bold cyan", show_lines=True)
    table.add_column("Day", style="bold")
    table.add_column("Mine", style="blue")
    table.add_column("Partner", style="dark_orange")
    for day, events in days:
        table.add_row(
            f"{day:%a %Y-%m-%d}",
            "\n".join(_fmt_event(record) for record in events.mine),
            "\n".join(_fmt_event(record) for record in events.others),
        )
    console.print(Panel(table, title=f"[bold]Session {session_code}[/bold]", expand=False))


# ---------------------------------------------------------------------------
# Subcommand: free
# ---------------------------------------------------------------------------


@app.command()
def free(
    day: Annotated[
        str | None, typer.Argument(help="Day to check, YYYY-MM-DD (default: today)")
    ] = None,
) -> None:
    """Show when you and your partner are both free on a day."""
    cfg = _config()
    target = _parse_day(day)
    local = LocalState(cfg.config_path)
    owner_id = local.user_id()
    session_code = _require_session(local)

    with _open_store(cfg) as store:
        try:
            split = asyncio.run(SyncCoordinator(store).fetch_session(owner_id, session_code))
        except RemoteUnreachable as e:
            console.print(f"[bold red]Could not load session:[/] {e}")
            raise typer.Exit(1) from None

    events = split.mine + split.others
    busy = busy_intervals(events, target)
    slots = free_slots(target, events, cfg.window_start, cfg.window_end)

    table = Table(show_header=True, header_style="bold cyan", box=None, padding=(0, 2))
    table.add_column("From")
    table.add_column("To")
    table.add_column("Length", justify="right")
    for slot in slots:
        minutes = int(slot.duration.total_seconds() // 60)
        table.add_row(
            _fmt_time(slot.start), _fmt_time(slot.end), f"{minutes // 60}h{minutes % 60:02d}"
        )

    title = (
        f"[bold]Free on {target:%a %Y-%m-%d}[/bold] "
        f"[dim]({cfg.window_start:%H:%M}–{cfg.window_end:%H:%M}, {len(busy)} busy block(s))[/dim]"
    )
    if not slots:
        console.print(Panel(Text("No free time in the window.", style="yellow"), title=title))
        return
    console.print(Panel(table, title=title, expand=False))


# ---------------------------------------------------------------------------
# Subcommand: leave
# ---------------------------------------------------------------------------


@app.command()
def leave(
    delete: Annotated[
        bool,
        typer.Option("--delete", help="Also remove your events from the shared store"),
    ] = False,
) -> None:
    """Leave the current session.

    Without [cyan]--delete[/] your uploaded events stay in the session; with it
    they are removed (best-effort).
    """
    cfg = _config()
    local = LocalState(cfg.config_path)
    owner_id = local.user_id()
    session_code = _require_session(local)

    local.session_code = None
    console.print(f"Left session [cyan]{session_code}[/].")
    if not delete:
        return

    with _open_store(cfg) as store:
        coordinator = SyncCoordinator(store, listener=_print_status)

        async def _leave():
            split = await coordinator.fetch_session(owner_id, session_code)
            await coordinator.leave_and_delete(owner_id, split.mine)

        try:
            asyncio.run(_leave())
        except RemoteUnreachable as e:
            console.print(f"[yellow]Could not remove your events:[/] {e}")


# ---------------------------------------------------------------------------
# Subcommand: status
# ---------------------------------------------------------------------------


@app.command()
def status() -> None:
    """Show configuration, identity, session and store summary."""
    cfg = _config()
    local = LocalState(cfg.config_path)

    config_exists = cfg.config_path.exists()
    store_exists = cfg.store_path.exists()

    info = Text()
    info.append("  Config:    ", style="bold")
    info.append(str(cfg.config_path) + " ")
    info.append(
        "✓" if config_exists else "(not found)", style="green" if config_exists else "red"
    )
    info.append("\n  Store:     ", style="bold")
    info.append(str(cfg.store_path) + " ")
    info.append(
        "✓" if store_exists else "(not found)", style="green" if store_exists else "yellow"
    )
    info.append("\n  Identity:  ", style="bold")
    info.append(local.user_id(), style="dim")
    info.append("\n  Session:   ", style="bold")
    session_code = local.session_code
    info.append(session_code or "(none)", style="cyan" if session_code else "yellow")
    info.append("\n  Calendars: ", style="bold")
    info.append(", ".join(cfg.calendar_ids) or "(none selected)")
    info.append("\n  Window:    ", style="bold")
    info.append(f"{cfg.window_start:%H:%M}–{cfg.window_end:%H:%M}")

    if store_exists:
        with _open_store(cfg) as store:
            health = asyncio.run(SyncCoordinator(store).check_connection())
        info.append("\n  Health:    ", style="bold")
        info.append(health, style="green" if health == "Connected" else "bold red")

    console.print(Panel(info, title="[bold]Shared Calendar — Status[/bold]"))

    rows = query_session_summary(cfg.store_path, EVENTS_COLLECTION)
    if not rows:
        console.print("[yellow]Store is empty — no events shared yet.[/]")
        return

    table = Table(show_header=True, header_style="bold cyan", box=None, padding=(0, 2))
    table.add_column("Session")
    table.add_column("Owner")
    table.add_column("Events", justify="right")
    table.add_column("Last write")
    owner_id = local.user_id()
    for row in rows:
        owner = row["owner_id"] or "?"
        owner_label = Text(owner, style="bold" if owner == owner_id else "")
        if owner == owner_id:
            owner_label.append(" (you)", style="green")
        ts = row["last_write_at"] or 0
        last = datetime.fromtimestamp(ts).strftime("%Y-%m-%d %H:%M:%S") if ts else "—"
        table.add_row(row["session_code"] or "?", owner_label, str(row["count"]), last)
    console.print(Panel(table, title="[bold]Shared store[/bold]", expand=False))


# ---------------------------------------------------------------------------
# Subcommand: new-identity
# ---------------------------------------------------------------------------


@app.command("new-identity")
def new_identity(
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation prompt")] = False,
) -> None:
    """Switch to a fresh user id (you will count as a new person in sessions)."""
    cfg = _config()
    local = LocalState(cfg.config_path)
    if not yes:
        typer.confirm(
            "Events you already uploaded will stay under the old id. Proceed?", abort=True
        )
    console.print(f"New identity: [cyan]{local.rotate_user_id()}[/]")


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    app()
