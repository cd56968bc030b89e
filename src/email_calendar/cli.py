"""
Command-line interface for email-calendar.
"""

import logging
from dataclasses import dataclass
from dataclasses import field
from datetime import datetime
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.text import Text

from email_calendar.availability import AvailabilityChecker
from email_calendar.config import DEFAULT_CONFIG
from email_calendar.config import CalendarConfig
from email_calendar.config import build_session
from email_calendar.config import load_config
from email_calendar.detector import detect_scheduling_intent
from email_calendar.detector import recommendation_for
from email_calendar.models import Attendee
from email_calendar.models import CalendarError
from email_calendar.models import ProposedSlot
from email_calendar.session import CalendarSession
from email_calendar.tools import parse_instant

# ---------------------------------------------------------------------------
# Typer app
# ---------------------------------------------------------------------------

app = typer.Typer(
    no_args_is_help=True,
    rich_markup_mode="rich",
    help="CalDAV calendar client with email scheduling detection.",
)

console = Console()


# ---------------------------------------------------------------------------
# Global state shared across subcommands
# ---------------------------------------------------------------------------


@dataclass
class _State:
    config_path: Path = field(default_factory=lambda: DEFAULT_CONFIG)
    verbose: bool = False


state = _State()


@app.callback()
def _global(
    config: Annotated[
        Path,
        typer.Option("--config", "-c", help=f"Config file path (default: {DEFAULT_CONFIG})"),
    ] = DEFAULT_CONFIG,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable verbose debug output"),
    ] = False,
) -> None:
    state.config_path = config
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
    )


def _load() -> CalendarConfig:
    try:
        return load_config(state.config_path, verbose=state.verbose)
    except ValueError as e:
        console.print(f"[bold red]Error:[/] {e}")
        raise typer.Exit(1) from None


def _connect() -> CalendarSession:
    """Build a session and log in, or exit after printing preflight issues."""
    from email_calendar.preflight import run_preflight_checks

    cfg = _load()
    session = build_session(cfg)
    if not run_preflight_checks(cfg, session, console):
        raise typer.Exit(1)
    return session


def _instant(value: str, option: str) -> datetime:
    try:
        return parse_instant(value)
    except ValueError:
        console.print(f"[bold red]Error:[/] Invalid {option}: {value!r} (expected ISO-8601)")
        raise typer.Exit(1) from None


def _fail(e: CalendarError) -> None:
    console.print(f"[bold red]{e.code}:[/] {e}")
    raise typer.Exit(1) from None


_CAL_OPT = Annotated[
    str | None,
    typer.Option("--calendar", "-k", help="Calendar id/URL (partial match allowed)"),
]
_CAL_ARG = Annotated[str, typer.Argument(help="Calendar id/URL (partial match allowed)")]
_URL_ARG = Annotated[str, typer.Argument(help="Event URL")]
_ETAG_OPT = Annotated[
    str | None,
    typer.Option("--etag", help="Only write if the event still has this etag"),
]
_YES = Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation prompt")]


# ---------------------------------------------------------------------------
# Read commands
# ---------------------------------------------------------------------------


@app.command()
def calendars() -> None:
    """List all calendars of the account."""
    from email_calendar.debug import list_calendars as _list_calendars

    session = _connect()
    _list_calendars(session.list_calendars(), console)


@app.command()
def events(
    start: Annotated[str, typer.Option("--from", help="Range start (ISO-8601)")],
    end: Annotated[str, typer.Option("--to", help="Range end (ISO-8601)")],
    calendar: _CAL_OPT = None,
) -> None:
    """List events in a date range across all (or one) calendars."""
    from email_calendar.debug import list_events

    window_start = _instant(start, "--from")
    window_end = _instant(end, "--to")
    session = _connect()
    try:
        found = session.list_events(window_start, window_end, calendar_id=calendar)
    except CalendarError as e:
        _fail(e)
    list_events(found, console, title=f"{len(found)} event(s)")


@app.command()
def today() -> None:
    """Show today's schedule."""
    from email_calendar.debug import list_events

    session = _connect()
    found = session.get_todays_events()
    list_events(found, console, title=f"Today — {datetime.now():%A %Y-%m-%d}")


@app.command()
def upcoming(
    days: Annotated[int, typer.Option("--days", "-d", help="Days to look ahead")] = 7,
) -> None:
    """Show upcoming events for the next N days."""
    from email_calendar.debug import list_events

    session = _connect()
    found = session.get_upcoming_events(days)
    list_events(found, console, title=f"Next {days} day(s)")


@app.command()
def inspect(
    calendar_id: _CAL_ARG,
    event_url: _URL_ARG,
    no_raw: Annotated[bool, typer.Option("--no-raw", help="Omit the raw iCal block")] = False,
) -> None:
    """Inspect / debug a single event."""
    from email_calendar.debug import dump_event

    session = _connect()
    try:
        event = session.get_event(calendar_id, event_url)
    except CalendarError as e:
        _fail(e)
    if event is None:
        console.print(f"[bold red]Error:[/] Event [cyan]{event_url}[/] not found.")
        raise typer.Exit(1)
    dump_event(event, console, show_raw=not no_raw)


@app.command()
def availability(
    slot: Annotated[
        list[str],
        typer.Option("--slot", "-s", help="Proposed slot as START/END (ISO-8601), repeatable"),
    ],
) -> None:
    """Check proposed time slots against every calendar."""
    from email_calendar.debug import show_availability

    slots = []
    for raw in slot:
        start, sep, end = raw.partition("/")
        if not sep:
            console.print(f"[bold red]Error:[/] Slot must be START/END, got {raw!r}")
            raise typer.Exit(1)
        try:
            slots.append(ProposedSlot(_instant(start, "slot start"), _instant(end, "slot end")))
        except ValueError as e:
            console.print(f"[bold red]Error:[/] {e}")
            raise typer.Exit(1) from None

    session = _connect()
    show_availability(AvailabilityChecker(session).check(slots), console)


@app.command()
def detect(
    subject: Annotated[str, typer.Option("--subject", help="Email subject")] = "",
    body_file: Annotated[
        Path | None,
        typer.Option("--body-file", help="File holding the plain-text body ('-' for stdin)"),
    ] = None,
) -> None:
    """Check an email's text for scheduling intent (offline)."""
    import sys

    from email_calendar.debug import show_detection

    if body_file is None:
        body = ""
    elif str(body_file) == "-":
        body = sys.stdin.read()
    else:
        body = body_file.read_text(encoding="utf-8", errors="replace")

    result = detect_scheduling_intent(subject, body)
    show_detection(result, console)
    console.print(recommendation_for(result))


# ---------------------------------------------------------------------------
# Write commands
# ---------------------------------------------------------------------------


@app.command()
def create(
    calendar_id: _CAL_ARG,
    summary: Annotated[str, typer.Option("--summary", help="Event title")],
    start: Annotated[str, typer.Option("--start", help="Start (ISO-8601)")],
    end: Annotated[str, typer.Option("--end", help="End (ISO-8601)")],
    description: Annotated[str | None, typer.Option("--description")] = None,
    location: Annotated[str | None, typer.Option("--location")] = None,
    all_day: Annotated[bool, typer.Option("--all-day", help="Date-only event")] = False,
    attendee: Annotated[
        list[str] | None,
        typer.Option("--attendee", "-a", help="Attendee email (repeatable)"),
    ] = None,
) -> None:
    """Create a new event."""
    event_start = _instant(start, "--start")
    event_end = _instant(end, "--end")
    session = _connect()
    try:
        created = session.create_event(
            calendar_id,
            summary=summary,
            start=event_start,
            end=event_end,
            description=description,
            location=location,
            all_day=all_day,
            attendees=[Attendee(email=a) for a in attendee or []],
        )
    except CalendarError as e:
        _fail(e)
    except ValueError as e:
        console.print(f"[bold red]Error:[/] {e}")
        raise typer.Exit(1) from None

    info = Text()
    info.append("  UID: ", style="bold")
    info.append(f"{created.uid}\n")
    info.append("  URL: ", style="bold")
    info.append(created.url, style="dim")
    console.print(Panel(info, title="[bold green]Event created[/bold green]", expand=False))


@app.command()
def update(
    calendar_id: _CAL_ARG,
    event_url: _URL_ARG,
    etag: _ETAG_OPT = None,
    summary: Annotated[str | None, typer.Option("--summary")] = None,
    start: Annotated[str | None, typer.Option("--start")] = None,
    end: Annotated[str | None, typer.Option("--end")] = None,
    description: Annotated[str | None, typer.Option("--description")] = None,
    location: Annotated[str | None, typer.Option("--location")] = None,
) -> None:
    """Update (reschedule / edit) an existing event."""
    session = _connect()
    try:
        updated = session.update_event(
            calendar_id,
            event_url,
            etag=etag,
            summary=summary,
            start=_instant(start, "--start") if start else None,
            end=_instant(end, "--end") if end else None,
            description=description,
            location=location,
        )
    except CalendarError as e:
        _fail(e)
    except ValueError as e:
        console.print(f"[bold red]Error:[/] {e}")
        raise typer.Exit(1) from None
    console.print(f"[green]Updated[/] {updated.summary} [dim](etag {updated.etag or '—'})[/dim]")


@app.command()
def delete(
    calendar_id: _CAL_ARG,
    event_url: _URL_ARG,
    etag: _ETAG_OPT = None,
    yes: _YES = False,
) -> None:
    """Delete an event.

    Without [cyan]--etag[/] the delete is unconditional and removes whatever
    version is currently on the server.
    """
    if not yes:
        typer.confirm(f"Delete {event_url}?", abort=True)
    session = _connect()
    try:
        session.delete_event(calendar_id, event_url, etag=etag)
    except CalendarError as e:
        _fail(e)
    console.print("[green]Event deleted[/]")


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    app()
