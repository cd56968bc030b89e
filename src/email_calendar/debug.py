"""
Debug/inspect rendering for calendars and events.

Importable functions:
  list_calendars(calendars, console)  — render a Rich table of calendars
  list_events(events, console)  — render a Rich table of events
  dump_event(event, console, show_raw=True)  — render one event in a Rich Panel
  show_availability(report, console)  — render slot checks as a Rich table
  show_detection(result, console)  — render a scheduling-intent verdict
"""

from rich.console import Console
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table
from rich.text import Text

from email_calendar.availability import AvailabilityReport
from email_calendar.models import Calendar
from email_calendar.models import CalendarEvent
from email_calendar.models import DetectionResult


def _when(event: CalendarEvent) -> str:
    if event.all_day:
        start = event.start.date().isoformat()
        end = event.end.date().isoformat()
        return start if start == end else f"{start} → {end}"
    start = event.start.astimezone()
    end = event.end.astimezone()
    if start.date() == end.date():
        return f"{start:%Y-%m-%d %H:%M}–{end:%H:%M}"
    return f"{start:%Y-%m-%d %H:%M} → {end:%Y-%m-%d %H:%M}"


def list_calendars(calendars: list[Calendar], console: Console) -> None:
    """Render discovered calendars as a Rich table."""
    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Display Name", style="bold")
    table.add_column("Description")
    table.add_column("CTag", style="dim")
    table.add_column("URL", style="dim", overflow="fold")

    for calendar in calendars:
        table.add_row(
            calendar.display_name,
            calendar.description or "",
            calendar.ctag or "",
            calendar.url,
        )

    console.print(table)


def list_events(events: list[CalendarEvent], console: Console, title: str | None = None) -> None:
    table = Table(show_header=True, header_style="bold cyan", title=title)
    table.add_column("When", no_wrap=True)
    table.add_column("Summary", style="bold")
    table.add_column("Location")
    table.add_column("Status")
    table.add_column("URL", style="dim", overflow="fold")

    for event in events:
        status = event.status or ""
        status_style = "red" if status == "CANCELLED" else "green" if status == "CONFIRMED" else ""
        table.add_row(
            _when(event),
            event.summary,
            event.location or "",
            Text(status, style=status_style),
            event.url,
        )

    console.print(table)


def dump_event(event: CalendarEvent, console: Console, show_raw: bool = True) -> None:
    """Render a single event as a Rich Panel."""
    lines = Text()

    def row(label: str, value) -> None:
        if value is None or value == "":
            return
        lines.append(f"  {label:<12}: ", style="bold cyan")
        lines.append(f"{value}\n")

    row("SUMMARY", event.summary)
    row("UID", event.uid)
    row("WHEN", _when(event))
    row("ALL-DAY", "yes" if event.all_day else None)
    row("LOCATION", event.location)
    row("STATUS", event.status)
    row("RRULE", event.recurrence)
    row("ORGANIZER", event.organizer)
    for attendee in event.attendees:
        label = f"{attendee.name} <{attendee.email}>" if attendee.name else attendee.email
        if attendee.status:
            label += f"  PARTSTAT={attendee.status}"
        row("ATTENDEE", label)
    row("URL", event.url)
    row("ETAG", event.etag)
    if event.description:
        lines.append("\n")
        lines.append(event.description)

    console.print(Panel(lines, title=f"[bold]{event.summary}[/bold]", expand=False))

    if show_raw and event.raw:
        console.print(Panel(
            Syntax(event.raw, "ini", theme="monokai", word_wrap=True),
            title="Raw iCal",
            expand=False,
        ))


def show_availability(report: AvailabilityReport, console: Console) -> None:
    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Proposed slot", no_wrap=True)
    table.add_column("Available")
    table.add_column("Conflicts")

    for result in report.results:
        start = result.slot.start.astimezone()
        end = result.slot.end.astimezone()
        conflicts = "\n".join(f"{_when(c)}  {c.summary}" for c in result.conflicts)
        table.add_row(
            f"{start:%Y-%m-%d %H:%M} → {end:%H:%M}",
            Text("✓ free", style="green") if result.available else Text("✗ busy", style="bold red"),
            conflicts,
        )

    console.print(table)
    console.print(f"[bold]{report.available_slots}[/] of {report.total_slots} slot(s) available")


def show_detection(result: DetectionResult, console: Console) -> None:
    style = {"HIGH": "bold green", "MEDIUM": "yellow", "LOW": "dim"}[result.confidence.value]
    info = Text()
    info.append("  Intent:      ", style="bold")
    info.append("yes\n" if result.has_intent else "no\n", style="green" if result.has_intent else "red")
    info.append("  Confidence:  ", style="bold")
    info.append(f"{result.confidence.value}\n", style=style)
    info.append("  Keywords:    ", style="bold")
    info.append(", ".join(result.keywords) or "(none)")
    info.append("\n  Time shapes: ", style="bold")
    info.append(str(result.time_pattern_count))
    console.print(Panel(info, title="[bold]Scheduling intent[/bold]", expand=False))
