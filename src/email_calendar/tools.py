"""
Flat-argument entry points for the calendar and scheduling operations.

Every call takes a plain dict and returns a ToolResult; typed failures come
back as ``{"error": <code>, "message": ...}`` with ``is_error`` set instead
of propagating to the dispatcher.
"""

import json
import logging
import threading
from dataclasses import dataclass
from datetime import datetime

from email_calendar.availability import AvailabilityChecker
from email_calendar.availability import AvailabilityReport
from email_calendar.models import Attendee
from email_calendar.models import Calendar
from email_calendar.models import CalendarError
from email_calendar.models import CalendarEvent
from email_calendar.models import EmailAddress
from email_calendar.models import EventNotFoundError
from email_calendar.models import FeatureDisabledError
from email_calendar.models import ProposedSlot
from email_calendar.orchestrator import SchedulingOrchestrator

logger = logging.getLogger(__name__)

INVALID_ARGUMENTS = "InvalidArguments"
UNKNOWN_TOOL = "UnknownTool"
INTERNAL_ERROR = "InternalError"


@dataclass
class ToolResult:
    payload: dict
    is_error: bool = False

    @property
    def text(self) -> str:
        return json.dumps(self.payload, indent=2, default=str)


# ---------------------------------------------------------------------------
# Argument parsing / serialisation helpers
# ---------------------------------------------------------------------------


def parse_instant(value) -> datetime:
    """Parse an ISO-8601 string; naive and date-only values are local time."""
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Expected an ISO-8601 date/time string, got {value!r}")
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    return parsed if parsed.tzinfo else parsed.astimezone()


def _optional_instant(value) -> datetime | None:
    return parse_instant(value) if value is not None else None


def _parse_attendees(raw) -> list[Attendee] | None:
    if raw is None:
        return None
    if not isinstance(raw, list):
        raise TypeError("attendees must be a list of {email, name} records")
    return [Attendee(email=item["email"], name=item.get("name")) for item in raw]


def _parse_slots(raw) -> list[ProposedSlot]:
    if not isinstance(raw, list):
        raise TypeError("proposed_times must be a list of {start, end} records")
    return [ProposedSlot(parse_instant(item["start"]), parse_instant(item["end"])) for item in raw]


def calendar_to_dict(calendar: Calendar) -> dict:
    return {
        "id": calendar.id,
        "display_name": calendar.display_name,
        "url": calendar.url,
        "ctag": calendar.ctag,
        "description": calendar.description,
        "color": calendar.color,
    }


def event_to_dict(event: CalendarEvent, detailed: bool = False) -> dict:
    data = {
        "id": event.id,
        "url": event.url,
        "calendar_id": event.calendar_id,
        "summary": event.summary,
        "description": event.description,
        "location": event.location,
        "start": event.start.isoformat(),
        "end": event.end.isoformat(),
        "all_day": event.all_day,
        "status": event.status,
    }
    if detailed:
        data.update(
            {
                "uid": event.uid,
                "etag": event.etag,
                "recurrence": event.recurrence,
                "organizer": event.organizer,
                "attendees": [
                    {"email": a.email, "name": a.name, "status": a.status} for a in event.attendees
                ],
            }
        )
    return data


def _address(address: EmailAddress | None) -> dict | None:
    if address is None:
        return None
    return {"email": address.email, "name": address.name}


def availability_to_dict(report: AvailabilityReport) -> dict:
    return {
        "total_slots": report.total_slots,
        "available_slots": report.available_slots,
        "results": [
            {
                "proposed_start": r.slot.start.isoformat(),
                "proposed_end": r.slot.end.isoformat(),
                "available": r.available,
                "conflicts": [
                    {"summary": c.summary, "start": c.start.isoformat(), "end": c.end.isoformat()}
                    for c in r.conflicts
                ],
            }
            for r in report.results
        ],
    }


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------


class CalendarTools:
    """Exposes each operation under a tool name for an outer dispatch shell."""

    def __init__(self, session=None, email_source=None):
        self.session = session
        self.email_source = email_source
        self._login_lock = threading.Lock()
        self._handlers = {
            "list_calendars": self._list_calendars,
            "list_events": self._list_events,
            "get_event": self._get_event,
            "create_event": self._create_event,
            "update_event": self._update_event,
            "delete_event": self._delete_event,
            "todays_schedule": self._todays_schedule,
            "upcoming_events": self._upcoming_events,
            "check_availability": self._check_availability,
            "detect_scheduling_email": self._detect_scheduling_email,
            "email_to_calendar": self._email_to_calendar,
        }

    @property
    def tool_names(self) -> list[str]:
        return list(self._handlers)

    def call(self, name: str, arguments: dict | None = None) -> ToolResult:
        handler = self._handlers.get(name)
        if handler is None:
            return ToolResult({"error": UNKNOWN_TOOL, "message": f"Unknown tool: {name}"}, is_error=True)

        args = arguments or {}
        try:
            return ToolResult(handler(args))
        except CalendarError as e:
            logger.warning("Tool %s failed: %s", name, e)
            return ToolResult({"error": e.code, "message": str(e)}, is_error=True)
        except KeyError as e:
            return ToolResult(
                {"error": INVALID_ARGUMENTS, "message": f"Missing argument: {e.args[0]}"},
                is_error=True,
            )
        except (ValueError, TypeError) as e:
            return ToolResult({"error": INVALID_ARGUMENTS, "message": str(e)}, is_error=True)
        except Exception as e:
            logger.exception("Tool %s raised unexpectedly", name)
            return ToolResult({"error": INTERNAL_ERROR, "message": str(e)}, is_error=True)

    def _calendar(self):
        """Return a logged-in session, logging in once under a lock."""
        if self.session is None:
            raise FeatureDisabledError(
                "Calendar features disabled - CALDAV_APP_PASSWORD not configured"
            )
        with self._login_lock:
            if not self.session.is_ready:
                self.session.login()
        return self.session

    def _orchestrator(self, need_session: bool = False) -> SchedulingOrchestrator:
        if self.email_source is None:
            raise FeatureDisabledError("Email features disabled - no email source configured")
        session = self._calendar() if need_session and self.session is not None else None
        return SchedulingOrchestrator(self.email_source, session=session)

    # -- calendar tools --------------------------------------------------------

    def _list_calendars(self, args: dict) -> dict:
        calendars = self._calendar().list_calendars()
        return {"count": len(calendars), "calendars": [calendar_to_dict(c) for c in calendars]}

    def _list_events(self, args: dict) -> dict:
        events = self._calendar().list_events(
            parse_instant(args["start_date"]),
            parse_instant(args["end_date"]),
            calendar_id=args.get("calendar_id"),
        )
        return {"count": len(events), "events": [event_to_dict(e) for e in events]}

    def _get_event(self, args: dict) -> dict:
        event = self._calendar().get_event(args["calendar_id"], args["event_url"])
        if event is None:
            raise EventNotFoundError(f"Event not found: {args['event_url']}")
        return event_to_dict(event, detailed=True)

    def _create_event(self, args: dict) -> dict:
        created = self._calendar().create_event(
            args["calendar_id"],
            summary=args["summary"],
            start=parse_instant(args["start"]),
            end=parse_instant(args["end"]),
            description=args.get("description"),
            location=args.get("location"),
            all_day=bool(args.get("all_day", False)),
            attendees=_parse_attendees(args.get("attendees")),
        )
        return {
            "success": True,
            "event_url": created.url,
            "uid": created.uid,
            "etag": created.etag,
            "message": "Event created successfully",
        }

    def _update_event(self, args: dict) -> dict:
        updated = self._calendar().update_event(
            args["calendar_id"],
            args["event_url"],
            etag=args.get("etag"),
            summary=args.get("summary"),
            description=args.get("description"),
            location=args.get("location"),
            start=_optional_instant(args.get("start")),
            end=_optional_instant(args.get("end")),
            all_day=args.get("all_day"),
        )
        return {
            "success": True,
            "etag": updated.etag,
            "event": event_to_dict(updated),
            "message": "Event updated successfully",
        }

    def _delete_event(self, args: dict) -> dict:
        self._calendar().delete_event(args["calendar_id"], args["event_url"], etag=args.get("etag"))
        return {"success": True, "message": "Event deleted successfully"}

    def _todays_schedule(self, args: dict) -> dict:
        events = self._calendar().get_todays_events()
        return {
            "date": datetime.now().date().isoformat(),
            "count": len(events),
            "events": [event_to_dict(e) for e in events],
        }

    def _upcoming_events(self, args: dict) -> dict:
        days = int(args.get("days", 7))
        if days < 0:
            raise ValueError("days must not be negative")
        events = self._calendar().get_upcoming_events(days)
        return {"days": days, "count": len(events), "events": [event_to_dict(e) for e in events]}

    def _check_availability(self, args: dict) -> dict:
        slots = _parse_slots(args["proposed_times"])
        report = AvailabilityChecker(self._calendar()).check(slots)
        return availability_to_dict(report)

    # -- email / scheduling tools ---------------------------------------------

    def _detect_scheduling_email(self, args: dict) -> dict:
        analysis = self._orchestrator().analyze(args["email_id"])
        detection = analysis.detection
        return {
            "email_id": analysis.email.email_id,
            "subject": analysis.email.subject,
            "from": _address(analysis.email.sender),
            "has_scheduling_intent": detection.has_intent,
            "confidence": detection.confidence.value,
            "analysis": {
                "keywords_found": list(detection.keywords),
                "time_references_found": detection.has_time_reference,
                "keyword_count": detection.keyword_count,
            },
            "recommendation": analysis.recommendation,
        }

    def _email_to_calendar(self, args: dict) -> dict:
        confirm = bool(args.get("confirm", False))
        raw_slots = args.get("proposed_times")
        slots = _parse_slots(raw_slots) if raw_slots else None
        orchestrator = self._orchestrator(need_session=confirm or bool(slots))
        result = orchestrator.email_to_calendar(
            args["email_id"],
            calendar_id=args.get("calendar_id"),
            confirm=confirm,
            proposed_slots=slots,
        )

        payload = {
            "status": result.status,
            "has_scheduling_intent": result.detection.has_intent,
            "confidence": result.detection.confidence.value,
            "recommendation": result.recommendation,
        }
        if result.preview is not None:
            preview = result.preview
            payload["extracted_info"] = {
                "email_id": preview.email_id,
                "subject": preview.subject,
                "from": _address(preview.sender),
                "to": [_address(a) for a in preview.recipients],
                "received_at": preview.received_at,
                "text_content": preview.text_content,
                "suggested_title": preview.suggested_title,
                "suggested_attendees": [_address(a) for a in preview.suggested_attendees],
                "calendar_id": preview.calendar_id,
            }
        if result.instruction:
            payload["instruction"] = result.instruction
        if result.required_inputs:
            payload["required_inputs"] = list(result.required_inputs)
        if result.availability is not None:
            payload["availability"] = availability_to_dict(result.availability)
        return payload
