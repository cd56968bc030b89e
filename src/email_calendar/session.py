"""
CalendarSession — login state machine, calendar cache and event CRUD.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import date
from datetime import datetime
from datetime import timedelta
from enum import Enum

from email_calendar.codec import decode_event
from email_calendar.codec import encode_event
from email_calendar.codec import generate_uid
from email_calendar.models import Attendee
from email_calendar.models import Calendar
from email_calendar.models import CalendarError
from email_calendar.models import CalendarEvent
from email_calendar.models import CalendarNotFoundError
from email_calendar.models import CreatedEvent
from email_calendar.models import EventNotFoundError
from email_calendar.models import MalformedEventError
from email_calendar.models import NotInitializedError

# Fields a caller may change through update_event().
UPDATABLE_FIELDS = frozenset(
    {"summary", "description", "location", "start", "end", "all_day", "status", "attendees"}
)


class SessionState(Enum):
    UNINITIALIZED = "uninitialized"
    LOGGING_IN = "logging-in"
    READY = "ready"


class CalendarSession:
    """One authenticated CalDAV session.

    ``transport`` is anything with the CalDAVTransport duck-type:
    connect / fetch_objects / fetch_object / put_object / delete_object.

    Read operations may run concurrently once READY. ``login()`` replaces
    the calendar cache and must not overlap any other call.
    """

    def __init__(self, transport, max_workers: int = 4):
        self.transport = transport
        self.max_workers = max(1, max_workers)
        self.state = SessionState.UNINITIALIZED
        self.logger = logging.getLogger(__name__)
        self._calendars: list[Calendar] = []

    # ------------------------------------------------------------------ #
    # Lifecycle                                                            #
    # ------------------------------------------------------------------ #

    def login(self) -> list[Calendar]:
        """Authenticate and discover calendars. Safe to call again."""
        self.state = SessionState.LOGGING_IN
        self.logger.info("Logging in to CalDAV server...")
        try:
            calendars = list(self.transport.connect())
        except Exception:
            self._calendars = []
            self.state = SessionState.UNINITIALIZED
            raise
        self._calendars = calendars
        self.state = SessionState.READY
        self.logger.info("Logged in; found %d calendars", len(calendars))
        return list(calendars)

    @property
    def is_ready(self) -> bool:
        return self.state is SessionState.READY

    def _require_ready(self, operation: str):
        if self.state is not SessionState.READY:
            raise NotInitializedError(
                f"Cannot {operation}: CalDAV session not initialized (call login() first)"
            )

    def discover_calendars(self) -> list[Calendar]:
        """Re-query the server and replace the cached calendar set."""
        self._require_ready("discover calendars")
        return self.login()

    def list_calendars(self) -> list[Calendar]:
        self._require_ready("list calendars")
        return list(self._calendars)

    def resolve_calendar(self, calendar_id: str) -> Calendar:
        """Exact id match, else bidirectional substring match.

        The substring fallback absorbs server-appended path segments
        ("abc" vs "https://host/abc/") but can pick the wrong calendar when
        one id is contained in an unrelated one; the first match in
        discovery order wins.
        """
        self._require_ready("resolve calendar")
        for calendar in self._calendars:
            if calendar.id == calendar_id:
                return calendar
        if calendar_id:
            for calendar in self._calendars:
                if calendar_id in calendar.id or calendar.id in calendar_id:
                    self.logger.debug("Calendar %s resolved by partial match to %s",
                                      calendar_id, calendar.id)
                    return calendar
        raise CalendarNotFoundError(calendar_id, [c.id for c in self._calendars])

    # ------------------------------------------------------------------ #
    # Reads                                                                #
    # ------------------------------------------------------------------ #

    def _fetch_calendar(self, calendar: Calendar, start: datetime, end: datetime) -> list[CalendarEvent]:
        events = []
        for obj in self.transport.fetch_objects(calendar.url, start, end):
            try:
                event = decode_event(obj.data, url=obj.url, etag=obj.etag)
            except (ValueError, OverflowError) as e:
                self.logger.warning("Skipping object %s in %s: %s", obj.url, calendar.display_name, e)
                continue
            if event is None:
                self.logger.warning("Skipping unparsable object %s in %s", obj.url, calendar.display_name)
                continue
            event.calendar_id = calendar.id
            events.append(event)
        return events

    def _fetch_calendar_isolated(self, calendar: Calendar, start: datetime, end: datetime) -> list[CalendarEvent]:
        try:
            return self._fetch_calendar(calendar, start, end)
        except CalendarError as e:
            self.logger.error("Error fetching events from %s: %s", calendar.display_name, e)
            return []

    def list_events(
        self, start: datetime, end: datetime, calendar_id: str | None = None
    ) -> list[CalendarEvent]:
        """Events overlapping [start, end), sorted by start.

        Without ``calendar_id`` every calendar is fetched concurrently and a
        failing calendar is logged and left out. Results are concatenated
        in discovery order before a stable sort, so equal start times keep
        per-calendar fetch order regardless of which fetch finished first.
        """
        self._require_ready("list events")

        if calendar_id:
            events = self._fetch_calendar(self.resolve_calendar(calendar_id), start, end)
        else:
            calendars = list(self._calendars)
            if len(calendars) <= 1 or self.max_workers == 1:
                per_calendar = [self._fetch_calendar_isolated(c, start, end) for c in calendars]
            else:
                workers = min(self.max_workers, len(calendars))
                with ThreadPoolExecutor(max_workers=workers) as pool:
                    per_calendar = list(
                        pool.map(lambda c: self._fetch_calendar_isolated(c, start, end), calendars)
                    )
            events = [event for chunk in per_calendar for event in chunk]

        events.sort(key=lambda e: e.start)
        return events

    def get_event(self, calendar_id: str, event_url: str) -> CalendarEvent | None:
        """Fetch one event; None if absent, MalformedEventError if unreadable."""
        calendar = self.resolve_calendar(calendar_id)
        obj = self.transport.fetch_object(event_url)
        if obj is None:
            return None
        event = decode_event(obj.data, url=obj.url or event_url, etag=obj.etag)
        if event is None:
            raise MalformedEventError(f"Could not parse event at {event_url}")
        event.calendar_id = calendar.id
        return event

    def get_todays_events(self) -> list[CalendarEvent]:
        today = date.today()
        start = datetime.combine(today, datetime.min.time()).astimezone()
        end = datetime.combine(today + timedelta(days=1), datetime.min.time()).astimezone()
        return self.list_events(start, end)

    def get_upcoming_events(self, days: int = 7) -> list[CalendarEvent]:
        now = datetime.now().astimezone()
        return self.list_events(now, now + timedelta(days=days))

    # ------------------------------------------------------------------ #
    # Writes                                                               #
    # ------------------------------------------------------------------ #

    def create_event(
        self,
        calendar_id: str,
        summary: str,
        start: datetime,
        end: datetime,
        description: str | None = None,
        location: str | None = None,
        all_day: bool = False,
        attendees: list[Attendee] | None = None,
    ) -> CreatedEvent:
        calendar = self.resolve_calendar(calendar_id)
        if not summary:
            raise ValueError("Event summary is required")
        if end < start:
            raise ValueError(f"Event ends before it starts: {start.isoformat()} > {end.isoformat()}")

        uid = generate_uid()
        event = CalendarEvent(
            uid=uid,
            summary=summary,
            start=start,
            end=end,
            all_day=all_day,
            description=description,
            location=location,
            attendees=list(attendees or []),
        )
        url = f"{calendar.url.rstrip('/')}/{uid}.ics"

        self.logger.info("Creating event %r in %s", summary, calendar.display_name)
        etag = self.transport.put_object(url, encode_event(event), create=True)
        self.logger.debug("Created %s (%s)", uid, url)
        return CreatedEvent(url=url, uid=uid, etag=etag)

    def update_event(
        self, calendar_id: str, event_url: str, etag: str | None = None, **fields
    ) -> CalendarEvent:
        """Shallow-merge ``fields`` over the stored event and write it back.

        ``None`` values keep the stored value. The write is conditional on
        ``etag`` if given, otherwise on the etag of the copy just fetched;
        a stale token raises ConflictingWriteError.
        """
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update field(s): {', '.join(sorted(unknown))}")

        existing = self.get_event(calendar_id, event_url)
        if existing is None:
            raise EventNotFoundError(f"Event not found: {event_url}")

        changes = {name: value for name, value in fields.items() if value is not None}
        merged = CalendarEvent(
            uid=existing.uid,
            summary=changes.get("summary", existing.summary),
            description=changes.get("description", existing.description),
            location=changes.get("location", existing.location),
            start=changes.get("start", existing.start),
            end=changes.get("end", existing.end),
            all_day=changes.get("all_day", existing.all_day),
            status=changes.get("status", existing.status),
            recurrence=existing.recurrence,
            organizer=existing.organizer,
            attendees=list(changes.get("attendees", existing.attendees)),
            url=existing.url or event_url,
            calendar_id=existing.calendar_id,
        )
        if merged.end < merged.start:
            raise ValueError(
                f"Event ends before it starts: {merged.start.isoformat()} > {merged.end.isoformat()}"
            )

        token = etag or existing.etag or None
        self.logger.info("Updating event %r", merged.summary)
        data = encode_event(merged)
        merged.etag = self.transport.put_object(event_url, data, etag=token) or ""
        merged.raw = data
        return merged

    def delete_event(self, calendar_id: str, event_url: str, etag: str | None = None) -> None:
        """Delete an event, conditional on ``etag`` when one is known.

        Without an etag the DELETE is unconditional and will remove a
        version the caller has never seen.
        """
        self.resolve_calendar(calendar_id)
        if not etag:
            self.logger.info("Deleting %s without a version token (unconditional)", event_url)
        else:
            self.logger.info("Deleting %s", event_url)
        self.transport.delete_object(event_url, etag=etag or None)
