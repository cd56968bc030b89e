"""
Pure data models and the error taxonomy — no network or caldav imports.
"""

from dataclasses import dataclass
from dataclasses import field
from datetime import datetime
from enum import Enum


class CalendarError(Exception):
    """Base exception for calendar and scheduling errors."""

    code = "CalendarError"


class NotInitializedError(CalendarError):
    """Operation attempted before the session logged in."""

    code = "NotInitialized"


class AuthenticationError(CalendarError):
    """The CalDAV server rejected the credentials."""

    code = "AuthenticationFailed"


class CalendarNotFoundError(CalendarError):
    """A calendar id resolved to no known calendar."""

    code = "CalendarNotFound"

    def __init__(self, requested_id: str, available_ids: list[str]):
        self.requested_id = requested_id
        self.available_ids = list(available_ids)
        super().__init__(
            f"Calendar not found. Requested: {requested_id}, "
            f"Available: {', '.join(self.available_ids) or '(none)'}"
        )


class EventNotFoundError(CalendarError):
    code = "EventNotFound"


class MalformedEventError(CalendarError):
    code = "MalformedEvent"


class TransportError(CalendarError):
    """Network or HTTP-level failure talking to the server."""

    code = "TransportFailure"

    def __init__(self, status: int | None, message: str):
        self.status = status
        self.message = message
        prefix = f"HTTP {status}: " if status is not None else ""
        super().__init__(f"{prefix}{message}")


class ConflictingWriteError(CalendarError):
    """Conditional write rejected because the etag is stale."""

    code = "ConflictingWrite"


class FeatureDisabledError(CalendarError):
    code = "FeatureDisabled"


class EmailNotFoundError(CalendarError):
    code = "EmailNotFound"


@dataclass(frozen=True)
class Calendar:
    """Snapshot of one calendar collection, refreshed on every discovery."""

    id: str
    display_name: str
    url: str
    ctag: str | None = None
    description: str | None = None
    color: str | None = None


@dataclass(frozen=True)
class Attendee:
    email: str
    name: str | None = None
    status: str | None = None


@dataclass
class CalendarEvent:
    """One VEVENT.

    ``uid`` is the protocol identity and never changes across edits;
    ``url`` is where the object currently lives on the server and ``etag``
    the revision last seen there. ``start``/``end`` are timezone-aware.
    """

    uid: str
    summary: str
    start: datetime
    end: datetime
    all_day: bool = False
    description: str | None = None
    location: str | None = None
    status: str | None = None
    recurrence: str | None = None
    organizer: str | None = None
    attendees: list[Attendee] = field(default_factory=list)
    url: str = ""
    etag: str = ""
    calendar_id: str | None = None
    raw: str | None = None

    @property
    def id(self) -> str:
        return self.url


@dataclass(frozen=True)
class CalendarObject:
    """A raw calendar resource as returned by the transport."""

    url: str
    etag: str
    data: str


@dataclass(frozen=True)
class CreatedEvent:
    url: str
    uid: str
    etag: str | None = None


@dataclass(frozen=True)
class ProposedSlot:
    """Candidate [start, end) interval submitted for an availability check."""

    start: datetime
    end: datetime

    def __post_init__(self):
        if self.end < self.start:
            raise ValueError(f"Slot ends before it starts: {self.start} > {self.end}")


class Confidence(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


@dataclass(frozen=True)
class DetectionResult:
    """Verdict of the scheduling-intent heuristic for one email."""

    has_intent: bool
    confidence: Confidence
    keywords: tuple[str, ...]
    time_pattern_count: int

    @property
    def has_time_reference(self) -> bool:
        return self.time_pattern_count > 0

    @property
    def keyword_count(self) -> int:
        return len(self.keywords)


@dataclass(frozen=True)
class EmailAddress:
    email: str
    name: str | None = None


@dataclass
class EmailMessage:
    """What the mail collaborator hands back for one message id."""

    email_id: str
    subject: str
    text_body: str
    sender: EmailAddress | None = None
    recipients: list[EmailAddress] = field(default_factory=list)
    received_at: str | None = None
