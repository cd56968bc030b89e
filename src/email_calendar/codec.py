"""
iCalendar (RFC 5545) encode/decode for single-VEVENT calendar objects.

Decoding is a tolerant line tokenizer, not a full parser:

* Only DTSTART is load-bearing. An object whose start is missing or
  unparsable decodes to ``None`` so a single bad object never aborts a
  listing.
* Everything else is advisory and defaulted: UID (""), SUMMARY
  ("No Title"), DTEND (DTSTART + DURATION, else DTSTART), DESCRIPTION,
  LOCATION, STATUS, RRULE, ORGANIZER, ATTENDEE.
* Unknown properties are ignored; nested components (VALARM) are skipped.
"""

import logging
import re
import uuid
from dataclasses import dataclass
from dataclasses import field
from datetime import date
from datetime import datetime
from datetime import time
from datetime import timedelta
from datetime import timezone
from zoneinfo import ZoneInfo
from zoneinfo import ZoneInfoNotFoundError

from email_calendar.models import Attendee
from email_calendar.models import CalendarEvent

_logger = logging.getLogger(__name__)

PRODID = "-//email-calendar//CalDAV Client//EN"
DEFAULT_SUMMARY = "No Title"
UID_DOMAIN = "email-calendar"

# RFC 5545 §3.1: content lines are folded at 75 octets.
_FOLD_LIMIT = 75

# A physical line is a property only when it starts with an upper-case
# NAME followed by ';' or ':'. Anything else continues the previous value.
_PROPERTY_LINE_RE = re.compile(r"^[A-Z][A-Z0-9-]*[;:]")
# Only CR, LF and CRLF end a content line; other Unicode breaks are value text.
_LINE_BREAK_RE = re.compile(r"\r\n|\n|\r")
_UNESCAPE_RE = re.compile(r"\\([\\;,nN])")
_DATE_RE = re.compile(r"^(\d{4})(\d{2})(\d{2})$")
_DATETIME_RE = re.compile(r"^(\d{4})(\d{2})(\d{2})T(\d{2})(\d{2})(\d{2})?(Z)?$")
_DURATION_RE = re.compile(
    r"^([+-])?P(?:(\d+)W)?(?:(\d+)D)?(?:T(?:(\d+)H)?(?:(\d+)M)?(?:(\d+)S)?)?$"
)
_MAILTO_RE = re.compile(r"^mailto:", re.IGNORECASE)
_PARAM_NEEDS_QUOTES = re.compile(r"[;:,]")


@dataclass
class ContentLine:
    name: str
    value: str
    params: dict[str, str] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Text escaping
# ---------------------------------------------------------------------------


def escape_text(text: str) -> str:
    """Escape a TEXT value: backslash, semicolon, comma, then newline."""
    text = text.replace("\r\n", "\n").replace("\r", "")
    return (
        text.replace("\\", "\\\\")
        .replace(";", "\\;")
        .replace(",", "\\,")
        .replace("\n", "\\n")
    )


def unescape_text(text: str) -> str:
    # Single pass so "\\n" (escaped backslash + n) is not read as a newline.
    return _UNESCAPE_RE.sub(lambda m: "\n" if m.group(1) in "nN" else m.group(1), text)


# ---------------------------------------------------------------------------
# Date / time tokens
# ---------------------------------------------------------------------------


def format_utc(value: datetime) -> str:
    """Format an instant as YYYYMMDDTHHMMSSZ. Naive values are local time."""
    return value.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def format_date(value: datetime | date) -> str:
    """Format the local calendar date of ``value`` as YYYYMMDD."""
    if isinstance(value, datetime):
        value = value.astimezone().date() if value.tzinfo else value.date()
    return value.strftime("%Y%m%d")


def local_midnight(day: date) -> datetime:
    return datetime.combine(day, time()).astimezone()


def _zone(tzid: str | None):
    if not tzid:
        return None
    try:
        return ZoneInfo(tzid.strip().strip('"').lstrip("/"))
    except (ZoneInfoNotFoundError, ValueError):
        _logger.debug("Unknown TZID %r, treating time as floating", tzid)
        return None


def parse_date_token(value: str, params: dict[str, str] | None = None):
    """Parse a DTSTART/DTEND style token.

    Returns ``(instant, is_date_only)`` or ``None`` when unparsable.
    Date-only values become local midnight; ``Z`` values are UTC; values
    with a known TZID use that zone; anything else is floating local time.
    """
    params = params or {}
    value = value.strip()
    value_type = params.get("VALUE", "").upper()

    m = _DATE_RE.match(value)
    if m:
        try:
            day = date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
        except ValueError:
            return None
        try:
            return local_midnight(day), value_type != "DATE-TIME"
        except (OverflowError, OSError):
            return None

    m = _DATETIME_RE.match(value)
    if not m:
        return None
    year, month, day, hour, minute, second, utc = m.groups()
    try:
        naive = datetime(
            int(year), int(month), int(day), int(hour), int(minute), int(second or 0)
        )
    except ValueError:
        return None

    if utc:
        return naive.replace(tzinfo=timezone.utc), False
    zone = _zone(params.get("TZID"))
    if zone is not None:
        return naive.replace(tzinfo=zone), False
    try:
        return naive.astimezone(), False
    except (OverflowError, OSError):
        # Floating times at the edge of the datetime range have no local offset.
        return None


def parse_duration(value: str) -> timedelta | None:
    value = value.strip().upper()
    m = _DURATION_RE.match(value)
    if not m or value.lstrip("+-") in ("P", "PT"):
        return None
    sign, weeks, days, hours, minutes, seconds = m.groups()
    try:
        delta = timedelta(
            weeks=int(weeks or 0),
            days=int(days or 0),
            hours=int(hours or 0),
            minutes=int(minutes or 0),
            seconds=int(seconds or 0),
        )
    except OverflowError:
        return None
    return -delta if sign == "-" else delta


# ---------------------------------------------------------------------------
# Tokenizer
# ---------------------------------------------------------------------------


def unfold(text: str) -> list[str]:
    """Split into logical lines, joining RFC 5545 continuation lines."""
    lines: list[str] = []
    for raw in _LINE_BREAK_RE.split(text):
        if raw[:1] in (" ", "\t") and lines:
            lines[-1] += raw[1:]
        else:
            lines.append(raw)
    return lines


def _split_unquoted(text: str, sep: str, maxsplit: int = -1) -> list[str]:
    parts = []
    current = []
    quoted = False
    for ch in text:
        if ch == '"':
            quoted = not quoted
        if ch == sep and not quoted and maxsplit != 0:
            parts.append("".join(current))
            current = []
            maxsplit -= 1
            continue
        current.append(ch)
    parts.append("".join(current))
    return parts


def parse_content_line(line: str) -> ContentLine:
    head_and_value = _split_unquoted(line, ":", maxsplit=1)
    head = head_and_value[0]
    value = head_and_value[1] if len(head_and_value) > 1 else ""

    name, *raw_params = _split_unquoted(head, ";")
    params = {}
    for raw in raw_params:
        key, _, param_value = raw.partition("=")
        params[key.strip().upper()] = param_value.strip().strip('"')
    return ContentLine(name=name.strip().upper(), value=value, params=params)


def tokenize(text: str) -> list[ContentLine]:
    """Tokenize iCalendar text into content lines. Never raises."""
    content: list[ContentLine] = []
    for line in unfold(text):
        if not line.strip():
            continue
        if _PROPERTY_LINE_RE.match(line):
            content.append(parse_content_line(line))
        elif content:
            # Unescaped multi-line body: keep the newline in the value.
            content[-1].value += "\n" + line
        else:
            _logger.debug("Skipping stray line before first property: %r", line[:40])
    return content


def _first_vevent(content: list[ContentLine]) -> list[ContentLine] | None:
    """Return the properties of the first VEVENT, excluding nested components."""
    in_event = False
    depth = 0
    props: list[ContentLine] = []
    for cl in content:
        if cl.name == "BEGIN":
            if in_event:
                depth += 1
            elif cl.value.strip().upper() == "VEVENT":
                in_event = True
            continue
        if cl.name == "END":
            if in_event:
                if depth == 0:
                    return props
                depth -= 1
            continue
        if in_event and depth == 0:
            props.append(cl)
    # Truncated object: keep what was read if a VEVENT was opened.
    return props if in_event else None


# ---------------------------------------------------------------------------
# Decode
# ---------------------------------------------------------------------------


def _strip_mailto(value: str) -> str:
    return _MAILTO_RE.sub("", value.strip())


def _text(props: dict[str, ContentLine], name: str) -> str | None:
    cl = props.get(name)
    if cl is None:
        return None
    return unescape_text(cl.value.strip()) or None


def _parse_attendee(cl: ContentLine) -> Attendee:
    return Attendee(
        email=_strip_mailto(cl.value),
        name=cl.params.get("CN") or None,
        status=cl.params.get("PARTSTAT") or None,
    )


def decode_event(data: str | None, url: str = "", etag: str = "") -> CalendarEvent | None:
    """Decode one calendar object into a CalendarEvent, or None if unparsable."""
    if not data:
        return None

    props = _first_vevent(tokenize(data))
    if props is None:
        _logger.debug("No VEVENT in calendar object %s", url or "(inline)")
        return None

    first: dict[str, ContentLine] = {}
    attendees: list[Attendee] = []
    for cl in props:
        if cl.name == "ATTENDEE":
            attendees.append(_parse_attendee(cl))
        else:
            first.setdefault(cl.name, cl)

    uid = first["UID"].value.strip() if "UID" in first else ""

    dtstart = first.get("DTSTART")
    parsed = parse_date_token(dtstart.value, dtstart.params) if dtstart else None
    if parsed is None:
        _logger.debug("Unparsable or missing DTSTART for %s", uid or url or "(no uid)")
        return None
    start, all_day = parsed

    end = None
    dtend = first.get("DTEND")
    if dtend is not None:
        parsed_end = parse_date_token(dtend.value, dtend.params)
        end = parsed_end[0] if parsed_end else None
    if end is None and "DURATION" in first:
        duration = parse_duration(first["DURATION"].value)
        if duration is not None:
            try:
                end = start + duration
            except OverflowError:
                _logger.debug("DURATION of %s runs past the datetime range; ignoring it", uid)
    if end is None:
        end = start
    if end < start:
        _logger.debug("Event %s ends before it starts; clamping end to start", uid)
        end = start

    status = first["STATUS"].value.strip().upper() if "STATUS" in first else None
    organizer = _strip_mailto(first["ORGANIZER"].value) if "ORGANIZER" in first else None

    return CalendarEvent(
        uid=uid,
        summary=_text(first, "SUMMARY") or DEFAULT_SUMMARY,
        description=_text(first, "DESCRIPTION"),
        location=_text(first, "LOCATION"),
        start=start,
        end=end,
        all_day=all_day,
        status=status or None,
        recurrence=first["RRULE"].value.strip() if "RRULE" in first else None,
        organizer=organizer or None,
        attendees=attendees,
        url=url,
        etag=etag,
        raw=data,
    )


# ---------------------------------------------------------------------------
# Encode
# ---------------------------------------------------------------------------


def generate_uid() -> str:
    return f"{uuid.uuid4()}@{UID_DOMAIN}"


def fold_line(line: str) -> str:
    """Fold a content line at 75 octets without splitting UTF-8 sequences."""
    if len(line.encode("utf-8")) <= _FOLD_LIMIT:
        return line
    parts = []
    current = ""
    current_len = 0
    for ch in line:
        size = len(ch.encode("utf-8"))
        if current_len + size > _FOLD_LIMIT:
            parts.append(current)
            current = " "
            current_len = 1
        current += ch
        current_len += size
    parts.append(current)
    return "\r\n".join(parts)


def _param_value(value: str) -> str:
    value = value.replace('"', "'")
    return f'"{value}"' if _PARAM_NEEDS_QUOTES.search(value) else value


def _attendee_line(attendee: Attendee) -> str:
    params = ""
    if attendee.name:
        params += f";CN={_param_value(attendee.name)}"
    if attendee.status:
        params += f";PARTSTAT={attendee.status.upper()}"
    return f"ATTENDEE{params}:mailto:{attendee.email}"


def encode_event(event: CalendarEvent, now: datetime | None = None) -> str:
    """Serialize an event as a VCALENDAR wrapping exactly one VEVENT."""
    stamp = format_utc(now or datetime.now(timezone.utc))
    lines = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        f"PRODID:{PRODID}",
        "BEGIN:VEVENT",
        f"UID:{event.uid}",
        f"DTSTAMP:{stamp}",
    ]
    if event.all_day:
        lines.append(f"DTSTART;VALUE=DATE:{format_date(event.start)}")
        lines.append(f"DTEND;VALUE=DATE:{format_date(event.end)}")
    else:
        lines.append(f"DTSTART:{format_utc(event.start)}")
        lines.append(f"DTEND:{format_utc(event.end)}")
    lines.append(f"SUMMARY:{escape_text(event.summary)}")

    if event.description:
        lines.append(f"DESCRIPTION:{escape_text(event.description)}")
    if event.location:
        lines.append(f"LOCATION:{escape_text(event.location)}")
    if event.status:
        lines.append(f"STATUS:{event.status.upper()}")
    if event.recurrence:
        lines.append(f"RRULE:{event.recurrence}")
    if event.organizer:
        lines.append(f"ORGANIZER:mailto:{event.organizer}")
    for attendee in event.attendees:
        lines.append(_attendee_line(attendee))

    lines.extend(["END:VEVENT", "END:VCALENDAR"])
    return "".join(fold_line(line) + "\r\n" for line in lines)
