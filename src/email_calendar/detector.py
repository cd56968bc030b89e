"""
Deterministic scheduling-intent heuristic for email text (no LLM).

Two independent signal families are counted over ``subject + "\\n" + body``
after lower-casing:

* keywords — substring containment of a fixed list of scheduling terms
  (entries containing ``.*`` are matched as regular expressions);
* time shapes — how many distinct date/time token shapes appear.

Only the *presence* of intent is decided here. Turning prose into a
concrete date and time is left to an external collaborator.
"""

import re

from email_calendar.models import Confidence
from email_calendar.models import DetectionResult

SCHEDULING_KEYWORDS: tuple[str, ...] = (
    "schedule", "meeting", "call", "appointment", "calendar",
    "available", "availability", "free time", "slot",
    "book", "reserve", "set up", "arrange",
    "monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday",
    "morning", "afternoon", "evening",
    "am", "pm", "o'clock", ":00", ":30",
    "next week", "this week", "tomorrow", "today",
    "zoom", "teams", "google meet", "video call", "phone call",
    "let's meet", "can we meet", "would like to meet",
    "discuss", "chat", "talk", "connect", "catch up",
    "propose", "suggest", "how about", "does .* work",
)

_MONTHS = (
    "january|february|march|april|may|june|july|august|"
    "september|october|november|december"
)

TIME_PATTERNS: tuple[re.Pattern, ...] = (
    re.compile(r"\d{1,2}:\d{2}\s*(am|pm)?"),
    re.compile(r"\d{1,2}\s*(am|pm)"),
    re.compile(rf"\d{{1,2}}(st|nd|rd|th)?\s*(of)?\s*({_MONTHS})"),
    re.compile(rf"({_MONTHS})\s*\d{{1,2}}"),
    re.compile(r"\d{1,2}/\d{1,2}(/\d{2,4})?"),
)

POSITIVE_RECOMMENDATION = (
    "This email appears to contain scheduling content. "
    "Use email_to_calendar to extract and create an event."
)
NEGATIVE_RECOMMENDATION = "This email does not appear to contain scheduling content."


def _keyword_found(keyword: str, text: str) -> bool:
    if ".*" in keyword:
        return re.search(keyword, text) is not None
    return keyword in text


def _fold(subject: str | None, body: str | None) -> str:
    return f"{subject or ''}\n{body or ''}".lower()


def detect_scheduling_intent(subject: str | None, body: str | None) -> DetectionResult:
    text = _fold(subject, body)
    keywords = tuple(kw for kw in SCHEDULING_KEYWORDS if _keyword_found(kw, text))
    time_hits = sum(1 for pattern in TIME_PATTERNS if pattern.search(text))
    kw_count = len(keywords)

    has_intent = kw_count >= 2 or (kw_count >= 1 and time_hits >= 1)

    if kw_count >= 3 and time_hits >= 1:
        confidence = Confidence.HIGH
    elif kw_count >= 2 or time_hits >= 1:
        confidence = Confidence.MEDIUM
    else:
        confidence = Confidence.LOW

    return DetectionResult(
        has_intent=has_intent,
        confidence=confidence,
        keywords=keywords,
        time_pattern_count=time_hits,
    )


def recommendation_for(result: DetectionResult) -> str:
    return POSITIVE_RECOMMENDATION if result.has_intent else NEGATIVE_RECOMMENDATION
