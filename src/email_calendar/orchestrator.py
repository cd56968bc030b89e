"""
Email → calendar flow, gated on explicit confirmation.

This module never guesses a date or time from prose. A confirmed request
comes back as ``needs_parsing`` with the inputs an external reasoning step
must supply before ``create_event`` is called.
"""

import logging
from dataclasses import dataclass
from dataclasses import field
from typing import Protocol

from email_calendar.availability import AvailabilityChecker
from email_calendar.availability import AvailabilityReport
from email_calendar.detector import detect_scheduling_intent
from email_calendar.detector import recommendation_for
from email_calendar.models import DetectionResult
from email_calendar.models import EmailAddress
from email_calendar.models import EmailMessage
from email_calendar.models import EmailNotFoundError
from email_calendar.models import ProposedSlot

logger = logging.getLogger(__name__)

BODY_PREVIEW_LIMIT = 2000

STATUS_NO_INTENT = "no_intent"
STATUS_PREVIEW = "preview"
STATUS_NEEDS_PARSING = "needs_parsing"

REQUIRED_INPUTS = (
    "start date/time",
    "end date/time or duration",
    "location or call link",
    "attendees",
)

PREVIEW_INSTRUCTION = (
    "Review this email content and use create_event to schedule if appropriate. "
    "Set confirm=true after parsing date/time details."
)
NEEDS_PARSING_INSTRUCTION = (
    "Parse the email content to extract: 1) Meeting date/time, 2) Duration, "
    "3) Location/call link, 4) Attendees. Then use create_event with those details."
)


class EmailSource(Protocol):
    def get_email(self, email_id: str) -> EmailMessage | None: ...


@dataclass
class SchedulingAnalysis:
    email: EmailMessage
    detection: DetectionResult
    recommendation: str


@dataclass
class EventPreview:
    email_id: str
    subject: str
    sender: EmailAddress | None
    recipients: list[EmailAddress]
    received_at: str | None
    text_content: str
    suggested_title: str
    suggested_attendees: list[EmailAddress]
    calendar_id: str | None = None


@dataclass
class ConversionResult:
    status: str
    detection: DetectionResult
    recommendation: str
    preview: EventPreview | None = None
    instruction: str | None = None
    required_inputs: tuple[str, ...] = field(default_factory=tuple)
    availability: AvailabilityReport | None = None


class SchedulingOrchestrator:
    def __init__(self, email_source: EmailSource, session=None):
        self.email_source = email_source
        self.session = session

    def _fetch(self, email_id: str) -> EmailMessage:
        email = self.email_source.get_email(email_id)
        if email is None:
            raise EmailNotFoundError(f"Email not found: {email_id}")
        return email

    def analyze(self, email_id: str) -> SchedulingAnalysis:
        email = self._fetch(email_id)
        detection = detect_scheduling_intent(email.subject, email.text_body)
        logger.debug(
            "Email %s: intent=%s confidence=%s keywords=%s",
            email_id,
            detection.has_intent,
            detection.confidence.value,
            ", ".join(detection.keywords),
        )
        return SchedulingAnalysis(
            email=email,
            detection=detection,
            recommendation=recommendation_for(detection),
        )

    def email_to_calendar(
        self,
        email_id: str,
        calendar_id: str | None = None,
        confirm: bool = False,
        proposed_slots: list[ProposedSlot] | None = None,
    ) -> ConversionResult:
        analysis = self.analyze(email_id)
        if not analysis.detection.has_intent:
            return ConversionResult(
                status=STATUS_NO_INTENT,
                detection=analysis.detection,
                recommendation=analysis.recommendation,
            )

        email = analysis.email
        preview = EventPreview(
            email_id=email.email_id,
            subject=email.subject,
            sender=email.sender,
            recipients=list(email.recipients),
            received_at=email.received_at,
            text_content=(email.text_body or "")[:BODY_PREVIEW_LIMIT],
            suggested_title=f"Meeting: {email.subject}",
            suggested_attendees=[email.sender] if email.sender else [],
            calendar_id=calendar_id,
        )

        availability = None
        if proposed_slots and self.session is not None:
            availability = AvailabilityChecker(self.session).check(proposed_slots)

        # Without a calendar a confirmed request degrades to the preview.
        if confirm and self.session is not None:
            logger.info("Email %s confirmed for scheduling; date/time must be parsed upstream", email_id)
            return ConversionResult(
                status=STATUS_NEEDS_PARSING,
                detection=analysis.detection,
                recommendation=analysis.recommendation,
                preview=preview,
                instruction=NEEDS_PARSING_INSTRUCTION,
                required_inputs=REQUIRED_INPUTS,
                availability=availability,
            )

        return ConversionResult(
            status=STATUS_PREVIEW,
            detection=analysis.detection,
            recommendation=analysis.recommendation,
            preview=preview,
            instruction=PREVIEW_INSTRUCTION,
            availability=availability,
        )
