"""
Tests for the email → calendar flow.
"""

from datetime import datetime
from datetime import timezone

import pytest

from email_calendar.models import EmailNotFoundError
from email_calendar.models import ProposedSlot
from email_calendar.orchestrator import BODY_PREVIEW_LIMIT
from email_calendar.orchestrator import REQUIRED_INPUTS
from email_calendar.orchestrator import STATUS_NEEDS_PARSING
from email_calendar.orchestrator import STATUS_NO_INTENT
from email_calendar.orchestrator import STATUS_PREVIEW
from email_calendar.orchestrator import SchedulingOrchestrator
from tests.fake_email import ALICE
from tests.fake_email import FakeEmailSource
from tests.fake_email import make_email
from tests.fake_transport import WORK_CAL_URL
from tests.fake_transport import ical_utc
from tests.fake_transport import make_vevent

UTC = timezone.utc

SCHEDULING_BODY = "Can we schedule a call on Monday at 3:30 pm?"


@pytest.fixture
def emails():
    return FakeEmailSource(
        [
            make_email("m-1", "Project sync", SCHEDULING_BODY),
            make_email("m-2", "Invoice", "Total due."),
            make_email("m-3", "Meeting notes", "x" * 5000 + " schedule", sender=None),
        ]
    )


# ---------------------------------------------------------------------------
# analyze
# ---------------------------------------------------------------------------


def test_analyze_reports_detection(emails):
    analysis = SchedulingOrchestrator(emails).analyze("m-1")

    assert analysis.email.subject == "Project sync"
    assert analysis.detection.has_intent is True
    assert "schedule" in analysis.detection.keywords


def test_missing_email(emails):
    with pytest.raises(EmailNotFoundError):
        SchedulingOrchestrator(emails).analyze("nope")


# ---------------------------------------------------------------------------
# email_to_calendar
# ---------------------------------------------------------------------------


def test_no_intent_stops_early(emails):
    result = SchedulingOrchestrator(emails).email_to_calendar("m-2")

    assert result.status == STATUS_NO_INTENT
    assert result.preview is None
    assert result.instruction is None


def test_preview_without_confirm(emails, session, transport):
    result = SchedulingOrchestrator(emails, session=session).email_to_calendar(
        "m-1", calendar_id=WORK_CAL_URL
    )

    assert result.status == STATUS_PREVIEW
    assert result.preview.suggested_title == "Meeting: Project sync"
    assert result.preview.suggested_attendees == [ALICE]
    assert result.preview.text_content == SCHEDULING_BODY
    assert result.preview.calendar_id == WORK_CAL_URL
    assert result.required_inputs == ()
    assert transport.puts == []


def test_preview_truncates_body(emails):
    result = SchedulingOrchestrator(emails).email_to_calendar("m-3")

    assert result.status == STATUS_PREVIEW
    assert len(result.preview.text_content) == BODY_PREVIEW_LIMIT
    assert result.preview.suggested_attendees == []


def test_confirm_asks_for_parsed_inputs_and_writes_nothing(emails, session, transport):
    result = SchedulingOrchestrator(emails, session=session).email_to_calendar("m-1", confirm=True)

    assert result.status == STATUS_NEEDS_PARSING
    assert result.required_inputs == REQUIRED_INPUTS
    assert result.instruction
    assert transport.puts == []


def test_confirm_without_calendar_falls_back_to_preview(emails):
    result = SchedulingOrchestrator(emails).email_to_calendar("m-1", confirm=True)

    assert result.status == STATUS_PREVIEW
    assert result.preview.suggested_title == "Meeting: Project sync"
    assert result.required_inputs == ()
    assert emails.lookups == ["m-1"]


def test_proposed_slots_include_availability(emails, session, transport):
    transport.add_object(
        WORK_CAL_URL,
        "busy.ics",
        make_vevent(
            "busy",
            dtstart=ical_utc(datetime(2026, 3, 2, 15, 0, tzinfo=UTC)),
            dtend=ical_utc(datetime(2026, 3, 2, 16, 0, tzinfo=UTC)),
        ),
    )
    slots = [
        ProposedSlot(datetime(2026, 3, 2, 15, 30, tzinfo=UTC), datetime(2026, 3, 2, 16, 0, tzinfo=UTC)),
        ProposedSlot(datetime(2026, 3, 2, 16, 0, tzinfo=UTC), datetime(2026, 3, 2, 16, 30, tzinfo=UTC)),
    ]

    result = SchedulingOrchestrator(emails, session=session).email_to_calendar(
        "m-1", proposed_slots=slots
    )

    assert result.availability.total_slots == 2
    assert result.availability.available_slots == 1


def test_proposed_slots_ignored_without_session(emails):
    slot = ProposedSlot(datetime(2026, 3, 2, 15, tzinfo=UTC), datetime(2026, 3, 2, 16, tzinfo=UTC))
    result = SchedulingOrchestrator(emails).email_to_calendar("m-1", proposed_slots=[slot])

    assert result.status == STATUS_PREVIEW
    assert result.availability is None
