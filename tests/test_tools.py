"""
Tests for the flat-argument tool dispatcher.
"""

import json
from datetime import datetime
from datetime import timezone

import pytest

from email_calendar.models import AuthenticationError
from email_calendar.session import CalendarSession
from email_calendar.tools import CalendarTools
from email_calendar.tools import parse_instant
from tests.fake_email import FakeEmailSource
from tests.fake_email import make_email
from tests.fake_transport import HOME_CAL_URL
from tests.fake_transport import WORK_CAL_URL
from tests.fake_transport import ical_utc
from tests.fake_transport import make_vevent

UTC = timezone.utc


@pytest.fixture
def tools(transport):
    emails = FakeEmailSource([make_email("m-1", "Project sync", "Can we schedule a call Monday at 3pm?")])
    return CalendarTools(session=CalendarSession(transport), email_source=emails)


def _add(transport, uid, start, end, calendar_url=WORK_CAL_URL):
    return transport.add_object(
        calendar_url, f"{uid}.ics", make_vevent(uid, summary=uid, dtstart=ical_utc(start), dtend=ical_utc(end))
    )


# ---------------------------------------------------------------------------
# parse_instant
# ---------------------------------------------------------------------------


class TestParseInstant:
    def test_z_suffix(self):
        assert parse_instant("2026-03-01T10:00:00Z") == datetime(2026, 3, 1, 10, tzinfo=UTC)

    def test_offset(self):
        assert parse_instant("2026-03-01T12:00:00+02:00") == datetime(2026, 3, 1, 10, tzinfo=UTC)

    def test_naive_is_local(self):
        assert parse_instant("2026-03-01T10:00") == datetime(2026, 3, 1, 10).astimezone()

    def test_date_only_is_local_midnight(self):
        assert parse_instant("2026-03-01") == datetime(2026, 3, 1).astimezone()

    @pytest.mark.parametrize("value", ["", "soon", None, 42])
    def test_rejects(self, value):
        with pytest.raises(ValueError):
            parse_instant(value)


# ---------------------------------------------------------------------------
# Dispatch and error payloads
# ---------------------------------------------------------------------------


def test_lazy_login_happens_once(tools, transport):
    first = tools.call("list_calendars")
    second = tools.call("list_calendars")

    assert not first.is_error
    assert first.payload["count"] == 3
    assert second.payload == first.payload
    assert transport.connects == 1


def test_unknown_tool(tools):
    result = tools.call("launch_rockets", {})
    assert result.is_error
    assert result.payload["error"] == "UnknownTool"


def test_missing_argument(tools):
    result = tools.call("list_events", {"start_date": "2026-03-01T00:00:00Z"})
    assert result.is_error
    assert result.payload == {"error": "InvalidArguments", "message": "Missing argument: end_date"}


def test_invalid_date_argument(tools):
    result = tools.call("list_events", {"start_date": "yesterday", "end_date": "2026-03-02"})
    assert result.payload["error"] == "InvalidArguments"


def test_calendar_disabled_without_session():
    result = CalendarTools().call("list_calendars", {})
    assert result.is_error
    assert result.payload["error"] == "FeatureDisabled"


def test_login_failure_is_reported(tools, transport):
    transport.connect_error = AuthenticationError("rejected")
    result = tools.call("todays_schedule", {})

    assert result.payload == {"error": "AuthenticationFailed", "message": "rejected"}


def test_unexpected_exception_becomes_internal_error(tools, transport):
    transport.connect_error = RuntimeError("boom")
    result = tools.call("list_calendars", {})
    assert result.payload == {"error": "InternalError", "message": "boom"}


def test_text_is_json(tools):
    result = tools.call("list_calendars")
    assert json.loads(result.text)["count"] == 3


def test_all_tools_registered(tools):
    assert set(tools.tool_names) == {
        "list_calendars",
        "list_events",
        "get_event",
        "create_event",
        "update_event",
        "delete_event",
        "todays_schedule",
        "upcoming_events",
        "check_availability",
        "detect_scheduling_email",
        "email_to_calendar",
    }


# ---------------------------------------------------------------------------
# Calendar tools
# ---------------------------------------------------------------------------


def test_list_events_payload(tools, transport):
    _add(transport, "b", datetime(2026, 3, 1, 12, tzinfo=UTC), datetime(2026, 3, 1, 13, tzinfo=UTC))
    _add(transport, "a", datetime(2026, 3, 1, 9, tzinfo=UTC), datetime(2026, 3, 1, 10, tzinfo=UTC), HOME_CAL_URL)

    result = tools.call(
        "list_events", {"start_date": "2026-03-01T00:00:00Z", "end_date": "2026-03-02T00:00:00Z"}
    )

    assert result.payload["count"] == 2
    assert [e["summary"] for e in result.payload["events"]] == ["a", "b"]
    assert result.payload["events"][0]["calendar_id"] == HOME_CAL_URL


def test_create_then_get(tools):
    created = tools.call(
        "create_event",
        {
            "calendar_id": "work",
            "summary": "Design review",
            "start": "2026-03-01T14:00:00Z",
            "end": "2026-03-01T15:00:00Z",
            "attendees": [{"email": "ann@example.com", "name": "Ann"}],
        },
    )
    assert created.payload["success"] is True

    fetched = tools.call(
        "get_event", {"calendar_id": "work", "event_url": created.payload["event_url"]}
    )
    assert fetched.payload["uid"] == created.payload["uid"]
    assert fetched.payload["etag"] == created.payload["etag"]
    assert fetched.payload["attendees"] == [{"email": "ann@example.com", "name": "Ann", "status": None}]


def test_get_missing_event(tools):
    result = tools.call("get_event", {"calendar_id": "work", "event_url": WORK_CAL_URL + "gone.ics"})
    assert result.payload["error"] == "EventNotFound"


def test_update_with_stale_etag_conflicts(tools, transport):
    obj = _add(transport, "u", datetime(2026, 3, 1, 9, tzinfo=UTC), datetime(2026, 3, 1, 10, tzinfo=UTC))
    transport.touch(obj.url)

    result = tools.call(
        "update_event",
        {"calendar_id": WORK_CAL_URL, "event_url": obj.url, "etag": obj.etag, "summary": "Mine"},
    )
    assert result.payload["error"] == "ConflictingWrite"


def test_update_and_delete(tools, transport):
    obj = _add(transport, "u", datetime(2026, 3, 1, 9, tzinfo=UTC), datetime(2026, 3, 1, 10, tzinfo=UTC))

    updated = tools.call(
        "update_event",
        {"calendar_id": WORK_CAL_URL, "event_url": obj.url, "etag": obj.etag, "location": "Room 2"},
    )
    assert updated.payload["event"]["location"] == "Room 2"

    deleted = tools.call(
        "delete_event",
        {"calendar_id": WORK_CAL_URL, "event_url": obj.url, "etag": updated.payload["etag"]},
    )
    assert deleted.payload["success"] is True
    assert transport.object_count(WORK_CAL_URL) == 0


def test_unknown_calendar_payload(tools):
    result = tools.call(
        "create_event",
        {"calendar_id": "holidays", "summary": "x", "start": "2026-03-01T09:00:00Z", "end": "2026-03-01T10:00:00Z"},
    )
    assert result.payload["error"] == "CalendarNotFound"


def test_negative_days_rejected(tools):
    assert tools.call("upcoming_events", {"days": -1}).payload["error"] == "InvalidArguments"


def test_check_availability(tools, transport):
    _add(transport, "busy", datetime(2026, 3, 1, 10, tzinfo=UTC), datetime(2026, 3, 1, 11, tzinfo=UTC))

    result = tools.call(
        "check_availability",
        {
            "proposed_times": [
                {"start": "2026-03-01T10:30:00Z", "end": "2026-03-01T10:45:00Z"},
                {"start": "2026-03-01T11:00:00Z", "end": "2026-03-01T11:30:00Z"},
            ]
        },
    )

    assert result.payload["total_slots"] == 2
    assert result.payload["available_slots"] == 1
    assert result.payload["results"][0]["conflicts"][0]["summary"] == "busy"


# ---------------------------------------------------------------------------
# Email tools
# ---------------------------------------------------------------------------


def test_detect_scheduling_email(tools):
    result = tools.call("detect_scheduling_email", {"email_id": "m-1"})

    assert result.payload["has_scheduling_intent"] is True
    assert result.payload["confidence"] == "HIGH"
    assert result.payload["from"]["email"] == "alice@example.com"
    assert "schedule" in result.payload["analysis"]["keywords_found"]


def test_detect_missing_email(tools):
    assert tools.call("detect_scheduling_email", {"email_id": "x"}).payload["error"] == "EmailNotFound"


def test_email_to_calendar_preview_does_not_log_in(tools, transport):
    result = tools.call("email_to_calendar", {"email_id": "m-1"})

    assert result.payload["status"] == "preview"
    assert result.payload["extracted_info"]["suggested_title"] == "Meeting: Project sync"
    assert transport.connects == 0


def test_email_to_calendar_confirm(tools, transport):
    result = tools.call("email_to_calendar", {"email_id": "m-1", "confirm": True})

    assert result.payload["status"] == "needs_parsing"
    assert result.payload["required_inputs"]
    assert transport.puts == []


def test_email_to_calendar_confirm_without_calendar_previews():
    emails = FakeEmailSource([make_email("m-1", "Project sync", "Can we schedule a call Monday at 3pm?")])
    result = CalendarTools(email_source=emails).call("email_to_calendar", {"email_id": "m-1", "confirm": True})

    assert not result.is_error
    assert result.payload["status"] == "preview"


def test_email_tools_disabled_without_source(transport):
    result = CalendarTools(session=CalendarSession(transport)).call("detect_scheduling_email", {"email_id": "m-1"})
    assert result.payload["error"] == "FeatureDisabled"
