"""
Tests for slot availability checks.
"""

from datetime import datetime
from datetime import timezone

import pytest

from email_calendar.availability import AvailabilityChecker
from email_calendar.availability import overlaps
from email_calendar.models import ProposedSlot
from tests.fake_transport import HOME_CAL_URL
from tests.fake_transport import WORK_CAL_URL
from tests.fake_transport import ical_utc
from tests.fake_transport import make_vevent

UTC = timezone.utc


def _at(hour: int, minute: int = 0) -> datetime:
    return datetime(2026, 3, 1, hour, minute, tzinfo=UTC)


@pytest.fixture
def checker(session, transport):
    transport.add_object(
        WORK_CAL_URL,
        "standup.ics",
        make_vevent("standup", summary="Standup", dtstart=ical_utc(_at(10)), dtend=ical_utc(_at(11))),
    )
    return AvailabilityChecker(session)


# ---------------------------------------------------------------------------
# overlaps()
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "b_start, b_end, expected",
    [
        (_at(10, 30), _at(10, 45), True),  # contained
        (_at(9, 30), _at(10, 30), True),  # straddles start
        (_at(9), _at(12), True),  # contains
        (_at(11), _at(11, 30), False),  # touches end
        (_at(9), _at(10), False),  # touches start
        (_at(12), _at(13), False),
    ],
)
def test_overlaps_half_open(b_start, b_end, expected):
    assert overlaps(_at(10), _at(11), b_start, b_end) is expected


# ---------------------------------------------------------------------------
# AvailabilityChecker
# ---------------------------------------------------------------------------


def test_conflicting_slot(checker):
    result = checker.check_slot(ProposedSlot(_at(10, 30), _at(10, 45)))

    assert result.available is False
    assert [e.uid for e in result.conflicts] == ["standup"]


@pytest.mark.parametrize(
    "slot",
    [ProposedSlot(_at(11), _at(11, 30)), ProposedSlot(_at(9), _at(10))],
)
def test_adjacent_slots_are_free(checker, slot):
    result = checker.check_slot(slot)
    assert result.available is True
    assert result.conflicts == []


def test_conflicts_from_any_calendar(checker, transport):
    transport.add_object(
        HOME_CAL_URL,
        "dentist.ics",
        make_vevent("dentist", dtstart=ical_utc(_at(14)), dtend=ical_utc(_at(15))),
    )
    result = checker.check_slot(ProposedSlot(_at(14, 30), _at(16)))

    assert [e.uid for e in result.conflicts] == ["dentist"]
    assert result.conflicts[0].calendar_id == HOME_CAL_URL


def test_report_counts(checker):
    report = checker.check(
        [
            ProposedSlot(_at(10, 30), _at(10, 45)),
            ProposedSlot(_at(11), _at(11, 30)),
            ProposedSlot(_at(9), _at(10)),
        ]
    )

    assert report.total_slots == 3
    assert report.available_slots == 2
    assert [r.available for r in report.results] == [False, True, True]


def test_slot_end_before_start_rejected():
    with pytest.raises(ValueError):
        ProposedSlot(_at(11), _at(10))
