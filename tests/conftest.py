"""
Shared pytest fixtures.
"""

import pytest

from email_calendar.session import CalendarSession
from tests.fake_transport import HOME_CAL_URL
from tests.fake_transport import TEAM_CAL_URL
from tests.fake_transport import WORK_CAL_URL
from tests.fake_transport import FakeCalDAVTransport
from tests.fake_transport import make_calendar


@pytest.fixture
def transport():
    return FakeCalDAVTransport(
        [
            make_calendar(WORK_CAL_URL, "Work"),
            make_calendar(HOME_CAL_URL, "Home"),
            make_calendar(TEAM_CAL_URL, "Team"),
        ]
    )


@pytest.fixture
def session(transport):
    s = CalendarSession(transport, max_workers=4)
    s.login()
    return s
