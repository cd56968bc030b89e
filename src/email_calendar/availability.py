"""
Availability checks for proposed meeting slots.
"""

import logging
from dataclasses import dataclass
from dataclasses import field
from datetime import datetime

from email_calendar.models import CalendarEvent
from email_calendar.models import ProposedSlot

logger = logging.getLogger(__name__)


def overlaps(start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime) -> bool:
    """Half-open interval overlap: touching endpoints do not conflict."""
    return start_a < end_b and end_a > start_b


@dataclass
class SlotAvailability:
    slot: ProposedSlot
    available: bool
    conflicts: list[CalendarEvent] = field(default_factory=list)


@dataclass
class AvailabilityReport:
    results: list[SlotAvailability]

    @property
    def total_slots(self) -> int:
        return len(self.results)

    @property
    def available_slots(self) -> int:
        return sum(1 for r in self.results if r.available)


class AvailabilityChecker:
    """Flags proposed slots that collide with existing events on any calendar."""

    def __init__(self, session):
        self.session = session

    def check_slot(self, slot: ProposedSlot) -> SlotAvailability:
        events = self.session.list_events(slot.start, slot.end)
        conflicts = [e for e in events if overlaps(e.start, e.end, slot.start, slot.end)]
        logger.debug(
            "Slot %s–%s: %d candidate(s), %d conflict(s)",
            slot.start.isoformat(),
            slot.end.isoformat(),
            len(events),
            len(conflicts),
        )
        return SlotAvailability(slot=slot, available=not conflicts, conflicts=conflicts)

    def check(self, slots: list[ProposedSlot]) -> AvailabilityReport:
        return AvailabilityReport(results=[self.check_slot(slot) for slot in slots])
