"""
In-memory email source for orchestrator and tool tests.
"""

from email_calendar.models import EmailAddress
from email_calendar.models import EmailMessage

ALICE = EmailAddress(email="alice@example.com", name="Alice")
BOB = EmailAddress(email="bob@example.com", name="Bob")


def make_email(email_id: str, subject: str, body: str, sender=ALICE) -> EmailMessage:
    return EmailMessage(
        email_id=email_id,
        subject=subject,
        text_body=body,
        sender=sender,
        recipients=[BOB],
        received_at="2026-02-24T09:00:00Z",
    )


class FakeEmailSource:
    def __init__(self, emails: list[EmailMessage] | None = None):
        self.emails = {e.email_id: e for e in emails or []}
        self.lookups: list[str] = []

    def get_email(self, email_id: str) -> EmailMessage | None:
        self.lookups.append(email_id)
        return self.emails.get(email_id)
