"""
Tests for email outbox model.
"""

import pytest
from django.utils import timezone

from apps.emails.models import OutboundEmail


@pytest.fixture
def outbound_email(db) -> OutboundEmail:
    return OutboundEmail.objects.create(to="ada@example.com", subject="Hi", html="<p>Hi</p>")


class TestOutboundEmail:
    """Tests for OutboundEmail status transitions."""

    def test_mark_sent(self, outbound_email: OutboundEmail) -> None:
        outbound_email.mark_sent()

        outbound_email.refresh_from_db()
        assert outbound_email.status == OutboundEmail.Status.SENT
        assert outbound_email.sent_at is not None

    def test_mark_failed_schedules_retry(self, outbound_email: OutboundEmail) -> None:
        before = timezone.now()

        outbound_email.mark_failed("SMTP timeout")

        outbound_email.refresh_from_db()
        assert outbound_email.status == OutboundEmail.Status.PENDING
        assert outbound_email.attempts == 1
        assert outbound_email.last_error == "SMTP timeout"
        assert outbound_email.next_attempt_at > before

    def test_mark_failed_gives_up_after_max_attempts(self, outbound_email: OutboundEmail) -> None:
        for _ in range(3):
            outbound_email.mark_failed("SMTP timeout", max_attempts=3)

        outbound_email.refresh_from_db()
        assert outbound_email.status == OutboundEmail.Status.FAILED
        assert outbound_email.attempts == 3
        assert outbound_email.next_attempt_at is None
