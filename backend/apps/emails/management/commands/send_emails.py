"""
Send emails management command.

Polls the email outbox and delivers pending messages.
Uses SELECT FOR UPDATE SKIP LOCKED for safe concurrent execution.
"""

import random
import signal
import time

from django.core.management.base import BaseCommand
from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from apps.core.logging import get_logger
from apps.emails.models import OutboundEmail
from apps.emails.services import deliver_email

logger = get_logger(__name__)


class Command(BaseCommand):
    help = "Deliver pending emails from the outbox"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._shutdown_requested = False

    def add_arguments(self, parser):
        parser.add_argument(
            "--once",
            action="store_true",
            help="Run once and exit (default: run continuously)",
        )
        parser.add_argument(
            "--batch-size",
            type=int,
            default=50,
            help="Number of emails to send per batch (default: 50)",
        )
        parser.add_argument(
            "--poll-interval",
            type=float,
            default=5.0,
            help="Seconds between polls when the outbox is empty (default: 5)",
        )
        parser.add_argument(
            "--max-attempts",
            type=int,
            default=5,
            help="Max delivery attempts before marking as failed (default: 5)",
        )

    def handle(self, *args, **options):
        once = options["once"]
        batch_size = options["batch_size"]
        poll_interval = options["poll_interval"]
        max_attempts = options["max_attempts"]

        if not once:
            self._setup_signal_handlers()

        logger.info("email_sender_started", batch_size=batch_size)

        while not self._shutdown_requested:
            try:
                sent_count = self._send_batch(batch_size, max_attempts)

                if sent_count > 0:
                    logger.info("emails_sent", count=sent_count)
                    if not once:
                        continue

            except Exception:
                logger.exception("email_sender_error")

            if once:
                break

            self._sleep_with_jitter(poll_interval)

        logger.info("email_sender_shutdown")

    def _send_batch(self, batch_size: int, max_attempts: int) -> int:
        """
        Claim and deliver a batch of pending emails.

        Returns number of emails delivered.
        """
        now = timezone.now()

        with transaction.atomic():
            emails = list(
                OutboundEmail.objects.select_for_update(skip_locked=True)
                .filter(status=OutboundEmail.Status.PENDING)
                .filter(Q(next_attempt_at__isnull=True) | Q(next_attempt_at__lte=now))
                .order_by("created_at")[:batch_size]
            )

        sent_count = 0
        for email in emails:
            try:
                deliver_email(email)
            except Exception as e:
                email.mark_failed(str(e), max_attempts)
                logger.warning(
                    "email_delivery_failed",
                    email_id=email.pk,
                    attempts=email.attempts,
                    error=str(e),
                )
                continue

            email.mark_sent()
            sent_count += 1

        return sent_count

    def _sleep_with_jitter(self, base_seconds: float) -> None:
        """Sleep with random jitter to avoid thundering herd."""
        jitter = base_seconds * 0.2 * random.random()
        time.sleep(base_seconds + jitter)

    def _setup_signal_handlers(self) -> None:
        """Setup graceful shutdown on SIGINT/SIGTERM."""
        for sig in (signal.SIGINT, signal.SIGTERM):
            signal.signal(sig, self._handle_signal)

    def _handle_signal(self, signum, frame) -> None:
        logger.info("email_sender_signal_received", signal=signum)
        self._shutdown_requested = True
