"""
Email models - editable templates and the outbound email outbox.
"""

from datetime import timedelta

from django.db import models
from django.utils import timezone


class EmailTemplate(models.Model):
    """
    Admin-editable email body.

    ``html`` may contain ``{{variable}}`` placeholders. When no template
    exists for a type, the bundled file template is used.
    """

    email_type = models.CharField(
        max_length=50,
        unique=True,
        help_text="Template key, e.g. 'emailConfirm' or 'welcome'",
    )
    name = models.CharField(max_length=255, help_text="Used as the email subject")
    html = models.TextField()

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["email_type"]

    def __str__(self) -> str:
        return self.email_type


class OutboundEmail(models.Model):
    """
    Transactional outbox for email delivery.

    Rows are written in the same transaction as the business change that
    triggers them and delivered by the ``send_emails`` worker.
    """

    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        SENT = "sent", "Sent"
        FAILED = "failed", "Failed"

    to = models.EmailField()
    subject = models.CharField(max_length=255)
    html = models.TextField()
    from_email = models.CharField(max_length=255, blank=True)
    category = models.CharField(
        max_length=50,
        blank=True,
        help_text="What kind of email this is, e.g. 'emailConfirm'",
    )

    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.PENDING,
        db_index=True,
    )
    attempts = models.PositiveIntegerField(default=0)
    next_attempt_at = models.DateTimeField(null=True, blank=True, db_index=True)
    last_error = models.TextField(blank=True)
    sent_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["created_at"]
        indexes = [
            models.Index(fields=["status", "next_attempt_at"], name="outbound_email_due_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.category or 'email'} to {self.to} ({self.status})"

    def mark_sent(self) -> None:
        """Mark email as delivered."""
        self.status = self.Status.SENT
        self.sent_at = timezone.now()
        self.save(update_fields=["status", "sent_at"])

    def mark_failed(self, error: str, max_attempts: int = 5) -> None:
        """
        Record a failed attempt and schedule a retry with exponential backoff.

        After max_attempts, status becomes FAILED permanently.
        """
        self.attempts += 1
        self.last_error = error

        if self.attempts >= max_attempts:
            self.status = self.Status.FAILED
            self.next_attempt_at = None
        else:
            delay_seconds = min(2**self.attempts, 300)
            self.next_attempt_at = timezone.now() + timedelta(seconds=delay_seconds)

        self.save(update_fields=["attempts", "last_error", "status", "next_attempt_at"])
