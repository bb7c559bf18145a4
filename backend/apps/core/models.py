"""
Core models - shared base classes and webhook bookkeeping.
"""

from django.db import models
from django.utils import timezone


class TimestampedModel(models.Model):
    """Abstract base model with created_at/updated_at timestamps."""

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class ActiveManager(models.Manager):
    """Default manager that hides soft-deleted rows."""

    def get_queryset(self) -> models.QuerySet:
        return super().get_queryset().filter(deleted_at__isnull=True)


class SoftDeleteModel(TimestampedModel):
    """
    Abstract base model for records that are never hard-deleted.

    ``objects`` excludes soft-deleted rows; ``all_objects`` sees everything.
    """

    deleted_at = models.DateTimeField(null=True, blank=True, db_index=True)

    objects = ActiveManager()
    all_objects = models.Manager()

    class Meta:
        abstract = True

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def soft_delete(self) -> None:
        """Mark the record deleted without removing it."""
        self.deleted_at = timezone.now()
        self.save(update_fields=["deleted_at", "updated_at"])


class ProcessedWebhook(models.Model):
    """
    Record of a webhook event that has been fully handled.

    Unique on (source, event_id) so redelivered events can be skipped.
    """

    source = models.CharField(max_length=50, help_text="Webhook provider, e.g. 'stripe'")
    event_id = models.CharField(max_length=255, help_text="Provider event id, e.g. 'evt_xxx'")
    event_type = models.CharField(max_length=100, blank=True)
    processed_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-processed_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["source", "event_id"],
                name="unique_processed_webhook",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.source}:{self.event_id}"
