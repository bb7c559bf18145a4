"""
Processed-event bookkeeping for inbound webhooks.

A marker row is written only after an event has been handled successfully,
so a failed delivery stays eligible for redelivery.
"""

from django.db import IntegrityError, transaction

from apps.core.logging import get_logger
from apps.core.models import ProcessedWebhook

logger = get_logger(__name__)


def is_webhook_processed(source: str, event_id: str) -> bool:
    """Return True if ``event_id`` from ``source`` (e.g. 'stripe') was already handled."""
    return ProcessedWebhook.objects.filter(source=source, event_id=event_id).exists()


def mark_webhook_processed(source: str, event_id: str, event_type: str = "") -> bool:
    """
    Record that an event was handled.

    Two concurrent deliveries of the same event race on the unique
    (source, event_id) constraint; the loser gets False.
    """
    try:
        with transaction.atomic():
            ProcessedWebhook.objects.create(
                source=source,
                event_id=event_id,
                event_type=event_type,
            )
    except IntegrityError:
        logger.debug("webhook_marker_exists", source=source, event_id=event_id)
        return False
    return True
