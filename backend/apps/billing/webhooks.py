"""
Stripe webhook handler.

Verifies incoming Stripe events and dispatches them to billing services.
This is a separate view (not Django Ninja) for raw request handling
needed to verify Stripe signatures.

Once an event is authentic the response is 200 unless a handler raises,
in which case 500 tells Stripe to redeliver the whole event later.
"""

from collections.abc import Mapping
from typing import Any

import stripe
from django.http import HttpRequest, JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from apps.billing.exceptions import WebhookVerificationError
from apps.billing.services import (
    handle_checkout_session_completed,
    handle_invoice_payment_failed,
    handle_subscription_deleted,
    sync_subscription,
)
from apps.billing.stripe_client import get_stripe, to_plain
from apps.core.logging import bind_contextvars, get_logger
from apps.core.webhooks import is_webhook_processed, mark_webhook_processed
from config.settings.base import settings

logger = get_logger(__name__)

WEBHOOK_SOURCE = "stripe"


def verify_stripe_event(payload: bytes, sig_header: str | None, secret: str) -> dict[str, Any]:
    """
    Authenticate a raw Stripe payload against the endpoint secret.

    Returns the event as plain dicts.

    Raises:
        WebhookVerificationError: If the secret is missing, the header is
            missing, the payload is malformed or the signature does not match
    """
    if not secret:
        raise WebhookVerificationError("Stripe webhook secret is not configured")
    if not sig_header:
        raise WebhookVerificationError("Missing Stripe-Signature header")

    get_stripe()  # Ensure Stripe is configured
    try:
        event = stripe.Webhook.construct_event(payload, sig_header, secret)
    except ValueError as e:
        raise WebhookVerificationError(f"Invalid payload: {e}") from e
    except stripe.SignatureVerificationError as e:
        raise WebhookVerificationError(f"Invalid signature: {e}") from e

    return to_plain(event)


def dispatch_event(event: Mapping[str, Any]) -> None:
    """Route a verified event to its handler by type."""
    event_type = event["type"]
    data_object = event["data"]["object"]

    match event_type:
        case "checkout.session.completed":
            handle_checkout_session_completed(data_object)

        case "customer.subscription.created" | "customer.subscription.updated":
            sync_subscription(data_object)

        case "customer.subscription.deleted":
            handle_subscription_deleted(data_object)

        case "invoice.payment_failed":
            handle_invoice_payment_failed(data_object)

        case "invoice.payment_succeeded" | "invoice.paid":
            # Renewed period dates arrive with customer.subscription.updated
            logger.info(
                "stripe_invoice_paid",
                invoice_id=data_object.get("id"),
                customer_id=data_object.get("customer"),
            )

        case _:
            logger.info("stripe_webhook_unhandled_event", event_type=event_type)


@csrf_exempt
@require_POST
def stripe_webhook(request: HttpRequest) -> JsonResponse:
    """
    Handle Stripe webhook events.

    Verifies signature, skips already-processed events and dispatches.
    """
    try:
        event = verify_stripe_event(
            request.body,
            request.headers.get("Stripe-Signature"),
            settings.STRIPE_WEBHOOK_SECRET,
        )
    except WebhookVerificationError as e:
        logger.warning("stripe_webhook_verification_failed", error=str(e))
        return JsonResponse({"error": f"Webhook Error: {e}"}, status=400)

    event_id = event.get("id")
    bind_contextvars(**{"stripe.event_id": event_id, "stripe.event_type": event["type"]})
    logger.info("stripe_webhook_received", event_type=event["type"])

    if event_id and is_webhook_processed(WEBHOOK_SOURCE, event_id):
        logger.info("stripe_webhook_duplicate_skipped")
        return JsonResponse({"received": True})

    try:
        dispatch_event(event)
    except Exception:
        logger.exception("stripe_webhook_handler_error")
        # 500 so Stripe will retry with exponential backoff
        return JsonResponse({"error": "Webhook processing failed"}, status=500)

    if event_id:
        mark_webhook_processed(WEBHOOK_SOURCE, event_id, event["type"])

    return JsonResponse({"received": True})
