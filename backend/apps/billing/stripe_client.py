"""
Stripe client configuration.

Provides a configured Stripe module for billing operations.
"""

from types import ModuleType
from typing import Any

import stripe

from config.settings.base import settings

# Pinned to the API version whose subscriptions still expose
# current_period_start/end at the top level; item-level periods are also read.
STRIPE_API_VERSION = "2024-06-20"

# Retries are safe due to automatic idempotency key generation.
STRIPE_MAX_NETWORK_RETRIES = 2

_http_client = None


def configure_stripe() -> None:
    """Configure Stripe API key, version, retries and a bounded request timeout."""
    global _http_client

    stripe.api_key = settings.STRIPE_SECRET_KEY
    stripe.api_version = STRIPE_API_VERSION
    stripe.max_network_retries = STRIPE_MAX_NETWORK_RETRIES

    if _http_client is None:
        _http_client = stripe.RequestsClient(timeout=settings.STRIPE_TIMEOUT_SECONDS)
        stripe.default_http_client = _http_client


def get_stripe() -> ModuleType:
    """
    Get configured Stripe module.

    Ensures Stripe is configured before use.
    """
    configure_stripe()
    return stripe


def to_plain(value: Any) -> Any:
    """
    Convert a Stripe object tree into plain dicts and lists.

    Newer SDK releases no longer subclass ``dict`` for ``StripeObject``, so
    everything read from Stripe is converted once where it enters the app.
    """
    if isinstance(value, stripe.StripeObject):
        value = value.to_dict()
    if isinstance(value, dict):
        return {key: to_plain(item) for key, item in value.items()}
    if isinstance(value, list):
        return [to_plain(item) for item in value]
    return value
