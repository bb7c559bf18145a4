"""
Billing exceptions.
"""


class BillingError(Exception):
    """Base class for billing errors."""


class WebhookVerificationError(BillingError):
    """Inbound webhook could not be authenticated. Never processed."""


class SubscriptionRetrievalError(BillingError):
    """
    Stripe subscription could not be fetched.

    Raised before any write so the event can be redelivered safely.
    """

    def __init__(self, subscription_id: str, message: str = "") -> None:
        self.subscription_id = subscription_id
        super().__init__(message or f"Failed to retrieve subscription {subscription_id}")


class CheckoutError(BillingError):
    """Checkout session could not be created. ``status_code`` maps to the API response."""

    def __init__(self, message: str, status_code: int = 400) -> None:
        self.status_code = status_code
        super().__init__(message)
