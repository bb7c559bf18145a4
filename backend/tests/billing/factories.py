"""
Factories for billing app models.

Used in tests to create test data.
"""

from datetime import UTC, datetime, timedelta

import factory
from factory.django import DjangoModelFactory

from apps.billing.models import Plan, Subscription


class PlanFactory(DjangoModelFactory):
    """Factory for Plan model."""

    class Meta:
        model = Plan

    name = factory.Sequence(lambda n: f"Plan {n}")
    type = Plan.Type.PLAN
    status = Plan.Status.ACTIVE
    stripe_price_monthly = factory.Sequence(lambda n: f"price_monthly_{n}")
    stripe_price_yearly = factory.Sequence(lambda n: f"price_yearly_{n}")
    trial_period_days = 15


class SubscriptionFactory(DjangoModelFactory):
    """Factory for Subscription model."""

    class Meta:
        model = Subscription

    stripe_subscription_id = factory.Sequence(lambda n: f"sub_test_{n}")
    stripe_customer_id = factory.Sequence(lambda n: f"cus_test_{n}")
    stripe_price_id = factory.Sequence(lambda n: f"price_test_{n}")
    status = Subscription.Status.ACTIVE
    current_period_start = factory.LazyFunction(lambda: datetime.now(tz=UTC))
    current_period_end = factory.LazyFunction(lambda: datetime.now(tz=UTC) + timedelta(days=30))
    cancel_at_period_end = False


def stripe_subscription(
    subscription_id: str = "sub_123",
    customer_id: str = "cus_123",
    status: str = "active",
    period_start: int = 1_700_000_000,
    period_end: int = 1_702_592_000,
    trial_end: int | None = None,
    price_id: str = "price_monthly_1",
    on_items: bool = False,
) -> dict:
    """Build a Stripe subscription object as delivered in webhooks."""
    item = {"id": "si_1", "price": {"id": price_id}}
    data = {
        "id": subscription_id,
        "object": "subscription",
        "customer": customer_id,
        "status": status,
        "cancel_at_period_end": False,
        "trial_end": trial_end,
        "items": {"data": [item]},
    }
    if on_items:
        item["current_period_start"] = period_start
        item["current_period_end"] = period_end
    else:
        data["current_period_start"] = period_start
        data["current_period_end"] = period_end
    return data


def signup_session(session_id: str = "cs_test_1", **metadata_overrides) -> dict:
    """Build a completed checkout session for a new organization signup."""
    metadata = {
        "signupType": "new_organization",
        "firstName": "Ada",
        "lastName": "Lovelace",
        "email": "ada@example.com",
        "password": "md5$salt$hash",
        "organizationName": "Analytical Engines",
        "slug": "analytical-engines",
        "planId": "",
        "planName": "Pro",
        "billingPeriod": "monthly",
    }
    metadata.update(metadata_overrides)
    return {
        "id": session_id,
        "object": "checkout.session",
        "customer": "cus_new",
        "subscription": "sub_new",
        "metadata": metadata,
    }
