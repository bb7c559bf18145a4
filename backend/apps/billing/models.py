"""
Billing models - plan catalog and the local Stripe subscription mirror.
"""

from django.db import models

from apps.core.models import SoftDeleteModel


class Plan(SoftDeleteModel):
    """
    Purchasable plan or add-on.

    Maps billing periods to Stripe price IDs.
    """

    class Type(models.TextChoices):
        PLAN = "plan", "Plan"
        ADD_ON = "add-on", "Add-on"

    class Status(models.TextChoices):
        ACTIVE = "active", "Active"
        INACTIVE = "inactive", "Inactive"

    class BillingPeriod(models.TextChoices):
        MONTHLY = "monthly", "Monthly"
        YEARLY = "yearly", "Yearly"

    name = models.CharField(max_length=255)
    type = models.CharField(max_length=20, choices=Type.choices, default=Type.PLAN)
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.ACTIVE,
        db_index=True,
    )
    stripe_price_monthly = models.CharField(
        max_length=255,
        blank=True,
        help_text="Stripe price ID billed monthly, e.g. 'price_xxx'",
    )
    stripe_price_yearly = models.CharField(
        max_length=255,
        blank=True,
        help_text="Stripe price ID billed yearly, e.g. 'price_xxx'",
    )
    trial_period_days = models.PositiveIntegerField(default=15)

    class Meta:
        ordering = ["name"]

    def __str__(self) -> str:
        return self.name

    def price_for(self, billing_period: str) -> str | None:
        """Stripe price ID for ``billing_period``, or None if not offered."""
        match billing_period:
            case self.BillingPeriod.MONTHLY:
                return self.stripe_price_monthly or None
            case self.BillingPeriod.YEARLY:
                return self.stripe_price_yearly or None
            case _:
                return None


class Subscription(models.Model):
    """
    Local mirror of a Stripe subscription.

    Keyed by the Stripe subscription ID and upserted from webhooks
    independently of whether the owning organization exists yet.
    Source of truth is Stripe. Never deleted locally.
    """

    class Status(models.TextChoices):
        ACTIVE = "active", "Active"
        PAST_DUE = "past_due", "Past Due"
        CANCELED = "canceled", "Canceled"
        INCOMPLETE = "incomplete", "Incomplete"
        INCOMPLETE_EXPIRED = "incomplete_expired", "Incomplete Expired"
        TRIALING = "trialing", "Trialing"
        UNPAID = "unpaid", "Unpaid"
        PAUSED = "paused", "Paused"

    stripe_subscription_id = models.CharField(
        max_length=255,
        unique=True,
        help_text="Stripe subscription ID, e.g. 'sub_xxx'",
    )
    stripe_customer_id = models.CharField(
        max_length=255,
        blank=True,
        db_index=True,
        help_text="Stripe customer ID, e.g. 'cus_xxx'",
    )
    stripe_price_id = models.CharField(
        max_length=255,
        blank=True,
        help_text="Stripe price ID, e.g. 'price_xxx'",
    )
    status = models.CharField(
        max_length=50,
        choices=Status.choices,
        default=Status.INCOMPLETE,
        db_index=True,
        help_text="Subscription status from Stripe",
    )
    current_period_start = models.DateTimeField(null=True, blank=True)
    current_period_end = models.DateTimeField(null=True, blank=True)
    cancel_at_period_end = models.BooleanField(
        default=False,
        help_text="If True, subscription will cancel at period end",
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"{self.stripe_subscription_id} - {self.status}"

    @property
    def is_active(self) -> bool:
        """Check if subscription is in a usable state."""
        return self.status in (self.Status.ACTIVE, self.Status.TRIALING)
