"""
Organizations models - tenants and their purchased add-ons.
"""

from django.db import models
from django.db.models import Q

from apps.core.models import SoftDeleteModel, TimestampedModel


class Organization(SoftDeleteModel):
    """
    Billing and data-isolation unit.

    The primary key is the immutable org id; all tenant-scoped data refers to
    it. ``slug`` is only for URL routing and may change (see ``change_slug``).
    Organizations are never hard-deleted.
    """

    class Status(models.TextChoices):
        ACTIVE = "active", "Active"
        INACTIVE = "inactive", "Inactive"
        TRIALING = "trialing", "Trialing"
        PAST_DUE = "past_due", "Past Due"
        UNPAID = "unpaid", "Unpaid"
        CANCELED = "canceled", "Canceled"
        INCOMPLETE = "incomplete", "Incomplete"
        INCOMPLETE_EXPIRED = "incomplete_expired", "Incomplete Expired"
        PAUSED = "paused", "Paused"

    name = models.CharField(max_length=255)
    slug = models.SlugField(
        max_length=50,
        help_text="URL-safe identifier, e.g. 'acme-corp'",
    )
    slug_history = models.JSONField(
        default=list,
        blank=True,
        help_text="Every slug this organization has used, oldest first",
    )
    status = models.CharField(
        max_length=50,
        choices=Status.choices,
        default=Status.INACTIVE,
        db_index=True,
    )
    owner = models.ForeignKey(
        "accounts.User",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="owned_organizations",
    )

    # Plan
    plan = models.ForeignKey(
        "billing.Plan",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="organizations",
    )
    plan_name = models.CharField(max_length=255, blank=True)
    plan_start_date = models.DateTimeField(null=True, blank=True)
    plan_end_date = models.DateTimeField(null=True, blank=True)
    trial_start_date = models.DateTimeField(null=True, blank=True)
    trial_end_date = models.DateTimeField(null=True, blank=True)

    # Stripe integration
    subscription_id = models.CharField(
        max_length=255,
        blank=True,
        help_text="Stripe subscription ID of the primary plan, e.g. 'sub_xxx'",
    )
    stripe_customer_id = models.CharField(
        max_length=255,
        blank=True,
        db_index=True,
        help_text="Stripe customer ID, e.g. 'cus_xxx'",
    )
    checkout_session_id = models.CharField(
        max_length=255,
        unique=True,
        null=True,
        blank=True,
        help_text="Checkout session that provisioned this organization, e.g. 'cs_xxx'",
    )

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["slug"],
                condition=Q(deleted_at__isnull=True),
                name="org_slug_unique_active",
            ),
        ]
        indexes = [
            models.Index(fields=["status", "deleted_at"], name="org_status_deleted_idx"),
        ]

    def __str__(self) -> str:
        return self.name

    def change_slug(self, new_slug: str) -> None:
        """Change the routing slug, keeping the id and recording history."""
        if new_slug == self.slug:
            return
        history = list(self.slug_history or [])
        if self.slug and self.slug not in history:
            history.append(self.slug)
        history.append(new_slug)
        self.slug = new_slug
        self.slug_history = history
        self.save(update_fields=["slug", "slug_history", "updated_at"])


class OrganizationAddOn(TimestampedModel):
    """
    Supplementary purchase attached to an organization.

    Each add-on is its own Stripe subscription, separate from the primary plan.
    """

    class Status(models.TextChoices):
        ACTIVE = "active", "Active"
        CANCELED = "canceled", "Canceled"

    organization = models.ForeignKey(
        Organization,
        on_delete=models.CASCADE,
        related_name="addons",
    )
    plan = models.ForeignKey(
        "billing.Plan",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="addon_purchases",
    )
    stripe_subscription_id = models.CharField(
        max_length=255,
        unique=True,
        help_text="Stripe subscription ID of the add-on, e.g. 'sub_xxx'",
    )
    stripe_customer_id = models.CharField(max_length=255, blank=True)
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.ACTIVE,
    )
    purchased_at = models.DateTimeField()
    current_period_end = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["purchased_at"]

    def __str__(self) -> str:
        return f"{self.organization.name} add-on {self.stripe_subscription_id} ({self.status})"
