"""
Admin configuration for billing app.
"""

from django.contrib import admin

from apps.billing.models import Plan, Subscription


@admin.register(Plan)
class PlanAdmin(admin.ModelAdmin):
    list_display = ["id", "name", "type", "status", "stripe_price_monthly", "stripe_price_yearly"]
    list_filter = ["type", "status"]


@admin.register(Subscription)
class SubscriptionAdmin(admin.ModelAdmin):
    """Read-mostly view of the Stripe subscription mirror."""

    list_display = [
        "stripe_subscription_id",
        "stripe_customer_id",
        "status",
        "current_period_end",
        "cancel_at_period_end",
    ]
    list_filter = ["status", "cancel_at_period_end"]
    search_fields = ["stripe_subscription_id", "stripe_customer_id"]
