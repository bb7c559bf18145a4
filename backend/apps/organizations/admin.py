"""
Admin configuration for organizations app.
"""

from django.contrib import admin

from apps.organizations.models import Organization, OrganizationAddOn


class OrganizationAddOnInline(admin.TabularInline):
    model = OrganizationAddOn
    extra = 0
    readonly_fields = ["stripe_subscription_id", "purchased_at", "current_period_end"]


@admin.register(Organization)
class OrganizationAdmin(admin.ModelAdmin):
    """Admin for organizations, including soft-deleted ones."""

    list_display = ["id", "name", "slug", "status", "plan_name", "plan_end_date", "deleted_at"]
    list_filter = ["status"]
    search_fields = ["name", "slug", "stripe_customer_id", "subscription_id"]
    readonly_fields = ["slug_history", "checkout_session_id", "created_at", "updated_at"]
    raw_id_fields = ["owner"]
    inlines = [OrganizationAddOnInline]

    def get_queryset(self, request):
        return Organization.all_objects.all()
