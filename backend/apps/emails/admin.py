"""
Admin configuration for emails app.
"""

from django.contrib import admin

from apps.emails.models import EmailTemplate, OutboundEmail


@admin.register(EmailTemplate)
class EmailTemplateAdmin(admin.ModelAdmin):
    list_display = ["email_type", "name", "updated_at"]


@admin.register(OutboundEmail)
class OutboundEmailAdmin(admin.ModelAdmin):
    """Outbox inspection; failed rows show their last error."""

    list_display = ["id", "category", "to", "status", "attempts", "created_at", "sent_at"]
    list_filter = ["status", "category"]
    search_fields = ["to"]
    readonly_fields = ["attempts", "last_error", "next_attempt_at", "sent_at", "created_at"]
