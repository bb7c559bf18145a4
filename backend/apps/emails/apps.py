"""Emails app configuration."""

from django.apps import AppConfig


class EmailsConfig(AppConfig):
    """Configuration for emails app."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.emails"
