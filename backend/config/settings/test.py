"""
Test settings.

In-memory SQLite, fast password hashing and locmem email.
"""

from .base import *  # noqa: F403
from .base import settings

DEBUG = False

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": ":memory:",
    }
}

PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]

EMAIL_BACKEND = "django.core.mail.backends.locmem.EmailBackend"

settings.JWT_SECRET = settings.JWT_SECRET or "test-jwt-secret"
settings.STRIPE_WEBHOOK_SECRET = settings.STRIPE_WEBHOOK_SECRET or "whsec_test"
