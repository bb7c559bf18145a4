"""
Email confirmation tokens.

Signed, time-limited JWTs embedding the user's email. Issued when an owner
account is provisioned and consumed by the confirm-email endpoint.
"""

from datetime import UTC, datetime, timedelta

import jwt

from config.settings.base import settings

TOKEN_ALGORITHM = "HS256"
EMAIL_CONFIRMATION_PURPOSE = "email_confirmation"


class InvalidConfirmationToken(Exception):
    """Raised when a confirmation token is malformed, expired or forged."""


def _get_secret() -> str:
    if not settings.JWT_SECRET:
        raise ValueError("JWT_SECRET is not configured")
    return settings.JWT_SECRET


def create_email_confirmation_token(email: str, expires_in: timedelta | None = None) -> str:
    """
    Create a signed token for confirming ``email``.

    Args:
        email: Address to embed in the token
        expires_in: Lifetime; defaults to EMAIL_CONFIRMATION_TOKEN_EXPIRY_HOURS

    Raises:
        ValueError: If JWT_SECRET is not configured
    """
    if expires_in is None:
        expires_in = timedelta(hours=settings.EMAIL_CONFIRMATION_TOKEN_EXPIRY_HOURS)

    now = datetime.now(UTC)
    claims = {
        "email": email,
        "purpose": EMAIL_CONFIRMATION_PURPOSE,
        "iat": now,
        "exp": now + expires_in,
    }
    return jwt.encode(claims, _get_secret(), algorithm=TOKEN_ALGORITHM)


def verify_email_confirmation_token(token: str) -> str:
    """
    Verify a confirmation token and return the embedded email.

    Raises:
        InvalidConfirmationToken: If the token is invalid, expired or not a confirmation token
    """
    try:
        claims = jwt.decode(token, _get_secret(), algorithms=[TOKEN_ALGORITHM])
    except jwt.ExpiredSignatureError as e:
        raise InvalidConfirmationToken("Confirmation link has expired") from e
    except jwt.InvalidTokenError as e:
        raise InvalidConfirmationToken("Invalid confirmation token") from e

    if claims.get("purpose") != EMAIL_CONFIRMATION_PURPOSE or not claims.get("email"):
        raise InvalidConfirmationToken("Invalid confirmation token")

    return claims["email"]
