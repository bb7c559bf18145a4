"""
Accounts services - owner account creation and email confirmation.
"""

from typing import TYPE_CHECKING
from urllib.parse import urlencode

from apps.accounts.models import User
from apps.accounts.tokens import create_email_confirmation_token, verify_email_confirmation_token
from apps.core.logging import get_logger
from apps.emails.models import OutboundEmail
from apps.emails.services import queue_email, render_email
from config.settings.base import settings

if TYPE_CHECKING:
    from apps.organizations.models import Organization

logger = get_logger(__name__)

EMAIL_CONFIRM_TYPE = "emailConfirm"
WELCOME_TYPE = "welcome"


def create_owner_user(
    first_name: str,
    last_name: str,
    email: str,
    password_hash: str,
) -> User:
    """
    Create the Admin owner of a new organization.

    The organization link is written separately once the organization exists.
    The password must already be hashed.
    """
    return User.objects.create_user(
        email=email,
        password_hash=password_hash,
        first_name=first_name,
        last_name=last_name,
        role=User.Role.ADMIN,
        is_superuser=False,
        is_temporary_password=False,
        email_verified=False,
    )


def queue_onboarding_emails(user: User, organization: "Organization") -> list[OutboundEmail]:
    """
    Queue the confirmation and welcome emails for a newly provisioned owner.

    The confirmation link carries a signed token valid for
    EMAIL_CONFIRMATION_TOKEN_EXPIRY_HOURS.
    """
    base_url = settings.APP_URL.rstrip("/")
    token = create_email_confirmation_token(user.email)
    confirmation_link = f"{base_url}/confirm-email?{urlencode({'token': token})}"

    subject, html = render_email(
        EMAIL_CONFIRM_TYPE,
        {
            "firstName": user.first_name,
            "lastName": user.last_name,
            "name": user.full_name,
            "btnLink": confirmation_link,
            "expiryHours": settings.EMAIL_CONFIRMATION_TOKEN_EXPIRY_HOURS,
        },
        default_template="emails/email_confirmation.html",
        default_subject="Confirm Your Email",
    )
    confirmation = queue_email(user.email, subject, html, category=EMAIL_CONFIRM_TYPE)

    subject, html = render_email(
        WELCOME_TYPE,
        {
            "name": user.full_name,
            "organizationName": organization.name,
            "baseUrl": base_url,
        },
        default_template="emails/welcome.html",
        default_subject="Welcome to OpsDeck!",
    )
    welcome = queue_email(user.email, subject, html, category=WELCOME_TYPE)

    return [confirmation, welcome]


def confirm_email(token: str) -> tuple[User, bool]:
    """
    Mark the user named by a confirmation token as verified.

    Returns:
        Tuple of (user, changed). ``changed`` is False if already verified.

    Raises:
        InvalidConfirmationToken: If the token does not verify
        User.DoesNotExist: If no user has the embedded email
    """
    email = verify_email_confirmation_token(token)
    user = User.objects.get(email__iexact=email)

    if user.email_verified:
        return user, False

    user.email_verified = True
    user.save(update_fields=["email_verified", "updated_at"])
    logger.info("email_confirmed", **{"usr.id": str(user.pk)})
    return user, True
