"""
Email services - rendering, queueing and delivery.

Queueing only writes an OutboundEmail row; delivery happens in the
``send_emails`` worker so callers never wait on SMTP.
"""

import re
from typing import Any

from django.conf import settings
from django.core.mail import EmailMultiAlternatives
from django.template.loader import render_to_string
from django.utils.html import escape, strip_tags

from apps.core.logging import get_logger
from apps.emails.models import EmailTemplate, OutboundEmail

logger = get_logger(__name__)

_PLACEHOLDER = re.compile(r"\{\{\s*(\w+)\s*\}\}")


def replace_template_variables(html: str, variables: dict[str, Any]) -> str:
    """
    Substitute ``{{name}}`` placeholders in a stored template.

    Values are HTML-escaped, matching the autoescaping of the bundled
    templates. Unknown placeholders are removed.
    """

    def _sub(match: re.Match) -> str:
        value = variables.get(match.group(1))
        return "" if value is None else escape(str(value))

    return _PLACEHOLDER.sub(_sub, html)


def render_email(
    email_type: str,
    variables: dict[str, Any],
    default_template: str,
    default_subject: str,
) -> tuple[str, str]:
    """
    Render an email body and subject.

    A stored EmailTemplate for ``email_type`` wins; otherwise the bundled
    Django template ``default_template`` is rendered with ``variables``.

    Returns:
        Tuple of (subject, html)
    """
    stored = EmailTemplate.objects.filter(email_type=email_type).first()
    if stored is not None:
        return stored.name or default_subject, replace_template_variables(stored.html, variables)

    return default_subject, render_to_string(default_template, variables)


def queue_email(
    to: str,
    subject: str,
    html: str,
    category: str = "",
    from_email: str | None = None,
) -> OutboundEmail:
    """
    Add an email to the outbox.

    Call inside the transaction that creates the data the email talks about,
    so the email exists if and only if that data was committed.
    """
    email = OutboundEmail.objects.create(
        to=to,
        subject=subject,
        html=html,
        category=category,
        from_email=from_email or settings.DEFAULT_FROM_EMAIL,
    )
    logger.debug("email_queued", email_id=email.pk, category=category)
    return email


def deliver_email(email: OutboundEmail) -> None:
    """
    Send one outbox email through the configured Django mail backend.

    Raises whatever the backend raises; the caller records the failure.
    """
    message = EmailMultiAlternatives(
        subject=email.subject,
        body=strip_tags(email.html),
        from_email=email.from_email or settings.DEFAULT_FROM_EMAIL,
        to=[email.to],
    )
    message.attach_alternative(email.html, "text/html")
    message.send(fail_silently=False)
