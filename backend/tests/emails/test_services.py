"""
Tests for email services.
"""

import pytest
from django.conf import settings
from django.core import mail

from apps.emails.models import EmailTemplate, OutboundEmail
from apps.emails.services import (
    deliver_email,
    queue_email,
    render_email,
    replace_template_variables,
)


class TestReplaceTemplateVariables:
    """Tests for placeholder substitution in stored templates."""

    def test_substitutes_known_variables(self) -> None:
        html = replace_template_variables(
            "<p>Hi {{name}}, {{ org }}</p>", {"name": "Ada", "org": "Acme"}
        )

        assert html == "<p>Hi Ada, Acme</p>"

    def test_unknown_placeholders_removed(self) -> None:
        assert replace_template_variables("Hi {{missing}}!", {}) == "Hi !"

    def test_non_string_values(self) -> None:
        assert replace_template_variables("{{hours}}h", {"hours": 24}) == "24h"

    def test_values_are_html_escaped(self) -> None:
        html = replace_template_variables(
            "<p>{{organizationName}}</p>", {"organizationName": "<script>alert(1)</script>"}
        )

        assert html == "<p>&lt;script&gt;alert(1)&lt;/script&gt;</p>"

    def test_link_values_stay_valid_in_attributes(self) -> None:
        html = replace_template_variables(
            '<a href="{{btnLink}}">Go</a>', {"btnLink": "https://app/confirm?token=a&x=\"y"}
        )

        assert html == '<a href="https://app/confirm?token=a&amp;x=&quot;y">Go</a>'


@pytest.mark.django_db
class TestRenderEmail:
    """Tests for render_email."""

    def test_falls_back_to_bundled_template(self) -> None:
        subject, html = render_email(
            "welcome",
            {"name": "Ada", "organizationName": "Acme", "baseUrl": "https://app"},
            default_template="emails/welcome.html",
            default_subject="Welcome to OpsDeck!",
        )

        assert subject == "Welcome to OpsDeck!"
        assert "Acme" in html
        assert 'href="https://app"' in html

    def test_stored_template_wins(self) -> None:
        EmailTemplate.objects.create(email_type="welcome", name="Hello", html="Hi {{name}}")

        subject, html = render_email(
            "welcome",
            {"name": "Ada"},
            default_template="emails/welcome.html",
            default_subject="Welcome to OpsDeck!",
        )

        assert subject == "Hello"
        assert html == "Hi Ada"


@pytest.mark.django_db
class TestQueueAndDeliver:
    """Tests for queue_email and deliver_email."""

    def test_queue_creates_pending_row(self) -> None:
        email = queue_email("ada@example.com", "Subject", "<p>Body</p>", category="welcome")

        assert email.status == OutboundEmail.Status.PENDING
        assert email.from_email == settings.DEFAULT_FROM_EMAIL
        assert len(mail.outbox) == 0

    def test_deliver_sends_html_and_text(self) -> None:
        email = queue_email("ada@example.com", "Subject", "<p>Body</p>")

        deliver_email(email)

        assert len(mail.outbox) == 1
        message = mail.outbox[0]
        assert message.to == ["ada@example.com"]
        assert message.subject == "Subject"
        assert message.body == "Body"
        assert message.alternatives[0][0] == "<p>Body</p>"
