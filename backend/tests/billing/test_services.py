"""
Tests for billing services.

Covers checkout-driven provisioning, add-on and plan-change handling,
subscription lifecycle sync and checkout session creation.
"""

from datetime import UTC, datetime
from unittest.mock import MagicMock, patch

import pytest
import stripe
from django.contrib.auth.hashers import check_password
from django.db import DatabaseError

from apps.accounts.models import User
from apps.billing.exceptions import CheckoutError, SubscriptionRetrievalError
from apps.billing.models import Subscription
from apps.billing.schemas import SignupRequest
from apps.billing.services import (
    create_addon_checkout_session,
    create_signup_checkout_session,
    get_checkout_session_summary,
    handle_checkout_session_completed,
    handle_invoice_payment_failed,
    handle_subscription_deleted,
    subscription_period,
    sync_subscription,
)
from apps.emails.models import OutboundEmail
from apps.organizations.models import Organization, OrganizationAddOn
from tests.accounts.factories import UserFactory
from tests.billing.factories import PlanFactory, signup_session, stripe_subscription
from tests.organizations.factories import OrganizationAddOnFactory, OrganizationFactory

PERIOD_START = 1_700_000_000
PERIOD_END = 1_702_592_000


def ts(value: int) -> datetime:
    return datetime.fromtimestamp(value, tz=UTC)


@pytest.fixture
def mock_stripe():
    """Patch the configured Stripe module used by billing services."""
    with patch("apps.billing.services.get_stripe") as mock_get_stripe:
        stripe_module = MagicMock()
        mock_get_stripe.return_value = stripe_module
        yield stripe_module


class TestSubscriptionPeriod:
    """Tests for reading plan dates from a Stripe subscription."""

    def test_reads_top_level_period(self) -> None:
        period = subscription_period(stripe_subscription(trial_end=PERIOD_START + 86400))

        assert period.start == ts(PERIOD_START)
        assert period.end == ts(PERIOD_END)
        assert period.trial_end == ts(PERIOD_START + 86400)

    def test_falls_back_to_first_item(self) -> None:
        period = subscription_period(stripe_subscription(on_items=True))

        assert period.start == ts(PERIOD_START)
        assert period.end == ts(PERIOD_END)
        assert period.trial_end is None

    def test_missing_period_is_none(self) -> None:
        period = subscription_period({"id": "sub_1", "items": {"data": []}})

        assert period.start is None
        assert period.end is None


@pytest.mark.django_db
class TestProvisionNewOrganization:
    """Tests for checkout.session.completed with a new-organization signup."""

    def test_creates_owner_and_organization(self, mock_stripe: MagicMock) -> None:
        plan = PlanFactory.create(name="Pro")
        mock_stripe.Subscription.retrieve.return_value = stripe_subscription(
            subscription_id="sub_new", customer_id="cus_new", trial_end=PERIOD_START + 86400
        )

        handle_checkout_session_completed(signup_session(planId=str(plan.pk)))

        user = User.objects.get(email="ada@example.com")
        org = Organization.objects.get(checkout_session_id="cs_test_1")
        assert user.role == User.Role.ADMIN
        assert user.organization == org
        assert user.password == "md5$salt$hash"
        assert user.is_superuser is False
        assert user.email_verified is False
        assert org.owner == user
        assert org.status == Organization.Status.ACTIVE
        assert org.name == "Analytical Engines"
        assert org.slug == "analytical-engines"
        assert org.slug_history == ["analytical-engines"]
        assert org.plan == plan
        assert org.plan_name == "Pro"
        assert org.subscription_id == "sub_new"
        assert org.stripe_customer_id == "cus_new"
        assert org.plan_start_date == ts(PERIOD_START)
        assert org.plan_end_date == ts(PERIOD_END)
        assert org.trial_start_date is not None
        assert org.trial_end_date == ts(PERIOD_START + 86400)
        mock_stripe.Subscription.retrieve.assert_called_once_with("sub_new")

    def test_sdk_subscription_object_is_read(self, mock_stripe: MagicMock) -> None:
        mock_stripe.Subscription.retrieve.return_value = stripe.Subscription.construct_from(
            stripe_subscription("sub_new", customer_id="cus_new", on_items=True), "sk_test"
        )

        handle_checkout_session_completed(signup_session())

        org = Organization.objects.get(checkout_session_id="cs_test_1")
        assert org.plan_start_date == ts(PERIOD_START)
        assert org.plan_end_date == ts(PERIOD_END)
        assert org.subscription_id == "sub_new"
        assert org.stripe_customer_id == "cus_new"

    def test_queues_confirmation_and_welcome_emails(self, mock_stripe: MagicMock) -> None:
        mock_stripe.Subscription.retrieve.return_value = stripe_subscription("sub_new")

        handle_checkout_session_completed(signup_session())

        emails = OutboundEmail.objects.order_by("id")
        assert [e.category for e in emails] == ["emailConfirm", "welcome"]
        assert all(e.to == "ada@example.com" for e in emails)
        assert "/confirm-email?token=" in emails[0].html
        assert "Analytical Engines" in emails[1].html
        assert emails[1].subject == "Welcome to OpsDeck!"

    def test_redelivery_provisions_once(self, mock_stripe: MagicMock) -> None:
        mock_stripe.Subscription.retrieve.return_value = stripe_subscription("sub_new")

        handle_checkout_session_completed(signup_session())
        handle_checkout_session_completed(signup_session())

        assert Organization.all_objects.count() == 1
        assert User.objects.filter(email="ada@example.com").count() == 1
        assert OutboundEmail.objects.count() == 2
        assert mock_stripe.Subscription.retrieve.call_count == 1

    def test_organization_failure_rolls_back_user(self, mock_stripe: MagicMock) -> None:
        """A failed organization insert must not leave an orphaned owner."""
        mock_stripe.Subscription.retrieve.return_value = stripe_subscription("sub_new")

        with (
            patch.object(
                Organization.objects, "create", side_effect=DatabaseError("connection lost")
            ),
            pytest.raises(DatabaseError),
        ):
            handle_checkout_session_completed(signup_session())

        assert not User.objects.filter(email="ada@example.com").exists()
        assert not OutboundEmail.objects.exists()

    def test_existing_email_needs_manual_review(self, mock_stripe: MagicMock) -> None:
        UserFactory.create(email="ada@example.com")
        mock_stripe.Subscription.retrieve.return_value = stripe_subscription("sub_new")

        handle_checkout_session_completed(signup_session())

        assert not Organization.all_objects.exists()
        assert User.objects.filter(email="ada@example.com").count() == 1

    def test_taken_slug_rolls_back_user(self, mock_stripe: MagicMock) -> None:
        OrganizationFactory.create(slug="analytical-engines")
        mock_stripe.Subscription.retrieve.return_value = stripe_subscription("sub_new")

        handle_checkout_session_completed(signup_session())

        assert Organization.all_objects.count() == 1
        assert not User.objects.filter(email="ada@example.com").exists()

    def test_subscription_retrieval_failure_writes_nothing(self, mock_stripe: MagicMock) -> None:
        mock_stripe.Subscription.retrieve.side_effect = stripe.APIConnectionError("timeout")

        with pytest.raises(SubscriptionRetrievalError):
            handle_checkout_session_completed(signup_session())

        assert not User.objects.exists()
        assert not Organization.all_objects.exists()


@pytest.mark.django_db
class TestCheckoutSessionIgnored:
    """Sessions that carry nothing to provision."""

    def test_session_without_subscription(self, mock_stripe: MagicMock) -> None:
        session = signup_session()
        session["subscription"] = None

        handle_checkout_session_completed(session)

        mock_stripe.Subscription.retrieve.assert_not_called()
        assert not Organization.all_objects.exists()

    def test_session_without_metadata(self, mock_stripe: MagicMock) -> None:
        handle_checkout_session_completed({"id": "cs_1", "subscription": "sub_1", "metadata": {}})

        mock_stripe.Subscription.retrieve.assert_not_called()

    def test_invalid_metadata_is_logged_not_raised(self, mock_stripe: MagicMock) -> None:
        handle_checkout_session_completed(
            {"id": "cs_1", "subscription": "sub_1", "metadata": {"orgId": "not-a-number"}}
        )

        mock_stripe.Subscription.retrieve.assert_not_called()


@pytest.mark.django_db
class TestExistingOrganizationCheckout:
    """Tests for add-on purchases and plan changes on existing organizations."""

    def test_addon_purchase_recorded(self, mock_stripe: MagicMock) -> None:
        org = OrganizationFactory.create(stripe_customer_id="cus_org")
        addon_plan = PlanFactory.create(type="add-on")
        mock_stripe.Subscription.retrieve.return_value = stripe_subscription("sub_addon")
        session = {
            "id": "cs_addon",
            "customer": "cus_org",
            "subscription": "sub_addon",
            "metadata": {"orgId": str(org.pk), "planId": str(addon_plan.pk), "type": "add-on"},
        }

        handle_checkout_session_completed(session)

        addon = OrganizationAddOn.objects.get(stripe_subscription_id="sub_addon")
        assert addon.organization == org
        assert addon.plan == addon_plan
        assert addon.status == OrganizationAddOn.Status.ACTIVE
        assert addon.current_period_end == ts(PERIOD_END)
        assert addon.purchased_at is not None
        org.refresh_from_db()
        assert org.subscription_id != "sub_addon"

    def test_addon_redelivery_keeps_one_entry(self, mock_stripe: MagicMock) -> None:
        org = OrganizationFactory.create()
        mock_stripe.Subscription.retrieve.return_value = stripe_subscription("sub_addon")
        session = {
            "id": "cs_addon",
            "subscription": "sub_addon",
            "metadata": {"orgId": str(org.pk), "type": "add-on"},
        }

        handle_checkout_session_completed(session)
        first = OrganizationAddOn.objects.get()
        handle_checkout_session_completed(session)

        assert OrganizationAddOn.objects.count() == 1
        assert OrganizationAddOn.objects.get().purchased_at == first.purchased_at

    def test_addon_for_unknown_organization_ignored(self, mock_stripe: MagicMock) -> None:
        mock_stripe.Subscription.retrieve.return_value = stripe_subscription("sub_addon")

        handle_checkout_session_completed(
            {
                "id": "cs",
                "subscription": "sub_addon",
                "metadata": {"orgId": "999", "type": "add-on"},
            }
        )

        assert not OrganizationAddOn.objects.exists()

    def test_plan_change_overwrites_subscription(self, mock_stripe: MagicMock) -> None:
        org = OrganizationFactory.create(
            status=Organization.Status.CANCELED, subscription_id="sub_old"
        )
        mock_stripe.Subscription.retrieve.return_value = stripe_subscription(
            "sub_renewed", customer_id="cus_renewed", trial_end=PERIOD_START + 3600
        )

        handle_checkout_session_completed(
            {
                "id": "cs_change",
                "customer": "cus_renewed",
                "subscription": "sub_renewed",
                "metadata": {"orgId": str(org.pk)},
            }
        )

        org.refresh_from_db()
        assert org.status == Organization.Status.ACTIVE
        assert org.subscription_id == "sub_renewed"
        assert org.stripe_customer_id == "cus_renewed"
        assert org.plan_start_date == ts(PERIOD_START)
        assert org.plan_end_date == ts(PERIOD_END)
        assert org.trial_end_date == ts(PERIOD_START + 3600)
        assert not OrganizationAddOn.objects.exists()


@pytest.mark.django_db
class TestSyncSubscription:
    """Tests for customer.subscription.created/updated."""

    def test_upsert_creates_then_updates_single_row(self) -> None:
        sync_subscription(stripe_subscription("sub_1", status="trialing"))
        created_at = Subscription.objects.get().created_at

        sync_subscription(
            stripe_subscription("sub_1", status="active", period_end=PERIOD_END + 100)
        )

        subscription = Subscription.objects.get()
        assert Subscription.objects.count() == 1
        assert subscription.status == "active"
        assert subscription.current_period_end == ts(PERIOD_END + 100)
        assert subscription.stripe_price_id == "price_monthly_1"
        assert subscription.created_at == created_at

    def test_updates_organization_by_customer(self) -> None:
        org = OrganizationFactory.create(stripe_customer_id="cus_1")

        sync_subscription(stripe_subscription("sub_1", customer_id="cus_1", status="past_due"))

        org.refresh_from_db()
        assert org.status == "past_due"
        assert org.plan_end_date == ts(PERIOD_END)

    def test_mirror_written_without_organization(self) -> None:
        sync_subscription(stripe_subscription("sub_orphan", customer_id="cus_nobody"))

        assert Subscription.objects.filter(stripe_subscription_id="sub_orphan").exists()

    def test_addon_subscription_refreshes_addon_period(self) -> None:
        org = OrganizationFactory.create(stripe_customer_id="cus_1")
        OrganizationAddOnFactory.create(organization=org, stripe_subscription_id="sub_addon")

        sync_subscription(stripe_subscription("sub_addon", customer_id="cus_1", status="past_due"))

        org.refresh_from_db()
        assert org.status == "past_due"
        addon = OrganizationAddOn.objects.get(stripe_subscription_id="sub_addon")
        assert addon.current_period_end == ts(PERIOD_END)

    def test_blank_customer_matches_no_organization(self) -> None:
        org = OrganizationFactory.create(stripe_customer_id="")

        sync_subscription(stripe_subscription("sub_1", customer_id="", status="unpaid"))

        org.refresh_from_db()
        assert org.status == Organization.Status.ACTIVE


@pytest.mark.django_db
class TestHandleSubscriptionDeleted:
    """Tests for customer.subscription.deleted."""

    def test_cancels_organization_and_mirror(self) -> None:
        org = OrganizationFactory.create(stripe_customer_id="cus_1")
        sync_subscription(stripe_subscription("sub_1", customer_id="cus_1"))

        handle_subscription_deleted(stripe_subscription("sub_1", customer_id="cus_1"))

        org.refresh_from_db()
        assert org.status == Organization.Status.CANCELED
        assert Subscription.objects.get().status == Subscription.Status.CANCELED

    def test_deleted_then_updated_leaves_latest_status(self) -> None:
        """Last delivered event wins; no ordering is imposed."""
        org = OrganizationFactory.create(stripe_customer_id="cus_1")

        handle_subscription_deleted(stripe_subscription("sub_1", customer_id="cus_1"))
        sync_subscription(stripe_subscription("sub_1", customer_id="cus_1", status="active"))

        org.refresh_from_db()
        assert org.status == Organization.Status.ACTIVE

    def test_addon_deletion_keeps_organization_active(self) -> None:
        org = OrganizationFactory.create(stripe_customer_id="cus_1")
        OrganizationAddOnFactory.create(organization=org, stripe_subscription_id="sub_addon")

        handle_subscription_deleted(stripe_subscription("sub_addon", customer_id="cus_1"))

        org.refresh_from_db()
        assert org.status == Organization.Status.ACTIVE
        assert OrganizationAddOn.objects.get().status == OrganizationAddOn.Status.CANCELED

    def test_soft_deleted_organization_still_synced(self) -> None:
        org = OrganizationFactory.create(stripe_customer_id="cus_1")
        org.soft_delete()

        handle_subscription_deleted(stripe_subscription("sub_1", customer_id="cus_1"))

        assert Organization.all_objects.get(pk=org.pk).status == Organization.Status.CANCELED


@pytest.mark.django_db
class TestHandleInvoicePaymentFailed:
    """Tests for invoice.payment_failed."""

    def test_marks_past_due_and_keeps_dates(self) -> None:
        org = OrganizationFactory.create(
            stripe_customer_id="cus_1",
            plan_start_date=ts(PERIOD_START),
            plan_end_date=ts(PERIOD_END),
        )

        handle_invoice_payment_failed({"id": "in_1", "customer": "cus_1"})

        org.refresh_from_db()
        assert org.status == Organization.Status.PAST_DUE
        assert org.plan_start_date == ts(PERIOD_START)
        assert org.plan_end_date == ts(PERIOD_END)

    def test_unknown_customer_is_noop(self) -> None:
        org = OrganizationFactory.create(stripe_customer_id="cus_1")

        handle_invoice_payment_failed({"id": "in_1", "customer": "cus_other"})

        org.refresh_from_db()
        assert org.status == Organization.Status.ACTIVE


def signup_request(**overrides) -> SignupRequest:
    data = {
        "first_name": "Grace",
        "last_name": "Hopper",
        "email": "grace@example.com",
        "password": "cobol-rules",
        "organization_name": "Compiler Works",
        "plan_id": 0,
        "billing_period": "monthly",
    }
    data.update(overrides)
    return SignupRequest(**data)


@pytest.mark.django_db
class TestCreateSignupCheckoutSession:
    """Tests for starting a signup checkout."""

    def test_creates_session_with_signup_metadata(self, mock_stripe: MagicMock) -> None:
        plan = PlanFactory.create(name="Pro", trial_period_days=15)
        mock_stripe.checkout.Session.create.return_value = MagicMock(
            id="cs_1", url="https://checkout.stripe.com/c/cs_1"
        )

        url = create_signup_checkout_session(
            signup_request(plan_id=plan.pk), origin="https://app.example.com"
        )

        assert url == "https://checkout.stripe.com/c/cs_1"
        kwargs = mock_stripe.checkout.Session.create.call_args.kwargs
        assert kwargs["mode"] == "subscription"
        assert kwargs["customer_email"] == "grace@example.com"
        assert kwargs["line_items"] == [{"price": plan.stripe_price_monthly, "quantity": 1}]
        assert kwargs["subscription_data"] == {"trial_period_days": 15}
        assert kwargs["success_url"].startswith("https://app.example.com/payment/success")
        metadata = kwargs["metadata"]
        assert metadata["signupType"] == "new_organization"
        assert metadata["slug"] == "compiler-works"
        assert metadata["planId"] == str(plan.pk)
        assert metadata["password"] != "cobol-rules"
        assert check_password("cobol-rules", metadata["password"])
        assert not Organization.all_objects.exists()
        assert not User.objects.exists()

    def test_explicit_slug_is_normalized(self, mock_stripe: MagicMock) -> None:
        plan = PlanFactory.create()
        mock_stripe.checkout.Session.create.return_value = MagicMock(id="cs_1", url="https://x")

        create_signup_checkout_session(
            signup_request(plan_id=plan.pk, slug="My Team"), origin="https://app"
        )

        metadata = mock_stripe.checkout.Session.create.call_args.kwargs["metadata"]
        assert metadata["slug"] == "my-team"

    def test_existing_email_rejected(self, mock_stripe: MagicMock) -> None:
        plan = PlanFactory.create()
        UserFactory.create(email="grace@example.com")

        with pytest.raises(CheckoutError, match="already exists"):
            create_signup_checkout_session(signup_request(plan_id=plan.pk), origin="https://app")

        mock_stripe.checkout.Session.create.assert_not_called()

    def test_inactive_plan_rejected(self, mock_stripe: MagicMock) -> None:
        plan = PlanFactory.create(status="inactive")

        with pytest.raises(CheckoutError, match="Plan not found"):
            create_signup_checkout_session(signup_request(plan_id=plan.pk), origin="https://app")

    def test_missing_price_rejected(self, mock_stripe: MagicMock) -> None:
        plan = PlanFactory.create(stripe_price_yearly="")

        with pytest.raises(CheckoutError, match="yearly"):
            create_signup_checkout_session(
                signup_request(plan_id=plan.pk, billing_period="yearly"), origin="https://app"
            )

    def test_invalid_slug_rejected(self, mock_stripe: MagicMock) -> None:
        plan = PlanFactory.create()

        with pytest.raises(CheckoutError, match="Slug"):
            create_signup_checkout_session(
                signup_request(plan_id=plan.pk, slug="!!!"), origin="https://app"
            )

    def test_taken_slug_rejected(self, mock_stripe: MagicMock) -> None:
        plan = PlanFactory.create()
        OrganizationFactory.create(slug="compiler-works")

        with pytest.raises(CheckoutError, match="already exists"):
            create_signup_checkout_session(signup_request(plan_id=plan.pk), origin="https://app")

    def test_stripe_failure_is_500(self, mock_stripe: MagicMock) -> None:
        plan = PlanFactory.create()
        mock_stripe.checkout.Session.create.side_effect = stripe.APIConnectionError("down")

        with pytest.raises(CheckoutError) as exc_info:
            create_signup_checkout_session(signup_request(plan_id=plan.pk), origin="https://app")

        assert exc_info.value.status_code == 500


@pytest.mark.django_db
class TestCreateAddonCheckoutSession:
    """Tests for starting an add-on checkout."""

    def test_reuses_organization_customer(self, mock_stripe: MagicMock, admin_user) -> None:
        plan = PlanFactory.create(type="add-on")
        mock_stripe.checkout.Session.create.return_value = MagicMock(id="cs_a", url="https://a")

        url = create_addon_checkout_session(admin_user, plan.pk, "monthly", "https://app")

        assert url == "https://a"
        kwargs = mock_stripe.checkout.Session.create.call_args.kwargs
        assert kwargs["customer"] == "cus_existing"
        assert "customer_email" not in kwargs
        assert kwargs["metadata"] == {
            "orgId": str(admin_user.organization_id),
            "planId": str(plan.pk),
            "type": "add-on",
        }

    def test_uses_email_without_customer(self, mock_stripe: MagicMock) -> None:
        org = OrganizationFactory.create(stripe_customer_id="")
        user = UserFactory.create(organization=org, role=User.Role.ADMIN)
        plan = PlanFactory.create(type="add-on")
        mock_stripe.checkout.Session.create.return_value = MagicMock(id="cs_a", url="https://a")

        create_addon_checkout_session(user, plan.pk, "monthly", "https://app")

        kwargs = mock_stripe.checkout.Session.create.call_args.kwargs
        assert kwargs["customer_email"] == user.email

    def test_regular_plan_is_not_an_addon(self, mock_stripe: MagicMock, admin_user) -> None:
        plan = PlanFactory.create(type="plan")

        with pytest.raises(CheckoutError) as exc_info:
            create_addon_checkout_session(admin_user, plan.pk, "monthly", "https://app")

        assert exc_info.value.status_code == 404

    def test_user_without_organization_rejected(self, mock_stripe: MagicMock) -> None:
        user = UserFactory.create(organization=None)
        plan = PlanFactory.create(type="add-on")

        with pytest.raises(CheckoutError, match="not associated"):
            create_addon_checkout_session(user, plan.pk, "monthly", "https://app")


class TestGetCheckoutSessionSummary:
    """Tests for summarizing a checkout session."""

    def test_summarizes_expanded_session(self, mock_stripe: MagicMock) -> None:
        mock_stripe.checkout.Session.retrieve.return_value = {
            "status": "complete",
            "amount_total": 0,
            "currency": "usd",
            "customer_details": {"email": "ada@example.com"},
            "metadata": {"signupType": "new_organization"},
            "line_items": {
                "data": [
                    {
                        "price": {
                            "unit_amount": 4900,
                            "recurring": {"interval": "month"},
                            "product": {"name": "Pro"},
                        }
                    }
                ]
            },
            "subscription": stripe_subscription(trial_end=PERIOD_START + 86400),
        }

        summary = get_checkout_session_summary("cs_1")

        assert summary["status"] == "complete"
        assert summary["customer_email"] == "ada@example.com"
        assert summary["plan_name"] == "Pro"
        assert summary["amount"] == 4900
        assert summary["interval"] == "month"
        assert summary["trial_end"] == PERIOD_START + 86400
        assert summary["next_billing_date"] == PERIOD_END
        assert summary["is_new_signup"] is True

    def test_summarizes_sdk_session_object(self, mock_stripe: MagicMock) -> None:
        mock_stripe.checkout.Session.retrieve.return_value = stripe.checkout.Session.construct_from(
            {
                "id": "cs_1",
                "object": "checkout.session",
                "status": "open",
                "customer_details": {"email": "ada@example.com"},
                "metadata": {},
                "line_items": {
                    "object": "list",
                    "data": [{"price": {"unit_amount": 1900, "product": {"name": "Seats"}}}],
                },
                "subscription": "sub_unexpanded",
            },
            "sk_test",
        )

        summary = get_checkout_session_summary("cs_1")

        assert summary["status"] == "open"
        assert summary["customer_email"] == "ada@example.com"
        assert summary["plan_name"] == "Seats"
        assert summary["amount"] == 1900
        assert summary["next_billing_date"] is None
        assert summary["is_new_signup"] is False

    def test_stripe_failure_raises(self, mock_stripe: MagicMock) -> None:
        mock_stripe.checkout.Session.retrieve.side_effect = stripe.InvalidRequestError(
            "No such session", "id"
        )

        with pytest.raises(CheckoutError):
            get_checkout_session_summary("cs_missing")
