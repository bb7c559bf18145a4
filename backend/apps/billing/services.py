"""
Billing services - Stripe-driven provisioning and subscription sync.

All Stripe API calls are isolated here for testability.
External calls must NOT be inside database transactions: every handler
fetches what it needs from Stripe first, then writes.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import stripe
from django.db import IntegrityError, transaction
from django.utils import timezone
from pydantic import ValidationError

from apps.accounts.models import User
from apps.accounts.services import create_owner_user, queue_onboarding_emails
from apps.billing.exceptions import CheckoutError, SubscriptionRetrievalError
from apps.billing.models import Plan, Subscription
from apps.billing.schemas import (
    ADDON_CHECKOUT_TYPE,
    NEW_ORGANIZATION_SIGNUP,
    ExistingOrganizationMetadata,
    NewOrganizationMetadata,
    SignupRequest,
    parse_checkout_metadata,
)
from apps.billing.stripe_client import get_stripe, to_plain
from apps.core.logging import get_logger
from apps.organizations.models import Organization, OrganizationAddOn
from apps.organizations.services import (
    ensure_organization_indexes,
    is_slug_taken,
    normalize_slug,
    validate_slug,
)

logger = get_logger(__name__)

StripeObject = Mapping[str, Any]


# --- Stripe data helpers ---


@dataclass(frozen=True)
class SubscriptionPeriod:
    """Plan window derived from a Stripe subscription."""

    start: datetime | None
    end: datetime | None
    trial_end: datetime | None


def _from_timestamp(value: int | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromtimestamp(value, tz=UTC)


def subscription_period(stripe_subscription: StripeObject) -> SubscriptionPeriod:
    """
    Read current period start/end and trial end (epoch seconds) from a subscription.

    Newer Stripe API versions report the period on subscription items
    rather than the subscription itself; both locations are checked.
    """
    start_ts = stripe_subscription.get("current_period_start")
    end_ts = stripe_subscription.get("current_period_end")

    if not start_ts or not end_ts:
        items = (stripe_subscription.get("items") or {}).get("data") or []
        if items:
            start_ts = start_ts or items[0].get("current_period_start")
            end_ts = end_ts or items[0].get("current_period_end")

    return SubscriptionPeriod(
        start=_from_timestamp(start_ts),
        end=_from_timestamp(end_ts),
        trial_end=_from_timestamp(stripe_subscription.get("trial_end")),
    )


def _price_id(stripe_subscription: StripeObject) -> str:
    items = (stripe_subscription.get("items") or {}).get("data") or []
    return items[0]["price"]["id"] if items else ""


def _get_plan(plan_id: str | int | None) -> Plan | None:
    if plan_id in (None, ""):
        return None
    try:
        return Plan.all_objects.filter(pk=int(plan_id)).first()
    except (TypeError, ValueError):
        logger.warning("checkout_plan_id_invalid", plan_id=plan_id)
        return None


def retrieve_subscription(subscription_id: str) -> StripeObject:
    """
    Fetch a full subscription from Stripe.

    Raises:
        SubscriptionRetrievalError: If Stripe cannot return it
    """
    stripe_module = get_stripe()
    try:
        return to_plain(stripe_module.Subscription.retrieve(subscription_id))
    except stripe.StripeError as e:
        logger.error(
            "stripe_subscription_retrieve_failed",
            subscription_id=subscription_id,
            error=str(e),
        )
        raise SubscriptionRetrievalError(subscription_id) from e


# --- checkout.session.completed ---


def handle_checkout_session_completed(session: StripeObject) -> None:
    """
    Handle checkout.session.completed webhook.

    Branches on the session metadata: a new-organization signup is
    provisioned; a reference to an existing organization is either an
    add-on purchase or a plan change. Sessions without a subscription or
    without recognised metadata are ignored.
    """
    session_id = session.get("id")
    subscription_id = session.get("subscription")
    if not subscription_id:
        logger.info("checkout_session_without_subscription", session_id=session_id)
        return

    try:
        metadata = parse_checkout_metadata(session.get("metadata"))
    except ValidationError as e:
        logger.error(
            "checkout_metadata_invalid",
            session_id=session_id,
            errors=e.errors(include_url=False, include_input=False),
        )
        return

    if metadata is None:
        logger.info("checkout_session_without_provisioning_metadata", session_id=session_id)
        return

    if isinstance(metadata, NewOrganizationMetadata) and _already_provisioned(session_id):
        logger.info("checkout_session_already_provisioned", session_id=session_id)
        return

    subscription = retrieve_subscription(subscription_id)

    if isinstance(metadata, NewOrganizationMetadata):
        provision_new_organization(session, metadata, subscription)
    elif metadata.is_addon:
        apply_addon_purchase(session, metadata, subscription)
    else:
        apply_plan_change(session, metadata, subscription)


def _already_provisioned(session_id: str | None) -> bool:
    if not session_id:
        return False
    return Organization.all_objects.filter(checkout_session_id=session_id).exists()


def provision_new_organization(
    session: StripeObject,
    metadata: NewOrganizationMetadata,
    stripe_subscription: StripeObject,
) -> Organization | None:
    """
    Create the owner user and organization for a paid signup.

    User, organization, the user->organization link and the onboarding emails
    are written in one transaction: if the organization cannot be created the
    user is rolled back with it. The checkout session id is stored with a
    unique constraint, so a redelivered event cannot provision twice.

    Returns the organization, or None when provisioning was skipped because
    the data conflicts with existing records (needs manual review).

    Raises:
        DatabaseError: On any other persistence failure, so Stripe redelivers
    """
    session_id = session.get("id")
    period = subscription_period(stripe_subscription)
    plan = _get_plan(metadata.plan_id)
    now = timezone.now()

    try:
        with transaction.atomic():
            owner = create_owner_user(
                first_name=metadata.first_name,
                last_name=metadata.last_name,
                email=metadata.email,
                password_hash=metadata.password_hash,
            )

            organization = Organization.objects.create(
                name=metadata.organization_name,
                slug=metadata.slug,
                slug_history=[metadata.slug],
                status=Organization.Status.ACTIVE,
                owner=owner,
                plan=plan,
                plan_name=metadata.plan_name or (plan.name if plan else ""),
                subscription_id=stripe_subscription["id"],
                stripe_customer_id=session.get("customer") or "",
                checkout_session_id=session_id,
                plan_start_date=period.start,
                plan_end_date=period.end,
                trial_start_date=now,
                trial_end_date=period.trial_end,
            )

            owner.organization = organization
            owner.save(update_fields=["organization", "updated_at"])

            queue_onboarding_emails(owner, organization)
    except IntegrityError as e:
        if _already_provisioned(session_id):
            logger.info("checkout_session_already_provisioned", session_id=session_id)
            return None
        logger.error(
            "provisioning_manual_review_required",
            session_id=session_id,
            email=metadata.email,
            slug=metadata.slug,
            error=str(e),
        )
        return None

    ensure_organization_indexes()

    logger.info(
        "organization_provisioned",
        organization_id=organization.pk,
        owner_id=owner.pk,
        session_id=session_id,
        subscription_id=stripe_subscription["id"],
    )
    return organization


def apply_addon_purchase(
    session: StripeObject,
    metadata: ExistingOrganizationMetadata,
    stripe_subscription: StripeObject,
) -> OrganizationAddOn | None:
    """
    Record an add-on bought by an existing organization.

    Keyed by the add-on's Stripe subscription id, so redelivery of the same
    event leaves exactly one entry.
    """
    organization = Organization.all_objects.filter(pk=metadata.org_id).first()
    if organization is None:
        logger.warning("addon_organization_not_found", organization_id=metadata.org_id)
        return None

    period = subscription_period(stripe_subscription)
    fields = {
        "organization": organization,
        "plan": _get_plan(metadata.plan_id),
        "stripe_customer_id": session.get("customer") or "",
        "status": OrganizationAddOn.Status.ACTIVE,
        "current_period_end": period.end,
    }
    addon, created = OrganizationAddOn.objects.update_or_create(
        stripe_subscription_id=stripe_subscription["id"],
        defaults=fields,
        create_defaults={**fields, "purchased_at": timezone.now()},
    )

    logger.info(
        "organization_addon_recorded",
        organization_id=organization.pk,
        subscription_id=addon.stripe_subscription_id,
        created=created,
    )
    return addon


def apply_plan_change(
    session: StripeObject,
    metadata: ExistingOrganizationMetadata,
    stripe_subscription: StripeObject,
) -> bool:
    """
    Point an existing organization at a new or renewed primary subscription.

    Unconditional overwrite: the last delivered event wins.

    Returns True if the organization was found and updated.
    """
    period = subscription_period(stripe_subscription)
    update: dict[str, Any] = {
        "status": Organization.Status.ACTIVE,
        "subscription_id": stripe_subscription["id"],
        "stripe_customer_id": session.get("customer") or "",
        "plan_start_date": period.start,
        "plan_end_date": period.end,
        "updated_at": timezone.now(),
    }
    if period.trial_end:
        update["trial_end_date"] = period.trial_end

    updated = Organization.all_objects.filter(pk=metadata.org_id).update(**update)
    if not updated:
        logger.warning("plan_change_organization_not_found", organization_id=metadata.org_id)
        return False

    logger.info(
        "organization_plan_updated",
        organization_id=metadata.org_id,
        subscription_id=stripe_subscription["id"],
    )
    return True


# --- Subscription lifecycle ---


def sync_subscription(stripe_subscription: StripeObject) -> Subscription:
    """
    Handle customer.subscription.created / customer.subscription.updated.

    Upserts the local mirror by Stripe subscription id (created_at is only
    set on insert), then separately sets status and plan end date on the
    organization with the same customer id. The two writes are independent.
    If the subscription pays for an add-on, that add-on's period end is
    refreshed as well.
    """
    subscription_id = stripe_subscription["id"]
    customer_id = stripe_subscription.get("customer") or ""
    status = stripe_subscription["status"]
    period = subscription_period(stripe_subscription)

    subscription, created = Subscription.objects.update_or_create(
        stripe_subscription_id=subscription_id,
        defaults={
            "stripe_customer_id": customer_id,
            "stripe_price_id": _price_id(stripe_subscription),
            "status": status,
            "current_period_start": period.start,
            "current_period_end": period.end,
            "cancel_at_period_end": bool(stripe_subscription.get("cancel_at_period_end")),
        },
    )
    logger.info(
        "subscription_mirror_synced",
        subscription_id=subscription_id,
        status=status,
        created=created,
    )

    OrganizationAddOn.objects.filter(stripe_subscription_id=subscription_id).update(
        current_period_end=period.end,
        updated_at=timezone.now(),
    )

    if not customer_id:
        return subscription

    updated = Organization.all_objects.filter(stripe_customer_id=customer_id).update(
        status=status,
        plan_end_date=period.end,
        updated_at=timezone.now(),
    )
    if updated:
        logger.info("organization_status_synced", customer_id=customer_id, status=status)
    else:
        logger.debug("subscription_customer_has_no_organization", customer_id=customer_id)

    return subscription


def handle_subscription_deleted(stripe_subscription: StripeObject) -> None:
    """
    Handle customer.subscription.deleted webhook.

    Marks the mirror canceled. If the subscription paid for an add-on only
    that add-on is canceled; otherwise the owning organization is.
    """
    subscription_id = stripe_subscription["id"]
    customer_id = stripe_subscription.get("customer") or ""
    now = timezone.now()

    Subscription.objects.filter(stripe_subscription_id=subscription_id).update(
        status=Subscription.Status.CANCELED,
        updated_at=now,
    )

    addons = OrganizationAddOn.objects.filter(stripe_subscription_id=subscription_id)
    if addons.exists():
        addons.update(status=OrganizationAddOn.Status.CANCELED, updated_at=now)
        logger.info("organization_addon_canceled", subscription_id=subscription_id)
        return

    if not customer_id:
        logger.warning("subscription_deleted_without_customer", subscription_id=subscription_id)
        return

    Organization.all_objects.filter(stripe_customer_id=customer_id).update(
        status=Organization.Status.CANCELED,
        updated_at=now,
    )
    logger.info(
        "organization_subscription_canceled",
        subscription_id=subscription_id,
        customer_id=customer_id,
    )


def handle_invoice_payment_failed(invoice: StripeObject) -> None:
    """
    Handle invoice.payment_failed webhook.

    Marks the customer's organization past_due. Plan dates are untouched.
    """
    customer_id = invoice.get("customer") or ""
    if not customer_id:
        logger.warning("invoice_payment_failed_without_customer", invoice_id=invoice.get("id"))
        return

    updated = Organization.all_objects.filter(stripe_customer_id=customer_id).update(
        status=Organization.Status.PAST_DUE,
        updated_at=timezone.now(),
    )
    logger.warning(
        "stripe_invoice_payment_failed",
        invoice_id=invoice.get("id"),
        customer_id=customer_id,
        organizations_marked=updated,
    )


# --- Checkout creation ---


def _get_active_plan(plan_id: int, plan_type: str) -> Plan | None:
    return Plan.objects.filter(pk=plan_id, status=Plan.Status.ACTIVE, type=plan_type).first()


def create_signup_checkout_session(payload: SignupRequest, origin: str) -> str:
    """
    Create a Stripe Checkout session for a new organization signup.

    Nothing is written locally: the user and organization are created by the
    webhook once payment succeeds, from the metadata stored on the session.
    The password is hashed here and only the hash travels in the metadata.

    Returns the checkout session URL.

    Raises:
        CheckoutError: If the signup data is rejected or Stripe fails
    """
    from django.contrib.auth.hashers import make_password

    if User.objects.filter(email__iexact=payload.email).exists():
        raise CheckoutError("User with this email already exists")

    plan = _get_active_plan(payload.plan_id, Plan.Type.PLAN)
    if plan is None:
        raise CheckoutError("Plan not found or inactive. Please select a valid plan.")

    price_id = plan.price_for(payload.billing_period)
    if not price_id:
        raise CheckoutError(f"Price not found for {payload.billing_period} billing.")

    if payload.slug:
        slug = normalize_slug(payload.slug)
        if not validate_slug(slug):
            raise CheckoutError(
                "Slug must contain only lowercase letters, numbers, and hyphens (max 50 characters)"
            )
    else:
        slug = normalize_slug(payload.organization_name)[:50].strip("-")
        if not slug:
            slug = f"org-{int(timezone.now().timestamp())}"

    if is_slug_taken(slug):
        raise CheckoutError(
            "Organization with this name/slug already exists. Please choose a different name."
        )

    stripe_module = get_stripe()
    try:
        session = stripe_module.checkout.Session.create(
            mode="subscription",
            customer_email=payload.email,
            line_items=[{"price": price_id, "quantity": 1}],
            subscription_data={"trial_period_days": plan.trial_period_days},
            metadata={
                "signupType": NEW_ORGANIZATION_SIGNUP,
                "firstName": payload.first_name,
                "lastName": payload.last_name,
                "email": payload.email,
                "password": make_password(payload.password),
                "organizationName": payload.organization_name,
                "slug": slug,
                "planId": str(plan.pk),
                "planName": plan.name,
                "billingPeriod": payload.billing_period,
            },
            success_url=f"{origin}/payment/success?session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{origin}/payment/failed",
        )
    except stripe.StripeError as e:
        logger.error("signup_checkout_session_failed", error=str(e))
        raise CheckoutError("Failed to initiate payment session", status_code=500) from e

    if not session.url:
        raise CheckoutError("Failed to generate checkout URL", status_code=500)

    logger.info("signup_checkout_session_created", session_id=session.id, slug=slug)
    return session.url


def create_addon_checkout_session(
    user: User,
    plan_id: int,
    billing_period: str,
    origin: str,
) -> str:
    """
    Create a Stripe Checkout session for an add-on on the user's organization.

    Each add-on is a separate subscription. The organization's existing
    Stripe customer is reused when it has one.

    Returns the checkout session URL.

    Raises:
        CheckoutError: If the plan, price or organization is missing, or Stripe fails
    """
    plan = _get_active_plan(plan_id, Plan.Type.ADD_ON)
    if plan is None:
        raise CheckoutError("Invalid or inactive Add-on Plan", status_code=404)

    price_id = plan.price_for(billing_period)
    if not price_id:
        raise CheckoutError(f"Price not available for {billing_period} billing")

    if user.organization_id is None:
        raise CheckoutError("User is not associated with an organization")

    organization = Organization.objects.filter(pk=user.organization_id).first()
    if organization is None:
        raise CheckoutError("Organization not found", status_code=404)

    params: dict[str, Any] = {
        "mode": "subscription",
        "line_items": [{"price": price_id, "quantity": 1}],
        "metadata": {
            "orgId": str(organization.pk),
            "planId": str(plan.pk),
            "type": ADDON_CHECKOUT_TYPE,
        },
        "success_url": f"{origin}/payment/success?session_id={{CHECKOUT_SESSION_ID}}&type=addon",
        "cancel_url": f"{origin}/dashboard/settings?canceled=true",
    }
    if organization.stripe_customer_id:
        params["customer"] = organization.stripe_customer_id
    else:
        params["customer_email"] = user.email

    stripe_module = get_stripe()
    try:
        session = stripe_module.checkout.Session.create(**params)
    except stripe.StripeError as e:
        logger.error("addon_checkout_session_failed", organization_id=organization.pk, error=str(e))
        raise CheckoutError("Failed to initiate checkout", status_code=500) from e

    logger.info(
        "addon_checkout_session_created",
        session_id=session.id,
        organization_id=organization.pk,
        plan_id=plan.pk,
    )
    return session.url


def get_checkout_session_summary(session_id: str) -> dict[str, Any]:
    """
    Summarize a checkout session for the payment result page.

    Raises:
        CheckoutError: If Stripe cannot return the session
    """
    stripe_module = get_stripe()
    try:
        session = to_plain(
            stripe_module.checkout.Session.retrieve(
                session_id,
                expand=["line_items.data.price.product", "subscription"],
            )
        )
    except stripe.StripeError as e:
        logger.error("checkout_session_retrieve_failed", session_id=session_id, error=str(e))
        raise CheckoutError("Failed to retrieve session", status_code=500) from e

    subscription = session.get("subscription") or {}
    line_items = (session.get("line_items") or {}).get("data") or []
    price = line_items[0].get("price") if line_items else None
    product = (price or {}).get("product") or {}
    if isinstance(product, str):
        product = {}
    if isinstance(subscription, str):
        subscription = {}
    period = subscription_period(subscription) if subscription else None

    return {
        "status": session.get("status"),
        "amount_total": session.get("amount_total"),
        "currency": session.get("currency"),
        "customer_email": (session.get("customer_details") or {}).get("email"),
        "plan_name": product.get("name"),
        "amount": (price or {}).get("unit_amount"),
        "interval": ((price or {}).get("recurring") or {}).get("interval"),
        "trial_end": subscription.get("trial_end"),
        "next_billing_date": int(period.end.timestamp()) if period and period.end else None,
        "is_new_signup": (session.get("metadata") or {}).get("signupType")
        == NEW_ORGANIZATION_SIGNUP,
    }
