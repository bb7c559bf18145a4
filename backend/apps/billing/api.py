"""
Billing API endpoints.

Signup and add-on Stripe Checkout sessions, and checkout result lookup.
Accounts and add-ons are only created by the Stripe webhook after payment.
"""

from django.http import HttpRequest
from ninja import Router
from ninja.errors import HttpError

from apps.billing.exceptions import CheckoutError
from apps.billing.schemas import (
    AddonCheckoutRequest,
    CheckoutSessionResponse,
    CheckoutSessionSummary,
    SignupRequest,
)
from apps.billing.services import (
    create_addon_checkout_session,
    create_signup_checkout_session,
    get_checkout_session_summary,
)
from apps.core.logging import get_logger
from apps.core.schemas import ErrorResponse
from apps.core.security import BearerAuth, require_admin
from config.settings.base import settings

logger = get_logger(__name__)

router = Router(tags=["billing"])
bearer_auth = BearerAuth()


def _origin(request: HttpRequest) -> str:
    """
    Pick the origin Stripe sends the customer back to.

    The request Origin is only trusted when it is the app URL or one of
    CHECKOUT_REDIRECT_ORIGINS; anything else falls back to the app URL.
    """
    app_origin = settings.APP_URL.rstrip("/")
    allowed = {app_origin}
    allowed.update(
        o.strip().rstrip("/") for o in settings.CHECKOUT_REDIRECT_ORIGINS.split(",") if o.strip()
    )
    origin = (request.headers.get("Origin") or "").rstrip("/")
    return origin if origin in allowed else app_origin


@router.post(
    "/signup",
    response={200: CheckoutSessionResponse, 400: ErrorResponse, 500: ErrorResponse},
    operation_id="createSignupCheckout",
    summary="Start signup checkout for a new organization",
)
def signup_checkout(request: HttpRequest, payload: SignupRequest) -> CheckoutSessionResponse:
    """
    Validate signup data and create a Stripe Checkout session.

    The organization and owner account are created only after payment
    succeeds. Returns the URL to redirect the user to.
    """
    try:
        checkout_url = create_signup_checkout_session(payload, origin=_origin(request))
    except CheckoutError as e:
        raise HttpError(e.status_code, str(e)) from e

    return CheckoutSessionResponse(checkout_url=checkout_url)


@router.post(
    "/addon-checkout",
    response={
        200: CheckoutSessionResponse,
        400: ErrorResponse,
        401: ErrorResponse,
        403: ErrorResponse,
        404: ErrorResponse,
        500: ErrorResponse,
    },
    auth=bearer_auth,
    operation_id="createAddonCheckout",
    summary="Start checkout for an add-on",
)
def addon_checkout(request: HttpRequest, payload: AddonCheckoutRequest) -> CheckoutSessionResponse:
    """
    Create a Stripe Checkout session for an add-on.

    Admin only. The add-on is attached to the caller's organization.
    """
    user = require_admin(request.auth)

    try:
        checkout_url = create_addon_checkout_session(
            user=user,
            plan_id=payload.plan_id,
            billing_period=payload.billing_period,
            origin=_origin(request),
        )
    except CheckoutError as e:
        raise HttpError(e.status_code, str(e)) from e

    return CheckoutSessionResponse(checkout_url=checkout_url)


@router.get(
    "/session",
    response={200: CheckoutSessionSummary, 400: ErrorResponse, 500: ErrorResponse},
    operation_id="getCheckoutSession",
    summary="Get checkout session result",
)
def checkout_session(request: HttpRequest, session_id: str = "") -> CheckoutSessionSummary:
    """Summarize a checkout session for the payment success page."""
    if not session_id:
        raise HttpError(400, "Session ID is required")

    try:
        summary = get_checkout_session_summary(session_id)
    except CheckoutError as e:
        raise HttpError(e.status_code, str(e)) from e

    return CheckoutSessionSummary(**summary)
