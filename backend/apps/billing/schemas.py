"""
Billing schemas - checkout metadata and request/response types.
"""

from collections.abc import Mapping
from typing import Any, Literal

from ninja import Schema
from pydantic import BaseModel, EmailStr, Field

NEW_ORGANIZATION_SIGNUP = "new_organization"
ADDON_CHECKOUT_TYPE = "add-on"


# --- Checkout session metadata ---


class NewOrganizationMetadata(BaseModel):
    """Signup data carried on a checkout session for a brand new organization."""

    signup_type: Literal["new_organization"] = Field(alias="signupType")
    first_name: str = Field(alias="firstName")
    last_name: str = Field(alias="lastName")
    email: str
    password_hash: str = Field(alias="password", min_length=1)
    organization_name: str = Field(alias="organizationName", min_length=1)
    slug: str = Field(min_length=1)
    plan_id: str | None = Field(default=None, alias="planId")
    plan_name: str = Field(default="", alias="planName")
    billing_period: str | None = Field(default=None, alias="billingPeriod")

    model_config = {"populate_by_name": True}


class ExistingOrganizationMetadata(BaseModel):
    """Reference to an existing organization buying an add-on or changing plan."""

    org_id: int = Field(alias="orgId")
    plan_id: str | None = Field(default=None, alias="planId")
    type: str | None = None

    model_config = {"populate_by_name": True}

    @property
    def is_addon(self) -> bool:
        return self.type == ADDON_CHECKOUT_TYPE


CheckoutMetadata = NewOrganizationMetadata | ExistingOrganizationMetadata


def parse_checkout_metadata(
    metadata: Mapping[str, Any] | None,
) -> CheckoutMetadata | None:
    """
    Decide which checkout shape a session's metadata carries.

    Returns None when the session carries neither shape.

    Raises:
        pydantic.ValidationError: If a shape is flagged but its fields are invalid
    """
    data = dict(metadata or {})
    if data.get("signupType") == NEW_ORGANIZATION_SIGNUP:
        return NewOrganizationMetadata.model_validate(data)
    if data.get("orgId"):
        return ExistingOrganizationMetadata.model_validate(data)
    return None


# --- API ---


class SignupRequest(Schema):
    """Public signup; creates a Stripe Checkout session for a new organization."""

    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=6)
    organization_name: str = Field(..., min_length=2, max_length=100)
    slug: str | None = None
    plan_id: int
    billing_period: Literal["monthly", "yearly"]


class AddonCheckoutRequest(Schema):
    """Request to buy an add-on for the caller's organization."""

    plan_id: int
    billing_period: Literal["monthly", "yearly"]


class CheckoutSessionResponse(Schema):
    """Response with Checkout session URL."""

    checkout_url: str


class CheckoutSessionSummary(Schema):
    """Summary of a completed checkout for the payment result page."""

    status: str | None
    amount_total: int | None
    currency: str | None
    customer_email: str | None
    plan_name: str | None
    amount: int | None
    interval: str | None
    trial_end: int | None  # epoch seconds
    next_billing_date: int | None  # epoch seconds
    is_new_signup: bool
