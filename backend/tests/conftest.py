"""
Shared pytest fixtures for all tests.

Factories
---------
Import factories directly from their modules:

    from tests.accounts.factories import UserFactory
    from tests.organizations.factories import OrganizationFactory, OrganizationAddOnFactory
    from tests.billing.factories import PlanFactory, SubscriptionFactory

Example usage:

    @pytest.mark.django_db
    def test_something():
        org = OrganizationFactory.create(stripe_customer_id="cus_123")
        user = UserFactory.create(organization=org, role="Admin")
"""

from collections.abc import Callable
from typing import Any

import pytest
from django.test import Client

from tests.accounts.factories import make_bearer_token


@pytest.fixture
def api_client() -> Client:
    """
    Django test client for full HTTP request/response cycle tests.

    Example:
        def test_api_returns_200(api_client):
            response = api_client.get("/api/v1/health")
            assert response.status_code == 200
    """
    return Client()


@pytest.fixture
def auth_headers() -> Callable[[Any], dict[str, str]]:
    """
    Build an Authorization header for a user.

    Example:
        def test_endpoint(api_client, auth_headers, admin_user):
            api_client.post(url, headers=auth_headers(admin_user))
    """

    def _headers(user: Any) -> dict[str, str]:
        return {"Authorization": f"Bearer {make_bearer_token(user)}"}

    return _headers


@pytest.fixture
def organization(db):
    """Create an active organization with a Stripe customer."""
    from tests.organizations.factories import OrganizationFactory

    return OrganizationFactory.create(stripe_customer_id="cus_existing")


@pytest.fixture
def admin_user(organization):
    """Create an Admin user belonging to ``organization``."""
    from apps.accounts.models import User
    from tests.accounts.factories import UserFactory

    return UserFactory.create(organization=organization, role=User.Role.ADMIN)


@pytest.fixture
def regular_user(organization):
    """Create a Regular user belonging to ``organization``."""
    from apps.accounts.models import User
    from tests.accounts.factories import UserFactory

    return UserFactory.create(organization=organization, role=User.Role.REGULAR)
