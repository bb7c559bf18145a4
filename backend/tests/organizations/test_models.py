"""
Tests for organizations models.
"""

import pytest
from django.db import IntegrityError

from apps.organizations.models import Organization
from tests.organizations.factories import OrganizationAddOnFactory, OrganizationFactory


@pytest.mark.django_db
class TestOrganization:
    """Tests for Organization model."""

    def test_default_status_is_inactive(self) -> None:
        org = Organization.objects.create(name="Acme", slug="acme")

        assert org.status == Organization.Status.INACTIVE

    def test_change_slug_keeps_id_and_history(self) -> None:
        org = OrganizationFactory.create(slug="acme", slug_history=["acme"])
        org_id = org.pk

        org.change_slug("acme-corp")

        org.refresh_from_db()
        assert org.pk == org_id
        assert org.slug == "acme-corp"
        assert org.slug_history == ["acme", "acme-corp"]

    def test_change_slug_to_same_value_is_noop(self) -> None:
        org = OrganizationFactory.create(slug="acme", slug_history=["acme"])

        org.change_slug("acme")

        assert org.slug_history == ["acme"]

    def test_active_slug_is_unique(self) -> None:
        OrganizationFactory.create(slug="acme")

        with pytest.raises(IntegrityError):
            OrganizationFactory.create(slug="acme")

    def test_slug_reusable_after_soft_delete(self) -> None:
        old = OrganizationFactory.create(slug="acme")
        old.soft_delete()

        new = OrganizationFactory.create(slug="acme")

        assert new.pk != old.pk
        assert Organization.objects.get(slug="acme") == new

    def test_soft_delete_hides_from_default_manager(self) -> None:
        org = OrganizationFactory.create()
        org.soft_delete()

        assert org.is_deleted
        assert not Organization.objects.filter(pk=org.pk).exists()
        assert Organization.all_objects.filter(pk=org.pk).exists()


@pytest.mark.django_db
class TestOrganizationAddOn:
    """Tests for OrganizationAddOn model."""

    def test_addons_related_to_organization(self) -> None:
        addon = OrganizationAddOnFactory.create()

        assert list(addon.organization.addons.all()) == [addon]

    def test_subscription_id_is_unique(self) -> None:
        OrganizationAddOnFactory.create(stripe_subscription_id="sub_addon")

        with pytest.raises(IntegrityError):
            OrganizationAddOnFactory.create(stripe_subscription_id="sub_addon")
