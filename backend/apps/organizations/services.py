"""
Organization services - slug rules and index maintenance.
"""

import re

from django.db import DatabaseError, connection

from apps.core.logging import get_logger
from apps.organizations.models import Organization

logger = get_logger(__name__)

SLUG_MAX_LENGTH = 50
_SLUG_PATTERN = re.compile(r"^[a-z0-9-]+$")


def normalize_slug(value: str) -> str:
    """
    Normalize free text into a slug.

    Lowercases, turns whitespace into hyphens, drops anything outside
    ``[a-z0-9-]``, collapses repeated hyphens and trims them from both ends.
    """
    slug = value.lower().strip()
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"[^a-z0-9-]", "", slug)
    slug = re.sub(r"-+", "-", slug)
    return slug.strip("-")


def validate_slug(slug: str) -> bool:
    """Check slug is 1-50 characters of lowercase letters, digits and hyphens."""
    return 0 < len(slug) <= SLUG_MAX_LENGTH and bool(_SLUG_PATTERN.match(slug))


def is_slug_taken(slug: str) -> bool:
    """Check whether a non-deleted organization already uses ``slug``."""
    return Organization.objects.filter(slug=slug).exists()


def ensure_organization_indexes() -> list[str]:
    """
    Create any declared Organization index or constraint missing from the database.

    Idempotent; normally a no-op because migrations create them. Failures are
    logged and never raised.

    Returns:
        Names of the indexes/constraints that were created
    """
    table = Organization._meta.db_table
    created: list[str] = []

    try:
        with connection.cursor() as cursor:
            existing = set(connection.introspection.get_constraints(cursor, table))

        missing_indexes = [i for i in Organization._meta.indexes if i.name not in existing]
        missing_constraints = [c for c in Organization._meta.constraints if c.name not in existing]

        if not missing_indexes and not missing_constraints:
            return created

        with connection.schema_editor() as editor:
            for index in missing_indexes:
                editor.add_index(Organization, index)
                created.append(index.name)
            for constraint in missing_constraints:
                editor.add_constraint(Organization, constraint)
                created.append(constraint.name)
    except DatabaseError as e:
        logger.warning("organization_index_ensure_failed", error=str(e), created=created)
        return created

    logger.info("organization_indexes_created", names=created)
    return created
