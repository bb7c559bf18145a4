"""
Core security - bearer JWT authentication for API endpoints.
"""

from typing import TYPE_CHECKING

import jwt
from ninja.errors import HttpError
from ninja.security import HttpBearer

from apps.core.logging import get_logger
from config.settings.base import settings

if TYPE_CHECKING:
    from apps.accounts.models import User

logger = get_logger(__name__)

JWT_ALGORITHM = "HS256"


class BearerAuth(HttpBearer):
    """
    Bearer token authentication for API endpoints.

    Tokens are HS256 JWTs signed with JWT_SECRET carrying the user id in the
    ``id`` claim. On success ``request.auth`` is the active User.
    """

    def authenticate(self, request, token: str) -> "User | None":
        from apps.accounts.models import User

        if not token or not settings.JWT_SECRET:
            return None

        try:
            claims = jwt.decode(token, settings.JWT_SECRET, algorithms=[JWT_ALGORITHM])
        except jwt.InvalidTokenError as e:
            logger.info("bearer_token_invalid", error=str(e))
            return None

        user_id = claims.get("id")
        if user_id is None:
            return None

        return User.objects.filter(pk=user_id, is_active=True).first()


def require_admin(user: "User") -> "User":
    """
    Ensure the authenticated user may manage billing for their organization.

    Raises:
        HttpError 403: If the user is neither an org Admin nor a super admin
    """
    if not (user.is_admin or user.is_superuser):
        raise HttpError(403, "Admin access required")
    return user
