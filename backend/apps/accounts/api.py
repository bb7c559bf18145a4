"""
Accounts API endpoints.

Email confirmation for owners provisioned after checkout.
"""

from django.http import HttpRequest
from ninja import Router
from ninja.errors import HttpError

from apps.accounts.models import User
from apps.accounts.schemas import ConfirmEmailRequest, MessageResponse
from apps.accounts.services import confirm_email
from apps.accounts.tokens import InvalidConfirmationToken
from apps.core.logging import get_logger
from apps.core.schemas import ErrorResponse

logger = get_logger(__name__)

router = Router(tags=["auth"])


@router.post(
    "/confirm-email",
    response={200: MessageResponse, 400: ErrorResponse, 404: ErrorResponse},
    operation_id="confirmEmail",
    summary="Confirm email address",
)
def confirm_email_endpoint(request: HttpRequest, payload: ConfirmEmailRequest) -> MessageResponse:
    """Verify the signed token from the confirmation email."""
    try:
        _user, changed = confirm_email(payload.token)
    except InvalidConfirmationToken as e:
        raise HttpError(400, str(e)) from e
    except User.DoesNotExist as e:
        raise HttpError(404, "User not found") from e

    if not changed:
        return MessageResponse(message="Email is already verified")
    return MessageResponse(message="Email verified successfully")
