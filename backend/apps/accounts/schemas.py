"""
Accounts API schemas - Pydantic models for request/response.
"""

from pydantic import BaseModel, Field


class ConfirmEmailRequest(BaseModel):
    """Request to confirm an email address."""

    token: str = Field(
        ...,
        description="Confirmation token from the link in the confirmation email",
        examples=["eyJhbGciOiJIUzI1NiIs..."],
    )


class MessageResponse(BaseModel):
    """Generic message response."""

    message: str
