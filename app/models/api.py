"""
API Models - Pydantic models for request/response validation.

NO DICTIONARIES - All data structures are strongly typed.
JSON keys keep the camelCase names the web client already uses.
"""

from datetime import datetime
from typing import Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from app.models.domain import AccountData, PaymentStatus


class CamelModel(BaseModel):
    """Base model accepting either field names or their camelCase aliases."""

    model_config = ConfigDict(populate_by_name=True)


def _blank_to_none(v: str | None) -> str | None:
    if v is None:
        return None
    v = v.strip()
    return v or None


# ============================================================================
# Account Models
# ============================================================================


class AccountResponse(CamelModel):
    """Account document as returned to the client."""

    id: str = Field(..., alias="_id")
    email: str
    display_name: str | None = Field(None, alias="displayName")
    photo_url: str | None = Field(None, alias="photoURL")
    is_premium: bool = Field(..., alias="isPremium")
    payment_status: PaymentStatus | None = Field(None, alias="paymentStatus")
    premium_activated_at: datetime | None = Field(None, alias="premiumActivatedAt")
    last_payment_attempt: datetime | None = Field(None, alias="lastPaymentAttempt")
    stripe_session_id: str | None = Field(None, alias="stripeSessionId")
    created_at: datetime = Field(..., alias="createdAt")
    updated_at: datetime = Field(..., alias="updatedAt")

    @classmethod
    def from_domain(cls, account: AccountData) -> "AccountResponse":
        """Build the response from an account snapshot."""
        return cls(
            id=account.account_id,
            email=account.email,
            display_name=account.display_name,
            photo_url=account.photo_url,
            is_premium=account.is_premium,
            payment_status=account.payment_status,
            premium_activated_at=account.premium_activated_at,
            last_payment_attempt=account.last_payment_attempt,
            stripe_session_id=account.stripe_session_id,
            created_at=account.created_at,
            updated_at=account.updated_at,
        )


class CreateAccountRequest(CamelModel):
    """POST /api/users request body. Required fields are checked by the handler."""

    email: str | None = Field(None, max_length=255)
    display_name: str | None = Field(None, alias="displayName", max_length=255)
    photo_url: str | None = Field(None, alias="photoURL", max_length=2048)

    strip_blank = field_validator("email", "display_name", "photo_url")(_blank_to_none)


class UpdateProfileRequest(CamelModel):
    """
    PUT /api/users/{id} request body.

    Only display fields are declared; entitlement keys sent by a client are dropped.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    display_name: str | None = Field(None, alias="displayName", max_length=255)
    photo_url: str | None = Field(None, alias="photoURL", max_length=2048)


class TokenRequest(CamelModel):
    """POST /api/users/token request body."""

    email: str | None = Field(None, max_length=255)

    strip_blank = field_validator("email")(_blank_to_none)


class TokenResponse(CamelModel):
    """Issued access token."""

    access_token: str = Field(..., alias="accessToken")
    token_type: str = Field("Bearer", alias="tokenType")
    expires_in: int = Field(..., alias="expiresIn")


class MessageResponse(BaseModel):
    """Plain acknowledgement."""

    message: str


# ============================================================================
# Payment Models
# ============================================================================


class CheckoutRequest(CamelModel):
    """POST /api/payment/create-checkout-session request body."""

    email: str | None = Field(None, max_length=255)
    account_id: str | None = Field(
        None,
        validation_alias=AliasChoices("userId", "accountId", "account_id"),
        max_length=64,
    )

    strip_blank = field_validator("email", "account_id")(_blank_to_none)


class CheckoutResponse(CamelModel):
    """Provider-hosted checkout redirect."""

    url: str
    session_id: str = Field(..., alias="sessionId")


class VerifyPaymentRequest(CamelModel):
    """POST /api/payment/verify-payment request body."""

    session_id: str | None = Field(
        None,
        validation_alias=AliasChoices("sessionId", "session_id"),
        max_length=255,
    )

    strip_blank = field_validator("session_id")(_blank_to_none)


class VerifyPaymentResponse(CamelModel):
    """
    Poll verification result.

    Serialized with exclude_unset so each outcome only carries its own keys.
    """

    success: bool
    user: AccountResponse | None = None
    pending: bool | None = None
    status: str | None = None
    intent_status: str | None = Field(None, alias="intentStatus")
    error: str | None = None


class WebhookAck(BaseModel):
    """Acknowledgement returned to the payment provider."""

    received: bool = True


class PaymentErrorResponse(BaseModel):
    """Error envelope for payment routes."""

    success: Literal[False] = False
    error: str


# ============================================================================
# Health Check Models
# ============================================================================


class HealthResponse(BaseModel):
    """GET /health response."""

    status: Literal["healthy", "unhealthy"]
    database: Literal["connected", "disconnected"]
    timestamp: str


# ============================================================================
# Error Models
# ============================================================================


class ErrorResponse(BaseModel):
    """Error envelope for non-payment routes."""

    error: str
