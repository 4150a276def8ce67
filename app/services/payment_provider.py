"""
Payment Provider Protocol - Provider-agnostic interface.

NO DICTIONARIES - All data uses strongly typed models.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Protocol


class PaymentEventType(str, Enum):
    """Webhook event types that influence entitlement. Closed set."""

    SESSION_COMPLETED = "checkout.session.completed"
    SESSION_EXPIRED = "checkout.session.expired"
    PAYMENT_FAILED = "payment_intent.payment_failed"


@dataclass(frozen=True)
class CheckoutRequest:
    """
    Provider-agnostic checkout request.

    Represents one single-line-item purchase for an account.
    """

    account_id: str
    email: str
    amount_minor: int
    currency: str
    product_name: str
    product_description: str
    success_url: str
    cancel_url: str

    def __post_init__(self) -> None:
        """Validate checkout constraints."""
        if not self.account_id:
            raise ValueError("account_id cannot be empty")
        if not self.email:
            raise ValueError("email cannot be empty")
        if self.amount_minor <= 0:
            raise ValueError(f"amount_minor must be positive, got {self.amount_minor}")


@dataclass(frozen=True)
class CheckoutSession:
    """Provider-hosted checkout session returned to the client."""

    session_id: str
    url: str


@dataclass(frozen=True)
class SessionSnapshot:
    """
    Current provider view of a checkout session.

    metadata_account_id / metadata_email are the values attached at checkout
    and must round-trip unmodified.
    """

    session_id: str
    session_status: str | None
    payment_status: str | None
    intent_status: str | None
    metadata_account_id: str | None
    metadata_email: str | None


@dataclass(frozen=True)
class PaymentEvent:
    """
    Provider-agnostic webhook event.

    event_type is kept as the raw provider string; known types are matched
    against PaymentEventType by the webhook route. session_id is None for
    payment intent events that have not been correlated yet.
    """

    event_id: str
    event_type: str
    session_id: str | None
    payment_intent_id: str | None
    payment_status: str | None
    metadata_account_id: str | None
    metadata_email: str | None

    @property
    def known_type(self) -> PaymentEventType | None:
        """The event type if it is one the service acts on."""
        try:
            return PaymentEventType(self.event_type)
        except ValueError:
            return None


class PaymentProvider(Protocol):
    """
    Payment provider protocol.

    The reconciler and routes depend only on this interface; StripeProvider
    is the production implementation.
    """

    async def create_checkout_session(self, request: CheckoutRequest) -> CheckoutSession:
        """
        Create a hosted checkout session.

        Raises:
            UpstreamError: If the provider call fails
        """
        ...

    async def retrieve_session(self, session_id: str) -> SessionSnapshot:
        """
        Fetch a checkout session and its payment intent status.

        Raises:
            UpstreamError: If the provider call fails
        """
        ...

    async def find_session_for_payment_intent(self, payment_intent_id: str) -> str | None:
        """
        Find the checkout session that created a payment intent.

        Raises:
            UpstreamError: If the provider call fails
        """
        ...

    async def verify_webhook(self, payload: bytes, signature: str) -> PaymentEvent:
        """
        Verify the signature over the exact payload bytes and decode the event.

        Raises:
            AuthenticationError: If the signature or payload is invalid
        """
        ...
