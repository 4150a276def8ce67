"""
Stripe Payment Provider Implementation.

NO DICTIONARIES - All data uses strongly typed models.

The stripe SDK is synchronous; every API call runs in a worker thread so the
event loop is never blocked for the duration of a provider round trip.
"""

import asyncio
from typing import Any

import stripe
from structlog import get_logger

from app.exceptions import AuthenticationError, UpstreamError
from app.services.payment_provider import (
    CheckoutRequest,
    CheckoutSession,
    PaymentEvent,
    PaymentEventType,
    SessionSnapshot,
)

logger = get_logger(__name__)

# Metadata keys the web client has always used.
METADATA_ACCOUNT_ID = "userId"
METADATA_EMAIL = "email"


def _metadata(obj: Any) -> tuple[str | None, str | None]:
    """Return (account_id, email) from an object's metadata, blanks as None."""
    metadata = obj.get("metadata") or {}
    return (metadata.get(METADATA_ACCOUNT_ID) or None, metadata.get(METADATA_EMAIL) or None)


def _intent_status(payment_intent: Any) -> str | None:
    """
    Status of an expanded payment intent.

    An unexpanded intent is only an id string and carries no status.
    """
    if payment_intent is None or isinstance(payment_intent, str):
        return None
    status: str | None = payment_intent.get("status")
    return status


def _intent_id(payment_intent: Any) -> str | None:
    if payment_intent is None or isinstance(payment_intent, str):
        return payment_intent
    intent_id: str | None = payment_intent.get("id")
    return intent_id


class StripeProvider:
    """
    Stripe payment provider implementation.

    Implements the PaymentProvider protocol for Stripe Checkout.
    """

    def __init__(self, api_key: str, webhook_secret: str, tolerance: int = 300) -> None:
        """
        Initialize Stripe provider.

        Args:
            api_key: Stripe secret API key
            webhook_secret: Stripe webhook signing secret
            tolerance: Maximum webhook timestamp age in seconds
        """
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        self.tolerance = tolerance

    async def create_checkout_session(self, request: CheckoutRequest) -> CheckoutSession:
        """
        Create a Stripe Checkout Session for the premium line item.

        Raises:
            UpstreamError: If Stripe API call fails
        """
        metadata = {METADATA_ACCOUNT_ID: request.account_id, METADATA_EMAIL: request.email}
        try:
            logger.info(
                "creating_stripe_checkout_session",
                account_id=request.account_id,
                amount_minor=request.amount_minor,
                currency=request.currency,
            )

            session = await asyncio.to_thread(
                stripe.checkout.Session.create,
                api_key=self.api_key,
                payment_method_types=["card"],
                line_items=[
                    {
                        "price_data": {
                            "currency": request.currency.lower(),
                            "product_data": {
                                "name": request.product_name,
                                "description": request.product_description,
                            },
                            "unit_amount": request.amount_minor,
                        },
                        "quantity": 1,
                    }
                ],
                mode="payment",
                success_url=request.success_url,
                cancel_url=request.cancel_url,
                customer_email=request.email,
                metadata=metadata,
                payment_intent_data={"metadata": metadata},
            )

            logger.info(
                "stripe_checkout_session_created",
                session_id=session.id,
                account_id=request.account_id,
            )

            return CheckoutSession(session_id=session.id, url=session.url)

        except stripe.StripeError as exc:
            logger.error(
                "stripe_checkout_session_failed",
                account_id=request.account_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise UpstreamError(f"Checkout session creation failed: {exc}") from exc

    async def retrieve_session(self, session_id: str) -> SessionSnapshot:
        """
        Get the current state of a checkout session with its payment intent expanded.

        Raises:
            UpstreamError: If Stripe API call fails
        """
        try:
            logger.info("retrieving_stripe_checkout_session", session_id=session_id)

            session = await asyncio.to_thread(
                stripe.checkout.Session.retrieve,
                session_id,
                api_key=self.api_key,
                expand=["payment_intent"],
            )

            account_id, email = _metadata(session)
            snapshot = SessionSnapshot(
                session_id=session.id,
                session_status=session.get("status"),
                payment_status=session.get("payment_status"),
                intent_status=_intent_status(session.get("payment_intent")),
                metadata_account_id=account_id,
                metadata_email=email,
            )

            logger.info(
                "stripe_checkout_session_retrieved",
                session_id=session_id,
                session_status=snapshot.session_status,
                payment_status=snapshot.payment_status,
                intent_status=snapshot.intent_status,
            )

            return snapshot

        except stripe.StripeError as exc:
            logger.error(
                "stripe_checkout_session_retrieve_failed",
                session_id=session_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise UpstreamError(f"Failed to retrieve checkout session: {exc}") from exc

    async def find_session_for_payment_intent(self, payment_intent_id: str) -> str | None:
        """
        Look up the checkout session that owns a payment intent.

        Returns:
            Checkout session ID, or None when the intent was not created by Checkout

        Raises:
            UpstreamError: If Stripe API call fails
        """
        try:
            sessions = await asyncio.to_thread(
                stripe.checkout.Session.list,
                api_key=self.api_key,
                payment_intent=payment_intent_id,
                limit=1,
            )
        except stripe.StripeError as exc:
            logger.error(
                "stripe_session_lookup_failed",
                payment_intent_id=payment_intent_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise UpstreamError(f"Failed to look up checkout session: {exc}") from exc

        data = sessions.data
        if not data:
            logger.info("stripe_session_lookup_empty", payment_intent_id=payment_intent_id)
            return None

        session_id: str = data[0].id
        return session_id

    async def verify_webhook(self, payload: bytes, signature: str) -> PaymentEvent:
        """
        Verify and parse a Stripe webhook event.

        The signature is checked over the exact bytes received before the
        payload is decoded.

        Args:
            payload: Raw webhook payload
            signature: Stripe-Signature header value

        Returns:
            Parsed webhook event

        Raises:
            AuthenticationError: If signature verification or decoding fails
        """
        if not signature:
            logger.warning("stripe_webhook_signature_missing")
            raise AuthenticationError("Missing Stripe-Signature header")

        try:
            event = stripe.Webhook.construct_event(
                payload, signature, self.webhook_secret, tolerance=self.tolerance
            )
        except stripe.SignatureVerificationError as exc:
            logger.error("stripe_webhook_verification_failed", error=str(exc))
            raise AuthenticationError("Invalid Stripe webhook signature") from exc
        except (ValueError, TypeError, AttributeError) as exc:
            # Invalid UTF-8 or JSON after a valid signature
            logger.error("stripe_webhook_parsing_failed", error=str(exc))
            raise AuthenticationError(f"Failed to parse Stripe webhook: {exc}") from exc

        try:
            payment_event = self._parse_event(event)
        except (AttributeError, KeyError, TypeError) as exc:
            logger.error("stripe_webhook_parsing_failed", error=str(exc))
            raise AuthenticationError(f"Failed to parse Stripe webhook: {exc}") from exc

        logger.info(
            "stripe_webhook_verified",
            event_id=payment_event.event_id,
            event_type=payment_event.event_type,
            session_id=payment_event.session_id,
        )
        return payment_event

    @staticmethod
    def _parse_event(event: stripe.Event) -> PaymentEvent:
        """Convert a Stripe event into a PaymentEvent."""
        obj = event.data.object
        account_id, email = _metadata(obj)

        if event.type == PaymentEventType.PAYMENT_FAILED.value:
            return PaymentEvent(
                event_id=event.id,
                event_type=event.type,
                session_id=None,
                payment_intent_id=obj.get("id"),
                payment_status=obj.get("status"),
                metadata_account_id=account_id,
                metadata_email=email or obj.get("receipt_email") or None,
            )

        return PaymentEvent(
            event_id=event.id,
            event_type=event.type,
            session_id=obj.get("id"),
            payment_intent_id=_intent_id(obj.get("payment_intent")),
            payment_status=obj.get("payment_status"),
            metadata_account_id=account_id,
            metadata_email=email or obj.get("customer_email") or None,
        )
