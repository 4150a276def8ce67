"""
API Routes - Payment and health endpoints.

NO DICTIONARIES - All requests/responses use Pydantic models.

Payment responses keep the {success, error} envelope the web client reads.
"""

from datetime import UTC, datetime

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from app.api.dependencies import (
    get_account_store,
    get_current_user,
    get_payment_provider,
    get_reconciler,
)
from app.config import settings
from app.db.session import get_db
from app.exceptions import AuthenticationError, UpstreamError, ValidationError
from app.models.api import (
    AccountResponse,
    CheckoutRequest,
    CheckoutResponse,
    ErrorResponse,
    HealthResponse,
    PaymentErrorResponse,
    VerifyPaymentRequest,
    VerifyPaymentResponse,
    WebhookAck,
)
from app.models.domain import (
    EntitlementDecision,
    OutcomeKind,
    PaymentStatus,
    ReconcileOutcome,
    ReconcileRequest,
    ReconcileSource,
)
from app.observability.logging import log_context
from app.observability.metrics import metrics
from app.services import payment_provider as provider_models
from app.services.account_store import AccountStore
from app.services.auth import TokenClaims
from app.services.payment_provider import PaymentEvent, PaymentEventType, PaymentProvider
from app.services.reconciler import PaymentReconciler

logger = get_logger(__name__)

router = APIRouter()
payment_router = APIRouter(prefix="/api/payment", tags=["payment"])


def _respond(model: BaseModel, status_code: int = status.HTTP_200_OK) -> JSONResponse:
    """Serialize with camelCase aliases, defaults included."""
    return JSONResponse(
        status_code=status_code,
        content=model.model_dump(by_alias=True, mode="json"),
    )


def _poll_reply(
    body: VerifyPaymentResponse, status_code: int = status.HTTP_200_OK
) -> JSONResponse:
    """Poll replies carry only the keys their outcome sets."""
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(by_alias=True, mode="json", exclude_unset=True),
    )


def _payment_error(status_code: int, error: str) -> JSONResponse:
    return _respond(PaymentErrorResponse(error=error), status_code)


# =============================================================================
# Checkout
# =============================================================================


def build_checkout_request(body: CheckoutRequest) -> provider_models.CheckoutRequest:
    """
    Build the provider checkout request for the premium line item.

    Raises:
        ValidationError: If email or account id is missing
    """
    if not body.email or not body.account_id:
        raise ValidationError("Email and userId are required")

    client_url = settings.client_url.rstrip("/")
    return provider_models.CheckoutRequest(
        account_id=body.account_id,
        email=body.email,
        amount_minor=settings.premium_price_minor,
        currency=settings.premium_currency,
        product_name=settings.premium_product_name,
        product_description=settings.premium_product_description,
        success_url=f"{client_url}/payment/success?session_id={{CHECKOUT_SESSION_ID}}",
        cancel_url=f"{client_url}/payment/cancel?reason=cancelled",
    )


@payment_router.post("/create-checkout-session", response_model=CheckoutResponse)
async def create_checkout_session(
    body: CheckoutRequest,
    user: TokenClaims = Depends(get_current_user),
    provider: PaymentProvider = Depends(get_payment_provider),
    store: AccountStore = Depends(get_account_store),
) -> JSONResponse:
    """
    Create a hosted checkout session for the premium plan.

    The provider call completes before the database is touched. Provider
    failures are not retried: a retry could open a duplicate session.

    Auth: Bearer {access_token}
    """
    try:
        checkout_request = build_checkout_request(body)
    except ValidationError as exc:
        metrics.record_checkout("invalid")
        logger.warning("checkout_request_invalid", error=exc.message)
        return _payment_error(status.HTTP_400_BAD_REQUEST, exc.message)

    with log_context(account_id=checkout_request.account_id, caller_id=user.account_id):
        try:
            checkout = await provider.create_checkout_session(checkout_request)
        except UpstreamError as exc:
            metrics.record_checkout("upstream_error")
            metrics.record_error("UpstreamError", "create_checkout_session")
            return _payment_error(status.HTTP_500_INTERNAL_SERVER_ERROR, exc.message)

        try:
            recorded = await store.record_checkout_attempt(
                checkout_request.account_id, checkout.session_id
            )
        except SQLAlchemyError as exc:
            metrics.record_checkout("database_error")
            metrics.record_error(type(exc).__name__, "record_checkout_attempt")
            logger.error(
                "checkout_attempt_record_failed", session_id=checkout.session_id, exc_info=True
            )
            return _payment_error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Database error")

        if recorded is None:
            logger.info("checkout_attempt_not_recorded", session_id=checkout.session_id)

        metrics.record_checkout("created")
        logger.info("checkout_session_created", session_id=checkout.session_id)
        return _respond(CheckoutResponse(url=checkout.url, session_id=checkout.session_id))


# =============================================================================
# Verification poll
# =============================================================================


def _poll_response(
    outcome: ReconcileOutcome, payment_status: str | None, intent_status: str | None
) -> JSONResponse:
    """Map every outcome kind to the poll response."""
    kind = outcome.kind

    if kind == OutcomeKind.PENDING:
        return _poll_reply(
            VerifyPaymentResponse(
                success=False, pending=True, status=payment_status, intent_status=intent_status
            ),
            status.HTTP_202_ACCEPTED,
        )

    granted = kind == OutcomeKind.GRANTED or (
        kind == OutcomeKind.ALREADY_APPLIED and outcome.decision == EntitlementDecision.GRANT
    )
    if granted and outcome.account is not None:
        return _poll_reply(
            VerifyPaymentResponse(success=True, user=AccountResponse.from_domain(outcome.account))
        )

    if kind == OutcomeKind.NOT_FOUND:
        return _payment_error(status.HTTP_404_NOT_FOUND, "User not found")

    if kind == OutcomeKind.MISSING_METADATA:
        return _payment_error(
            status.HTTP_400_BAD_REQUEST, "User info not found in session metadata"
        )

    # DENIED, STALE, UNRECOGNIZED and an already-applied denial
    return _poll_reply(
        VerifyPaymentResponse(
            success=False,
            error="Payment not completed",
            status=payment_status,
            intent_status=intent_status,
        ),
        status.HTTP_400_BAD_REQUEST,
    )


@payment_router.post("/verify-payment", response_model=VerifyPaymentResponse)
async def verify_payment(
    body: VerifyPaymentRequest,
    user: TokenClaims = Depends(get_current_user),
    provider: PaymentProvider = Depends(get_payment_provider),
    reconciler: PaymentReconciler = Depends(get_reconciler),
) -> JSONResponse:
    """
    Verify a checkout session after the client is redirected back.

    Races with the webhook; both paths converge through the reconciler.
    Returns 202 while the provider is still settling the charge.

    Auth: Bearer {access_token}
    """
    if not body.session_id:
        return _payment_error(status.HTTP_400_BAD_REQUEST, "Session ID is required")

    with log_context(session_id=body.session_id, caller_id=user.account_id):
        try:
            snapshot = await provider.retrieve_session(body.session_id)
        except UpstreamError as exc:
            metrics.record_error("UpstreamError", "verify_payment")
            return _payment_error(status.HTTP_500_INTERNAL_SERVER_ERROR, exc.message)

        try:
            _, outcome = await reconciler.reconcile_session(snapshot, ReconcileSource.POLL)
        except SQLAlchemyError as exc:
            metrics.record_error(type(exc).__name__, "verify_payment")
            logger.error("verify_payment_database_error", exc_info=True)
            return _payment_error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Database error")

        logger.info(
            "payment_verification_completed",
            outcome=outcome.kind.value,
            payment_status=snapshot.payment_status,
            intent_status=snapshot.intent_status,
        )
        return _poll_response(outcome, snapshot.payment_status, snapshot.intent_status)


# =============================================================================
# Webhook
# =============================================================================


async def _request_for_event(
    event: PaymentEvent, event_type: PaymentEventType, provider: PaymentProvider
) -> ReconcileRequest | None:
    """
    Translate a verified event into a reconcile request.

    Returns None for events that carry no entitlement change.
    """
    session_id = event.session_id

    if event_type == PaymentEventType.SESSION_COMPLETED:
        if event.payment_status != "paid":
            logger.info(
                "webhook_session_not_paid",
                session_id=session_id,
                payment_status=event.payment_status,
            )
            return None
        decision = EntitlementDecision.GRANT
        deny_status = PaymentStatus.FAILED
    elif event_type == PaymentEventType.SESSION_EXPIRED:
        decision = EntitlementDecision.DENY
        deny_status = PaymentStatus.EXPIRED
    else:
        if event.payment_intent_id:
            session_id = await provider.find_session_for_payment_intent(event.payment_intent_id)
        decision = EntitlementDecision.DENY
        deny_status = PaymentStatus.FAILED

    if not session_id:
        logger.info(
            "webhook_event_without_session",
            event_id=event.event_id,
            event_type=event.event_type,
            payment_intent_id=event.payment_intent_id,
        )
        return None

    return ReconcileRequest(
        session_id=session_id,
        decision=decision,
        source=ReconcileSource.WEBHOOK,
        account_id=event.metadata_account_id,
        email=event.metadata_email,
        deny_status=deny_status,
    )


@payment_router.post("/webhook", response_model=WebhookAck)
async def stripe_webhook(
    request: Request,
    provider: PaymentProvider = Depends(get_payment_provider),
    reconciler: PaymentReconciler = Depends(get_reconciler),
) -> JSONResponse:
    """
    Handle Stripe webhook events.

    The body is read as raw bytes and verified before anything parses it.
    Unverified events are rejected with 400 and never reach the reconciler.
    Processed, duplicate, stale and ignored events are all acknowledged with
    200 so Stripe does not retry them; database failures return 500 so it does.
    """
    payload = await request.body()
    signature = request.headers.get("stripe-signature", "")

    try:
        event = await provider.verify_webhook(payload, signature)
    except AuthenticationError as exc:
        metrics.record_webhook("unverified", "rejected")
        return _respond(
            ErrorResponse(error=f"Webhook Error: {exc.message}"), status.HTTP_400_BAD_REQUEST
        )

    with log_context(event_id=event.event_id, event_type=event.event_type):
        event_type = event.known_type
        if event_type is None:
            logger.info("webhook_event_ignored")
            metrics.record_webhook(event.event_type, "ignored")
            return _respond(WebhookAck())

        try:
            reconcile_request = await _request_for_event(event, event_type, provider)
            if reconcile_request is None:
                result = "ignored"
            else:
                outcome = await reconciler.reconcile(reconcile_request)
                result = outcome.kind.value
        except (UpstreamError, SQLAlchemyError) as exc:
            metrics.record_webhook(event.event_type, "error")
            metrics.record_error(type(exc).__name__, "stripe_webhook")
            logger.error("webhook_processing_failed", exc_info=True)
            return _respond(
                ErrorResponse(error="Webhook processing failed"),
                status.HTTP_500_INTERNAL_SERVER_ERROR,
            )

        metrics.record_webhook(event.event_type, result)
        logger.info("webhook_event_processed", outcome=result)
        return _respond(WebhookAck())


# =============================================================================
# Health
# =============================================================================


@router.get("/health", response_model=HealthResponse)
async def health_check(db: AsyncSession = Depends(get_db)) -> HealthResponse:
    """
    Health check for load balancer.

    Verifies database connectivity.
    """
    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.error("health_check_failed", error=str(exc))
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "status": "unhealthy",
                "database": "disconnected",
                "error": str(exc),
                "timestamp": datetime.now(UTC).isoformat(),
            },
        ) from exc

    return HealthResponse(
        status="healthy",
        database="connected",
        timestamp=datetime.now(UTC).isoformat(),
    )
