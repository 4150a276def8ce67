"""
Payment Reconciler - Turns provider payment states into entitlement changes.

NO DICTIONARIES - Inputs and results are typed domain models.

Both the verification poll and the webhook funnel into reconcile(). Each
Grant or Deny is a single conditional update, so duplicates and races
between the two call sites converge without locks:

- Grant skips rows already premium for the same session.
- Deny only touches rows whose current session is unset or the same session,
  so a late denial for an older session never clears a newer grant.
"""

import time
from collections.abc import Callable
from datetime import UTC, datetime

from structlog import get_logger

from app.models.domain import (
    AccountData,
    EntitlementDecision,
    EntitlementFields,
    EntitlementFilter,
    EntitlementState,
    OutcomeKind,
    PaymentStatus,
    ReconcileOutcome,
    ReconcileRequest,
    ReconcileSource,
    StatusClass,
)
from app.observability.metrics import metrics
from app.observability.tracing import trace_operation
from app.services.account_store import AccountStore
from app.services.payment_provider import SessionSnapshot

logger = get_logger(__name__)

PENDING_STATES = frozenset({"processing", "requires_action"})
PAID_STATES = frozenset({"paid", "succeeded"})
FAILED_STATES = frozenset({"unpaid", "canceled", "expired", "requires_payment_method"})
EXPIRED_STATE = "expired"


def _utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


def classify(
    payment_status: str | None,
    intent_status: str | None,
    session_status: str | None = None,
) -> StatusClass:
    """
    Classify provider-reported states.

    Checked in priority order because the session and its payment intent can
    disagree: pending wins over paid, paid over failed. Anything outside the
    known sets is UNKNOWN and must never demote an account.
    """
    reported = {s for s in (payment_status, intent_status) if s}

    if reported & PENDING_STATES:
        return StatusClass.PENDING
    if reported & PAID_STATES:
        return StatusClass.PAID
    if EXPIRED_STATE in (session_status, payment_status):
        return StatusClass.EXPIRED
    if reported & FAILED_STATES:
        return StatusClass.FAILED
    return StatusClass.UNKNOWN


def decide(status_class: StatusClass) -> tuple[EntitlementDecision, PaymentStatus | None]:
    """Map a status class to a decision and, for Deny, the status to record."""
    if status_class == StatusClass.PAID:
        return EntitlementDecision.GRANT, None
    if status_class == StatusClass.FAILED:
        return EntitlementDecision.DENY, PaymentStatus.FAILED
    if status_class == StatusClass.EXPIRED:
        return EntitlementDecision.DENY, PaymentStatus.EXPIRED
    return EntitlementDecision.NO_OP, None


class PaymentReconciler:
    """
    Applies Grant / Deny decisions to the injected account store.

    Never raises for "not found" or "ignored"; every result is an explicit
    ReconcileOutcome. Store errors propagate to the caller.
    """

    def __init__(self, store: AccountStore, clock: Callable[[], datetime] = _utc_now) -> None:
        """Initialize reconciler with an account store."""
        self.store = store
        self.clock = clock

    async def reconcile_session(
        self, snapshot: SessionSnapshot, source: ReconcileSource
    ) -> tuple[StatusClass, ReconcileOutcome]:
        """
        Classify a retrieved checkout session and reconcile it.

        Returns the status class alongside the outcome so callers can report
        the provider state.
        """
        status_class = classify(
            snapshot.payment_status, snapshot.intent_status, snapshot.session_status
        )

        if status_class == StatusClass.UNKNOWN:
            logger.warning(
                "payment_status_unrecognized",
                session_id=snapshot.session_id,
                session_status=snapshot.session_status,
                payment_status=snapshot.payment_status,
                intent_status=snapshot.intent_status,
                source=source.value,
            )
            outcome = ReconcileOutcome(
                kind=OutcomeKind.UNRECOGNIZED, session_id=snapshot.session_id
            )
            metrics.record_reconciliation(
                source.value, EntitlementDecision.NO_OP.value, outcome.kind.value, 0.0
            )
            return status_class, outcome

        decision, deny_status = decide(status_class)
        request = ReconcileRequest(
            session_id=snapshot.session_id,
            decision=decision,
            source=source,
            account_id=snapshot.metadata_account_id,
            email=snapshot.metadata_email,
            deny_status=deny_status or PaymentStatus.FAILED,
        )
        return status_class, await self.reconcile(request)

    async def reconcile(self, request: ReconcileRequest) -> ReconcileOutcome:
        """Apply one decision. Safe to call any number of times for the same input."""
        started = time.perf_counter()

        with trace_operation(
            "payment.reconcile",
            session_id=request.session_id,
            decision=request.decision.value,
            source=request.source.value,
        ) as span:
            if request.decision == EntitlementDecision.NO_OP:
                outcome = ReconcileOutcome(
                    kind=OutcomeKind.PENDING,
                    session_id=request.session_id,
                    decision=request.decision,
                )
                logger.info(
                    "payment_pending",
                    session_id=request.session_id,
                    source=request.source.value,
                )
            elif request.account_id is None and request.email is None:
                outcome = ReconcileOutcome(
                    kind=OutcomeKind.MISSING_METADATA,
                    session_id=request.session_id,
                    decision=request.decision,
                )
                logger.warning(
                    "reconciliation_missing_metadata",
                    session_id=request.session_id,
                    source=request.source.value,
                )
            else:
                outcome = await self._apply(request)

            span.set_attribute("outcome", outcome.kind.value)

        metrics.record_reconciliation(
            request.source.value,
            request.decision.value,
            outcome.kind.value,
            time.perf_counter() - started,
        )
        return outcome

    async def _apply(self, request: ReconcileRequest) -> ReconcileOutcome:
        """Resolve the account by id, then email, applying the update to the first that exists."""
        fields = self._fields_for(request)

        for account_filter in self._filters_for(request):
            updated = await self.store.atomic_update_entitlement(account_filter, fields)
            if updated is not None:
                return self._applied(request, updated)

            current = await self._find(account_filter)
            if current is None:
                continue
            return self._not_applied(request, current)

        logger.warning(
            "reconciliation_account_not_found",
            session_id=request.session_id,
            account_id=request.account_id,
            email=request.email,
            source=request.source.value,
        )
        return ReconcileOutcome(
            kind=OutcomeKind.NOT_FOUND, session_id=request.session_id, decision=request.decision
        )

    def _fields_for(self, request: ReconcileRequest) -> EntitlementFields:
        now = self.clock()
        if request.decision == EntitlementDecision.GRANT:
            return EntitlementFields(
                is_premium=True,
                payment_status=PaymentStatus.PAID,
                stripe_session_id=request.session_id,
                premium_activated_at=now,
            )
        return EntitlementFields(
            is_premium=False,
            payment_status=request.deny_status,
            stripe_session_id=request.session_id,
            last_payment_attempt=now,
        )

    @staticmethod
    def _filters_for(request: ReconcileRequest) -> list[EntitlementFilter]:
        """One filter per available account key, id first."""
        closed_session = None
        if request.decision == EntitlementDecision.GRANT:
            session_guard = None
            closed_session = request.session_id
            skip_if = EntitlementState(
                is_premium=True,
                payment_status=PaymentStatus.PAID,
                stripe_session_id=request.session_id,
            )
        else:
            session_guard = request.session_id
            skip_if = EntitlementState(
                is_premium=False,
                payment_status=request.deny_status,
                stripe_session_id=request.session_id,
            )

        filters = []
        if request.account_id is not None:
            filters.append(
                EntitlementFilter(
                    account_id=request.account_id,
                    session_guard=session_guard,
                    closed_session=closed_session,
                    skip_if=skip_if,
                )
            )
        if request.email is not None:
            filters.append(
                EntitlementFilter(
                    email=request.email,
                    session_guard=session_guard,
                    closed_session=closed_session,
                    skip_if=skip_if,
                )
            )
        return filters

    async def _find(self, account_filter: EntitlementFilter) -> AccountData | None:
        if account_filter.account_id is not None:
            return await self.store.find_by_id(account_filter.account_id)
        assert account_filter.email is not None
        return await self.store.find_by_email(account_filter.email)

    def _applied(self, request: ReconcileRequest, account: AccountData) -> ReconcileOutcome:
        if request.decision == EntitlementDecision.GRANT:
            kind = OutcomeKind.GRANTED
            logger.info(
                "payment_granted",
                account_id=account.account_id,
                session_id=request.session_id,
                source=request.source.value,
            )
        else:
            kind = OutcomeKind.DENIED
            logger.info(
                "payment_denied",
                account_id=account.account_id,
                session_id=request.session_id,
                payment_status=request.deny_status.value,
                source=request.source.value,
            )
        return ReconcileOutcome(
            kind=kind, session_id=request.session_id, decision=request.decision, account=account
        )

    def _not_applied(self, request: ReconcileRequest, current: AccountData) -> ReconcileOutcome:
        """The account exists but the conditional update matched nothing."""
        if (
            request.decision == EntitlementDecision.DENY
            and current.stripe_session_id is not None
            and current.stripe_session_id != request.session_id
        ):
            logger.warning(
                "stale_denial_ignored",
                account_id=current.account_id,
                session_id=request.session_id,
                current_session_id=current.stripe_session_id,
                source=request.source.value,
            )
            kind = OutcomeKind.STALE
        elif (
            request.decision == EntitlementDecision.GRANT
            and current.stripe_session_id == request.session_id
            and current.payment_status == PaymentStatus.EXPIRED
        ):
            logger.warning(
                "grant_for_expired_session_ignored",
                account_id=current.account_id,
                session_id=request.session_id,
                source=request.source.value,
            )
            kind = OutcomeKind.STALE
        else:
            logger.info(
                "reconciliation_already_applied",
                account_id=current.account_id,
                session_id=request.session_id,
                decision=request.decision.value,
                source=request.source.value,
            )
            kind = OutcomeKind.ALREADY_APPLIED
        return ReconcileOutcome(
            kind=kind, session_id=request.session_id, decision=request.decision, account=current
        )
