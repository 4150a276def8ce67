"""
Domain Models - Internal business logic models using dataclasses.

NO DICTIONARIES - All data structures are strongly typed immutable dataclasses.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any


class PaymentStatus(str, Enum):
    """Persisted payment status. An account that never paid has none."""

    PAID = "paid"
    FAILED = "failed"
    EXPIRED = "expired"


class StatusClass(str, Enum):
    """Classification of a provider-reported payment state."""

    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    EXPIRED = "expired"
    UNKNOWN = "unknown"


class EntitlementDecision(str, Enum):
    """What a classified payment state means for the account."""

    GRANT = "grant"
    DENY = "deny"
    NO_OP = "no_op"


class ReconcileSource(str, Enum):
    """Which call site produced the reconciliation."""

    POLL = "poll"
    WEBHOOK = "webhook"


class OutcomeKind(str, Enum):
    """Result of one reconciliation. Callers must handle every kind."""

    GRANTED = "granted"
    DENIED = "denied"
    ALREADY_APPLIED = "already_applied"
    STALE = "stale"
    PENDING = "pending"
    UNRECOGNIZED = "unrecognized"
    NOT_FOUND = "not_found"
    MISSING_METADATA = "missing_metadata"


@dataclass(frozen=True)
class AccountData:
    """Immutable account snapshot."""

    account_id: str
    email: str
    display_name: str | None
    photo_url: str | None
    is_premium: bool
    payment_status: PaymentStatus | None
    premium_activated_at: datetime | None
    last_payment_attempt: datetime | None
    stripe_session_id: str | None
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class EntitlementState:
    """The entitlement tuple an account is in after a reconciliation for one session."""

    is_premium: bool
    payment_status: PaymentStatus
    stripe_session_id: str


@dataclass(frozen=True)
class EntitlementFields:
    """
    Entitlement columns written by one atomic update.

    Timestamps left as None are not written.
    """

    is_premium: bool
    payment_status: PaymentStatus
    stripe_session_id: str
    premium_activated_at: datetime | None = None
    last_payment_attempt: datetime | None = None

    def __post_init__(self) -> None:
        """A premium account must come from a paid transition."""
        if self.is_premium and self.payment_status != PaymentStatus.PAID:
            raise ValueError(f"is_premium requires payment_status=paid, got {self.payment_status}")
        if not self.stripe_session_id:
            raise ValueError("stripe_session_id cannot be empty")

    def column_values(self) -> dict[str, Any]:
        """Column name to value mapping for the UPDATE statement."""
        values: dict[str, Any] = {
            "is_premium": self.is_premium,
            "payment_status": self.payment_status.value,
            "stripe_session_id": self.stripe_session_id,
        }
        if self.premium_activated_at is not None:
            values["premium_activated_at"] = self.premium_activated_at
        if self.last_payment_attempt is not None:
            values["last_payment_attempt"] = self.last_payment_attempt
        return values


@dataclass(frozen=True)
class EntitlementFilter:
    """
    Row selection for an atomic entitlement update.

    Exactly one of account_id / email selects the account. session_guard
    restricts the update to rows whose stripe_session_id is unset or equal
    to it. closed_session excludes rows holding that session as expired.
    skip_if excludes rows already in that exact state.
    """

    account_id: str | None = None
    email: str | None = None
    session_guard: str | None = None
    closed_session: str | None = None
    skip_if: EntitlementState | None = None

    def __post_init__(self) -> None:
        """Validate that exactly one key is given."""
        if (self.account_id is None) == (self.email is None):
            raise ValueError("EntitlementFilter needs exactly one of account_id or email")


@dataclass(frozen=True)
class ReconcileRequest:
    """Normalized input from the poll and webhook call sites."""

    session_id: str
    decision: EntitlementDecision
    source: ReconcileSource
    account_id: str | None = None
    email: str | None = None
    deny_status: PaymentStatus = PaymentStatus.FAILED

    def __post_init__(self) -> None:
        """Validate request constraints."""
        if not self.session_id:
            raise ValueError("session_id cannot be empty")
        if self.deny_status == PaymentStatus.PAID:
            raise ValueError("deny_status must be failed or expired")


@dataclass(frozen=True)
class ReconcileOutcome:
    """Result of a reconciliation. account is set whenever a record was resolved."""

    kind: OutcomeKind
    session_id: str
    decision: EntitlementDecision = EntitlementDecision.NO_OP
    account: AccountData | None = None

    @property
    def mutated(self) -> bool:
        """True when this call changed the stored entitlement."""
        return self.kind in (OutcomeKind.GRANTED, OutcomeKind.DENIED)
