"""
Database Models - SQLAlchemy ORM models with strict typing.

NO DICTIONARIES - All columns use Mapped[] type annotations.
"""

from datetime import UTC, datetime
from uuid import UUID, uuid4

from sqlalchemy import Boolean, CheckConstraint, DateTime, Index, String, text
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


class Account(Base):
    """
    ORM model for accounts table.

    Display fields are written by profile edits. Entitlement fields
    (is_premium through stripe_session_id) are written only by the
    payment reconciler and checkout initiation.
    """

    __tablename__ = "accounts"

    # Primary Key
    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)

    # Identity / profile. Email is a lookup key but not unique at the storage layer.
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    display_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    photo_url: Mapped[str | None] = mapped_column(String(2048), nullable=True)

    # Entitlement
    is_premium: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    payment_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    premium_activated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    last_payment_attempt: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    stripe_session_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Audit timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        CheckConstraint(
            "payment_status IS NULL OR payment_status IN ('paid', 'failed', 'expired')",
            name="ck_accounts_payment_status",
        ),
        CheckConstraint(
            "NOT is_premium OR payment_status = 'paid'",
            name="ck_accounts_premium_requires_paid",
        ),
        Index("idx_accounts_email_lower", text("lower(email)")),
        Index(
            "idx_accounts_stripe_session_id",
            "stripe_session_id",
            postgresql_where=text("stripe_session_id IS NOT NULL"),
        ),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<Account(id={self.id}, email={self.email}, "
            f"is_premium={self.is_premium}, payment_status={self.payment_status})>"
        )
