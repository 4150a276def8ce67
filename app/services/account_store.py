"""
Account Store - Persistence capability for account records.

NO DICTIONARIES - Reads return AccountData, writes take typed filters and fields.

Every entitlement write is one conditional UPDATE ... RETURNING statement,
committed before the call returns. There is no read-modify-write cycle, so
concurrent poll and webhook handlers never interleave partial updates.
"""

from datetime import datetime
from typing import Protocol
from uuid import UUID

from sqlalchemy import ColumnElement, Update, and_, func, not_, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased
from structlog import get_logger

from app.db.models import Account, utc_now
from app.exceptions import AccountExistsError
from app.models.domain import AccountData, EntitlementFields, EntitlementFilter, PaymentStatus

logger = get_logger(__name__)


def parse_account_id(account_id: str) -> UUID | None:
    """Parse an account identifier. Malformed identifiers resolve to None."""
    try:
        return UUID(account_id)
    except (ValueError, TypeError, AttributeError):
        return None


def to_account_data(account: Account) -> AccountData:
    """Convert ORM row to immutable snapshot."""
    return AccountData(
        account_id=str(account.id),
        email=account.email,
        display_name=account.display_name,
        photo_url=account.photo_url,
        is_premium=account.is_premium,
        payment_status=PaymentStatus(account.payment_status) if account.payment_status else None,
        premium_activated_at=account.premium_activated_at,
        last_payment_attempt=account.last_payment_attempt,
        stripe_session_id=account.stripe_session_id,
        created_at=account.created_at,
        updated_at=account.updated_at,
    )


def _email_key(email: str) -> ColumnElement[bool]:
    """Select the oldest account with this email, case-insensitively."""
    # Aliased so the subquery is not correlated to the UPDATE target
    candidate = aliased(Account, name="candidate")
    oldest = (
        select(candidate.id)
        .where(func.lower(candidate.email) == email.strip().lower())
        .order_by(candidate.created_at)
        .limit(1)
        .scalar_subquery()
    )
    return Account.id == oldest


def build_entitlement_update(
    account_filter: EntitlementFilter, fields: EntitlementFields
) -> Update | None:
    """
    Build the conditional entitlement UPDATE.

    Returns None when the filter's account id is malformed and can match nothing.
    """
    if account_filter.account_id is not None:
        account_uuid = parse_account_id(account_filter.account_id)
        if account_uuid is None:
            return None
        key: ColumnElement[bool] = Account.id == account_uuid
    else:
        assert account_filter.email is not None
        key = _email_key(account_filter.email)

    stmt = update(Account).where(key)

    if account_filter.session_guard is not None:
        stmt = stmt.where(
            or_(
                Account.stripe_session_id.is_(None),
                Account.stripe_session_id == account_filter.session_guard,
            )
        )

    if account_filter.closed_session is not None:
        # An expired checkout session can never be paid
        stmt = stmt.where(
            not_(
                and_(
                    Account.stripe_session_id.is_not_distinct_from(account_filter.closed_session),
                    Account.payment_status.is_not_distinct_from(PaymentStatus.EXPIRED.value),
                )
            )
        )

    if account_filter.skip_if is not None:
        # NULL-safe comparison: an account that never paid has no payment_status
        skip = account_filter.skip_if
        stmt = stmt.where(
            not_(
                and_(
                    Account.is_premium == skip.is_premium,
                    Account.payment_status.is_not_distinct_from(skip.payment_status.value),
                    Account.stripe_session_id.is_not_distinct_from(skip.stripe_session_id),
                )
            )
        )

    return (
        stmt.values(**fields.column_values(), updated_at=utc_now())
        .returning(Account)
        .execution_options(synchronize_session=False, populate_existing=True)
    )


class AccountStore(Protocol):
    """
    Account persistence capability.

    Injected into the reconciler and route handlers; nothing reaches the
    database through a module-level handle.
    """

    async def find_by_id(self, account_id: str) -> AccountData | None:
        """Find by identifier. Malformed identifiers return None."""
        ...

    async def find_by_email(self, email: str) -> AccountData | None:
        """Find by email, case-insensitively. The oldest record wins."""
        ...

    async def atomic_update_entitlement(
        self, account_filter: EntitlementFilter, fields: EntitlementFields
    ) -> AccountData | None:
        """Apply fields in one conditional update. None when nothing matched."""
        ...

    async def create_account(
        self, email: str, display_name: str, photo_url: str | None
    ) -> AccountData:
        """Create an account without entitlement. Raises AccountExistsError."""
        ...

    async def update_profile(
        self, account_id: str, display_name: str | None, photo_url: str | None
    ) -> AccountData | None:
        """Update display fields only. None when the account does not exist."""
        ...

    async def record_checkout_attempt(
        self, account_id: str, session_id: str
    ) -> AccountData | None:
        """Point the account at its newest checkout session."""
        ...


class SQLAlchemyAccountStore:
    """
    PostgreSQL account store.

    Holds one AsyncSession per request. The session acquires a pooled
    connection on first use and releases it on commit.
    """

    def __init__(self, session: AsyncSession) -> None:
        """Initialize store with database session."""
        self.session = session

    async def find_by_id(self, account_id: str) -> AccountData | None:
        account_uuid = parse_account_id(account_id)
        if account_uuid is None:
            return None
        result = await self.session.execute(select(Account).where(Account.id == account_uuid))
        account = result.scalar_one_or_none()
        return to_account_data(account) if account else None

    async def find_by_email(self, email: str) -> AccountData | None:
        stmt = (
            select(Account)
            .where(func.lower(Account.email) == email.strip().lower())
            .order_by(Account.created_at)
            .limit(1)
        )
        result = await self.session.execute(stmt)
        account = result.scalar_one_or_none()
        return to_account_data(account) if account else None

    async def atomic_update_entitlement(
        self, account_filter: EntitlementFilter, fields: EntitlementFields
    ) -> AccountData | None:
        stmt = build_entitlement_update(account_filter, fields)
        if stmt is None:
            return None

        result = await self.session.execute(stmt)
        account = result.scalar_one_or_none()
        snapshot = to_account_data(account) if account else None
        await self.session.commit()

        logger.debug(
            "entitlement_update_executed",
            account_id=account_filter.account_id,
            email=account_filter.email,
            matched=snapshot is not None,
        )
        return snapshot

    async def create_account(
        self, email: str, display_name: str, photo_url: str | None
    ) -> AccountData:
        """
        Create a new account.

        Entitlement starts empty: is_premium=false and no payment status.
        """
        if await self.find_by_email(email) is not None:
            raise AccountExistsError(email)

        account = Account(
            email=email.strip(),
            display_name=display_name,
            photo_url=photo_url,
            is_premium=False,
            payment_status=None,
        )
        self.session.add(account)
        await self.session.flush()
        await self.session.refresh(account)
        snapshot = to_account_data(account)
        await self.session.commit()

        logger.info("account_created", account_id=snapshot.account_id)
        return snapshot

    async def update_profile(
        self, account_id: str, display_name: str | None, photo_url: str | None
    ) -> AccountData | None:
        """Update display fields. Entitlement columns are never part of this statement."""
        account_uuid = parse_account_id(account_id)
        if account_uuid is None:
            return None

        values: dict[str, str | datetime] = {}
        if display_name is not None:
            values["display_name"] = display_name
        if photo_url is not None:
            values["photo_url"] = photo_url
        if not values:
            return await self.find_by_id(account_id)
        values["updated_at"] = utc_now()

        stmt = (
            update(Account)
            .where(Account.id == account_uuid)
            .values(**values)
            .returning(Account)
            .execution_options(synchronize_session=False, populate_existing=True)
        )
        result = await self.session.execute(stmt)
        account = result.scalar_one_or_none()
        snapshot = to_account_data(account) if account else None
        await self.session.commit()
        return snapshot

    async def record_checkout_attempt(
        self, account_id: str, session_id: str
    ) -> AccountData | None:
        """
        Record a new checkout session on the account.

        Overwrites stripe_session_id: the newest session becomes the one the
        deny ordering guard compares against. Entitlement flags are untouched.
        Premium accounts keep the session that granted them, so an abandoned
        later checkout cannot demote them. Returns None for those and for
        unknown accounts.
        """
        account_uuid = parse_account_id(account_id)
        if account_uuid is None:
            return None

        now = utc_now()
        stmt = (
            update(Account)
            .where(Account.id == account_uuid, Account.is_premium.is_(False))
            .values(stripe_session_id=session_id, last_payment_attempt=now, updated_at=now)
            .returning(Account)
            .execution_options(synchronize_session=False, populate_existing=True)
        )
        result = await self.session.execute(stmt)
        account = result.scalar_one_or_none()
        snapshot = to_account_data(account) if account else None
        await self.session.commit()
        return snapshot
