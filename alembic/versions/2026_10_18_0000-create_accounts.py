"""create accounts

Revision ID: 2026_10_18_0000
Revises:
Create Date: 2026-10-18 08:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID


# revision identifiers, used by Alembic.
revision: str = '2026_10_18_0000'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create accounts table with profile and entitlement columns."""

    op.create_table(
        'accounts',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),

        # Identity / profile
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('display_name', sa.String(255), nullable=True),
        sa.Column('photo_url', sa.String(2048), nullable=True),

        # Entitlement - written only by the payment reconciler and checkout initiation
        sa.Column('is_premium', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('payment_status', sa.String(20), nullable=True),
        sa.Column('premium_activated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_payment_attempt', sa.DateTime(timezone=True), nullable=True),
        sa.Column('stripe_session_id', sa.String(255), nullable=True),

        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),

        # Constraints
        sa.CheckConstraint(
            "payment_status IS NULL OR payment_status IN ('paid', 'failed', 'expired')",
            name='ck_accounts_payment_status',
        ),
        sa.CheckConstraint(
            "NOT is_premium OR payment_status = 'paid'",
            name='ck_accounts_premium_requires_paid',
        ),
    )

    # Email is a lookup key, matched case-insensitively; not unique
    op.create_index('idx_accounts_email_lower', 'accounts', [sa.text('lower(email)')])
    op.create_index(
        'idx_accounts_stripe_session_id',
        'accounts',
        ['stripe_session_id'],
        postgresql_where=sa.text('stripe_session_id IS NOT NULL'),
    )


def downgrade() -> None:
    """Drop accounts table."""
    op.drop_index('idx_accounts_stripe_session_id', table_name='accounts')
    op.drop_index('idx_accounts_email_lower', table_name='accounts')
    op.drop_table('accounts')
