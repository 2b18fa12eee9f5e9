# alembic/versions/001_initial_billing_schema.py
"""Initial billing schema

Revision ID: 001
Revises:
Create Date: 2026-10-01 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision = '001'
down_revision = None
branch_labels = None
depends_on = None

ACTIVE_LIKE = "status IN ('active', 'on_trial', 'past_due', 'paused')"


def upgrade() -> None:
    # Create organizations table
    op.create_table(
        'organizations',
        sa.Column('id', sa.String(100), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('billing_override_seats', sa.Integer(), nullable=True),
        sa.Column('billing_override_expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    )

    # Create subscriptions table
    op.create_table(
        'subscriptions',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('organization_id', sa.String(100), sa.ForeignKey('organizations.id'), nullable=False, index=True),
        sa.Column('lemonsqueezy_subscription_id', sa.String(64), unique=True, nullable=False),
        sa.Column('lemonsqueezy_subscription_item_id', sa.String(64)),
        sa.Column('lemonsqueezy_product_id', sa.String(64)),
        sa.Column('lemonsqueezy_variant_id', sa.String(64)),
        sa.Column('billing_type', sa.String(32), nullable=False),
        sa.Column('status', sa.String(32), nullable=False, index=True),
        sa.Column('quantity', sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column('current_seats', sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column('renews_at', sa.DateTime(timezone=True)),
        sa.Column('ends_at', sa.DateTime(timezone=True)),
        sa.Column('trial_ends_at', sa.DateTime(timezone=True)),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    )

    # One active-like subscription per organization
    op.create_index(
        'uq_subscriptions_active_org',
        'subscriptions',
        ['organization_id'],
        unique=True,
        postgresql_where=sa.text(ACTIVE_LIKE),
    )

    # Create membership tables
    op.create_table(
        'user_organizations',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(100), nullable=False, index=True),
        sa.Column('organization_id', sa.String(100), sa.ForeignKey('organizations.id'), nullable=False, index=True),
        sa.Column('role', sa.String(50), server_default=sa.text("'employee'"), nullable=False),
        sa.Column('status', sa.String(50), server_default=sa.text("'active'"), nullable=False, index=True),
        sa.Column('removal_effective_date', sa.DateTime(timezone=True)),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        'invitations',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('organization_id', sa.String(100), sa.ForeignKey('organizations.id'), nullable=False, index=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('role', sa.String(50), server_default=sa.text("'employee'"), nullable=False),
        sa.Column('status', sa.String(50), server_default=sa.text("'pending'"), nullable=False, index=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    )


def downgrade() -> None:
    op.drop_table('invitations')
    op.drop_table('user_organizations')
    op.drop_index('uq_subscriptions_active_org', table_name='subscriptions')
    op.drop_table('subscriptions')
    op.drop_table('organizations')
