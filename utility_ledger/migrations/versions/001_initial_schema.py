"""Create tenant, billing cycle and payment tables.

Revision ID: 001_initial_schema
Revises: None
Create Date: 2026-10-18 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create ledger tables."""
    # Create tenants table
    op.create_table(
        'tenants',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('unit_number', sa.String(50), nullable=False),
        sa.Column('meter_number', sa.String(100), nullable=True),
        sa.Column('status', sa.Enum('ACTIVE', 'VACATED', name='tenantstatus'), nullable=False),
        sa.Column('ledger_version', sa.Integer(), nullable=False, server_default='0'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_tenants_unit_number', 'tenants', ['unit_number'])

    # Create billing_cycles table
    op.create_table(
        'billing_cycles',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('month', sa.Integer(), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('previous_reading', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('current_reading', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('units_used', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('rate_per_unit', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('standing_charge', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('bill_amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('previous_balance', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('paid_amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('current_balance', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('bill_date', sa.Date(), nullable=False),
        sa.Column('due_date', sa.Date(), nullable=False),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'month', 'year', name='uq_billing_cycle_tenant_period'),
        sa.CheckConstraint('month BETWEEN 1 AND 12', name='ck_billing_cycle_month'),
        sa.CheckConstraint('units_used >= 0', name='ck_billing_cycle_units_used'),
    )
    op.create_index('ix_billing_cycles_tenant_id', 'billing_cycles', ['tenant_id'])
    op.create_index('idx_billing_cycle_tenant_period', 'billing_cycles', ['tenant_id', 'year', 'month'])
    op.create_index('idx_billing_cycle_period', 'billing_cycles', ['year', 'month'])

    # Create payments table
    op.create_table(
        'payments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('billing_cycle_id', sa.Integer(), nullable=False),
        sa.Column('amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('payment_date', sa.Date(), nullable=False),
        sa.Column(
            'method',
            sa.Enum('CASH', 'MOBILE_MONEY', 'BANK', 'OTHER', name='paymentmethod'),
            nullable=False,
        ),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ),
        sa.ForeignKeyConstraint(['billing_cycle_id'], ['billing_cycles.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('amount > 0', name='ck_payment_amount_positive'),
    )
    op.create_index('ix_payments_tenant_id', 'payments', ['tenant_id'])
    op.create_index('ix_payments_billing_cycle_id', 'payments', ['billing_cycle_id'])
    op.create_index('ix_payments_payment_date', 'payments', ['payment_date'])
    op.create_index('idx_payment_tenant_date', 'payments', ['tenant_id', 'payment_date'])


def downgrade() -> None:
    """Drop ledger tables."""
    op.drop_table('payments')
    op.drop_table('billing_cycles')
    op.drop_table('tenants')
