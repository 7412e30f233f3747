"""PIX settlement models migration.

Revision ID: 001
Revises:
Create Date: 2026-10-17 00:00:00.000000

Users and the pack catalog, plus payments, wallets, payouts, the ledger
and the webhook idempotency log. Amounts are integer cents.
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Create users table
    op.create_table(
        'users',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('full_name', sa.String(255), nullable=False),
        sa.Column('document', sa.String(18), nullable=True),
        sa.Column('pix_key', sa.String(255), nullable=True),
        sa.Column('pix_key_type', sa.String(20), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True, server_default='true'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    # Create packs table
    op.create_table(
        'packs',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('creator_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('price', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='draft'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['creator_id'], ['users.id']),
    )
    op.create_index('ix_packs_creator_id', 'packs', ['creator_id'])
    op.create_index('ix_packs_status', 'packs', ['status'])

    # Create purchases table (purchases made before PIX checkout)
    op.create_table(
        'purchases',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('buyer_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('pack_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['buyer_id'], ['users.id']),
        sa.ForeignKeyConstraint(['pack_id'], ['packs.id']),
    )
    op.create_index('ix_purchases_buyer_id', 'purchases', ['buyer_id'])
    op.create_index('ix_purchases_pack_id', 'purchases', ['pack_id'])
    op.create_index('ix_purchases_buyer_pack', 'purchases', ['buyer_id', 'pack_id'])

    # Create payments table
    op.create_table(
        'payments',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('buyer_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('creator_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('pack_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('platform_fee', sa.Integer(), nullable=False),
        sa.Column('creator_earnings', sa.Integer(), nullable=False),
        sa.Column('gateway_provider', sa.String(20), nullable=False),
        sa.Column('gateway_id', sa.String(255), nullable=True),
        sa.Column('qr_code', sa.Text(), nullable=True),
        sa.Column('qr_code_text', sa.Text(), nullable=True),
        sa.Column('expires_at', sa.DateTime(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('paid_at', sa.DateTime(), nullable=True),
        sa.Column('expired_at', sa.DateTime(), nullable=True),
        sa.Column('refunded_at', sa.DateTime(), nullable=True),
        sa.Column('available_at', sa.DateTime(), nullable=True),
        sa.Column('balance_released', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('metadata', postgresql.JSON(astext_type=sa.Text()), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['buyer_id'], ['users.id']),
        sa.ForeignKeyConstraint(['creator_id'], ['users.id']),
        sa.ForeignKeyConstraint(['pack_id'], ['packs.id']),
    )
    op.create_index('ix_payments_buyer_id', 'payments', ['buyer_id'])
    op.create_index('ix_payments_creator_id', 'payments', ['creator_id'])
    op.create_index('ix_payments_pack_id', 'payments', ['pack_id'])
    op.create_index('ix_payments_status', 'payments', ['status'])
    op.create_index('ix_payments_buyer_pack', 'payments', ['buyer_id', 'pack_id'])
    op.create_index('ix_payments_gateway', 'payments', ['gateway_provider', 'gateway_id'])
    op.create_index('ix_payments_release', 'payments', ['status', 'balance_released', 'available_at'])

    # Create wallets table
    op.create_table(
        'wallets',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('available_balance', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('frozen_balance', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.CheckConstraint('available_balance >= 0', name='ck_wallets_available_non_negative'),
        sa.CheckConstraint('frozen_balance >= 0', name='ck_wallets_frozen_non_negative'),
    )
    op.create_index('ix_wallets_user_id', 'wallets', ['user_id'], unique=True)

    # Create payouts table
    op.create_table(
        'payouts',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('wallet_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('gateway_provider', sa.String(20), nullable=False),
        sa.Column('gateway_id', sa.String(255), nullable=True),
        sa.Column('pix_key', sa.String(255), nullable=False),
        sa.Column('pix_key_type', sa.String(20), nullable=False),
        sa.Column('recipient_name', sa.String(255), nullable=False),
        sa.Column('recipient_document', sa.String(20), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('requested_at', sa.DateTime(), nullable=False),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('failed_at', sa.DateTime(), nullable=True),
        sa.Column('failure_reason', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['wallet_id'], ['wallets.id']),
        sa.CheckConstraint('amount > 0', name='ck_payouts_amount_positive'),
    )
    op.create_index('ix_payouts_user_id', 'payouts', ['user_id'])
    op.create_index('ix_payouts_wallet_id', 'payouts', ['wallet_id'])
    op.create_index('ix_payouts_status', 'payouts', ['status'])
    op.create_index('ix_payouts_gateway', 'payouts', ['gateway_provider', 'gateway_id'])
    op.create_index('ix_payouts_user_created', 'payouts', ['user_id', 'created_at'])

    # Create ledger_entries table
    op.create_table(
        'ledger_entries',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('wallet_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('is_platform_entry', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('type', sa.String(10), nullable=False),
        sa.Column('category', sa.String(20), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('balance_after', sa.Integer(), nullable=False),
        sa.Column('payment_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('payout_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('metadata', postgresql.JSON(astext_type=sa.Text()), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['wallet_id'], ['wallets.id']),
        sa.ForeignKeyConstraint(['payment_id'], ['payments.id']),
        sa.ForeignKeyConstraint(['payout_id'], ['payouts.id']),
    )
    op.create_index('ix_ledger_entries_wallet_id', 'ledger_entries', ['wallet_id'])
    op.create_index('ix_ledger_entries_category', 'ledger_entries', ['category'])
    op.create_index('ix_ledger_entries_payment_id', 'ledger_entries', ['payment_id'])
    op.create_index('ix_ledger_entries_payout_id', 'ledger_entries', ['payout_id'])
    op.create_index('ix_ledger_entries_wallet_created', 'ledger_entries', ['wallet_id', 'created_at'])
    op.create_index('ix_ledger_entries_platform_category', 'ledger_entries', ['is_platform_entry', 'category'])

    # Create webhook_events table
    op.create_table(
        'webhook_events',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('provider', sa.String(20), nullable=False),
        sa.Column('event_id', sa.String(255), nullable=False),
        sa.Column('event_type', sa.String(50), nullable=False),
        sa.Column('gateway_id', sa.String(255), nullable=True),
        sa.Column('payload', postgresql.JSON(astext_type=sa.Text()), nullable=False),
        sa.Column('processed', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('processed_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('provider', 'event_id', name='uq_webhook_events_provider_event'),
    )
    op.create_index('ix_webhook_events_gateway_id', 'webhook_events', ['gateway_id'])


def downgrade() -> None:
    op.drop_index('ix_webhook_events_gateway_id', table_name='webhook_events')
    op.drop_table('webhook_events')

    op.drop_index('ix_ledger_entries_platform_category', table_name='ledger_entries')
    op.drop_index('ix_ledger_entries_wallet_created', table_name='ledger_entries')
    op.drop_index('ix_ledger_entries_payout_id', table_name='ledger_entries')
    op.drop_index('ix_ledger_entries_payment_id', table_name='ledger_entries')
    op.drop_index('ix_ledger_entries_category', table_name='ledger_entries')
    op.drop_index('ix_ledger_entries_wallet_id', table_name='ledger_entries')
    op.drop_table('ledger_entries')

    op.drop_index('ix_payouts_user_created', table_name='payouts')
    op.drop_index('ix_payouts_gateway', table_name='payouts')
    op.drop_index('ix_payouts_status', table_name='payouts')
    op.drop_index('ix_payouts_wallet_id', table_name='payouts')
    op.drop_index('ix_payouts_user_id', table_name='payouts')
    op.drop_table('payouts')

    op.drop_index('ix_wallets_user_id', table_name='wallets')
    op.drop_table('wallets')

    op.drop_index('ix_payments_release', table_name='payments')
    op.drop_index('ix_payments_gateway', table_name='payments')
    op.drop_index('ix_payments_buyer_pack', table_name='payments')
    op.drop_index('ix_payments_status', table_name='payments')
    op.drop_index('ix_payments_pack_id', table_name='payments')
    op.drop_index('ix_payments_creator_id', table_name='payments')
    op.drop_index('ix_payments_buyer_id', table_name='payments')
    op.drop_table('payments')

    op.drop_index('ix_purchases_buyer_pack', table_name='purchases')
    op.drop_index('ix_purchases_pack_id', table_name='purchases')
    op.drop_index('ix_purchases_buyer_id', table_name='purchases')
    op.drop_table('purchases')

    op.drop_index('ix_packs_status', table_name='packs')
    op.drop_index('ix_packs_creator_id', table_name='packs')
    op.drop_table('packs')

    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')
