"""Initial schema - seller accounts, orders, exchange rates, fee cache, sync events

Revision ID: 001_initial_schema
Revises:
Create Date: 2025-11-01

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001_initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

MONEY = sa.Numeric(14, 2)
RATE = sa.Numeric(18, 8)


def upgrade() -> None:
    # Table: seller_accounts
    op.create_table(
        'seller_accounts',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('marketplaces', sa.JSON(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('access_token', sa.Text()),
        sa.Column('refresh_token', sa.Text()),
        sa.Column('expires_in', sa.Integer()),
        sa.Column('refresh_token_expires_in', sa.Integer()),
        sa.Column('token_type', sa.String()),
        sa.Column('scope', sa.Text()),
        sa.Column('token_issued_at', sa.DateTime()),
        sa.Column('initial_sync_date', sa.DateTime(), nullable=False),
        sa.Column('latest_creation_watermark', sa.DateTime()),
        sa.Column('last_modified_sync_at', sa.DateTime()),
        sa.Column('last_fee_backfill_at', sa.DateTime()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('name'),
    )
    op.create_index('ix_seller_accounts_id', 'seller_accounts', ['id'])

    # Table: marketplace_orders
    op.create_table(
        'marketplace_orders',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('order_id', sa.String(), nullable=False),
        sa.Column('account_id', sa.Integer(), sa.ForeignKey('seller_accounts.id'), nullable=False),
        sa.Column('legacy_order_id', sa.String()),
        sa.Column('seller_user_id', sa.String()),
        sa.Column('creation_date', sa.DateTime()),
        sa.Column('last_modified_date', sa.DateTime()),
        sa.Column('order_fulfillment_status', sa.String()),
        sa.Column('order_payment_status', sa.String()),
        sa.Column('cancel_state', sa.String()),
        sa.Column('sales_record_reference', sa.String()),
        sa.Column('ebay_collect_and_remit_tax', sa.Boolean()),
        sa.Column('buyer', sa.JSON()),
        sa.Column('buyer_checkout_notes', sa.Text()),
        sa.Column('pricing_summary', sa.JSON()),
        sa.Column('cancel_status', sa.JSON()),
        sa.Column('payment_summary', sa.JSON()),
        sa.Column('fulfillment_start_instructions', sa.JSON()),
        sa.Column('fulfillment_hrefs', sa.JSON()),
        sa.Column('line_items', sa.JSON()),
        sa.Column('refunds', sa.JSON()),
        sa.Column('total_fee_basis_amount', sa.JSON()),
        sa.Column('total_marketplace_fee', sa.JSON()),
        sa.Column('date_sold', sa.DateTime()),
        sa.Column('ship_by_date', sa.DateTime()),
        sa.Column('estimated_delivery', sa.DateTime()),
        sa.Column('product_name', sa.String()),
        sa.Column('item_number', sa.String()),
        sa.Column('quantity', sa.Integer()),
        sa.Column('purchase_marketplace_id', sa.String()),
        sa.Column('buyer_address', sa.String()),
        sa.Column('shipping_full_name', sa.String()),
        sa.Column('shipping_address_line1', sa.String()),
        sa.Column('shipping_address_line2', sa.String()),
        sa.Column('shipping_city', sa.String()),
        sa.Column('shipping_state', sa.String()),
        sa.Column('shipping_postal_code', sa.String()),
        sa.Column('shipping_country', sa.String()),
        sa.Column('shipping_phone', sa.String()),
        sa.Column('tracking_number', sa.String()),
        sa.Column('manual_tracking_number', sa.String()),
        sa.Column('subtotal', MONEY),
        sa.Column('shipping', MONEY),
        sa.Column('sales_tax', MONEY),
        sa.Column('discount', MONEY),
        sa.Column('transaction_fees', MONEY),
        sa.Column('ad_fee', MONEY),
        sa.Column('conversion_rate', RATE),
        sa.Column('subtotal_usd', MONEY),
        sa.Column('shipping_usd', MONEY),
        sa.Column('sales_tax_usd', MONEY),
        sa.Column('discount_usd', MONEY),
        sa.Column('transaction_fees_usd', MONEY),
        sa.Column('ad_fee_usd', MONEY),
        sa.Column('refund_total_usd', MONEY),
        sa.Column('ad_fee_general', MONEY),
        sa.Column('before_tax_usd', MONEY),
        sa.Column('estimated_tax_usd', MONEY),
        sa.Column('earnings', MONEY),
        sa.Column('earnings_override', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('withholding', MONEY),
        sa.Column('fixed_fee', MONEY),
        sa.Column('net', MONEY),
        sa.Column('exchange_rate', RATE),
        sa.Column('balance', MONEY),
        sa.Column('secondary_exchange_rate', RATE),
        sa.Column('secondary_total', MONEY),
        sa.Column('secondary_fee_total', MONEY),
        sa.Column('profit', MONEY),
        sa.Column('recalculated_at', sa.DateTime()),
        sa.Column('notes', sa.Text()),
        sa.Column('fulfillment_notes', sa.Text()),
        sa.Column('messaging_status', sa.String()),
        sa.Column('item_status', sa.String()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('order_id'),
    )
    op.create_index('ix_marketplace_orders_id', 'marketplace_orders', ['id'])
    op.create_index('ix_marketplace_orders_account_id', 'marketplace_orders', ['account_id'])
    op.create_index('ix_marketplace_orders_account_creation', 'marketplace_orders', ['account_id', 'creation_date'])
    op.create_index('ix_marketplace_orders_account_modified', 'marketplace_orders', ['account_id', 'last_modified_date'])
    op.create_index('ix_marketplace_orders_date_sold', 'marketplace_orders', ['date_sold'])

    # Table: exchange_rates
    op.create_table(
        'exchange_rates',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('ledger', sa.String(), nullable=False),
        sa.Column('rate', sa.Numeric(18, 6), nullable=False),
        sa.Column('effective_date', sa.DateTime(), nullable=False),
        sa.Column('created_by', sa.String(), nullable=False),
        sa.Column('notes', sa.Text()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('ledger', 'effective_date', name='uq_exchange_rates_ledger_effective_date'),
    )
    op.create_index('ix_exchange_rates_id', 'exchange_rates', ['id'])
    op.create_index('ix_exchange_rates_ledger_effective_date', 'exchange_rates', ['ledger', 'effective_date'])

    # Table: fee_transactions
    op.create_table(
        'fee_transactions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('account_id', sa.Integer(), sa.ForeignKey('seller_accounts.id'), nullable=False),
        sa.Column('transaction_id', sa.String(), nullable=False),
        sa.Column('order_id', sa.String()),
        sa.Column('transaction_type', sa.String()),
        sa.Column('fee_type', sa.String()),
        sa.Column('booking_entry', sa.String()),
        sa.Column('amount', MONEY),
        sa.Column('currency', sa.String()),
        sa.Column('transaction_date', sa.DateTime()),
        sa.Column('cached_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_fee_transactions_id', 'fee_transactions', ['id'])
    op.create_index('ix_fee_transactions_account_id', 'fee_transactions', ['account_id'])
    op.create_index('ix_fee_transactions_order_id', 'fee_transactions', ['order_id'])

    # Table: sync_events
    op.create_table(
        'sync_events',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('sync_run_id', sa.String(), nullable=False),
        sa.Column('account_id', sa.Integer(), sa.ForeignKey('seller_accounts.id'), nullable=False),
        sa.Column('order_id', sa.String(), nullable=False),
        sa.Column('change_type', sa.String(), nullable=False),
        sa.Column('change_data', sa.JSON(), nullable=False),
        sa.Column('status', sa.String(), nullable=False, server_default='pending'),
        sa.Column('detected_at', sa.DateTime(), nullable=False),
        sa.Column('processed_at', sa.DateTime()),
        sa.Column('notes', sa.Text()),
    )
    op.create_index('ix_sync_events_id', 'sync_events', ['id'])
    op.create_index('ix_sync_events_sync_run_id', 'sync_events', ['sync_run_id'])
    op.create_index('ix_sync_events_account_id', 'sync_events', ['account_id'])
    op.create_index('ix_sync_events_order_id', 'sync_events', ['order_id'])
    op.create_index('ix_sync_events_change_type', 'sync_events', ['change_type'])
    op.create_index('ix_sync_events_status', 'sync_events', ['status'])


def downgrade() -> None:
    # Drop all tables in reverse order
    op.drop_table('sync_events')
    op.drop_table('fee_transactions')
    op.drop_table('exchange_rates')
    op.drop_table('marketplace_orders')
    op.drop_table('seller_accounts')
