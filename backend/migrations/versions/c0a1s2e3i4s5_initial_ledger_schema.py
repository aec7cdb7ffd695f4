"""initial ledger schema

Revision ID: c0a1s2e3i4s5
Revises:
Create Date: 2026-10-17 00:00:00.000000

Creates the cash-register ledger schema:
- categories / products: catalog, stock_actuel owned by the stock ledger
- sale_transactions / sale_lines: sales and cash-drawer pseudo-transactions
- supply_orders / supply_order_lines: restocking documents
- stock_movements: append-only stock ledger
- cash_sessions: till lifecycle and variances
- member_accounts / account_adjustments: member balances and manual adjustments
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'c0a1s2e3i4s5'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ============================================================================
    # categories / products
    # ============================================================================
    op.create_table(
        'categories',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
        sqlite_autoincrement=True
    )

    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('category_id', sa.Integer(), nullable=True),
        sa.Column('purchase_price_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('sale_price_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('stock_actuel', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('reorder_threshold', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['category_id'], ['categories.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
        sa.CheckConstraint('stock_actuel >= 0', name='ck_products_stock_non_negative'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_products_category_id', 'products', ['category_id'])
    op.create_index('ix_products_category_active', 'products', ['category_id', 'is_active'])

    # ============================================================================
    # sale_transactions / sale_lines
    # ============================================================================
    op.create_table(
        'sale_transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('buyer_id', sa.Integer(), nullable=True),
        sa.Column('cashier_id', sa.Integer(), nullable=False),
        sa.Column('payment_kind', sa.String(length=16), nullable=False),
        sa.Column('total_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('payment_reference', sa.String(length=128), nullable=True),
        sa.Column('amount_received_cents', sa.Integer(), nullable=True),
        sa.Column('change_given_cents', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='valid'),
        sa.Column('cancelled_by_id', sa.Integer(), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancellation_reason', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_sale_transactions_buyer_id', 'sale_transactions', ['buyer_id'])
    op.create_index('ix_sale_transactions_cashier_id', 'sale_transactions', ['cashier_id'])
    op.create_index('ix_sale_transactions_payment_kind', 'sale_transactions', ['payment_kind'])
    op.create_index('ix_sale_transactions_status', 'sale_transactions', ['status'])
    op.create_index('ix_sale_transactions_created_at', 'sale_transactions', ['created_at'])
    op.create_index('ix_sale_tx_cashier_created', 'sale_transactions', ['cashier_id', 'created_at'])
    op.create_index('ix_sale_tx_status_kind', 'sale_transactions', ['status', 'payment_kind'])

    op.create_table(
        'sale_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('transaction_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False),
        sa.Column('line_total_cents', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['transaction_id'], ['sale_transactions.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('quantity > 0', name='ck_sale_lines_quantity_positive'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_sale_lines_transaction_id', 'sale_lines', ['transaction_id'])
    op.create_index('ix_sale_lines_product_id', 'sale_lines', ['product_id'])

    # ============================================================================
    # supply_orders / supply_order_lines
    # ============================================================================
    op.create_table(
        'supply_orders',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('kind', sa.String(length=32), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('total_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('purchase_date', sa.Date(), nullable=True),
        sa.Column('supplier_name', sa.String(length=255), nullable=True),
        sa.Column('store_name', sa.String(length=255), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('expected_delivery_date', sa.Date(), nullable=True),
        sa.Column('received_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('actor_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_supply_orders_kind', 'supply_orders', ['kind'])
    op.create_index('ix_supply_orders_status', 'supply_orders', ['status'])
    op.create_index('ix_supply_orders_created_at', 'supply_orders', ['created_at'])

    op.create_table(
        'supply_order_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_cost_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.ForeignKeyConstraint(['order_id'], ['supply_orders.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('quantity > 0', name='ck_supply_lines_quantity_positive'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_supply_order_lines_order_id', 'supply_order_lines', ['order_id'])
    op.create_index('ix_supply_order_lines_product_id', 'supply_order_lines', ['product_id'])

    # ============================================================================
    # stock_movements: append-only stock ledger
    # ============================================================================
    op.create_table(
        'stock_movements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('kind', sa.String(length=32), nullable=False),
        sa.Column('quantity_delta', sa.Integer(), nullable=False),
        sa.Column('stock_before', sa.Integer(), nullable=False),
        sa.Column('stock_after', sa.Integer(), nullable=False),
        sa.Column('reason', sa.String(length=255), nullable=True),
        sa.Column('comment', sa.Text(), nullable=True),
        sa.Column('reference', sa.String(length=64), nullable=True),
        sa.Column('sale_transaction_id', sa.Integer(), nullable=True),
        sa.Column('supply_order_id', sa.Integer(), nullable=True),
        sa.Column('actor_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.ForeignKeyConstraint(['sale_transaction_id'], ['sale_transactions.id'], ),
        sa.ForeignKeyConstraint(['supply_order_id'], ['supply_orders.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('stock_after >= 0', name='ck_stock_movements_after_non_negative'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_stock_movements_product_id', 'stock_movements', ['product_id'])
    op.create_index('ix_stock_movements_kind', 'stock_movements', ['kind'])
    op.create_index('ix_stock_movements_reference', 'stock_movements', ['reference'])
    op.create_index('ix_stock_movements_sale_transaction_id', 'stock_movements', ['sale_transaction_id'])
    op.create_index('ix_stock_movements_supply_order_id', 'stock_movements', ['supply_order_id'])
    op.create_index('ix_stock_movements_actor_id', 'stock_movements', ['actor_id'])
    op.create_index('ix_stock_movements_created_at', 'stock_movements', ['created_at'])
    op.create_index('ix_stock_movements_product_created', 'stock_movements', ['product_id', 'created_at'])
    op.create_index('ix_stock_movements_kind_created', 'stock_movements', ['kind', 'created_at'])

    # ============================================================================
    # cash_sessions
    # ============================================================================
    op.create_table(
        'cash_sessions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('supervisor_id', sa.Integer(), nullable=False),
        sa.Column('cashier_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='pending_cashier'),
        sa.Column('initial_fund_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('expected_cents', sa.Integer(), nullable=True),
        sa.Column('declared_cents', sa.Integer(), nullable=True),
        sa.Column('validated_cents', sa.Integer(), nullable=True),
        sa.Column('variance_cents', sa.Integer(), nullable=True),
        sa.Column('opening_note', sa.Text(), nullable=True),
        sa.Column('acceptance_note', sa.Text(), nullable=True),
        sa.Column('closing_note', sa.Text(), nullable=True),
        sa.Column('validation_note', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('opened_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('closed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('validated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('fund_transaction_id', sa.Integer(), nullable=True),
        sa.Column('closing_transaction_id', sa.Integer(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['fund_transaction_id'], ['sale_transactions.id'], ),
        sa.ForeignKeyConstraint(['closing_transaction_id'], ['sale_transactions.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_cash_sessions_supervisor_id', 'cash_sessions', ['supervisor_id'])
    op.create_index('ix_cash_sessions_cashier_id', 'cash_sessions', ['cashier_id'])
    op.create_index('ix_cash_sessions_status', 'cash_sessions', ['status'])
    op.create_index('ix_cash_sessions_created_at', 'cash_sessions', ['created_at'])
    op.create_index('ix_cash_sessions_cashier_status', 'cash_sessions', ['cashier_id', 'status'])
    op.create_index('ix_cash_sessions_supervisor_status', 'cash_sessions', ['supervisor_id', 'status'])

    # ============================================================================
    # member_accounts / account_adjustments
    # ============================================================================
    op.create_table(
        'member_accounts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('member_id', sa.Integer(), nullable=False),
        sa.Column('balance_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_member_accounts_member_id', 'member_accounts', ['member_id'], unique=True)

    op.create_table(
        'account_adjustments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.Integer(), nullable=False),
        sa.Column('member_id', sa.Integer(), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('balance_before_cents', sa.Integer(), nullable=False),
        sa.Column('balance_after_cents', sa.Integer(), nullable=False),
        sa.Column('reason', sa.String(length=255), nullable=False),
        sa.Column('admin_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['account_id'], ['member_accounts.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_account_adjustments_account_id', 'account_adjustments', ['account_id'])
    op.create_index('ix_account_adjustments_created_at', 'account_adjustments', ['created_at'])
    op.create_index('ix_account_adjustments_member_created', 'account_adjustments', ['member_id', 'created_at'])


def downgrade():
    op.drop_table('account_adjustments')
    op.drop_table('member_accounts')
    op.drop_table('cash_sessions')
    op.drop_table('stock_movements')
    op.drop_table('supply_order_lines')
    op.drop_table('supply_orders')
    op.drop_table('sale_lines')
    op.drop_table('sale_transactions')
    op.drop_table('products')
    op.drop_table('categories')
