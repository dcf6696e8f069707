"""initial_sale_engine

Revision ID: 0001
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

MONEY = sa.Numeric(precision=20, scale=4)
RATE = sa.Numeric(precision=7, scale=4)

_ENUMS = (
    'accounttype', 'producttype', 'stockmovementtype', 'paymentmethodtype',
    'shiftstatus', 'cashmovementtype', 'invoicestatus', 'taxkind',
    'integrationeventstatus',
)


def _created_at() -> sa.Column:
    return sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False)


def upgrade() -> None:
    """Create the sale engine schema."""
    # ── Identity ────────────────────────────────────────────────────────────
    op.create_table(
        'roles',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
    )
    op.create_table(
        'permissions',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('code', sa.String(length=100), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('code'),
    )
    op.create_table(
        'role_permissions',
        sa.Column('role_id', sa.Uuid(), nullable=False),
        sa.Column('permission_id', sa.Uuid(), nullable=False),
        sa.ForeignKeyConstraint(['role_id'], ['roles.id']),
        sa.ForeignKeyConstraint(['permission_id'], ['permissions.id']),
        sa.PrimaryKeyConstraint('role_id', 'permission_id'),
    )
    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('username', sa.String(length=150), nullable=False),
        sa.Column('full_name', sa.String(length=255), nullable=True),
        sa.Column('hashed_password', sa.String(length=255), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('role_id', sa.Uuid(), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(['role_id'], ['roles.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('username'),
    )
    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('action', sa.String(length=50), nullable=False),
        sa.Column('resource_type', sa.String(length=100), nullable=False),
        sa.Column('resource_id', sa.String(length=255), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=True),
        sa.Column('changes', sa.JSON(), nullable=True),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_audit_resource', 'audit_logs', ['resource_type', 'resource_id'])
    op.create_index('ix_audit_action', 'audit_logs', ['action'])

    # ── Ledger ──────────────────────────────────────────────────────────────
    op.create_table(
        'accounts',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('code', sa.String(length=20), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column(
            'account_type',
            sa.Enum('ASSET', 'LIABILITY', 'EQUITY', 'REVENUE', 'EXPENSE', name='accounttype'),
            nullable=False,
        ),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('code'),
    )
    op.create_table(
        'journal_entries',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('entry_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('reference', sa.String(length=100), nullable=True),
        sa.Column('source_type', sa.String(length=50), nullable=False),
        sa.Column('source_id', sa.String(length=100), nullable=False),
        sa.Column('created_by', sa.Uuid(), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(['created_by'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('source_type', 'source_id', name='uq_journal_source'),
    )
    op.create_index('ix_journal_entries_date', 'journal_entries', ['entry_date'])
    op.create_table(
        'transaction_splits',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('journal_entry_id', sa.Uuid(), nullable=False),
        sa.Column('account_id', sa.Uuid(), nullable=False),
        sa.Column('debit_amount', MONEY, nullable=False, server_default='0'),
        sa.Column('credit_amount', MONEY, nullable=False, server_default='0'),
        sa.CheckConstraint(
            '(debit_amount > 0 AND credit_amount = 0) OR (credit_amount > 0 AND debit_amount = 0)',
            name='ck_split_debit_xor_credit',
        ),
        sa.ForeignKeyConstraint(['journal_entry_id'], ['journal_entries.id']),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_splits_journal', 'transaction_splits', ['journal_entry_id'])
    op.create_index('ix_splits_account', 'transaction_splits', ['account_id'])

    # ── Catalogue and stock ─────────────────────────────────────────────────
    op.create_table(
        'tax_rates',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('rate', RATE, nullable=False),
        sa.Column(
            'kind',
            sa.Enum('VAT', 'CONSUMPTION', 'WITHHOLDING', 'OTHER', name='taxkind'),
            nullable=False,
        ),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.CheckConstraint('rate >= 0 AND rate <= 100', name='ck_tax_rate_range'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_table(
        'products',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('sku', sa.String(length=50), nullable=False),
        sa.Column(
            'product_type',
            sa.Enum('RETAIL', 'PREPARED', 'INGREDIENT', name='producttype'),
            nullable=False,
        ),
        sa.Column('unit_price', MONEY, nullable=False, server_default='0'),
        sa.Column('cost', MONEY, nullable=False, server_default='0'),
        sa.Column('track_stock', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('enable_recipe_consumption', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('recipe_yield', MONEY, nullable=False, server_default='1'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
        sa.CheckConstraint('unit_price >= 0', name='ck_product_unit_price_non_negative'),
        sa.CheckConstraint('cost >= 0', name='ck_product_cost_non_negative'),
        sa.CheckConstraint('recipe_yield > 0', name='ck_product_recipe_yield_positive'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('sku'),
    )
    op.create_table(
        'product_variants',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('product_id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('sku', sa.String(length=50), nullable=False),
        sa.Column('unit_price', MONEY, nullable=True),
        sa.Column('cost', MONEY, nullable=True),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('sku'),
    )
    op.create_table(
        'recipe_items',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('product_id', sa.Uuid(), nullable=False),
        sa.Column('ingredient_id', sa.Uuid(), nullable=False),
        sa.Column('quantity', MONEY, nullable=False),
        sa.CheckConstraint('quantity > 0', name='ck_recipe_item_quantity_positive'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.ForeignKeyConstraint(['ingredient_id'], ['products.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('product_id', 'ingredient_id', name='uq_recipe_ingredient'),
    )
    op.create_table(
        'warehouses',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
    )
    op.create_table(
        'stock_levels',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('warehouse_id', sa.Uuid(), nullable=False),
        sa.Column('product_id', sa.Uuid(), nullable=False),
        sa.Column('variant_id', sa.Uuid(), nullable=True),
        sa.Column('quantity', MONEY, nullable=False, server_default='0'),
        sa.Column('min_stock', MONEY, nullable=False, server_default='0'),
        sa.Column('max_stock', MONEY, nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['warehouse_id'], ['warehouses.id']),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.ForeignKeyConstraint(['variant_id'], ['product_variants.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('warehouse_id', 'product_id', 'variant_id', name='uq_stock_level_variant'),
    )
    op.create_index(
        'uq_stock_level_base_product',
        'stock_levels',
        ['warehouse_id', 'product_id'],
        unique=True,
        postgresql_where=sa.text('variant_id IS NULL'),
    )
    op.create_table(
        'stock_movements',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('warehouse_id', sa.Uuid(), nullable=False),
        sa.Column('product_id', sa.Uuid(), nullable=False),
        sa.Column('variant_id', sa.Uuid(), nullable=True),
        sa.Column(
            'movement_type',
            sa.Enum('IN', 'OUT', 'ADJUSTMENT', name='stockmovementtype'),
            nullable=False,
        ),
        sa.Column('quantity', MONEY, nullable=False),
        sa.Column('reason', sa.String(length=255), nullable=False),
        sa.Column('reference', sa.String(length=100), nullable=True),
        sa.Column('created_by', sa.Uuid(), nullable=True),
        _created_at(),
        sa.CheckConstraint('quantity > 0', name='ck_stock_movement_quantity_positive'),
        sa.ForeignKeyConstraint(['warehouse_id'], ['warehouses.id']),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.ForeignKeyConstraint(['variant_id'], ['product_variants.id']),
        sa.ForeignKeyConstraint(['created_by'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_stock_movements_product', 'stock_movements', ['product_id'])
    op.create_index('ix_stock_movements_reference', 'stock_movements', ['reference'])

    # ── Customers, cash and shifts ──────────────────────────────────────────
    op.create_table(
        'customers',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('tax_id', sa.String(length=50), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=50), nullable=True),
        sa.Column('credit_limit', MONEY, nullable=True),
        sa.Column('current_balance', MONEY, nullable=False, server_default='0'),
        sa.Column('is_walk_in', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('walk_in_key', sa.String(length=20), nullable=True),
        _created_at(),
        sa.CheckConstraint(
            'credit_limit IS NULL OR credit_limit >= 0',
            name='ck_customer_credit_limit_non_negative',
        ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('walk_in_key'),
    )
    op.create_index('ix_customers_name', 'customers', ['name'])
    op.create_table(
        'payment_methods',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column(
            'type',
            sa.Enum('CASH', 'ELECTRONIC', 'CREDIT', name='paymentmethodtype'),
            nullable=False,
        ),
        sa.Column('account_code', sa.String(length=20), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
    )
    op.create_table(
        'shifts',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('status', sa.Enum('OPEN', 'CLOSED', name='shiftstatus'), nullable=False),
        sa.Column('opened_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('closed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('starting_cash', MONEY, nullable=False, server_default='0'),
        sa.Column('expected_cash', MONEY, nullable=False, server_default='0'),
        sa.Column('counted_cash', MONEY, nullable=True),
        sa.Column('difference', MONEY, nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.CheckConstraint('starting_cash >= 0', name='ck_shift_starting_cash_non_negative'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(
        'uq_shifts_one_open_per_user',
        'shifts',
        ['user_id'],
        unique=True,
        postgresql_where=sa.text("status = 'OPEN'"),
    )
    op.create_index('ix_shifts_status', 'shifts', ['status'])
    op.create_table(
        'shift_summaries',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('shift_id', sa.Uuid(), nullable=False),
        sa.Column('payment_method_id', sa.Uuid(), nullable=False),
        sa.Column('expected_amount', MONEY, nullable=False, server_default='0'),
        sa.ForeignKeyConstraint(['shift_id'], ['shifts.id']),
        sa.ForeignKeyConstraint(['payment_method_id'], ['payment_methods.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('shift_id', 'payment_method_id', name='uq_shift_summary_method'),
    )
    op.create_table(
        'cash_movements',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('shift_id', sa.Uuid(), nullable=False),
        sa.Column('movement_type', sa.Enum('IN', 'OUT', name='cashmovementtype'), nullable=False),
        sa.Column('amount', MONEY, nullable=False),
        sa.Column('reason', sa.String(length=255), nullable=False),
        sa.Column('reference', sa.String(length=100), nullable=True),
        sa.Column('created_by', sa.Uuid(), nullable=False),
        _created_at(),
        sa.CheckConstraint('amount > 0', name='ck_cash_movement_amount_positive'),
        sa.ForeignKeyConstraint(['shift_id'], ['shifts.id']),
        sa.ForeignKeyConstraint(['created_by'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_cash_movements_shift', 'cash_movements', ['shift_id'])

    # ── Invoices ────────────────────────────────────────────────────────────
    op.create_table(
        'document_sequences',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('prefix', sa.String(length=10), nullable=False),
        sa.Column('last_number', sa.Integer(), nullable=False, server_default='0'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('prefix'),
    )
    op.create_table(
        'invoices',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('number', sa.String(length=50), nullable=False),
        sa.Column('prefix', sa.String(length=10), nullable=False),
        sa.Column('consecutive', sa.Integer(), nullable=False),
        sa.Column(
            'status',
            sa.Enum('PAID', 'CREDIT_PENDING', 'VOID', name='invoicestatus'),
            nullable=False,
        ),
        sa.Column('customer_id', sa.Uuid(), nullable=False),
        sa.Column('warehouse_id', sa.Uuid(), nullable=False),
        sa.Column('shift_id', sa.Uuid(), nullable=True),
        sa.Column('subtotal', MONEY, nullable=False),
        sa.Column('discount', MONEY, nullable=False, server_default='0'),
        sa.Column('tax', MONEY, nullable=False),
        sa.Column('total', MONEY, nullable=False),
        sa.Column('balance', MONEY, nullable=False, server_default='0'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('transmitted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_by', sa.Uuid(), nullable=False),
        sa.Column('issued_at', sa.DateTime(timezone=True), nullable=False),
        _created_at(),
        sa.CheckConstraint('subtotal >= 0', name='ck_invoice_subtotal_non_negative'),
        sa.CheckConstraint('discount >= 0', name='ck_invoice_discount_non_negative'),
        sa.CheckConstraint('total >= 0', name='ck_invoice_total_non_negative'),
        sa.CheckConstraint('balance >= 0', name='ck_invoice_balance_non_negative'),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id']),
        sa.ForeignKeyConstraint(['warehouse_id'], ['warehouses.id']),
        sa.ForeignKeyConstraint(['shift_id'], ['shifts.id']),
        sa.ForeignKeyConstraint(['created_by'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('number'),
    )
    op.create_index('ix_invoices_customer', 'invoices', ['customer_id'])
    op.create_index('ix_invoices_shift', 'invoices', ['shift_id'])
    op.create_index('ix_invoices_status', 'invoices', ['status'])
    op.create_table(
        'invoice_items',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('invoice_id', sa.Uuid(), nullable=False),
        sa.Column('product_id', sa.Uuid(), nullable=False),
        sa.Column('variant_id', sa.Uuid(), nullable=True),
        sa.Column('description', sa.String(length=255), nullable=False),
        sa.Column('quantity', MONEY, nullable=False),
        sa.Column('unit_price', MONEY, nullable=False),
        sa.Column('discount', sa.Numeric(precision=5, scale=2), nullable=False, server_default='0'),
        sa.Column('subtotal', MONEY, nullable=False),
        sa.Column('tax_amount', MONEY, nullable=False),
        sa.Column('total', MONEY, nullable=False),
        sa.CheckConstraint('quantity > 0', name='ck_invoice_item_quantity_positive'),
        sa.CheckConstraint('unit_price >= 0', name='ck_invoice_item_price_non_negative'),
        sa.CheckConstraint('discount >= 0 AND discount <= 100', name='ck_invoice_item_discount_range'),
        sa.ForeignKeyConstraint(['invoice_id'], ['invoices.id']),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.ForeignKeyConstraint(['variant_id'], ['product_variants.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_invoice_items_invoice', 'invoice_items', ['invoice_id'])
    op.create_table(
        'invoice_item_taxes',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('invoice_item_id', sa.Uuid(), nullable=False),
        sa.Column('tax_rate_id', sa.Uuid(), nullable=True),
        sa.Column('tax_key', sa.String(length=100), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('rate', RATE, nullable=False),
        sa.Column('base', MONEY, nullable=False),
        sa.Column('amount', MONEY, nullable=False),
        sa.ForeignKeyConstraint(['invoice_item_id'], ['invoice_items.id']),
        sa.ForeignKeyConstraint(['tax_rate_id'], ['tax_rates.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_table(
        'invoice_tax_summaries',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('invoice_id', sa.Uuid(), nullable=False),
        sa.Column('tax_rate_id', sa.Uuid(), nullable=True),
        sa.Column('tax_key', sa.String(length=100), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('rate', RATE, nullable=False),
        sa.Column('base', MONEY, nullable=False),
        sa.Column('amount', MONEY, nullable=False),
        sa.ForeignKeyConstraint(['invoice_id'], ['invoices.id']),
        sa.ForeignKeyConstraint(['tax_rate_id'], ['tax_rates.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('invoice_id', 'tax_key', name='uq_invoice_tax_summary_key'),
    )
    op.create_table(
        'payments',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('invoice_id', sa.Uuid(), nullable=False),
        sa.Column('payment_method_id', sa.Uuid(), nullable=False),
        sa.Column('shift_id', sa.Uuid(), nullable=True),
        sa.Column('amount', MONEY, nullable=False),
        sa.Column('reference', sa.String(length=100), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by', sa.Uuid(), nullable=False),
        _created_at(),
        sa.CheckConstraint('amount > 0', name='ck_payment_amount_positive'),
        sa.ForeignKeyConstraint(['invoice_id'], ['invoices.id']),
        sa.ForeignKeyConstraint(['payment_method_id'], ['payment_methods.id']),
        sa.ForeignKeyConstraint(['shift_id'], ['shifts.id']),
        sa.ForeignKeyConstraint(['created_by'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_payments_invoice', 'payments', ['invoice_id'])

    # ── Returns ─────────────────────────────────────────────────────────────
    op.create_table(
        'returns',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('invoice_id', sa.Uuid(), nullable=False),
        sa.Column('shift_id', sa.Uuid(), nullable=True),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('subtotal', MONEY, nullable=False),
        sa.Column('discount', MONEY, nullable=False, server_default='0'),
        sa.Column('tax', MONEY, nullable=False),
        sa.Column('total', MONEY, nullable=False),
        sa.Column('created_by', sa.Uuid(), nullable=False),
        _created_at(),
        sa.ForeignKeyConstraint(['invoice_id'], ['invoices.id']),
        sa.ForeignKeyConstraint(['shift_id'], ['shifts.id']),
        sa.ForeignKeyConstraint(['created_by'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_returns_invoice', 'returns', ['invoice_id'])
    op.create_table(
        'return_items',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('return_id', sa.Uuid(), nullable=False),
        sa.Column('invoice_item_id', sa.Uuid(), nullable=False),
        sa.Column('product_id', sa.Uuid(), nullable=False),
        sa.Column('variant_id', sa.Uuid(), nullable=True),
        sa.Column('quantity', MONEY, nullable=False),
        sa.Column('subtotal', MONEY, nullable=False),
        sa.Column('tax', MONEY, nullable=False),
        sa.Column('total', MONEY, nullable=False),
        sa.CheckConstraint('quantity > 0', name='ck_return_item_quantity_positive'),
        sa.ForeignKeyConstraint(['return_id'], ['returns.id']),
        sa.ForeignKeyConstraint(['invoice_item_id'], ['invoice_items.id']),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.ForeignKeyConstraint(['variant_id'], ['product_variants.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_return_items_invoice_item', 'return_items', ['invoice_item_id'])
    op.create_table(
        'return_refunds',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('return_id', sa.Uuid(), nullable=False),
        sa.Column('payment_method_id', sa.Uuid(), nullable=False),
        sa.Column('amount', MONEY, nullable=False),
        sa.Column('reference', sa.String(length=100), nullable=True),
        sa.CheckConstraint('amount > 0', name='ck_return_refund_amount_positive'),
        sa.ForeignKeyConstraint(['return_id'], ['returns.id']),
        sa.ForeignKeyConstraint(['payment_method_id'], ['payment_methods.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_table(
        'credit_notes',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('number', sa.String(length=50), nullable=False),
        sa.Column('prefix', sa.String(length=10), nullable=False),
        sa.Column('consecutive', sa.Integer(), nullable=False),
        sa.Column('invoice_id', sa.Uuid(), nullable=False),
        sa.Column('return_id', sa.Uuid(), nullable=False),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('subtotal', MONEY, nullable=False),
        sa.Column('tax', MONEY, nullable=False),
        sa.Column('total', MONEY, nullable=False),
        sa.Column('transmitted_at', sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(['invoice_id'], ['invoices.id']),
        sa.ForeignKeyConstraint(['return_id'], ['returns.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('number'),
        sa.UniqueConstraint('return_id'),
    )

    # ── Outbox ──────────────────────────────────────────────────────────────
    op.create_table(
        'integration_events',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('event_type', sa.String(length=100), nullable=False),
        sa.Column('aggregate_type', sa.String(length=50), nullable=False),
        sa.Column('aggregate_id', sa.String(length=100), nullable=False),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column(
            'status',
            sa.Enum('PENDING', 'PROCESSED', 'DEAD_LETTER', name='integrationeventstatus'),
            nullable=False,
        ),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('max_attempts', sa.Integer(), nullable=False, server_default='5'),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('available_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_integration_events_pending', 'integration_events', ['status', 'available_at'])
    op.create_index('ix_integration_events_aggregate', 'integration_events', ['aggregate_type', 'aggregate_id'])


def downgrade() -> None:
    """Drop the sale engine schema."""
    for table in (
        'integration_events',
        'credit_notes',
        'return_refunds',
        'return_items',
        'returns',
        'payments',
        'invoice_tax_summaries',
        'invoice_item_taxes',
        'invoice_items',
        'invoices',
        'document_sequences',
        'cash_movements',
        'shift_summaries',
        'shifts',
        'payment_methods',
        'customers',
        'stock_movements',
        'stock_levels',
        'warehouses',
        'recipe_items',
        'product_variants',
        'products',
        'tax_rates',
        'transaction_splits',
        'journal_entries',
        'accounts',
        'audit_logs',
        'users',
        'role_permissions',
        'permissions',
        'roles',
    ):
        op.drop_table(table)
    for name in _ENUMS:
        op.execute(f"DROP TYPE IF EXISTS {name}")
