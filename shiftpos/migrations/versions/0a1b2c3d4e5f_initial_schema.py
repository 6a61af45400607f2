"""initial_schema

Revision ID: 0a1b2c3d4e5f
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '0a1b2c3d4e5f'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

role_enum = sa.Enum('ADMIN', 'SUPERVISOR', 'CASHIER', name='roleenum')
product_status_enum = sa.Enum('ACTIVE', 'INACTIVE', 'ARCHIVED', name='productstatus')
unit_type_enum = sa.Enum('PCS', 'CARTON', name='unittype')
customer_type_enum = sa.Enum('REGULAR', 'MEMBER', 'VIP', name='customertype')
tier_level_enum = sa.Enum('REGULAR', 'SILVER', 'GOLD', 'PLATINUM', name='tierlevel')
customer_status_enum = sa.Enum('ACTIVE', 'INACTIVE', name='customerstatus')
discount_type_enum = sa.Enum('PERCENTAGE', 'FIXED_AMOUNT', name='discounttype')
discount_target_enum = sa.Enum(
    'PRODUCT', 'CATEGORY', 'BRAND', 'GLOBAL', 'CUSTOMER', name='discounttarget'
)
discount_status_enum = sa.Enum('ACTIVE', 'INACTIVE', name='discountstatus')
payment_method_enum = sa.Enum('CASH', 'CARD', 'BANK_TRANSFER', name='paymentmethod')
shift_status_enum = sa.Enum('ACTIVE', 'CLOSED', name='shiftstatus')
approval_status_enum = sa.Enum('NONE', 'PENDING', 'APPROVED', 'REJECTED', name='approvalstatus')
sale_status_enum = sa.Enum('COMPLETED', 'CANCELLED', name='salestatus')
return_status_enum = sa.Enum('COMPLETED', 'CANCELLED', name='returnstatus')

_ENUM_NAMES = (
    'returnstatus',
    'salestatus',
    'approvalstatus',
    'shiftstatus',
    'paymentmethod',
    'discountstatus',
    'discounttarget',
    'discounttype',
    'customerstatus',
    'tierlevel',
    'customertype',
    'unittype',
    'productstatus',
    'roleenum',
)


def _counter(name: str) -> sa.Column:
    return sa.Column(name, sa.BigInteger(), nullable=False, server_default='0')


def upgrade() -> None:
    """Create users, catalogue, customers, discounts, shifts, sales, returns and audit tables."""
    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('username', sa.String(length=150), nullable=False),
        sa.Column('full_name', sa.String(length=255), nullable=True),
        sa.Column('role', role_enum, nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('username'),
    )

    # ─── Catalogue ────────────────────────────────────────────────────────
    op.create_table(
        'categories',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
    )
    op.create_table(
        'brands',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
    )
    op.create_table(
        'products',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('sku', sa.String(length=50), nullable=False),
        sa.Column('category_id', sa.Uuid(), nullable=True),
        sa.Column('brand_id', sa.Uuid(), nullable=True),
        sa.Column('status', product_status_enum, nullable=False),
        sa.Column('price', sa.BigInteger(), nullable=False),
        sa.Column('carton_price', sa.BigInteger(), nullable=True),
        sa.Column('pcs_per_carton', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('supports_carton', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint('stock >= 0', name='ck_products_stock_non_negative'),
        sa.CheckConstraint('price >= 0', name='ck_products_price_non_negative'),
        sa.CheckConstraint('pcs_per_carton >= 1', name='ck_products_pcs_per_carton'),
        sa.ForeignKeyConstraint(['category_id'], ['categories.id']),
        sa.ForeignKeyConstraint(['brand_id'], ['brands.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('sku'),
    )
    op.create_index('ix_products_category', 'products', ['category_id'])
    op.create_index('ix_products_brand', 'products', ['brand_id'])
    op.create_index('ix_products_status', 'products', ['status'])

    # ─── Customers & loyalty ──────────────────────────────────────────────
    op.create_table(
        'customers',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=50), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('customer_type', customer_type_enum, nullable=False),
        sa.Column('total_points', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_spending', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('tier_level', tier_level_enum, nullable=False),
        sa.Column('status', customer_status_enum, nullable=False),
        sa.Column('last_purchase_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint('total_points >= 0', name='ck_customers_points_non_negative'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_customers_phone', 'customers', ['phone'])

    loyalty_settings = op.create_table(
        'loyalty_settings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('earn_amount_per_point', sa.BigInteger(), nullable=False),
        sa.Column('redeem_amount_per_point', sa.BigInteger(), nullable=False),
        sa.Column('silver_min_spending', sa.BigInteger(), nullable=False),
        sa.Column('gold_min_spending', sa.BigInteger(), nullable=False),
        sa.Column('platinum_min_spending', sa.BigInteger(), nullable=False),
        sa.Column('silver_multiplier', sa.Numeric(precision=6, scale=2), nullable=False),
        sa.Column('gold_multiplier', sa.Numeric(precision=6, scale=2), nullable=False),
        sa.Column('platinum_multiplier', sa.Numeric(precision=6, scale=2), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint('id = 1', name='ck_loyalty_settings_singleton'),
        sa.CheckConstraint('earn_amount_per_point > 0', name='ck_loyalty_earn_positive'),
        sa.CheckConstraint('redeem_amount_per_point > 0', name='ck_loyalty_redeem_positive'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.execute(
        """
        INSERT INTO loyalty_settings (
            id, earn_amount_per_point, redeem_amount_per_point,
            silver_min_spending, gold_min_spending, platinum_min_spending,
            silver_multiplier, gold_multiplier, platinum_multiplier
        )
        VALUES (1, 1000000, 10000, 100000000, 500000000, 1000000000, 1.00, 1.25, 1.50)
        """
    )

    # ─── Discounts ────────────────────────────────────────────────────────
    op.create_table(
        'discounts',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('discount_type', discount_type_enum, nullable=False),
        sa.Column('value', sa.BigInteger(), nullable=False),
        sa.Column('applies_to', discount_target_enum, nullable=False),
        sa.Column('product_id', sa.Uuid(), nullable=True),
        sa.Column('category_id', sa.Uuid(), nullable=True),
        sa.Column('brand_id', sa.Uuid(), nullable=True),
        sa.Column('customer_type', customer_type_enum, nullable=True),
        sa.Column('start_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('end_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('status', discount_status_enum, nullable=False),
        sa.Column('minimum_purchase', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('priority_level', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('stackable', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint('value > 0', name='ck_discounts_value_positive'),
        sa.CheckConstraint(
            "discount_type != 'PERCENTAGE' OR value <= 10000",
            name='ck_discounts_percentage_range',
        ),
        sa.CheckConstraint('minimum_purchase >= 0', name='ck_discounts_minimum_non_negative'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.ForeignKeyConstraint(['category_id'], ['categories.id']),
        sa.ForeignKeyConstraint(['brand_id'], ['brands.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_discounts_active_status', 'discounts', ['active', 'status'])
    op.create_index('ix_discounts_priority', 'discounts', ['priority_level'])

    # ─── Shifts ───────────────────────────────────────────────────────────
    op.create_table(
        'shifts',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('terminal_name', sa.String(length=255), nullable=False),
        sa.Column('status', shift_status_enum, nullable=False),
        sa.Column('approval_status', approval_status_enum, nullable=False),
        sa.Column('opened_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('closed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('opening_cash', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('expected_cash', sa.BigInteger(), nullable=True),
        sa.Column('actual_cash', sa.BigInteger(), nullable=True),
        sa.Column('cash_difference', sa.BigInteger(), nullable=True),
        sa.Column('note', sa.Text(), nullable=True),
        sa.Column('close_note', sa.Text(), nullable=True),
        sa.Column('approved_by', sa.Uuid(), nullable=True),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('approval_note', sa.Text(), nullable=True),
        _counter('transaction_count'),
        _counter('total_sales'),
        _counter('cash_sales'),
        _counter('non_cash_sales'),
        sa.Column('payment_breakdown', sa.JSON(), nullable=False),
        _counter('total_discount'),
        _counter('points_used'),
        _counter('points_earned'),
        _counter('point_tx_count'),
        _counter('big_discount_tx_count'),
        _counter('total_refund'),
        _counter('cash_refunds'),
        _counter('non_cash_refunds'),
        _counter('return_count'),
        _counter('points_reversed'),
        _counter('points_restored'),
        _counter('void_count'),
        _counter('void_cash_out'),
        _counter('return_cancel_cash_in'),
        sa.CheckConstraint(
            "(status = 'ACTIVE' AND approval_status = 'NONE'"
            " AND closed_at IS NULL AND actual_cash IS NULL)"
            " OR (status = 'CLOSED' AND closed_at IS NOT NULL"
            " AND actual_cash IS NOT NULL AND expected_cash IS NOT NULL"
            " AND cash_difference IS NOT NULL)",
            name='ck_shifts_state',
        ),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['approved_by'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(
        'uq_shifts_active_user',
        'shifts',
        ['user_id'],
        unique=True,
        postgresql_where=sa.text("status = 'ACTIVE'"),
        sqlite_where=sa.text("status = 'ACTIVE'"),
    )
    op.create_index(
        'uq_shifts_active_terminal',
        'shifts',
        ['terminal_name'],
        unique=True,
        postgresql_where=sa.text("status = 'ACTIVE'"),
        sqlite_where=sa.text("status = 'ACTIVE'"),
    )
    op.create_index('ix_shifts_status', 'shifts', ['status'])
    op.create_index('ix_shifts_approval_status', 'shifts', ['approval_status'])
    op.create_index('ix_shifts_opened_at', 'shifts', ['opened_at'])

    # ─── Sales ────────────────────────────────────────────────────────────
    op.create_table(
        'sales',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('invoice_no', sa.String(length=50), nullable=False),
        sa.Column('shift_id', sa.Uuid(), nullable=False),
        sa.Column('cashier_id', sa.Uuid(), nullable=False),
        sa.Column('customer_id', sa.Uuid(), nullable=True),
        sa.Column('subtotal', sa.BigInteger(), nullable=False),
        sa.Column('item_discount_amount', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('global_discount_amount', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('discount_amount', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('applied_global_discount_id', sa.Uuid(), nullable=True),
        sa.Column('redeemed_points', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('redeemed_amount', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('points_earned', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('final_amount', sa.BigInteger(), nullable=False),
        sa.Column('payment_method', payment_method_enum, nullable=False),
        sa.Column('status', sale_status_enum, nullable=False),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_by', sa.Uuid(), nullable=True),
        sa.Column('cancelled_shift_id', sa.Uuid(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint('final_amount >= 0', name='ck_sales_final_non_negative'),
        sa.CheckConstraint(
            "(status = 'COMPLETED' AND cancelled_at IS NULL)"
            " OR (status = 'CANCELLED' AND cancelled_at IS NOT NULL)",
            name='ck_sales_state',
        ),
        sa.ForeignKeyConstraint(['shift_id'], ['shifts.id']),
        sa.ForeignKeyConstraint(['cashier_id'], ['users.id']),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id']),
        sa.ForeignKeyConstraint(['applied_global_discount_id'], ['discounts.id']),
        sa.ForeignKeyConstraint(['cancelled_by'], ['users.id']),
        sa.ForeignKeyConstraint(['cancelled_shift_id'], ['shifts.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('invoice_no'),
    )
    op.create_index('ix_sales_shift', 'sales', ['shift_id'])
    op.create_index('ix_sales_cancelled_shift', 'sales', ['cancelled_shift_id'])
    op.create_index('ix_sales_cashier', 'sales', ['cashier_id'])
    op.create_index('ix_sales_customer', 'sales', ['customer_id'])
    op.create_index('ix_sales_created_at', 'sales', ['created_at'])

    op.create_table(
        'sale_items',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('sale_id', sa.Uuid(), nullable=False),
        sa.Column('line_no', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Uuid(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_type', unit_type_enum, nullable=False),
        sa.Column('conversion_qty', sa.Integer(), nullable=False),
        sa.Column('price_at_sale', sa.BigInteger(), nullable=False),
        sa.Column('gross_amount', sa.BigInteger(), nullable=False),
        sa.Column('discount_amount', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('applied_discount_id', sa.Uuid(), nullable=True),
        sa.Column('subtotal', sa.BigInteger(), nullable=False),
        sa.Column('net_amount', sa.BigInteger(), nullable=False),
        sa.Column('redeemed_share', sa.BigInteger(), nullable=False, server_default='0'),
        sa.CheckConstraint('quantity > 0', name='ck_sale_items_quantity_positive'),
        sa.CheckConstraint('net_amount >= 0', name='ck_sale_items_net_non_negative'),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id']),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.ForeignKeyConstraint(['applied_discount_id'], ['discounts.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_sale_items_sale', 'sale_items', ['sale_id'])
    op.create_index('ix_sale_items_product', 'sale_items', ['product_id'])

    op.create_table(
        'sale_discount_lines',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('sale_id', sa.Uuid(), nullable=False),
        sa.Column('sale_item_id', sa.Uuid(), nullable=True),
        sa.Column('discount_id', sa.Uuid(), nullable=False),
        sa.Column('amount', sa.BigInteger(), nullable=False),
        sa.CheckConstraint('amount > 0', name='ck_sale_discount_lines_amount_positive'),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id']),
        sa.ForeignKeyConstraint(['sale_item_id'], ['sale_items.id']),
        sa.ForeignKeyConstraint(['discount_id'], ['discounts.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_sale_discount_lines_sale', 'sale_discount_lines', ['sale_id'])

    op.create_table(
        'suspended_sales',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('cashier_id', sa.Uuid(), nullable=False),
        sa.Column('customer_id', sa.Uuid(), nullable=True),
        sa.Column('note', sa.String(length=255), nullable=True),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['cashier_id'], ['users.id']),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_suspended_sales_cashier', 'suspended_sales', ['cashier_id'])

    # ─── Returns ──────────────────────────────────────────────────────────
    op.create_table(
        'returns',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('return_number', sa.String(length=50), nullable=False),
        sa.Column('sale_id', sa.Uuid(), nullable=False),
        sa.Column('shift_id', sa.Uuid(), nullable=False),
        sa.Column('cashier_id', sa.Uuid(), nullable=False),
        sa.Column('customer_id', sa.Uuid(), nullable=True),
        sa.Column('refund_method', payment_method_enum, nullable=False),
        sa.Column('total_refund', sa.BigInteger(), nullable=False),
        sa.Column('points_reversed', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('points_restored', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('status', return_status_enum, nullable=False),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_by', sa.Uuid(), nullable=True),
        sa.Column('cancelled_shift_id', sa.Uuid(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint('total_refund >= 0', name='ck_returns_refund_non_negative'),
        sa.CheckConstraint(
            "(status = 'COMPLETED' AND cancelled_at IS NULL)"
            " OR (status = 'CANCELLED' AND cancelled_at IS NOT NULL)",
            name='ck_returns_state',
        ),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id']),
        sa.ForeignKeyConstraint(['shift_id'], ['shifts.id']),
        sa.ForeignKeyConstraint(['cashier_id'], ['users.id']),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id']),
        sa.ForeignKeyConstraint(['cancelled_by'], ['users.id']),
        sa.ForeignKeyConstraint(['cancelled_shift_id'], ['shifts.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('return_number'),
    )
    op.create_index('ix_returns_sale', 'returns', ['sale_id'])
    op.create_index('ix_returns_shift', 'returns', ['shift_id'])
    op.create_index('ix_returns_cancelled_shift', 'returns', ['cancelled_shift_id'])
    op.create_index('ix_returns_created_at', 'returns', ['created_at'])

    op.create_table(
        'return_items',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('return_id', sa.Uuid(), nullable=False),
        sa.Column('product_id', sa.Uuid(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('refund_amount', sa.BigInteger(), nullable=False),
        sa.Column('redeemed_share', sa.BigInteger(), nullable=False, server_default='0'),
        sa.CheckConstraint('quantity > 0', name='ck_return_items_quantity_positive'),
        sa.ForeignKeyConstraint(['return_id'], ['returns.id']),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_return_items_return', 'return_items', ['return_id'])
    op.create_index('ix_return_items_product', 'return_items', ['product_id'])

    op.create_table(
        'point_logs',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('customer_id', sa.Uuid(), nullable=False),
        sa.Column('sale_id', sa.Uuid(), nullable=True),
        sa.Column('return_id', sa.Uuid(), nullable=True),
        sa.Column('points_change', sa.Integer(), nullable=False),
        sa.Column('reason', sa.String(length=50), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id']),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id']),
        sa.ForeignKeyConstraint(['return_id'], ['returns.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_point_logs_customer', 'point_logs', ['customer_id'])
    op.create_index('ix_point_logs_sale', 'point_logs', ['sale_id'])

    # ─── Audit ────────────────────────────────────────────────────────────
    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('table_name', sa.String(length=100), nullable=False),
        sa.Column('record_id', sa.String(length=255), nullable=False),
        sa.Column('action', sa.String(length=50), nullable=False),
        sa.Column('changed_by', sa.Uuid(), nullable=True),
        sa.Column(
            'new_values',
            sa.JSON().with_variant(postgresql.JSONB(), 'postgresql'),
            nullable=True,
        ),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['changed_by'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_audit_table_record', 'audit_logs', ['table_name', 'record_id'])
    op.create_index('ix_audit_created_at', 'audit_logs', ['created_at'])
    op.create_index('ix_audit_action', 'audit_logs', ['action'])
    op.create_index('ix_audit_changed_by', 'audit_logs', ['changed_by'])


def downgrade() -> None:
    """Drop every table created by this revision."""
    for table in (
        'audit_logs',
        'point_logs',
        'return_items',
        'returns',
        'suspended_sales',
        'sale_discount_lines',
        'sale_items',
        'sales',
        'shifts',
        'discounts',
        'loyalty_settings',
        'customers',
        'products',
        'brands',
        'categories',
        'users',
    ):
        op.drop_table(table)
    if op.get_bind().dialect.name != "postgresql":
        return
    for name in _ENUM_NAMES:
        op.execute(f"DROP TYPE IF EXISTS {name}")
