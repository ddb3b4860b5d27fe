"""
Alembic migration: Initial marketplace order and payment schema.

Creates the catalog tables read during order placement (products, inventory,
vouchers, addresses), the order and line item tables, and the payment tables
with their status audit trail. Status columns use native PostgreSQL enums.

Revision ID: 001
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# Revision identifiers, used by Alembic
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ENUM_TYPES = {
    'discount_type': ('fixed', 'percentage'),
    'order_status': ('pending', 'paid', 'rejected', 'shipping', 'shipped', 'failed'),
    'line_item_status': ('pending', 'shipping', 'shipped', 'failed_to_ship'),
    'payment_method': ('cash_on_delivery', 'qr_gateway', 'redirect_gateway'),
    'payment_status': ('pending', 'paid', 'failed'),
}


def _enum(name: str) -> postgresql.ENUM:
    return postgresql.ENUM(*ENUM_TYPES[name], name=name, create_type=False)


def _id_column() -> sa.Column:
    return sa.Column(
        'id',
        postgresql.UUID(as_uuid=True),
        primary_key=True,
        nullable=False,
        comment='Unique identifier for the record',
    )


def _timestamp_columns() -> list[sa.Column]:
    return [
        sa.Column(
            'created_at',
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
            comment='Timestamp when record was created',
        ),
        sa.Column(
            'updated_at',
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
            comment='Timestamp when record was last updated',
        ),
    ]


def upgrade() -> None:
    """
    Upgrade database schema to the initial marketplace layout.

    Creates enum types first, then tables in foreign key order.
    """
    for name, values in ENUM_TYPES.items():
        quoted = ", ".join(f"'{value}'" for value in values)
        op.execute(f"CREATE TYPE {name} AS ENUM ({quoted})")

    # Catalog
    op.create_table(
        'products',
        _id_column(),
        sa.Column(
            'seller_id',
            postgresql.UUID(as_uuid=True),
            nullable=False,
            comment='Seller that lists and ships the product',
        ),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column(
            'price',
            sa.Numeric(precision=12, scale=2),
            nullable=False,
            comment='Current unit price',
        ),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamp_columns(),
        sa.CheckConstraint('price >= 0', name='ck_products_price_non_negative'),
        comment='Catalog products',
    )
    op.create_index('ix_products_seller_id', 'products', ['seller_id'])

    op.create_table(
        'inventory',
        _id_column(),
        sa.Column(
            'product_id',
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey('products.id', ondelete='CASCADE'),
            nullable=False,
            unique=True,
        ),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='0'),
        *_timestamp_columns(),
        sa.CheckConstraint('quantity >= 0', name='ck_inventory_quantity_non_negative'),
        comment='Product stock levels',
    )

    op.create_table(
        'vouchers',
        _id_column(),
        sa.Column('code', sa.String(length=50), nullable=False, unique=True),
        sa.Column('discount_type', _enum('discount_type'), nullable=False),
        sa.Column('discount_value', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column(
            'min_order_value',
            sa.Numeric(precision=12, scale=2),
            nullable=False,
            server_default='0',
        ),
        sa.Column('max_discount', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('usage_limit', sa.Integer(), nullable=True),
        sa.Column('used_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('valid_until', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamp_columns(),
        sa.CheckConstraint(
            'discount_value >= 0', name='ck_vouchers_discount_value_non_negative'
        ),
        sa.CheckConstraint('used_count >= 0', name='ck_vouchers_used_count_non_negative'),
        sa.CheckConstraint(
            'usage_limit IS NULL OR used_count <= usage_limit',
            name='ck_vouchers_usage_within_limit',
        ),
        comment='Discount vouchers',
    )

    op.create_table(
        'addresses',
        _id_column(),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('recipient_name', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=30), nullable=True),
        sa.Column('street', sa.String(length=255), nullable=False),
        sa.Column('city', sa.String(length=100), nullable=False),
        sa.Column('state', sa.String(length=100), nullable=True),
        sa.Column('postal_code', sa.String(length=20), nullable=True),
        sa.Column('country', sa.String(length=2), nullable=False, server_default='VN'),
        sa.Column('is_default', sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamp_columns(),
        comment='Buyer address book',
    )
    op.create_index('ix_addresses_user_id', 'addresses', ['user_id'])
    op.create_index('ix_addresses_user_default', 'addresses', ['user_id', 'is_default'])

    # Orders
    op.create_table(
        'orders',
        _id_column(),
        sa.Column(
            'buyer_id',
            postgresql.UUID(as_uuid=True),
            nullable=False,
            comment='Buyer identity',
        ),
        sa.Column(
            'buyer_email',
            sa.String(length=255),
            nullable=True,
            comment='Buyer contact email at order time',
        ),
        sa.Column(
            'address_id',
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey('addresses.id', ondelete='RESTRICT'),
            nullable=False,
            comment='Shipping address identifier',
        ),
        sa.Column(
            'shipping_address',
            postgresql.JSONB(),
            nullable=False,
            comment='Shipping address snapshot',
        ),
        sa.Column('subtotal', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column(
            'discount_amount',
            sa.Numeric(precision=12, scale=2),
            nullable=False,
            server_default='0',
        ),
        sa.Column('total_price', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('voucher_code', sa.String(length=50), nullable=True),
        sa.Column(
            'status',
            _enum('order_status'),
            nullable=False,
            server_default='pending',
            comment='Order status',
        ),
        *_timestamp_columns(),
        sa.CheckConstraint('subtotal >= 0', name='ck_orders_subtotal_non_negative'),
        sa.CheckConstraint('discount_amount >= 0', name='ck_orders_discount_non_negative'),
        sa.CheckConstraint('total_price >= 0', name='ck_orders_total_non_negative'),
        comment='Buyer orders',
    )
    op.create_index('ix_orders_buyer_id', 'orders', ['buyer_id'])
    op.create_index('ix_orders_status', 'orders', ['status'])
    op.create_index('ix_orders_buyer_created', 'orders', ['buyer_id', 'created_at'])

    op.create_table(
        'order_items',
        _id_column(),
        sa.Column(
            'order_id',
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey('orders.id', ondelete='RESTRICT'),
            nullable=False,
        ),
        sa.Column(
            'product_id',
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey('products.id', ondelete='RESTRICT'),
            nullable=False,
        ),
        sa.Column('seller_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column(
            'unit_price_snapshot',
            sa.Numeric(precision=12, scale=2),
            nullable=False,
            comment='Product price at order time',
        ),
        sa.Column(
            'status',
            _enum('line_item_status'),
            nullable=False,
            server_default='pending',
        ),
        sa.Column('tracking_number', sa.String(length=100), nullable=True),
        *_timestamp_columns(),
        sa.CheckConstraint('quantity >= 1', name='ck_order_items_quantity_positive'),
        sa.CheckConstraint(
            'unit_price_snapshot >= 0', name='ck_order_items_unit_price_non_negative'
        ),
        comment='Individual items in an order',
    )
    op.create_index('ix_order_items_order_id', 'order_items', ['order_id'])
    op.create_index('ix_order_items_seller_id', 'order_items', ['seller_id'])
    op.create_index('ix_order_items_order_seller', 'order_items', ['order_id', 'seller_id'])

    # Payments
    op.create_table(
        'payments',
        _id_column(),
        sa.Column(
            'order_id',
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey('orders.id', ondelete='RESTRICT'),
            nullable=False,
            comment='Order this payment settles',
        ),
        sa.Column('buyer_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('method', _enum('payment_method'), nullable=False),
        sa.Column('amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column(
            'status',
            _enum('payment_status'),
            nullable=False,
            server_default='pending',
        ),
        sa.Column('provider_reference', sa.String(length=100), nullable=True),
        sa.Column('display_payload', postgresql.JSONB(), nullable=True),
        sa.Column('transaction_id', sa.String(length=255), nullable=True),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('failure_reason', sa.String(length=500), nullable=True),
        *_timestamp_columns(),
        sa.UniqueConstraint('order_id', name='uq_payments_order_id'),
        sa.UniqueConstraint('provider_reference', name='uq_payments_provider_reference'),
        sa.CheckConstraint('amount >= 0', name='ck_payments_amount_non_negative'),
        sa.CheckConstraint(
            "paid_at IS NULL OR status = 'paid'",
            name='ck_payments_paid_at_only_when_paid',
        ),
        comment='One payment per order',
    )
    op.create_index('ix_payments_buyer_id', 'payments', ['buyer_id'])
    op.create_index('ix_payments_status', 'payments', ['status'])
    op.create_index('ix_payments_status_created', 'payments', ['status', 'created_at'])

    op.create_table(
        'payment_status_history',
        _id_column(),
        sa.Column(
            'payment_id',
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey('payments.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('from_status', _enum('payment_status'), nullable=True),
        sa.Column('to_status', _enum('payment_status'), nullable=False),
        sa.Column('reason', sa.String(length=500), nullable=True),
        *_timestamp_columns(),
    )
    op.create_index(
        'ix_payment_status_history_payment_id',
        'payment_status_history',
        ['payment_id'],
    )


def downgrade() -> None:
    """Drop all marketplace tables and enum types."""
    op.drop_table('payment_status_history')
    op.drop_table('payments')
    op.drop_table('order_items')
    op.drop_table('orders')
    op.drop_table('addresses')
    op.drop_table('vouchers')
    op.drop_table('inventory')
    op.drop_table('products')

    for name in reversed(list(ENUM_TYPES)):
        op.execute(f"DROP TYPE IF EXISTS {name}")
