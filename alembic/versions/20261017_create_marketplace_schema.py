"""Create marketplace order and inventory schema

Revision ID: 001_marketplace
Revises:
Create Date: 2026-10-17

Tables:
- users, customer_profiles, artisan_profiles (base identity + role extensions)
- products (stock counters guarded by CHECK constraints)
- orders, order_items, order_timeline
- order_sequences (per-day order number counter)
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB


# revision identifiers, used by Alembic.
revision: str = '001_marketplace'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSONType = sa.JSON().with_variant(JSONB(), "postgresql")


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    # ====================
    # IDENTITY
    # ====================
    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('first_name', sa.String(100), nullable=False),
        sa.Column('last_name', sa.String(100), nullable=True),
        sa.Column('phone', sa.String(20), nullable=True),
        sa.Column('role', sa.String(30), nullable=False),
        sa.Column('is_active', sa.Boolean, nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_role', 'users', ['role'])

    op.create_table(
        'customer_profiles',
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('loyalty_points', sa.Integer, nullable=False),
        sa.Column('loyalty_tier', sa.String(20), nullable=False),
        sa.Column('total_orders', sa.Integer, nullable=False),
        sa.Column('total_spent', sa.Numeric(12, 2), nullable=False),
        sa.Column('average_order_value', sa.Numeric(12, 2), nullable=False),
    )

    op.create_table(
        'artisan_profiles',
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('business_name', sa.String(200), nullable=True),
        sa.Column('craft_specialty', sa.String(100), nullable=True),
        sa.Column('product_count', sa.Integer, nullable=False),
    )

    # ====================
    # CATALOG
    # ====================
    op.create_table(
        'products',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('category', sa.String(50), nullable=False),
        sa.Column('subcategory', sa.String(100), nullable=True),
        sa.Column('seller_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('base_price', sa.Numeric(12, 2), nullable=False),
        sa.Column('discounted_price', sa.Numeric(12, 2), nullable=True),
        sa.Column('currency', sa.String(3), nullable=False),
        sa.Column('quantity', sa.Integer, nullable=False),
        sa.Column('reserved_quantity', sa.Integer, nullable=False),
        sa.Column('low_stock_threshold', sa.Integer, nullable=False),
        sa.Column('time_to_craft', sa.String(50), nullable=True),
        sa.Column('is_customizable', sa.Boolean, nullable=False),
        sa.Column('customization_options', JSONType, nullable=False),
        sa.Column('total_sold', sa.Integer, nullable=False),
        sa.Column('total_revenue', sa.Numeric(14, 2), nullable=False),
        sa.Column('last_sale_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('is_active', sa.Boolean, nullable=False),
        sa.Column('is_featured', sa.Boolean, nullable=False),
        *_timestamps(),
        sa.CheckConstraint('reserved_quantity >= 0', name='ck_product_reserved_non_negative'),
        sa.CheckConstraint('reserved_quantity <= quantity', name='ck_product_reserved_within_quantity'),
    )
    op.create_index('ix_products_category', 'products', ['category'])
    op.create_index('ix_product_category_active_status', 'products', ['category', 'is_active', 'status'])
    op.create_index('ix_product_seller_active', 'products', ['seller_id', 'is_active'])

    # ====================
    # ORDERS
    # ====================
    op.create_table(
        'orders',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('order_number', sa.String(30), nullable=False),
        sa.Column('buyer_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('status', sa.String(30), nullable=False),
        sa.Column('subtotal', sa.Numeric(12, 2), nullable=False),
        sa.Column('shipping_cost', sa.Numeric(12, 2), nullable=False),
        sa.Column('tax_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('discount_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('total_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False),
        sa.Column('discounts', JSONType, nullable=False),
        sa.Column('shipping_address', JSONType, nullable=False),
        sa.Column('billing_address', JSONType, nullable=True),
        sa.Column('payment_method', sa.String(30), nullable=False),
        sa.Column('payment_status', sa.String(20), nullable=False),
        sa.Column('transaction_id', sa.String(100), nullable=True),
        sa.Column('payment_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('payment_details', JSONType, nullable=True),
        sa.Column('shipping_method', sa.String(30), nullable=False),
        sa.Column('tracking_number', sa.String(100), nullable=True),
        sa.Column('carrier', sa.String(100), nullable=True),
        sa.Column('delivery_instructions', sa.Text, nullable=True),
        sa.Column('shipped_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('delivered_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('estimated_completion_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('actual_completion_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_cancelled', sa.Boolean, nullable=False),
        sa.Column('cancelled_by', sa.Uuid(), nullable=True),
        sa.Column('cancelled_by_role', sa.String(20), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancellation_reason', sa.Text, nullable=True),
        sa.Column('refund_status', sa.String(20), nullable=True),
        sa.Column('customer_notes', sa.Text, nullable=True),
        sa.Column('internal_notes', sa.Text, nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_orders_order_number', 'orders', ['order_number'], unique=True)
    op.create_index('ix_orders_status', 'orders', ['status'])
    op.create_index('ix_orders_created_at', 'orders', ['created_at'])
    op.create_index('ix_order_status_created', 'orders', ['status', 'created_at'])
    op.create_index('ix_order_buyer_created', 'orders', ['buyer_id', 'created_at'])
    op.create_index('ix_order_payment_status', 'orders', ['payment_status', 'created_at'])

    op.create_table(
        'order_items',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('order_id', sa.Uuid(), sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('position', sa.Integer, nullable=False),
        sa.Column('product_id', sa.Uuid(), sa.ForeignKey('products.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('seller_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('product_name', sa.String(200), nullable=False),
        sa.Column('quantity', sa.Integer, nullable=False),
        sa.Column('unit_price', sa.Numeric(12, 2), nullable=False),
        sa.Column('customization_cost', sa.Numeric(12, 2), nullable=False),
        sa.Column('total_price', sa.Numeric(12, 2), nullable=False),
        sa.Column('customization', JSONType, nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_order_items_order_id', 'order_items', ['order_id'])
    op.create_index('ix_order_items_seller_id', 'order_items', ['seller_id'])

    op.create_table(
        'order_timeline',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('order_id', sa.Uuid(), sa.ForeignKey('orders.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('sequence', sa.Integer, nullable=False),
        sa.Column('status', sa.String(30), nullable=False),
        sa.Column('note', sa.Text, nullable=True),
        sa.Column('actor_id', sa.Uuid(), nullable=False),
        sa.Column('actor_role', sa.String(20), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_order_timeline_order_id', 'order_timeline', ['order_id'])

    op.create_table(
        'order_sequences',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('prefix', sa.String(10), nullable=False),
        sa.Column('sequence_date', sa.String(8), nullable=False),
        sa.Column('current_number', sa.Integer, nullable=False),
        sa.Column('padding_length', sa.Integer, nullable=False),
        *_timestamps(),
        sa.UniqueConstraint('prefix', 'sequence_date', name='uq_order_sequence_prefix_date'),
    )


def downgrade() -> None:
    op.drop_table('order_sequences')
    op.drop_table('order_timeline')
    op.drop_table('order_items')
    op.drop_table('orders')
    op.drop_table('products')
    op.drop_table('artisan_profiles')
    op.drop_table('customer_profiles')
    op.drop_table('users')
