"""
Alembic migration: Create the order lifecycle and settlement schema.

This migration creates the tables read and written by the order engine:
users, restaurants and menu items (read at pricing time), platform settings,
the order aggregate with its line item snapshots and status history, the
display number sequence, and in-app notifications. Integrity rules that the
services rely on are enforced here too: the rating and partner check
constraints and the one-active-delivery-per-partner partial unique index.

Revision ID: 001
Revises:
Create Date: 2026-10-12 09:00:00.000000
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

ORDER_STATUSES = (
    'pending',
    'accepted',
    'rejected',
    'cancelled',
    'preparing',
    'ready',
    'assigned',
    'picked_up',
    'delivered',
)
ACTOR_ROLES = ('customer', 'restaurant', 'delivery', 'admin')
NOTIFICATION_KINDS = (
    'new_order',
    'order_update',
    'order_assigned',
    'order_ready',
    'order_cancelled',
    'general',
)

order_status = postgresql.ENUM(*ORDER_STATUSES, name='order_status', create_type=False)
actor_role = postgresql.ENUM(*ACTOR_ROLES, name='actor_role', create_type=False)
notification_kind = postgresql.ENUM(
    *NOTIFICATION_KINDS, name='notification_kind', create_type=False
)


def _id_column() -> sa.Column:
    return sa.Column(
        'id',
        sa.Uuid(as_uuid=True),
        nullable=False,
        server_default=sa.text('gen_random_uuid()'),
        comment='Unique identifier for the record',
    )


def _timestamp_columns() -> list[sa.Column]:
    return [
        sa.Column(
            'created_at',
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.text('CURRENT_TIMESTAMP'),
            comment='Timestamp when record was created',
        ),
        sa.Column(
            'updated_at',
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.text('CURRENT_TIMESTAMP'),
            comment='Timestamp when record was last updated',
        ),
    ]


def upgrade() -> None:
    """
    Upgrade database schema to the order engine tables.

    Creates the enum types first, then the tables in foreign key order.
    """
    bind = op.get_bind()
    order_status.create(bind, checkfirst=True)
    actor_role.create(bind, checkfirst=True)
    notification_kind.create(bind, checkfirst=True)

    # Create users table
    op.create_table(
        'users',
        _id_column(),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('phone', sa.String(length=20), nullable=True),
        sa.Column('role', actor_role, nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('is_approved', sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamp_columns(),
        sa.PrimaryKeyConstraint('id', name='pk_users'),
    )
    op.create_index('ix_users_role', 'users', ['role'])
    op.create_index('ix_users_role_approved', 'users', ['role', 'is_approved'])

    # Create restaurants table
    op.create_table(
        'restaurants',
        _id_column(),
        sa.Column('owner_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('is_open', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_approved', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            'commission_percentage',
            sa.Numeric(precision=5, scale=2),
            nullable=True,
            comment='Commission override; NULL falls back to the platform default',
        ),
        *_timestamp_columns(),
        sa.PrimaryKeyConstraint('id', name='pk_restaurants'),
        sa.ForeignKeyConstraint(
            ['owner_id'],
            ['users.id'],
            name='fk_restaurants_owner_id',
            ondelete='RESTRICT',
        ),
        sa.UniqueConstraint('owner_id', name='uq_restaurants_owner_id'),
        sa.CheckConstraint(
            'commission_percentage IS NULL OR '
            '(commission_percentage >= 0 AND commission_percentage <= 100)',
            name='ck_restaurants_commission_range',
        ),
    )
    op.create_index(
        'ix_restaurants_open_approved', 'restaurants', ['is_open', 'is_approved']
    )

    # Create menu_items table
    op.create_table(
        'menu_items',
        _id_column(),
        sa.Column('restaurant_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('price', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('is_available', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamp_columns(),
        sa.PrimaryKeyConstraint('id', name='pk_menu_items'),
        sa.ForeignKeyConstraint(
            ['restaurant_id'],
            ['restaurants.id'],
            name='fk_menu_items_restaurant_id',
            ondelete='CASCADE',
        ),
        sa.CheckConstraint('price >= 0', name='ck_menu_items_price_non_negative'),
    )
    op.create_index(
        'ix_menu_items_restaurant_available',
        'menu_items',
        ['restaurant_id', 'is_available'],
    )

    # Create platform_settings table
    op.create_table(
        'platform_settings',
        _id_column(),
        sa.Column('commission_percentage', sa.Numeric(precision=5, scale=2), nullable=False),
        sa.Column('platform_fee_percentage', sa.Numeric(precision=5, scale=2), nullable=False),
        sa.Column('base_delivery_charge', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('per_km_rate', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False, server_default=sa.text('1')),
        sa.Column('updated_by', sa.Uuid(as_uuid=True), nullable=True),
        *_timestamp_columns(),
        sa.PrimaryKeyConstraint('id', name='pk_platform_settings'),
        sa.CheckConstraint(
            'commission_percentage >= 0 AND commission_percentage <= 100',
            name='ck_platform_settings_commission_range',
        ),
        sa.CheckConstraint(
            'platform_fee_percentage >= 0 AND platform_fee_percentage <= 100',
            name='ck_platform_settings_fee_range',
        ),
        sa.CheckConstraint(
            'base_delivery_charge >= 0 AND per_km_rate >= 0',
            name='ck_platform_settings_delivery_non_negative',
        ),
    )

    # Create order_sequences table
    op.create_table(
        'order_sequences',
        sa.Column('name', sa.String(length=50), nullable=False),
        sa.Column('value', sa.Integer(), nullable=False, server_default=sa.text('0')),
        sa.Column(
            'updated_at',
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.text('CURRENT_TIMESTAMP'),
        ),
        sa.PrimaryKeyConstraint('name', name='pk_order_sequences'),
    )

    # Create orders table
    op.create_table(
        'orders',
        _id_column(),
        sa.Column(
            'display_number',
            sa.String(length=30),
            nullable=False,
            comment='Human-readable order number',
        ),
        sa.Column('customer_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('restaurant_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('delivery_partner_id', sa.Uuid(as_uuid=True), nullable=True),
        sa.Column('status', order_status, nullable=False, server_default='pending'),
        sa.Column('delivery_address', sa.String(length=500), nullable=False),
        sa.Column('distance_km', sa.Numeric(precision=8, scale=2), nullable=False),
        sa.Column('items_total', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('delivery_charge', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('platform_fee', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('total_amount', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column(
            'commission_percentage_applied',
            sa.Numeric(precision=5, scale=2),
            nullable=False,
        ),
        sa.Column(
            'admin_commission_amount', sa.Numeric(precision=10, scale=2), nullable=False
        ),
        sa.Column(
            'restaurant_earning_amount', sa.Numeric(precision=10, scale=2), nullable=False
        ),
        sa.Column('rates_version', sa.Integer(), nullable=False),
        sa.Column('customer_note', sa.String(length=200), nullable=True),
        sa.Column('rejection_reason', sa.String(length=500), nullable=True),
        sa.Column('rating', sa.Integer(), nullable=True),
        sa.Column('review', sa.String(length=500), nullable=True),
        sa.Column('reviewed_at', sa.TIMESTAMP(timezone=True), nullable=True),
        *_timestamp_columns(),
        sa.PrimaryKeyConstraint('id', name='pk_orders'),
        sa.UniqueConstraint('display_number', name='uq_orders_display_number'),
        sa.ForeignKeyConstraint(
            ['customer_id'],
            ['users.id'],
            name='fk_orders_customer_id',
            ondelete='RESTRICT',
        ),
        sa.ForeignKeyConstraint(
            ['restaurant_id'],
            ['restaurants.id'],
            name='fk_orders_restaurant_id',
            ondelete='RESTRICT',
        ),
        sa.ForeignKeyConstraint(
            ['delivery_partner_id'],
            ['users.id'],
            name='fk_orders_delivery_partner_id',
            ondelete='RESTRICT',
        ),
        sa.CheckConstraint(
            'rating IS NULL OR (rating >= 1 AND rating <= 5)',
            name='ck_orders_rating_range',
        ),
        sa.CheckConstraint(
            "rating IS NULL OR status = 'delivered'",
            name='ck_orders_rating_after_delivery',
        ),
        sa.CheckConstraint(
            'review IS NULL OR rating IS NOT NULL',
            name='ck_orders_review_requires_rating',
        ),
        sa.CheckConstraint(
            "(status IN ('assigned', 'picked_up', 'delivered') "
            "AND delivery_partner_id IS NOT NULL) OR "
            "(status NOT IN ('assigned', 'picked_up', 'delivered') "
            "AND delivery_partner_id IS NULL)",
            name='ck_orders_partner_matches_status',
        ),
    )
    op.create_index('ix_orders_status', 'orders', ['status'])
    op.create_index('ix_orders_customer_created', 'orders', ['customer_id', 'created_at'])
    op.create_index('ix_orders_restaurant_status', 'orders', ['restaurant_id', 'status'])
    op.create_index(
        'ix_orders_partner_status', 'orders', ['delivery_partner_id', 'status']
    )
    # One active delivery per partner
    op.create_index(
        'uq_orders_partner_active_delivery',
        'orders',
        ['delivery_partner_id'],
        unique=True,
        postgresql_where=sa.text("status IN ('assigned', 'picked_up')"),
    )

    # Create order_items table
    op.create_table(
        'order_items',
        sa.Column('order_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('menu_item_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('name_snapshot', sa.String(length=100), nullable=False),
        sa.Column(
            'unit_price_snapshot', sa.Numeric(precision=10, scale=2), nullable=False
        ),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('line_subtotal', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.PrimaryKeyConstraint('order_id', 'position', name='pk_order_items'),
        sa.ForeignKeyConstraint(
            ['order_id'],
            ['orders.id'],
            name='fk_order_items_order_id',
            ondelete='CASCADE',
        ),
        sa.CheckConstraint('quantity >= 1', name='ck_order_items_quantity_positive'),
    )

    # Create order_status_history table
    op.create_table(
        'order_status_history',
        sa.Column('sequence', sa.Integer(), sa.Identity(), nullable=False),
        sa.Column('order_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('status', order_status, nullable=False),
        sa.Column('entered_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('actor_id', sa.Uuid(as_uuid=True), nullable=True),
        sa.Column('actor_role', actor_role, nullable=True),
        sa.PrimaryKeyConstraint('sequence', name='pk_order_status_history'),
        sa.ForeignKeyConstraint(
            ['order_id'],
            ['orders.id'],
            name='fk_order_status_history_order_id',
            ondelete='CASCADE',
        ),
        sa.UniqueConstraint(
            'order_id', 'status', name='uq_order_status_history_entry'
        ),
    )
    op.create_index(
        'ix_order_status_history_status_entered',
        'order_status_history',
        ['status', 'entered_at'],
    )

    # Create notifications table
    op.create_table(
        'notifications',
        _id_column(),
        sa.Column('user_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('kind', notification_kind, nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('message', sa.String(length=1000), nullable=False),
        sa.Column('order_id', sa.Uuid(as_uuid=True), nullable=True),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamp_columns(),
        sa.PrimaryKeyConstraint('id', name='pk_notifications'),
        sa.ForeignKeyConstraint(
            ['user_id'],
            ['users.id'],
            name='fk_notifications_user_id',
            ondelete='CASCADE',
        ),
        sa.ForeignKeyConstraint(
            ['order_id'],
            ['orders.id'],
            name='fk_notifications_order_id',
            ondelete='SET NULL',
        ),
    )
    op.create_index(
        'ix_notifications_user_read_created',
        'notifications',
        ['user_id', 'is_read', 'created_at'],
    )


def downgrade() -> None:
    """
    Downgrade database schema by removing the order engine tables.
    """
    op.drop_index('ix_notifications_user_read_created', table_name='notifications')
    op.drop_table('notifications')

    op.drop_index(
        'ix_order_status_history_status_entered', table_name='order_status_history'
    )
    op.drop_table('order_status_history')

    op.drop_table('order_items')

    op.drop_index('uq_orders_partner_active_delivery', table_name='orders')
    op.drop_index('ix_orders_partner_status', table_name='orders')
    op.drop_index('ix_orders_restaurant_status', table_name='orders')
    op.drop_index('ix_orders_customer_created', table_name='orders')
    op.drop_index('ix_orders_status', table_name='orders')
    op.drop_table('orders')

    op.drop_table('order_sequences')
    op.drop_table('platform_settings')

    op.drop_index('ix_menu_items_restaurant_available', table_name='menu_items')
    op.drop_table('menu_items')

    op.drop_index('ix_restaurants_open_approved', table_name='restaurants')
    op.drop_table('restaurants')

    op.drop_index('ix_users_role_approved', table_name='users')
    op.drop_index('ix_users_role', table_name='users')
    op.drop_table('users')

    bind = op.get_bind()
    notification_kind.drop(bind, checkfirst=True)
    actor_role.drop(bind, checkfirst=True)
    order_status.drop(bind, checkfirst=True)
