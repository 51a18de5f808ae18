"""
Alembic migration: Initial laundry ordering schema.

Creates the profiles, clothing_items, orders and order_items tables with the
enum types for roles, genders and order status. The orders table enforces
that pending orders carry no worker and that exactly the completed orders
carry a delivery date.

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

user_role = postgresql.ENUM('student', 'worker', name='user_role', create_type=False)
gender_type = postgresql.ENUM('male', 'female', 'other', name='gender_type', create_type=False)
order_status = postgresql.ENUM(
    'pending',
    'accepted',
    'processing',
    'completed',
    'cancelled',
    name='order_status',
    create_type=False,
)


def upgrade() -> None:
    """Create enum types and the laundry ordering tables."""
    bind = op.get_bind()
    user_role.create(bind, checkfirst=True)
    gender_type.create(bind, checkfirst=True)
    order_status.create(bind, checkfirst=True)

    op.create_table(
        'profiles',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False, comment='Contact email address'),
        sa.Column('full_name', sa.String(255), nullable=False, comment='Display name'),
        sa.Column('role', user_role, nullable=False, comment='Student or worker'),
        sa.Column('gender', gender_type, nullable=False, comment='Gender category'),
        sa.Column('hostel', sa.String(100), nullable=True, comment='Hostel block'),
        sa.Column('floor', sa.String(20), nullable=True, comment='Floor within hostel block'),
        sa.Column('registration_number', sa.String(50), nullable=True),
        sa.Column('assigned_hostel', sa.String(100), nullable=True),
        sa.Column('washes_left', sa.Integer(), nullable=False, server_default='40'),
        sa.Column('total_washes', sa.Integer(), nullable=False, server_default='40'),
        sa.Column(
            'created_at',
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            'updated_at',
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.UniqueConstraint('email', name='uq_profiles_email'),
        sa.CheckConstraint('washes_left >= 0', name='ck_profiles_washes_left_non_negative'),
        sa.CheckConstraint('total_washes >= 0', name='ck_profiles_total_washes_non_negative'),
    )
    op.create_index('ix_profiles_role', 'profiles', ['role'])

    op.create_table(
        'clothing_items',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('price', sa.Numeric(10, 2), nullable=False, comment='Price per piece'),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('gender', gender_type, nullable=False),
        sa.CheckConstraint('price >= 0', name='ck_clothing_items_price_non_negative'),
    )
    op.create_index('ix_clothing_items_gender', 'clothing_items', ['gender'])

    op.create_table(
        'orders',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            'student_id',
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey('profiles.id', ondelete='RESTRICT'),
            nullable=False,
        ),
        sa.Column(
            'worker_id',
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey('profiles.id', ondelete='SET NULL'),
            nullable=True,
        ),
        sa.Column('status', order_status, nullable=False, server_default='pending'),
        sa.Column('total_price', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('pickup_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('delivery_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('floor', sa.String(20), nullable=True),
        sa.Column(
            'created_at',
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            'updated_at',
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.CheckConstraint('total_price >= 0', name='ck_orders_total_price_non_negative'),
        sa.CheckConstraint(
            "status != 'pending' OR worker_id IS NULL",
            name='ck_orders_pending_unassigned',
        ),
        sa.CheckConstraint(
            "(status = 'completed') = (delivery_date IS NOT NULL)",
            name='ck_orders_delivery_date_iff_completed',
        ),
    )
    op.create_index('ix_orders_student_id', 'orders', ['student_id'])
    op.create_index('ix_orders_worker_id', 'orders', ['worker_id'])
    op.create_index('ix_orders_status', 'orders', ['status'])
    op.create_index('ix_orders_status_created_at', 'orders', ['status', 'created_at'])

    op.create_table(
        'order_items',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            'order_id',
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey('orders.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column(
            'clothing_item_id',
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey('clothing_items.id', ondelete='RESTRICT'),
            nullable=False,
        ),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('price', sa.Numeric(10, 2), nullable=False, comment='Unit price at order time'),
        sa.CheckConstraint('quantity > 0', name='ck_order_items_quantity_positive'),
        sa.CheckConstraint('price >= 0', name='ck_order_items_price_non_negative'),
    )
    op.create_index('ix_order_items_order_id', 'order_items', ['order_id'])


def downgrade() -> None:
    """Drop the laundry ordering tables and enum types."""
    op.drop_index('ix_order_items_order_id', table_name='order_items')
    op.drop_table('order_items')

    op.drop_index('ix_orders_status_created_at', table_name='orders')
    op.drop_index('ix_orders_status', table_name='orders')
    op.drop_index('ix_orders_worker_id', table_name='orders')
    op.drop_index('ix_orders_student_id', table_name='orders')
    op.drop_table('orders')

    op.drop_index('ix_clothing_items_gender', table_name='clothing_items')
    op.drop_table('clothing_items')

    op.drop_index('ix_profiles_role', table_name='profiles')
    op.drop_table('profiles')

    bind = op.get_bind()
    order_status.drop(bind, checkfirst=True)
    gender_type.drop(bind, checkfirst=True)
    user_role.drop(bind, checkfirst=True)
