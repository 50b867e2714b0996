"""CodeBook schema: products, users, orders, activity log

Revision ID: 20261019_codebook
Revises:
Create Date: 2026-10-19

This migration creates:
1. products (catalog, optional tracked stock)
2. users (customers and admins, unique e-mail)
3. orders (cart lines and buyer snapshot as JSON)
4. activity_log (append-only audit trail)
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261019_codebook'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ==========================================================================
    # 1. PRODUCTS TABLE
    # ==========================================================================
    op.create_table('products',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('overview', sa.Text(), nullable=True),
        sa.Column('long_description', sa.Text(), nullable=True),
        sa.Column('price', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('poster', sa.String(length=512), nullable=True),
        sa.Column('image_local', sa.String(length=512), nullable=True),
        sa.Column('size', sa.Integer(), nullable=True),
        sa.Column('rating', sa.Integer(), nullable=True),
        sa.Column('best_seller', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('featured_product', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('stock', sa.Integer(), nullable=True),
        sa.Column('low_stock_threshold', sa.Integer(), nullable=False, server_default='10'),
        sa.Column('in_stock', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.CheckConstraint('stock IS NULL OR stock >= 0', name='ck_products_stock_nonnegative'),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('products', schema=None) as batch_op:
        batch_op.create_index('ix_products_featured', ['featured_product'], unique=False)

    # ==========================================================================
    # 2. USERS TABLE
    # ==========================================================================
    op.create_table('users',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=16), nullable=False, server_default='user'),
        sa.Column('notifications_read_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email')
    )

    # ==========================================================================
    # 3. ORDERS TABLE
    # ==========================================================================
    op.create_table('orders',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('user_snapshot', sa.JSON(), nullable=True),
        sa.Column('cart_list', sa.JSON(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('amount_paid', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('shipping_address', sa.JSON(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('payment_intent_id', sa.String(length=255), nullable=True),
        sa.Column('payment_status', sa.String(length=32), nullable=True),
        sa.Column('tracking_number', sa.String(length=128), nullable=True),
        sa.Column('tracking_carrier', sa.String(length=32), nullable=True),
        sa.Column('tracking_url', sa.String(length=512), nullable=True),
        sa.Column('label_url', sa.String(length=512), nullable=True),
        sa.Column('refund_amount', sa.Integer(), nullable=True),
        sa.Column('refund_id', sa.String(length=255), nullable=True),
        sa.Column('refunded_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('orders', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_orders_user_id'), ['user_id'], unique=False)
        batch_op.create_unique_constraint('uq_orders_user_intent', ['user_id', 'payment_intent_id'])
        batch_op.create_index('ix_orders_status', ['status'], unique=False)

    # ==========================================================================
    # 4. ACTIVITY LOG TABLE
    # ==========================================================================
    op.create_table('activity_log',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('actor_user_id', sa.String(length=64), nullable=True),
        sa.Column('actor_email', sa.String(length=255), nullable=True),
        sa.Column('actor_name', sa.String(length=255), nullable=True),
        sa.Column('action', sa.String(length=32), nullable=False),
        sa.Column('entity_type', sa.String(length=32), nullable=False),
        sa.Column('entity_id', sa.String(length=64), nullable=True),
        sa.Column('details', sa.JSON(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('activity_log', schema=None) as batch_op:
        batch_op.create_index('ix_activity_log_entity', ['entity_type', 'entity_id'], unique=False)
        batch_op.create_index('ix_activity_log_created_at', ['created_at'], unique=False)


def downgrade():
    with op.batch_alter_table('activity_log', schema=None) as batch_op:
        batch_op.drop_index('ix_activity_log_created_at')
        batch_op.drop_index('ix_activity_log_entity')
    op.drop_table('activity_log')

    with op.batch_alter_table('orders', schema=None) as batch_op:
        batch_op.drop_index('ix_orders_status')
        batch_op.drop_constraint('uq_orders_user_intent', type_='unique')
        batch_op.drop_index(batch_op.f('ix_orders_user_id'))
    op.drop_table('orders')

    op.drop_table('users')

    with op.batch_alter_table('products', schema=None) as batch_op:
        batch_op.drop_index('ix_products_featured')
    op.drop_table('products')
