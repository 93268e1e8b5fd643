"""Initial restock notification schema

Revision ID: 5d1e2a7c4b90
Revises:
Create Date: 2026-10-19 09:00:00.000000+00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '5d1e2a7c4b90'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Storefront catalogue columns the pipeline reads
    op.create_table('products',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('name', sa.String(length=500), nullable=False),
    sa.Column('price', sa.Float(), nullable=False),
    sa.Column('images', sa.JSON(), nullable=True),
    sa.Column('stock_quantity', sa.Integer(), nullable=False),
    sa.Column('updated_at', sa.DateTime(), nullable=False),
    sa.PrimaryKeyConstraint('id'),
    )

    op.create_table('stock_subscriptions',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('product_id', sa.String(length=36), nullable=False),
    sa.Column('subscriber_id', sa.String(length=255), nullable=False),
    sa.Column('email', sa.String(length=255), nullable=False),
    sa.Column('delivered', sa.Boolean(), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.Column('delivered_at', sa.DateTime(), nullable=True),
    sa.ForeignKeyConstraint(['product_id'], ['products.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_stock_subscriptions_product_pending', 'stock_subscriptions', ['product_id', 'delivered'], unique=False)
    op.create_index('ix_stock_subscriptions_subscriber', 'stock_subscriptions', ['subscriber_id'], unique=False)
    op.create_index('ix_stock_subscriptions_created', 'stock_subscriptions', ['created_at'], unique=False)

    op.create_table('notification_queue',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('subscription_id', sa.String(length=36), nullable=False),
    sa.Column('product_id', sa.String(length=36), nullable=False),
    sa.Column('status', sa.String(length=20), nullable=False),
    sa.Column('attempts', sa.Integer(), nullable=False),
    sa.Column('max_attempts', sa.Integer(), nullable=False),
    sa.Column('error_message', sa.Text(), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.Column('processed_at', sa.DateTime(), nullable=True),
    sa.Column('sent_at', sa.DateTime(), nullable=True),
    sa.ForeignKeyConstraint(['subscription_id'], ['stock_subscriptions.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id'),
    sa.CheckConstraint("status IN ('pending', 'processing', 'sent', 'failed')", name='ck_notification_queue_status'),
    )
    op.create_index('ix_notification_queue_status_created', 'notification_queue', ['status', 'created_at'], unique=False)
    op.create_index('ix_notification_queue_subscription', 'notification_queue', ['subscription_id'], unique=False)
    op.create_index('ix_notification_queue_product', 'notification_queue', ['product_id'], unique=False)

    op.create_table('stock_notification_log',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('product_id', sa.String(length=36), nullable=False),
    sa.Column('product_name', sa.String(length=500), nullable=False),
    sa.Column('old_stock', sa.Integer(), nullable=False),
    sa.Column('new_stock', sa.Integer(), nullable=False),
    sa.Column('notifications_queued', sa.Integer(), nullable=False),
    sa.Column('triggered_at', sa.DateTime(), nullable=False),
    sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_stock_notification_log_product', 'stock_notification_log', ['product_id'], unique=False)
    op.create_index('ix_stock_notification_log_triggered', 'stock_notification_log', ['triggered_at'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_stock_notification_log_triggered', table_name='stock_notification_log')
    op.drop_index('ix_stock_notification_log_product', table_name='stock_notification_log')
    op.drop_table('stock_notification_log')
    op.drop_index('ix_notification_queue_product', table_name='notification_queue')
    op.drop_index('ix_notification_queue_subscription', table_name='notification_queue')
    op.drop_index('ix_notification_queue_status_created', table_name='notification_queue')
    op.drop_table('notification_queue')
    op.drop_index('ix_stock_subscriptions_created', table_name='stock_subscriptions')
    op.drop_index('ix_stock_subscriptions_subscriber', table_name='stock_subscriptions')
    op.drop_index('ix_stock_subscriptions_product_pending', table_name='stock_subscriptions')
    op.drop_table('stock_subscriptions')
    op.drop_table('products')
