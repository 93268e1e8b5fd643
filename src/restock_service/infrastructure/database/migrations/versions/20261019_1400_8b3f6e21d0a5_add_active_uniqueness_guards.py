"""Add uniqueness guards for live queue items and pending subscriptions.

A subscription may have at most one pending/processing queue item, and a
subscriber at most one undelivered subscription per product. Both are
partial unique indexes so delivered history and failed items stay.
Also indexes delivered_at for cross-process interest cache syncing.

Revision ID: 8b3f6e21d0a5
Revises: 5d1e2a7c4b90
Create Date: 2026-10-19 14:00:00.000000+00:00
"""

from alembic import op
import sqlalchemy as sa

revision = "8b3f6e21d0a5"
down_revision = "5d1e2a7c4b90"
branch_labels = None
depends_on = None

ACTIVE_STATUS_CLAUSE = "status IN ('pending', 'processing')"


def upgrade() -> None:
    # enqueue() inserts rely on this to reject concurrent duplicates
    op.create_index(
        "uq_notification_queue_active_subscription",
        "notification_queue",
        ["subscription_id"],
        unique=True,
        postgresql_where=sa.text(ACTIVE_STATUS_CLAUSE),
        sqlite_where=sa.text(ACTIVE_STATUS_CLAUSE),
    )

    op.create_index(
        "uq_stock_subscriptions_pending_subscriber",
        "stock_subscriptions",
        ["subscriber_id", "product_id"],
        unique=True,
        postgresql_where=sa.text("NOT delivered"),
        sqlite_where=sa.text("NOT delivered"),
    )

    op.create_index(
        "ix_stock_subscriptions_delivered_at",
        "stock_subscriptions",
        ["delivered_at"],
    )


def downgrade() -> None:
    op.drop_index("ix_stock_subscriptions_delivered_at", table_name="stock_subscriptions")
    op.drop_index("uq_stock_subscriptions_pending_subscriber", table_name="stock_subscriptions")
    op.drop_index("uq_notification_queue_active_subscription", table_name="notification_queue")
