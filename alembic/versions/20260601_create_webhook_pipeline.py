"""create webhook queue, inventory ledger and order snapshot tables

Revision ID: 20260601_webhook_pipeline
Revises:
Create Date: 2026-06-01 09:00:00
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "20260601_webhook_pipeline"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "products",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("primary_sku", sa.String(length=100), nullable=True),
        sa.Column("supplier_sku", sa.String(length=100), nullable=True),
        sa.Column("barcodes", sa.JSON(), nullable=False),
        *_timestamps(),
    )

    op.create_table(
        "shopify_variant_map",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("shopify_variant_id", sa.BigInteger(), nullable=False, unique=True),
        sa.Column(
            "product_id",
            sa.String(length=36),
            sa.ForeignKey("products.id", ondelete="CASCADE"),
            nullable=False,
        ),
        *_timestamps(),
    )
    op.create_index("ix_shopify_variant_map_product_id", "shopify_variant_map", ["product_id"])

    op.create_table(
        "inventory_levels",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "product_id",
            sa.String(length=36),
            sa.ForeignKey("products.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("quantity_on_hand", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_updated", sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
    )

    op.create_table(
        "inventory_conflicts",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "product_id",
            sa.String(length=36),
            sa.ForeignKey("products.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("attempted_delta", sa.Integer(), nullable=False),
        sa.Column("result_quantity", sa.Integer(), nullable=False),
        sa.Column("context", sa.JSON(), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_inventory_conflicts_product_id", "inventory_conflicts", ["product_id"])
    op.create_index("ix_inventory_conflicts_created_at", "inventory_conflicts", ["created_at"])

    op.create_table(
        "webhook_inventory_effects",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("idempotency_key", sa.String(length=255), nullable=False, unique=True),
        sa.Column("webhook_id", sa.String(length=100), nullable=False),
        sa.Column(
            "product_id",
            sa.String(length=36),
            sa.ForeignKey("products.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("delta", sa.Integer(), nullable=False),
        sa.Column("context", sa.JSON(), nullable=False),
        *_timestamps(),
    )
    op.create_index(
        "ix_webhook_inventory_effects_webhook_id", "webhook_inventory_effects", ["webhook_id"]
    )

    op.create_table(
        "webhook_jobs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("webhook_id", sa.String(length=100), nullable=False, unique=True),
        sa.Column("topic", sa.String(length=50), nullable=False),
        sa.Column("shop", sa.String(length=255), nullable=False),
        sa.Column("order_id", sa.String(length=64), nullable=True),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("max_attempts", sa.Integer(), nullable=False, server_default="8"),
        sa.Column("run_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_attempt_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("locked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("locked_by", sa.String(length=100), nullable=True),
        sa.Column("last_error", sa.JSON(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_webhook_jobs_status_run_at", "webhook_jobs", ["status", "run_at"])

    op.create_table(
        "dead_jobs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "webhook_job_id",
            sa.Integer(),
            sa.ForeignKey("webhook_jobs.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("webhook_id", sa.String(length=100), nullable=True),
        sa.Column("topic", sa.String(length=50), nullable=False),
        sa.Column("shop", sa.String(length=255), nullable=False),
        sa.Column("order_id", sa.String(length=64), nullable=True),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("error", sa.JSON(), nullable=False),
        sa.Column("attempts", sa.Integer(), nullable=False),
        sa.Column("last_attempt_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_dead_jobs_webhook_job_id", "dead_jobs", ["webhook_job_id"])
    op.create_index("ix_dead_jobs_created_at", "dead_jobs", ["created_at"])

    op.create_table(
        "processed_webhooks",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("webhook_id", sa.String(length=100), nullable=False, unique=True),
        sa.Column("topic", sa.String(length=50), nullable=False),
        sa.Column("shop", sa.String(length=255), nullable=False),
        sa.Column("received_at", sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
    )

    op.create_table(
        "webhook_logs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("webhook_id", sa.String(length=100), nullable=True),
        sa.Column("topic", sa.String(length=100), nullable=False),
        sa.Column("shop", sa.String(length=255), nullable=False),
        sa.Column("order_id", sa.String(length=64), nullable=True),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(length=50), nullable=False),
        sa.Column("error", sa.JSON(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_webhook_logs_created_at", "webhook_logs", ["created_at"])
    op.create_index("ix_webhook_logs_webhook_id", "webhook_logs", ["webhook_id"])

    op.create_table(
        "webhook_rate_limits",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("ip", sa.String(length=64), nullable=False),
        sa.Column("window_start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("count", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.UniqueConstraint("ip", "window_start", name="uq_webhook_rate_limits_ip_window"),
    )

    op.create_table(
        "order_snapshots",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("external_order_id", sa.String(length=64), nullable=False, unique=True),
        sa.Column("order_number", sa.String(length=64), nullable=True),
        sa.Column("channel", sa.String(length=32), nullable=False, server_default="shopify"),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="pending"),
        sa.Column("financial_status", sa.String(length=64), nullable=True),
        sa.Column("fulfillment_status", sa.String(length=64), nullable=True),
        sa.Column("customer_email", sa.String(length=255), nullable=True),
        sa.Column("customer_name", sa.String(length=255), nullable=True),
        sa.Column("total_price", sa.Numeric(12, 2), nullable=True),
        sa.Column("currency", sa.String(length=8), nullable=True),
        sa.Column("line_items", sa.JSON(), nullable=False),
        sa.Column("raw_payload", sa.JSON(), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "order_inventory_effects",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "order_snapshot_id",
            sa.Integer(),
            sa.ForeignKey("order_snapshots.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("webhook_id", sa.String(length=100), nullable=True),
        sa.Column(
            "product_id",
            sa.String(length=36),
            sa.ForeignKey("products.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("quantity_change", sa.Integer(), nullable=False),
        *_timestamps(),
    )
    op.create_index(
        "ix_order_inventory_effects_order_snapshot_id", "order_inventory_effects", ["order_snapshot_id"]
    )
    op.create_index("ix_order_inventory_effects_webhook_id", "order_inventory_effects", ["webhook_id"])
    op.create_index("ix_order_inventory_effects_product_id", "order_inventory_effects", ["product_id"])


def downgrade() -> None:
    op.drop_table("order_inventory_effects")
    op.drop_table("order_snapshots")
    op.drop_table("webhook_rate_limits")
    op.drop_table("webhook_logs")
    op.drop_table("processed_webhooks")
    op.drop_table("dead_jobs")
    op.drop_table("webhook_jobs")
    op.drop_table("webhook_inventory_effects")
    op.drop_table("inventory_conflicts")
    op.drop_table("inventory_levels")
    op.drop_table("shopify_variant_map")
    op.drop_table("products")
