"""initial dispatch schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-17 00:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


class GUID(sa.TypeDecorator):
    impl = sa.CHAR
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            from sqlalchemy.dialects.postgresql import UUID

            return dialect.type_descriptor(UUID(as_uuid=True))
        return dialect.type_descriptor(sa.CHAR(36))


def upgrade() -> None:
    op.create_table(
        "stores",
        sa.Column("id", GUID(), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False, unique=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_table(
        "batches",
        sa.Column("id", GUID(), primary_key=True),
        sa.Column("store_id", GUID(), sa.ForeignKey("stores.id"), nullable=False),
        sa.Column("sku", sa.String(length=100), nullable=False),
        sa.Column("batch_number", sa.String(length=100), nullable=False),
        sa.Column("total_quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("active_quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("unit_cost", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("sell_price", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.UniqueConstraint("store_id", "sku", "batch_number", name="uq_batches_store_sku_batch"),
        sa.CheckConstraint("active_quantity >= 0", name="ck_batches_active_non_negative"),
        sa.CheckConstraint("active_quantity <= total_quantity", name="ck_batches_active_within_total"),
    )
    op.create_index("ix_batches_store_id", "batches", ["store_id"], unique=False)

    op.create_table(
        "dispatches",
        sa.Column("id", GUID(), primary_key=True),
        sa.Column("dispatch_number", sa.String(length=50), nullable=False, unique=True),
        sa.Column("source_store_id", GUID(), sa.ForeignKey("stores.id"), nullable=False),
        sa.Column("destination_store_id", GUID(), sa.ForeignKey("stores.id"), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="draft"),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("expected_delivery_date", sa.Date(), nullable=True),
        sa.Column("actual_delivery_date", sa.Date(), nullable=True),
        sa.Column("carrier_name", sa.String(length=255), nullable=True),
        sa.Column("tracking_number", sa.String(length=255), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("created_by", sa.String(length=255), nullable=False),
        sa.Column("approved_by", sa.String(length=255), nullable=True),
        sa.Column("approved_at", sa.DateTime(), nullable=True),
        sa.Column("dispatched_by", sa.String(length=255), nullable=True),
        sa.Column("dispatched_at", sa.DateTime(), nullable=True),
        sa.Column("delivered_by", sa.String(length=255), nullable=True),
        sa.Column("delivered_at", sa.DateTime(), nullable=True),
        sa.Column("cancelled_by", sa.String(length=255), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.CheckConstraint("source_store_id <> destination_store_id", name="ck_dispatches_distinct_stores"),
    )
    op.create_index("ix_dispatches_source_store_id", "dispatches", ["source_store_id"], unique=False)
    op.create_index("ix_dispatches_destination_store_id", "dispatches", ["destination_store_id"], unique=False)
    op.create_index("ix_dispatches_status", "dispatches", ["status"], unique=False)
    op.create_index("ix_dispatches_status_created_at", "dispatches", ["status", "created_at"], unique=False)

    op.create_table(
        "dispatch_items",
        sa.Column("id", GUID(), primary_key=True),
        sa.Column("dispatch_id", GUID(), sa.ForeignKey("dispatches.id"), nullable=False),
        sa.Column("batch_id", GUID(), sa.ForeignKey("batches.id"), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_cost", sa.Numeric(12, 2), nullable=False),
        sa.Column("unit_price", sa.Numeric(12, 2), nullable=False),
        sa.Column("received_quantity", sa.Integer(), nullable=True),
        sa.Column("damaged_quantity", sa.Integer(), nullable=True),
        sa.Column("missing_quantity", sa.Integer(), nullable=True),
        sa.Column("destination_batch_id", GUID(), sa.ForeignKey("batches.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("dispatch_id", "batch_id", name="uq_dispatch_items_dispatch_batch"),
        sa.CheckConstraint("quantity > 0", name="ck_dispatch_items_quantity_positive"),
    )
    op.create_index("ix_dispatch_items_dispatch_id", "dispatch_items", ["dispatch_id"], unique=False)
    op.create_index("ix_dispatch_items_batch_id", "dispatch_items", ["batch_id"], unique=False)

    op.create_table(
        "dispatch_scans",
        sa.Column("id", GUID(), primary_key=True),
        sa.Column("dispatch_id", GUID(), sa.ForeignKey("dispatches.id"), nullable=False),
        sa.Column("dispatch_item_id", GUID(), sa.ForeignKey("dispatch_items.id"), nullable=False),
        sa.Column("barcode", sa.String(length=255), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("scanned_by", sa.String(length=255), nullable=False),
        sa.Column("scanned_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("dispatch_item_id", "barcode", name="uq_dispatch_scans_item_barcode"),
        sa.UniqueConstraint("dispatch_item_id", "sequence", name="uq_dispatch_scans_item_sequence"),
    )
    op.create_index("ix_dispatch_scans_dispatch_id", "dispatch_scans", ["dispatch_id"], unique=False)
    op.create_index("ix_dispatch_scans_dispatch_item_id", "dispatch_scans", ["dispatch_item_id"], unique=False)

    op.create_table(
        "idempotency_records",
        sa.Column("id", GUID(), primary_key=True),
        sa.Column("endpoint", sa.String(length=255), nullable=False),
        sa.Column("method", sa.String(length=10), nullable=False),
        sa.Column("idempotency_key", sa.String(length=255), nullable=False),
        sa.Column("request_hash", sa.String(length=64), nullable=False),
        sa.Column("state", sa.String(length=20), nullable=False),
        sa.Column("status_code", sa.Integer(), nullable=True),
        sa.Column("response_body", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.UniqueConstraint("endpoint", "method", "idempotency_key", name="uq_idempotency"),
    )

    op.create_table(
        "audit_events",
        sa.Column("id", GUID(), primary_key=True),
        sa.Column("actor_id", sa.String(length=255), nullable=True),
        sa.Column("store_id", sa.String(length=255), nullable=True),
        sa.Column("trace_id", sa.String(length=255), nullable=True),
        sa.Column("action", sa.String(length=255), nullable=False),
        sa.Column("entity_type", sa.String(length=100), nullable=False),
        sa.Column("entity_id", sa.String(length=255), nullable=True),
        sa.Column("before_payload", sa.JSON(), nullable=True),
        sa.Column("after_payload", sa.JSON(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("result", sa.String(length=20), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_audit_events_actor_id", "audit_events", ["actor_id"], unique=False)
    op.create_index("ix_audit_events_trace_id", "audit_events", ["trace_id"], unique=False)
    op.create_index("ix_audit_events_entity", "audit_events", ["entity_type", "entity_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_audit_events_entity", table_name="audit_events")
    op.drop_index("ix_audit_events_trace_id", table_name="audit_events")
    op.drop_index("ix_audit_events_actor_id", table_name="audit_events")
    op.drop_table("audit_events")
    op.drop_table("idempotency_records")
    op.drop_index("ix_dispatch_scans_dispatch_item_id", table_name="dispatch_scans")
    op.drop_index("ix_dispatch_scans_dispatch_id", table_name="dispatch_scans")
    op.drop_table("dispatch_scans")
    op.drop_index("ix_dispatch_items_batch_id", table_name="dispatch_items")
    op.drop_index("ix_dispatch_items_dispatch_id", table_name="dispatch_items")
    op.drop_table("dispatch_items")
    op.drop_index("ix_dispatches_status_created_at", table_name="dispatches")
    op.drop_index("ix_dispatches_status", table_name="dispatches")
    op.drop_index("ix_dispatches_destination_store_id", table_name="dispatches")
    op.drop_index("ix_dispatches_source_store_id", table_name="dispatches")
    op.drop_table("dispatches")
    op.drop_index("ix_batches_store_id", table_name="batches")
    op.drop_table("batches")
    op.drop_table("stores")
