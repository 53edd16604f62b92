"""add payment records, reconciliation log and disputes

Revision ID: 9a7e5f03d2c8
Revises: 4c1d2a9e7b10
Create Date: 2026-10-05 16:40:07

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "9a7e5f03d2c8"
down_revision = "4c1d2a9e7b10"
branch_labels = None
depends_on = None


def upgrade():
    # 1️⃣ Payment records (booking → many, at most one non-failed)
    op.create_table(
        "payment_records",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("booking_id", sa.String(32), sa.ForeignKey("bookings.id"), nullable=False),
        sa.Column("authorization_id", sa.String(), nullable=True),
        sa.Column("capture_id", sa.String(), nullable=True),
        sa.Column("authorized_amount_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("captured_amount_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("refunded_amount_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(), nullable=False, server_default="authorized"),
        sa.Column("failure_reason", sa.String(), nullable=True),
        sa.Column("authorized_at", sa.DateTime(), nullable=True),
        sa.Column("captured_at", sa.DateTime(), nullable=True),
        sa.Column("last_event_at", sa.DateTime(), nullable=True),
        sa.CheckConstraint("captured_amount_cents <= authorized_amount_cents", name="ck_captured_le_authorized"),
        sa.CheckConstraint("refunded_amount_cents <= captured_amount_cents", name="ck_refunded_le_captured"),
    )
    op.create_index("ix_payment_records_id", "payment_records", ["id"])
    op.create_index("ix_payment_records_booking_id", "payment_records", ["booking_id"])
    op.create_index("ix_payment_records_authorization_id", "payment_records", ["authorization_id"])

    op.create_table(
        "refund_requests",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("payment_id", sa.Integer(), sa.ForeignKey("payment_records.id"), nullable=False),
        sa.Column("request_token", sa.String(), nullable=False, unique=True),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("refund_id", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_refund_requests_id", "refund_requests", ["id"])
    op.create_index("ix_refund_requests_payment_id", "refund_requests", ["payment_id"])
    op.create_index("ix_refund_requests_refund_id", "refund_requests", ["refund_id"])

    # 2️⃣ Webhook idempotency log
    op.create_table(
        "processed_payment_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("event_id", sa.String(), nullable=False, unique=True),
        sa.Column("event_type", sa.String(), nullable=False),
        sa.Column("authorization_id", sa.String(), nullable=True),
        sa.Column("occurred_at", sa.DateTime(), nullable=True),
        sa.Column("outcome", sa.String(), nullable=False),
        sa.Column("received_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_processed_payment_events_id", "processed_payment_events", ["id"])

    # 3️⃣ Disputes + response log
    op.create_table(
        "disputes",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("booking_id", sa.String(32), sa.ForeignKey("bookings.id"), nullable=False),
        sa.Column("initiator_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("reason", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("status", sa.String(), nullable=False, server_default="open"),
        sa.Column("resolution", sa.String(), nullable=True),
        sa.Column("refund_amount_cents", sa.Integer(), nullable=True),
        sa.Column("resolved_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("opened_at", sa.DateTime(), nullable=False),
        sa.Column("resolved_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_disputes_id", "disputes", ["id"])
    op.create_index("ix_disputes_booking_id", "disputes", ["booking_id"])

    op.create_table(
        "dispute_messages",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("dispute_id", sa.Integer(), sa.ForeignKey("disputes.id"), nullable=False),
        sa.Column("author_id", sa.Integer(), nullable=False),
        sa.Column("author_role", sa.String(), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_dispute_messages_id", "dispute_messages", ["id"])
    op.create_index("ix_dispute_messages_dispute_id", "dispute_messages", ["dispute_id"])


def downgrade():
    op.drop_table("dispute_messages")
    op.drop_table("disputes")
    op.drop_table("processed_payment_events")
    op.drop_table("refund_requests")
    op.drop_table("payment_records")
