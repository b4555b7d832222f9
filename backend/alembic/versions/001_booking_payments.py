# backend/alembic/versions/001_booking_payments.py
"""Booking payments - profiles, services, bookings, invoices, reviews, event outbox

Revision ID: 001_booking_payments
Revises:
Create Date: 2025-09-01 00:00:00.000000

Creates the marketplace booking schema with payment reconciliation columns,
the partial unique index that allows one active booking per buyer and
service, the invoice ledger, reviews and the transactional outbox.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB

# revision identifiers, used by Alembic.
revision: str = "001_booking_payments"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

BOOKING_STATUSES = ("pending", "accepted", "in_progress", "delivered", "completed", "cancelled")
ACTIVE_BOOKING_STATUSES = ("pending", "accepted", "in_progress")


def _in_list(values: Sequence[str]) -> str:
    return ", ".join(f"'{v}'" for v in values)


def _timestamp(name: str, nullable: bool = True, server_default: bool = False) -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        nullable=nullable,
        server_default=sa.func.now() if server_default else None,
    )


def upgrade() -> None:
    print("Creating booking payment schema...")
    json_type = JSONB(astext_type=sa.Text()).with_variant(sa.JSON(), "sqlite")

    op.create_table(
        "profiles",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("first_name", sa.String(100), nullable=True),
        sa.Column("last_name", sa.String(100), nullable=True),
        sa.Column(
            "paystack_recipient_code",
            sa.String(64),
            nullable=True,
            comment="Paystack transfer recipient used for seller payouts",
        ),
        _timestamp("created_at", nullable=False, server_default=True),
    )
    op.create_index("ix_profiles_email", "profiles", ["email"])

    op.create_table(
        "services",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("user_id", sa.String(64), sa.ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("category", sa.String(100), nullable=True),
        sa.Column("default_price", sa.Numeric(10, 2), nullable=True),
        sa.Column("express_price", sa.Numeric(10, 2), nullable=True),
        sa.Column("is_verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _timestamp("created_at", nullable=False, server_default=True),
    )
    op.create_index("ix_services_user_id", "services", ["user_id"])

    op.create_table(
        "bookings",
        sa.Column("id", sa.String(26), primary_key=True),
        sa.Column("buyer_id", sa.String(64), sa.ForeignKey("profiles.id"), nullable=False),
        sa.Column("service_id", sa.String(64), sa.ForeignKey("services.id"), nullable=False),
        sa.Column("date", sa.Date(), nullable=True),
        sa.Column("time", sa.Time(), nullable=True),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        _timestamp("created_at", nullable=False, server_default=True),
        _timestamp("updated_at"),
        _timestamp("accepted_at"),
        _timestamp("delivered_at"),
        _timestamp("completed_at"),
        _timestamp("cancelled_at"),
        sa.Column("cancelled_by_id", sa.String(64), sa.ForeignKey("profiles.id"), nullable=True),
        sa.Column("payment_status", sa.String(20), nullable=True),
        sa.Column(
            "payment_amount",
            sa.Numeric(10, 2),
            nullable=True,
            comment="Set by the system from the service price",
        ),
        sa.Column("payment_transaction_id", sa.String(100), nullable=True, comment="Gateway reference"),
        _timestamp("payment_captured_at"),
        _timestamp("payment_released_at"),
        sa.Column("payment_release_reference", sa.String(100), nullable=True),
        _timestamp("payment_refunded_at"),
        sa.CheckConstraint(f"status IN ({_in_list(BOOKING_STATUSES)})", name="ck_bookings_status"),
        sa.CheckConstraint(
            "payment_amount IS NULL OR payment_amount > 0",
            name="ck_bookings_payment_amount_positive",
        ),
    )
    op.create_index("ix_bookings_id", "bookings", ["id"])
    op.create_index("ix_bookings_buyer_id", "bookings", ["buyer_id"])
    op.create_index("ix_bookings_service_id", "bookings", ["service_id"])
    op.create_index("ix_bookings_status", "bookings", ["status"])
    op.create_index("ix_bookings_payment_status", "bookings", ["payment_status"])
    op.create_index("ix_bookings_payment_transaction_id", "bookings", ["payment_transaction_id"])

    active_predicate = sa.text(f"status IN ({_in_list(ACTIVE_BOOKING_STATUSES)})")
    op.create_index(
        "uq_bookings_active_buyer_service",
        "bookings",
        ["buyer_id", "service_id"],
        unique=True,
        postgresql_where=active_predicate,
        sqlite_where=active_predicate,
    )

    op.create_table(
        "invoices",
        sa.Column("id", sa.String(26), primary_key=True),
        sa.Column("invoice_number", sa.String(32), nullable=False),
        sa.Column("booking_id", sa.String(26), sa.ForeignKey("bookings.id"), nullable=False),
        sa.Column("buyer_id", sa.String(64), sa.ForeignKey("profiles.id"), nullable=False),
        sa.Column("service_id", sa.String(64), sa.ForeignKey("services.id"), nullable=False),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("paystack_reference", sa.String(100), nullable=False),
        _timestamp("created_at", nullable=False, server_default=True),
        sa.UniqueConstraint("invoice_number", name="uq_invoices_invoice_number"),
        sa.UniqueConstraint("paystack_reference", name="uq_invoices_paystack_reference"),
    )
    op.create_index("ix_invoices_booking_id", "invoices", ["booking_id"])
    op.create_index("ix_invoices_buyer_id", "invoices", ["buyer_id"])

    op.create_table(
        "reviews",
        sa.Column("id", sa.String(26), primary_key=True),
        sa.Column("booking_id", sa.String(26), sa.ForeignKey("bookings.id"), nullable=False),
        sa.Column("reviewer_id", sa.String(64), sa.ForeignKey("profiles.id"), nullable=False),
        sa.Column("seller_id", sa.String(64), sa.ForeignKey("profiles.id"), nullable=False),
        sa.Column("service_id", sa.String(64), sa.ForeignKey("services.id"), nullable=False),
        sa.Column("rating", sa.Integer(), nullable=False),
        sa.Column("review_text", sa.Text(), nullable=True),
        _timestamp("created_at", nullable=False, server_default=True),
        sa.UniqueConstraint("booking_id", name="uq_reviews_booking_id"),
        sa.CheckConstraint("rating BETWEEN 1 AND 5", name="ck_reviews_rating_range"),
    )
    op.create_index("ix_reviews_reviewer_id", "reviews", ["reviewer_id"])
    op.create_index("ix_reviews_seller_id", "reviews", ["seller_id"])

    op.create_table(
        "event_outbox",
        sa.Column("id", sa.String(26), primary_key=True),
        sa.Column("event_type", sa.String(100), nullable=False),
        sa.Column("aggregate_id", sa.String(64), nullable=False),
        sa.Column("idempotency_key", sa.String(255), nullable=False),
        sa.Column("payload", json_type, nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="PENDING"),
        sa.Column("attempt_count", sa.Integer(), nullable=False, server_default="0"),
        _timestamp("next_attempt_at"),
        sa.Column("last_error", sa.Text(), nullable=True),
        _timestamp("created_at", nullable=False, server_default=True),
        _timestamp("updated_at", nullable=False, server_default=True),
        sa.UniqueConstraint("idempotency_key", name="uq_event_outbox_idempotency_key"),
    )
    op.create_index("ix_event_outbox_event_type", "event_outbox", ["event_type"])
    op.create_index("ix_event_outbox_aggregate_id", "event_outbox", ["aggregate_id"])
    op.create_index("ix_event_outbox_status", "event_outbox", ["status"])
    op.create_index("ix_event_outbox_next_attempt_at", "event_outbox", ["next_attempt_at"])

    print("Booking payment schema created.")


def downgrade() -> None:
    print("Dropping booking payment schema...")
    op.drop_table("event_outbox")
    op.drop_table("reviews")
    op.drop_table("invoices")
    op.drop_index("uq_bookings_active_buyer_service", table_name="bookings")
    op.drop_table("bookings")
    op.drop_table("services")
    op.drop_table("profiles")
