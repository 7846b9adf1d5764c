"""Initial schema: users, webinars, registrations, payments with indexes and constraints.

Revision ID: 001
Revises: None
Create Date: 2026-10-17
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    # Users: identified by lower-cased e-mail, no password
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("company", sa.String(255), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "webinars",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("price", sa.Numeric(10, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("max_participants", sa.Integer(), nullable=False, server_default=sa.text("100")),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("calendar_event_id", sa.String(255), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("end_date > start_date", name="check_webinar_end_after_start"),
        sa.CheckConstraint("price >= 0", name="check_webinar_price_non_negative"),
        sa.CheckConstraint("max_participants > 0", name="check_webinar_capacity_positive"),
        sa.CheckConstraint("status IN ('active', 'cancelled', 'completed')", name="check_webinar_status"),
    )
    # Listings are ordered by start date; the reminder sweep filters on it.
    op.create_index("ix_webinars_start_date", "webinars", ["start_date"])
    op.create_index("ix_webinars_status_start_date", "webinars", ["status", "start_date"])

    op.create_table(
        "registrations",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("webinar_id", sa.Uuid(), sa.ForeignKey("webinars.id"), nullable=False),
        sa.Column("payment_id", sa.Uuid(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("meet_link", sa.String(500), nullable=True),
        sa.Column("calendar_event_id", sa.String(255), nullable=True),
        sa.Column("reminder_sent", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        *_timestamps(),
        sa.CheckConstraint("status IN ('pending', 'confirmed', 'cancelled')", name="check_registration_status"),
    )
    op.create_index("ix_registrations_user_id", "registrations", ["user_id"])
    op.create_index("ix_registrations_webinar_id", "registrations", ["webinar_id"])
    op.create_index("ix_registrations_reminder", "registrations", ["status", "reminder_sent"])
    # One live registration per (user, webinar); cancelled rows do not count.
    op.create_index(
        "uq_registrations_active_user_webinar",
        "registrations",
        ["user_id", "webinar_id"],
        unique=True,
        postgresql_where=sa.text("status != 'cancelled'"),
    )

    op.create_table(
        "payments",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("registration_id", sa.Uuid(), sa.ForeignKey("registrations.id"), nullable=False),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default="EUR"),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("checkout_id", sa.String(255), nullable=True),
        sa.Column("transaction_id", sa.String(255), nullable=True),
        sa.Column("invoice_number", sa.String(32), nullable=True),
        sa.Column("invoice_url", sa.String(500), nullable=True),
        sa.Column("payment_date", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("registration_id", name="uq_payments_registration_id"),
        sa.UniqueConstraint("checkout_id", name="uq_payments_checkout_id"),
        sa.UniqueConstraint("invoice_number", name="uq_payments_invoice_number"),
        sa.CheckConstraint("amount >= 0", name="check_payment_amount_non_negative"),
        sa.CheckConstraint(
            "status IN ('pending', 'completed', 'failed', 'refunded')", name="check_payment_status"
        ),
    )
    # Invoice numbering counts completed payments per month.
    op.create_index("ix_payments_status_payment_date", "payments", ["status", "payment_date"])


def downgrade() -> None:
    op.drop_table("payments")
    op.drop_table("registrations")
    op.drop_table("webinars")
    op.drop_table("users")
