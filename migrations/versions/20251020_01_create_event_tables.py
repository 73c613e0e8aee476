"""create users, subgroups and event enrollment tables

Revision ID: 20251020_01
Revises:
Create Date: 2025-10-20 00:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20251020_01"
down_revision = None
branch_labels = None
depends_on = None

event_status = sa.Enum("active", "elapsed", "canceled", name="eventstatus")
event_category = sa.Enum("outing", "normal", "paid", name="eventcategory")
payment_status = sa.Enum("pending", "paid", "failed", name="paymentstatus")


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(length=120), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("last_name", sa.String(length=120), nullable=True),
        sa.Column("password_hash", sa.String(length=512), nullable=False),
        sa.Column("is_admin", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_created_at", "users", ["created_at"])

    op.create_table(
        "subgroups",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index("ix_subgroups_created_at", "subgroups", ["created_at"])

    op.create_table(
        "events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("place", sa.String(length=200), nullable=True),
        sa.Column("capacity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("alternate_capacity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("inscription_deadline", sa.DateTime(timezone=True), nullable=True),
        sa.Column("withdrawal_deadline", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", event_status, nullable=False),
        sa.Column("category", event_category, nullable=False),
        sa.Column("cost", sa.Integer(), nullable=True),
        sa.Column("destination_account", sa.String(length=120), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("capacity >= 0", name="ck_events_capacity"),
        sa.CheckConstraint("alternate_capacity >= 0", name="ck_events_alternate_capacity"),
    )
    op.create_index("ix_events_date", "events", ["date"])
    op.create_index("ix_events_status", "events", ["status"])
    op.create_index("ix_events_created_at", "events", ["created_at"])

    op.create_table(
        "event_subgroups",
        sa.Column("event_id", sa.Integer(),
                  sa.ForeignKey("events.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("subgroup_id", sa.Integer(),
                  sa.ForeignKey("subgroups.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("capacity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("alternate_capacity", sa.Integer(), nullable=False, server_default="0"),
        sa.CheckConstraint("capacity >= 0", name="ck_event_subgroups_capacity"),
        sa.CheckConstraint("alternate_capacity >= 0",
                           name="ck_event_subgroups_alternate_capacity"),
    )

    op.create_table(
        "event_enrollments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("event_id", sa.Integer(),
                  sa.ForeignKey("events.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.Integer(),
                  sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("subgroup_id", sa.Integer(), sa.ForeignKey("subgroups.id"), nullable=True),
        sa.Column("enrolled_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_alternate", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("alternate_order", sa.Integer(), nullable=True),
        sa.Column("promoted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("residence", sa.String(length=200), nullable=True),
        sa.Column("role", sa.String(length=120), nullable=True),
        sa.Column("first_time", sa.Boolean(), nullable=True),
        sa.Column("career", sa.String(length=200), nullable=True),
        sa.Column("career_year", sa.Integer(), nullable=True),
        sa.Column("sender_name", sa.String(length=200), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("event_id", "user_id", name="uq_event_enrollments_event_user"),
        sa.CheckConstraint(
            "(is_alternate AND alternate_order >= 1) OR "
            "(NOT is_alternate AND alternate_order IS NULL)",
            name="ck_event_enrollments_alternate_order",
        ),
    )
    op.create_index("ix_event_enrollments_event_id", "event_enrollments", ["event_id"])
    op.create_index("ix_event_enrollments_user_id", "event_enrollments", ["user_id"])
    op.create_index("ix_event_enrollments_subgroup_id", "event_enrollments", ["subgroup_id"])
    op.create_index("ix_event_enrollments_created_at", "event_enrollments", ["created_at"])

    op.create_table(
        "event_payments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("event_id", sa.Integer(),
                  sa.ForeignKey("events.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.Integer(),
                  sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("enrollment_id", sa.Integer(),
                  sa.ForeignKey("event_enrollments.id", ondelete="SET NULL"), nullable=True),
        sa.Column("amount_clp", sa.Integer(), nullable=False),
        sa.Column("payment_status", payment_status, nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="CLP"),
        sa.Column("detail", sa.Text(), nullable=True),
        sa.Column("external_id", sa.String(length=120), nullable=True, unique=True),
        sa.Column("rejection_code", sa.String(length=60), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_event_payments_event_id", "event_payments", ["event_id"])
    op.create_index("ix_event_payments_user_id", "event_payments", ["user_id"])
    op.create_index("ix_event_payments_created_at", "event_payments", ["created_at"])


def downgrade() -> None:
    op.drop_table("event_payments")
    op.drop_table("event_enrollments")
    op.drop_table("event_subgroups")
    op.drop_table("events")
    op.drop_table("subgroups")
    op.drop_table("users")
    payment_status.drop(op.get_bind(), checkfirst=True)
    event_category.drop(op.get_bind(), checkfirst=True)
    event_status.drop(op.get_bind(), checkfirst=True)
