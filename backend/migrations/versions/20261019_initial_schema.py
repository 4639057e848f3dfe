"""Initial coach ledger schema

Revision ID: 20261019_initial
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "coaches",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("branch", sa.String(120), nullable=False, server_default="Main"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("company_cut_total_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("active_member_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_sessions_delivered", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("coaches", schema=None) as batch_op:
        batch_op.create_index("ix_coaches_branch", ["branch"], unique=False)

    op.create_table(
        "members",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("coach_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(160), nullable=False),
        sa.Column("phone", sa.String(32), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("remaining_credits", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("package_start_date", sa.Date(), nullable=True),
        sa.Column("package_end_date", sa.Date(), nullable=True),
        sa.Column("current_package_id", sa.Integer(), nullable=True),
        sa.Column("total_packages_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("next_package_sequence", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["coach_id"], ["coaches.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("remaining_credits >= 0", name="ck_members_credits_non_negative"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("members", schema=None) as batch_op:
        batch_op.create_index("ix_members_coach_id", ["coach_id"], unique=False)

    op.create_table(
        "packages",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("member_id", sa.Integer(), nullable=False),
        sa.Column("coach_id", sa.Integer(), nullable=False),
        sa.Column("sequence_number", sa.Integer(), nullable=False),
        sa.Column("price_cents", sa.Integer(), nullable=False),
        sa.Column("session_count", sa.Integer(), nullable=False),
        sa.Column("duration_days", sa.Integer(), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("commission_type", sa.String(24), nullable=False, server_default="NONE"),
        sa.Column("commission_value", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("approval_status", sa.String(16), nullable=False, server_default="PENDING"),
        sa.Column("payment_status", sa.String(16), nullable=False, server_default="PAID"),
        sa.Column("created_by_role", sa.String(16), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["member_id"], ["members.id"]),
        sa.ForeignKeyConstraint(["coach_id"], ["coaches.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("member_id", "sequence_number", name="uq_packages_member_sequence"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("packages", schema=None) as batch_op:
        batch_op.create_index("ix_packages_member_id", ["member_id"], unique=False)
        batch_op.create_index("ix_packages_coach_id", ["coach_id"], unique=False)
        batch_op.create_index("ix_packages_approval_status", ["approval_status"], unique=False)

    op.create_table(
        "aggregate_adjustments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("coach_id", sa.Integer(), nullable=False),
        sa.Column("delta_cents", sa.Integer(), nullable=False),
        sa.Column("total_after_cents", sa.Integer(), nullable=False),
        sa.Column("reason", sa.String(32), nullable=False),
        sa.Column("package_id", sa.Integer(), nullable=True),
        sa.Column("member_id", sa.Integer(), nullable=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["coach_id"], ["coaches.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("aggregate_adjustments", schema=None) as batch_op:
        batch_op.create_index("ix_aggregate_adjustments_coach_id", ["coach_id"], unique=False)
        batch_op.create_index("ix_aggregate_adjustments_coach_occurred", ["coach_id", "occurred_at"], unique=False)

    op.create_table(
        "events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("coach_id", sa.Integer(), nullable=False),
        sa.Column("kind", sa.String(16), nullable=False),
        sa.Column("title", sa.String(160), nullable=True),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.Column("quota", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("request_id", sa.String(64), nullable=True),
        sa.Column("is_completed", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["coach_id"], ["coaches.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("coach_id", "request_id", name="uq_events_coach_request"),
        sa.CheckConstraint("quota >= 1", name="ck_events_quota_positive"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("events", schema=None) as batch_op:
        batch_op.create_index("ix_events_coach_id", ["coach_id"], unique=False)
        batch_op.create_index("ix_events_coach_date", ["coach_id", "date"], unique=False)

    op.create_table(
        "event_participants",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("event_id", sa.Integer(), nullable=False),
        sa.Column("participant_key", sa.String(64), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("kind", sa.String(16), nullable=False),
        sa.Column("member_id", sa.Integer(), nullable=True),
        sa.Column("name", sa.String(160), nullable=True),
        sa.Column("contact", sa.String(64), nullable=True),
        sa.Column("credits_charged", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["event_id"], ["events.id"]),
        sa.ForeignKeyConstraint(["member_id"], ["members.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("event_id", "participant_key", name="uq_event_participants_key"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("event_participants", schema=None) as batch_op:
        batch_op.create_index("ix_event_participants_event_id", ["event_id"], unique=False)
        batch_op.create_index("ix_event_participants_member_id", ["member_id"], unique=False)

    op.create_table(
        "booking_operations",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("event_id", sa.Integer(), nullable=False),
        sa.Column("participant_key", sa.String(64), nullable=False),
        sa.Column("operation", sa.String(16), nullable=False),
        sa.Column("refunded", sa.Boolean(), nullable=True),
        sa.Column("applied_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["event_id"], ["events.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("event_id", "participant_key", "operation", name="uq_booking_operations_key"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("booking_operations", schema=None) as batch_op:
        batch_op.create_index("ix_booking_operations_event_id", ["event_id"], unique=False)

    op.create_table(
        "credit_transactions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("member_id", sa.Integer(), nullable=False),
        sa.Column("transaction_type", sa.String(16), nullable=False),
        sa.Column("credits", sa.Integer(), nullable=False),
        sa.Column("balance_after", sa.Integer(), nullable=False),
        sa.Column("package_id", sa.Integer(), nullable=True),
        sa.Column("event_id", sa.Integer(), nullable=True),
        sa.Column("participant_key", sa.String(64), nullable=True),
        sa.Column("actor_id", sa.String(64), nullable=True),
        sa.Column("reason", sa.String(255), nullable=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["member_id"], ["members.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("transaction_type", "event_id", "participant_key", name="uq_credit_transactions_booking_key"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("credit_transactions", schema=None) as batch_op:
        batch_op.create_index("ix_credit_transactions_member_id", ["member_id"], unique=False)
        batch_op.create_index("ix_credit_transactions_transaction_type", ["transaction_type"], unique=False)
        batch_op.create_index("ix_credit_transactions_occurred_at", ["occurred_at"], unique=False)
        batch_op.create_index("ix_credit_transactions_member_occurred", ["member_id", "occurred_at"], unique=False)


def downgrade():
    op.drop_table("credit_transactions")
    op.drop_table("booking_operations")
    op.drop_table("event_participants")
    op.drop_table("events")
    op.drop_table("aggregate_adjustments")
    op.drop_table("packages")
    op.drop_table("members")
    op.drop_table("coaches")
