"""worker exceptions, case status history and worker schedules

Revision ID: 0002_exceptions_and_schedules
Revises: 0001_users_and_teams
Create Date: 2026-09-01
"""

from alembic import op
import sqlalchemy as sa

revision = "0002_exceptions_and_schedules"
down_revision = "0001_users_and_teams"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "worker_exceptions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("team_id", sa.Integer(), nullable=False),
        sa.Column("exception_type", sa.String(length=50), nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("assigned_to_whs", sa.Boolean(), nullable=False),
        sa.Column("clinician_id", sa.Integer(), nullable=True),
        sa.Column("deactivated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("return_to_work_duty_type", sa.String(length=20), nullable=True),
        sa.Column("return_to_work_date", sa.Date(), nullable=True),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "exception_type IN ('transfer', 'accident', 'injury', 'medical_leave', 'other')",
            name="ck_worker_exceptions_type",
        ),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["team_id"], ["teams.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["clinician_id"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["created_by"], ["users.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_worker_exceptions_user_id", "worker_exceptions", ["user_id"], unique=False)
    op.create_index("ix_worker_exceptions_team_id", "worker_exceptions", ["team_id"], unique=False)
    op.create_index("ix_worker_exceptions_is_active", "worker_exceptions", ["is_active"], unique=False)
    op.create_index("ix_worker_exceptions_clinician_id", "worker_exceptions", ["clinician_id"], unique=False)
    op.create_index(
        "idx_worker_exceptions_unique_active",
        "worker_exceptions",
        ["user_id"],
        unique=True,
        sqlite_where=sa.text("is_active"),
        postgresql_where=sa.text("is_active"),
    )
    op.create_index("idx_worker_exceptions_active_user", "worker_exceptions", ["user_id", "is_active"], unique=False)
    op.create_index("idx_worker_exceptions_dates", "worker_exceptions", ["start_date", "end_date"], unique=False)

    op.create_table(
        "case_status_history",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("exception_id", sa.Integer(), nullable=False),
        sa.Column("from_status", sa.String(length=20), nullable=True),
        sa.Column("to_status", sa.String(length=20), nullable=False),
        sa.Column("changed_by_user_id", sa.Integer(), nullable=True),
        sa.Column("changed_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "to_status IN ('new', 'triaged', 'assessed', 'in_rehab', 'return_to_work', 'closed')",
            name="ck_case_status_history_to_status",
        ),
        sa.ForeignKeyConstraint(["exception_id"], ["worker_exceptions.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["changed_by_user_id"], ["users.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_case_status_history_exception_id", "case_status_history", ["exception_id"], unique=False)

    op.create_table(
        "worker_schedules",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("worker_id", sa.Integer(), nullable=False),
        sa.Column("team_id", sa.Integer(), nullable=False),
        sa.Column("scheduled_date", sa.Date(), nullable=True),
        sa.Column("day_of_week", sa.Integer(), nullable=True),
        sa.Column("effective_date", sa.Date(), nullable=True),
        sa.Column("expiry_date", sa.Date(), nullable=True),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.Column("requires_daily_checkin", sa.Boolean(), nullable=False),
        sa.Column("daily_checkin_start_time", sa.Time(), nullable=True),
        sa.Column("daily_checkin_end_time", sa.Time(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("approved_by", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("end_time > start_time", name="ck_worker_schedules_time_order"),
        sa.CheckConstraint(
            "(scheduled_date IS NOT NULL AND day_of_week IS NULL) OR (scheduled_date IS NULL AND day_of_week IS NOT NULL)",
            name="check_schedule_date_or_day",
        ),
        sa.CheckConstraint(
            "day_of_week IS NULL OR (day_of_week >= 0 AND day_of_week <= 6)",
            name="ck_worker_schedules_day_of_week",
        ),
        sa.CheckConstraint(
            "NOT requires_daily_checkin OR (daily_checkin_start_time IS NOT NULL "
            "AND daily_checkin_end_time IS NOT NULL AND daily_checkin_end_time > daily_checkin_start_time)",
            name="check_daily_checkin_times",
        ),
        sa.CheckConstraint(
            "effective_date IS NULL OR expiry_date IS NULL OR expiry_date >= effective_date",
            name="ck_worker_schedules_recurring_range",
        ),
        sa.ForeignKeyConstraint(["worker_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["team_id"], ["teams.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["created_by"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["approved_by"], ["users.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_worker_schedules_worker_id", "worker_schedules", ["worker_id"], unique=False)
    op.create_index("ix_worker_schedules_team_id", "worker_schedules", ["team_id"], unique=False)
    op.create_index("ix_worker_schedules_scheduled_date", "worker_schedules", ["scheduled_date"], unique=False)
    op.create_index("ix_worker_schedules_day_of_week", "worker_schedules", ["day_of_week"], unique=False)
    op.create_index("ix_worker_schedules_is_active", "worker_schedules", ["is_active"], unique=False)
    op.create_index("ix_worker_schedules_created_by", "worker_schedules", ["created_by"], unique=False)
    op.create_index(
        "worker_schedules_unique_single_date",
        "worker_schedules",
        ["worker_id", "scheduled_date", "start_time"],
        unique=True,
        sqlite_where=sa.text("scheduled_date IS NOT NULL AND day_of_week IS NULL"),
        postgresql_where=sa.text("scheduled_date IS NOT NULL AND day_of_week IS NULL"),
    )
    op.create_index(
        "worker_schedules_unique_recurring",
        "worker_schedules",
        ["worker_id", "day_of_week", "start_time"],
        unique=True,
        sqlite_where=sa.text("day_of_week IS NOT NULL AND scheduled_date IS NULL"),
        postgresql_where=sa.text("day_of_week IS NOT NULL AND scheduled_date IS NULL"),
    )


def downgrade() -> None:
    op.drop_index("worker_schedules_unique_recurring", table_name="worker_schedules")
    op.drop_index("worker_schedules_unique_single_date", table_name="worker_schedules")
    op.drop_index("ix_worker_schedules_created_by", table_name="worker_schedules")
    op.drop_index("ix_worker_schedules_is_active", table_name="worker_schedules")
    op.drop_index("ix_worker_schedules_day_of_week", table_name="worker_schedules")
    op.drop_index("ix_worker_schedules_scheduled_date", table_name="worker_schedules")
    op.drop_index("ix_worker_schedules_team_id", table_name="worker_schedules")
    op.drop_index("ix_worker_schedules_worker_id", table_name="worker_schedules")
    op.drop_table("worker_schedules")
    op.drop_index("ix_case_status_history_exception_id", table_name="case_status_history")
    op.drop_table("case_status_history")
    op.drop_index("idx_worker_exceptions_dates", table_name="worker_exceptions")
    op.drop_index("idx_worker_exceptions_active_user", table_name="worker_exceptions")
    op.drop_index("idx_worker_exceptions_unique_active", table_name="worker_exceptions")
    op.drop_index("ix_worker_exceptions_clinician_id", table_name="worker_exceptions")
    op.drop_index("ix_worker_exceptions_is_active", table_name="worker_exceptions")
    op.drop_index("ix_worker_exceptions_team_id", table_name="worker_exceptions")
    op.drop_index("ix_worker_exceptions_user_id", table_name="worker_exceptions")
    op.drop_table("worker_exceptions")
