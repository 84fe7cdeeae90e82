"""daily check-ins, warm-ups, incidents and notifications

Revision ID: 0003_checkins_incidents_notifications
Revises: 0002_exceptions_and_schedules
Create Date: 2026-09-03
"""

from alembic import op
import sqlalchemy as sa

revision = "0003_checkins_incidents_notifications"
down_revision = "0002_exceptions_and_schedules"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "daily_checkins",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("team_id", sa.Integer(), nullable=True),
        sa.Column("pain_level", sa.Integer(), nullable=False),
        sa.Column("fatigue_level", sa.Integer(), nullable=False),
        sa.Column("sleep_quality", sa.Integer(), nullable=False),
        sa.Column("stress_level", sa.Integer(), nullable=False),
        sa.Column("additional_notes", sa.Text(), nullable=True),
        sa.Column("predicted_readiness", sa.String(length=10), nullable=False),
        sa.Column("check_in_date", sa.Date(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("user_id", "check_in_date", name="uq_daily_checkins_user_date"),
        sa.CheckConstraint("pain_level >= 0 AND pain_level <= 10", name="ck_daily_checkins_pain"),
        sa.CheckConstraint("fatigue_level >= 0 AND fatigue_level <= 10", name="ck_daily_checkins_fatigue"),
        sa.CheckConstraint("sleep_quality >= 0 AND sleep_quality <= 12", name="ck_daily_checkins_sleep"),
        sa.CheckConstraint("stress_level >= 0 AND stress_level <= 10", name="ck_daily_checkins_stress"),
        sa.CheckConstraint("predicted_readiness IN ('Green', 'Yellow', 'Red')", name="ck_daily_checkins_readiness"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["team_id"], ["teams.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_daily_checkins_user_id", "daily_checkins", ["user_id"], unique=False)
    op.create_index("ix_daily_checkins_team_id", "daily_checkins", ["team_id"], unique=False)
    op.create_index("ix_daily_checkins_check_in_date", "daily_checkins", ["check_in_date"], unique=False)

    op.create_table(
        "warm_ups",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("team_id", sa.Integer(), nullable=True),
        sa.Column("completed", sa.Boolean(), nullable=False),
        sa.Column("warm_up_date", sa.Date(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("user_id", "warm_up_date", name="uq_warm_ups_user_date"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["team_id"], ["teams.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_warm_ups_user_id", "warm_ups", ["user_id"], unique=False)
    op.create_index("ix_warm_ups_team_id", "warm_ups", ["team_id"], unique=False)
    op.create_index("ix_warm_ups_warm_up_date", "warm_ups", ["warm_up_date"], unique=False)

    op.create_table(
        "incidents",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("team_id", sa.Integer(), nullable=True),
        sa.Column("exception_id", sa.Integer(), nullable=True),
        sa.Column("incident_type", sa.String(length=20), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("severity", sa.String(length=20), nullable=False),
        sa.Column("incident_date", sa.Date(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("incident_type IN ('incident', 'near_miss')", name="ck_incidents_type"),
        sa.CheckConstraint("severity IN ('low', 'medium', 'high', 'critical')", name="ck_incidents_severity"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["team_id"], ["teams.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["exception_id"], ["worker_exceptions.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_incidents_user_id", "incidents", ["user_id"], unique=False)
    op.create_index("ix_incidents_team_id", "incidents", ["team_id"], unique=False)
    op.create_index("ix_incidents_exception_id", "incidents", ["exception_id"], unique=False)
    op.create_index("ix_incidents_incident_date", "incidents", ["incident_date"], unique=False)

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("type", sa.String(length=50), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("data", sa.JSON(), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "type IN ('incident_assigned', 'case_updated', 'case_closed', 'system', "
            "'worker_not_fit_to_work', 'case_assigned_to_clinician')",
            name="notifications_type_check",
        ),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"], unique=False)
    op.create_index("ix_notifications_created_at", "notifications", ["created_at"], unique=False)
    op.create_index("idx_notifications_user_type", "notifications", ["user_id", "type"], unique=False)
    op.create_index("idx_notifications_user_unread", "notifications", ["user_id", "is_read"], unique=False)


def downgrade() -> None:
    op.drop_index("idx_notifications_user_unread", table_name="notifications")
    op.drop_index("idx_notifications_user_type", table_name="notifications")
    op.drop_index("ix_notifications_created_at", table_name="notifications")
    op.drop_index("ix_notifications_user_id", table_name="notifications")
    op.drop_table("notifications")
    op.drop_index("ix_incidents_incident_date", table_name="incidents")
    op.drop_index("ix_incidents_exception_id", table_name="incidents")
    op.drop_index("ix_incidents_team_id", table_name="incidents")
    op.drop_index("ix_incidents_user_id", table_name="incidents")
    op.drop_table("incidents")
    op.drop_index("ix_warm_ups_warm_up_date", table_name="warm_ups")
    op.drop_index("ix_warm_ups_team_id", table_name="warm_ups")
    op.drop_index("ix_warm_ups_user_id", table_name="warm_ups")
    op.drop_table("warm_ups")
    op.drop_index("ix_daily_checkins_check_in_date", table_name="daily_checkins")
    op.drop_index("ix_daily_checkins_team_id", table_name="daily_checkins")
    op.drop_index("ix_daily_checkins_user_id", table_name="daily_checkins")
    op.drop_table("daily_checkins")
