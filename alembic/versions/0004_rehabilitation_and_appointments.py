"""rehabilitation plans, appointments and transcriptions

Revision ID: 0004_rehabilitation_and_appointments
Revises: 0003_checkins_incidents_notifications
Create Date: 2026-09-08
"""

from alembic import op
import sqlalchemy as sa

revision = "0004_rehabilitation_and_appointments"
down_revision = "0003_checkins_incidents_notifications"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "rehabilitation_plans",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("exception_id", sa.Integer(), nullable=False),
        sa.Column("clinician_id", sa.Integer(), nullable=True),
        sa.Column("plan_name", sa.String(length=255), nullable=False),
        sa.Column("plan_description", sa.Text(), nullable=True),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("status IN ('active', 'completed', 'cancelled')", name="ck_rehabilitation_plans_status"),
        sa.CheckConstraint("end_date >= start_date", name="end_date_after_start_date"),
        sa.ForeignKeyConstraint(["exception_id"], ["worker_exceptions.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["clinician_id"], ["users.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_rehabilitation_plans_exception_id", "rehabilitation_plans", ["exception_id"], unique=False)
    op.create_index("ix_rehabilitation_plans_clinician_id", "rehabilitation_plans", ["clinician_id"], unique=False)
    op.create_index("ix_rehabilitation_plans_status", "rehabilitation_plans", ["status"], unique=False)
    op.create_index("idx_rehabilitation_plans_dates", "rehabilitation_plans", ["start_date", "end_date"], unique=False)

    op.create_table(
        "rehabilitation_exercises",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("plan_id", sa.Integer(), nullable=False),
        sa.Column("exercise_name", sa.String(length=255), nullable=False),
        sa.Column("repetitions", sa.String(length=100), nullable=True),
        sa.Column("instructions", sa.Text(), nullable=True),
        sa.Column("video_url", sa.Text(), nullable=True),
        sa.Column("exercise_order", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("length(trim(exercise_name)) > 0", name="exercise_name_not_empty"),
        sa.ForeignKeyConstraint(["plan_id"], ["rehabilitation_plans.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_rehabilitation_exercises_plan_id", "rehabilitation_exercises", ["plan_id"], unique=False)
    op.create_index(
        "idx_rehabilitation_exercises_order", "rehabilitation_exercises", ["plan_id", "exercise_order"], unique=False
    )

    op.create_table(
        "rehabilitation_plan_completions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("plan_id", sa.Integer(), nullable=False),
        sa.Column("exercise_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("completion_date", sa.Date(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint(
            "plan_id", "exercise_id", "user_id", "completion_date", name="uq_rehabilitation_plan_completions"
        ),
        sa.ForeignKeyConstraint(["plan_id"], ["rehabilitation_plans.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["exercise_id"], ["rehabilitation_exercises.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_rehabilitation_plan_completions_plan_id", "rehabilitation_plan_completions", ["plan_id"], unique=False)
    op.create_index(
        "ix_rehabilitation_plan_completions_exercise_id", "rehabilitation_plan_completions", ["exercise_id"], unique=False
    )
    op.create_index("ix_rehabilitation_plan_completions_user_id", "rehabilitation_plan_completions", ["user_id"], unique=False)
    op.create_index(
        "ix_rehabilitation_plan_completions_completion_date",
        "rehabilitation_plan_completions",
        ["completion_date"],
        unique=False,
    )

    op.create_table(
        "appointments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("case_id", sa.Integer(), nullable=False),
        sa.Column("clinician_id", sa.Integer(), nullable=False),
        sa.Column("worker_id", sa.Integer(), nullable=False),
        sa.Column("appointment_date", sa.Date(), nullable=False),
        sa.Column("appointment_time", sa.Time(), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("appointment_type", sa.String(length=50), nullable=False),
        sa.Column("location", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "status IN ('pending', 'confirmed', 'completed', 'cancelled', 'declined')", name="ck_appointments_status"
        ),
        sa.CheckConstraint(
            "appointment_type IN ('consultation', 'follow_up', 'assessment', 'review', 'other')",
            name="ck_appointments_type",
        ),
        sa.CheckConstraint("duration_minutes > 0 AND duration_minutes <= 480", name="ck_appointments_duration"),
        sa.ForeignKeyConstraint(["case_id"], ["worker_exceptions.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["clinician_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["worker_id"], ["users.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_appointments_case_id", "appointments", ["case_id"], unique=False)
    op.create_index("ix_appointments_clinician_id", "appointments", ["clinician_id"], unique=False)
    op.create_index("ix_appointments_worker_id", "appointments", ["worker_id"], unique=False)
    op.create_index("ix_appointments_appointment_date", "appointments", ["appointment_date"], unique=False)
    op.create_index("ix_appointments_status", "appointments", ["status"], unique=False)
    op.create_index("idx_appointments_date_time", "appointments", ["appointment_date", "appointment_time"], unique=False)

    op.create_table(
        "transcriptions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("clinician_id", sa.Integer(), nullable=False),
        sa.Column("transcription_text", sa.Text(), nullable=False),
        sa.Column("analysis", sa.JSON(), nullable=True),
        sa.Column("recording_duration_seconds", sa.Integer(), nullable=True),
        sa.Column("estimated_cost", sa.Numeric(10, 6), nullable=True),
        sa.Column("audio_file_size_bytes", sa.BigInteger(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["clinician_id"], ["users.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_transcriptions_clinician_id", "transcriptions", ["clinician_id"], unique=False)
    op.create_index("ix_transcriptions_created_at", "transcriptions", ["created_at"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_transcriptions_created_at", table_name="transcriptions")
    op.drop_index("ix_transcriptions_clinician_id", table_name="transcriptions")
    op.drop_table("transcriptions")
    op.drop_index("idx_appointments_date_time", table_name="appointments")
    op.drop_index("ix_appointments_status", table_name="appointments")
    op.drop_index("ix_appointments_appointment_date", table_name="appointments")
    op.drop_index("ix_appointments_worker_id", table_name="appointments")
    op.drop_index("ix_appointments_clinician_id", table_name="appointments")
    op.drop_index("ix_appointments_case_id", table_name="appointments")
    op.drop_table("appointments")
    op.drop_index("ix_rehabilitation_plan_completions_completion_date", table_name="rehabilitation_plan_completions")
    op.drop_index("ix_rehabilitation_plan_completions_user_id", table_name="rehabilitation_plan_completions")
    op.drop_index("ix_rehabilitation_plan_completions_exercise_id", table_name="rehabilitation_plan_completions")
    op.drop_index("ix_rehabilitation_plan_completions_plan_id", table_name="rehabilitation_plan_completions")
    op.drop_table("rehabilitation_plan_completions")
    op.drop_index("idx_rehabilitation_exercises_order", table_name="rehabilitation_exercises")
    op.drop_index("ix_rehabilitation_exercises_plan_id", table_name="rehabilitation_exercises")
    op.drop_table("rehabilitation_exercises")
    op.drop_index("idx_rehabilitation_plans_dates", table_name="rehabilitation_plans")
    op.drop_index("ix_rehabilitation_plans_status", table_name="rehabilitation_plans")
    op.drop_index("ix_rehabilitation_plans_clinician_id", table_name="rehabilitation_plans")
    op.drop_index("ix_rehabilitation_plans_exception_id", table_name="rehabilitation_plans")
    op.drop_table("rehabilitation_plans")
