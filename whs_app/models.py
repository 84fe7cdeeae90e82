from __future__ import annotations

from datetime import date, datetime, time, timezone
from decimal import Decimal

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
    Time,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from whs_app.case_status import STATUS_ORDER
from whs_app.db import Base

USER_ROLES = ("worker", "supervisor", "whs_control_center", "executive", "clinician", "team_leader", "admin")
EXCEPTION_TYPES = ("transfer", "accident", "injury", "medical_leave", "other")
NOTIFICATION_TYPES = (
    "incident_assigned",
    "case_updated",
    "case_closed",
    "system",
    "worker_not_fit_to_work",
    "case_assigned_to_clinician",
)
APPOINTMENT_STATUSES = ("pending", "confirmed", "completed", "cancelled", "declined")
APPOINTMENT_TERMINAL_STATUSES = ("completed", "cancelled", "declined")
APPOINTMENT_TYPES = ("consultation", "follow_up", "assessment", "review", "other")
PLAN_STATUSES = ("active", "completed", "cancelled")
CASE_STATUSES = STATUS_ORDER


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _in_clause(column: str, values: tuple[str, ...]) -> str:
    quoted = ", ".join(f"'{value}'" for value in values)
    return f"{column} IN ({quoted})"


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint(_in_clause("role", USER_ROLES), name="ck_users_role"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(30), nullable=False, default="worker")
    first_name: Mapped[str | None] = mapped_column(String(120), nullable=True)
    last_name: Mapped[str | None] = mapped_column(String(120), nullable=True)
    full_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    sessions = relationship("SessionRecord", back_populates="user", cascade="all, delete-orphan")

    @property
    def display_name(self) -> str:
        if self.full_name:
            return self.full_name
        if self.first_name and self.last_name:
            return f"{self.first_name} {self.last_name}"
        return self.email or "Unknown User"


class SessionRecord(Base):
    __tablename__ = "sessions"

    session_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)

    user = relationship("User", back_populates="sessions")


class LoginLog(Base):
    __tablename__ = "login_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(30), nullable=False, index=True)
    login_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)


class Team(Base):
    __tablename__ = "teams"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    site_location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    team_leader_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True, index=True
    )
    supervisor_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    members = relationship("TeamMember", back_populates="team", cascade="all, delete-orphan")


class TeamMember(Base):
    __tablename__ = "team_members"
    __table_args__ = (
        UniqueConstraint("team_id", "user_id", name="uq_team_members_team_user"),
        CheckConstraint(
            "compliance_percentage >= 0 AND compliance_percentage <= 100",
            name="ck_team_members_compliance_percentage",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    team_id: Mapped[int] = mapped_column(ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    compliance_percentage: Mapped[int] = mapped_column(Integer, nullable=False, default=100)
    phone: Mapped[str | None] = mapped_column(String(40), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    team = relationship("Team", back_populates="members")


class WorkerException(Base):
    """A worker's exemption from check-in obligations; viewed through its status it is a case."""

    __tablename__ = "worker_exceptions"
    __table_args__ = (
        CheckConstraint(_in_clause("exception_type", EXCEPTION_TYPES), name="ck_worker_exceptions_type"),
        Index(
            "idx_worker_exceptions_unique_active",
            "user_id",
            unique=True,
            sqlite_where=text("is_active"),
            postgresql_where=text("is_active"),
        ),
        Index("idx_worker_exceptions_active_user", "user_id", "is_active"),
        Index("idx_worker_exceptions_dates", "start_date", "end_date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    team_id: Mapped[int] = mapped_column(ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True)
    exception_type: Mapped[str] = mapped_column(String(50), nullable=False)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)
    assigned_to_whs: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    clinician_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    deactivated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    return_to_work_duty_type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    return_to_work_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    created_by: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    worker = relationship("User", foreign_keys=[user_id])
    team = relationship("Team")
    rehabilitation_plans = relationship("RehabilitationPlan", back_populates="exception", cascade="all, delete-orphan")
    status_history = relationship(
        "CaseStatusHistory",
        back_populates="exception",
        cascade="all, delete-orphan",
        order_by="CaseStatusHistory.id",
    )


class CaseStatusHistory(Base):
    __tablename__ = "case_status_history"
    __table_args__ = (
        CheckConstraint(_in_clause("to_status", CASE_STATUSES), name="ck_case_status_history_to_status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    exception_id: Mapped[int] = mapped_column(
        ForeignKey("worker_exceptions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    from_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    to_status: Mapped[str] = mapped_column(String(20), nullable=False)
    changed_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    changed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    exception = relationship("WorkerException", back_populates="status_history")


class WorkerSchedule(Base):
    __tablename__ = "worker_schedules"
    __table_args__ = (
        CheckConstraint("end_time > start_time", name="ck_worker_schedules_time_order"),
        CheckConstraint(
            "(scheduled_date IS NOT NULL AND day_of_week IS NULL) OR (scheduled_date IS NULL AND day_of_week IS NOT NULL)",
            name="check_schedule_date_or_day",
        ),
        CheckConstraint("day_of_week IS NULL OR (day_of_week >= 0 AND day_of_week <= 6)", name="ck_worker_schedules_day_of_week"),
        CheckConstraint(
            "NOT requires_daily_checkin OR (daily_checkin_start_time IS NOT NULL "
            "AND daily_checkin_end_time IS NOT NULL AND daily_checkin_end_time > daily_checkin_start_time)",
            name="check_daily_checkin_times",
        ),
        CheckConstraint(
            "effective_date IS NULL OR expiry_date IS NULL OR expiry_date >= effective_date",
            name="ck_worker_schedules_recurring_range",
        ),
        Index(
            "worker_schedules_unique_single_date",
            "worker_id",
            "scheduled_date",
            "start_time",
            unique=True,
            sqlite_where=text("scheduled_date IS NOT NULL AND day_of_week IS NULL"),
            postgresql_where=text("scheduled_date IS NOT NULL AND day_of_week IS NULL"),
        ),
        Index(
            "worker_schedules_unique_recurring",
            "worker_id",
            "day_of_week",
            "start_time",
            unique=True,
            sqlite_where=text("day_of_week IS NOT NULL AND scheduled_date IS NULL"),
            postgresql_where=text("day_of_week IS NOT NULL AND scheduled_date IS NULL"),
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    worker_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    team_id: Mapped[int] = mapped_column(ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True)
    scheduled_date: Mapped[date | None] = mapped_column(Date, nullable=True, index=True)
    day_of_week: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    effective_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    expiry_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    end_time: Mapped[time] = mapped_column(Time, nullable=False)
    requires_daily_checkin: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    daily_checkin_start_time: Mapped[time | None] = mapped_column(Time, nullable=True)
    daily_checkin_end_time: Mapped[time | None] = mapped_column(Time, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    approved_by: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    @property
    def kind(self) -> str:
        return "single_date" if self.scheduled_date is not None else "recurring"


class DailyCheckin(Base):
    __tablename__ = "daily_checkins"
    __table_args__ = (
        UniqueConstraint("user_id", "check_in_date", name="uq_daily_checkins_user_date"),
        CheckConstraint("pain_level >= 0 AND pain_level <= 10", name="ck_daily_checkins_pain"),
        CheckConstraint("fatigue_level >= 0 AND fatigue_level <= 10", name="ck_daily_checkins_fatigue"),
        CheckConstraint("sleep_quality >= 0 AND sleep_quality <= 12", name="ck_daily_checkins_sleep"),
        CheckConstraint("stress_level >= 0 AND stress_level <= 10", name="ck_daily_checkins_stress"),
        CheckConstraint("predicted_readiness IN ('Green', 'Yellow', 'Red')", name="ck_daily_checkins_readiness"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    team_id: Mapped[int | None] = mapped_column(ForeignKey("teams.id", ondelete="SET NULL"), nullable=True, index=True)
    pain_level: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    fatigue_level: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    sleep_quality: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    stress_level: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    additional_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    predicted_readiness: Mapped[str] = mapped_column(String(10), nullable=False)
    check_in_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)


class WarmUp(Base):
    __tablename__ = "warm_ups"
    __table_args__ = (
        UniqueConstraint("user_id", "warm_up_date", name="uq_warm_ups_user_date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    team_id: Mapped[int | None] = mapped_column(ForeignKey("teams.id", ondelete="SET NULL"), nullable=True, index=True)
    completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    warm_up_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)


class Incident(Base):
    __tablename__ = "incidents"
    __table_args__ = (
        CheckConstraint("incident_type IN ('incident', 'near_miss')", name="ck_incidents_type"),
        CheckConstraint("severity IN ('low', 'medium', 'high', 'critical')", name="ck_incidents_severity"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    team_id: Mapped[int | None] = mapped_column(ForeignKey("teams.id", ondelete="SET NULL"), nullable=True, index=True)
    exception_id: Mapped[int | None] = mapped_column(
        ForeignKey("worker_exceptions.id", ondelete="SET NULL"), nullable=True, index=True
    )
    incident_type: Mapped[str] = mapped_column(String(20), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    severity: Mapped[str] = mapped_column(String(20), nullable=False, default="medium")
    incident_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)


class Notification(Base):
    __tablename__ = "notifications"
    __table_args__ = (
        CheckConstraint(_in_clause("type", NOTIFICATION_TYPES), name="notifications_type_check"),
        Index("idx_notifications_user_type", "user_id", "type"),
        Index("idx_notifications_user_unread", "user_id", "is_read"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    data: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class Appointment(Base):
    # appointment_date_not_past depends on CURRENT_DATE, which SQLite refuses in a
    # CHECK; it is created by the Postgres migration and enforced in the service layer.
    __tablename__ = "appointments"
    __table_args__ = (
        CheckConstraint(_in_clause("status", APPOINTMENT_STATUSES), name="ck_appointments_status"),
        CheckConstraint(_in_clause("appointment_type", APPOINTMENT_TYPES), name="ck_appointments_type"),
        CheckConstraint("duration_minutes > 0 AND duration_minutes <= 480", name="ck_appointments_duration"),
        Index("idx_appointments_date_time", "appointment_date", "appointment_time"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    case_id: Mapped[int] = mapped_column(ForeignKey("worker_exceptions.id", ondelete="CASCADE"), nullable=False, index=True)
    clinician_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    worker_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    appointment_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    appointment_time: Mapped[time] = mapped_column(Time, nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=30)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending", index=True)
    appointment_type: Mapped[str] = mapped_column(String(50), nullable=False, default="consultation")
    location: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)


class RehabilitationPlan(Base):
    __tablename__ = "rehabilitation_plans"
    __table_args__ = (
        CheckConstraint(_in_clause("status", PLAN_STATUSES), name="ck_rehabilitation_plans_status"),
        CheckConstraint("end_date >= start_date", name="end_date_after_start_date"),
        Index("idx_rehabilitation_plans_dates", "start_date", "end_date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    exception_id: Mapped[int] = mapped_column(
        ForeignKey("worker_exceptions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    clinician_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    plan_name: Mapped[str] = mapped_column(String(255), nullable=False, default="Recovery Plan")
    plan_description: Mapped[str | None] = mapped_column(Text, nullable=True, default="Daily recovery exercises and activities")
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active", index=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    exception = relationship("WorkerException", back_populates="rehabilitation_plans")
    exercises = relationship(
        "RehabilitationExercise",
        back_populates="plan",
        cascade="all, delete-orphan",
        order_by="RehabilitationExercise.exercise_order",
    )

    @property
    def duration_days(self) -> int:
        return (self.end_date - self.start_date).days + 1


class RehabilitationExercise(Base):
    __tablename__ = "rehabilitation_exercises"
    __table_args__ = (
        CheckConstraint("length(trim(exercise_name)) > 0", name="exercise_name_not_empty"),
        Index("idx_rehabilitation_exercises_order", "plan_id", "exercise_order"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    plan_id: Mapped[int] = mapped_column(ForeignKey("rehabilitation_plans.id", ondelete="CASCADE"), nullable=False, index=True)
    exercise_name: Mapped[str] = mapped_column(String(255), nullable=False)
    repetitions: Mapped[str | None] = mapped_column(String(100), nullable=True)
    instructions: Mapped[str | None] = mapped_column(Text, nullable=True)
    video_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    exercise_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    plan = relationship("RehabilitationPlan", back_populates="exercises")


class RehabilitationPlanCompletion(Base):
    __tablename__ = "rehabilitation_plan_completions"
    __table_args__ = (
        UniqueConstraint("plan_id", "exercise_id", "user_id", "completion_date", name="uq_rehabilitation_plan_completions"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    plan_id: Mapped[int] = mapped_column(ForeignKey("rehabilitation_plans.id", ondelete="CASCADE"), nullable=False, index=True)
    exercise_id: Mapped[int] = mapped_column(
        ForeignKey("rehabilitation_exercises.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    completion_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)


class Transcription(Base):
    __tablename__ = "transcriptions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    clinician_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    transcription_text: Mapped[str] = mapped_column(Text, nullable=False)
    analysis: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    recording_duration_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)
    estimated_cost: Mapped[Decimal | None] = mapped_column(Numeric(10, 6), nullable=True)
    audio_file_size_bytes: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
