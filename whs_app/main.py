from __future__ import annotations

import logging
import os
from collections import defaultdict
from contextlib import contextmanager
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Annotated, Any, Literal

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request, status
from fastapi.responses import Response
from pydantic import BaseModel, Field
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from whs_app import cases, notifications
from whs_app.case_status import (
    STATUS_ORDER,
    CaseStatusError,
    approval_from_notes,
    blocks_new_report,
    case_number,
    case_priority,
    derive_case_status,
    display_label,
)
from whs_app.db import get_db
from whs_app.jobs import deactivate_expired_exceptions
from whs_app.models import (
    APPOINTMENT_TERMINAL_STATUSES,
    Appointment,
    DailyCheckin,
    Incident,
    LoginLog,
    Notification,
    RehabilitationExercise,
    RehabilitationPlan,
    RehabilitationPlanCompletion,
    SessionRecord,
    Team,
    TeamMember,
    Transcription,
    User,
    WarmUp,
    WorkerException,
    WorkerSchedule,
)
from whs_app.policy import can_access_case, can_access_team, is_allowed, led_team_ids, member_team
from whs_app.schedules import (
    Recurring,
    ScheduleValidationError,
    SingleDate,
    apply_kind,
    schedules_due_on,
    validate_schedule,
)
from whs_app.security import hash_password, new_session_token, password_is_strong, verify_password

logger = logging.getLogger(__name__)

app = FastAPI(title="WHS Case Tracker")

SESSION_COOKIE_NAME = "session_id"
SESSION_MAX_AGE_SECONDS = 14 * 24 * 60 * 60
MAX_PLAN_DURATION_DAYS = 365


@app.middleware("http")
async def disable_cache_for_auth_and_api(request: Request, call_next):
    response = await call_next(request)
    path = request.url.path
    if path.startswith("/api/") or path.startswith("/auth/"):
        response.headers["Cache-Control"] = "no-store, no-cache, max-age=0, must-revalidate"
        response.headers["Pragma"] = "no-cache"
    return response


Role = Literal["worker", "supervisor", "whs_control_center", "executive", "clinician", "team_leader", "admin"]
ExceptionType = Literal["transfer", "accident", "injury", "medical_leave", "other"]
Severity = Literal["low", "medium", "high", "critical"]
Readiness = Literal["Green", "Yellow", "Red"]
PlanStatus = Literal["active", "completed", "cancelled"]
AppointmentStatus = Literal["pending", "confirmed", "completed", "cancelled", "declined"]
AppointmentType = Literal["consultation", "follow_up", "assessment", "review", "other"]
NotificationType = Literal[
    "incident_assigned", "case_updated", "case_closed", "system", "worker_not_fit_to_work", "case_assigned_to_clinician"
]


class AuthPayload(BaseModel):
    email: str
    password: str


class UserCreatePayload(BaseModel):
    email: str
    temporary_password: str
    role: Role = "worker"
    first_name: str | None = None
    last_name: str | None = None
    full_name: str | None = None


class UserPatchPayload(BaseModel):
    role: Role | None = None
    temporary_password: str | None = None
    is_active: bool | None = None


class UserOut(BaseModel):
    id: int
    email: str
    role: Role
    display_name: str
    first_name: str | None = None
    last_name: str | None = None
    is_active: bool
    created_at: datetime

    @classmethod
    def from_orm_user(cls, user: User) -> "UserOut":
        return cls(
            id=user.id,
            email=user.email,
            role=user.role,
            display_name=user.display_name,
            first_name=user.first_name,
            last_name=user.last_name,
            is_active=user.is_active,
            created_at=user.created_at,
        )


class LoginLogOut(BaseModel):
    id: int
    user_id: int
    email: str
    role: str
    login_at: datetime
    ip_address: str | None = None
    user_agent: str | None = None


class TeamCreatePayload(BaseModel):
    name: str = Field(min_length=1)
    site_location: str | None = None
    team_leader_id: int
    supervisor_id: int | None = None


class TeamMemberPayload(BaseModel):
    user_id: int
    phone: str | None = None
    compliance_percentage: int = Field(default=100, ge=0, le=100)


class TeamOut(BaseModel):
    id: int
    name: str
    site_location: str | None = None
    team_leader_id: int
    supervisor_id: int | None = None
    member_ids: list[int] = Field(default_factory=list)


class TeamMemberPatchPayload(BaseModel):
    first_name: str | None = None
    last_name: str | None = None
    phone: str | None = Field(default=None, max_length=20)
    compliance_percentage: int | None = Field(default=None, ge=0, le=100)


class TeamMemberOut(BaseModel):
    id: int
    team_id: int
    user_id: int
    email: str
    first_name: str | None = None
    last_name: str | None = None
    worker_name: str
    phone: str | None = None
    compliance_percentage: int


class WorkerIncidentPayload(BaseModel):
    incident_type: Literal["incident", "near_miss"]
    description: str = Field(min_length=1)
    location: str = Field(min_length=1)
    severity: Severity = "medium"
    incident_date: date


class SupervisorIncidentPayload(BaseModel):
    worker_id: int
    team_id: int
    exception_type: ExceptionType
    reason: str | None = None
    start_date: date
    end_date: date | None = None


class CanReportOut(BaseModel):
    can_report: bool
    reason: str | None = None
    has_active_case: bool
    exception_type: str | None = None
    start_date: date | None = None


class CaseOut(BaseModel):
    id: int
    case_number: str
    worker_id: int
    worker_name: str
    worker_email: str
    team_id: int
    team_name: str
    type: ExceptionType
    reason: str | None = None
    start_date: date
    end_date: date | None = None
    is_active: bool
    assigned_to_whs: bool
    clinician_id: int | None = None
    case_status: str
    status_label: str
    priority: Literal["HIGH", "MEDIUM", "LOW"]
    is_in_rehab: bool
    approved_by: str | None = None
    approved_at: str | None = None
    deactivated_at: datetime | None = None
    return_to_work_duty_type: str | None = None
    return_to_work_date: date | None = None
    notes: str | None = None
    created_at: datetime
    updated_at: datetime


class CaseStatusPayload(BaseModel):
    status: str


class CaseTransitionOut(BaseModel):
    case: CaseOut
    previous_status: str
    reactivated_schedules: int


class CaseCloseOut(BaseModel):
    ok: bool
    case_status: str
    reactivated_schedules: int


class MemberExceptionPayload(BaseModel):
    exception_type: ExceptionType
    reason: str | None = None
    start_date: date
    end_date: date | None = None
    transfer_to_team_id: int | None = None


class MemberExceptionOut(BaseModel):
    exception: CaseOut | None = None
    transferred: bool = False


class AssignClinicianPayload(BaseModel):
    clinician_id: int


class ReturnToWorkPayload(BaseModel):
    duty_type: Literal["full", "modified"]
    return_date: date


class SingleDatePattern(BaseModel):
    kind: Literal["single_date"]
    scheduled_date: date


class RecurringPattern(BaseModel):
    kind: Literal["recurring"]
    day_of_week: int = Field(ge=0, le=6)
    effective_date: date | None = None
    expiry_date: date | None = None


class SchedulePayload(BaseModel):
    worker_id: int
    team_id: int
    pattern: Annotated[SingleDatePattern | RecurringPattern, Field(discriminator="kind")]
    start_time: time
    end_time: time
    requires_daily_checkin: bool = False
    daily_checkin_start_time: time | None = None
    daily_checkin_end_time: time | None = None
    notes: str | None = None


class SchedulePatchPayload(BaseModel):
    is_active: bool


class ScheduleOut(BaseModel):
    id: int
    worker_id: int
    team_id: int
    kind: Literal["single_date", "recurring"]
    scheduled_date: date | None = None
    day_of_week: int | None = None
    effective_date: date | None = None
    expiry_date: date | None = None
    start_time: time
    end_time: time
    requires_daily_checkin: bool
    daily_checkin_start_time: time | None = None
    daily_checkin_end_time: time | None = None
    is_active: bool


class CheckinPayload(BaseModel):
    pain_level: int = Field(default=0, ge=0, le=10)
    fatigue_level: int = Field(default=0, ge=0, le=10)
    sleep_quality: int = Field(default=0, ge=0, le=12)
    stress_level: int = Field(default=0, ge=0, le=10)
    additional_notes: str | None = None
    predicted_readiness: Readiness


class CheckinOut(BaseModel):
    id: int
    user_id: int
    team_id: int | None = None
    check_in_date: date
    predicted_readiness: Readiness
    pain_level: int
    fatigue_level: int
    sleep_quality: int
    stress_level: int


class WarmUpPayload(BaseModel):
    completed: bool = True


class WarmUpOut(BaseModel):
    id: int
    warm_up_date: date
    completed: bool


class ExercisePayload(BaseModel):
    exercise_name: str
    repetitions: str | None = None
    instructions: str | None = None
    video_url: str | None = None


class PlanCreatePayload(BaseModel):
    exception_id: int
    plan_name: str = "Recovery Plan"
    plan_description: str | None = None
    start_date: date | None = None
    duration_days: int
    exercises: list[ExercisePayload] = Field(default_factory=list)


class PlanPatchPayload(BaseModel):
    status: PlanStatus | None = None
    start_date: date | None = None
    duration_days: int | None = None


class ExerciseOut(BaseModel):
    id: int
    exercise_name: str
    repetitions: str | None = None
    instructions: str | None = None
    video_url: str | None = None
    exercise_order: int


class PlanOut(BaseModel):
    id: int
    exception_id: int
    clinician_id: int | None = None
    plan_name: str
    plan_description: str | None = None
    start_date: date
    end_date: date
    duration: int
    status: PlanStatus
    exercises: list[ExerciseOut]


class PlanProgressOut(BaseModel):
    plan_id: int
    duration: int
    current_day: int
    days_completed: int
    progress: int
    completed_dates: list[date]


class CompletionOut(BaseModel):
    id: int
    plan_id: int
    exercise_id: int
    completion_date: date


class AppointmentCreatePayload(BaseModel):
    case_id: int
    appointment_date: date
    appointment_time: time
    duration_minutes: int = Field(default=30, ge=1, le=480)
    appointment_type: AppointmentType = "consultation"
    status: AppointmentStatus = "pending"
    location: str | None = None
    notes: str | None = None


class AppointmentStatusPayload(BaseModel):
    status: AppointmentStatus
    cancellation_reason: str | None = None


class AppointmentOut(BaseModel):
    id: int
    case_id: int
    clinician_id: int
    worker_id: int
    appointment_date: date
    appointment_time: time
    duration_minutes: int
    status: AppointmentStatus
    appointment_type: AppointmentType
    location: str | None = None
    notes: str | None = None
    cancellation_reason: str | None = None


class NotificationOut(BaseModel):
    id: int
    type: NotificationType
    title: str
    message: str
    data: dict[str, Any] | None = None
    is_read: bool
    created_at: datetime
    read_at: datetime | None = None


class TranscriptionPayload(BaseModel):
    transcription_text: str = Field(min_length=1)
    analysis: dict[str, Any] | None = None
    recording_duration_seconds: int | None = Field(default=None, ge=0)
    estimated_cost: Decimal | None = None
    audio_file_size_bytes: int | None = Field(default=None, ge=0)


class TranscriptionOut(BaseModel):
    id: int
    transcription_text: str
    analysis: dict[str, Any] | None = None
    recording_duration_seconds: int | None = None
    created_at: datetime


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_email(email: str) -> str:
    return email.strip().lower()


def ensure_password_strength(password: str) -> None:
    if not password_is_strong(password):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Password must be at least 10 characters")


def ensure_valid_email(email: str) -> str:
    normalized = normalize_email(email)
    if "@" not in normalized or normalized.startswith("@") or normalized.endswith("@"):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="A valid email is required")
    return normalized


def request_is_https(request: Request) -> bool:
    forwarded_proto = request.headers.get("x-forwarded-proto", "")
    if forwarded_proto:
        first_proto = forwarded_proto.split(",")[0].strip().lower()
        if first_proto:
            return first_proto == "https"
    return request.url.scheme == "https"


def set_session_cookie(response: Response, request: Request, session_id: str) -> None:
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=session_id,
        max_age=SESSION_MAX_AGE_SECONDS,
        httponly=True,
        samesite="lax",
        secure=request_is_https(request),
        path="/",
    )


def clear_session_cookie(response: Response, request: Request) -> None:
    response.delete_cookie(
        key=SESSION_COOKIE_NAME,
        httponly=True,
        samesite="lax",
        secure=request_is_https(request),
        path="/",
    )


def create_session(db: Session, user_id: int) -> str:
    while True:
        session_id = new_session_token()
        if db.get(SessionRecord, session_id) is None:
            break
    db.add(SessionRecord(session_id=session_id, user_id=user_id, expires_at=utcnow() + timedelta(days=14)))
    db.commit()
    return session_id


def delete_session_if_exists(db: Session, session_id: str) -> None:
    session = db.get(SessionRecord, session_id)
    if session is not None:
        db.delete(session)
        db.commit()


def get_session_user(db: Session, session_id: str | None) -> User | None:
    if not session_id:
        return None
    session = db.get(SessionRecord, session_id)
    if session is None:
        return None
    expires_at = session.expires_at
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    if expires_at <= utcnow():
        db.delete(session)
        db.commit()
        return None
    user = db.get(User, session.user_id)
    if user is None or not user.is_active:
        db.delete(session)
        db.commit()
        return None
    return user


def get_current_user(request: Request, db: Session = Depends(get_db)) -> User:
    user = get_session_user(db, request.cookies.get(SESSION_COOKIE_NAME))
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
    return user


def require(action: str):
    def dependency(current_user: User = Depends(get_current_user)) -> User:
        if not is_allowed(current_user.role, action):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You do not have permission to perform this action")
        return current_user

    return dependency


@contextmanager
def conflict_on_integrity_error(db: Session, detail: str):
    """Commit the unit of work; a uniqueness/check race reported by the database becomes a 409."""
    try:
        yield
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        logger.info("Integrity conflict: %s (%s)", detail, exc.orig)
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=detail) from exc


def ensure_active_admin_remains(db: Session, target_user: User, patch: UserPatchPayload) -> None:
    next_role = patch.role if patch.role is not None else target_user.role
    next_is_active = patch.is_active if patch.is_active is not None else target_user.is_active
    if target_user.role != "admin" or target_user.is_active is False:
        return
    if next_role == "admin" and next_is_active:
        return
    active_admin_count = db.scalar(select(func.count(User.id)).where(User.role == "admin", User.is_active.is_(True))) or 0
    if active_admin_count <= 1:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="At least one active admin must remain")


def appointment_date_allowed(appointment_date: date, appointment_status: str, today: date) -> bool:
    return appointment_date >= today or appointment_status in APPOINTMENT_TERMINAL_STATUSES


def ensure_appointment_date_allowed(appointment_date: date, appointment_status: str) -> None:
    if not appointment_date_allowed(appointment_date, appointment_status, date.today()):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Appointment date cannot be in the past")


def serialize_team(team: Team) -> TeamOut:
    return TeamOut(
        id=team.id,
        name=team.name,
        site_location=team.site_location,
        team_leader_id=team.team_leader_id,
        supervisor_id=team.supervisor_id,
        member_ids=sorted(member.user_id for member in team.members),
    )


def serialize_team_member(member: TeamMember, worker: User) -> TeamMemberOut:
    return TeamMemberOut(
        id=member.id,
        team_id=member.team_id,
        user_id=member.user_id,
        email=worker.email,
        first_name=worker.first_name,
        last_name=worker.last_name,
        worker_name=worker.display_name,
        phone=member.phone,
        compliance_percentage=member.compliance_percentage,
    )


def serialize_case(exception: WorkerException, worker: User | None, team: Team | None, in_rehab: bool) -> CaseOut:
    case_status = derive_case_status(
        exception.notes,
        is_active=exception.is_active,
        assigned_to_whs=exception.assigned_to_whs,
        has_active_plan=in_rehab,
    )
    approved_by, approved_at = approval_from_notes(exception.notes)
    return CaseOut(
        id=exception.id,
        case_number=case_number(exception.id, exception.created_at),
        worker_id=exception.user_id,
        worker_name=worker.display_name if worker else "Unknown User",
        worker_email=worker.email if worker else "",
        team_id=exception.team_id,
        team_name=team.name if team else "",
        type=exception.exception_type,
        reason=exception.reason,
        start_date=exception.start_date,
        end_date=exception.end_date,
        is_active=exception.is_active,
        assigned_to_whs=exception.assigned_to_whs,
        clinician_id=exception.clinician_id,
        case_status=case_status,
        status_label=display_label(case_status),
        priority=case_priority(exception.exception_type),
        is_in_rehab=in_rehab,
        approved_by=approved_by,
        approved_at=approved_at,
        deactivated_at=exception.deactivated_at,
        return_to_work_duty_type=exception.return_to_work_duty_type,
        return_to_work_date=exception.return_to_work_date,
        notes=exception.notes,
        created_at=exception.created_at,
        updated_at=exception.updated_at,
    )


def serialize_cases(db: Session, exceptions: list[WorkerException]) -> list[CaseOut]:
    if not exceptions:
        return []
    in_rehab = cases.active_plan_exception_ids(db, [e.id for e in exceptions])
    users = {u.id: u for u in db.scalars(select(User).where(User.id.in_({e.user_id for e in exceptions})))}
    teams = {t.id: t for t in db.scalars(select(Team).where(Team.id.in_({e.team_id for e in exceptions})))}
    return [serialize_case(e, users.get(e.user_id), teams.get(e.team_id), e.id in in_rehab) for e in exceptions]


def filter_cases(items: list[CaseOut], status_filter: str) -> list[CaseOut]:
    if status_filter == "all":
        return items
    if status_filter == "active":
        return [item for item in items if item.is_active and item.case_status != "closed"]
    if status_filter == "closed":
        return [item for item in items if not item.is_active or item.case_status == "closed"]
    if status_filter in STATUS_ORDER:
        return [item for item in items if item.case_status == status_filter]
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid status filter")


def serialize_schedule(schedule: WorkerSchedule) -> ScheduleOut:
    return ScheduleOut(
        id=schedule.id,
        worker_id=schedule.worker_id,
        team_id=schedule.team_id,
        kind=schedule.kind,
        scheduled_date=schedule.scheduled_date,
        day_of_week=schedule.day_of_week,
        effective_date=schedule.effective_date,
        expiry_date=schedule.expiry_date,
        start_time=schedule.start_time,
        end_time=schedule.end_time,
        requires_daily_checkin=schedule.requires_daily_checkin,
        daily_checkin_start_time=schedule.daily_checkin_start_time,
        daily_checkin_end_time=schedule.daily_checkin_end_time,
        is_active=schedule.is_active,
    )


def serialize_plan(plan: RehabilitationPlan) -> PlanOut:
    return PlanOut(
        id=plan.id,
        exception_id=plan.exception_id,
        clinician_id=plan.clinician_id,
        plan_name=plan.plan_name,
        plan_description=plan.plan_description,
        start_date=plan.start_date,
        end_date=plan.end_date,
        duration=plan.duration_days,
        status=plan.status,
        exercises=[
            ExerciseOut(
                id=exercise.id,
                exercise_name=exercise.exercise_name,
                repetitions=exercise.repetitions,
                instructions=exercise.instructions,
                video_url=exercise.video_url,
                exercise_order=exercise.exercise_order,
            )
            for exercise in plan.exercises
        ],
    )


def serialize_appointment(appointment: Appointment) -> AppointmentOut:
    return AppointmentOut(
        id=appointment.id,
        case_id=appointment.case_id,
        clinician_id=appointment.clinician_id,
        worker_id=appointment.worker_id,
        appointment_date=appointment.appointment_date,
        appointment_time=appointment.appointment_time,
        duration_minutes=appointment.duration_minutes,
        status=appointment.status,
        appointment_type=appointment.appointment_type,
        location=appointment.location,
        notes=appointment.notes,
        cancellation_reason=appointment.cancellation_reason,
    )


def serialize_notification(notification: Notification) -> NotificationOut:
    return NotificationOut(
        id=notification.id,
        type=notification.type,
        title=notification.title,
        message=notification.message,
        data=notification.data,
        is_read=notification.is_read,
        created_at=notification.created_at,
        read_at=notification.read_at,
    )


def get_case_or_404(db: Session, case_id: int, user: User) -> WorkerException:
    exception = db.get(WorkerException, case_id)
    if exception is None or not can_access_case(db, user, exception):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Case not found")
    return exception


def get_member_or_404(db: Session, member_id: int, user: User) -> TeamMember:
    member = db.get(TeamMember, member_id)
    if member is None or not can_access_team(db, user, member.team_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Team member not found")
    return member


def get_plan_or_404(db: Session, plan_id: int, user: User) -> RehabilitationPlan:
    plan = db.get(RehabilitationPlan, plan_id)
    if plan is None or not can_access_case(db, user, plan.exception):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Rehabilitation plan not found")
    return plan


def ensure_plan_duration(duration_days: int) -> None:
    if duration_days < 1 or duration_days > MAX_PLAN_DURATION_DAYS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Duration must be between 1 and {MAX_PLAN_DURATION_DAYS} days",
        )


def plan_progress(plan: RehabilitationPlan, completions: list[RehabilitationPlanCompletion], today: date) -> PlanProgressOut:
    duration = plan.duration_days
    exercise_ids = {exercise.id for exercise in plan.exercises}
    done_by_day: dict[date, set[int]] = defaultdict(set)
    for completion in completions:
        if plan.start_date <= completion.completion_date <= plan.end_date:
            done_by_day[completion.completion_date].add(completion.exercise_id)
    completed_dates = sorted(day for day, done in done_by_day.items() if exercise_ids and exercise_ids <= done)
    current_day = max(0, min(duration, (today - plan.start_date).days + 1))
    return PlanProgressOut(
        plan_id=plan.id,
        duration=duration,
        current_day=current_day,
        days_completed=len(completed_dates),
        progress=round(len(completed_dates) / duration * 100),
        completed_dates=completed_dates,
    )


@app.get("/auth/bootstrap/status")
def auth_bootstrap_status(db: Session = Depends(get_db)) -> dict[str, bool]:
    if not os.getenv("BOOTSTRAP_TOKEN", ""):
        return {"enabled": False}
    existing_users = db.scalar(select(func.count(User.id))) or 0
    return {"enabled": existing_users == 0}


@app.post("/auth/bootstrap", response_model=UserOut, status_code=status.HTTP_201_CREATED)
def auth_bootstrap(
    payload: AuthPayload,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    bootstrap_token: str | None = Header(default=None, alias="X-Bootstrap-Token"),
) -> UserOut:
    configured_token = os.getenv("BOOTSTRAP_TOKEN", "")
    if not configured_token:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Bootstrap token is not configured")
    if bootstrap_token != configured_token:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid bootstrap token")
    existing_users = db.scalar(select(func.count(User.id))) or 0
    if existing_users > 0:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Bootstrap is only allowed before the first user exists")
    email = ensure_valid_email(payload.email)
    ensure_password_strength(payload.password)
    user = User(email=email, password_hash=hash_password(payload.password), role="admin", is_active=True)
    db.add(user)
    db.commit()
    db.refresh(user)
    session_id = create_session(db, user.id)
    set_session_cookie(response, request, session_id)
    return UserOut.from_orm_user(user)


@app.post("/auth/login", response_model=UserOut)
def auth_login(
    payload: AuthPayload,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
) -> UserOut:
    email = ensure_valid_email(payload.email)
    user = db.scalar(select(User).where(User.email == email))
    if user is None or not verify_password(payload.password, user.password_hash):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid email or password")
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User account is disabled")
    db.add(
        LoginLog(
            user_id=user.id,
            email=user.email,
            role=user.role,
            ip_address=request.client.host if request.client else None,
            user_agent=request.headers.get("user-agent"),
        )
    )
    session_id = create_session(db, user.id)
    set_session_cookie(response, request, session_id)
    return UserOut.from_orm_user(user)


@app.post("/auth/logout")
def auth_logout(request: Request, response: Response, db: Session = Depends(get_db)) -> dict[str, bool]:
    session_id = request.cookies.get(SESSION_COOKIE_NAME)
    if session_id:
        delete_session_if_exists(db, session_id)
    clear_session_cookie(response, request)
    return {"ok": True}


@app.get("/auth/me", response_model=UserOut)
def auth_me(current_user: User = Depends(get_current_user)) -> UserOut:
    return UserOut.from_orm_user(current_user)


@app.get("/api/admin/users", response_model=list[UserOut])
def admin_list_users(
    _: User = Depends(require("users.manage")),
    db: Session = Depends(get_db),
) -> list[UserOut]:
    users = db.scalars(select(User).order_by(User.created_at.asc(), User.id.asc())).all()
    return [UserOut.from_orm_user(user) for user in users]


@app.post("/api/admin/users", response_model=UserOut, status_code=status.HTTP_201_CREATED)
def admin_create_user(
    payload: UserCreatePayload,
    current_user: User = Depends(require("users.manage")),
    db: Session = Depends(get_db),
) -> UserOut:
    if payload.role == "admin" and current_user.role != "admin":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only admins can create admin users")
    email = ensure_valid_email(payload.email)
    ensure_password_strength(payload.temporary_password)
    existing = db.scalar(select(User).where(User.email == email))
    if existing is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="User already exists")
    user = User(
        email=email,
        password_hash=hash_password(payload.temporary_password),
        role=payload.role,
        first_name=payload.first_name,
        last_name=payload.last_name,
        full_name=payload.full_name,
        is_active=True,
    )
    db.add(user)
    with conflict_on_integrity_error(db, "User already exists"):
        db.flush()
    db.refresh(user)
    return UserOut.from_orm_user(user)


@app.patch("/api/admin/users/{user_id}", response_model=UserOut)
def admin_patch_user(
    user_id: int,
    payload: UserPatchPayload,
    current_user: User = Depends(require("users.manage")),
    db: Session = Depends(get_db),
) -> UserOut:
    user = db.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    if payload.role is None and payload.temporary_password is None and payload.is_active is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No updates were provided")
    if (payload.role == "admin" or user.role == "admin") and current_user.role != "admin":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only admins can manage admin users")
    ensure_active_admin_remains(db, user, payload)
    if payload.role is not None:
        user.role = payload.role
    if payload.is_active is not None:
        user.is_active = payload.is_active
    if payload.temporary_password:
        ensure_password_strength(payload.temporary_password)
        user.password_hash = hash_password(payload.temporary_password)
    db.commit()
    db.refresh(user)
    return UserOut.from_orm_user(user)


@app.get("/api/admin/login-logs", response_model=list[LoginLogOut])
def admin_login_logs(
    limit: int = Query(default=100, ge=1, le=500),
    _: User = Depends(require("login_logs.view")),
    db: Session = Depends(get_db),
) -> list[LoginLogOut]:
    rows = db.scalars(select(LoginLog).order_by(LoginLog.login_at.desc(), LoginLog.id.desc()).limit(limit)).all()
    return [
        LoginLogOut(
            id=row.id,
            user_id=row.user_id,
            email=row.email,
            role=row.role,
            login_at=row.login_at,
            ip_address=row.ip_address,
            user_agent=row.user_agent,
        )
        for row in rows
    ]


@app.post("/api/admin/jobs/deactivate-expired-exceptions")
def run_deactivate_expired_exceptions(
    _: User = Depends(require("jobs.run")),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    closed_ids = deactivate_expired_exceptions(db)
    return {"ok": True, "deactivated": len(closed_ids), "exception_ids": closed_ids}


@app.post("/api/teams", response_model=TeamOut, status_code=status.HTTP_201_CREATED)
def create_team(
    payload: TeamCreatePayload,
    _: User = Depends(require("teams.manage")),
    db: Session = Depends(get_db),
) -> TeamOut:
    leader = db.get(User, payload.team_leader_id)
    if leader is None or leader.role != "team_leader":
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="team_leader_id must reference a team leader")
    if payload.supervisor_id is not None:
        supervisor = db.get(User, payload.supervisor_id)
        if supervisor is None or supervisor.role != "supervisor":
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="supervisor_id must reference a supervisor")
    team = Team(
        name=payload.name.strip(),
        site_location=payload.site_location,
        team_leader_id=payload.team_leader_id,
        supervisor_id=payload.supervisor_id,
    )
    db.add(team)
    with conflict_on_integrity_error(db, "Team leader already leads a team"):
        db.flush()
    db.refresh(team)
    return serialize_team(team)


@app.get("/api/teams", response_model=list[TeamOut])
def list_teams(
    current_user: User = Depends(require("teams.view")),
    db: Session = Depends(get_db),
) -> list[TeamOut]:
    query = select(Team).order_by(Team.id)
    if current_user.role in {"team_leader", "supervisor"}:
        query = query.where(Team.id.in_(led_team_ids(db, current_user)))
    return [serialize_team(team) for team in db.scalars(query).all()]


@app.post("/api/teams/{team_id}/members", response_model=TeamOut, status_code=status.HTTP_201_CREATED)
def add_team_member(
    team_id: int,
    payload: TeamMemberPayload,
    current_user: User = Depends(require("teams.manage")),
    db: Session = Depends(get_db),
) -> TeamOut:
    team = db.get(Team, team_id)
    if team is None or not can_access_team(db, current_user, team_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Team not found")
    member = db.get(User, payload.user_id)
    if member is None or member.role != "worker":
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Only workers can be added as team members")
    db.add(
        TeamMember(
            team_id=team_id,
            user_id=payload.user_id,
            phone=payload.phone,
            compliance_percentage=payload.compliance_percentage,
        )
    )
    with conflict_on_integrity_error(db, "Worker is already a member of this team"):
        db.flush()
    db.refresh(team)
    return serialize_team(team)


@app.patch("/api/teams/members/{member_id}", response_model=TeamMemberOut)
def update_team_member(
    member_id: int,
    payload: TeamMemberPatchPayload,
    current_user: User = Depends(require("team_members.manage")),
    db: Session = Depends(get_db),
) -> TeamMemberOut:
    member = get_member_or_404(db, member_id, current_user)
    worker = db.get(User, member.user_id)
    updates = payload.model_dump(exclude_unset=True)
    if not updates:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No updates were provided")
    # Role and email are not editable here.
    for field in ("first_name", "last_name"):
        if field in updates:
            value = (updates[field] or "").strip()
            if not value:
                raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"{field} cannot be empty")
            setattr(worker, field, value)
    if "phone" in updates:
        member.phone = (updates["phone"] or "").strip() or None
    if updates.get("compliance_percentage") is not None:
        member.compliance_percentage = updates["compliance_percentage"]
    db.commit()
    return serialize_team_member(member, worker)


@app.delete("/api/teams/members/{member_id}")
def remove_team_member(
    member_id: int,
    current_user: User = Depends(require("team_members.manage")),
    db: Session = Depends(get_db),
) -> dict[str, bool]:
    member = get_member_or_404(db, member_id, current_user)
    logger.info("User %s removed worker %s from team %s", current_user.id, member.user_id, member.team_id)
    db.delete(member)
    db.commit()
    return {"ok": True}


@app.get("/api/teams/members/{member_id}/exception", response_model=MemberExceptionOut)
def get_member_exception(
    member_id: int,
    current_user: User = Depends(require("exceptions.manage")),
    db: Session = Depends(get_db),
) -> MemberExceptionOut:
    member = get_member_or_404(db, member_id, current_user)
    existing = cases.active_exception_for(db, member.user_id)
    if existing is None:
        return MemberExceptionOut()
    return MemberExceptionOut(exception=serialize_cases(db, [existing])[0])


@app.post("/api/teams/members/{member_id}/exception", response_model=MemberExceptionOut)
def save_member_exception(
    member_id: int,
    payload: MemberExceptionPayload,
    current_user: User = Depends(require("exceptions.manage")),
    db: Session = Depends(get_db),
) -> MemberExceptionOut:
    """Create the worker's exception, or update the one that is still open.

    A ``transfer`` with ``transfer_to_team_id`` also moves the worker to that team.
    """
    member = get_member_or_404(db, member_id, current_user)
    target_team = None
    if payload.exception_type == "transfer" and payload.transfer_to_team_id is not None:
        target_team = db.get(Team, payload.transfer_to_team_id)
        if target_team is None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="transfer_to_team_id must reference a team")
        already_member = db.scalar(
            select(TeamMember.id).where(TeamMember.team_id == target_team.id, TeamMember.user_id == member.user_id)
        )
        if already_member is not None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Worker is already a member of that team")
    existing = cases.active_exception_for(db, member.user_id)
    with conflict_on_integrity_error(db, "Worker already has an active exception"):
        try:
            if existing is not None and blocks_new_report(existing.notes, existing.deactivated_at):
                cases.update_exception(
                    existing,
                    exception_type=payload.exception_type,
                    reason=payload.reason,
                    start_date=payload.start_date,
                    end_date=payload.end_date,
                )
                exception = existing
            else:
                exception = cases.create_exception(
                    db,
                    worker_id=member.user_id,
                    team_id=member.team_id,
                    exception_type=payload.exception_type,
                    reason=payload.reason,
                    start_date=payload.start_date,
                    end_date=payload.end_date,
                    created_by=current_user.id,
                )
        except cases.CaseValidationError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
        if target_team is not None:
            member.team_id = target_team.id
        db.flush()
    logger.info(
        "User %s saved exception %s for worker %s (transferred: %s)",
        current_user.id,
        exception.id,
        member.user_id,
        target_team is not None,
    )
    return MemberExceptionOut(exception=serialize_cases(db, [exception])[0], transferred=target_team is not None)


@app.get("/api/teams/exceptions", response_model=list[CaseOut])
def list_team_exceptions(
    current_user: User = Depends(require("exceptions.manage")),
    db: Session = Depends(get_db),
) -> list[CaseOut]:
    rows = db.scalars(
        select(WorkerException)
        .where(
            WorkerException.is_active.is_(True),
            WorkerException.team_id.in_(led_team_ids(db, current_user)),
        )
        .order_by(WorkerException.start_date, WorkerException.id)
    ).all()
    return serialize_cases(db, list(rows))


@app.delete("/api/teams/exceptions/{exception_id}", response_model=CaseCloseOut)
def remove_team_exception(
    exception_id: int,
    current_user: User = Depends(require("exceptions.manage")),
    db: Session = Depends(get_db),
) -> CaseCloseOut:
    exception = get_case_or_404(db, exception_id, current_user)
    if not exception.is_active:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Exception is already closed")
    result = cases.transition(db, exception, "closed", current_user)
    db.commit()
    return CaseCloseOut(ok=True, case_status=result.status, reactivated_schedules=result.reactivated_schedules)


@app.get("/api/worker/can-report-incident", response_model=CanReportOut)
def worker_can_report_incident(
    current_user: User = Depends(require("incidents.self_report")),
    db: Session = Depends(get_db),
) -> CanReportOut:
    existing = cases.active_exception_for(db, current_user.id)
    if existing is not None and blocks_new_report(existing.notes, existing.deactivated_at):
        return CanReportOut(
            can_report=False,
            reason="You already have an active incident/exception. Please wait until your current case is closed before submitting a new report.",
            has_active_case=True,
            exception_type=existing.exception_type,
            start_date=existing.start_date,
        )
    return CanReportOut(can_report=True, has_active_case=False)


@app.post("/api/worker/incidents", response_model=CaseOut, status_code=status.HTTP_201_CREATED)
def worker_report_incident(
    payload: WorkerIncidentPayload,
    current_user: User = Depends(require("incidents.self_report")),
    db: Session = Depends(get_db),
) -> CaseOut:
    team = member_team(db, current_user.id)
    if team is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Worker not found in any team. Please contact your supervisor to be assigned to a team.",
        )
    label = "Incident" if payload.incident_type == "incident" else "Near-Miss"
    with conflict_on_integrity_error(db, "You already have an active case"):
        try:
            exception = cases.create_exception(
                db,
                worker_id=current_user.id,
                team_id=team.id,
                exception_type="accident" if payload.incident_type == "incident" else "other",
                reason=f"{label} reported: {payload.description}. Location: {payload.location}. Severity: {payload.severity}",
                start_date=payload.incident_date,
                end_date=None,
                created_by=current_user.id,
            )
        except cases.OpenCaseExists as exc:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
        incident = Incident(
            user_id=current_user.id,
            team_id=team.id,
            exception_id=exception.id,
            incident_type=payload.incident_type,
            description=f"{payload.description}\n\nLocation: {payload.location}",
            severity=payload.severity,
            incident_date=payload.incident_date,
        )
        db.add(incident)
        db.flush()
        notifications.incident_reported(
            db,
            exception,
            current_user,
            team,
            payload.incident_type,
            payload.severity,
            payload.location,
            incident.id,
        )
    logger.info("Worker %s reported %s; case %s opened", current_user.id, payload.incident_type, exception.id)
    return serialize_case(exception, current_user, team, False)


@app.get("/api/worker/cases", response_model=list[CaseOut])
def worker_cases(
    status_filter: str = Query(default="all", alias="status"),
    current_user: User = Depends(require("cases.view_own")),
    db: Session = Depends(get_db),
) -> list[CaseOut]:
    rows = db.scalars(
        select(WorkerException)
        .where(WorkerException.user_id == current_user.id)
        .order_by(WorkerException.created_at.desc(), WorkerException.id.desc())
    ).all()
    return filter_cases(serialize_cases(db, list(rows)), status_filter)


@app.get("/api/worker/schedules/due", response_model=list[ScheduleOut])
def worker_due_schedules(
    on: date | None = None,
    current_user: User = Depends(require("schedules.view_own")),
    db: Session = Depends(get_db),
) -> list[ScheduleOut]:
    day = on or date.today()
    return [serialize_schedule(s) for s in schedules_due_on(db, day, worker_id=current_user.id)]


@app.post("/api/worker/checkins", response_model=CheckinOut, status_code=status.HTTP_201_CREATED)
def worker_submit_checkin(
    payload: CheckinPayload,
    current_user: User = Depends(require("checkins.submit")),
    db: Session = Depends(get_db),
) -> CheckinOut:
    team = member_team(db, current_user.id)
    checkin = DailyCheckin(
        user_id=current_user.id,
        team_id=team.id if team else None,
        pain_level=payload.pain_level,
        fatigue_level=payload.fatigue_level,
        sleep_quality=payload.sleep_quality,
        stress_level=payload.stress_level,
        additional_notes=payload.additional_notes,
        predicted_readiness=payload.predicted_readiness,
        check_in_date=date.today(),
    )
    db.add(checkin)
    with conflict_on_integrity_error(db, "You have already checked in today"):
        db.flush()
        if payload.predicted_readiness == "Red":
            notifications.worker_not_fit(db, current_user, team, payload.predicted_readiness, checkin.id)
    return CheckinOut(
        id=checkin.id,
        user_id=checkin.user_id,
        team_id=checkin.team_id,
        check_in_date=checkin.check_in_date,
        predicted_readiness=checkin.predicted_readiness,
        pain_level=checkin.pain_level,
        fatigue_level=checkin.fatigue_level,
        sleep_quality=checkin.sleep_quality,
        stress_level=checkin.stress_level,
    )


@app.post("/api/worker/warm-ups", response_model=WarmUpOut, status_code=status.HTTP_201_CREATED)
def worker_submit_warm_up(
    payload: WarmUpPayload,
    current_user: User = Depends(require("checkins.submit")),
    db: Session = Depends(get_db),
) -> WarmUpOut:
    team = member_team(db, current_user.id)
    warm_up = WarmUp(
        user_id=current_user.id,
        team_id=team.id if team else None,
        completed=payload.completed,
        warm_up_date=date.today(),
    )
    db.add(warm_up)
    with conflict_on_integrity_error(db, "Warm-up already recorded for today"):
        db.flush()
    return WarmUpOut(id=warm_up.id, warm_up_date=warm_up.warm_up_date, completed=warm_up.completed)


@app.post(
    "/api/worker/rehabilitation-plans/{plan_id}/exercises/{exercise_id}/complete",
    response_model=CompletionOut,
    status_code=status.HTTP_201_CREATED,
)
def worker_complete_exercise(
    plan_id: int,
    exercise_id: int,
    current_user: User = Depends(require("rehab.complete_exercise")),
    db: Session = Depends(get_db),
) -> CompletionOut:
    plan = get_plan_or_404(db, plan_id, current_user)
    if plan.status != "active":
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Rehabilitation plan is not active")
    if exercise_id not in {exercise.id for exercise in plan.exercises}:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Exercise not found")
    today = date.today()
    if not plan.start_date <= today <= plan.end_date:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Today is outside the plan's date range")
    completion = RehabilitationPlanCompletion(
        plan_id=plan.id,
        exercise_id=exercise_id,
        user_id=current_user.id,
        completion_date=today,
    )
    db.add(completion)
    with conflict_on_integrity_error(db, "Exercise already completed today"):
        db.flush()
    return CompletionOut(id=completion.id, plan_id=plan.id, exercise_id=exercise_id, completion_date=today)


@app.get("/api/worker/appointments", response_model=list[AppointmentOut])
def worker_appointments(
    current_user: User = Depends(require("appointments.respond")),
    db: Session = Depends(get_db),
) -> list[AppointmentOut]:
    rows = db.scalars(
        select(Appointment)
        .where(Appointment.worker_id == current_user.id)
        .order_by(Appointment.appointment_date, Appointment.appointment_time)
    ).all()
    return [serialize_appointment(row) for row in rows]


@app.get("/api/supervisor/incidents", response_model=list[CaseOut])
def supervisor_incidents(
    status_filter: str = Query(default="all", alias="status"),
    limit: int = Query(default=100, ge=1, le=500),
    current_user: User = Depends(require("incidents.view_team")),
    db: Session = Depends(get_db),
) -> list[CaseOut]:
    query = select(WorkerException).order_by(WorkerException.created_at.desc(), WorkerException.id.desc())
    if current_user.role in {"supervisor", "team_leader"}:
        query = query.where(WorkerException.team_id.in_(led_team_ids(db, current_user)))
    rows = db.scalars(query).all()
    return filter_cases(serialize_cases(db, list(rows)), status_filter)[:limit]


@app.post("/api/supervisor/incidents", response_model=CaseOut, status_code=status.HTTP_201_CREATED)
def supervisor_report_incident(
    payload: SupervisorIncidentPayload,
    current_user: User = Depends(require("incidents.report_for_worker")),
    db: Session = Depends(get_db),
) -> CaseOut:
    team = db.get(Team, payload.team_id)
    if team is None or not can_access_team(db, current_user, payload.team_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Team not found")
    membership = db.scalar(
        select(TeamMember).where(TeamMember.team_id == payload.team_id, TeamMember.user_id == payload.worker_id)
    )
    if membership is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Worker is not a member of this team")
    worker = db.get(User, payload.worker_id)
    with conflict_on_integrity_error(db, "Worker already has an active exception"):
        try:
            exception = cases.create_exception(
                db,
                worker_id=payload.worker_id,
                team_id=payload.team_id,
                exception_type=payload.exception_type,
                reason=payload.reason,
                start_date=payload.start_date,
                end_date=payload.end_date,
                created_by=current_user.id,
            )
        except cases.CaseValidationError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
        except cases.OpenCaseExists as exc:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Worker already has an active exception") from exc
    logger.info("User %s opened exception %s for worker %s", current_user.id, exception.id, payload.worker_id)
    return serialize_case(exception, worker, team, False)


@app.patch("/api/supervisor/incidents/{case_id}/assign-to-whs", response_model=CaseOut)
def supervisor_assign_to_whs(
    case_id: int,
    current_user: User = Depends(require("incidents.assign_to_whs")),
    db: Session = Depends(get_db),
) -> CaseOut:
    exception = get_case_or_404(db, case_id, current_user)
    if not exception.is_active:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot assign a closed case to WHS")
    if exception.assigned_to_whs:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Incident is already assigned to WHS")
    exception.assigned_to_whs = True
    notifications.assigned_to_whs(db, exception, exception.worker)
    db.commit()
    logger.info("Case %s assigned to WHS by user %s", exception.id, current_user.id)
    return serialize_cases(db, [exception])[0]


@app.patch("/api/supervisor/incidents/{case_id}/close", response_model=CaseCloseOut)
def supervisor_close_incident(
    case_id: int,
    current_user: User = Depends(require("incidents.close")),
    db: Session = Depends(get_db),
) -> CaseCloseOut:
    exception = get_case_or_404(db, case_id, current_user)
    if not exception.is_active:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Case is already closed")
    result = cases.transition(db, exception, "closed", current_user)
    db.commit()
    return CaseCloseOut(ok=True, case_status=result.status, reactivated_schedules=result.reactivated_schedules)


@app.get("/api/whs/cases", response_model=list[CaseOut])
def whs_cases(
    status_filter: str = Query(default="all", alias="status"),
    limit: int = Query(default=100, ge=1, le=500),
    _: User = Depends(require("cases.assign_clinician")),
    db: Session = Depends(get_db),
) -> list[CaseOut]:
    rows = db.scalars(
        select(WorkerException)
        .where(WorkerException.assigned_to_whs.is_(True))
        .order_by(WorkerException.created_at.desc(), WorkerException.id.desc())
    ).all()
    return filter_cases(serialize_cases(db, list(rows)), status_filter)[:limit]


@app.patch("/api/whs/cases/{case_id}/assign-clinician", response_model=CaseOut)
def whs_assign_clinician(
    case_id: int,
    payload: AssignClinicianPayload,
    current_user: User = Depends(require("cases.assign_clinician")),
    db: Session = Depends(get_db),
) -> CaseOut:
    exception = get_case_or_404(db, case_id, current_user)
    if not exception.is_active:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot assign a clinician to a closed case")
    clinician = db.get(User, payload.clinician_id)
    if clinician is None or clinician.role != "clinician" or not clinician.is_active:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="clinician_id must reference an active clinician")
    exception.clinician_id = clinician.id
    notifications.assigned_to_clinician(db, exception, exception.worker, clinician)
    db.commit()
    logger.info("Case %s assigned to clinician %s by user %s", exception.id, clinician.id, current_user.id)
    return serialize_cases(db, [exception])[0]


@app.get("/api/clinician/cases", response_model=list[CaseOut])
def clinician_cases(
    status_filter: str = Query(default="all", alias="status"),
    limit: int = Query(default=100, ge=1, le=500),
    current_user: User = Depends(require("cases.view_assigned")),
    db: Session = Depends(get_db),
) -> list[CaseOut]:
    rows = db.scalars(
        select(WorkerException)
        .where(WorkerException.clinician_id == current_user.id)
        .order_by(WorkerException.created_at.desc(), WorkerException.id.desc())
    ).all()
    return filter_cases(serialize_cases(db, list(rows)), status_filter)[:limit]


@app.patch("/api/clinician/cases/{case_id}/status", response_model=CaseTransitionOut)
def clinician_update_case_status(
    case_id: int,
    payload: CaseStatusPayload,
    current_user: User = Depends(require("cases.transition")),
    db: Session = Depends(get_db),
) -> CaseTransitionOut:
    exception = get_case_or_404(db, case_id, current_user)
    try:
        result = cases.transition(db, exception, payload.status, current_user)
    except CaseStatusError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    db.commit()
    return CaseTransitionOut(
        case=serialize_cases(db, [exception])[0],
        previous_status=result.previous_status,
        reactivated_schedules=result.reactivated_schedules,
    )


@app.patch("/api/clinician/cases/{case_id}/return-to-work", response_model=CaseOut)
def clinician_return_to_work(
    case_id: int,
    payload: ReturnToWorkPayload,
    current_user: User = Depends(require("cases.return_to_work")),
    db: Session = Depends(get_db),
) -> CaseOut:
    exception = get_case_or_404(db, case_id, current_user)
    if not exception.is_active:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Case is already closed")
    exception.return_to_work_duty_type = payload.duty_type
    exception.return_to_work_date = payload.return_date
    cases.transition(db, exception, "return_to_work", current_user)
    db.commit()
    return serialize_cases(db, [exception])[0]


@app.post("/api/clinician/rehabilitation-plans", response_model=PlanOut, status_code=status.HTTP_201_CREATED)
def clinician_create_plan(
    payload: PlanCreatePayload,
    current_user: User = Depends(require("rehab.manage")),
    db: Session = Depends(get_db),
) -> PlanOut:
    exception = get_case_or_404(db, payload.exception_id, current_user)
    if not exception.is_active:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot create a rehabilitation plan for a closed case")
    ensure_plan_duration(payload.duration_days)
    exercises = [exercise for exercise in payload.exercises if exercise.exercise_name.strip()]
    if not exercises:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="At least one exercise is required")
    if cases.has_active_plan(db, exception.id):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="This case already has an active rehabilitation plan")
    start_date = payload.start_date or date.today()
    plan = RehabilitationPlan(
        exception_id=exception.id,
        clinician_id=current_user.id,
        plan_name=payload.plan_name.strip() or "Recovery Plan",
        plan_description=payload.plan_description,
        start_date=start_date,
        end_date=start_date + timedelta(days=payload.duration_days - 1),
        status="active",
    )
    for index, exercise in enumerate(exercises):
        plan.exercises.append(
            RehabilitationExercise(
                exercise_name=exercise.exercise_name.strip(),
                repetitions=exercise.repetitions,
                instructions=exercise.instructions,
                video_url=exercise.video_url,
                exercise_order=index,
            )
        )
    db.add(plan)
    db.commit()
    db.refresh(plan)
    logger.info("Rehabilitation plan %s created for case %s", plan.id, exception.id)
    return serialize_plan(plan)


@app.get("/api/clinician/rehabilitation-plans", response_model=list[PlanOut])
def clinician_list_plans(
    status_filter: PlanStatus | None = Query(default=None, alias="status"),
    current_user: User = Depends(require("rehab.manage")),
    db: Session = Depends(get_db),
) -> list[PlanOut]:
    query = (
        select(RehabilitationPlan)
        .join(WorkerException, WorkerException.id == RehabilitationPlan.exception_id)
        .where(WorkerException.clinician_id == current_user.id)
        .order_by(RehabilitationPlan.created_at.desc(), RehabilitationPlan.id.desc())
    )
    if status_filter is not None:
        query = query.where(RehabilitationPlan.status == status_filter)
    return [serialize_plan(plan) for plan in db.scalars(query).all()]


@app.patch("/api/clinician/rehabilitation-plans/{plan_id}", response_model=PlanOut)
def clinician_update_plan(
    plan_id: int,
    payload: PlanPatchPayload,
    current_user: User = Depends(require("rehab.manage")),
    db: Session = Depends(get_db),
) -> PlanOut:
    plan = get_plan_or_404(db, plan_id, current_user)
    if payload.status is None and payload.start_date is None and payload.duration_days is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No updates were provided")
    if payload.status == "active" and plan.status != "active" and cases.has_active_plan(db, plan.exception_id):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="This case already has an active rehabilitation plan")
    if payload.start_date is not None or payload.duration_days is not None:
        duration = payload.duration_days if payload.duration_days is not None else plan.duration_days
        ensure_plan_duration(duration)
        plan.start_date = payload.start_date or plan.start_date
        plan.end_date = plan.start_date + timedelta(days=duration - 1)
    if payload.status is not None:
        plan.status = payload.status
    db.commit()
    db.refresh(plan)
    return serialize_plan(plan)


@app.get("/api/clinician/rehabilitation-plans/{plan_id}/progress", response_model=PlanProgressOut)
def clinician_plan_progress(
    plan_id: int,
    current_user: User = Depends(require("rehab.manage")),
    db: Session = Depends(get_db),
) -> PlanProgressOut:
    plan = get_plan_or_404(db, plan_id, current_user)
    completions = db.scalars(
        select(RehabilitationPlanCompletion).where(RehabilitationPlanCompletion.plan_id == plan.id)
    ).all()
    return plan_progress(plan, list(completions), date.today())


@app.post("/api/clinician/appointments", response_model=AppointmentOut, status_code=status.HTTP_201_CREATED)
def clinician_create_appointment(
    payload: AppointmentCreatePayload,
    current_user: User = Depends(require("appointments.manage")),
    db: Session = Depends(get_db),
) -> AppointmentOut:
    exception = get_case_or_404(db, payload.case_id, current_user)
    ensure_appointment_date_allowed(payload.appointment_date, payload.status)
    appointment = Appointment(
        case_id=exception.id,
        clinician_id=current_user.id,
        worker_id=exception.user_id,
        appointment_date=payload.appointment_date,
        appointment_time=payload.appointment_time,
        duration_minutes=payload.duration_minutes,
        status=payload.status,
        appointment_type=payload.appointment_type,
        location=payload.location,
        notes=payload.notes,
    )
    db.add(appointment)
    db.commit()
    db.refresh(appointment)
    return serialize_appointment(appointment)


@app.get("/api/clinician/appointments", response_model=list[AppointmentOut])
def clinician_appointments(
    current_user: User = Depends(require("appointments.manage")),
    db: Session = Depends(get_db),
) -> list[AppointmentOut]:
    rows = db.scalars(
        select(Appointment)
        .where(Appointment.clinician_id == current_user.id)
        .order_by(Appointment.appointment_date, Appointment.appointment_time)
    ).all()
    return [serialize_appointment(row) for row in rows]


@app.patch("/api/appointments/{appointment_id}/status", response_model=AppointmentOut)
def update_appointment_status(
    appointment_id: int,
    payload: AppointmentStatusPayload,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> AppointmentOut:
    appointment = db.get(Appointment, appointment_id)
    if appointment is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Appointment not found")
    if is_allowed(current_user.role, "appointments.manage") and appointment.clinician_id == current_user.id:
        allowed = {"confirmed", "completed", "cancelled"}
    elif is_allowed(current_user.role, "appointments.respond") and appointment.worker_id == current_user.id:
        allowed = {"confirmed", "declined"}
    else:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Appointment not found")
    if payload.status not in allowed:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Cannot set appointment status to {payload.status}")
    if appointment.status in APPOINTMENT_TERMINAL_STATUSES:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Appointment is already {appointment.status}")
    ensure_appointment_date_allowed(appointment.appointment_date, payload.status)
    appointment.status = payload.status
    if payload.status in {"cancelled", "declined"}:
        appointment.cancellation_reason = payload.cancellation_reason
    db.commit()
    db.refresh(appointment)
    return serialize_appointment(appointment)


@app.post("/api/clinician/transcriptions", response_model=TranscriptionOut, status_code=status.HTTP_201_CREATED)
def clinician_save_transcription(
    payload: TranscriptionPayload,
    current_user: User = Depends(require("transcriptions.manage")),
    db: Session = Depends(get_db),
) -> TranscriptionOut:
    transcription = Transcription(
        clinician_id=current_user.id,
        transcription_text=payload.transcription_text,
        analysis=payload.analysis,
        recording_duration_seconds=payload.recording_duration_seconds,
        estimated_cost=payload.estimated_cost,
        audio_file_size_bytes=payload.audio_file_size_bytes,
    )
    db.add(transcription)
    db.commit()
    db.refresh(transcription)
    return TranscriptionOut(
        id=transcription.id,
        transcription_text=transcription.transcription_text,
        analysis=transcription.analysis,
        recording_duration_seconds=transcription.recording_duration_seconds,
        created_at=transcription.created_at,
    )


@app.get("/api/clinician/transcriptions", response_model=list[TranscriptionOut])
def clinician_list_transcriptions(
    current_user: User = Depends(require("transcriptions.manage")),
    db: Session = Depends(get_db),
) -> list[TranscriptionOut]:
    rows = db.scalars(
        select(Transcription)
        .where(Transcription.clinician_id == current_user.id)
        .order_by(Transcription.created_at.desc(), Transcription.id.desc())
    ).all()
    return [
        TranscriptionOut(
            id=row.id,
            transcription_text=row.transcription_text,
            analysis=row.analysis,
            recording_duration_seconds=row.recording_duration_seconds,
            created_at=row.created_at,
        )
        for row in rows
    ]


@app.post("/api/team-leader/schedules", response_model=ScheduleOut, status_code=status.HTTP_201_CREATED)
def create_schedule(
    payload: SchedulePayload,
    current_user: User = Depends(require("schedules.manage")),
    db: Session = Depends(get_db),
) -> ScheduleOut:
    if not can_access_team(db, current_user, payload.team_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Team not found")
    membership = db.scalar(
        select(TeamMember).where(TeamMember.team_id == payload.team_id, TeamMember.user_id == payload.worker_id)
    )
    if membership is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Worker is not a member of this team")
    pattern = payload.pattern
    if isinstance(pattern, SingleDatePattern):
        kind = SingleDate(pattern.scheduled_date)
    else:
        kind = Recurring(pattern.day_of_week, pattern.effective_date, pattern.expiry_date)
    try:
        validate_schedule(
            kind,
            payload.start_time,
            payload.end_time,
            payload.requires_daily_checkin,
            payload.daily_checkin_start_time,
            payload.daily_checkin_end_time,
        )
    except ScheduleValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    schedule = WorkerSchedule(
        worker_id=payload.worker_id,
        team_id=payload.team_id,
        start_time=payload.start_time,
        end_time=payload.end_time,
        requires_daily_checkin=payload.requires_daily_checkin,
        daily_checkin_start_time=payload.daily_checkin_start_time,
        daily_checkin_end_time=payload.daily_checkin_end_time,
        notes=payload.notes,
        created_by=current_user.id,
        is_active=True,
    )
    apply_kind(schedule, kind)
    db.add(schedule)
    with conflict_on_integrity_error(db, "Worker already has a schedule starting at this time"):
        db.flush()
    return serialize_schedule(schedule)


@app.get("/api/team-leader/schedules/due", response_model=list[ScheduleOut])
def team_due_schedules(
    on: date | None = None,
    current_user: User = Depends(require("schedules.manage")),
    db: Session = Depends(get_db),
) -> list[ScheduleOut]:
    day = on or date.today()
    return [serialize_schedule(s) for s in schedules_due_on(db, day, team_ids=led_team_ids(db, current_user))]


@app.patch("/api/team-leader/schedules/{schedule_id}", response_model=ScheduleOut)
def patch_schedule(
    schedule_id: int,
    payload: SchedulePatchPayload,
    current_user: User = Depends(require("schedules.manage")),
    db: Session = Depends(get_db),
) -> ScheduleOut:
    schedule = db.get(WorkerSchedule, schedule_id)
    if schedule is None or not can_access_team(db, current_user, schedule.team_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Schedule not found")
    schedule.is_active = payload.is_active
    db.commit()
    db.refresh(schedule)
    return serialize_schedule(schedule)


@app.get("/api/notifications", response_model=list[NotificationOut])
def list_notifications(
    unread_only: bool = False,
    limit: int = Query(default=50, ge=1, le=200),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[NotificationOut]:
    query = select(Notification).where(Notification.user_id == current_user.id)
    if unread_only:
        query = query.where(Notification.is_read.is_(False))
    query = query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit)
    return [serialize_notification(n) for n in db.scalars(query).all()]


@app.patch("/api/notifications/read-all")
def mark_all_notifications_read(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> dict[str, int | bool]:
    unread = db.scalars(
        select(Notification).where(Notification.user_id == current_user.id, Notification.is_read.is_(False))
    ).all()
    now = utcnow()
    for notification in unread:
        notification.is_read = True
        notification.read_at = now
    db.commit()
    return {"ok": True, "updated": len(unread)}


@app.patch("/api/notifications/{notification_id}/read", response_model=NotificationOut)
def mark_notification_read(
    notification_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> NotificationOut:
    notification = db.get(Notification, notification_id)
    if notification is None or notification.user_id != current_user.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
    if not notification.is_read:
        notification.is_read = True
        notification.read_at = utcnow()
        db.commit()
        db.refresh(notification)
    return serialize_notification(notification)


@app.get("/health")
def health() -> dict[str, bool | str]:
    return {"ok": True, "env": os.getenv("ENVIRONMENT", "local")}
