from __future__ import annotations

from dataclasses import dataclass
from datetime import date, time, timedelta

from sqlalchemy import and_, exists, or_, select
from sqlalchemy.orm import Session

from whs_app.models import WorkerException, WorkerSchedule

# Weekdays follow the stored convention: 0=Sunday ... 6=Saturday.
DAY_NAMES = ["sunday", "monday", "tuesday", "wednesday", "thursday", "friday", "saturday"]


class ScheduleValidationError(ValueError):
    pass


@dataclass(frozen=True)
class SingleDate:
    scheduled_date: date


@dataclass(frozen=True)
class Recurring:
    day_of_week: int
    effective_date: date | None = None
    expiry_date: date | None = None


ScheduleKind = SingleDate | Recurring


def day_of_week_for(day: date) -> int:
    return (day.weekday() + 1) % 7


def schedule_kind(schedule: WorkerSchedule) -> ScheduleKind:
    if schedule.scheduled_date is not None:
        return SingleDate(schedule.scheduled_date)
    return Recurring(schedule.day_of_week, schedule.effective_date, schedule.expiry_date)


def validate_schedule(
    kind: ScheduleKind,
    start_time: time,
    end_time: time,
    requires_daily_checkin: bool = False,
    daily_checkin_start_time: time | None = None,
    daily_checkin_end_time: time | None = None,
) -> None:
    if end_time <= start_time:
        raise ScheduleValidationError("end_time must be after start_time")
    if isinstance(kind, Recurring):
        if not 0 <= kind.day_of_week <= 6:
            raise ScheduleValidationError("day_of_week must be between 0 (Sunday) and 6 (Saturday)")
        if kind.effective_date and kind.expiry_date and kind.expiry_date < kind.effective_date:
            raise ScheduleValidationError("expiry_date cannot be before effective_date")
    if requires_daily_checkin:
        if daily_checkin_start_time is None or daily_checkin_end_time is None:
            raise ScheduleValidationError("Daily check-in window requires both start and end times")
        if daily_checkin_end_time <= daily_checkin_start_time:
            raise ScheduleValidationError("Daily check-in window end must be after its start")


def apply_kind(schedule: WorkerSchedule, kind: ScheduleKind) -> None:
    if isinstance(kind, SingleDate):
        schedule.scheduled_date = kind.scheduled_date
        schedule.day_of_week = None
        schedule.effective_date = None
        schedule.expiry_date = None
    else:
        schedule.scheduled_date = None
        schedule.day_of_week = kind.day_of_week
        schedule.effective_date = kind.effective_date
        schedule.expiry_date = kind.expiry_date


def occurs_on(kind: ScheduleKind, day: date) -> bool:
    if isinstance(kind, SingleDate):
        return kind.scheduled_date == day
    if kind.day_of_week != day_of_week_for(day):
        return False
    if kind.effective_date and day < kind.effective_date:
        return False
    if kind.expiry_date and day > kind.expiry_date:
        return False
    return True


def occurs_between(kind: ScheduleKind, start: date, end: date | None) -> bool:
    """True when the schedule has at least one occurrence in [start, end]; ``end=None`` is open-ended."""
    if end is not None and end < start:
        return False
    if isinstance(kind, SingleDate):
        return kind.scheduled_date >= start and (end is None or kind.scheduled_date <= end)
    lo = max(start, kind.effective_date) if kind.effective_date else start
    hi = end
    if kind.expiry_date is not None:
        hi = kind.expiry_date if hi is None else min(hi, kind.expiry_date)
    if hi is not None and hi < lo:
        return False
    for offset in range(7):
        candidate = lo + timedelta(days=offset)
        if hi is not None and candidate > hi:
            return False
        if day_of_week_for(candidate) == kind.day_of_week:
            return True
    return False


def exception_covers(exception: WorkerException, day: date) -> bool:
    if not exception.is_active:
        return False
    if exception.start_date > day:
        return False
    return exception.end_date is None or exception.end_date >= day


def _occurrence_clause(day: date):
    return or_(
        WorkerSchedule.scheduled_date == day,
        and_(
            WorkerSchedule.day_of_week == day_of_week_for(day),
            or_(WorkerSchedule.effective_date.is_(None), WorkerSchedule.effective_date <= day),
            or_(WorkerSchedule.expiry_date.is_(None), WorkerSchedule.expiry_date >= day),
        ),
    )


def _covered_by_exception_clause(day: date):
    return exists().where(
        WorkerException.user_id == WorkerSchedule.worker_id,
        WorkerException.is_active.is_(True),
        WorkerException.start_date <= day,
        or_(WorkerException.end_date.is_(None), WorkerException.end_date >= day),
    )


def schedules_due_on(
    db: Session,
    day: date,
    team_ids: list[int] | None = None,
    worker_id: int | None = None,
) -> list[WorkerSchedule]:
    """Active schedules occurring on ``day`` for workers not exempted by an active exception.

    Schedules are never modified when an exception opens; the exemption is
    applied here, at read time.
    """
    query = select(WorkerSchedule).where(
        WorkerSchedule.is_active.is_(True),
        _occurrence_clause(day),
        ~_covered_by_exception_clause(day),
    )
    if team_ids is not None:
        query = query.where(WorkerSchedule.team_id.in_(team_ids))
    if worker_id is not None:
        query = query.where(WorkerSchedule.worker_id == worker_id)
    query = query.order_by(WorkerSchedule.start_time, WorkerSchedule.worker_id, WorkerSchedule.id)
    return list(db.scalars(query).all())


def count_schedules_released(db: Session, exception: WorkerException, closed_on: date) -> int:
    """Active schedules of the worker that the exception was exempting from ``closed_on`` onward."""
    window_start = max(exception.start_date, closed_on)
    schedules = db.scalars(
        select(WorkerSchedule).where(
            WorkerSchedule.worker_id == exception.user_id,
            WorkerSchedule.is_active.is_(True),
        )
    ).all()
    return sum(1 for schedule in schedules if occurs_between(schedule_kind(schedule), window_start, exception.end_date))
