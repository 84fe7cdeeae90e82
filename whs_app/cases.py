from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from whs_app import notifications
from whs_app.case_status import (
    blocks_new_report,
    closes_case,
    derive_case_status,
    merge_case_notes,
    validate_transition_target,
)
from whs_app.models import CaseStatusHistory, RehabilitationPlan, User, WorkerException
from whs_app.schedules import count_schedules_released

logger = logging.getLogger(__name__)


class OpenCaseExists(Exception):
    pass


class CaseValidationError(ValueError):
    pass


@dataclass
class TransitionResult:
    previous_status: str
    status: str
    reactivated_schedules: int = 0


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def validate_exception_dates(start_date: date, end_date: date | None) -> None:
    if end_date is not None and end_date < start_date:
        raise CaseValidationError("end_date cannot be before start_date")


def active_plan_exception_ids(db: Session, exception_ids: list[int]) -> set[int]:
    if not exception_ids:
        return set()
    rows = db.scalars(
        select(RehabilitationPlan.exception_id).where(
            RehabilitationPlan.exception_id.in_(exception_ids),
            RehabilitationPlan.status == "active",
        )
    ).all()
    return set(rows)


def has_active_plan(db: Session, exception_id: int) -> bool:
    return exception_id in active_plan_exception_ids(db, [exception_id])


def current_status(db: Session, exception: WorkerException, in_rehab: bool | None = None) -> str:
    if in_rehab is None:
        in_rehab = has_active_plan(db, exception.id)
    return derive_case_status(
        exception.notes,
        is_active=exception.is_active,
        assigned_to_whs=exception.assigned_to_whs,
        has_active_plan=in_rehab,
    )


def active_exception_for(db: Session, user_id: int) -> WorkerException | None:
    return db.scalar(
        select(WorkerException).where(WorkerException.user_id == user_id, WorkerException.is_active.is_(True))
    )


def close_without_actor(db: Session, exception: WorkerException, now: datetime | None = None) -> str:
    """Close a case on the system's behalf (expiry, superseded sign-off). No notifications are sent.

    Returns the status the case had before closing.
    """
    now = now or utcnow()
    previous = current_status(db, exception)
    exception.notes = merge_case_notes(exception.notes, "closed")
    exception.is_active = False
    exception.deactivated_at = exception.deactivated_at or now
    db.add(CaseStatusHistory(exception_id=exception.id, from_status=previous, to_status="closed", changed_by_user_id=None))
    return previous


def release_finished_exception(db: Session, user_id: int) -> None:
    """Clear the way for a new case; raises OpenCaseExists while the current one is still open."""
    existing = active_exception_for(db, user_id)
    if existing is None:
        return
    if blocks_new_report(existing.notes, existing.deactivated_at):
        raise OpenCaseExists(
            "You already have an active incident/exception. "
            "Please wait until your current case is closed before submitting a new report."
        )
    # Signed off (return to work) but never formally deactivated.
    previous = close_without_actor(db, existing)
    db.flush()
    logger.info("Case %s closed from %s to make way for a new case", existing.id, previous)


def create_exception(
    db: Session,
    *,
    worker_id: int,
    team_id: int,
    exception_type: str,
    reason: str | None,
    start_date: date,
    end_date: date | None,
    created_by: int | None,
    notes: str | None = None,
) -> WorkerException:
    validate_exception_dates(start_date, end_date)
    release_finished_exception(db, worker_id)
    exception = WorkerException(
        user_id=worker_id,
        team_id=team_id,
        exception_type=exception_type,
        reason=reason,
        start_date=start_date,
        end_date=end_date,
        is_active=True,
        created_by=created_by,
        notes=notes,
    )
    db.add(exception)
    db.flush()
    return exception


def update_exception(
    exception: WorkerException,
    *,
    exception_type: str,
    reason: str | None,
    start_date: date,
    end_date: date | None,
) -> None:
    if not exception.is_active:
        raise CaseValidationError("Cannot update a closed exception")
    validate_exception_dates(start_date, end_date)
    exception.exception_type = exception_type
    exception.reason = reason
    exception.start_date = start_date
    exception.end_date = end_date


def transition(
    db: Session,
    exception: WorkerException,
    target: str,
    actor: User,
    today: date | None = None,
) -> TransitionResult:
    """Move a case to ``target``; any of the six statuses may follow any other."""
    target = validate_transition_target(target)
    today = today or date.today()
    previous = current_status(db, exception)
    now = utcnow()
    exception.notes = merge_case_notes(exception.notes, target, approved_by=actor.display_name, approved_at=now)
    reactivated = 0
    deactivated = closes_case(target) and exception.is_active
    if deactivated:
        reactivated = count_schedules_released(db, exception, today)
        exception.is_active = False
        exception.deactivated_at = now
    db.add(CaseStatusHistory(exception_id=exception.id, from_status=previous, to_status=target, changed_by_user_id=actor.id))
    # Closing an already inactive case only rewrites the notes.
    changed = deactivated if closes_case(target) else target != previous
    if changed:
        notifications.case_status_changed(db, exception, exception.worker, previous, target, reactivated)
    logger.info(
        "Case %s moved %s -> %s by user %s (reactivated schedules: %s)",
        exception.id,
        previous,
        target,
        actor.id,
        reactivated,
    )
    return TransitionResult(previous_status=previous, status=target, reactivated_schedules=reactivated)
