from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from whs_app.case_status import approval_from_notes, case_number, display_label
from whs_app.models import NOTIFICATION_TYPES, Notification, Team, User, WorkerException

logger = logging.getLogger(__name__)


def worker_fields(user: User | None) -> dict[str, Any]:
    return {
        "worker_id": user.id if user else None,
        "worker_name": user.display_name if user else "Unknown User",
        "worker_email": (user.email if user else "") or "",
    }


def notify(
    db: Session,
    user_id: int | None,
    type_: str,
    title: str,
    message: str,
    data: dict[str, Any] | None = None,
) -> Notification | None:
    """Stage a notification on the session; the caller's commit makes it durable."""
    if user_id is None:
        return None
    if type_ not in NOTIFICATION_TYPES:
        raise ValueError(f"Unknown notification type: {type_}")
    notification = Notification(user_id=user_id, type=type_, title=title, message=message, data=data or {}, is_read=False)
    db.add(notification)
    return notification


def _team_recipients(team: Team | None) -> list[int]:
    if team is None:
        return []
    recipients = [team.supervisor_id, team.team_leader_id]
    return list(dict.fromkeys(r for r in recipients if r is not None))


def _case_data(exception: WorkerException, worker: User | None) -> dict[str, Any]:
    return {
        "exception_id": exception.id,
        "case_number": case_number(exception.id, exception.created_at),
        **worker_fields(worker),
    }


def incident_reported(
    db: Session,
    exception: WorkerException,
    worker: User,
    team: Team,
    incident_type: str,
    severity: str,
    location: str,
    incident_id: int | None,
) -> int:
    label = "Incident" if incident_type == "incident" else "Near-Miss"
    what = "a workplace incident" if incident_type == "incident" else "a near-miss"
    data = {
        **_case_data(exception, worker),
        "incident_id": incident_id,
        "incident_type": incident_type,
        "severity": severity,
        "location": location,
        "incident_date": exception.start_date.isoformat(),
    }
    sent = 0
    for recipient in _team_recipients(team):
        notify(
            db,
            recipient,
            "system",
            f"{label} Report",
            f"{worker.display_name} has reported {what} (Severity: {severity.upper()}).",
            data,
        )
        sent += 1
    notify(
        db,
        worker.id,
        "system",
        "Report Submitted",
        f"Your {label.lower()} report has been submitted successfully. Your supervisor has been notified.",
        {"exception_id": exception.id, "incident_id": incident_id, "incident_type": incident_type},
    )
    return sent + 1


def assigned_to_whs(db: Session, exception: WorkerException, worker: User | None) -> int:
    recipients = db.scalars(
        select(User.id).where(User.role == "whs_control_center", User.is_active.is_(True)).order_by(User.id)
    ).all()
    name = worker.display_name if worker else "a worker"
    for recipient in recipients:
        notify(
            db,
            recipient,
            "incident_assigned",
            "New Case Assigned",
            f"A case for {name} has been assigned to WHS for review.",
            _case_data(exception, worker),
        )
    return len(recipients)


def assigned_to_clinician(db: Session, exception: WorkerException, worker: User | None, clinician: User) -> None:
    name = worker.display_name if worker else "a worker"
    notify(
        db,
        clinician.id,
        "case_assigned_to_clinician",
        "Case Assigned",
        f"You have been assigned the case for {name}.",
        _case_data(exception, worker),
    )


def case_status_changed(
    db: Session,
    exception: WorkerException,
    worker: User | None,
    previous_status: str,
    new_status: str,
    reactivated_schedules: int = 0,
) -> int:
    approved_by, approved_at = approval_from_notes(exception.notes)
    data = {
        **_case_data(exception, worker),
        "previous_status": previous_status,
        "case_status": new_status,
        "status_label": display_label(new_status),
        "approved_by": approved_by,
        "approved_at": approved_at,
    }
    if new_status != "closed":
        notify(
            db,
            exception.user_id,
            "case_updated",
            "Case Updated",
            f"Your case status is now {display_label(new_status)}.",
            data,
        )
        return 1
    data["reactivated_schedules"] = reactivated_schedules
    recipients = [exception.user_id, *_team_recipients(exception.team)]
    recipients = list(dict.fromkeys(recipients))
    for recipient in recipients:
        notify(db, recipient, "case_closed", "Case Closed", f"The case for {data['worker_name']} has been closed.", data)
    return len(recipients)


def worker_not_fit(db: Session, worker: User, team: Team | None, readiness: str, check_in_id: int) -> int:
    if team is None:
        logger.warning("Worker %s reported %s readiness without a team; nobody to notify", worker.id, readiness)
        return 0
    recipients = _team_recipients(team)
    for recipient in recipients:
        notify(
            db,
            recipient,
            "worker_not_fit_to_work",
            "Worker Not Fit To Work",
            f"{worker.display_name} reported {readiness} readiness in today's check-in.",
            {**worker_fields(worker), "check_in_id": check_in_id, "predicted_readiness": readiness},
        )
    return len(recipients)
