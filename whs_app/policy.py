"""Role-based authorization.

Every route asks this module instead of comparing role strings itself. Actions
are coarse capabilities; resource checks narrow them to the teams or cases a
user is attached to.
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from whs_app.models import Team, TeamMember, User, WorkerException

CASE_WIDE_ROLES = frozenset({"whs_control_center", "executive", "admin"})

PERMISSIONS: dict[str, frozenset[str]] = {
    "users.manage": frozenset({"admin", "executive"}),
    "login_logs.view": frozenset({"admin", "executive"}),
    "teams.manage": frozenset({"admin", "executive", "supervisor"}),
    "teams.view": frozenset({"admin", "executive", "supervisor", "team_leader", "whs_control_center"}),
    "team_members.manage": frozenset({"admin", "executive", "supervisor", "team_leader"}),
    "exceptions.manage": frozenset({"supervisor", "team_leader"}),
    "incidents.self_report": frozenset({"worker"}),
    "incidents.report_for_worker": frozenset({"supervisor", "team_leader"}),
    "incidents.view_team": frozenset({"supervisor", "team_leader", "whs_control_center", "executive", "admin"}),
    "incidents.assign_to_whs": frozenset({"supervisor"}),
    "incidents.close": frozenset({"supervisor", "whs_control_center"}),
    "cases.view_own": frozenset({"worker"}),
    "cases.assign_clinician": frozenset({"whs_control_center", "admin"}),
    "cases.view_assigned": frozenset({"clinician"}),
    "cases.transition": frozenset({"clinician", "whs_control_center"}),
    "cases.return_to_work": frozenset({"clinician"}),
    "schedules.manage": frozenset({"team_leader", "supervisor"}),
    "schedules.view_own": frozenset({"worker"}),
    "checkins.submit": frozenset({"worker"}),
    "rehab.manage": frozenset({"clinician"}),
    "rehab.complete_exercise": frozenset({"worker"}),
    "appointments.manage": frozenset({"clinician"}),
    "appointments.respond": frozenset({"worker"}),
    "transcriptions.manage": frozenset({"clinician"}),
    "jobs.run": frozenset({"admin"}),
}


def is_allowed(role: str, action: str) -> bool:
    return role in PERMISSIONS.get(action, frozenset())


def led_team_ids(db: Session, user: User) -> list[int]:
    """Teams the user leads or supervises."""
    if user.role == "team_leader":
        query = select(Team.id).where(Team.team_leader_id == user.id)
    elif user.role == "supervisor":
        query = select(Team.id).where(Team.supervisor_id == user.id)
    else:
        return []
    return list(db.scalars(query).all())


def member_team(db: Session, user_id: int) -> Team | None:
    return db.scalar(
        select(Team).join(TeamMember, TeamMember.team_id == Team.id).where(TeamMember.user_id == user_id).order_by(Team.id)
    )


def can_access_team(db: Session, user: User, team_id: int) -> bool:
    if user.role in CASE_WIDE_ROLES:
        return True
    return team_id in led_team_ids(db, user)


def can_access_case(db: Session, user: User, exception: WorkerException) -> bool:
    if user.role in CASE_WIDE_ROLES:
        return True
    if user.role == "worker":
        return exception.user_id == user.id
    if user.role == "clinician":
        return exception.clinician_id == user.id
    return exception.team_id in led_team_ids(db, user)
