from __future__ import annotations

import json
from datetime import date, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

import whs_app.db as app_db
from whs_app import cases
from whs_app.models import CaseStatusHistory, Notification, Team, TeamMember, User, WorkerException
from whs_app.main import app
from whs_app.schedules import day_of_week_for
from whs_app.security import hash_password

PASSWORD = "correct-horse-battery"


def seed_organisation() -> dict[str, int]:
    db = app_db.SessionLocal()
    password_hash = hash_password(PASSWORD)
    users = {
        "leader": User(email="leader@example.com", password_hash=password_hash, role="team_leader"),
        "supervisor": User(email="supervisor@example.com", password_hash=password_hash, role="supervisor"),
        "worker": User(
            email="worker@example.com",
            password_hash=password_hash,
            role="worker",
            first_name="Sam",
            last_name="Rivera",
        ),
        "whs": User(email="whs@example.com", password_hash=password_hash, role="whs_control_center"),
        "clinician": User(email="clinician@example.com", password_hash=password_hash, role="clinician", full_name="Dr Dana Lee"),
    }
    db.add_all(users.values())
    db.flush()
    team = Team(name="Warehouse", team_leader_id=users["leader"].id, supervisor_id=users["supervisor"].id)
    db.add(team)
    db.flush()
    db.add(TeamMember(team_id=team.id, user_id=users["worker"].id))
    db.commit()
    ids = {name: user.id for name, user in users.items()}
    ids["team"] = team.id
    db.close()
    return ids


def client_for(email: str) -> TestClient:
    client = TestClient(app)
    res = client.post("/auth/login", json={"email": email, "password": PASSWORD})
    assert res.status_code == 200
    return client


def notifications_for(user_id: int) -> list[Notification]:
    db = app_db.SessionLocal()
    rows = db.scalars(select(Notification).where(Notification.user_id == user_id).order_by(Notification.id)).all()
    db.close()
    return list(rows)


def report_incident(client: TestClient, **overrides):
    payload = {
        "incident_type": "incident",
        "description": "Slipped on wet floor",
        "location": "Dock 3",
        "severity": "high",
        "incident_date": date.today().isoformat(),
    }
    payload.update(overrides)
    return client.post("/api/worker/incidents", json=payload)


def test_worker_report_opens_case_and_blocks_a_second_report():
    ids = seed_organisation()
    worker = client_for("worker@example.com")

    assert worker.get("/api/worker/can-report-incident").json()["can_report"] is True

    first = report_incident(worker)
    assert first.status_code == 201
    case = first.json()
    assert case["case_status"] == "new"
    assert case["status_label"] == "NEW CASE"
    assert case["type"] == "accident"
    assert case["priority"] == "HIGH"
    assert case["worker_name"] == "Sam Rivera"
    assert case["case_number"].startswith("CASE-")

    second = report_incident(worker, incident_type="near_miss")
    assert second.status_code == 409

    check = worker.get("/api/worker/can-report-incident").json()
    assert check["can_report"] is False
    assert check["has_active_case"] is True

    assert [n.type for n in notifications_for(ids["supervisor"])] == ["system"]
    assert [n.type for n in notifications_for(ids["leader"])] == ["system"]
    assert notifications_for(ids["worker"])[0].title == "Report Submitted"

    cases = worker.get("/api/worker/cases").json()
    assert [c["id"] for c in cases] == [case["id"]]


def test_worker_without_team_cannot_report():
    seed_organisation()
    db = app_db.SessionLocal()
    db.add(User(email="loner@example.com", password_hash=hash_password(PASSWORD), role="worker"))
    db.commit()
    db.close()

    res = report_incident(client_for("loner@example.com"))
    assert res.status_code == 404


def test_supervisor_exception_dates_are_validated():
    ids = seed_organisation()
    supervisor = client_for("supervisor@example.com")
    today = date.today()

    backwards = supervisor.post(
        "/api/supervisor/incidents",
        json={
            "worker_id": ids["worker"],
            "team_id": ids["team"],
            "exception_type": "medical_leave",
            "start_date": today.isoformat(),
            "end_date": (today - timedelta(days=1)).isoformat(),
        },
    )
    assert backwards.status_code == 400
    assert backwards.json()["detail"] == "end_date cannot be before start_date"

    same_day = supervisor.post(
        "/api/supervisor/incidents",
        json={
            "worker_id": ids["worker"],
            "team_id": ids["team"],
            "exception_type": "medical_leave",
            "start_date": today.isoformat(),
            "end_date": today.isoformat(),
        },
    )
    assert same_day.status_code == 201
    assert same_day.json()["priority"] == "MEDIUM"

    again = supervisor.post(
        "/api/supervisor/incidents",
        json={
            "worker_id": ids["worker"],
            "team_id": ids["team"],
            "exception_type": "transfer",
            "start_date": today.isoformat(),
        },
    )
    assert again.status_code == 409


def test_full_case_lifecycle_and_schedule_release():
    ids = seed_organisation()
    worker = client_for("worker@example.com")
    leader = client_for("leader@example.com")
    supervisor = client_for("supervisor@example.com")
    whs = client_for("whs@example.com")
    clinician = client_for("clinician@example.com")
    today = date.today()
    tomorrow = today + timedelta(days=1)

    single = leader.post(
        "/api/team-leader/schedules",
        json={
            "worker_id": ids["worker"],
            "team_id": ids["team"],
            "pattern": {"kind": "single_date", "scheduled_date": today.isoformat()},
            "start_time": "08:00",
            "end_time": "16:00",
        },
    )
    assert single.status_code == 201
    recurring = leader.post(
        "/api/team-leader/schedules",
        json={
            "worker_id": ids["worker"],
            "team_id": ids["team"],
            "pattern": {"kind": "recurring", "day_of_week": day_of_week_for(tomorrow)},
            "start_time": "08:00",
            "end_time": "16:00",
            "requires_daily_checkin": True,
            "daily_checkin_start_time": "06:00",
            "daily_checkin_end_time": "07:30",
        },
    )
    assert recurring.status_code == 201
    assert recurring.json()["kind"] == "recurring"
    assert len(leader.get(f"/api/team-leader/schedules/due?on={today.isoformat()}").json()) == 1

    case_id = report_incident(worker).json()["id"]

    # The open case exempts the worker from today's shift.
    assert leader.get(f"/api/team-leader/schedules/due?on={today.isoformat()}").json() == []
    assert worker.get("/api/worker/schedules/due").json() == []

    assigned = supervisor.patch(f"/api/supervisor/incidents/{case_id}/assign-to-whs")
    assert assigned.status_code == 200
    assert assigned.json()["case_status"] == "assessed"
    assert supervisor.patch(f"/api/supervisor/incidents/{case_id}/assign-to-whs").status_code == 400
    assert [n.type for n in notifications_for(ids["whs"])] == ["incident_assigned"]

    with_clinician = whs.patch(f"/api/whs/cases/{case_id}/assign-clinician", json={"clinician_id": ids["clinician"]})
    assert with_clinician.status_code == 200
    assert with_clinician.json()["clinician_id"] == ids["clinician"]
    assert [n.type for n in notifications_for(ids["clinician"])] == ["case_assigned_to_clinician"]

    listed = clinician.get("/api/clinician/cases?status=assessed").json()
    assert [c["id"] for c in listed] == [case_id]

    invalid = clinician.patch(f"/api/clinician/cases/{case_id}/status", json={"status": "escalated"})
    assert invalid.status_code == 400
    assert "Must be one of" in invalid.json()["detail"]

    triaged = clinician.patch(f"/api/clinician/cases/{case_id}/status", json={"status": "triaged"})
    assert triaged.status_code == 200
    assert triaged.json()["previous_status"] == "assessed"
    assert triaged.json()["case"]["case_status"] == "triaged"
    assert notifications_for(ids["worker"])[-1].type == "case_updated"

    # Unrelated keys already in the notes survive a transition.
    db = app_db.SessionLocal()
    exception = db.get(WorkerException, case_id)
    exception.notes = json.dumps({**json.loads(exception.notes), "triage_summary": "wrist"})
    db.commit()
    db.close()

    closed = supervisor.patch(f"/api/supervisor/incidents/{case_id}/close")
    assert closed.status_code == 200
    assert closed.json() == {"ok": True, "case_status": "closed", "reactivated_schedules": 2}
    assert supervisor.patch(f"/api/supervisor/incidents/{case_id}/close").status_code == 400

    db = app_db.SessionLocal()
    exception = db.get(WorkerException, case_id)
    notes = json.loads(exception.notes)
    assert exception.is_active is False
    assert exception.deactivated_at is not None
    assert notes["case_status"] == "closed"
    assert notes["triage_summary"] == "wrist"
    assert notes["approved_by"] == "supervisor@example.com"
    history = db.scalars(select(CaseStatusHistory).where(CaseStatusHistory.exception_id == case_id)).all()
    assert [(h.from_status, h.to_status) for h in history] == [("assessed", "triaged"), ("triaged", "closed")]
    db.close()

    for recipient in ("worker", "supervisor", "leader"):
        closed_notes = [n for n in notifications_for(ids[recipient]) if n.type == "case_closed"]
        assert len(closed_notes) == 1
        assert closed_notes[0].data["reactivated_schedules"] == 2
        assert closed_notes[0].data["status_label"] == "CLOSED"
        assert closed_notes[0].data["approved_by"] == "supervisor@example.com"
        assert closed_notes[0].data["approved_at"] is not None

    assert len(leader.get(f"/api/team-leader/schedules/due?on={today.isoformat()}").json()) == 1
    assert worker.get("/api/worker/can-report-incident").json()["can_report"] is True


def test_return_to_work_sign_off_lets_worker_report_again():
    ids = seed_organisation()
    worker = client_for("worker@example.com")
    whs = client_for("whs@example.com")
    clinician = client_for("clinician@example.com")

    case_id = report_incident(worker).json()["id"]
    whs.patch(f"/api/whs/cases/{case_id}/assign-clinician", json={"clinician_id": ids["clinician"]})

    rtw = clinician.patch(
        f"/api/clinician/cases/{case_id}/return-to-work",
        json={"duty_type": "modified", "return_date": (date.today() + timedelta(days=3)).isoformat()},
    )
    assert rtw.status_code == 200
    body = rtw.json()
    assert body["case_status"] == "return_to_work"
    assert body["return_to_work_duty_type"] == "modified"
    assert body["approved_by"] == "Dr Dana Lee"
    assert body["is_active"] is True

    assert worker.get("/api/worker/can-report-incident").json()["can_report"] is True
    new_case = report_incident(worker, incident_type="near_miss")
    assert new_case.status_code == 201
    assert new_case.json()["type"] == "other"

    db = app_db.SessionLocal()
    old = db.get(WorkerException, case_id)
    assert old.is_active is False
    assert json.loads(old.notes)["case_status"] == "closed"
    history = db.scalars(select(CaseStatusHistory).where(CaseStatusHistory.exception_id == case_id)).all()
    assert [(h.from_status, h.to_status, h.changed_by_user_id) for h in history] == [
        ("new", "return_to_work", ids["clinician"]),
        ("return_to_work", "closed", None),
    ]
    db.close()


def test_roles_are_enforced_on_case_routes():
    ids = seed_organisation()
    worker = client_for("worker@example.com")
    case_id = report_incident(worker).json()["id"]

    assert worker.patch(f"/api/supervisor/incidents/{case_id}/close").status_code == 403
    assert worker.patch(f"/api/clinician/cases/{case_id}/status", json={"status": "closed"}).status_code == 403

    # An unassigned clinician cannot see the case.
    clinician = client_for("clinician@example.com")
    res = clinician.patch(f"/api/clinician/cases/{case_id}/status", json={"status": "triaged"})
    assert res.status_code == 404

    whs = client_for("whs@example.com")
    not_a_clinician = whs.patch(f"/api/whs/cases/{case_id}/assign-clinician", json={"clinician_id": ids["worker"]})
    assert not_a_clinician.status_code == 400


def test_notifications_can_be_marked_read():
    ids = seed_organisation()
    report_incident(client_for("worker@example.com"))
    supervisor = client_for("supervisor@example.com")

    unread = supervisor.get("/api/notifications?unread_only=true").json()
    assert len(unread) == 1
    assert unread[0]["data"]["worker_id"] == ids["worker"]

    marked = supervisor.patch(f"/api/notifications/{unread[0]['id']}/read")
    assert marked.status_code == 200
    assert marked.json()["is_read"] is True
    assert supervisor.get("/api/notifications?unread_only=true").json() == []

    leader = client_for("leader@example.com")
    assert leader.patch(f"/api/notifications/{unread[0]['id']}/read").status_code == 404
    assert leader.patch("/api/notifications/read-all").json() == {"ok": True, "updated": 1}


def add_exception(worker_id: int, team_id: int, **extra) -> int:
    db = app_db.SessionLocal()
    exception = WorkerException(
        user_id=worker_id,
        team_id=team_id,
        exception_type="injury",
        start_date=date.today() - timedelta(days=3),
        **extra,
    )
    db.add(exception)
    db.commit()
    exception_id = exception.id
    db.close()
    return exception_id


def test_database_allows_only_one_active_exception_per_worker():
    ids = seed_organisation()
    add_exception(ids["worker"], ids["team"], is_active=True)
    add_exception(ids["worker"], ids["team"], is_active=False)

    db = app_db.SessionLocal()
    db.add(
        WorkerException(
            user_id=ids["worker"],
            team_id=ids["team"],
            exception_type="transfer",
            start_date=date.today(),
            is_active=True,
        )
    )
    with pytest.raises(IntegrityError):
        db.commit()
    db.rollback()
    db.close()


def test_concurrent_report_is_a_conflict_not_a_server_error(monkeypatch):
    ids = seed_organisation()
    add_exception(ids["worker"], ids["team"], is_active=True)
    # Skip the application-level check so the unique index is what rejects the row.
    monkeypatch.setattr(cases, "release_finished_exception", lambda db, user_id: None)

    res = report_incident(client_for("worker@example.com"))
    assert res.status_code == 409
    assert res.json()["detail"] == "You already have an active case"

    db = app_db.SessionLocal()
    assert len(db.scalars(select(WorkerException).where(WorkerException.user_id == ids["worker"])).all()) == 1
    db.close()


def test_closing_an_already_inactive_case_changes_only_the_notes():
    ids = seed_organisation()
    leader = client_for("leader@example.com")
    tomorrow = date.today() + timedelta(days=1)
    schedule = leader.post(
        "/api/team-leader/schedules",
        json={
            "worker_id": ids["worker"],
            "team_id": ids["team"],
            "pattern": {"kind": "single_date", "scheduled_date": tomorrow.isoformat()},
            "start_time": "08:00",
            "end_time": "16:00",
        },
    )
    assert schedule.status_code == 201
    case_id = add_exception(ids["worker"], ids["team"], is_active=False, clinician_id=ids["clinician"])

    clinician = client_for("clinician@example.com")
    res = clinician.patch(f"/api/clinician/cases/{case_id}/status", json={"status": "closed"})
    assert res.status_code == 200
    body = res.json()
    assert body["reactivated_schedules"] == 0
    assert body["case"]["is_active"] is False
    assert body["case"]["case_status"] == "closed"
    assert body["case"]["deactivated_at"] is None

    for recipient in ("worker", "supervisor", "leader"):
        assert [n for n in notifications_for(ids[recipient]) if n.type == "case_closed"] == []
