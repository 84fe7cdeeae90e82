from __future__ import annotations

import json
from datetime import date, timedelta

from fastapi.testclient import TestClient
from sqlalchemy import select

import whs_app.db as app_db
from whs_app.jobs import deactivate_expired_exceptions
from whs_app.main import app
from whs_app.models import CaseStatusHistory, Notification, Team, TeamMember, User, WorkerException
from whs_app.security import hash_password

PASSWORD = "correct-horse-battery"


def seed_team() -> dict[str, int]:
    db = app_db.SessionLocal()
    password_hash = hash_password(PASSWORD)
    leader = User(email="leader@example.com", password_hash=password_hash, role="team_leader")
    supervisor = User(email="supervisor@example.com", password_hash=password_hash, role="supervisor")
    worker = User(email="worker@example.com", password_hash=password_hash, role="worker")
    admin = User(email="admin@example.com", password_hash=password_hash, role="admin")
    db.add_all([leader, supervisor, worker, admin])
    db.flush()
    team = Team(name="Night shift", team_leader_id=leader.id, supervisor_id=supervisor.id)
    db.add(team)
    db.flush()
    db.add(TeamMember(team_id=team.id, user_id=worker.id))
    db.commit()
    ids = {"leader": leader.id, "supervisor": supervisor.id, "worker": worker.id, "team": team.id}
    db.close()
    return ids


def client_for(email: str) -> TestClient:
    client = TestClient(app)
    assert client.post("/auth/login", json={"email": email, "password": PASSWORD}).status_code == 200
    return client


def add_exception(worker_id: int, team_id: int, start: date, end: date | None, **extra) -> int:
    db = app_db.SessionLocal()
    exception = WorkerException(
        user_id=worker_id,
        team_id=team_id,
        exception_type="medical_leave",
        start_date=start,
        end_date=end,
        is_active=True,
        **extra,
    )
    db.add(exception)
    db.commit()
    exception_id = exception.id
    db.close()
    return exception_id


def test_red_checkin_notifies_leader_and_supervisor_once_per_day():
    ids = seed_team()
    worker = client_for("worker@example.com")

    res = worker.post(
        "/api/worker/checkins",
        json={"pain_level": 8, "fatigue_level": 7, "sleep_quality": 3, "stress_level": 6, "predicted_readiness": "Red"},
    )
    assert res.status_code == 201
    assert res.json()["team_id"] == ids["team"]

    db = app_db.SessionLocal()
    alerts = db.scalars(select(Notification).where(Notification.type == "worker_not_fit_to_work")).all()
    assert sorted(n.user_id for n in alerts) == sorted([ids["leader"], ids["supervisor"]])
    assert alerts[0].data["predicted_readiness"] == "Red"
    db.close()

    duplicate = worker.post("/api/worker/checkins", json={"predicted_readiness": "Green"})
    assert duplicate.status_code == 409


def test_green_checkin_sends_no_alert_and_scores_are_bounded():
    seed_team()
    worker = client_for("worker@example.com")

    out_of_range = worker.post("/api/worker/checkins", json={"pain_level": 11, "predicted_readiness": "Green"})
    assert out_of_range.status_code == 422

    assert worker.post("/api/worker/checkins", json={"predicted_readiness": "Green"}).status_code == 201
    db = app_db.SessionLocal()
    assert db.scalars(select(Notification)).all() == []
    db.close()


def test_warm_up_is_recorded_once_per_day():
    seed_team()
    worker = client_for("worker@example.com")
    assert worker.post("/api/worker/warm-ups", json={"completed": True}).status_code == 201
    assert worker.post("/api/worker/warm-ups", json={"completed": True}).status_code == 409


def test_deactivate_expired_exceptions_closes_only_past_end_dates():
    ids = seed_team()
    today = date(2026, 6, 15)
    expired = add_exception(
        ids["worker"],
        ids["team"],
        today - timedelta(days=10),
        today - timedelta(days=1),
        notes="Physio letter on file",
    )

    db = app_db.SessionLocal()
    other = User(email="other@example.com", password_hash="x", role="worker")
    db.add(other)
    db.commit()
    other_id = other.id
    db.close()
    ends_today = add_exception(other_id, ids["team"], today - timedelta(days=3), today)

    db = app_db.SessionLocal()
    assert deactivate_expired_exceptions(db, today) == [expired]
    db.close()

    db = app_db.SessionLocal()
    closed = db.get(WorkerException, expired)
    assert closed.is_active is False
    assert closed.deactivated_at is not None
    assert json.loads(closed.notes) == {"text": "Physio letter on file", "case_status": "closed"}
    assert db.get(WorkerException, ends_today).is_active is True
    history = db.scalars(select(CaseStatusHistory)).all()
    assert [(h.exception_id, h.from_status, h.to_status, h.changed_by_user_id) for h in history] == [
        (expired, "new", "closed", None)
    ]
    assert db.scalars(select(Notification)).all() == []
    db.close()


def test_admin_can_trigger_expiry_job():
    ids = seed_team()
    add_exception(ids["worker"], ids["team"], date.today() - timedelta(days=5), date.today() - timedelta(days=1))

    admin = client_for("admin@example.com")
    res = admin.post("/api/admin/jobs/deactivate-expired-exceptions")
    assert res.status_code == 200
    assert res.json()["deactivated"] == 1

    worker = client_for("worker@example.com")
    assert worker.get("/api/worker/can-report-incident").json()["can_report"] is True
