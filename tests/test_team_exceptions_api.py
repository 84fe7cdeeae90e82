from __future__ import annotations

from datetime import date, timedelta

from fastapi.testclient import TestClient
from sqlalchemy import select

import whs_app.db as app_db
from whs_app.main import app
from whs_app.models import CaseStatusHistory, Team, TeamMember, User, WorkerException
from whs_app.schedules import day_of_week_for
from whs_app.security import hash_password

PASSWORD = "correct-horse-battery"


def seed_teams() -> dict[str, int]:
    db = app_db.SessionLocal()
    password_hash = hash_password(PASSWORD)
    leader = User(email="leader@example.com", password_hash=password_hash, role="team_leader")
    other_leader = User(email="other-leader@example.com", password_hash=password_hash, role="team_leader")
    worker = User(
        email="worker@example.com",
        password_hash=password_hash,
        role="worker",
        first_name="Sam",
        last_name="Rivera",
    )
    db.add_all([leader, other_leader, worker])
    db.flush()
    team = Team(name="Packing", team_leader_id=leader.id)
    other_team = Team(name="Dispatch", team_leader_id=other_leader.id)
    db.add_all([team, other_team])
    db.flush()
    member = TeamMember(team_id=team.id, user_id=worker.id)
    db.add(member)
    db.commit()
    ids = {
        "leader": leader.id,
        "worker": worker.id,
        "team": team.id,
        "other_team": other_team.id,
        "member": member.id,
    }
    db.close()
    return ids


def client_for(email: str) -> TestClient:
    client = TestClient(app)
    assert client.post("/auth/login", json={"email": email, "password": PASSWORD}).status_code == 200
    return client


def exception_payload(**overrides):
    payload = {
        "exception_type": "medical_leave",
        "reason": "Surgery recovery",
        "start_date": date.today().isoformat(),
        "end_date": (date.today() + timedelta(days=5)).isoformat(),
    }
    payload.update(overrides)
    return payload


def test_team_leader_creates_updates_and_lists_member_exception():
    ids = seed_teams()
    leader = client_for("leader@example.com")
    url = f"/api/teams/members/{ids['member']}/exception"

    assert leader.get(url).json() == {"exception": None, "transferred": False}

    created = leader.post(url, json=exception_payload())
    assert created.status_code == 200
    exception = created.json()["exception"]
    assert exception["type"] == "medical_leave"
    assert exception["worker_id"] == ids["worker"]
    assert exception["case_status"] == "new"

    longer = (date.today() + timedelta(days=10)).isoformat()
    updated = leader.post(url, json=exception_payload(end_date=longer))
    assert updated.status_code == 200
    assert updated.json()["exception"]["id"] == exception["id"]
    assert updated.json()["exception"]["end_date"] == longer

    backwards = leader.post(url, json=exception_payload(end_date=(date.today() - timedelta(days=1)).isoformat()))
    assert backwards.status_code == 400
    assert backwards.json()["detail"] == "end_date cannot be before start_date"

    assert [e["id"] for e in leader.get("/api/teams/exceptions").json()] == [exception["id"]]
    assert leader.get(url).json()["exception"]["id"] == exception["id"]

    outsider = client_for("other-leader@example.com")
    assert outsider.get(url).status_code == 404
    assert outsider.get("/api/teams/exceptions").json() == []


def test_removing_an_exception_closes_the_case_and_reports_released_schedules():
    ids = seed_teams()
    leader = client_for("leader@example.com")
    today = date.today()
    tomorrow = today + timedelta(days=1)

    for pattern in (
        {"kind": "single_date", "scheduled_date": today.isoformat()},
        {"kind": "recurring", "day_of_week": day_of_week_for(tomorrow)},
    ):
        res = leader.post(
            "/api/team-leader/schedules",
            json={
                "worker_id": ids["worker"],
                "team_id": ids["team"],
                "pattern": pattern,
                "start_time": "08:00",
                "end_time": "16:00",
            },
        )
        assert res.status_code == 201

    saved = leader.post(
        f"/api/teams/members/{ids['member']}/exception",
        json=exception_payload(exception_type="injury", end_date=None),
    )
    exception_id = saved.json()["exception"]["id"]
    assert leader.get(f"/api/team-leader/schedules/due?on={today.isoformat()}").json() == []

    removed = leader.delete(f"/api/teams/exceptions/{exception_id}")
    assert removed.status_code == 200
    assert removed.json() == {"ok": True, "case_status": "closed", "reactivated_schedules": 2}

    assert len(leader.get(f"/api/team-leader/schedules/due?on={today.isoformat()}").json()) == 1
    assert leader.get("/api/teams/exceptions").json() == []
    assert leader.delete(f"/api/teams/exceptions/{exception_id}").status_code == 400

    db = app_db.SessionLocal()
    history = db.scalars(select(CaseStatusHistory).where(CaseStatusHistory.exception_id == exception_id)).all()
    assert [(h.from_status, h.to_status, h.changed_by_user_id) for h in history] == [("new", "closed", ids["leader"])]
    db.close()


def test_transfer_exception_moves_the_worker_to_the_new_team():
    ids = seed_teams()
    leader = client_for("leader@example.com")

    res = leader.post(
        f"/api/teams/members/{ids['member']}/exception",
        json=exception_payload(exception_type="transfer", end_date=None, transfer_to_team_id=ids["other_team"]),
    )
    assert res.status_code == 200
    assert res.json()["transferred"] is True
    assert res.json()["exception"]["team_id"] == ids["team"]

    db = app_db.SessionLocal()
    assert db.get(TeamMember, ids["member"]).team_id == ids["other_team"]
    db.close()

    missing = leader.post(
        f"/api/teams/members/{ids['member']}/exception",
        json=exception_payload(exception_type="transfer", transfer_to_team_id=9999),
    )
    # The member now belongs to a team this leader does not lead.
    assert missing.status_code == 404


def test_transfer_to_unknown_team_is_rejected():
    ids = seed_teams()
    leader = client_for("leader@example.com")

    res = leader.post(
        f"/api/teams/members/{ids['member']}/exception",
        json=exception_payload(exception_type="transfer", transfer_to_team_id=9999),
    )
    assert res.status_code == 400

    db = app_db.SessionLocal()
    assert db.scalars(select(WorkerException)).all() == []
    db.close()


def test_team_leader_edits_and_removes_member():
    ids = seed_teams()
    leader = client_for("leader@example.com")
    url = f"/api/teams/members/{ids['member']}"

    edited = leader.patch(url, json={"first_name": "Alex", "phone": " 0400 000 000 ", "compliance_percentage": 80})
    assert edited.status_code == 200
    body = edited.json()
    assert body["worker_name"] == "Alex Rivera"
    assert body["phone"] == "0400 000 000"
    assert body["compliance_percentage"] == 80

    assert leader.patch(url, json={}).status_code == 400
    assert leader.patch(url, json={"last_name": "   "}).status_code == 400
    assert client_for("other-leader@example.com").patch(url, json={"first_name": "X"}).status_code == 404
    assert client_for("worker@example.com").patch(url, json={"first_name": "X"}).status_code == 403

    assert leader.delete(url).json() == {"ok": True}
    assert leader.patch(url, json={"first_name": "Alex"}).status_code == 404

    db = app_db.SessionLocal()
    assert db.get(User, ids["worker"]).first_name == "Alex"
    db.close()
