from __future__ import annotations

from datetime import date, time

import pytest
from sqlalchemy.exc import IntegrityError

import whs_app.db as app_db
from whs_app.models import Team, TeamMember, User, WorkerException, WorkerSchedule
from whs_app.schedules import (
    Recurring,
    ScheduleValidationError,
    SingleDate,
    apply_kind,
    count_schedules_released,
    day_of_week_for,
    occurs_between,
    occurs_on,
    schedules_due_on,
    validate_schedule,
)

# 2026-03-01 is a Sunday.
SUNDAY = date(2026, 3, 1)
MONDAY = date(2026, 3, 2)


def seed_worker(db, email: str = "worker@example.com") -> tuple[User, Team]:
    leader = User(email=f"leader-{email}", password_hash="x", role="team_leader")
    worker = User(email=email, password_hash="x", role="worker")
    db.add_all([leader, worker])
    db.flush()
    team = Team(name=f"Team {email}", team_leader_id=leader.id)
    db.add(team)
    db.flush()
    db.add(TeamMember(team_id=team.id, user_id=worker.id))
    db.commit()
    return worker, team


def add_schedule(db, worker: User, team: Team, kind, start: time = time(8, 0), end: time = time(16, 0), **extra):
    schedule = WorkerSchedule(worker_id=worker.id, team_id=team.id, start_time=start, end_time=end, **extra)
    apply_kind(schedule, kind)
    db.add(schedule)
    db.commit()
    return schedule


def test_day_of_week_counts_from_sunday():
    assert day_of_week_for(SUNDAY) == 0
    assert day_of_week_for(MONDAY) == 1
    assert day_of_week_for(date(2026, 3, 7)) == 6


def test_recurring_occurrence_respects_effective_and_expiry_dates():
    kind = Recurring(1, effective_date=date(2026, 3, 3), expiry_date=date(2026, 3, 20))
    assert not occurs_on(kind, MONDAY)
    assert occurs_on(kind, date(2026, 3, 9))
    assert occurs_on(kind, date(2026, 3, 16))
    assert not occurs_on(kind, date(2026, 3, 23))
    assert not occurs_on(kind, date(2026, 3, 10))


def test_occurs_between():
    assert occurs_between(SingleDate(MONDAY), SUNDAY, MONDAY)
    assert not occurs_between(SingleDate(SUNDAY), MONDAY, None)
    assert occurs_between(Recurring(3), MONDAY, None)
    # Monday..Tuesday contains no Wednesday.
    assert not occurs_between(Recurring(3), MONDAY, date(2026, 3, 3))
    assert not occurs_between(Recurring(1, expiry_date=date(2026, 3, 8)), date(2026, 3, 3), None)


@pytest.mark.parametrize(
    "kind, start, end, checkin, message",
    [
        (SingleDate(MONDAY), time(9), time(9), {}, "end_time must be after start_time"),
        (Recurring(7), time(8), time(9), {}, "day_of_week must be between 0 (Sunday) and 6 (Saturday)"),
        (
            Recurring(1, effective_date=date(2026, 3, 10), expiry_date=date(2026, 3, 1)),
            time(8),
            time(9),
            {},
            "expiry_date cannot be before effective_date",
        ),
        (
            SingleDate(MONDAY),
            time(8),
            time(9),
            {"requires_daily_checkin": True, "daily_checkin_start_time": time(6)},
            "Daily check-in window requires both start and end times",
        ),
    ],
)
def test_validate_schedule_rejects(kind, start, end, checkin, message):
    with pytest.raises(ScheduleValidationError) as excinfo:
        validate_schedule(kind, start, end, **checkin)
    assert str(excinfo.value) == message


def test_database_rejects_schedule_with_both_or_neither_pattern():
    db = app_db.SessionLocal()
    worker, team = seed_worker(db)

    both = WorkerSchedule(
        worker_id=worker.id,
        team_id=team.id,
        scheduled_date=MONDAY,
        day_of_week=1,
        start_time=time(8),
        end_time=time(16),
    )
    db.add(both)
    with pytest.raises(IntegrityError):
        db.commit()
    db.rollback()

    neither = WorkerSchedule(worker_id=worker.id, team_id=team.id, start_time=time(8), end_time=time(16))
    db.add(neither)
    with pytest.raises(IntegrityError):
        db.commit()
    db.rollback()
    db.close()


def test_database_rejects_double_booking_within_the_same_mode_only():
    db = app_db.SessionLocal()
    worker, team = seed_worker(db)
    add_schedule(db, worker, team, SingleDate(MONDAY))
    add_schedule(db, worker, team, Recurring(1))

    db.add(WorkerSchedule(worker_id=worker.id, team_id=team.id, scheduled_date=MONDAY, start_time=time(8), end_time=time(12)))
    with pytest.raises(IntegrityError):
        db.commit()
    db.rollback()

    db.add(WorkerSchedule(worker_id=worker.id, team_id=team.id, day_of_week=1, start_time=time(8), end_time=time(12)))
    with pytest.raises(IntegrityError):
        db.commit()
    db.rollback()

    # A different start time on the same day is a separate shift.
    add_schedule(db, worker, team, SingleDate(MONDAY), start=time(17), end=time(20))
    db.close()


def test_due_schedules_skip_workers_with_a_covering_exception():
    db = app_db.SessionLocal()
    worker, team = seed_worker(db)
    other, other_team = seed_worker(db, "other@example.com")
    add_schedule(db, worker, team, Recurring(1))
    add_schedule(db, other, other_team, SingleDate(MONDAY))
    add_schedule(db, worker, team, Recurring(2))

    due = schedules_due_on(db, MONDAY)
    assert sorted(s.worker_id for s in due) == sorted([worker.id, other.id])

    exception = WorkerException(
        user_id=worker.id,
        team_id=team.id,
        exception_type="injury",
        start_date=SUNDAY,
        end_date=None,
        is_active=True,
    )
    db.add(exception)
    db.commit()

    assert [s.worker_id for s in schedules_due_on(db, MONDAY)] == [other.id]
    assert schedules_due_on(db, MONDAY, team_ids=[team.id]) == []
    assert schedules_due_on(db, MONDAY, worker_id=worker.id) == []

    exception.is_active = False
    db.commit()
    assert [s.worker_id for s in schedules_due_on(db, MONDAY, team_ids=[team.id])] == [worker.id]
    db.close()


def test_exception_that_ends_before_the_day_does_not_exempt():
    db = app_db.SessionLocal()
    worker, team = seed_worker(db)
    add_schedule(db, worker, team, SingleDate(MONDAY))
    db.add(
        WorkerException(
            user_id=worker.id,
            team_id=team.id,
            exception_type="medical_leave",
            start_date=date(2026, 2, 20),
            end_date=SUNDAY,
            is_active=True,
        )
    )
    db.commit()
    assert len(schedules_due_on(db, MONDAY)) == 1
    db.close()


def test_count_schedules_released_only_counts_future_occurrences_in_the_exception_window():
    db = app_db.SessionLocal()
    worker, team = seed_worker(db)
    exception = WorkerException(
        user_id=worker.id,
        team_id=team.id,
        exception_type="injury",
        start_date=MONDAY,
        end_date=date(2026, 3, 10),
        is_active=True,
    )
    db.add(exception)
    db.commit()

    add_schedule(db, worker, team, SingleDate(date(2026, 3, 4)))
    add_schedule(db, worker, team, SingleDate(date(2026, 3, 6)))
    add_schedule(db, worker, team, Recurring(1))
    add_schedule(db, worker, team, Recurring(3, expiry_date=date(2026, 3, 4)), start=time(5), end=time(7))
    add_schedule(db, worker, team, SingleDate(date(2026, 3, 7)), is_active=False)

    assert count_schedules_released(db, exception, date(2026, 3, 5)) == 2
    db.close()
