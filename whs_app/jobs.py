"""Periodic maintenance, triggered from outside the web process (cron, scheduler).

    python -m whs_app.jobs
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

import whs_app.db as app_db
from whs_app.cases import close_without_actor
from whs_app.models import WorkerException

logger = logging.getLogger(__name__)


def deactivate_expired_exceptions(db: Session, today: date | None = None) -> list[int]:
    """Close active exceptions whose end date has passed. Returns the ids it closed."""
    today = today or date.today()
    now = datetime.now(timezone.utc)
    expired = db.scalars(
        select(WorkerException).where(
            WorkerException.is_active.is_(True),
            WorkerException.end_date.is_not(None),
            WorkerException.end_date < today,
        )
    ).all()
    closed_ids = []
    for exception in expired:
        close_without_actor(db, exception, now)
        closed_ids.append(exception.id)
    db.commit()
    logger.info("Deactivated %s expired exception(s) as of %s", len(closed_ids), today.isoformat())
    return closed_ids


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    db = app_db.SessionLocal()
    try:
        deactivate_expired_exceptions(db)
    finally:
        db.close()


if __name__ == "__main__":
    main()
