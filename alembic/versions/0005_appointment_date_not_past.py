"""reject open appointments dated in the past

Revision ID: 0005_appointment_date_not_past
Revises: 0004_rehabilitation_and_appointments
Create Date: 2026-09-15
"""

from alembic import op

revision = "0005_appointment_date_not_past"
down_revision = "0004_rehabilitation_and_appointments"
branch_labels = None
depends_on = None


def upgrade() -> None:
    # SQLite will not accept CURRENT_DATE inside a CHECK; the API enforces the same rule there.
    if op.get_bind().dialect.name != "postgresql":
        return
    op.execute(
        "UPDATE appointments SET status = 'cancelled', "
        "cancellation_reason = COALESCE(cancellation_reason, 'Expired before the date constraint was added') "
        "WHERE appointment_date < CURRENT_DATE AND status IN ('pending', 'confirmed')"
    )
    op.execute(
        "ALTER TABLE appointments ADD CONSTRAINT appointment_date_not_past "
        "CHECK (appointment_date >= CURRENT_DATE OR status IN ('completed', 'cancelled', 'declined')) NOT VALID"
    )


def downgrade() -> None:
    if op.get_bind().dialect.name != "postgresql":
        return
    op.execute("ALTER TABLE appointments DROP CONSTRAINT IF EXISTS appointment_date_not_past")
