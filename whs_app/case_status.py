"""Case lifecycle status.

A case is a ``worker_exceptions`` row. Its lifecycle status lives in a JSON
object stored in the ``notes`` text column::

    {"case_status": "assessed", "approved_by": "Dr Lee", "approved_at": "2026-03-01T10:00:00+00:00"}

Older rows carry plain-text notes or nothing at all, so every reader goes
through :func:`derive_case_status`, which falls back to the coarse flags on the
row when no structured status is present.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any

STATUS_ORDER = ("new", "triaged", "assessed", "in_rehab", "return_to_work", "closed")

STATUS_DISPLAY = {
    "new": "NEW CASE",
    "triaged": "TRIAGED",
    "assessed": "ASSESSED",
    "in_rehab": "IN REHAB",
    "return_to_work": "RETURN TO WORK",
    "closed": "CLOSED",
}

# Statuses that record who signed the case off.
APPROVAL_STATUSES = ("return_to_work", "closed")

# Key under which pre-existing plain-text notes are kept when structured state is first written.
PLAIN_TEXT_NOTES_KEY = "text"


class CaseStatusError(ValueError):
    pass


def is_valid_case_status(value: Any) -> bool:
    return isinstance(value, str) and value in STATUS_ORDER


def parse_notes(notes: Any) -> dict[str, Any] | None:
    """Return the notes JSON object, or None for absent, plain-text or non-object notes."""
    if not notes or not isinstance(notes, str):
        return None
    try:
        data = json.loads(notes)
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None
    return data


def case_status_from_notes(notes: Any) -> str | None:
    data = parse_notes(notes)
    if data is None:
        return None
    status = data.get("case_status")
    return status if is_valid_case_status(status) else None


def infer_case_status(*, is_active: bool, assigned_to_whs: bool, has_active_plan: bool) -> str:
    if not is_active:
        return "closed"
    if has_active_plan:
        return "in_rehab"
    if assigned_to_whs:
        return "assessed"
    return "new"


def derive_case_status(
    notes: Any,
    *,
    is_active: bool,
    assigned_to_whs: bool,
    has_active_plan: bool,
) -> str:
    from_notes = case_status_from_notes(notes)
    if from_notes is not None:
        return from_notes
    return infer_case_status(is_active=is_active, assigned_to_whs=assigned_to_whs, has_active_plan=has_active_plan)


def approval_from_notes(notes: Any) -> tuple[str | None, str | None]:
    data = parse_notes(notes) or {}
    approved_by = data.get("approved_by")
    approved_at = data.get("approved_at")
    return (
        approved_by if isinstance(approved_by, str) else None,
        approved_at if isinstance(approved_at, str) else None,
    )


def validate_transition_target(status: Any) -> str:
    if not is_valid_case_status(status):
        raise CaseStatusError(f"Invalid case status. Must be one of: {', '.join(STATUS_ORDER)}")
    return status


def merge_case_notes(
    notes: Any,
    status: str,
    *,
    approved_by: str | None = None,
    approved_at: datetime | None = None,
) -> str:
    """Write ``status`` into the notes JSON, keeping every other key already there."""
    validate_transition_target(status)
    data = parse_notes(notes)
    if data is None:
        data = {}
        if isinstance(notes, str) and notes.strip():
            data[PLAIN_TEXT_NOTES_KEY] = notes
    data["case_status"] = status
    if status in APPROVAL_STATUSES and approved_by:
        data["approved_by"] = approved_by
        if approved_at is not None:
            data["approved_at"] = approved_at.isoformat()
    return json.dumps(data)


def closes_case(status: str) -> bool:
    return status == "closed"


def blocks_new_report(notes: Any, deactivated_at: datetime | None) -> bool:
    # An active row still counts as finished once it was deactivated or signed off.
    if deactivated_at is not None:
        return False
    return case_status_from_notes(notes) not in APPROVAL_STATUSES


def display_label(status: str) -> str:
    return STATUS_DISPLAY.get(status, status.upper())


def case_priority(exception_type: str) -> str:
    if exception_type in {"injury", "accident"}:
        return "HIGH"
    if exception_type == "medical_leave":
        return "MEDIUM"
    return "LOW"


def case_number(exception_id: int, created_at: datetime) -> str:
    return f"CASE-{created_at:%Y%m%d-%H%M%S}-{exception_id:04d}"
