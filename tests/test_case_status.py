from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest

from whs_app.case_status import (
    CaseStatusError,
    approval_from_notes,
    blocks_new_report,
    case_number,
    case_priority,
    derive_case_status,
    display_label,
    merge_case_notes,
    validate_transition_target,
)


def derive(notes, is_active=True, assigned_to_whs=False, has_active_plan=False):
    return derive_case_status(notes, is_active=is_active, assigned_to_whs=assigned_to_whs, has_active_plan=has_active_plan)


def test_status_in_notes_wins_over_row_flags():
    notes = json.dumps({"case_status": "triaged"})
    assert derive(notes, is_active=False, assigned_to_whs=True, has_active_plan=True) == "triaged"


@pytest.mark.parametrize("notes", [None, "", "not json", "{broken", "[1, 2]", '"assessed"'])
def test_unparseable_or_non_object_notes_fall_back_to_inference(notes):
    assert derive(notes) == "new"
    assert derive(notes, is_active=False) == "closed"


def test_unknown_status_value_is_ignored():
    assert derive(json.dumps({"case_status": "escalated"}), assigned_to_whs=True) == "assessed"
    assert derive(json.dumps({"case_status": 3})) == "new"


def test_inference_order():
    assert derive(None, is_active=False, assigned_to_whs=True, has_active_plan=True) == "closed"
    assert derive(None, assigned_to_whs=True, has_active_plan=True) == "in_rehab"
    assert derive(None, assigned_to_whs=True) == "assessed"
    assert derive(None) == "new"


def test_merge_keeps_other_keys_and_round_trips_status():
    notes = json.dumps({"case_status": "new", "triage_summary": "left wrist", "priority_override": 2})
    merged = merge_case_notes(notes, "assessed")
    data = json.loads(merged)
    assert data == {"case_status": "assessed", "triage_summary": "left wrist", "priority_override": 2}
    assert derive(merged, is_active=False) == "assessed"


def test_merge_keeps_plain_text_notes():
    merged = merge_case_notes("Called worker, follow up Monday", "triaged")
    data = json.loads(merged)
    assert data["case_status"] == "triaged"
    assert data["text"] == "Called worker, follow up Monday"


def test_approval_is_recorded_only_for_sign_off_statuses():
    at = datetime(2026, 3, 1, 10, 0, tzinfo=timezone.utc)

    assessed = json.loads(merge_case_notes(None, "assessed", approved_by="Dr Lee", approved_at=at))
    assert "approved_by" not in assessed

    closed = merge_case_notes(None, "closed", approved_by="Dr Lee", approved_at=at)
    assert approval_from_notes(closed) == ("Dr Lee", "2026-03-01T10:00:00+00:00")


def test_approval_from_plain_text_notes_is_empty():
    assert approval_from_notes("free text") == (None, None)


@pytest.mark.parametrize("target", ["", "CLOSED", "reopened", None, 4])
def test_invalid_transition_targets_are_rejected(target):
    with pytest.raises(CaseStatusError) as excinfo:
        validate_transition_target(target)
    assert "Must be one of" in str(excinfo.value)


def test_blocks_new_report_until_signed_off_or_deactivated():
    assert blocks_new_report(None, None) is True
    assert blocks_new_report(json.dumps({"case_status": "in_rehab"}), None) is True
    assert blocks_new_report(json.dumps({"case_status": "return_to_work"}), None) is False
    assert blocks_new_report(json.dumps({"case_status": "closed"}), None) is False
    assert blocks_new_report(None, datetime(2026, 1, 1, tzinfo=timezone.utc)) is False


def test_presentation_helpers():
    assert display_label("in_rehab") == "IN REHAB"
    assert display_label("return_to_work") == "RETURN TO WORK"
    assert case_priority("injury") == "HIGH"
    assert case_priority("medical_leave") == "MEDIUM"
    assert case_priority("transfer") == "LOW"
    assert case_number(7, datetime(2026, 2, 3, 4, 5, 6)) == "CASE-20260203-040506-0007"
