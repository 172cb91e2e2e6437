from __future__ import annotations

from casegate.domain.rules.safety_gates import (
    COUNT_DISCREPANCY_FLAGGED,
    FINAL_COUNTS_MISSING,
    POSTOP_INSTRUCTIONS_MISSING,
    SIGN_OUT_MISSING,
    SPECIMENS_LABEL_MISSING,
    WHO_SIGN_OUT_NOT_COMPLETED,
    evaluate_completion_gate,
    evaluate_recovery_gate,
    evaluate_who_sign_out,
    nurse_reports_count_discrepancy,
)
from tests.form_payloads import intraop_complete, recovery_complete, who_checklist_complete


def test_recovery_gate_passes_for_clean_record() -> None:
    assert evaluate_recovery_gate(intraop_complete()) == []


def test_recovery_gate_reports_every_reason() -> None:
    data = {
        "counts": {"finalCountsCompleted": False, "countDiscrepancy": True},
        "signOut": {
            "signOutCompleted": False,
            "postopInstructionsConfirmed": False,
            "specimensLabeledConfirmed": False,
        },
    }

    assert evaluate_recovery_gate(data) == [
        FINAL_COUNTS_MISSING,
        COUNT_DISCREPANCY_FLAGGED,
        SIGN_OUT_MISSING,
        POSTOP_INSTRUCTIONS_MISSING,
        SPECIMENS_LABEL_MISSING,
    ]


def test_recovery_gate_without_record() -> None:
    assert evaluate_recovery_gate(None) == [
        FINAL_COUNTS_MISSING,
        SIGN_OUT_MISSING,
        POSTOP_INSTRUCTIONS_MISSING,
        SPECIMENS_LABEL_MISSING,
    ]


def test_explained_discrepancy_still_blocks_recovery() -> None:
    data = intraop_complete(discrepancy=True)

    assert nurse_reports_count_discrepancy(data) is True
    assert evaluate_recovery_gate(data) == [COUNT_DISCREPANCY_FLAGGED]


def test_discrepancy_flag_must_be_boolean_true() -> None:
    assert nurse_reports_count_discrepancy({"counts": {"countDiscrepancy": "true"}}) is False
    assert nurse_reports_count_discrepancy({"counts": "broken"}) is False
    assert nurse_reports_count_discrepancy(None) is False


def test_completion_gate_passes_for_discharged_patient() -> None:
    assert evaluate_completion_gate(recovery_complete()) == []


def test_completion_gate_without_record() -> None:
    assert evaluate_completion_gate(None) == [
        "Time arrived in recovery not recorded",
        "No vitals observations recorded and no reason provided",
        "Discharge decision not made",
        "Nurse signature/name not provided",
    ]


def test_completion_gate_blocks_hold_decision() -> None:
    reasons = evaluate_completion_gate(recovery_complete(decision="HOLD"))

    assert reasons == ["Discharge decision is HOLD — patient cannot be discharged"]


def test_completion_gate_lists_unmet_criteria() -> None:
    data = recovery_complete()
    data["dischargeReadiness"]["dischargeCriteria"]["painControlled"] = False
    data["dischargeReadiness"]["dischargeCriteria"]["airwayStable"] = False

    assert evaluate_completion_gate(data) == [
        "Discharge criteria: pain not controlled",
        "Discharge criteria: airway not stable",
    ]


def test_completion_gate_accepts_reason_instead_of_vitals() -> None:
    data = recovery_complete()
    data["vitalsMonitoring"] = {"observations": [], "vitalsNotRecordedReason": "Transferred straight to ICU"}

    assert evaluate_completion_gate(data) == []


def test_who_sign_out_passes_once_completed() -> None:
    assert evaluate_who_sign_out(who_checklist_complete()) == []


def test_who_sign_out_without_checklist_lists_every_item() -> None:
    reasons = evaluate_who_sign_out(None)

    assert reasons[0] == WHO_SIGN_OUT_NOT_COMPLETED
    assert len(reasons) == 6
    assert "WHO Sign-Out: Instrument, sponge, and needle counts correct" in reasons


def test_who_sign_out_needs_who_completed_it() -> None:
    data = who_checklist_complete()
    del data["signOut"]["completedByName"]

    assert evaluate_who_sign_out(data) == [WHO_SIGN_OUT_NOT_COMPLETED]
