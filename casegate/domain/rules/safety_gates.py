from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from casegate.domain.forms.common import has_text
from casegate.domain.forms.recovery_record import DISCHARGE_CRITERIA
from casegate.domain.forms.who_checklist import SIGN_OUT, is_phase_completed, missing_phase_items

FINAL_COUNTS_MISSING = "Final counts not completed"
COUNT_DISCREPANCY_FLAGGED = "Count discrepancy flagged — resolve before RECOVERY"
SIGN_OUT_MISSING = "Nurse sign-out not completed"
POSTOP_INSTRUCTIONS_MISSING = "Post-op instructions not confirmed"
SPECIMENS_LABEL_MISSING = "Specimens labeled confirmation missing"
WHO_SIGN_OUT_NOT_COMPLETED = "WHO Sign-Out checklist not completed"

INTRAOP_NOT_FINAL = "Intra-operative nursing record is not finalized"
RECOVERY_NOT_FINAL = "Recovery record is not finalized"


def _section(data: Mapping[str, Any] | None, key: str) -> Mapping[str, Any]:
    value = (data or {}).get(key)
    return value if isinstance(value, Mapping) else {}


def nurse_reports_count_discrepancy(intraop_data: Mapping[str, Any] | None) -> bool:
    return _section(intraop_data, "counts").get("countDiscrepancy") is True


def evaluate_recovery_gate(intraop_data: Mapping[str, Any] | None) -> list[str]:
    """Reasons the case may not enter RECOVERY yet; empty when the gate passes.

    Every check runs; a flagged discrepancy blocks even when it is explained.
    """
    counts = _section(intraop_data, "counts")
    sign_out = _section(intraop_data, "signOut")
    reasons: list[str] = []
    if counts.get("finalCountsCompleted") is not True:
        reasons.append(FINAL_COUNTS_MISSING)
    if counts.get("countDiscrepancy") is True:
        reasons.append(COUNT_DISCREPANCY_FLAGGED)
    if sign_out.get("signOutCompleted") is not True:
        reasons.append(SIGN_OUT_MISSING)
    if sign_out.get("postopInstructionsConfirmed") is not True:
        reasons.append(POSTOP_INSTRUCTIONS_MISSING)
    if sign_out.get("specimensLabeledConfirmed") is not True:
        reasons.append(SPECIMENS_LABEL_MISSING)
    return reasons


def evaluate_completion_gate(recovery_data: Mapping[str, Any] | None) -> list[str]:
    """Reasons the case may not be COMPLETED; the record's FINAL status is checked by the caller."""
    arrival = _section(recovery_data, "arrivalBaseline")
    vitals = _section(recovery_data, "vitalsMonitoring")
    discharge = _section(recovery_data, "dischargeReadiness")
    criteria = _section(discharge, "dischargeCriteria")
    reasons: list[str] = []

    if not arrival.get("timeArrivedRecovery"):
        reasons.append("Time arrived in recovery not recorded")

    observations = vitals.get("observations")
    has_observations = isinstance(observations, list) and len(observations) > 0
    if not has_observations and not has_text(vitals.get("vitalsNotRecordedReason"), 5):
        reasons.append("No vitals observations recorded and no reason provided")

    decision = discharge.get("dischargeDecision")
    if not decision:
        reasons.append("Discharge decision not made")
    elif decision == "HOLD":
        reasons.append("Discharge decision is HOLD — patient cannot be discharged")
    else:
        for key, problem in DISCHARGE_CRITERIA:
            if criteria.get(key) is not True:
                reasons.append(f"Discharge criteria: {problem}")

    if not has_text(discharge.get("finalizedByName"), 2):
        reasons.append("Nurse signature/name not provided")
    return reasons


def evaluate_who_sign_out(checklist_data: Mapping[str, Any] | None) -> list[str]:
    """Empty once the WHO checklist's Sign-Out phase is completed."""
    if is_phase_completed(checklist_data, SIGN_OUT):
        return []
    open_items = missing_phase_items(SIGN_OUT, _section(checklist_data, SIGN_OUT))
    return [WHO_SIGN_OUT_NOT_COMPLETED, *(f"WHO Sign-Out: {label}" for label in open_items)]
