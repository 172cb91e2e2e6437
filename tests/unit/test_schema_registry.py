from __future__ import annotations

import pytest

from casegate.domain.forms.intraop_record import DISCREPANCY_NOTES_MESSAGE
from casegate.domain.forms.operative_note import COUNTS_DISAGREE_MESSAGE, COUNTS_EXPLANATION_MESSAGE
from casegate.domain.forms.recovery_record import CRITERIA_MESSAGE, SIGNATURE_MESSAGE, VITALS_MESSAGE
from casegate.domain.models.clinical_form import (
    INTRAOP_TEMPLATE_KEY,
    OPERATIVE_NOTE_TEMPLATE_KEY,
    PREOP_WARD_TEMPLATE_KEY,
    RECOVERY_TEMPLATE_KEY,
    WHO_CHECKLIST_TEMPLATE_KEY,
    FieldError,
    FinalSchemaContext,
)
from casegate.domain.rules import schema_registry
from tests.form_payloads import (
    intraop_complete,
    operative_note_complete,
    preop_complete,
    recovery_complete,
    who_checklist_complete,
)

TIME_MESSAGE = "Must be in HH:MM format (24h)"


def _paths(result) -> list[str]:
    return [error.path for error in result.errors]


@pytest.mark.parametrize("template_key", schema_registry.template_keys())
def test_empty_draft_is_accepted_for_every_template(template_key: str) -> None:
    result = schema_registry.validate_draft(template_key, {})

    assert result.ok is True
    assert result.data == {}


def test_template_catalogue_has_five_templates() -> None:
    assert set(schema_registry.template_keys()) == {
        PREOP_WARD_TEMPLATE_KEY,
        INTRAOP_TEMPLATE_KEY,
        OPERATIVE_NOTE_TEMPLATE_KEY,
        RECOVERY_TEMPLATE_KEY,
        WHO_CHECKLIST_TEMPLATE_KEY,
    }
    assert schema_registry.is_known_template("NOT_A_TEMPLATE") is False


def test_get_template_rejects_unknown_key() -> None:
    with pytest.raises(ValueError):
        schema_registry.get_template("NOT_A_TEMPLATE")


def test_draft_keeps_only_supplied_fields() -> None:
    result = schema_registry.validate_draft(
        PREOP_WARD_TEMPLATE_KEY,
        {"documentation": {"documentationComplete": True}},
    )

    assert result.ok is True
    assert result.data == {"documentation": {"documentationComplete": True}}


def test_draft_rejects_malformed_clock_time() -> None:
    result = schema_registry.validate_draft(INTRAOP_TEMPLATE_KEY, {"counts": {"initialCountsTime": "25:99"}})

    assert result.ok is False
    assert result.errors == [FieldError("counts.initialCountsTime", TIME_MESSAGE)]


@pytest.mark.parametrize("value", ["00:00", "23:59", "07:05"])
def test_draft_accepts_clock_time_boundaries(value: str) -> None:
    result = schema_registry.validate_draft(INTRAOP_TEMPLATE_KEY, {"counts": {"initialCountsTime": value}})

    assert result.ok is True
    assert result.data == {"counts": {"initialCountsTime": value}}


@pytest.mark.parametrize("value", ["24:00", "7:05", "12:60", "noon"])
def test_draft_rejects_clock_time_outside_24h(value: str) -> None:
    result = schema_registry.validate_draft(RECOVERY_TEMPLATE_KEY, {"arrivalBaseline": {"timeArrivedRecovery": value}})

    assert result.ok is False
    assert _paths(result) == ["arrivalBaseline.timeArrivedRecovery"]


def test_draft_applies_vitals_bounds() -> None:
    too_fast = schema_registry.validate_draft(PREOP_WARD_TEMPLATE_KEY, {"vitals": {"pulse": 300}})
    normal = schema_registry.validate_draft(PREOP_WARD_TEMPLATE_KEY, {"vitals": {"pulse": 72}})

    assert too_fast.ok is False
    assert _paths(too_fast) == ["vitals.pulse"]
    assert normal.ok is True


def test_draft_rejects_wrong_types_and_unknown_enum_values() -> None:
    result = schema_registry.validate_draft(
        INTRAOP_TEMPLATE_KEY,
        {
            "theatreSetup": {"tourniquetUsed": "yes", "woundClass": "FILTHY"},
            "counts": {"swabsInitial": -1},
        },
    )

    assert result.ok is False
    assert set(_paths(result)) == {
        "theatreSetup.tourniquetUsed",
        "theatreSetup.woundClass",
        "counts.swabsInitial",
    }


def test_draft_keeps_field_minimum_lengths() -> None:
    result = schema_registry.validate_draft(PREOP_WARD_TEMPLATE_KEY, {"handover": {"preparedByName": "A"}})

    assert result.ok is False
    assert _paths(result) == ["handover.preparedByName"]


def test_draft_does_not_run_refinements() -> None:
    result = schema_registry.validate_draft(INTRAOP_TEMPLATE_KEY, {"counts": {"countDiscrepancy": True}})

    assert result.ok is True


def test_recovery_draft_accepts_partial_nested_criteria() -> None:
    result = schema_registry.validate_draft(
        RECOVERY_TEMPLATE_KEY,
        {"dischargeReadiness": {"dischargeCriteria": {"vitalsStable": True}}},
    )

    assert result.ok is True
    assert result.data == {"dischargeReadiness": {"dischargeCriteria": {"vitalsStable": True}}}


def test_payload_must_be_an_object() -> None:
    draft = schema_registry.validate_draft(PREOP_WARD_TEMPLATE_KEY, ["documentation"])
    final = schema_registry.validate_final(PREOP_WARD_TEMPLATE_KEY, "documentation")

    assert draft.errors == [FieldError("", "Payload must be an object")]
    assert final.errors == [FieldError("", "Payload must be an object")]


@pytest.mark.parametrize(
    ("template_key", "payload"),
    [
        (PREOP_WARD_TEMPLATE_KEY, preop_complete()),
        (INTRAOP_TEMPLATE_KEY, intraop_complete()),
        (INTRAOP_TEMPLATE_KEY, intraop_complete(discrepancy=True)),
        (OPERATIVE_NOTE_TEMPLATE_KEY, operative_note_complete()),
        (RECOVERY_TEMPLATE_KEY, recovery_complete()),
        (WHO_CHECKLIST_TEMPLATE_KEY, who_checklist_complete()),
    ],
)
def test_complete_documents_pass_final_validation(template_key: str, payload: dict) -> None:
    assert schema_registry.validate_draft(template_key, payload).ok is True

    result = schema_registry.validate_final(template_key, payload)

    assert result.ok is True, result.errors
    assert set(result.data or {}) == set(payload)


def test_final_requires_every_section() -> None:
    result = schema_registry.validate_final(PREOP_WARD_TEMPLATE_KEY, {})

    assert result.ok is False
    assert "documentation.documentationComplete" in _paths(result)
    assert "handover.preparedByName" in _paths(result)
    assert "vitals.weight" in _paths(result)


def test_count_discrepancy_requires_notes_on_final() -> None:
    payload = intraop_complete()
    payload["counts"]["countDiscrepancy"] = True
    payload["counts"]["discrepancyNotes"] = "n/a"

    result = schema_registry.validate_final(INTRAOP_TEMPLATE_KEY, payload)

    assert result.ok is False
    assert result.errors == [FieldError("counts.discrepancyNotes", DISCREPANCY_NOTES_MESSAGE)]


def test_complications_require_details() -> None:
    payload = operative_note_complete()
    payload["complications"] = {"complicationsOccurred": True}

    result = schema_registry.validate_final(OPERATIVE_NOTE_TEMPLATE_KEY, payload)

    assert _paths(result) == ["complications.complicationsDetails"]


def test_operative_steps_must_be_meaningful() -> None:
    payload = operative_note_complete()
    payload["findingsAndSteps"]["operativeSteps"] = "x" * 24

    result = schema_registry.validate_final(OPERATIVE_NOTE_TEMPLATE_KEY, payload)

    assert result.errors == [
        FieldError(
            "findingsAndSteps.operativeSteps",
            "Operative steps must contain meaningful clinical content",
        )
    ]


def test_counts_cannot_be_correct_when_nurse_reports_discrepancy() -> None:
    payload = operative_note_complete()

    clean = schema_registry.validate_final(OPERATIVE_NOTE_TEMPLATE_KEY, payload, FinalSchemaContext())
    flagged = schema_registry.validate_final(
        OPERATIVE_NOTE_TEMPLATE_KEY,
        payload,
        FinalSchemaContext(nurse_has_discrepancy=True),
    )

    assert clean.ok is True
    assert flagged.errors == [FieldError("countsConfirmation.countsCorrect", COUNTS_DISAGREE_MESSAGE)]


def test_counts_not_correct_require_explanation() -> None:
    payload = operative_note_complete()
    payload["countsConfirmation"] = {"countsCorrect": False}
    context = FinalSchemaContext(nurse_has_discrepancy=True)

    unexplained = schema_registry.validate_final(OPERATIVE_NOTE_TEMPLATE_KEY, payload, context)
    payload["countsConfirmation"]["countsExplanation"] = "Swab found in bin after recount"
    explained = schema_registry.validate_final(OPERATIVE_NOTE_TEMPLATE_KEY, payload, context)

    assert unexplained.errors == [FieldError("countsConfirmation.countsExplanation", COUNTS_EXPLANATION_MESSAGE)]
    assert explained.ok is True


def test_recovery_requires_vitals_or_reason() -> None:
    payload = recovery_complete()
    payload["vitalsMonitoring"] = {"observations": []}

    missing = schema_registry.validate_final(RECOVERY_TEMPLATE_KEY, payload)
    payload["vitalsMonitoring"]["vitalsNotRecordedReason"] = "Monitor failure, manual checks only"
    explained = schema_registry.validate_final(RECOVERY_TEMPLATE_KEY, payload)

    assert missing.errors == [FieldError("vitalsMonitoring.observations", VITALS_MESSAGE)]
    assert explained.ok is True


def test_recovery_criteria_must_be_met_unless_hold() -> None:
    payload = recovery_complete()
    payload["dischargeReadiness"]["dischargeCriteria"]["painControlled"] = False

    discharge = schema_registry.validate_final(RECOVERY_TEMPLATE_KEY, payload)
    payload["dischargeReadiness"]["dischargeDecision"] = "HOLD"
    hold = schema_registry.validate_final(RECOVERY_TEMPLATE_KEY, payload)

    assert discharge.errors == [FieldError("dischargeReadiness.dischargeCriteria", CRITERIA_MESSAGE)]
    assert hold.ok is True


def test_recovery_requires_nurse_name() -> None:
    payload = recovery_complete()
    payload["dischargeReadiness"]["finalizedByName"] = ""

    result = schema_registry.validate_final(RECOVERY_TEMPLATE_KEY, payload)

    assert result.errors == [FieldError("dischargeReadiness.finalizedByName", SIGNATURE_MESSAGE)]


def test_form_rules_wait_for_well_formed_sections() -> None:
    payload = recovery_complete()
    del payload["arrivalBaseline"]
    payload["vitalsMonitoring"] = {}

    result = schema_registry.validate_final(RECOVERY_TEMPLATE_KEY, payload)

    assert result.ok is False
    assert all(path.startswith("arrivalBaseline.") for path in _paths(result))


def test_section_completion_reports_each_section() -> None:
    payload = {"documentation": {"documentationComplete": True, "correctConsent": False}}

    completion = schema_registry.section_completion(PREOP_WARD_TEMPLATE_KEY, payload)

    assert completion["documentation"].complete is True
    assert completion["documentation"].errors == []
    assert completion["prosthetics"].complete is True
    assert completion["handover"].complete is False
    assert completion["handover"].errors == ["preparedByName: Field required"]


def test_section_completion_marks_gate_sections_critical() -> None:
    completion = schema_registry.section_completion(INTRAOP_TEMPLATE_KEY, intraop_complete())

    assert completion["counts"].critical is True
    assert completion["signOut"].critical is True
    assert completion["signOut"].title == "Sign-Out & Completion"
    assert completion["theatreSetup"].critical is False
    assert all(item.complete for item in completion.values())


def test_missing_final_items_are_path_and_message_lines() -> None:
    payload = preop_complete()
    del payload["handover"]

    assert schema_registry.missing_final_items(PREOP_WARD_TEMPLATE_KEY, payload) == [
        "handover.preparedByName: Field required"
    ]
    assert schema_registry.missing_final_items(PREOP_WARD_TEMPLATE_KEY, preop_complete()) == []
