from __future__ import annotations

from casegate.domain.forms.operative_note import build_prefill, prefill_implants, prefill_specimens
from casegate.domain.models.clinical_form import OPERATIVE_NOTE_TEMPLATE_KEY
from casegate.domain.rules import schema_registry
from tests.form_payloads import intraop_complete


def test_prefill_copies_case_details_and_nurse_record() -> None:
    prefill = build_prefill(
        diagnosis="Deviated nasal septum",
        procedure_name="Rhinoplasty",
        side=None,
        surgeon_id="2",
        surgeon_name="Sam Surgeon",
        intraop_data=intraop_complete(),
    )

    assert prefill["header"] == {
        "diagnosisPreOp": "Deviated nasal septum",
        "procedurePerformed": "Rhinoplasty",
        "surgeonId": "2",
        "surgeonName": "Sam Surgeon",
    }
    assert [item["name"] for item in prefill["implantsUsed"]["implantsUsed"]] == ["Septal splint"]
    assert prefill["specimens"]["specimens"] == [
        {"type": "Cartilage", "site": "Septum", "destinationLab": "Histology", "timeSent": "10:30"}
    ]
    assert schema_registry.validate_draft(OPERATIVE_NOTE_TEMPLATE_KEY, prefill).ok is True


def test_prefill_without_nurse_record() -> None:
    prefill = build_prefill(
        diagnosis=None,
        procedure_name=None,
        side=None,
        surgeon_id="2",
        surgeon_name=None,
        intraop_data=None,
    )

    assert prefill == {
        "header": {"surgeonId": "2"},
        "implantsUsed": {"implantsUsed": []},
        "specimens": {"specimens": []},
    }


def test_prefill_ignores_unused_and_malformed_items() -> None:
    implants = {"items": [{"name": "Plate", "used": True, "lotNumber": None}, {"name": "Screw"}, "junk"]}

    assert prefill_implants(implants) == [
        {"name": "Plate", "manufacturer": "", "lotNumber": "", "serialNumber": "", "expiryDate": ""}
    ]
    assert prefill_specimens({"specimens": ["junk"]}) == []
    assert prefill_specimens(None) == []
