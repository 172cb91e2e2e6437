"""WHO Surgical Safety Checklist.

Three phases, each a section of the document: Sign-In before induction,
Time-Out before incision, Sign-Out before the patient leaves theatre. A
phase counts as completed once every required item is confirmed and the
phase carries the name and clock time of whoever completed it.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Annotated, Any, Optional

from pydantic import Field, StrictBool, StrictStr, ValidationError

from casegate.domain.forms.common import (
    FormSection,
    FormSectionSpec,
    FormTemplate,
    Name,
    RequiredTimeOfDay,
    SectionRule,
    ShortText,
)
from casegate.domain.models.clinical_form import (
    TEMPLATE_VERSION,
    WHO_CHECKLIST_TEMPLATE_KEY,
    FieldError,
    FinalSchemaContext,
)

SIGN_IN = "signIn"
TIME_OUT = "timeOut"
SIGN_OUT = "signOut"


@dataclass(frozen=True, slots=True)
class ChecklistItemDef:
    key: str
    label: str
    required: bool = True
    help_text: str = ""


SIGN_IN_ITEMS = (
    ChecklistItemDef("patient_identity", "Patient identity confirmed (name, DOB, wristband)"),
    ChecklistItemDef("site_marked", "Surgical site marked / not applicable"),
    ChecklistItemDef("consent_verified", "Consent signed and verified"),
    ChecklistItemDef("anesthesia_check", "Anesthesia safety check completed"),
    ChecklistItemDef("pulse_oximeter", "Pulse oximeter on patient and functioning"),
    ChecklistItemDef("allergy_check", "Known allergies reviewed"),
    ChecklistItemDef(
        "airway_risk",
        "Difficult airway / aspiration risk assessed",
        help_text="Equipment and assistance available if needed",
    ),
    ChecklistItemDef(
        "blood_loss_risk",
        "Risk of >500ml blood loss assessed",
        help_text="Adequate IV access and fluids planned",
    ),
)

TIME_OUT_ITEMS = (
    ChecklistItemDef("team_intro", "All team members introduced by name and role"),
    ChecklistItemDef("patient_confirm", "Patient name, procedure, and incision site confirmed"),
    ChecklistItemDef("antibiotic_prophylaxis", "Antibiotic prophylaxis given within last 60 minutes"),
    ChecklistItemDef(
        "critical_events_surgeon",
        "Anticipated critical events (surgeon) reviewed",
        help_text="Critical steps, case duration, anticipated blood loss",
    ),
    ChecklistItemDef(
        "critical_events_anesthesia",
        "Anticipated critical events (anesthesia) reviewed",
        help_text="Patient-specific concerns",
    ),
    ChecklistItemDef(
        "critical_events_nursing",
        "Anticipated critical events (nursing) reviewed",
        help_text="Sterility confirmed, equipment issues, other concerns",
    ),
    ChecklistItemDef("imaging_displayed", "Essential imaging displayed"),
    ChecklistItemDef("equipment_sterile", "Equipment sterility confirmed (indicator results)"),
)

SIGN_OUT_ITEMS = (
    ChecklistItemDef("procedure_recorded", "Procedure name / description recorded"),
    ChecklistItemDef("instrument_count", "Instrument, sponge, and needle counts correct"),
    ChecklistItemDef("specimen_labeled", "Specimen labeled (including patient name)"),
    ChecklistItemDef("equipment_issues", "Equipment problems addressed"),
    ChecklistItemDef("recovery_plan", "Key concerns for recovery and management reviewed"),
)

PHASE_ITEMS: dict[str, tuple[ChecklistItemDef, ...]] = {
    SIGN_IN: SIGN_IN_ITEMS,
    TIME_OUT: TIME_OUT_ITEMS,
    SIGN_OUT: SIGN_OUT_ITEMS,
}


class ChecklistItem(FormSection):
    key: ShortText
    label: ShortText
    confirmed: StrictBool
    note: Optional[Annotated[StrictStr, Field(max_length=500)]] = None


class ChecklistPhase(FormSection):
    items: Annotated[list[ChecklistItem], Field(min_length=1)]
    completed_by_name: Name
    completed_time: RequiredTimeOfDay


@dataclass(frozen=True, slots=True)
class PhaseCompletion:
    total: int
    confirmed: int
    completed: bool


def _confirmed_keys(items: Any) -> set[str]:
    if not isinstance(items, list):
        return set()
    return {
        str(item.get("key"))
        for item in items
        if isinstance(item, Mapping) and item.get("confirmed") is True
    }


def missing_phase_items(phase: str, section: Mapping[str, Any] | None) -> list[str]:
    """Labels of required items in ``phase`` that nobody has confirmed yet."""
    confirmed = _confirmed_keys((section or {}).get("items"))
    return [item.label for item in PHASE_ITEMS[phase] if item.required and item.key not in confirmed]


def _requires_confirmed_items(phase: str) -> SectionRule:
    def rule(section: Mapping[str, Any]) -> list[FieldError]:
        missing = missing_phase_items(phase, section)
        if missing:
            return [FieldError("items", f"Missing required items: {'; '.join(missing)}")]
        return []

    return rule


def _phase_section(data: Mapping[str, Any] | None, phase: str) -> Mapping[str, Any]:
    value = (data or {}).get(phase)
    return value if isinstance(value, Mapping) else {}


def is_phase_completed(data: Mapping[str, Any] | None, phase: str) -> bool:
    section = _phase_section(data, phase)
    if missing_phase_items(phase, section):
        return False
    try:
        ChecklistPhase.model_validate(section)
    except ValidationError:
        return False
    return True


def phase_completion(data: Mapping[str, Any] | None) -> dict[str, PhaseCompletion]:
    """Per-phase progress for the theatre board."""
    result: dict[str, PhaseCompletion] = {}
    for phase, defs in PHASE_ITEMS.items():
        required = [item for item in defs if item.required]
        confirmed = _confirmed_keys(_phase_section(data, phase).get("items"))
        result[phase] = PhaseCompletion(
            total=len(required),
            confirmed=sum(1 for item in required if item.key in confirmed),
            completed=is_phase_completed(data, phase),
        )
    return result


def blank_checklist() -> dict[str, Any]:
    """Every canonical item per phase, none confirmed yet."""
    return {
        phase: {"items": [{"key": item.key, "label": item.label, "confirmed": False} for item in defs]}
        for phase, defs in PHASE_ITEMS.items()
    }


SECTIONS = (
    FormSectionSpec(SIGN_IN, "Sign-In", ChecklistPhase, rules=(_requires_confirmed_items(SIGN_IN),)),
    FormSectionSpec(TIME_OUT, "Time-Out", ChecklistPhase, rules=(_requires_confirmed_items(TIME_OUT),)),
    FormSectionSpec(
        SIGN_OUT,
        "Sign-Out",
        ChecklistPhase,
        rules=(_requires_confirmed_items(SIGN_OUT),),
        critical=True,
    ),
)


def build_template(context: FinalSchemaContext) -> FormTemplate:
    return FormTemplate(
        key=WHO_CHECKLIST_TEMPLATE_KEY,
        version=TEMPLATE_VERSION,
        title="WHO Surgical Safety Checklist",
        sections=SECTIONS,
    )
