from __future__ import annotations

from collections.abc import Mapping
from typing import Annotated, Any, Literal, Optional

from pydantic import AfterValidator, Field, StrictBool, StrictFloat, StrictInt, StrictStr

from casegate.domain.forms.common import (
    FormSection,
    FormSectionSpec,
    FormTemplate,
    Name,
    RequiredTimeOfDay,
    ShortText,
    TimeOfDay,
    has_text,
)
from casegate.domain.models.clinical_form import (
    RECOVERY_TEMPLATE_KEY,
    TEMPLATE_VERSION,
    FieldError,
    FinalSchemaContext,
)

AirwayStatus = Literal["PATENT", "ORAL_AIRWAY", "NASAL_AIRWAY", "LMA_IN_SITU", "ETT_IN_SITU", "OTHER"]
OxygenDelivery = Literal["ROOM_AIR", "NASAL_CANNULA", "FACE_MASK", "NON_REBREATHER", "VENTURI", "OTHER"]
Consciousness = Literal["ALERT", "RESPONSIVE_TO_VOICE", "RESPONSIVE_TO_PAIN", "UNRESPONSIVE", "DROWSY"]
NauseaVomiting = Literal["NONE", "MILD_NAUSEA", "MODERATE_NAUSEA", "VOMITING", "SEVERE_VOMITING"]
DischargeDecision = Literal["DISCHARGE_TO_WARD", "DISCHARGE_HOME", "HOLD"]

DISCHARGE_CRITERIA = (
    ("vitalsStable", "vitals not stable"),
    ("painControlled", "pain not controlled"),
    ("nauseaControlled", "nausea not controlled"),
    ("bleedingControlled", "bleeding not controlled"),
    ("airwayStable", "airway not stable"),
)


def _check_signature_name(value: str) -> str:
    if value and len(value) < 2:
        raise ValueError("Nurse name is required")
    return value


class ArrivalBaseline(FormSection):
    time_arrived_recovery: RequiredTimeOfDay
    airway_status: AirwayStatus
    oxygen_delivery: OxygenDelivery
    oxygen_flow_rate: StrictStr = ""
    consciousness: Consciousness
    pain_score: Annotated[StrictInt, Field(ge=0, le=10)]
    nausea_vomiting: NauseaVomiting
    arrival_notes: StrictStr = ""


class VitalsObservation(FormSection):
    time: RequiredTimeOfDay
    bp_sys: Annotated[StrictInt, Field(ge=50, le=300)]
    bp_dia: Annotated[StrictInt, Field(ge=20, le=200)]
    pulse: Annotated[StrictInt, Field(ge=20, le=250)]
    rr: Annotated[StrictInt, Field(ge=4, le=60)]
    spo2: Annotated[StrictInt, Field(ge=50, le=100)]
    temp_c: Optional[Annotated[StrictFloat, Field(ge=33.0, le=42.0)]] = None


class VitalsMonitoring(FormSection):
    observations: list[VitalsObservation] = Field(default_factory=list)
    vitals_not_recorded_reason: StrictStr = ""


class MedicationGiven(FormSection):
    name: Name
    dose: ShortText
    route: ShortText
    time: RequiredTimeOfDay


class FluidGiven(FormSection):
    type: Name
    volume_ml: Annotated[StrictInt, Field(ge=0, le=10000)]


class DrainOutput(FormSection):
    type: Name
    site: Name
    output_ml: Annotated[StrictInt, Field(ge=0, le=5000)]


class Interventions(FormSection):
    medications: list[MedicationGiven] = Field(default_factory=list)
    fluids: list[FluidGiven] = Field(default_factory=list)
    urine_output_ml: Optional[Annotated[StrictInt, Field(ge=0)]] = None
    drains: list[DrainOutput] = Field(default_factory=list)
    dressing_status: StrictStr = ""
    intervention_notes: StrictStr = ""


class DischargeCriteria(FormSection):
    vitals_stable: StrictBool
    pain_controlled: StrictBool
    nausea_controlled: StrictBool
    bleeding_controlled: StrictBool
    airway_stable: StrictBool


class DischargeReadiness(FormSection):
    discharge_criteria: DischargeCriteria
    discharge_decision: DischargeDecision
    nurse_handover_notes: StrictStr = ""
    discharge_time: TimeOfDay = ""
    finalized_by_name: Annotated[StrictStr, AfterValidator(_check_signature_name)] = ""
    finalized_by_user_id: StrictStr = ""
    finalized_at: StrictStr = ""


VITALS_MESSAGE = (
    "At least one vitals observation is required, or provide a reason why vitals were not recorded (min 5 chars)"
)
CRITERIA_MESSAGE = "All discharge criteria must be met when discharge decision is not HOLD"
SIGNATURE_MESSAGE = "Nurse name is required for finalization"


def _vitals_recorded_or_explained(data: Mapping[str, Any]) -> list[FieldError]:
    vitals = data.get("vitalsMonitoring") or {}
    if vitals.get("observations") or has_text(vitals.get("vitalsNotRecordedReason"), 5):
        return []
    return [FieldError("vitalsMonitoring.observations", VITALS_MESSAGE)]


def _criteria_met_unless_hold(data: Mapping[str, Any]) -> list[FieldError]:
    discharge = data.get("dischargeReadiness") or {}
    if discharge.get("dischargeDecision") == "HOLD":
        return []
    criteria = discharge.get("dischargeCriteria") or {}
    if all(criteria.get(key) is True for key, _ in DISCHARGE_CRITERIA):
        return []
    return [FieldError("dischargeReadiness.dischargeCriteria", CRITERIA_MESSAGE)]


def _nurse_signed(data: Mapping[str, Any]) -> list[FieldError]:
    discharge = data.get("dischargeReadiness") or {}
    if has_text(discharge.get("finalizedByName"), 2):
        return []
    return [FieldError("dischargeReadiness.finalizedByName", SIGNATURE_MESSAGE)]


SECTIONS = (
    FormSectionSpec("arrivalBaseline", "Arrival & Baseline Assessment", ArrivalBaseline),
    FormSectionSpec("vitalsMonitoring", "Vitals Monitoring", VitalsMonitoring, critical=True),
    FormSectionSpec("interventions", "Interventions & Medications", Interventions),
    FormSectionSpec(
        "dischargeReadiness",
        "Discharge Readiness & Handover",
        DischargeReadiness,
        critical=True,
        deep_draft=True,
    ),
)


def build_template(context: FinalSchemaContext) -> FormTemplate:
    return FormTemplate(
        key=RECOVERY_TEMPLATE_KEY,
        version=TEMPLATE_VERSION,
        title="Post-Operative Recovery Record",
        sections=SECTIONS,
        form_rules=(_vitals_recorded_or_explained, _criteria_met_unless_hold, _nurse_signed),
    )
