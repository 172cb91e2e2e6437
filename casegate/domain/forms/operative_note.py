from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Annotated, Any, Literal, Optional

from pydantic import AfterValidator, Field, StrictBool, StrictInt, StrictStr

from casegate.domain.constants import AnesthesiaType
from casegate.domain.forms.common import (
    FormSection,
    FormSectionSpec,
    FormTemplate,
    Name,
    ShortText,
    TimeOfDay,
    flag_requires_explanation,
    has_text,
)
from casegate.domain.models.clinical_form import (
    OPERATIVE_NOTE_TEMPLATE_KEY,
    TEMPLATE_VERSION,
    FieldError,
    FinalSchemaContext,
)

MEANINGLESS_CONTENT = re.compile(r"^(n/?a|none|nil|tbd|test|asdf|xxx+|\.+)$", re.IGNORECASE)


def _check_meaningful(value: str) -> str:
    if MEANINGLESS_CONTENT.match(value.strip()):
        raise ValueError("Operative steps must contain meaningful clinical content")
    return value


DischargeDestination = Literal["WARD", "HOME", "ICU", "HDU", "OTHER"]
Metric = Annotated[StrictInt, Field(ge=0)]


class Assistant(FormSection):
    user_id: StrictStr = ""
    name: Name
    role: StrictStr = ""


class Header(FormSection):
    diagnosis_pre_op: Annotated[StrictStr, Field(min_length=3)]
    diagnosis_post_op: StrictStr = ""
    procedure_performed: Annotated[StrictStr, Field(min_length=3)]
    side: StrictStr = ""
    surgeon_id: ShortText
    surgeon_name: StrictStr = ""
    assistants: list[Assistant] = Field(default_factory=list)
    anesthesiologist_id: StrictStr = ""
    anesthesiologist_name: StrictStr = ""
    anesthesia_type: AnesthesiaType


class FindingsAndSteps(FormSection):
    findings: StrictStr = ""
    operative_steps: Annotated[StrictStr, Field(min_length=20), AfterValidator(_check_meaningful)]


class IntraOpMetrics(FormSection):
    estimated_blood_loss_ml: Annotated[Metric, Field(le=20000)]
    fluids_given_ml: Optional[Annotated[Metric, Field(le=50000)]] = None
    urine_output_ml: Optional[Annotated[Metric, Field(le=10000)]] = None
    tourniquet_time_minutes: Optional[Annotated[Metric, Field(le=300)]] = None


class NoteImplant(FormSection):
    name: Name
    manufacturer: StrictStr = ""
    lot_number: StrictStr = ""
    serial_number: StrictStr = ""
    expiry_date: StrictStr = ""


class NoteImplants(FormSection):
    implants_used: list[NoteImplant] = Field(default_factory=list)


class NoteSpecimen(FormSection):
    type: Name
    site: Name
    destination_lab: Name
    time_sent: TimeOfDay = ""


class NoteSpecimens(FormSection):
    specimens: list[NoteSpecimen] = Field(default_factory=list)


class Complications(FormSection):
    complications_occurred: StrictBool
    complications_details: StrictStr = ""


class CountsConfirmation(FormSection):
    counts_correct: StrictBool
    counts_explanation: StrictStr = ""


class PostOpPlan(FormSection):
    dressing_instructions: StrictStr = ""
    drain_care: StrictStr = ""
    meds: StrictStr = ""
    follow_up_plan: StrictStr = ""
    discharge_destination: Optional[DischargeDestination] = None


COMPLICATIONS_MESSAGE = "Complications details are required when complications occurred (min 5 chars)"
COUNTS_DISAGREE_MESSAGE = "Nurse intra-op record reports a count discrepancy. Counts cannot be marked correct."
COUNTS_EXPLANATION_MESSAGE = "Explanation required when counts are not correct (min 5 chars)"


def _counts_agree_with_nurse(nurse_has_discrepancy: bool):
    def rule(section: Mapping[str, Any]) -> list[FieldError]:
        if nurse_has_discrepancy and section.get("countsCorrect") is True:
            return [FieldError("countsCorrect", COUNTS_DISAGREE_MESSAGE)]
        return []

    return rule


def _counts_explained(section: Mapping[str, Any]) -> list[FieldError]:
    if section.get("countsCorrect") is True or has_text(section.get("countsExplanation"), 5):
        return []
    return [FieldError("countsExplanation", COUNTS_EXPLANATION_MESSAGE)]


def build_template(context: FinalSchemaContext) -> FormTemplate:
    """Final shape of the note; counts confirmation depends on the nurse record."""
    return FormTemplate(
        key=OPERATIVE_NOTE_TEMPLATE_KEY,
        version=TEMPLATE_VERSION,
        title="Surgeon Operative Note",
        sections=(
            FormSectionSpec("header", "Case Header", Header),
            FormSectionSpec("findingsAndSteps", "Findings & Operative Steps", FindingsAndSteps),
            FormSectionSpec("intraOpMetrics", "Intra-Operative Metrics", IntraOpMetrics),
            FormSectionSpec("implantsUsed", "Implants Used", NoteImplants),
            FormSectionSpec("specimens", "Specimens", NoteSpecimens),
            FormSectionSpec(
                "complications",
                "Complications",
                Complications,
                rules=(
                    flag_requires_explanation(
                        "complicationsOccurred", "complicationsDetails", message=COMPLICATIONS_MESSAGE
                    ),
                ),
                critical=True,
            ),
            FormSectionSpec(
                "countsConfirmation",
                "Counts Confirmation",
                CountsConfirmation,
                rules=(_counts_agree_with_nurse(context.nurse_has_discrepancy), _counts_explained),
                critical=True,
            ),
            FormSectionSpec("postOpPlan", "Post-Operative Plan", PostOpPlan),
        ),
    )


def prefill_implants(intraop_implants: Mapping[str, Any] | None) -> list[dict[str, str]]:
    """Implants the nurse marked as used, in the note's shape."""
    items = (intraop_implants or {}).get("items") or []
    return [
        {
            "name": item.get("name", ""),
            "manufacturer": item.get("manufacturer") or "",
            "lotNumber": item.get("lotNumber") or "",
            "serialNumber": item.get("serialNumber") or "",
            "expiryDate": item.get("expiryDate") or "",
        }
        for item in items
        if isinstance(item, Mapping) and item.get("used") is True
    ]


def prefill_specimens(intraop_specimens: Mapping[str, Any] | None) -> list[dict[str, str]]:
    specimens = (intraop_specimens or {}).get("specimens") or []
    return [
        {
            "type": item.get("specimenType", ""),
            "site": item.get("site", ""),
            "destinationLab": item.get("destinationLab", ""),
            "timeSent": item.get("timeSent") or "",
        }
        for item in specimens
        if isinstance(item, Mapping)
    ]


def build_prefill(
    *,
    diagnosis: str | None,
    procedure_name: str | None,
    side: str | None,
    surgeon_id: str | None,
    surgeon_name: str | None,
    intraop_data: Mapping[str, Any] | None,
) -> dict[str, Any]:
    """Initial operative-note draft assembled from the case and the nurse record."""
    header: dict[str, Any] = {}
    if diagnosis:
        header["diagnosisPreOp"] = diagnosis
    if procedure_name:
        header["procedurePerformed"] = procedure_name
    if side:
        header["side"] = side
    if surgeon_id:
        header["surgeonId"] = surgeon_id
    if surgeon_name:
        header["surgeonName"] = surgeon_name
    intraop = intraop_data or {}
    return {
        "header": header,
        "implantsUsed": {"implantsUsed": prefill_implants(intraop.get("implantsUsed"))},
        "specimens": {"specimens": prefill_specimens(intraop.get("specimens"))},
    }
