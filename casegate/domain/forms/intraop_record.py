from __future__ import annotations

from typing import Annotated, Literal, Optional

from pydantic import Field, StrictBool, StrictInt, StrictStr

from casegate.domain.forms.common import (
    FormSection,
    FormSectionSpec,
    FormTemplate,
    Name,
    TimeOfDay,
    flag_requires_explanation,
)
from casegate.domain.models.clinical_form import INTRAOP_TEMPLATE_KEY, TEMPLATE_VERSION, FinalSchemaContext

Count = Optional[Annotated[StrictInt, Field(ge=0)]]
WoundClass = Literal["CLEAN", "CLEAN_CONTAMINATED", "CONTAMINATED", "DIRTY_INFECTED"]


class TheatreSetup(FormSection):
    positioning: Name
    skin_prep_agent: Name
    drape_type: Name
    tourniquet_used: StrictBool
    tourniquet_pressure: Optional[Annotated[StrictInt, Field(ge=0, le=500)]] = None
    tourniquet_time_on: TimeOfDay = ""
    tourniquet_time_off: TimeOfDay = ""
    cautery_used: StrictBool
    cautery_settings_cut: StrictStr = ""
    cautery_settings_coag: StrictStr = ""
    drains_used: StrictBool
    drain_type: StrictStr = ""
    drain_location: StrictStr = ""
    irrigation_type: StrictStr = ""
    irrigation_volume_ml: Count = None
    wound_class: WoundClass


class Counts(FormSection):
    initial_counts_completed: StrictBool
    initial_counts_recorded_by: Name
    initial_counts_time: TimeOfDay = ""
    swabs_initial: Count = None
    sharps_initial: Count = None
    instruments_initial: Count = None
    final_counts_completed: StrictBool
    final_counts_recorded_by: Name
    final_counts_time: TimeOfDay = ""
    swabs_final: Count = None
    sharps_final: Count = None
    instruments_final: Count = None
    count_discrepancy: StrictBool
    discrepancy_notes: StrictStr = ""


class IntraOpSpecimen(FormSection):
    specimen_type: Name
    site: Name
    destination_lab: Name
    time_sent: TimeOfDay = ""
    notes: StrictStr = ""


class Specimens(FormSection):
    specimens: list[IntraOpSpecimen] = Field(default_factory=list)


class ImplantUsed(FormSection):
    name: Name
    manufacturer: StrictStr = ""
    lot_number: StrictStr = ""
    serial_number: StrictStr = ""
    expiry_date: StrictStr = ""
    used: StrictBool
    notes: StrictStr = ""


class ImplantsUsed(FormSection):
    implants_confirmed: StrictBool
    items: list[ImplantUsed] = Field(default_factory=list)


class SignOut(FormSection):
    sign_out_completed: StrictBool
    sign_out_time: TimeOfDay = ""
    sign_out_nurse_name: Name
    postop_instructions_confirmed: StrictBool
    specimens_labeled_confirmed: StrictBool
    additional_notes: StrictStr = ""


DISCREPANCY_NOTES_MESSAGE = "Discrepancy notes are required when a count discrepancy is flagged (min 5 chars)"

SECTIONS = (
    FormSectionSpec("theatreSetup", "Theatre Setup", TheatreSetup),
    FormSectionSpec(
        "counts",
        "Swab / Instrument / Sharps Counts",
        Counts,
        rules=(flag_requires_explanation("countDiscrepancy", "discrepancyNotes", message=DISCREPANCY_NOTES_MESSAGE),),
        critical=True,
    ),
    FormSectionSpec("specimens", "Specimens", Specimens),
    FormSectionSpec("implantsUsed", "Implants / Prostheses Used", ImplantsUsed),
    FormSectionSpec("signOut", "Sign-Out & Completion", SignOut, critical=True),
)


def build_template(context: FinalSchemaContext) -> FormTemplate:
    return FormTemplate(
        key=INTRAOP_TEMPLATE_KEY,
        version=TEMPLATE_VERSION,
        title="Intra-Operative Nursing Record",
        sections=SECTIONS,
    )
