from __future__ import annotations

from typing import Annotated, Optional

from pydantic import Field, StrictBool, StrictFloat, StrictInt, StrictStr

from casegate.domain.forms.common import FormSection, FormSectionSpec, FormTemplate, Name, TimeOfDay
from casegate.domain.models.clinical_form import PREOP_WARD_TEMPLATE_KEY, TEMPLATE_VERSION, FinalSchemaContext


class Documentation(FormSection):
    documentation_complete: StrictBool
    correct_consent: StrictBool


class BloodResults(FormSection):
    hb_pcv: StrictStr = ""
    uecs: StrictStr = ""
    x_match_units_available: Optional[Annotated[StrictInt, Field(ge=0)]] = None
    other_lab_results: StrictStr = ""


class Medications(FormSection):
    pre_med_given: StrictBool
    pre_med_details: StrictStr = ""
    pre_med_time_given: TimeOfDay = ""
    peri_op_meds_given: StrictBool = False
    peri_op_meds_details: StrictStr = ""
    regular_meds_given: StrictBool = False
    regular_meds_details: StrictStr = ""
    regular_meds_time_given: TimeOfDay = ""


class AllergiesNpo(FormSection):
    allergies_documented: StrictBool
    allergies_details: StrictStr = ""
    npo_status: StrictBool
    npo_fasted_from_time: TimeOfDay = ""


class Preparation(FormSection):
    bath_gown: StrictBool
    shave_skin_prep: StrictBool = False
    id_band_on: StrictBool
    correct_positioning: StrictBool = False
    jewelry_removed: StrictBool
    makeup_nail_polish_removed: StrictBool


class Prosthetics(FormSection):
    contact_lens_removed: StrictBool = False
    dentures_removed: StrictBool = False
    hearing_aid_removed: StrictBool = False
    crowns_bridgework_noted: StrictBool = False
    prosthetic_notes: StrictStr = ""


class PreopVitals(FormSection):
    bp_systolic: Annotated[StrictInt, Field(ge=60, le=260)]
    bp_diastolic: Annotated[StrictInt, Field(ge=30, le=160)]
    pulse: Annotated[StrictInt, Field(ge=30, le=220)]
    respiratory_rate: Annotated[StrictInt, Field(ge=6, le=60)]
    temperature: Annotated[StrictFloat, Field(ge=34.0, le=42.0)]
    cvp: StrictStr = ""
    bladder_emptied: StrictBool
    height: Optional[Annotated[StrictFloat, Field(ge=50, le=250)]] = None
    weight: Annotated[StrictFloat, Field(ge=2, le=350)]
    urinalysis: StrictStr = ""
    x_rays_scans_present: StrictBool = False
    other_forms_required: StrictStr = ""


class Handover(FormSection):
    prepared_by_name: Name
    time_arrived_in_theatre: TimeOfDay = ""
    received_by_name: StrictStr = ""
    handed_over_by_name: StrictStr = ""


SECTIONS = (
    FormSectionSpec("documentation", "Documentation", Documentation),
    FormSectionSpec("bloodResults", "Blood & Lab Results", BloodResults),
    FormSectionSpec("medications", "Medications", Medications),
    FormSectionSpec("allergiesNpo", "Allergies & NPO Status", AllergiesNpo),
    FormSectionSpec("preparation", "Peri-Operative Preparation", Preparation),
    FormSectionSpec("prosthetics", "Prosthetics Checks", Prosthetics),
    FormSectionSpec("vitals", "Immediate Pre-Op Observations", PreopVitals),
    FormSectionSpec("handover", "Handover", Handover),
)


def build_template(context: FinalSchemaContext) -> FormTemplate:
    return FormTemplate(
        key=PREOP_WARD_TEMPLATE_KEY,
        version=TEMPLATE_VERSION,
        title="Pre-Operative Ward Checklist",
        sections=SECTIONS,
    )
