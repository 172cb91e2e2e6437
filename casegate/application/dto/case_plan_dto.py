from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from casegate.domain.constants import AnesthesiaType, ConsentType, ImageTimepoint


class CasePlanUpdateRequest(BaseModel):
    # readiness_status is derived; sending it is a malformed request.
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    procedure_plan: str | None = None
    risk_factors: str | None = None
    pre_op_notes: str | None = None
    implant_details: str | None = None
    planned_anesthesia: AnesthesiaType | Literal[""] | None = None
    special_instructions: str | None = None
    estimated_duration_minutes: int | None = Field(default=None, ge=15, le=600)
    procedure_name: str | None = None
    side: str | None = None
    diagnosis: str | None = None
    expected_version: int | None = None

    @field_validator("planned_anesthesia", mode="before")
    @classmethod
    def _upper_anesthesia(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().upper()
        return value


class ConsentCreateRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    consent_type: ConsentType = ConsentType.GENERAL_PROCEDURE
    title: str = Field(..., min_length=2)
    status: Literal["DRAFT", "PENDING_SIGNATURE"] = "PENDING_SIGNATURE"


class ImageCreateRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    timepoint: ImageTimepoint
    description: str | None = None
    file_ref: str | None = None
    captured_at: datetime | None = None


class ReadinessHoldRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    reason: str = Field(..., min_length=5)


class ReadinessItemDto(BaseModel):
    key: str
    label: str
    done: bool


class ReadinessDto(BaseModel):
    items: list[ReadinessItemDto]
    missing: list[str]
    ready: bool
    completed_count: int
    total: int
    readiness_status: str
    on_hold: bool = False
    hold_reason: str | None = None


class ConsentDto(BaseModel):
    id: int
    consent_type: str
    title: str
    status: str
    signed_at: datetime | None = None
    signed_by: int | None = None


class PatientImageDto(BaseModel):
    id: int
    timepoint: str
    description: str | None = None
    file_ref: str | None = None
    captured_at: datetime | None = None


class CasePlanDto(BaseModel):
    case_id: int
    case_status: str
    plan_id: int | None = None
    version: int = 0
    procedure_plan: str | None = None
    risk_factors: str | None = None
    pre_op_notes: str | None = None
    implant_details: str | None = None
    planned_anesthesia: str | None = None
    special_instructions: str | None = None
    estimated_duration_minutes: int | None = None
    ready_for_surgery: bool = False
    readiness: ReadinessDto
    consents: list[ConsentDto] = Field(default_factory=list)
    images: list[PatientImageDto] = Field(default_factory=list)
