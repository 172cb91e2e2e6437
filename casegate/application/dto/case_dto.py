from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from casegate.domain.constants import SurgicalRole


class CaseTransitionRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    target_status: str = Field(..., min_length=1)
    expected_version: int | None = None


class TheaterBookingRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    theater_name: str = Field(..., min_length=1)
    start_time: datetime
    end_time: datetime
    status: Literal["PROVISIONAL", "CONFIRMED"] = "CONFIRMED"

    @model_validator(mode="after")
    def _end_after_start(self) -> TheaterBookingRequest:
        if self.end_time <= self.start_time:
            raise ValueError("End time must be after start time")
        return self


class StaffInviteRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    user_id: int
    invited_role: SurgicalRole


class InviteResponseRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    accept: bool


class StaffInviteDto(BaseModel):
    id: int
    case_id: int
    invited_user_id: int
    invited_by: int
    invited_role: str
    status: str
    created_at: datetime | None = None
    responded_at: datetime | None = None


class TheaterBookingDto(BaseModel):
    id: int
    theater_name: str
    start_time: datetime
    end_time: datetime
    status: str


class SurgicalCaseDto(BaseModel):
    id: int
    patient_id: int
    primary_surgeon_id: int
    status: str
    urgency: str
    procedure_name: str | None = None
    side: str | None = None
    diagnosis: str | None = None
    version: int
    readiness_on_hold: bool = False
    booking: TheaterBookingDto | None = None
    invites: list[StaffInviteDto] = Field(default_factory=list)
    next_statuses: list[str] = Field(default_factory=list)
