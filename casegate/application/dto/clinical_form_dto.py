from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class FormDraftSaveRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    data: dict[str, Any] = Field(default_factory=dict)
    expected_version: int | None = None


class SectionCompletionDto(BaseModel):
    complete: bool
    title: str = ""
    # Critical sections feed a safety gate on the case.
    critical: bool = False
    errors: list[str] = Field(default_factory=list)


class ClinicalFormDto(BaseModel):
    id: int | None = None
    case_id: int
    template_key: str
    template_version: int
    status: str
    version: int = 0
    data: dict[str, Any] = Field(default_factory=dict)
    signed_by_user_id: int | None = None
    signed_at: datetime | None = None
    updated_at: datetime | None = None
    # True when nothing is stored yet and ``data`` is only a suggested starting point.
    prefilled: bool = False
    sections: dict[str, SectionCompletionDto] = Field(default_factory=dict)
    missing_items: list[str] = Field(default_factory=list)
