from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

PREOP_WARD_TEMPLATE_KEY = "NURSE_PREOP_WARD_CHECKLIST"
INTRAOP_TEMPLATE_KEY = "NURSE_INTRAOP_RECORD"
OPERATIVE_NOTE_TEMPLATE_KEY = "SURGEON_OPERATIVE_NOTE"
RECOVERY_TEMPLATE_KEY = "NURSE_RECOVERY_RECORD"
WHO_CHECKLIST_TEMPLATE_KEY = "WHO_SURGICAL_CHECKLIST"

TEMPLATE_VERSION = 1

NURSE_TEMPLATE_KEYS = frozenset({PREOP_WARD_TEMPLATE_KEY, INTRAOP_TEMPLATE_KEY, RECOVERY_TEMPLATE_KEY})
SURGEON_TEMPLATE_KEYS = frozenset({OPERATIVE_NOTE_TEMPLATE_KEY})
THEATRE_TEMPLATE_KEYS = frozenset({WHO_CHECKLIST_TEMPLATE_KEY})


@dataclass(frozen=True, slots=True)
class FieldError:
    path: str
    message: str

    def as_text(self) -> str:
        return f"{self.path}: {self.message}" if self.path else self.message


@dataclass(slots=True)
class SchemaValidation:
    ok: bool
    errors: list[FieldError] = field(default_factory=list)
    data: dict[str, Any] | None = None


@dataclass(frozen=True, slots=True)
class FinalSchemaContext:
    """Signals from other documents that shape a final schema.

    The registry never looks these up itself; callers read the linked
    records and pass the result in.
    """

    nurse_has_discrepancy: bool = False


@dataclass(frozen=True, slots=True)
class SectionCompletion:
    complete: bool
    title: str = ""
    critical: bool = False
    errors: list[str] = field(default_factory=list)
