from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass, field

from casegate.domain.constants import ReadinessStatus

_TAG_RE = re.compile(r"<[^>]*>")
_ENTITY_SPACE_RE = re.compile(r"&nbsp;|&#160;", re.IGNORECASE)


def strip_html(value: str | None) -> str:
    """Plain text of rich-editor output; ``<p></p>`` and ``<br>`` reduce to ''."""
    if not value:
        return ""
    text = _TAG_RE.sub(" ", value)
    text = _ENTITY_SPACE_RE.sub(" ", text)
    return text.strip()


def has_content(value: str | None) -> bool:
    return bool(strip_html(value))


@dataclass(frozen=True, slots=True)
class ReadinessSnapshot:
    procedure_plan: str | None = None
    risk_factors: str | None = None
    planned_anesthesia: str | None = None
    signed_consent_count: int = 0
    pre_op_photo_count: int = 0


@dataclass(frozen=True, slots=True)
class ReadinessItem:
    key: str
    label: str
    done: bool


@dataclass(frozen=True, slots=True)
class ReadinessReport:
    items: list[ReadinessItem] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)
    ready: bool = False

    @property
    def completed_count(self) -> int:
        return sum(1 for item in self.items if item.done)

    @property
    def total(self) -> int:
        return len(self.items)


# Order is the display order and the order of ``missing``.
READINESS_CHECKLIST: tuple[tuple[str, str, Callable[[ReadinessSnapshot], bool]], ...] = (
    ("procedurePlan", "Procedure Plan", lambda s: has_content(s.procedure_plan)),
    ("riskFactors", "Risk Assessment", lambda s: has_content(s.risk_factors)),
    ("anesthesiaPlan", "Anesthesia Plan", lambda s: has_content(s.planned_anesthesia)),
    ("signedConsent", "Consent Signed", lambda s: s.signed_consent_count > 0),
    ("preOpPhoto", "Pre-Op Photos", lambda s: s.pre_op_photo_count > 0),
)


def evaluate_case_readiness(snapshot: ReadinessSnapshot) -> ReadinessReport:
    items = [ReadinessItem(key=key, label=label, done=bool(check(snapshot))) for key, label, check in READINESS_CHECKLIST]
    missing = [item.key for item in items if not item.done]
    return ReadinessReport(items=items, missing=missing, ready=not missing)


def derive_readiness_status(report: ReadinessReport, on_hold: bool = False) -> str:
    if on_hold:
        return ReadinessStatus.ON_HOLD.value
    if report.ready:
        return ReadinessStatus.READY.value
    if report.completed_count == 0:
        return ReadinessStatus.NOT_STARTED.value
    return ReadinessStatus.IN_PROGRESS.value
