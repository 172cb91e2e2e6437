from __future__ import annotations

from enum import StrEnum


class CaseStatus(StrEnum):
    DRAFT = "DRAFT"
    PLANNING = "PLANNING"
    READY_FOR_SCHEDULING = "READY_FOR_SCHEDULING"
    SCHEDULED = "SCHEDULED"
    IN_THEATRE = "IN_THEATRE"
    RECOVERY = "RECOVERY"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"

    @classmethod
    def values(cls) -> list[str]:
        return [item.value for item in cls]

    @classmethod
    def parse(cls, value: str | None) -> CaseStatus | None:
        text = str(value or "").strip().upper()
        # Appointment-side label for the same intra-operative phase.
        if text in {"IN_CONSULTATION", "IN_THEATER"}:
            return cls.IN_THEATRE
        try:
            return cls(text)
        except ValueError:
            return None


TERMINAL_CASE_STATUSES = frozenset({CaseStatus.COMPLETED, CaseStatus.CANCELLED})

ADMIN_ROLE = "admin"


class CaseUrgency(StrEnum):
    ELECTIVE = "ELECTIVE"
    URGENT = "URGENT"
    EMERGENCY = "EMERGENCY"

    @classmethod
    def values(cls) -> list[str]:
        return [item.value for item in cls]


class ReadinessStatus(StrEnum):
    NOT_STARTED = "NOT_STARTED"
    IN_PROGRESS = "IN_PROGRESS"
    READY = "READY"
    ON_HOLD = "ON_HOLD"

    @classmethod
    def values(cls) -> list[str]:
        return [item.value for item in cls]


class AnesthesiaType(StrEnum):
    GENERAL = "GENERAL"
    REGIONAL = "REGIONAL"
    LOCAL = "LOCAL"
    SEDATION = "SEDATION"
    TIVA = "TIVA"
    MAC = "MAC"

    @classmethod
    def values(cls) -> list[str]:
        return [item.value for item in cls]


class ConsentStatus(StrEnum):
    DRAFT = "DRAFT"
    PENDING_SIGNATURE = "PENDING_SIGNATURE"
    SIGNED = "SIGNED"
    REVOKED = "REVOKED"
    EXPIRED = "EXPIRED"

    @classmethod
    def values(cls) -> list[str]:
        return [item.value for item in cls]


class ConsentType(StrEnum):
    GENERAL_PROCEDURE = "GENERAL_PROCEDURE"
    ANESTHESIA = "ANESTHESIA"
    BLOOD_TRANSFUSION = "BLOOD_TRANSFUSION"
    PHOTOGRAPHY = "PHOTOGRAPHY"
    SPECIAL_PROCEDURE = "SPECIAL_PROCEDURE"

    @classmethod
    def values(cls) -> list[str]:
        return [item.value for item in cls]


class ImageTimepoint(StrEnum):
    PRE_OP = "PRE_OP"
    INTRA_OP = "INTRA_OP"
    POST_OP = "POST_OP"

    @classmethod
    def values(cls) -> list[str]:
        return [item.value for item in cls]


class InviteStatus(StrEnum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    DECLINED = "DECLINED"

    @classmethod
    def values(cls) -> list[str]:
        return [item.value for item in cls]


class SurgicalRole(StrEnum):
    SURGEON = "SURGEON"
    ASSISTANT_SURGEON = "ASSISTANT_SURGEON"
    ANESTHESIOLOGIST = "ANESTHESIOLOGIST"
    SCRUB_NURSE = "SCRUB_NURSE"
    CIRCULATING_NURSE = "CIRCULATING_NURSE"
    THEATER_TECHNICIAN = "THEATER_TECHNICIAN"

    @classmethod
    def values(cls) -> list[str]:
        return [item.value for item in cls]


class FormStatus(StrEnum):
    DRAFT = "DRAFT"
    FINAL = "FINAL"


class OutcomeKind(StrEnum):
    OK = "OK"
    VALIDATION = "VALIDATION"
    FORBIDDEN = "FORBIDDEN"
    CONFLICT = "CONFLICT"
    NOT_FOUND = "NOT_FOUND"
