from __future__ import annotations

from typing import Final, Literal

from casegate.domain.models.clinical_form import NURSE_TEMPLATE_KEYS, SURGEON_TEMPLATE_KEYS, THEATRE_TEMPLATE_KEYS

Role = Literal["admin", "doctor", "nurse", "theater_technician"]
Permission = Literal[
    "read_any_case",
    "read_clinical_forms",
    "write_nurse_forms",
    "write_surgeon_forms",
    "write_theatre_checklist",
    "edit_case_plan",
    "invite_staff",
    "book_theater",
]

_ROLE_PERMISSIONS: Final[dict[Role, frozenset[Permission]]] = {
    "admin": frozenset(
        {
            "read_any_case",
            "read_clinical_forms",
            "book_theater",
        }
    ),
    "doctor": frozenset(
        {
            "read_clinical_forms",
            "write_surgeon_forms",
            "edit_case_plan",
            "invite_staff",
            "book_theater",
        }
    ),
    "nurse": frozenset(
        {
            "read_clinical_forms",
            "write_nurse_forms",
            "write_theatre_checklist",
        }
    ),
    "theater_technician": frozenset({"read_clinical_forms", "write_theatre_checklist"}),
}


def has_permission(role: str, permission: Permission) -> bool:
    # Unknown roles get nothing.
    return permission in _ROLE_PERMISSIONS.get(role, frozenset())


def can_read_any_case(role: str) -> bool:
    return has_permission(role, "read_any_case")


def can_read_clinical_forms(role: str) -> bool:
    return has_permission(role, "read_clinical_forms")


def can_write_form(role: str, template_key: str) -> bool:
    if template_key in NURSE_TEMPLATE_KEYS:
        return has_permission(role, "write_nurse_forms")
    if template_key in SURGEON_TEMPLATE_KEYS:
        return has_permission(role, "write_surgeon_forms")
    if template_key in THEATRE_TEMPLATE_KEYS:
        return has_permission(role, "write_theatre_checklist")
    return False


def can_edit_case_plan(role: str) -> bool:
    return has_permission(role, "edit_case_plan")


def can_invite_staff(role: str) -> bool:
    return has_permission(role, "invite_staff")


def can_book_theater(role: str) -> bool:
    return has_permission(role, "book_theater")
