from casegate.application.security.role_matrix import (
    Permission,
    Role,
    can_book_theater,
    can_edit_case_plan,
    can_invite_staff,
    can_read_any_case,
    can_read_clinical_forms,
    can_write_form,
    has_permission,
)

__all__ = [
    "Permission",
    "Role",
    "can_book_theater",
    "can_edit_case_plan",
    "can_invite_staff",
    "can_read_any_case",
    "can_read_clinical_forms",
    "can_write_form",
    "has_permission",
]
