from __future__ import annotations

from casegate.application.security import (
    can_book_theater,
    can_edit_case_plan,
    can_invite_staff,
    can_read_any_case,
    can_read_clinical_forms,
    can_write_form,
    has_permission,
)
from casegate.domain.models.clinical_form import (
    INTRAOP_TEMPLATE_KEY,
    OPERATIVE_NOTE_TEMPLATE_KEY,
    PREOP_WARD_TEMPLATE_KEY,
    RECOVERY_TEMPLATE_KEY,
    WHO_CHECKLIST_TEMPLATE_KEY,
)

NURSE_FORMS = (PREOP_WARD_TEMPLATE_KEY, INTRAOP_TEMPLATE_KEY, RECOVERY_TEMPLATE_KEY)


def test_nurse_writes_nursing_records_only() -> None:
    assert all(can_write_form("nurse", key) for key in NURSE_FORMS)
    assert can_write_form("nurse", OPERATIVE_NOTE_TEMPLATE_KEY) is False
    assert can_edit_case_plan("nurse") is False


def test_doctor_writes_operative_note_only() -> None:
    assert can_write_form("doctor", OPERATIVE_NOTE_TEMPLATE_KEY) is True
    assert not any(can_write_form("doctor", key) for key in NURSE_FORMS)
    assert can_edit_case_plan("doctor") is True
    assert can_invite_staff("doctor") is True
    assert can_book_theater("doctor") is True


def test_admin_reads_everything_but_writes_no_documents() -> None:
    assert can_read_any_case("admin") is True
    assert can_book_theater("admin") is True
    assert not any(can_write_form("admin", key) for key in (*NURSE_FORMS, OPERATIVE_NOTE_TEMPLATE_KEY))
    assert can_edit_case_plan("admin") is False


def test_theater_technician_writes_only_the_who_checklist() -> None:
    assert can_read_clinical_forms("theater_technician") is True
    assert can_read_any_case("theater_technician") is False
    assert not any(can_write_form("theater_technician", key) for key in NURSE_FORMS)
    assert can_write_form("theater_technician", WHO_CHECKLIST_TEMPLATE_KEY) is True


def test_who_checklist_writers() -> None:
    assert can_write_form("nurse", WHO_CHECKLIST_TEMPLATE_KEY) is True
    assert can_write_form("doctor", WHO_CHECKLIST_TEMPLATE_KEY) is False
    assert can_write_form("admin", WHO_CHECKLIST_TEMPLATE_KEY) is False


def test_unknown_role_and_template_get_nothing() -> None:
    assert has_permission("janitor", "read_clinical_forms") is False
    assert can_read_clinical_forms("janitor") is False
    assert can_write_form("nurse", "UNKNOWN_TEMPLATE") is False
