from __future__ import annotations

from casegate.container import build_container
from casegate.domain.models.clinical_form import PREOP_WARD_TEMPLATE_KEY


def test_container_services_share_repositories_and_session_factory(session_factory, staff, make_case) -> None:
    container = build_container(session_factory)
    case_id = make_case(status="SCHEDULED")

    assert container.case_workflow_service.plan_service is container.case_plan_service
    assert container.clinical_form_service.case_repo is container.case_repo
    assert container.audit.audit_repo is container.audit_repo

    saved = container.clinical_form_service.save_draft(
        case_id, PREOP_WARD_TEMPLATE_KEY, {"data": {"medications": {"preMedGiven": True}}}, staff.nurse
    )
    assert saved.ok is True
    with session_factory() as session:
        entries = container.audit_repo.list_for_entity(session, "clinical_form_response", str(saved.data.id))
    assert [entry.action for entry in entries] == ["clinical_form_create"]
