from __future__ import annotations

import json

from casegate.application.services.case_plan_service import CasePlanService
from casegate.domain.constants import OutcomeKind
from casegate.infrastructure.db.repositories.audit_repo import AuditLogRepository
from casegate.infrastructure.db.repositories.case_repo import SurgicalCaseRepository

FULL_PLAN = {
    "procedure_plan": "<p>Open septorhinoplasty</p>",
    "risk_factors": "Smoker",
    "planned_anesthesia": "general",
    "estimated_duration_minutes": 120,
}


def _actions(session_factory, entity_type: str, entity_id: int) -> list[str]:
    with session_factory() as session:
        return [row.action for row in AuditLogRepository().list_for_entity(session, entity_type, str(entity_id))]


def _make_ready(service: CasePlanService, case_id: int, staff) -> int:
    assert service.update_case_plan(case_id, FULL_PLAN, staff.surgeon).ok
    consent = service.add_consent(case_id, {"title": "Rhinoplasty consent"}, staff.surgeon)
    assert service.sign_consent(consent.data.id, staff.surgeon).ok
    assert service.add_image(case_id, {"timepoint": "PRE_OP", "description": "Frontal"}, staff.surgeon).ok
    return consent.data.id


def test_first_plan_edit_creates_plan_and_moves_case_to_planning(session_factory, staff, make_case) -> None:
    case_id = make_case()
    service = CasePlanService(session_factory=session_factory)

    outcome = service.update_case_plan(case_id, {"procedure_plan": "<p>Closed rhinoplasty</p>"}, staff.surgeon)

    assert outcome.ok is True
    assert outcome.next_status == "PLANNING"
    assert outcome.data.case_status == "PLANNING"
    assert outcome.data.version == 1
    assert outcome.data.readiness.readiness_status == "IN_PROGRESS"
    assert outcome.data.readiness.missing == ["riskFactors", "anesthesiaPlan", "signedConsent", "preOpPhoto"]
    assert _actions(session_factory, "surgical_case", case_id) == ["case_status_change"]
    assert _actions(session_factory, "case_plan", outcome.data.plan_id) == ["case_plan_create"]


def test_later_edits_keep_status_and_bump_version(session_factory, staff, make_case) -> None:
    case_id = make_case()
    service = CasePlanService(session_factory=session_factory)
    service.update_case_plan(case_id, {"procedure_plan": "Plan A"}, staff.surgeon)

    outcome = service.update_case_plan(
        case_id,
        {"risk_factors": "Asthma", "diagnosis": "Septal deviation", "expected_version": 1},
        staff.surgeon,
    )

    assert outcome.ok is True
    assert outcome.next_status == "PLANNING"
    assert outcome.data.version == 2
    assert outcome.data.risk_factors == "Asthma"
    with session_factory() as session:
        case = SurgicalCaseRepository().get_by_id(session, case_id)
        assert case.diagnosis == "Septal deviation"
        entries = AuditLogRepository().list_for_entity(session, "case_plan", str(outcome.data.plan_id))
        payload = json.loads(entries[-1].payload_json)
    assert payload["schema"] == "casegate.audit.v1"
    assert payload["event"]["action"] == "case_plan_update"
    assert payload["metadata"]["changes"]["after"] == {"diagnosis": "Septal deviation", "risk_factors": "Asthma"}


def test_empty_edit_is_rejected_and_leaves_draft_alone(session_factory, staff, make_case) -> None:
    case_id = make_case()
    service = CasePlanService(session_factory=session_factory)

    outcome = service.update_case_plan(case_id, {}, staff.surgeon)

    assert outcome.kind == OutcomeKind.VALIDATION
    assert outcome.reason == "no fields to update"
    assert service.get_case_plan(case_id, staff.surgeon).data.plan_id is None
    assert _actions(session_factory, "surgical_case", case_id) == []


def test_case_detail_edit_does_not_open_planning(session_factory, staff, make_case) -> None:
    case_id = make_case()
    service = CasePlanService(session_factory=session_factory)

    outcome = service.update_case_plan(case_id, {"diagnosis": "Nasal valve collapse"}, staff.surgeon)

    assert outcome.ok is True
    assert outcome.data.case_status == "DRAFT"
    assert _actions(session_factory, "surgical_case", case_id) == []
    with session_factory() as session:
        assert SurgicalCaseRepository().get_by_id(session, case_id).diagnosis == "Nasal valve collapse"


def test_stale_plan_version_is_a_conflict(session_factory, staff, make_case) -> None:
    case_id = make_case()
    service = CasePlanService(session_factory=session_factory)
    service.update_case_plan(case_id, {"procedure_plan": "Plan A"}, staff.surgeon)
    service.update_case_plan(case_id, {"procedure_plan": "Plan B"}, staff.surgeon)

    outcome = service.update_case_plan(case_id, {"procedure_plan": "Plan C", "expected_version": 1}, staff.surgeon)

    assert outcome.kind == OutcomeKind.CONFLICT
    assert outcome.transport_status == 409
    assert service.get_case_plan(case_id, staff.surgeon).data.procedure_plan == "Plan B"


def test_only_primary_surgeon_edits_the_plan(session_factory, staff, make_case) -> None:
    case_id = make_case()
    service = CasePlanService(session_factory=session_factory)

    for actor in (staff.other_doctor, staff.nurse, staff.admin):
        outcome = service.update_case_plan(case_id, {"procedure_plan": "Plan"}, actor)
        assert outcome.kind == OutcomeKind.FORBIDDEN

    with session_factory() as session:
        assert SurgicalCaseRepository().get_by_id(session, case_id).status == "DRAFT"


def test_markup_only_plan_is_rejected(session_factory, staff, make_case) -> None:
    case_id = make_case()
    service = CasePlanService(session_factory=session_factory)

    outcome = service.update_case_plan(case_id, {"procedure_plan": "<p></p>"}, staff.surgeon)

    assert outcome.kind == OutcomeKind.VALIDATION
    assert outcome.field_errors[0].path == "procedure_plan"
    assert service.get_case_plan(case_id, staff.surgeon).data.plan_id is None


def test_readiness_status_is_not_accepted_as_input(session_factory, staff, make_case) -> None:
    case_id = make_case()
    service = CasePlanService(session_factory=session_factory)

    outcome = service.update_case_plan(case_id, {"readiness_status": "READY"}, staff.surgeon)

    assert outcome.kind == OutcomeKind.VALIDATION
    assert outcome.transport_status == 422
    assert [error.path for error in outcome.field_errors] == ["readiness_status"]


def test_unknown_anesthesia_and_duration_bounds(session_factory, staff, make_case) -> None:
    case_id = make_case()
    service = CasePlanService(session_factory=session_factory)

    outcome = service.update_case_plan(
        case_id,
        {"planned_anesthesia": "HYPNOSIS", "estimated_duration_minutes": 5},
        staff.surgeon,
    )

    assert outcome.kind == OutcomeKind.VALIDATION
    assert {error.path.split(".")[0] for error in outcome.field_errors} == {
        "planned_anesthesia",
        "estimated_duration_minutes",
    }


def test_plan_of_closed_case_cannot_change(session_factory, staff, make_case) -> None:
    case_id = make_case(status="CANCELLED")
    service = CasePlanService(session_factory=session_factory)

    outcome = service.update_case_plan(case_id, {"procedure_plan": "Plan"}, staff.surgeon)

    assert outcome.kind == OutcomeKind.CONFLICT


def test_readiness_follows_plan_consents_and_photos(session_factory, staff, make_case) -> None:
    case_id = make_case()
    service = CasePlanService(session_factory=session_factory)

    consent_id = _make_ready(service, case_id, staff)
    plan = service.get_case_plan(case_id, staff.surgeon).data

    assert plan.planned_anesthesia == "GENERAL"
    assert plan.ready_for_surgery is True
    assert plan.readiness.ready is True
    assert plan.readiness.readiness_status == "READY"
    assert plan.readiness.completed_count == 5
    assert plan.consents[0].status == "SIGNED"
    assert plan.consents[0].signed_at is not None

    revoked = service.revoke_consent(consent_id, staff.surgeon)
    plan = service.get_case_plan(case_id, staff.surgeon).data

    assert revoked.data.status == "REVOKED"
    assert plan.readiness.missing == ["signedConsent"]
    assert plan.readiness.readiness_status == "IN_PROGRESS"


def test_consent_signing_rules(session_factory, staff, make_case) -> None:
    case_id = make_case()
    service = CasePlanService(session_factory=session_factory)
    consent = service.add_consent(case_id, {"title": "Photography consent", "consent_type": "PHOTOGRAPHY"}, staff.surgeon)

    assert consent.data.status == "PENDING_SIGNATURE"
    assert service.sign_consent(consent.data.id, staff.nurse).kind == OutcomeKind.FORBIDDEN
    assert service.sign_consent(consent.data.id, staff.surgeon).ok is True
    assert service.sign_consent(consent.data.id, staff.surgeon).kind == OutcomeKind.CONFLICT

    service.revoke_consent(consent.data.id, staff.surgeon)
    assert service.sign_consent(consent.data.id, staff.surgeon).kind == OutcomeKind.CONFLICT
    assert service.sign_consent(999, staff.surgeon).kind == OutcomeKind.NOT_FOUND


def test_consents_and_photos_do_not_move_draft_case(session_factory, staff, make_case) -> None:
    case_id = make_case()
    service = CasePlanService(session_factory=session_factory)

    service.add_consent(case_id, {"title": "General consent"}, staff.surgeon)
    service.add_image(case_id, {"timepoint": "PRE_OP"}, staff.surgeon)

    plan = service.get_case_plan(case_id, staff.surgeon)
    assert plan.next_status is None
    assert plan.data.case_status == "DRAFT"
    assert plan.data.readiness.missing == ["procedurePlan", "riskFactors", "anesthesiaPlan", "signedConsent"]


def test_readiness_hold_and_release(session_factory, staff, make_case) -> None:
    case_id = make_case()
    service = CasePlanService(session_factory=session_factory)
    _make_ready(service, case_id, staff)

    assert service.hold_readiness(case_id, {"reason": "bad"}, staff.surgeon).kind == OutcomeKind.VALIDATION
    assert service.hold_readiness(case_id, {"reason": "Awaiting cardiology review"}, staff.nurse).kind == (
        OutcomeKind.FORBIDDEN
    )

    held = service.hold_readiness(case_id, {"reason": "Awaiting cardiology review"}, staff.surgeon)
    assert held.data.readiness.readiness_status == "ON_HOLD"
    assert held.data.readiness.hold_reason == "Awaiting cardiology review"
    assert held.data.readiness.ready is True
    assert service.hold_readiness(case_id, {"reason": "Second hold"}, staff.admin).kind == OutcomeKind.CONFLICT

    released = service.release_readiness_hold(case_id, staff.admin)
    assert released.data.readiness.readiness_status == "READY"
    assert service.release_readiness_hold(case_id, staff.admin).kind == OutcomeKind.CONFLICT
    assert _actions(session_factory, "surgical_case", case_id) == [
        "case_status_change",
        "readiness_hold",
        "readiness_release",
    ]


def test_plan_visibility(session_factory, staff, make_case) -> None:
    case_id = make_case()
    service = CasePlanService(session_factory=session_factory)

    assert service.get_case_plan(case_id, staff.technician).kind == OutcomeKind.FORBIDDEN
    assert service.get_case_plan(case_id, staff.admin).ok is True
    assert service.get_case_plan(424242, staff.admin).kind == OutcomeKind.NOT_FOUND
