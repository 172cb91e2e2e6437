from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from typing import Any

from sqlalchemy.orm import Session

from casegate.application.dto.auth_dto import ActorContext
from casegate.application.dto.case_plan_dto import (
    CasePlanDto,
    CasePlanUpdateRequest,
    ConsentCreateRequest,
    ConsentDto,
    ImageCreateRequest,
    PatientImageDto,
    ReadinessDto,
    ReadinessHoldRequest,
)
from casegate.application.dto.outcome_dto import Outcome, parse_request
from casegate.application.errors import RejectedOperation
from casegate.application.security import can_edit_case_plan, can_read_any_case
from casegate.application.services.audit_emitter import AuditEmitter
from casegate.domain.constants import ADMIN_ROLE, TERMINAL_CASE_STATUSES, CaseStatus, ConsentStatus, ImageTimepoint
from casegate.domain.models.clinical_form import FieldError
from casegate.domain.rules.audit_rules import build_changed_paths
from casegate.domain.rules.case_transitions import CaseAccess, resolve_case_access, status_after_plan_edit
from casegate.domain.rules.readiness_rules import (
    ReadinessReport,
    ReadinessSnapshot,
    derive_readiness_status,
    evaluate_case_readiness,
    strip_html,
)
from casegate.infrastructure.db import models_sqlalchemy as models
from casegate.infrastructure.db.repositories.case_plan_repo import CasePlanRepository
from casegate.infrastructure.db.repositories.case_repo import SurgicalCaseRepository
from casegate.infrastructure.db.session import session_scope

logger = logging.getLogger(__name__)

PLAN_FIELDS = (
    "procedure_plan",
    "risk_factors",
    "pre_op_notes",
    "implant_details",
    "planned_anesthesia",
    "special_instructions",
    "estimated_duration_minutes",
)
CASE_FIELDS = ("procedure_name", "side", "diagnosis")


def _utc_now() -> datetime:
    return datetime.now(UTC)


def _plan_dict(plan: models.CasePlan | None) -> dict[str, Any]:
    if plan is None:
        return {}
    return {field: getattr(plan, field) for field in PLAN_FIELDS}


class CasePlanService:
    def __init__(
        self,
        case_repo: SurgicalCaseRepository | None = None,
        plan_repo: CasePlanRepository | None = None,
        audit: AuditEmitter | None = None,
        session_factory: Callable = session_scope,
    ) -> None:
        self.case_repo = case_repo or SurgicalCaseRepository()
        self.plan_repo = plan_repo or CasePlanRepository()
        self.audit = audit or AuditEmitter()
        self.session_factory = session_factory

    def get_case_plan(self, case_id: int, actor: ActorContext) -> Outcome:
        with self.session_factory() as session:
            case = self.case_repo.get_by_id(session, case_id)
            if case is None:
                return Outcome.not_found("Surgical case not found")
            access = self._access(session, case, actor)
            if not (access.is_team_member or can_read_any_case(actor.role)):
                return Outcome.forbidden()
            plan = self.plan_repo.get_for_case(session, case_id)
            return Outcome.success(self._to_dto(session, case, plan))

    def update_case_plan(
        self,
        case_id: int,
        payload: CasePlanUpdateRequest | Mapping[str, Any] | None,
        actor: ActorContext,
    ) -> Outcome:
        request = parse_request(CasePlanUpdateRequest, payload)
        if isinstance(request, Outcome):
            return request
        changes = request.model_dump(exclude_unset=True, exclude={"expected_version"})
        if not changes:
            return Outcome.validation(reason="no fields to update")
        procedure_plan = changes.get("procedure_plan")
        if procedure_plan and not strip_html(procedure_plan):
            return Outcome.validation(
                [
                    FieldError(
                        "procedure_plan",
                        "Procedure plan cannot be empty HTML tags. Please enter meaningful content.",
                    )
                ]
            )
        if "planned_anesthesia" in changes:
            anesthesia = changes["planned_anesthesia"]
            changes["planned_anesthesia"] = str(anesthesia) if anesthesia else None

        try:
            with self.session_factory() as session:
                return self._apply_plan_update(session, case_id, request, changes, actor)
        except RejectedOperation as exc:
            logger.info("Plan update for case %s rejected: %s", case_id, exc.outcome.reason)
            return exc.outcome

    def _apply_plan_update(
        self,
        session: Session,
        case_id: int,
        request: CasePlanUpdateRequest,
        changes: dict[str, Any],
        actor: ActorContext,
    ) -> Outcome:
        case = self.case_repo.get_by_id(session, case_id)
        if case is None:
            return Outcome.not_found("Surgical case not found")
        if case.primary_surgeon_id != actor.user_id or not can_edit_case_plan(actor.role):
            return Outcome.forbidden("Only the primary surgeon can modify the surgical plan")
        current = CaseStatus(case.status)
        if current in TERMINAL_CASE_STATUSES:
            return Outcome.conflict(f"Case is {current.value}; the plan can no longer change")

        plan = self.plan_repo.get_for_case(session, case_id)
        if (
            plan is not None
            and request.expected_version is not None
            and int(plan.version) != request.expected_version
        ):
            return Outcome.conflict("version conflict")
        before = {**_plan_dict(plan), **{field: getattr(case, field) for field in CASE_FIELDS}}
        created = plan is None
        if plan is None:
            plan = self.plan_repo.create(session, case_id=case_id, user_id=actor.user_id)

        for field, value in changes.items():
            if field in PLAN_FIELDS:
                setattr(plan, field, value)
            elif field in CASE_FIELDS:
                setattr(case, field, value)
        if not created:
            self.plan_repo.bump_version(plan, actor.user_id)
        report = self._refresh_readiness(session, case, plan)
        after = {**_plan_dict(plan), **{field: getattr(case, field) for field in CASE_FIELDS}}
        changed = build_changed_paths(before, after)

        # Only a changed plan field opens planning; case details alone do not.
        plan_changed = any(field in PLAN_FIELDS for field in changed["after"])
        next_status = status_after_plan_edit(current) if plan_changed else current
        if next_status != current:
            if not self.case_repo.set_status(session, case, expected=current.value, new_status=next_status.value):
                raise RejectedOperation(Outcome.conflict("Case status changed concurrently"))
            self.audit.record(
                session,
                actor_id=actor.user_id,
                entity_type="surgical_case",
                entity_id=case.id,
                action_type="case_status_change",
                metadata={"from": current.value, "to": next_status.value, "trigger": "plan_edit"},
            )
        else:
            self.case_repo.touch(session, case)

        self.audit.record(
            session,
            actor_id=actor.user_id,
            entity_type="case_plan",
            entity_id=plan.id,
            action_type="case_plan_create" if created else "case_plan_update",
            metadata={
                "case_id": case.id,
                "fields": sorted(changes),
                "changes": changed,
                "readiness": {"ready": report.ready, "missing": report.missing},
                "plan_version": int(plan.version),
            },
        )
        return Outcome.success(self._to_dto(session, case, plan), next_status=next_status.value)

    def add_consent(
        self,
        case_id: int,
        payload: ConsentCreateRequest | Mapping[str, Any] | None,
        actor: ActorContext,
    ) -> Outcome:
        request = parse_request(ConsentCreateRequest, payload)
        if isinstance(request, Outcome):
            return request
        with self.session_factory() as session:
            case = self.case_repo.get_by_id(session, case_id)
            if case is None:
                return Outcome.not_found("Surgical case not found")
            if case.primary_surgeon_id != actor.user_id:
                return Outcome.forbidden()
            if CaseStatus(case.status) in TERMINAL_CASE_STATUSES:
                return Outcome.conflict("Case is closed")
            plan = self._ensure_plan(session, case, actor)
            consent = self.plan_repo.add_consent(
                session,
                plan_id=plan.id,
                consent_type=request.consent_type.value,
                title=request.title,
                status=request.status,
            )
            self._refresh_readiness(session, case, plan)
            self.audit.record(
                session,
                actor_id=actor.user_id,
                entity_type="consent_form",
                entity_id=consent.id,
                action_type="consent_create",
                metadata={"case_id": case.id, "consent_type": consent.consent_type, "status": consent.status},
            )
            return Outcome.success(self._consent_dto(consent))

    def sign_consent(self, consent_id: int, actor: ActorContext) -> Outcome:
        with self.session_factory() as session:
            consent = self.plan_repo.get_consent(session, consent_id)
            if consent is None:
                return Outcome.not_found("Consent not found")
            plan = consent.case_plan
            case = plan.surgical_case
            if not self._access(session, case, actor).is_team_member:
                return Outcome.forbidden()
            if consent.status == ConsentStatus.SIGNED.value:
                return Outcome.conflict("Consent is already signed")
            if consent.status in (ConsentStatus.REVOKED.value, ConsentStatus.EXPIRED.value):
                return Outcome.conflict(f"Consent is {consent.status} and cannot be signed")
            status_from = str(consent.status)
            consent.status = ConsentStatus.SIGNED.value
            consent.signed_at = _utc_now()
            consent.signed_by = actor.user_id
            consent.updated_at = _utc_now()
            session.flush()
            report = self._refresh_readiness(session, case, plan)
            self.audit.record(
                session,
                actor_id=actor.user_id,
                entity_type="consent_form",
                entity_id=consent.id,
                action_type="consent_sign",
                metadata={"case_id": case.id, "from": status_from, "to": consent.status, "ready": report.ready},
            )
            return Outcome.success(self._consent_dto(consent))

    def revoke_consent(self, consent_id: int, actor: ActorContext) -> Outcome:
        with self.session_factory() as session:
            consent = self.plan_repo.get_consent(session, consent_id)
            if consent is None:
                return Outcome.not_found("Consent not found")
            plan = consent.case_plan
            case = plan.surgical_case
            if case.primary_surgeon_id != actor.user_id:
                return Outcome.forbidden()
            if consent.status == ConsentStatus.REVOKED.value:
                return Outcome.conflict("Consent is already revoked")
            status_from = str(consent.status)
            consent.status = ConsentStatus.REVOKED.value
            consent.updated_at = _utc_now()
            session.flush()
            report = self._refresh_readiness(session, case, plan)
            self.audit.record(
                session,
                actor_id=actor.user_id,
                entity_type="consent_form",
                entity_id=consent.id,
                action_type="consent_revoke",
                metadata={"case_id": case.id, "from": status_from, "to": consent.status, "ready": report.ready},
            )
            return Outcome.success(self._consent_dto(consent))

    def add_image(
        self,
        case_id: int,
        payload: ImageCreateRequest | Mapping[str, Any] | None,
        actor: ActorContext,
    ) -> Outcome:
        """Record photo metadata; the file itself lives elsewhere."""
        request = parse_request(ImageCreateRequest, payload)
        if isinstance(request, Outcome):
            return request
        with self.session_factory() as session:
            case = self.case_repo.get_by_id(session, case_id)
            if case is None:
                return Outcome.not_found("Surgical case not found")
            if not self._access(session, case, actor).is_team_member:
                return Outcome.forbidden()
            plan = self._ensure_plan(session, case, actor)
            image = self.plan_repo.add_image(
                session,
                plan_id=plan.id,
                timepoint=request.timepoint.value,
                description=request.description,
                file_ref=request.file_ref,
                captured_at=request.captured_at,
                user_id=actor.user_id,
            )
            self._refresh_readiness(session, case, plan)
            self.audit.record(
                session,
                actor_id=actor.user_id,
                entity_type="patient_image",
                entity_id=image.id,
                action_type="image_add",
                metadata={"case_id": case.id, "timepoint": image.timepoint},
            )
            return Outcome.success(self._image_dto(image))

    def hold_readiness(
        self,
        case_id: int,
        payload: ReadinessHoldRequest | Mapping[str, Any] | None,
        actor: ActorContext,
    ) -> Outcome:
        """Put readiness on hold; scheduling stays blocked until released."""
        request = parse_request(ReadinessHoldRequest, payload)
        if isinstance(request, Outcome):
            return request
        with self.session_factory() as session:
            case = self.case_repo.get_by_id(session, case_id)
            if case is None:
                return Outcome.not_found("Surgical case not found")
            if case.primary_surgeon_id != actor.user_id and actor.role != ADMIN_ROLE:
                return Outcome.forbidden()
            if bool(case.readiness_on_hold):
                return Outcome.conflict("Readiness is already on hold")
            case.readiness_on_hold = True
            case.readiness_hold_reason = request.reason
            self.case_repo.touch(session, case)
            plan = self.plan_repo.get_for_case(session, case_id)
            if plan is not None:
                self._refresh_readiness(session, case, plan)
            self.audit.record(
                session,
                actor_id=actor.user_id,
                entity_type="surgical_case",
                entity_id=case.id,
                action_type="readiness_hold",
                metadata={"reason": request.reason},
            )
            logger.info("Readiness hold set on case %s by user %s", case.id, actor.user_id)
            return Outcome.success(self._to_dto(session, case, plan))

    def release_readiness_hold(self, case_id: int, actor: ActorContext) -> Outcome:
        with self.session_factory() as session:
            case = self.case_repo.get_by_id(session, case_id)
            if case is None:
                return Outcome.not_found("Surgical case not found")
            if case.primary_surgeon_id != actor.user_id and actor.role != ADMIN_ROLE:
                return Outcome.forbidden()
            if not bool(case.readiness_on_hold):
                return Outcome.conflict("Readiness is not on hold")
            previous_reason = case.readiness_hold_reason
            case.readiness_on_hold = False
            case.readiness_hold_reason = None
            self.case_repo.touch(session, case)
            plan = self.plan_repo.get_for_case(session, case_id)
            if plan is not None:
                self._refresh_readiness(session, case, plan)
            self.audit.record(
                session,
                actor_id=actor.user_id,
                entity_type="surgical_case",
                entity_id=case.id,
                action_type="readiness_release",
                metadata={"previous_reason": previous_reason},
            )
            logger.info("Readiness hold released on case %s by user %s", case.id, actor.user_id)
            return Outcome.success(self._to_dto(session, case, plan))

    def evaluate_readiness(self, session: Session, case: models.SurgicalCase) -> ReadinessReport:
        """Readiness verdict for ``case`` from its stored plan, consents and photos."""
        plan = self.plan_repo.get_for_case(session, case.id)
        return evaluate_case_readiness(self._snapshot(session, plan))

    def _snapshot(self, session: Session, plan: models.CasePlan | None) -> ReadinessSnapshot:
        if plan is None:
            return ReadinessSnapshot()
        return ReadinessSnapshot(
            procedure_plan=plan.procedure_plan,
            risk_factors=plan.risk_factors,
            planned_anesthesia=plan.planned_anesthesia,
            signed_consent_count=self.plan_repo.count_signed_consents(session, plan.id),
            pre_op_photo_count=self.plan_repo.count_images(session, plan.id, ImageTimepoint.PRE_OP.value),
        )

    def _refresh_readiness(
        self,
        session: Session,
        case: models.SurgicalCase,
        plan: models.CasePlan,
    ) -> ReadinessReport:
        session.flush()
        report = evaluate_case_readiness(self._snapshot(session, plan))
        plan.readiness_status = derive_readiness_status(report, on_hold=bool(case.readiness_on_hold))
        plan.ready_for_surgery = report.ready
        session.flush()
        return report

    def _ensure_plan(self, session: Session, case: models.SurgicalCase, actor: ActorContext) -> models.CasePlan:
        plan = self.plan_repo.get_for_case(session, case.id)
        if plan is None:
            plan = self.plan_repo.create(session, case_id=case.id, user_id=actor.user_id)
        return plan

    def _access(self, session: Session, case: models.SurgicalCase, actor: ActorContext) -> CaseAccess:
        invites = [(item.invited_user_id, str(item.status)) for item in self.case_repo.list_invites(session, case.id)]
        return resolve_case_access(actor.user_id, case.primary_surgeon_id, invites)

    def _to_dto(
        self,
        session: Session,
        case: models.SurgicalCase,
        plan: models.CasePlan | None,
    ) -> CasePlanDto:
        report = evaluate_case_readiness(self._snapshot(session, plan))
        on_hold = bool(case.readiness_on_hold)
        readiness = ReadinessDto(
            items=[{"key": item.key, "label": item.label, "done": item.done} for item in report.items],
            missing=report.missing,
            ready=report.ready,
            completed_count=report.completed_count,
            total=report.total,
            readiness_status=derive_readiness_status(report, on_hold=on_hold),
            on_hold=on_hold,
            hold_reason=case.readiness_hold_reason,
        )
        if plan is None:
            return CasePlanDto(case_id=case.id, case_status=str(case.status), readiness=readiness)
        return CasePlanDto(
            case_id=case.id,
            case_status=str(case.status),
            plan_id=plan.id,
            version=int(plan.version),
            ready_for_surgery=report.ready,
            readiness=readiness,
            consents=[self._consent_dto(item) for item in self.plan_repo.list_consents(session, plan.id)],
            images=[self._image_dto(item) for item in self.plan_repo.list_images(session, plan.id)],
            **_plan_dict(plan),
        )

    @staticmethod
    def _consent_dto(consent: models.ConsentForm) -> ConsentDto:
        return ConsentDto(
            id=consent.id,
            consent_type=str(consent.consent_type),
            title=str(consent.title),
            status=str(consent.status),
            signed_at=consent.signed_at,
            signed_by=consent.signed_by,
        )

    @staticmethod
    def _image_dto(image: models.PatientImage) -> PatientImageDto:
        return PatientImageDto(
            id=image.id,
            timepoint=str(image.timepoint),
            description=image.description,
            file_ref=image.file_ref,
            captured_at=image.captured_at,
        )
