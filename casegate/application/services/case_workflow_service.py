from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any

from sqlalchemy.orm import Session

from casegate.application.dto.auth_dto import ActorContext
from casegate.application.dto.case_dto import (
    CaseTransitionRequest,
    StaffInviteDto,
    SurgicalCaseDto,
    TheaterBookingDto,
    TheaterBookingRequest,
)
from casegate.application.dto.outcome_dto import Outcome, parse_request
from casegate.application.security import can_book_theater, can_read_any_case
from casegate.application.services.audit_emitter import AuditEmitter
from casegate.application.services.case_plan_service import CasePlanService
from casegate.application.services.clinical_form_service import load_form_data
from casegate.domain.constants import ADMIN_ROLE, TERMINAL_CASE_STATUSES, CaseStatus, OutcomeKind
from casegate.domain.models.clinical_form import (
    INTRAOP_TEMPLATE_KEY,
    RECOVERY_TEMPLATE_KEY,
    TEMPLATE_VERSION,
    WHO_CHECKLIST_TEMPLATE_KEY,
    FieldError,
)
from casegate.domain.rules.case_transitions import (
    CaseAccess,
    TransitionContext,
    TransitionDecision,
    can_request_transition,
    decide_transition,
    next_statuses,
    resolve_case_access,
)
from casegate.infrastructure.db import models_sqlalchemy as models
from casegate.infrastructure.db.repositories.case_repo import SurgicalCaseRepository
from casegate.infrastructure.db.repositories.form_repo import ClinicalFormRepository
from casegate.infrastructure.db.session import session_scope

logger = logging.getLogger(__name__)

# Bookings are fixed once the patient is in theatre.
_BOOKABLE_STATUSES = frozenset(
    {CaseStatus.DRAFT, CaseStatus.PLANNING, CaseStatus.READY_FOR_SCHEDULING, CaseStatus.SCHEDULED}
)


def _decision_outcome(decision: TransitionDecision) -> Outcome:
    if decision.kind == OutcomeKind.FORBIDDEN:
        return Outcome.forbidden(decision.reason)
    if decision.kind == OutcomeKind.CONFLICT:
        return Outcome.conflict(decision.reason or "invalid transition")
    return Outcome.validation(missing_items=decision.missing_items, reason=decision.reason)


class CaseWorkflowService:
    def __init__(
        self,
        case_repo: SurgicalCaseRepository | None = None,
        form_repo: ClinicalFormRepository | None = None,
        plan_service: CasePlanService | None = None,
        audit: AuditEmitter | None = None,
        session_factory: Callable = session_scope,
    ) -> None:
        self.case_repo = case_repo or SurgicalCaseRepository()
        self.form_repo = form_repo or ClinicalFormRepository()
        self.plan_service = plan_service or CasePlanService(case_repo=self.case_repo, session_factory=session_factory)
        self.audit = audit or AuditEmitter()
        self.session_factory = session_factory

    def get_case(self, case_id: int, actor: ActorContext) -> Outcome:
        with self.session_factory() as session:
            case = self.case_repo.get_by_id(session, case_id)
            if case is None:
                return Outcome.not_found("Surgical case not found")
            access = self._access(session, case, actor)
            if not (access.is_team_member or can_read_any_case(actor.role)):
                return Outcome.forbidden()
            return Outcome.success(self._to_dto(session, case, actor, access))

    def next_statuses(self, case_id: int, actor: ActorContext) -> Outcome:
        """Statuses this actor may request next; gates are not evaluated here."""
        with self.session_factory() as session:
            case = self.case_repo.get_by_id(session, case_id)
            if case is None:
                return Outcome.not_found("Surgical case not found")
            access = self._access(session, case, actor)
            if not (access.is_team_member or can_read_any_case(actor.role)):
                return Outcome.forbidden()
            return Outcome.success(self._requestable(case, actor, access))

    def transition_case(
        self,
        case_id: int,
        payload: CaseTransitionRequest | Mapping[str, Any] | None,
        actor: ActorContext,
    ) -> Outcome:
        request = parse_request(CaseTransitionRequest, payload)
        if isinstance(request, Outcome):
            return request
        target = CaseStatus.parse(request.target_status)
        if target is None:
            return Outcome.validation(
                [FieldError("target_status", f"Unknown case status: {request.target_status}")]
            )

        with self.session_factory() as session:
            case = self.case_repo.get_by_id(session, case_id)
            if case is None:
                return Outcome.not_found("Surgical case not found")
            current = CaseStatus(case.status)
            access = self._access(session, case, actor)

            decision = decide_transition(current, target, actor.role, access)
            if decision.kind in (OutcomeKind.FORBIDDEN, OutcomeKind.CONFLICT):
                logger.info(
                    "Transition %s -> %s on case %s rejected (%s)", current, target, case_id, decision.kind
                )
                return _decision_outcome(decision)
            if request.expected_version is not None and int(case.version) != request.expected_version:
                return Outcome.conflict("version conflict")

            context = self._transition_context(session, case, target)
            decision = decide_transition(current, target, actor.role, access, context)
            if not decision.allowed:
                logger.info(
                    "Transition %s -> %s on case %s blocked: %s",
                    current,
                    target,
                    case_id,
                    ", ".join(decision.missing_items),
                )
                return _decision_outcome(decision)

            if not self.case_repo.set_status(session, case, expected=current.value, new_status=target.value):
                logger.info("Transition %s -> %s on case %s lost a concurrent update", current, target, case_id)
                return Outcome.conflict("Case status changed concurrently")

            self.audit.record(
                session,
                actor_id=actor.user_id,
                entity_type="surgical_case",
                entity_id=case.id,
                action_type="case_status_change",
                metadata={"from": current.value, "to": target.value},
            )
            logger.info("Case %s moved %s -> %s by user %s", case.id, current, target, actor.user_id)
            return Outcome.success(self._to_dto(session, case, actor, access), next_status=target.value)

    def book_theater(
        self,
        case_id: int,
        payload: TheaterBookingRequest | Mapping[str, Any] | None,
        actor: ActorContext,
    ) -> Outcome:
        request = parse_request(TheaterBookingRequest, payload)
        if isinstance(request, Outcome):
            return request
        if not can_book_theater(actor.role):
            return Outcome.forbidden()

        with self.session_factory() as session:
            case = self.case_repo.get_by_id(session, case_id)
            if case is None:
                return Outcome.not_found("Surgical case not found")
            if case.primary_surgeon_id != actor.user_id and actor.role != ADMIN_ROLE:
                return Outcome.forbidden("Only the primary surgeon or an administrator can book a theater")
            if CaseStatus(case.status) not in _BOOKABLE_STATUSES:
                return Outcome.conflict(f"Case in status {case.status} can no longer be booked")

            previous = self.case_repo.get_booking(session, case_id)
            action = "theater_booking_update" if previous is not None else "theater_booking_create"
            booking = self.case_repo.upsert_booking(
                session,
                case_id=case_id,
                theater_name=request.theater_name,
                start_time=request.start_time,
                end_time=request.end_time,
                status=request.status,
                booked_by=actor.user_id,
            )
            self.audit.record(
                session,
                actor_id=actor.user_id,
                entity_type="theater_booking",
                entity_id=booking.id,
                action_type=action,
                metadata={
                    "case_id": case_id,
                    "theater_name": booking.theater_name,
                    "start_time": booking.start_time,
                    "end_time": booking.end_time,
                    "status": booking.status,
                },
            )
            return Outcome.success(self._booking_dto(booking))

    def _transition_context(
        self,
        session: Session,
        case: models.SurgicalCase,
        target: CaseStatus,
    ) -> TransitionContext:
        if target == CaseStatus.READY_FOR_SCHEDULING:
            return TransitionContext(
                readiness=self.plan_service.evaluate_readiness(session, case),
                readiness_on_hold=bool(case.readiness_on_hold),
            )
        if target == CaseStatus.SCHEDULED:
            return TransitionContext(has_theater_booking=self.case_repo.get_booking(session, case.id) is not None)
        if target == CaseStatus.RECOVERY:
            status, data = self._linked_form(session, case.id, INTRAOP_TEMPLATE_KEY)
            _, checklist = self._linked_form(session, case.id, WHO_CHECKLIST_TEMPLATE_KEY)
            return TransitionContext(intraop_status=status, intraop_data=data, checklist_data=checklist)
        if target == CaseStatus.COMPLETED:
            status, data = self._linked_form(session, case.id, RECOVERY_TEMPLATE_KEY)
            return TransitionContext(recovery_status=status, recovery_data=data)
        return TransitionContext()

    def _linked_form(
        self,
        session: Session,
        case_id: int,
        template_key: str,
    ) -> tuple[str | None, dict[str, Any] | None]:
        response = self.form_repo.get(
            session,
            case_id=case_id,
            template_key=template_key,
            template_version=TEMPLATE_VERSION,
        )
        if response is None:
            return None, None
        return str(response.status), load_form_data(response)

    def _access(self, session: Session, case: models.SurgicalCase, actor: ActorContext) -> CaseAccess:
        invites = [(item.invited_user_id, str(item.status)) for item in self.case_repo.list_invites(session, case.id)]
        return resolve_case_access(actor.user_id, case.primary_surgeon_id, invites)

    @staticmethod
    def _requestable(case: models.SurgicalCase, actor: ActorContext, access: CaseAccess) -> list[str]:
        current = CaseStatus(case.status)
        if current in TERMINAL_CASE_STATUSES:
            return []
        return [
            status.value for status in next_statuses(current) if can_request_transition(status, actor.role, access)
        ]

    def _to_dto(
        self,
        session: Session,
        case: models.SurgicalCase,
        actor: ActorContext,
        access: CaseAccess,
    ) -> SurgicalCaseDto:
        booking = self.case_repo.get_booking(session, case.id)
        return SurgicalCaseDto(
            id=case.id,
            patient_id=case.patient_id,
            primary_surgeon_id=case.primary_surgeon_id,
            status=str(case.status),
            urgency=str(case.urgency),
            procedure_name=case.procedure_name,
            side=case.side,
            diagnosis=case.diagnosis,
            version=int(case.version),
            readiness_on_hold=bool(case.readiness_on_hold),
            booking=self._booking_dto(booking) if booking is not None else None,
            invites=[invite_dto(item) for item in self.case_repo.list_invites(session, case.id)],
            next_statuses=self._requestable(case, actor, access),
        )

    @staticmethod
    def _booking_dto(booking: models.TheaterBooking) -> TheaterBookingDto:
        return TheaterBookingDto(
            id=booking.id,
            theater_name=str(booking.theater_name),
            start_time=booking.start_time,
            end_time=booking.end_time,
            status=str(booking.status),
        )


def invite_dto(invite: models.StaffInvite) -> StaffInviteDto:
    return StaffInviteDto(
        id=invite.id,
        case_id=invite.surgical_case_id,
        invited_user_id=invite.invited_user_id,
        invited_by=invite.invited_by,
        invited_role=str(invite.invited_role),
        status=str(invite.status),
        created_at=invite.created_at,
        responded_at=invite.responded_at,
    )
