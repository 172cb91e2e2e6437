from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from typing import Any

from casegate.application.dto.auth_dto import ActorContext
from casegate.application.dto.case_dto import InviteResponseRequest, StaffInviteRequest
from casegate.application.dto.outcome_dto import Outcome, parse_request
from casegate.application.security import can_invite_staff
from casegate.application.services.audit_emitter import AuditEmitter
from casegate.application.services.case_workflow_service import invite_dto
from casegate.domain.constants import TERMINAL_CASE_STATUSES, CaseStatus, InviteStatus
from casegate.infrastructure.db.repositories.case_repo import SurgicalCaseRepository
from casegate.infrastructure.db.repositories.user_repo import UserRepository
from casegate.infrastructure.db.session import session_scope

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(UTC)


class CaseTeamService:
    def __init__(
        self,
        case_repo: SurgicalCaseRepository | None = None,
        user_repo: UserRepository | None = None,
        audit: AuditEmitter | None = None,
        session_factory: Callable = session_scope,
    ) -> None:
        self.case_repo = case_repo or SurgicalCaseRepository()
        self.user_repo = user_repo or UserRepository()
        self.audit = audit or AuditEmitter()
        self.session_factory = session_factory

    def invite_staff(
        self,
        case_id: int,
        payload: StaffInviteRequest | Mapping[str, Any] | None,
        actor: ActorContext,
    ) -> Outcome:
        request = parse_request(StaffInviteRequest, payload)
        if isinstance(request, Outcome):
            return request
        if not can_invite_staff(actor.role):
            return Outcome.forbidden()
        with self.session_factory() as session:
            case = self.case_repo.get_by_id(session, case_id)
            if case is None:
                return Outcome.not_found("Surgical case not found")
            if case.primary_surgeon_id != actor.user_id:
                return Outcome.forbidden("Only the primary surgeon can invite staff")
            if CaseStatus(case.status) in TERMINAL_CASE_STATUSES:
                return Outcome.conflict(f"Case is {case.status}; the team can no longer change")
            if request.user_id == case.primary_surgeon_id:
                return Outcome.conflict("The primary surgeon is already on the team")
            user = self.user_repo.get_by_id(session, request.user_id)
            if user is None or not user.is_active:
                return Outcome.not_found("User not found")
            if self.case_repo.find_invite(session, case_id, request.user_id) is not None:
                return Outcome.conflict("User has already been invited to this case")

            invite = self.case_repo.add_invite(
                session,
                case_id=case_id,
                invited_user_id=request.user_id,
                invited_by=actor.user_id,
                invited_role=request.invited_role.value,
            )
            self.audit.record(
                session,
                actor_id=actor.user_id,
                entity_type="staff_invite",
                entity_id=invite.id,
                action_type="staff_invite_create",
                metadata={
                    "case_id": case_id,
                    "invited_user_id": request.user_id,
                    "invited_role": request.invited_role.value,
                },
            )
            return Outcome.success(invite_dto(invite))

    def respond_to_invite(
        self,
        invite_id: int,
        payload: InviteResponseRequest | Mapping[str, Any] | None,
        actor: ActorContext,
    ) -> Outcome:
        request = parse_request(InviteResponseRequest, payload)
        if isinstance(request, Outcome):
            return request
        with self.session_factory() as session:
            invite = self.case_repo.get_invite(session, invite_id)
            if invite is None:
                return Outcome.not_found("Invite not found")
            if invite.invited_user_id != actor.user_id:
                return Outcome.forbidden("Only the invited user can respond")
            if invite.status != InviteStatus.PENDING.value:
                return Outcome.conflict(f"Invite already {str(invite.status).lower()}")

            invite.status = (InviteStatus.ACCEPTED if request.accept else InviteStatus.DECLINED).value
            invite.responded_at = _utc_now()
            session.flush()
            self.audit.record(
                session,
                actor_id=actor.user_id,
                entity_type="staff_invite",
                entity_id=invite.id,
                action_type="staff_invite_accept" if request.accept else "staff_invite_decline",
                metadata={"case_id": invite.surgical_case_id},
            )
            logger.info("User %s %s invite %s", actor.user_id, invite.status.lower(), invite.id)
            return Outcome.success(invite_dto(invite))
