from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from casegate.domain.constants import (
    ADMIN_ROLE,
    TERMINAL_CASE_STATUSES,
    CaseStatus,
    FormStatus,
    InviteStatus,
    OutcomeKind,
)
from casegate.domain.rules.readiness_rules import ReadinessReport
from casegate.domain.rules.safety_gates import (
    INTRAOP_NOT_FINAL,
    RECOVERY_NOT_FINAL,
    evaluate_completion_gate,
    evaluate_recovery_gate,
    evaluate_who_sign_out,
)

ALLOWED_CASE_TRANSITIONS: dict[CaseStatus, frozenset[CaseStatus]] = {
    CaseStatus.DRAFT: frozenset({CaseStatus.PLANNING, CaseStatus.CANCELLED}),
    CaseStatus.PLANNING: frozenset({CaseStatus.READY_FOR_SCHEDULING, CaseStatus.CANCELLED}),
    CaseStatus.READY_FOR_SCHEDULING: frozenset({CaseStatus.SCHEDULED, CaseStatus.CANCELLED}),
    CaseStatus.SCHEDULED: frozenset({CaseStatus.IN_THEATRE, CaseStatus.CANCELLED}),
    CaseStatus.IN_THEATRE: frozenset({CaseStatus.RECOVERY, CaseStatus.CANCELLED}),
    CaseStatus.RECOVERY: frozenset({CaseStatus.COMPLETED, CaseStatus.CANCELLED}),
    CaseStatus.COMPLETED: frozenset(),
    CaseStatus.CANCELLED: frozenset(),
}

# Edges that only happen as a side effect of another action.
AUTOMATIC_TRANSITIONS: frozenset[tuple[CaseStatus, CaseStatus]] = frozenset(
    {(CaseStatus.DRAFT, CaseStatus.PLANNING)}
)

READINESS_ON_HOLD_ITEM = "readinessOnHold"
THEATER_BOOKING_ITEM = "theaterBooking"


@dataclass(frozen=True, slots=True)
class CaseAccess:
    is_primary_surgeon: bool = False
    has_accepted_invite: bool = False

    @property
    def is_team_member(self) -> bool:
        return self.is_primary_surgeon or self.has_accepted_invite


@dataclass(frozen=True, slots=True)
class TransitionContext:
    """Verdicts and linked records a gate needs; gathered by the caller."""

    readiness: ReadinessReport | None = None
    readiness_on_hold: bool = False
    has_theater_booking: bool = False
    intraop_status: str | None = None
    intraop_data: Mapping[str, Any] | None = None
    checklist_data: Mapping[str, Any] | None = None
    recovery_status: str | None = None
    recovery_data: Mapping[str, Any] | None = None


@dataclass(frozen=True, slots=True)
class TransitionDecision:
    kind: OutcomeKind
    next_status: CaseStatus | None = None
    reason: str | None = None
    missing_items: list[str] = field(default_factory=list)

    @property
    def allowed(self) -> bool:
        return self.kind == OutcomeKind.OK


def resolve_case_access(
    actor_user_id: int | None,
    primary_surgeon_id: int | None,
    invites: Iterable[tuple[int | None, str]],
) -> CaseAccess:
    """``invites`` are ``(invited_user_id, status)`` pairs for the case."""
    if actor_user_id is None:
        return CaseAccess()
    is_primary = primary_surgeon_id is not None and primary_surgeon_id == actor_user_id
    accepted = any(
        user_id == actor_user_id and status == InviteStatus.ACCEPTED.value for user_id, status in invites
    )
    return CaseAccess(is_primary_surgeon=is_primary, has_accepted_invite=accepted)


def can_request_transition(target: CaseStatus, actor_role: str, access: CaseAccess) -> bool:
    if target in (CaseStatus.PLANNING, CaseStatus.READY_FOR_SCHEDULING):
        return access.is_primary_surgeon
    if target in (CaseStatus.SCHEDULED, CaseStatus.CANCELLED):
        return access.is_primary_surgeon or actor_role == ADMIN_ROLE
    if target in (CaseStatus.IN_THEATRE, CaseStatus.RECOVERY, CaseStatus.COMPLETED):
        return access.is_team_member
    return False


def is_valid_edge(current: CaseStatus, target: CaseStatus) -> bool:
    return target in ALLOWED_CASE_TRANSITIONS.get(current, frozenset())


def next_statuses(current: CaseStatus) -> list[CaseStatus]:
    """Targets a user may request from ``current``, in lifecycle order."""
    allowed = ALLOWED_CASE_TRANSITIONS.get(current, frozenset())
    return [
        status
        for status in CaseStatus
        if status in allowed and (current, status) not in AUTOMATIC_TRANSITIONS
    ]


def status_after_plan_edit(current: CaseStatus) -> CaseStatus:
    if current == CaseStatus.DRAFT:
        return CaseStatus.PLANNING
    return current


def _gate_missing_items(target: CaseStatus, context: TransitionContext) -> tuple[list[str], str | None]:
    if target == CaseStatus.READY_FOR_SCHEDULING:
        if context.readiness is None:
            return ["readiness"], "Readiness has not been evaluated"
        missing = list(context.readiness.missing)
        if context.readiness_on_hold:
            missing.append(READINESS_ON_HOLD_ITEM)
        return missing, "Case is not ready for scheduling" if missing else None
    if target == CaseStatus.SCHEDULED:
        if not context.has_theater_booking:
            return [THEATER_BOOKING_ITEM], "A theater booking is required before scheduling"
        return [], None
    if target == CaseStatus.RECOVERY:
        missing = []
        if context.intraop_status != FormStatus.FINAL.value:
            missing.append(INTRAOP_NOT_FINAL)
        missing.extend(evaluate_recovery_gate(context.intraop_data))
        missing.extend(evaluate_who_sign_out(context.checklist_data))
        return missing, "Recovery safety gate not satisfied" if missing else None
    if target == CaseStatus.COMPLETED:
        missing = []
        if context.recovery_status != FormStatus.FINAL.value:
            missing.append(RECOVERY_NOT_FINAL)
        missing.extend(evaluate_completion_gate(context.recovery_data))
        return missing, "Completion gate not satisfied" if missing else None
    return [], None


def decide_transition(
    current: CaseStatus,
    target: CaseStatus,
    actor_role: str,
    access: CaseAccess,
    context: TransitionContext | None = None,
) -> TransitionDecision:
    """Authorization first, then the edge itself, then the gate on that edge."""
    if not can_request_transition(target, actor_role, access):
        return TransitionDecision(kind=OutcomeKind.FORBIDDEN)
    if current in TERMINAL_CASE_STATUSES or not is_valid_edge(current, target):
        return TransitionDecision(
            kind=OutcomeKind.CONFLICT,
            reason=f"invalid transition: {current.value} -> {target.value}",
        )
    if (current, target) in AUTOMATIC_TRANSITIONS:
        return TransitionDecision(
            kind=OutcomeKind.CONFLICT,
            reason=f"{current.value} -> {target.value} happens automatically on the first plan edit",
        )
    missing, reason = _gate_missing_items(target, context or TransitionContext())
    if missing:
        return TransitionDecision(kind=OutcomeKind.VALIDATION, reason=reason, missing_items=missing)
    return TransitionDecision(kind=OutcomeKind.OK, next_status=target)
