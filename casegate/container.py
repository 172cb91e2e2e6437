from __future__ import annotations

from dataclasses import dataclass

from casegate.application.services.audit_emitter import AuditEmitter
from casegate.application.services.case_plan_service import CasePlanService
from casegate.application.services.case_team_service import CaseTeamService
from casegate.application.services.case_workflow_service import CaseWorkflowService
from casegate.application.services.clinical_form_service import ClinicalFormService
from casegate.infrastructure.db.repositories.audit_repo import AuditLogRepository
from casegate.infrastructure.db.repositories.case_plan_repo import CasePlanRepository
from casegate.infrastructure.db.repositories.case_repo import SurgicalCaseRepository
from casegate.infrastructure.db.repositories.form_repo import ClinicalFormRepository
from casegate.infrastructure.db.repositories.procedure_record_repo import ProcedureRecordRepository
from casegate.infrastructure.db.repositories.user_repo import UserRepository
from casegate.infrastructure.db.session import SessionFactory, session_scope


@dataclass
class Container:
    user_repo: UserRepository
    audit_repo: AuditLogRepository
    case_repo: SurgicalCaseRepository
    plan_repo: CasePlanRepository
    form_repo: ClinicalFormRepository
    procedure_repo: ProcedureRecordRepository

    audit: AuditEmitter
    case_plan_service: CasePlanService
    clinical_form_service: ClinicalFormService
    case_workflow_service: CaseWorkflowService
    case_team_service: CaseTeamService


def build_container(session_factory: SessionFactory = session_scope) -> Container:
    user_repo = UserRepository()
    audit_repo = AuditLogRepository()
    case_repo = SurgicalCaseRepository()
    plan_repo = CasePlanRepository()
    form_repo = ClinicalFormRepository()
    procedure_repo = ProcedureRecordRepository()
    audit = AuditEmitter(audit_repo=audit_repo)

    case_plan_service = CasePlanService(
        case_repo=case_repo,
        plan_repo=plan_repo,
        audit=audit,
        session_factory=session_factory,
    )
    clinical_form_service = ClinicalFormService(
        form_repo=form_repo,
        case_repo=case_repo,
        procedure_repo=procedure_repo,
        user_repo=user_repo,
        audit=audit,
        session_factory=session_factory,
    )
    case_workflow_service = CaseWorkflowService(
        case_repo=case_repo,
        form_repo=form_repo,
        plan_service=case_plan_service,
        audit=audit,
        session_factory=session_factory,
    )
    case_team_service = CaseTeamService(
        case_repo=case_repo,
        user_repo=user_repo,
        audit=audit,
        session_factory=session_factory,
    )

    return Container(
        user_repo=user_repo,
        audit_repo=audit_repo,
        case_repo=case_repo,
        plan_repo=plan_repo,
        form_repo=form_repo,
        procedure_repo=procedure_repo,
        audit=audit,
        case_plan_service=case_plan_service,
        clinical_form_service=clinical_form_service,
        case_workflow_service=case_workflow_service,
        case_team_service=case_team_service,
    )
