from __future__ import annotations

import json
import logging
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from typing import Any

from sqlalchemy.orm import Session

from casegate.application.dto.auth_dto import ActorContext
from casegate.application.dto.clinical_form_dto import ClinicalFormDto, FormDraftSaveRequest, SectionCompletionDto
from casegate.application.dto.outcome_dto import Outcome, parse_request
from casegate.application.errors import ClinicalDataCorruptionError
from casegate.application.security import can_read_clinical_forms, can_write_form
from casegate.application.services.audit_emitter import AuditEmitter
from casegate.domain.constants import CaseStatus, FormStatus
from casegate.domain.forms.operative_note import build_prefill
from casegate.domain.forms.who_checklist import blank_checklist
from casegate.domain.models.clinical_form import (
    INTRAOP_TEMPLATE_KEY,
    OPERATIVE_NOTE_TEMPLATE_KEY,
    RECOVERY_TEMPLATE_KEY,
    SURGEON_TEMPLATE_KEYS,
    TEMPLATE_VERSION,
    WHO_CHECKLIST_TEMPLATE_KEY,
    FinalSchemaContext,
)
from casegate.domain.rules import schema_registry
from casegate.domain.rules.safety_gates import nurse_reports_count_discrepancy
from casegate.infrastructure.db import models_sqlalchemy as models
from casegate.infrastructure.db.repositories.case_repo import SurgicalCaseRepository
from casegate.infrastructure.db.repositories.form_repo import ClinicalFormRepository
from casegate.infrastructure.db.repositories.procedure_record_repo import ProcedureRecordRepository
from casegate.infrastructure.db.repositories.user_repo import UserRepository
from casegate.infrastructure.db.session import session_scope

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(UTC)


def load_form_data(response: models.ClinicalFormResponse) -> dict[str, Any]:
    """Stored payload of ``response``; anything but a JSON object is corruption."""
    try:
        value = json.loads(response.data_json or "{}")
    except (TypeError, ValueError) as exc:
        logger.exception(
            "Unreadable data_json in clinical_form_response %s (%s)", response.id, response.template_key
        )
        raise ClinicalDataCorruptionError("clinical_form_response", response.id, "data_json is not valid JSON") from exc
    if not isinstance(value, dict):
        logger.error("clinical_form_response %s holds %s instead of an object", response.id, type(value).__name__)
        raise ClinicalDataCorruptionError("clinical_form_response", response.id, "data_json is not an object")
    return value


class ClinicalFormService:
    def __init__(
        self,
        form_repo: ClinicalFormRepository | None = None,
        case_repo: SurgicalCaseRepository | None = None,
        procedure_repo: ProcedureRecordRepository | None = None,
        user_repo: UserRepository | None = None,
        audit: AuditEmitter | None = None,
        session_factory: Callable = session_scope,
    ) -> None:
        self.form_repo = form_repo or ClinicalFormRepository()
        self.case_repo = case_repo or SurgicalCaseRepository()
        self.procedure_repo = procedure_repo or ProcedureRecordRepository()
        self.user_repo = user_repo or UserRepository()
        self.audit = audit or AuditEmitter()
        self.session_factory = session_factory

    def get_form(self, case_id: int, template_key: str, actor: ActorContext) -> Outcome:
        if not schema_registry.is_known_template(template_key):
            return Outcome.not_found(f"Unknown form template: {template_key}")
        if not can_read_clinical_forms(actor.role):
            return Outcome.forbidden()
        with self.session_factory() as session:
            case = self.case_repo.get_by_id(session, case_id)
            if case is None:
                return Outcome.not_found("Surgical case not found")
            response = self._get_response(session, case_id, template_key)
            context = self._final_context(session, case_id, template_key)
            if response is None:
                data = self._initial_data(session, case, template_key)
                return Outcome.success(
                    self._to_dto(case_id, template_key, None, data, context, prefilled=True)
                )
            data = load_form_data(response)
            return Outcome.success(self._to_dto(case_id, template_key, response, data, context))

    def save_draft(
        self,
        case_id: int,
        template_key: str,
        payload: FormDraftSaveRequest | Mapping[str, Any] | None,
        actor: ActorContext,
    ) -> Outcome:
        if not schema_registry.is_known_template(template_key):
            return Outcome.not_found(f"Unknown form template: {template_key}")
        request = parse_request(FormDraftSaveRequest, payload)
        if isinstance(request, Outcome):
            return request
        if not can_write_form(actor.role, template_key):
            return Outcome.forbidden()

        with self.session_factory() as session:
            case = self.case_repo.get_by_id(session, case_id)
            if case is None:
                return Outcome.not_found("Surgical case not found")
            if template_key in SURGEON_TEMPLATE_KEYS and case.primary_surgeon_id != actor.user_id:
                return Outcome.forbidden("Only the primary surgeon can write the operative note")
            if case.status == CaseStatus.CANCELLED.value:
                return Outcome.conflict("Case is cancelled")
            checked = schema_registry.validate_draft(template_key, request.data)
            if not checked.ok:
                return Outcome.validation(checked.errors)
            data = checked.data or {}

            response = self._get_response(session, case_id, template_key)
            if response is None:
                initial = self._initial_data(session, case, template_key)
                merged = {**initial, **data}
                response = self.form_repo.create_draft(
                    session,
                    case_id=case_id,
                    template_key=template_key,
                    template_version=TEMPLATE_VERSION,
                    data=merged,
                    user_id=actor.user_id,
                )
                action = "clinical_form_create"
            else:
                if response.status == FormStatus.FINAL.value:
                    return Outcome.conflict("Document is finalized and can no longer be edited")
                if request.expected_version is not None and int(response.version) != request.expected_version:
                    return Outcome.conflict("version conflict")
                if not self.form_repo.save_draft(session, response, data=data, user_id=actor.user_id):
                    return Outcome.conflict("version conflict")
                merged = data
                action = "clinical_form_save_draft"

            self.audit.record(
                session,
                actor_id=actor.user_id,
                entity_type="clinical_form_response",
                entity_id=response.id,
                action_type=action,
                metadata={
                    "case_id": case_id,
                    "template_key": template_key,
                    "version": int(response.version),
                    "sections": sorted(merged),
                },
            )
            context = self._final_context(session, case_id, template_key)
            return Outcome.success(self._to_dto(case_id, template_key, response, merged, context))

    def finalize(self, case_id: int, template_key: str, actor: ActorContext) -> Outcome:
        """Sign the document once: final validation, then DRAFT -> FINAL.

        For the operative note the procedure record snapshot is written in the
        same unit of work.
        """
        if not schema_registry.is_known_template(template_key):
            return Outcome.not_found(f"Unknown form template: {template_key}")
        if not can_write_form(actor.role, template_key):
            return Outcome.forbidden()
        with self.session_factory() as session:
            case = self.case_repo.get_by_id(session, case_id)
            if case is None:
                return Outcome.not_found("Surgical case not found")
            if template_key in SURGEON_TEMPLATE_KEYS and case.primary_surgeon_id != actor.user_id:
                return Outcome.forbidden("Only the primary surgeon can sign the operative note")
            response = self._get_response(session, case_id, template_key)
            if response is None:
                return Outcome.not_found("No draft to finalize")
            if response.status == FormStatus.FINAL.value:
                logger.info("Finalize rejected: %s for case %s already finalized", template_key, case_id)
                return Outcome.conflict("already finalized")

            data = load_form_data(response)
            if template_key == RECOVERY_TEMPLATE_KEY:
                self._stamp_recovery_signature(data, actor)
            context = self._final_context(session, case_id, template_key)
            result = schema_registry.validate_final(template_key, data, context)
            if not result.ok:
                logger.info(
                    "Finalize rejected: %s for case %s has %d open items", template_key, case_id, len(result.errors)
                )
                return Outcome.validation(
                    result.errors,
                    missing_items=[error.as_text() for error in result.errors],
                    reason="Document is not complete",
                )
            final_data = result.data or {}
            if not self.form_repo.mark_final(session, response, data=final_data, user_id=actor.user_id):
                logger.info("Finalize lost the race: %s for case %s", template_key, case_id)
                return Outcome.conflict("already finalized")

            if template_key == OPERATIVE_NOTE_TEMPLATE_KEY:
                self._sync_procedure_record(session, case, response, final_data)
            self.audit.record(
                session,
                actor_id=actor.user_id,
                entity_type="clinical_form_response",
                entity_id=response.id,
                action_type="clinical_form_finalize",
                metadata={
                    "case_id": case_id,
                    "template_key": template_key,
                    "template_version": int(response.template_version),
                    "signed_at": response.signed_at,
                    "nurse_has_discrepancy": context.nurse_has_discrepancy,
                },
            )
            return Outcome.success(self._to_dto(case_id, template_key, response, final_data, context))

    def _get_response(
        self,
        session: Session,
        case_id: int,
        template_key: str,
    ) -> models.ClinicalFormResponse | None:
        return self.form_repo.get(
            session,
            case_id=case_id,
            template_key=template_key,
            template_version=TEMPLATE_VERSION,
        )

    def _intraop_data(self, session: Session, case_id: int) -> dict[str, Any] | None:
        intraop = self._get_response(session, case_id, INTRAOP_TEMPLATE_KEY)
        if intraop is None:
            return None
        return load_form_data(intraop)

    def _final_context(self, session: Session, case_id: int, template_key: str) -> FinalSchemaContext:
        if template_key != OPERATIVE_NOTE_TEMPLATE_KEY:
            return FinalSchemaContext()
        return FinalSchemaContext(nurse_has_discrepancy=nurse_reports_count_discrepancy(self._intraop_data(session, case_id)))

    def _initial_data(self, session: Session, case: models.SurgicalCase, template_key: str) -> dict[str, Any]:
        if template_key == WHO_CHECKLIST_TEMPLATE_KEY:
            return blank_checklist()
        if template_key != OPERATIVE_NOTE_TEMPLATE_KEY:
            return {}
        surgeon = self.user_repo.get_by_id(session, case.primary_surgeon_id)
        return build_prefill(
            diagnosis=case.diagnosis,
            procedure_name=case.procedure_name,
            side=case.side,
            surgeon_id=str(case.primary_surgeon_id),
            surgeon_name=surgeon.full_name if surgeon is not None else None,
            intraop_data=self._intraop_data(session, case.id),
        )

    @staticmethod
    def _stamp_recovery_signature(data: dict[str, Any], actor: ActorContext) -> None:
        discharge = data.get("dischargeReadiness")
        if not isinstance(discharge, dict):
            return
        discharge["finalizedByUserId"] = str(actor.user_id)
        discharge["finalizedAt"] = _utc_now().isoformat()

    def _sync_procedure_record(
        self,
        session: Session,
        case: models.SurgicalCase,
        response: models.ClinicalFormResponse,
        data: Mapping[str, Any],
    ) -> None:
        header = data.get("header") or {}
        assistants = header.get("assistants") or []
        self.procedure_repo.upsert_snapshot(
            session,
            case_id=case.id,
            values={
                "diagnosis_pre_op": header.get("diagnosisPreOp"),
                "diagnosis_post_op": header.get("diagnosisPostOp") or None,
                "procedure_performed": header.get("procedurePerformed"),
                "side": header.get("side") or None,
                "surgeon_id": header.get("surgeonId"),
                "anesthesiologist_id": header.get("anesthesiologistId") or None,
                "assistant_ids": [item["userId"] for item in assistants if item.get("userId")],
                "anesthesia_type": header.get("anesthesiaType"),
                "urgency": case.urgency,
                "source_form_id": response.id,
            },
        )

    @staticmethod
    def _to_dto(
        case_id: int,
        template_key: str,
        response: models.ClinicalFormResponse | None,
        data: dict[str, Any],
        context: FinalSchemaContext,
        *,
        prefilled: bool = False,
    ) -> ClinicalFormDto:
        completion = schema_registry.section_completion(template_key, data, context)
        sections = {
            key: SectionCompletionDto(
                complete=item.complete, title=item.title, critical=item.critical, errors=item.errors
            )
            for key, item in completion.items()
        }
        if response is None:
            return ClinicalFormDto(
                case_id=case_id,
                template_key=template_key,
                template_version=TEMPLATE_VERSION,
                status=FormStatus.DRAFT.value,
                data=data,
                prefilled=prefilled,
                sections=sections,
                missing_items=schema_registry.missing_final_items(template_key, data, context),
            )
        is_final = response.status == FormStatus.FINAL.value
        return ClinicalFormDto(
            id=response.id,
            case_id=case_id,
            template_key=template_key,
            template_version=int(response.template_version),
            status=str(response.status),
            version=int(response.version),
            data=data,
            signed_by_user_id=response.signed_by_user_id,
            signed_at=response.signed_at,
            updated_at=response.updated_at,
            sections=sections,
            missing_items=[] if is_final else schema_registry.missing_final_items(template_key, data, context),
        )
