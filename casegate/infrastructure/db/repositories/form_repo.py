from __future__ import annotations

import json
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from casegate.infrastructure.db import models_sqlalchemy as models


def _utc_now() -> datetime:
    return datetime.now(UTC)


def _to_json(value: object) -> str:
    return json.dumps(value, ensure_ascii=False, default=str)


class ClinicalFormRepository:
    def get(
        self,
        session: Session,
        *,
        case_id: int,
        template_key: str,
        template_version: int,
    ) -> models.ClinicalFormResponse | None:
        stmt = select(models.ClinicalFormResponse).where(
            models.ClinicalFormResponse.surgical_case_id == case_id,
            models.ClinicalFormResponse.template_key == template_key,
            models.ClinicalFormResponse.template_version == template_version,
        )
        return session.execute(stmt).scalar_one_or_none()

    def create_draft(
        self,
        session: Session,
        *,
        case_id: int,
        template_key: str,
        template_version: int,
        data: dict[str, Any],
        user_id: int | None,
    ) -> models.ClinicalFormResponse:
        response = models.ClinicalFormResponse(
            surgical_case_id=case_id,
            template_key=template_key,
            template_version=template_version,
            status="DRAFT",
            data_json=_to_json(data),
            version=1,
            created_by=user_id,
            updated_by=user_id,
        )
        session.add(response)
        session.flush()
        return response

    def save_draft(
        self,
        session: Session,
        response: models.ClinicalFormResponse,
        *,
        data: dict[str, Any],
        user_id: int | None,
    ) -> bool:
        """Overwrite a draft; False when the row is no longer a draft at this version."""
        stmt = (
            update(models.ClinicalFormResponse)
            .where(
                models.ClinicalFormResponse.id == response.id,
                models.ClinicalFormResponse.status == "DRAFT",
                models.ClinicalFormResponse.version == response.version,
            )
            .values(
                data_json=_to_json(data),
                version=models.ClinicalFormResponse.version + 1,
                updated_by=user_id,
                updated_at=_utc_now(),
            )
        )
        if session.execute(stmt, execution_options={"synchronize_session": False}).rowcount != 1:
            return False
        session.refresh(response)
        return True

    def mark_final(
        self,
        session: Session,
        response: models.ClinicalFormResponse,
        *,
        data: dict[str, Any],
        user_id: int,
    ) -> bool:
        """DRAFT -> FINAL; only one caller can ever see True for a given row."""
        now = _utc_now()
        stmt = (
            update(models.ClinicalFormResponse)
            .where(
                models.ClinicalFormResponse.id == response.id,
                models.ClinicalFormResponse.status == "DRAFT",
            )
            .values(
                status="FINAL",
                data_json=_to_json(data),
                signed_by_user_id=user_id,
                signed_at=now,
                updated_by=user_id,
                updated_at=now,
                version=models.ClinicalFormResponse.version + 1,
            )
        )
        if session.execute(stmt, execution_options={"synchronize_session": False}).rowcount != 1:
            return False
        session.refresh(response)
        return True
