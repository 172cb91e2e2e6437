from __future__ import annotations

import json
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from casegate.infrastructure.db import models_sqlalchemy as models


def _utc_now() -> datetime:
    return datetime.now(UTC)


class ProcedureRecordRepository:
    def get_for_case(self, session: Session, case_id: int) -> models.SurgicalProcedureRecord | None:
        stmt = select(models.SurgicalProcedureRecord).where(
            models.SurgicalProcedureRecord.surgical_case_id == case_id
        )
        return session.execute(stmt).scalar_one_or_none()

    def upsert_snapshot(
        self,
        session: Session,
        *,
        case_id: int,
        values: dict[str, Any],
    ) -> models.SurgicalProcedureRecord:
        record = self.get_for_case(session, case_id)
        if record is None:
            record = models.SurgicalProcedureRecord(surgical_case_id=case_id)
            session.add(record)
        record.diagnosis_pre_op = values.get("diagnosis_pre_op")
        record.diagnosis_post_op = values.get("diagnosis_post_op")
        record.procedure_performed = values.get("procedure_performed")
        record.side = values.get("side")
        record.surgeon_id = values.get("surgeon_id")
        record.anesthesiologist_id = values.get("anesthesiologist_id")
        record.assistant_ids_json = json.dumps(list(values.get("assistant_ids") or []), ensure_ascii=False)
        record.anesthesia_type = values.get("anesthesia_type")
        record.urgency = values.get("urgency")
        record.source_form_id = values.get("source_form_id")
        record.synced_at = _utc_now()
        session.flush()
        return record
