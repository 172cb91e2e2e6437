from __future__ import annotations

import json
from datetime import UTC, datetime
from typing import Any

from sqlalchemy.orm import Session

from casegate.infrastructure.db.repositories.audit_repo import AuditLogRepository

AUDIT_SCHEMA = "casegate.audit.v1"


def _utc_now() -> datetime:
    return datetime.now(UTC)


class AuditEmitter:
    """Appends audit facts inside the caller's unit of work.

    The entry commits or rolls back together with the mutation it describes.
    """

    def __init__(self, audit_repo: AuditLogRepository | None = None) -> None:
        self.audit_repo = audit_repo or AuditLogRepository()

    def record(
        self,
        session: Session,
        *,
        actor_id: int | None,
        entity_type: str,
        entity_id: object,
        action_type: str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        payload_json = json.dumps(
            {
                "schema": AUDIT_SCHEMA,
                "actor": {"user_id": actor_id},
                "event": {"ts": _utc_now().isoformat(), "action": action_type},
                "entity": {"type": entity_type, "id": str(entity_id)},
                "metadata": metadata or {},
            },
            ensure_ascii=False,
            default=str,
        )
        self.audit_repo.add_event(
            session,
            user_id=actor_id,
            entity_type=entity_type,
            entity_id=str(entity_id),
            action=action_type,
            payload_json=payload_json,
        )
