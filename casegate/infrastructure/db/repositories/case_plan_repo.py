from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from casegate.infrastructure.db import models_sqlalchemy as models


def _utc_now() -> datetime:
    return datetime.now(UTC)


class CasePlanRepository:
    def get_for_case(self, session: Session, case_id: int) -> models.CasePlan | None:
        stmt = select(models.CasePlan).where(models.CasePlan.surgical_case_id == case_id)
        return session.execute(stmt).scalar_one_or_none()

    def create(self, session: Session, *, case_id: int, user_id: int | None) -> models.CasePlan:
        plan = models.CasePlan(
            surgical_case_id=case_id,
            readiness_status="NOT_STARTED",
            ready_for_surgery=False,
            version=1,
            updated_by=user_id,
        )
        session.add(plan)
        session.flush()
        return plan

    def bump_version(self, plan: models.CasePlan, user_id: int | None) -> None:
        plan.version = int(plan.version or 1) + 1
        plan.updated_at = _utc_now()
        plan.updated_by = user_id

    def count_signed_consents(self, session: Session, plan_id: int) -> int:
        stmt = select(func.count(models.ConsentForm.id)).where(
            models.ConsentForm.case_plan_id == plan_id,
            models.ConsentForm.status == "SIGNED",
        )
        return int(session.execute(stmt).scalar_one())

    def count_images(self, session: Session, plan_id: int, timepoint: str) -> int:
        stmt = select(func.count(models.PatientImage.id)).where(
            models.PatientImage.case_plan_id == plan_id,
            models.PatientImage.timepoint == timepoint,
        )
        return int(session.execute(stmt).scalar_one())

    def list_consents(self, session: Session, plan_id: int) -> list[models.ConsentForm]:
        stmt = (
            select(models.ConsentForm)
            .where(models.ConsentForm.case_plan_id == plan_id)
            .order_by(models.ConsentForm.id.asc())
        )
        return list(session.execute(stmt).scalars())

    def get_consent(self, session: Session, consent_id: int) -> models.ConsentForm | None:
        return session.get(models.ConsentForm, consent_id)

    def add_consent(
        self,
        session: Session,
        *,
        plan_id: int,
        consent_type: str,
        title: str,
        status: str,
    ) -> models.ConsentForm:
        consent = models.ConsentForm(case_plan_id=plan_id, consent_type=consent_type, title=title, status=status)
        session.add(consent)
        session.flush()
        return consent

    def list_images(self, session: Session, plan_id: int) -> list[models.PatientImage]:
        stmt = (
            select(models.PatientImage)
            .where(models.PatientImage.case_plan_id == plan_id)
            .order_by(models.PatientImage.id.asc())
        )
        return list(session.execute(stmt).scalars())

    def add_image(
        self,
        session: Session,
        *,
        plan_id: int,
        timepoint: str,
        description: str | None,
        file_ref: str | None,
        captured_at: datetime | None,
        user_id: int | None,
    ) -> models.PatientImage:
        image = models.PatientImage(
            case_plan_id=plan_id,
            timepoint=timepoint,
            description=description,
            file_ref=file_ref,
            captured_at=captured_at,
            created_by=user_id,
        )
        session.add(image)
        session.flush()
        return image
