from __future__ import annotations

from datetime import UTC, date, datetime

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from casegate.domain.constants import CaseStatus, CaseUrgency
from casegate.infrastructure.db import models_sqlalchemy as models


def _utc_now() -> datetime:
    return datetime.now(UTC)


class SurgicalCaseRepository:
    def create_patient(
        self,
        session: Session,
        *,
        full_name: str,
        dob: date | None = None,
        sex: str = "U",
    ) -> models.Patient:
        patient = models.Patient(full_name=full_name, dob=dob, sex=sex)
        session.add(patient)
        session.flush()
        return patient

    def create(
        self,
        session: Session,
        *,
        patient_id: int,
        primary_surgeon_id: int,
        urgency: str = CaseUrgency.ELECTIVE.value,
        procedure_name: str | None = None,
        side: str | None = None,
        diagnosis: str | None = None,
    ) -> models.SurgicalCase:
        case = models.SurgicalCase(
            patient_id=patient_id,
            primary_surgeon_id=primary_surgeon_id,
            status=CaseStatus.DRAFT.value,
            urgency=urgency,
            procedure_name=procedure_name,
            side=side,
            diagnosis=diagnosis,
        )
        session.add(case)
        session.flush()
        return case

    def get_by_id(self, session: Session, case_id: int) -> models.SurgicalCase | None:
        return session.get(models.SurgicalCase, case_id)

    def set_status(self, session: Session, case: models.SurgicalCase, *, expected: str, new_status: str) -> bool:
        """Move the case only if nobody moved it since it was read."""
        session.flush()
        stmt = (
            update(models.SurgicalCase)
            .where(models.SurgicalCase.id == case.id, models.SurgicalCase.status == expected)
            .values(status=new_status, updated_at=_utc_now(), version=models.SurgicalCase.version + 1)
        )
        result = session.execute(stmt, execution_options={"synchronize_session": False})
        if result.rowcount != 1:
            return False
        session.refresh(case)
        return True

    def touch(self, session: Session, case: models.SurgicalCase) -> None:
        case.updated_at = _utc_now()
        case.version = int(case.version or 1) + 1

    def list_invites(self, session: Session, case_id: int) -> list[models.StaffInvite]:
        stmt = (
            select(models.StaffInvite)
            .where(models.StaffInvite.surgical_case_id == case_id)
            .order_by(models.StaffInvite.id.asc())
        )
        return list(session.execute(stmt).scalars())

    def get_invite(self, session: Session, invite_id: int) -> models.StaffInvite | None:
        return session.get(models.StaffInvite, invite_id)

    def find_invite(self, session: Session, case_id: int, user_id: int) -> models.StaffInvite | None:
        stmt = select(models.StaffInvite).where(
            models.StaffInvite.surgical_case_id == case_id,
            models.StaffInvite.invited_user_id == user_id,
        )
        return session.execute(stmt).scalar_one_or_none()

    def add_invite(
        self,
        session: Session,
        *,
        case_id: int,
        invited_user_id: int,
        invited_by: int,
        invited_role: str,
    ) -> models.StaffInvite:
        invite = models.StaffInvite(
            surgical_case_id=case_id,
            invited_user_id=invited_user_id,
            invited_by=invited_by,
            invited_role=invited_role,
            status="PENDING",
        )
        session.add(invite)
        session.flush()
        return invite

    def get_booking(self, session: Session, case_id: int) -> models.TheaterBooking | None:
        stmt = select(models.TheaterBooking).where(models.TheaterBooking.surgical_case_id == case_id)
        return session.execute(stmt).scalar_one_or_none()

    def upsert_booking(
        self,
        session: Session,
        *,
        case_id: int,
        theater_name: str,
        start_time: datetime,
        end_time: datetime,
        status: str,
        booked_by: int,
    ) -> models.TheaterBooking:
        booking = self.get_booking(session, case_id)
        if booking is None:
            booking = models.TheaterBooking(surgical_case_id=case_id)
            session.add(booking)
        booking.theater_name = theater_name
        booking.start_time = start_time
        booking.end_time = end_time
        booking.status = status
        booking.booked_by = booked_by
        booking.updated_at = _utc_now()
        session.flush()
        return booking
