from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, relationship
from sqlalchemy.sql import expression

naming_convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    # avoid constraint_name token to allow unnamed CheckConstraint
    "ck": "ck_%(table_name)s_%(column_0_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

metadata = MetaData(naming_convention=naming_convention)


class Base(DeclarativeBase):
    metadata = metadata


def utc_now() -> datetime:
    return datetime.now(UTC)


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    login = Column(String, unique=True, nullable=False)
    full_name = Column(String, nullable=False, server_default=expression.literal(""))
    role = Column(String, nullable=False)
    is_active = Column(Boolean, nullable=False, server_default=expression.true())
    created_at = Column(DateTime, nullable=False, default=utc_now)

    __table_args__ = (
        CheckConstraint("role in ('admin','doctor','nurse','theater_technician')", name="ck_users_role"),
    )


class AuditLog(Base):
    __tablename__ = "audit_log"

    id = Column(Integer, primary_key=True)
    event_ts = Column(DateTime, nullable=False, default=utc_now)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    entity_type = Column(String, nullable=False)
    entity_id = Column(String, nullable=False)
    action = Column(String, nullable=False)
    payload_json = Column(Text, nullable=True)

    __table_args__ = (
        Index("ix_audit_log_entity", "entity_type", "entity_id"),
    )


class Patient(Base):
    __tablename__ = "patients"

    id = Column(Integer, primary_key=True)
    full_name = Column(Text, nullable=False)
    dob = Column(Date)
    sex = Column(String, CheckConstraint("sex in ('M','F','U')"), server_default=expression.literal("U"))
    created_at = Column(DateTime, nullable=False, default=utc_now)


class SurgicalCase(Base):
    __tablename__ = "surgical_case"

    id = Column(Integer, primary_key=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False)
    primary_surgeon_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    status = Column(String, nullable=False, server_default=expression.literal("DRAFT"))
    urgency = Column(String, nullable=False, server_default=expression.literal("ELECTIVE"))
    procedure_name = Column(Text)
    side = Column(String)
    diagnosis = Column(Text)
    readiness_on_hold = Column(Boolean, nullable=False, server_default=expression.false())
    readiness_hold_reason = Column(Text)
    version = Column(Integer, nullable=False, server_default=expression.literal("1"))
    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now)

    plan = relationship("CasePlan", back_populates="surgical_case", uselist=False)
    invites = relationship("StaffInvite", back_populates="surgical_case")
    booking = relationship("TheaterBooking", back_populates="surgical_case", uselist=False)

    __table_args__ = (
        CheckConstraint(
            "status in ('DRAFT','PLANNING','READY_FOR_SCHEDULING','SCHEDULED',"
            "'IN_THEATRE','RECOVERY','COMPLETED','CANCELLED')",
            name="ck_surgical_case_status",
        ),
        CheckConstraint("urgency in ('ELECTIVE','URGENT','EMERGENCY')", name="ck_surgical_case_urgency"),
        Index("ix_surgical_case_status", "status"),
        Index("ix_surgical_case_primary_surgeon_id", "primary_surgeon_id"),
    )


class CasePlan(Base):
    __tablename__ = "case_plan"

    id = Column(Integer, primary_key=True)
    surgical_case_id = Column(
        Integer, ForeignKey("surgical_case.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    procedure_plan = Column(Text)
    risk_factors = Column(Text)
    pre_op_notes = Column(Text)
    implant_details = Column(Text)
    planned_anesthesia = Column(String)
    special_instructions = Column(Text)
    estimated_duration_minutes = Column(Integer)
    # Derived from the readiness checklist on every plan change.
    readiness_status = Column(String, nullable=False, server_default=expression.literal("NOT_STARTED"))
    ready_for_surgery = Column(Boolean, nullable=False, server_default=expression.false())
    version = Column(Integer, nullable=False, server_default=expression.literal("1"))
    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now)
    updated_by = Column(Integer, ForeignKey("users.id"))

    surgical_case = relationship("SurgicalCase", back_populates="plan")
    consents = relationship("ConsentForm", back_populates="case_plan", cascade="all, delete-orphan")
    images = relationship("PatientImage", back_populates="case_plan", cascade="all, delete-orphan")


class ConsentForm(Base):
    __tablename__ = "consent_form"

    id = Column(Integer, primary_key=True)
    case_plan_id = Column(Integer, ForeignKey("case_plan.id", ondelete="CASCADE"), nullable=False)
    consent_type = Column(String, nullable=False)
    title = Column(Text, nullable=False)
    status = Column(String, nullable=False, server_default=expression.literal("DRAFT"))
    signed_at = Column(DateTime)
    signed_by = Column(Integer, ForeignKey("users.id"))
    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now)

    case_plan = relationship("CasePlan", back_populates="consents")

    __table_args__ = (
        CheckConstraint(
            "status in ('DRAFT','PENDING_SIGNATURE','SIGNED','REVOKED','EXPIRED')",
            name="ck_consent_form_status",
        ),
        Index("ix_consent_form_case_plan_id", "case_plan_id"),
    )


class PatientImage(Base):
    __tablename__ = "patient_image"

    id = Column(Integer, primary_key=True)
    case_plan_id = Column(Integer, ForeignKey("case_plan.id", ondelete="CASCADE"), nullable=False)
    timepoint = Column(String, nullable=False)
    description = Column(Text)
    file_ref = Column(String)
    captured_at = Column(DateTime)
    created_at = Column(DateTime, nullable=False, default=utc_now)
    created_by = Column(Integer, ForeignKey("users.id"))

    case_plan = relationship("CasePlan", back_populates="images")

    __table_args__ = (
        CheckConstraint("timepoint in ('PRE_OP','INTRA_OP','POST_OP')", name="ck_patient_image_timepoint"),
        Index("ix_patient_image_case_plan_id", "case_plan_id"),
    )


class StaffInvite(Base):
    __tablename__ = "staff_invite"

    id = Column(Integer, primary_key=True)
    surgical_case_id = Column(Integer, ForeignKey("surgical_case.id", ondelete="CASCADE"), nullable=False)
    invited_user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    invited_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    invited_role = Column(String, nullable=False)
    status = Column(String, nullable=False, server_default=expression.literal("PENDING"))
    created_at = Column(DateTime, nullable=False, default=utc_now)
    responded_at = Column(DateTime)

    surgical_case = relationship("SurgicalCase", back_populates="invites")

    __table_args__ = (
        UniqueConstraint("surgical_case_id", "invited_user_id", name="uq_staff_invite_case_user"),
        CheckConstraint("status in ('PENDING','ACCEPTED','DECLINED')", name="ck_staff_invite_status"),
    )


class TheaterBooking(Base):
    __tablename__ = "theater_booking"

    id = Column(Integer, primary_key=True)
    surgical_case_id = Column(
        Integer, ForeignKey("surgical_case.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    theater_name = Column(String, nullable=False)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    status = Column(String, nullable=False, server_default=expression.literal("PROVISIONAL"))
    booked_by = Column(Integer, ForeignKey("users.id"))
    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now)

    surgical_case = relationship("SurgicalCase", back_populates="booking")


class ClinicalFormResponse(Base):
    __tablename__ = "clinical_form_response"

    id = Column(Integer, primary_key=True)
    template_key = Column(String, nullable=False)
    template_version = Column(Integer, nullable=False)
    surgical_case_id = Column(Integer, ForeignKey("surgical_case.id", ondelete="CASCADE"), nullable=False)
    status = Column(String, nullable=False, server_default=expression.literal("DRAFT"))
    data_json = Column(Text, nullable=False, server_default=expression.literal("{}"))
    version = Column(Integer, nullable=False, server_default=expression.literal("1"))
    created_by = Column(Integer, ForeignKey("users.id"))
    updated_by = Column(Integer, ForeignKey("users.id"))
    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now)
    signed_by_user_id = Column(Integer, ForeignKey("users.id"))
    signed_at = Column(DateTime)

    __table_args__ = (
        UniqueConstraint(
            "template_key",
            "template_version",
            "surgical_case_id",
            name="uq_clinical_form_response_template_case",
        ),
        CheckConstraint("status in ('DRAFT','FINAL')", name="ck_clinical_form_response_status"),
    )


class SurgicalProcedureRecord(Base):
    __tablename__ = "surgical_procedure_record"

    id = Column(Integer, primary_key=True)
    surgical_case_id = Column(
        Integer, ForeignKey("surgical_case.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    # Copied from the operative note at finalization, never read through.
    diagnosis_pre_op = Column(Text)
    diagnosis_post_op = Column(Text)
    procedure_performed = Column(Text)
    side = Column(String)
    surgeon_id = Column(String)
    anesthesiologist_id = Column(String)
    assistant_ids_json = Column(Text, nullable=False, server_default=expression.literal("[]"))
    anesthesia_type = Column(String)
    urgency = Column(String)
    source_form_id = Column(Integer, ForeignKey("clinical_form_response.id"))
    synced_at = Column(DateTime, nullable=False, default=utc_now)
