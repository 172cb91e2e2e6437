"""Initial surgical case schema"""
from __future__ import annotations

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None

NOW = sa.text("(CURRENT_TIMESTAMP)")


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("login", sa.String(), nullable=False),
        sa.Column("full_name", sa.String(), nullable=False, server_default=sa.text("''")),
        sa.Column("role", sa.String(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=NOW),
        sa.CheckConstraint("role in ('admin','doctor','nurse','theater_technician')", name="ck_users_role"),
        sa.UniqueConstraint("login", name="uq_users_login"),
    )

    op.create_table(
        "audit_log",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("event_ts", sa.DateTime(), nullable=False, server_default=NOW),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("entity_type", sa.String(), nullable=False),
        sa.Column("entity_id", sa.String(), nullable=False),
        sa.Column("action", sa.String(), nullable=False),
        sa.Column("payload_json", sa.Text(), nullable=True),
    )
    op.create_index("ix_audit_log_entity", "audit_log", ["entity_type", "entity_id"], unique=False)

    op.create_table(
        "patients",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("full_name", sa.Text(), nullable=False),
        sa.Column("dob", sa.Date(), nullable=True),
        sa.Column("sex", sa.String(), nullable=True, server_default=sa.text("'U'")),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=NOW),
        sa.CheckConstraint("sex in ('M','F','U')", name="ck_patients_sex"),
    )

    op.create_table(
        "surgical_case",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("patient_id", sa.Integer(), sa.ForeignKey("patients.id"), nullable=False),
        sa.Column("primary_surgeon_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("status", sa.String(), nullable=False, server_default=sa.text("'DRAFT'")),
        sa.Column("urgency", sa.String(), nullable=False, server_default=sa.text("'ELECTIVE'")),
        sa.Column("procedure_name", sa.Text(), nullable=True),
        sa.Column("side", sa.String(), nullable=True),
        sa.Column("diagnosis", sa.Text(), nullable=True),
        sa.Column("readiness_on_hold", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("readiness_hold_reason", sa.Text(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=NOW),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=NOW),
        sa.CheckConstraint(
            "status in ('DRAFT','PLANNING','READY_FOR_SCHEDULING','SCHEDULED',"
            "'IN_THEATRE','RECOVERY','COMPLETED','CANCELLED')",
            name="ck_surgical_case_status",
        ),
        sa.CheckConstraint("urgency in ('ELECTIVE','URGENT','EMERGENCY')", name="ck_surgical_case_urgency"),
    )
    op.create_index("ix_surgical_case_status", "surgical_case", ["status"], unique=False)
    op.create_index("ix_surgical_case_primary_surgeon_id", "surgical_case", ["primary_surgeon_id"], unique=False)

    op.create_table(
        "case_plan",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "surgical_case_id",
            sa.Integer(),
            sa.ForeignKey("surgical_case.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("procedure_plan", sa.Text(), nullable=True),
        sa.Column("risk_factors", sa.Text(), nullable=True),
        sa.Column("pre_op_notes", sa.Text(), nullable=True),
        sa.Column("implant_details", sa.Text(), nullable=True),
        sa.Column("planned_anesthesia", sa.String(), nullable=True),
        sa.Column("special_instructions", sa.Text(), nullable=True),
        sa.Column("estimated_duration_minutes", sa.Integer(), nullable=True),
        sa.Column("readiness_status", sa.String(), nullable=False, server_default=sa.text("'NOT_STARTED'")),
        sa.Column("ready_for_surgery", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=NOW),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=NOW),
        sa.Column("updated_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.UniqueConstraint("surgical_case_id", name="uq_case_plan_surgical_case_id"),
    )

    op.create_table(
        "consent_form",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("case_plan_id", sa.Integer(), sa.ForeignKey("case_plan.id", ondelete="CASCADE"), nullable=False),
        sa.Column("consent_type", sa.String(), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("status", sa.String(), nullable=False, server_default=sa.text("'DRAFT'")),
        sa.Column("signed_at", sa.DateTime(), nullable=True),
        sa.Column("signed_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=NOW),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=NOW),
        sa.CheckConstraint(
            "status in ('DRAFT','PENDING_SIGNATURE','SIGNED','REVOKED','EXPIRED')",
            name="ck_consent_form_status",
        ),
    )
    op.create_index("ix_consent_form_case_plan_id", "consent_form", ["case_plan_id"], unique=False)

    op.create_table(
        "patient_image",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("case_plan_id", sa.Integer(), sa.ForeignKey("case_plan.id", ondelete="CASCADE"), nullable=False),
        sa.Column("timepoint", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("file_ref", sa.String(), nullable=True),
        sa.Column("captured_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=NOW),
        sa.Column("created_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.CheckConstraint("timepoint in ('PRE_OP','INTRA_OP','POST_OP')", name="ck_patient_image_timepoint"),
    )
    op.create_index("ix_patient_image_case_plan_id", "patient_image", ["case_plan_id"], unique=False)

    op.create_table(
        "staff_invite",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "surgical_case_id",
            sa.Integer(),
            sa.ForeignKey("surgical_case.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("invited_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("invited_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("invited_role", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False, server_default=sa.text("'PENDING'")),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=NOW),
        sa.Column("responded_at", sa.DateTime(), nullable=True),
        sa.UniqueConstraint("surgical_case_id", "invited_user_id", name="uq_staff_invite_case_user"),
        sa.CheckConstraint("status in ('PENDING','ACCEPTED','DECLINED')", name="ck_staff_invite_status"),
    )

    op.create_table(
        "theater_booking",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "surgical_case_id",
            sa.Integer(),
            sa.ForeignKey("surgical_case.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("theater_name", sa.String(), nullable=False),
        sa.Column("start_time", sa.DateTime(), nullable=False),
        sa.Column("end_time", sa.DateTime(), nullable=False),
        sa.Column("status", sa.String(), nullable=False, server_default=sa.text("'PROVISIONAL'")),
        sa.Column("booked_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=NOW),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=NOW),
        sa.UniqueConstraint("surgical_case_id", name="uq_theater_booking_surgical_case_id"),
    )

    op.create_table(
        "clinical_form_response",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("template_key", sa.String(), nullable=False),
        sa.Column("template_version", sa.Integer(), nullable=False),
        sa.Column(
            "surgical_case_id",
            sa.Integer(),
            sa.ForeignKey("surgical_case.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("status", sa.String(), nullable=False, server_default=sa.text("'DRAFT'")),
        sa.Column("data_json", sa.Text(), nullable=False, server_default=sa.text("'{}'")),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("updated_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=NOW),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=NOW),
        sa.Column("signed_by_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("signed_at", sa.DateTime(), nullable=True),
        sa.UniqueConstraint(
            "template_key",
            "template_version",
            "surgical_case_id",
            name="uq_clinical_form_response_template_case",
        ),
        sa.CheckConstraint("status in ('DRAFT','FINAL')", name="ck_clinical_form_response_status"),
    )

    op.create_table(
        "surgical_procedure_record",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "surgical_case_id",
            sa.Integer(),
            sa.ForeignKey("surgical_case.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("diagnosis_pre_op", sa.Text(), nullable=True),
        sa.Column("diagnosis_post_op", sa.Text(), nullable=True),
        sa.Column("procedure_performed", sa.Text(), nullable=True),
        sa.Column("side", sa.String(), nullable=True),
        sa.Column("surgeon_id", sa.String(), nullable=True),
        sa.Column("anesthesiologist_id", sa.String(), nullable=True),
        sa.Column("assistant_ids_json", sa.Text(), nullable=False, server_default=sa.text("'[]'")),
        sa.Column("anesthesia_type", sa.String(), nullable=True),
        sa.Column("urgency", sa.String(), nullable=True),
        sa.Column("source_form_id", sa.Integer(), sa.ForeignKey("clinical_form_response.id"), nullable=True),
        sa.Column("synced_at", sa.DateTime(), nullable=False, server_default=NOW),
        sa.UniqueConstraint("surgical_case_id", name="uq_surgical_procedure_record_surgical_case_id"),
    )


def downgrade() -> None:
    op.drop_table("surgical_procedure_record")
    op.drop_table("clinical_form_response")
    op.drop_table("theater_booking")
    op.drop_table("staff_invite")
    op.drop_index("ix_patient_image_case_plan_id", table_name="patient_image")
    op.drop_table("patient_image")
    op.drop_index("ix_consent_form_case_plan_id", table_name="consent_form")
    op.drop_table("consent_form")
    op.drop_table("case_plan")
    op.drop_index("ix_surgical_case_primary_surgeon_id", table_name="surgical_case")
    op.drop_index("ix_surgical_case_status", table_name="surgical_case")
    op.drop_table("surgical_case")
    op.drop_table("patients")
    op.drop_index("ix_audit_log_entity", table_name="audit_log")
    op.drop_table("audit_log")
    op.drop_table("users")
