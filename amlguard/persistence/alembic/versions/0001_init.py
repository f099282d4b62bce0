"""init

Revision ID: 0001_init
Revises: 
Create Date: 2026-10-18 09:00:00.000000
"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "institutions",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("license_number", sa.String(), nullable=False),
        sa.Column("category", sa.String(), nullable=True),
        # Avoid index=True here because we create explicit indexes below.
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("risk_level", sa.String(), nullable=False),
        sa.Column("risk_score", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("license_number", name="uq_institutions_license_number"),
    )
    op.create_index("ix_institutions_status", "institutions", ["status"])
    op.create_index("ix_institutions_risk_level", "institutions", ["risk_level"])
    op.create_index("ix_institutions_updated_at", "institutions", ["updated_at"])

    op.create_table(
        "risk_profiles",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column(
            "institution_id",
            sa.String(),
            sa.ForeignKey("institutions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("overall_risk_level", sa.String(), nullable=False),
        sa.Column("overall_risk_score", sa.Float(), nullable=False),
        sa.Column("assessed_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_risk_profiles_institution_id", "risk_profiles", ["institution_id"])
    op.create_index(
        "ix_risk_profiles_institution_assessed", "risk_profiles", ["institution_id", "assessed_at"]
    )

    op.create_table(
        "surveillance_logs",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column(
            "institution_id",
            sa.String(),
            sa.ForeignKey("institutions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("type", sa.String(), nullable=False),
        sa.Column("severity", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_surveillance_logs_institution_id", "surveillance_logs", ["institution_id"])
    op.create_index("ix_surveillance_logs_occurred_at", "surveillance_logs", ["occurred_at"])

    op.create_table(
        "inspection_findings",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column(
            "institution_id",
            sa.String(),
            sa.ForeignKey("institutions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("category", sa.String(), nullable=False),
        sa.Column("severity", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("recommendation", sa.Text(), nullable=True),
        sa.Column("due_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_inspection_findings_institution_id", "inspection_findings", ["institution_id"])
    op.create_index("ix_inspection_findings_status", "inspection_findings", ["status"])

    op.create_table(
        "compliance_status",
        sa.Column(
            "institution_id",
            sa.String(),
            sa.ForeignKey("institutions.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("compliant", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("non_compliant", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("partial", sa.Integer(), nullable=False, server_default="0"),
    )

    op.create_table(
        "interventions",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column(
            "institution_id",
            sa.String(),
            sa.ForeignKey("institutions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("type", sa.String(), nullable=False),
        sa.Column("intensity", sa.Integer(), nullable=False),
        sa.Column("occurred_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_interventions_institution_id", "interventions", ["institution_id"])

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(), nullable=True),
        sa.Column("path", sa.String(), nullable=False),
        sa.Column("method", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        # Hash chain columns; null on rows written before chaining.
        sa.Column("prev_hash", sa.String(length=64), nullable=True),
        sa.Column("entry_hash", sa.String(length=64), nullable=True),
    )
    op.create_index("ix_audit_logs_user_id", "audit_logs", ["user_id"])
    op.create_index("ix_audit_logs_created_at", "audit_logs", ["created_at"])


def downgrade() -> None:
    op.drop_index("ix_audit_logs_created_at", table_name="audit_logs")
    op.drop_index("ix_audit_logs_user_id", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_index("ix_interventions_institution_id", table_name="interventions")
    op.drop_table("interventions")
    op.drop_table("compliance_status")
    op.drop_index("ix_inspection_findings_status", table_name="inspection_findings")
    op.drop_index("ix_inspection_findings_institution_id", table_name="inspection_findings")
    op.drop_table("inspection_findings")
    op.drop_index("ix_surveillance_logs_occurred_at", table_name="surveillance_logs")
    op.drop_index("ix_surveillance_logs_institution_id", table_name="surveillance_logs")
    op.drop_table("surveillance_logs")
    op.drop_index("ix_risk_profiles_institution_assessed", table_name="risk_profiles")
    op.drop_index("ix_risk_profiles_institution_id", table_name="risk_profiles")
    op.drop_table("risk_profiles")
    op.drop_index("ix_institutions_updated_at", table_name="institutions")
    op.drop_index("ix_institutions_risk_level", table_name="institutions")
    op.drop_index("ix_institutions_status", table_name="institutions")
    op.drop_table("institutions")
