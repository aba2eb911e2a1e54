"""Initial schema — entries, workflows, regulatory versions, reports, certificates, audit.

Revision ID: 001
Revises:
Create Date: 2026-01-12
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, UUID

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # -- Regulatory versions (VERSIONED) --
    op.create_table(
        "cbam_regulatory_versions",
        sa.Column("version_id", UUID(as_uuid=True), primary_key=True),
        sa.Column("revision", sa.Integer, nullable=False, server_default="1"),
        sa.Column("label", sa.String(100), nullable=False, unique=True),
        sa.Column("effective_date", sa.Date, nullable=False),
        sa.Column("publication_reference", sa.String(500), server_default=""),
        sa.Column("scope_of_change", sa.Text, server_default=""),
        sa.Column("cbam_factors", JSONB, nullable=False),
        sa.Column("default_markups", JSONB, nullable=False),
        sa.Column("free_allocation_active", sa.Boolean, server_default=sa.true()),
        sa.Column("status", sa.String(30), nullable=False),
        sa.Column("created_by", sa.String(255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("activated_by", sa.String(255), nullable=True),
        sa.Column("activated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("superseded_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(
        "uq_single_active_version",
        "cbam_regulatory_versions",
        ["status"],
        unique=True,
        postgresql_where=sa.text("status = 'active'"),
    )

    # -- Entries (VERSIONED) --
    op.create_table(
        "cbam_entries",
        sa.Column("entry_id", UUID(as_uuid=True), primary_key=True),
        sa.Column("revision", sa.Integer, nullable=False, server_default="1"),
        sa.Column("import_reference", sa.String(255), server_default=""),
        sa.Column("country_of_origin", sa.String(100), server_default=""),
        sa.Column("quantity", sa.Float, server_default="0"),
        sa.Column("import_date", sa.Date, nullable=True),
        sa.Column("reporting_period_year", sa.Integer, nullable=True),
        sa.Column("cn_code", sa.String(20), server_default=""),
        sa.Column("goods_category", sa.String(100), nullable=True),
        sa.Column("calculation_method", sa.String(30), nullable=False),
        sa.Column("product_name", sa.String(255), server_default=""),
        sa.Column("production_route", sa.String(100), nullable=True),
        sa.Column("supplier_reference", sa.String(255), nullable=True),
        sa.Column("direct_emissions_specific", sa.Float, nullable=True),
        sa.Column("indirect_emissions_specific", sa.Float, nullable=True),
        sa.Column("precursors", JSONB, server_default="[]"),
        sa.Column("carbon_price_due_paid", sa.Float, server_default="0"),
        sa.Column("carbon_price_certificate_ref", sa.String(255), nullable=True),
        sa.Column("calculation", JSONB, nullable=True),
        sa.Column("calculated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("regulatory_version_id", UUID(as_uuid=True), nullable=True),
        sa.Column("validation_status", sa.String(20), nullable=False),
        sa.Column("validation_errors", JSONB, server_default="[]"),
        sa.Column("validation_warnings", JSONB, server_default="[]"),
        sa.Column("compliance_score", sa.Float, nullable=True),
        sa.Column("last_validated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("verification_status", sa.String(30), nullable=False),
        sa.Column("verifier_id", UUID(as_uuid=True), nullable=True),
        sa.Column("verification_assigned_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("verification_report_id", sa.String(255), nullable=True),
        sa.Column("verification_evidence_refs", JSONB, server_default="[]"),
        sa.Column("verification_findings", JSONB, server_default="[]"),
        sa.Column("verification_notes", sa.Text, server_default=""),
        sa.Column("verification_completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("correction_actions", JSONB, server_default="[]"),
        sa.Column("correction_requested_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("verification_cycle", sa.Integer, server_default="0"),
        sa.Column("calculation_frozen", sa.Boolean, server_default=sa.false()),
        sa.Column("reporting_blocked", sa.Boolean, server_default=sa.false()),
        sa.Column("open_change_request_id", UUID(as_uuid=True), nullable=True),
        sa.Column("external_references", JSONB, server_default="[]"),
        sa.Column("created_by", sa.String(255), server_default=""),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("data_modified_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_cbam_entries_cn_code", "cbam_entries", ["cn_code"])
    op.create_index("ix_cbam_entries_validation_status", "cbam_entries", ["validation_status"])

    # -- Calculation snapshots (APPEND-ONLY) --
    op.create_table(
        "cbam_calculation_snapshots",
        sa.Column("snapshot_id", UUID(as_uuid=True), primary_key=True),
        sa.Column("entry_id", UUID(as_uuid=True), nullable=False),
        sa.Column("sequence", sa.Integer, nullable=False),
        sa.Column("reason", sa.String(50), nullable=False),
        sa.Column("calculation", JSONB, nullable=False),
        sa.Column("regulatory_version_id", UUID(as_uuid=True), nullable=True),
        sa.Column("superseded_by_request_id", UUID(as_uuid=True), nullable=True),
        sa.Column("created_by", sa.String(255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("entry_id", "sequence", name="uq_snapshot_entry_sequence"),
    )
    op.create_index(
        "ix_cbam_calculation_snapshots_entry_id", "cbam_calculation_snapshots", ["entry_id"],
    )

    # -- Workflows (VERSIONED) --
    op.create_table(
        "cbam_change_requests",
        sa.Column("request_id", UUID(as_uuid=True), primary_key=True),
        sa.Column("revision", sa.Integer, nullable=False, server_default="1"),
        sa.Column("entry_id", UUID(as_uuid=True), nullable=False),
        sa.Column("old_cn_code", sa.String(20), nullable=False),
        sa.Column("new_cn_code", sa.String(20), nullable=False),
        sa.Column("status", sa.String(40), nullable=False),
        sa.Column("impact_analysis", JSONB, nullable=True),
        sa.Column("requested_by", sa.String(255), nullable=False),
        sa.Column("requested_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("approved_by", sa.String(255), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("approval_justification", sa.Text, nullable=True),
        sa.Column("rejected_by", sa.String(255), nullable=True),
        sa.Column("rejected_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejection_reason", sa.Text, nullable=True),
        sa.Column("snapshot_id", UUID(as_uuid=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_cbam_change_requests_entry_id", "cbam_change_requests", ["entry_id"])

    op.create_table(
        "cbam_recalculation_requests",
        sa.Column("request_id", UUID(as_uuid=True), primary_key=True),
        sa.Column("revision", sa.Integer, nullable=False, server_default="1"),
        sa.Column("entry_ids", JSONB, nullable=False),
        sa.Column(
            "target_version_id",
            UUID(as_uuid=True),
            sa.ForeignKey("cbam_regulatory_versions.version_id"),
            nullable=False,
        ),
        sa.Column("reason", sa.Text, nullable=False),
        sa.Column("status", sa.String(30), nullable=False),
        sa.Column("requested_by", sa.String(255), nullable=False),
        sa.Column("requested_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("approved_by", sa.String(255), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejected_by", sa.String(255), nullable=True),
        sa.Column("rejected_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejection_reason", sa.Text, nullable=True),
        sa.Column("executed_by", sa.String(255), nullable=True),
        sa.Column("executed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("results", JSONB, server_default="[]"),
        sa.Column("success_count", sa.Integer, server_default="0"),
        sa.Column("failed_count", sa.Integer, server_default="0"),
        sa.Column("total_count", sa.Integer, server_default="0"),
    )

    # -- Reports (VERSIONED, draft only) --
    op.create_table(
        "cbam_reports",
        sa.Column("report_id", UUID(as_uuid=True), primary_key=True),
        sa.Column("revision", sa.Integer, nullable=False, server_default="1"),
        sa.Column("reporting_year", sa.Integer, nullable=False),
        sa.Column("reporting_quarter", sa.Integer, nullable=False),
        sa.Column("reporting_period", sa.String(10), nullable=False),
        sa.Column("period_start", sa.Date, nullable=False),
        sa.Column("period_end", sa.Date, nullable=False),
        sa.Column("submission_deadline", sa.Date, nullable=False),
        sa.Column("declarant", JSONB, nullable=False),
        sa.Column("totals", JSONB, nullable=False),
        sa.Column("certificates_required", sa.Integer, nullable=False),
        sa.Column("breakdown_by_category", JSONB, server_default="{}"),
        sa.Column("breakdown_by_country", JSONB, server_default="{}"),
        sa.Column("breakdown_by_method", JSONB, server_default="{}"),
        sa.Column("data_quality", JSONB, server_default="{}"),
        sa.Column("excluded_entries", JSONB, server_default="[]"),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("generated_by", sa.String(255), nullable=False),
        sa.Column("generated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("submitted_by", sa.String(255), nullable=True),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_cbam_reports_reporting_period", "cbam_reports", ["reporting_period"])

    op.create_table(
        "cbam_report_entry_links",
        sa.Column(
            "report_id",
            UUID(as_uuid=True),
            sa.ForeignKey("cbam_reports.report_id"),
            primary_key=True,
        ),
        sa.Column("entry_id", UUID(as_uuid=True), primary_key=True),
        sa.Column("position", sa.Integer, nullable=False),
    )
    op.create_index(
        "ix_cbam_report_entry_links_entry_id", "cbam_report_entry_links", ["entry_id"],
    )

    # -- Certificates (VERSIONED) --
    op.create_table(
        "cbam_certificates",
        sa.Column("certificate_id", UUID(as_uuid=True), primary_key=True),
        sa.Column("revision", sa.Integer, nullable=False, server_default="1"),
        sa.Column("quantity", sa.Integer, nullable=False),
        sa.Column("price_per_unit", sa.Float, nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("purchase_date", sa.Date, nullable=False),
        sa.Column("expiry_date", sa.Date, nullable=False),
        sa.Column("surrendered_for_report_id", UUID(as_uuid=True), nullable=True),
        sa.Column("surrendered_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("split_from_certificate_id", UUID(as_uuid=True), nullable=True),
        sa.Column("purchased_by", sa.String(255), server_default=""),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_cbam_certificates_status", "cbam_certificates", ["status"])
    op.create_index(
        "ix_cbam_certificates_surrendered_for_report_id",
        "cbam_certificates",
        ["surrendered_for_report_id"],
    )

    # -- Reference data --
    op.create_table(
        "cbam_verifiers",
        sa.Column("verifier_id", UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("accreditation_number", sa.String(100), server_default=""),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("accreditation_expires", sa.Date, nullable=True),
    )

    # -- Audit (APPEND-ONLY) --
    op.create_table(
        "cbam_audit_log",
        sa.Column("audit_id", UUID(as_uuid=True), primary_key=True),
        sa.Column("entity_type", sa.String(100), nullable=False),
        sa.Column("entity_id", UUID(as_uuid=True), nullable=False),
        sa.Column("action", sa.String(100), nullable=False),
        sa.Column("actor", sa.String(255), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("details", JSONB, server_default="{}"),
    )
    op.create_index("ix_audit_entity", "cbam_audit_log", ["entity_type", "entity_id"])


def downgrade() -> None:
    op.drop_table("cbam_audit_log")
    op.drop_table("cbam_verifiers")
    op.drop_table("cbam_certificates")
    op.drop_table("cbam_report_entry_links")
    op.drop_table("cbam_reports")
    op.drop_table("cbam_recalculation_requests")
    op.drop_table("cbam_change_requests")
    op.drop_table("cbam_calculation_snapshots")
    op.drop_table("cbam_entries")
    op.drop_table("cbam_regulatory_versions")
