"""SQLAlchemy ORM table models for the CBAM lifecycle engine.

Uses FlexJSON (JSONB on Postgres, JSON on SQLite) for nested types.

Categories:
- APPEND-ONLY: CalculationSnapshot, AuditLog (insert and read only)
- VERSIONED: every other table carries a ``revision`` column; writes are
  conditional on the revision the caller last read.
"""

from datetime import date, datetime
from uuid import UUID

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import JSON

from src.db.session import Base

# JSONB on PostgreSQL, plain JSON on SQLite (for tests)
FlexJSON = JSONB().with_variant(JSON(), "sqlite")


# ---------------------------------------------------------------------------
# Entries - VERSIONED
# ---------------------------------------------------------------------------


class EntryRow(Base):
    """Emission declaration for one import."""

    __tablename__ = "cbam_entries"

    entry_id: Mapped[UUID] = mapped_column(primary_key=True)
    revision: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    import_reference: Mapped[str] = mapped_column(String(255), default="")
    country_of_origin: Mapped[str] = mapped_column(String(100), default="")
    quantity: Mapped[float] = mapped_column(Float, default=0.0)
    import_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    reporting_period_year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    cn_code: Mapped[str] = mapped_column(String(20), default="", index=True)
    goods_category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    calculation_method: Mapped[str] = mapped_column(String(30), nullable=False)
    product_name: Mapped[str] = mapped_column(String(255), default="")
    production_route: Mapped[str | None] = mapped_column(String(100), nullable=True)
    supplier_reference: Mapped[str | None] = mapped_column(String(255), nullable=True)
    direct_emissions_specific: Mapped[float | None] = mapped_column(Float, nullable=True)
    indirect_emissions_specific: Mapped[float | None] = mapped_column(Float, nullable=True)
    precursors: Mapped[list] = mapped_column(FlexJSON, default=list)
    carbon_price_due_paid: Mapped[float] = mapped_column(Float, default=0.0)
    carbon_price_certificate_ref: Mapped[str | None] = mapped_column(String(255), nullable=True)

    calculation: Mapped[dict | None] = mapped_column(FlexJSON, nullable=True)
    calculated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    regulatory_version_id: Mapped[UUID | None] = mapped_column(nullable=True)

    validation_status: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    validation_errors: Mapped[list] = mapped_column(FlexJSON, default=list)
    validation_warnings: Mapped[list] = mapped_column(FlexJSON, default=list)
    compliance_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    last_validated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    verification_status: Mapped[str] = mapped_column(String(30), nullable=False)
    verifier_id: Mapped[UUID | None] = mapped_column(nullable=True)
    verification_assigned_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    verification_report_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    verification_evidence_refs: Mapped[list] = mapped_column(FlexJSON, default=list)
    verification_findings: Mapped[list] = mapped_column(FlexJSON, default=list)
    verification_notes: Mapped[str] = mapped_column(Text, default="")
    verification_completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    correction_actions: Mapped[list] = mapped_column(FlexJSON, default=list)
    correction_requested_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    verification_cycle: Mapped[int] = mapped_column(Integer, default=0)

    calculation_frozen: Mapped[bool] = mapped_column(Boolean, default=False)
    reporting_blocked: Mapped[bool] = mapped_column(Boolean, default=False)
    open_change_request_id: Mapped[UUID | None] = mapped_column(nullable=True)

    external_references: Mapped[list] = mapped_column(FlexJSON, default=list)

    created_by: Mapped[str] = mapped_column(String(255), default="")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    data_modified_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class CalculationSnapshotRow(Base):
    """APPEND-ONLY calculation history. One row per supersession."""

    __tablename__ = "cbam_calculation_snapshots"
    __table_args__ = (
        UniqueConstraint("entry_id", "sequence", name="uq_snapshot_entry_sequence"),
    )

    snapshot_id: Mapped[UUID] = mapped_column(primary_key=True)
    entry_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[str] = mapped_column(String(50), nullable=False)
    calculation: Mapped[dict] = mapped_column(FlexJSON, nullable=False)
    regulatory_version_id: Mapped[UUID | None] = mapped_column(nullable=True)
    superseded_by_request_id: Mapped[UUID | None] = mapped_column(nullable=True)
    created_by: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


# ---------------------------------------------------------------------------
# Workflows - VERSIONED
# ---------------------------------------------------------------------------


class ChangeRequestRow(Base):
    """Classification change request."""

    __tablename__ = "cbam_change_requests"

    request_id: Mapped[UUID] = mapped_column(primary_key=True)
    revision: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    entry_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    old_cn_code: Mapped[str] = mapped_column(String(20), nullable=False)
    new_cn_code: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(40), nullable=False)
    impact_analysis: Mapped[dict | None] = mapped_column(FlexJSON, nullable=True)
    requested_by: Mapped[str] = mapped_column(String(255), nullable=False)
    requested_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    approved_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    approval_justification: Mapped[str | None] = mapped_column(Text, nullable=True)
    rejected_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    rejected_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    snapshot_id: Mapped[UUID | None] = mapped_column(nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class RecalculationRequestRow(Base):
    """Approval-gated batch recalculation."""

    __tablename__ = "cbam_recalculation_requests"

    request_id: Mapped[UUID] = mapped_column(primary_key=True)
    revision: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    entry_ids: Mapped[list] = mapped_column(FlexJSON, nullable=False)
    target_version_id: Mapped[UUID] = mapped_column(
        ForeignKey("cbam_regulatory_versions.version_id"), nullable=False
    )
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(30), nullable=False)
    requested_by: Mapped[str] = mapped_column(String(255), nullable=False)
    requested_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    approved_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    rejected_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    rejected_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    executed_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    executed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    results: Mapped[list] = mapped_column(FlexJSON, default=list)
    success_count: Mapped[int] = mapped_column(Integer, default=0)
    failed_count: Mapped[int] = mapped_column(Integer, default=0)
    total_count: Mapped[int] = mapped_column(Integer, default=0)


# ---------------------------------------------------------------------------
# Regulatory versions - VERSIONED
# ---------------------------------------------------------------------------


class RegulatoryVersionRow(Base):
    """Regulatory parameter bundle. At most one row has status 'active'."""

    __tablename__ = "cbam_regulatory_versions"
    __table_args__ = (
        Index(
            "uq_single_active_version",
            "status",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
    )

    version_id: Mapped[UUID] = mapped_column(primary_key=True)
    revision: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    label: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    effective_date: Mapped[date] = mapped_column(Date, nullable=False)
    publication_reference: Mapped[str] = mapped_column(String(500), default="")
    scope_of_change: Mapped[str] = mapped_column(Text, default="")
    cbam_factors: Mapped[dict] = mapped_column(FlexJSON, nullable=False)
    default_markups: Mapped[dict] = mapped_column(FlexJSON, nullable=False)
    free_allocation_active: Mapped[bool] = mapped_column(Boolean, default=True)
    status: Mapped[str] = mapped_column(String(30), nullable=False)
    created_by: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    activated_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    activated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    superseded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


# ---------------------------------------------------------------------------
# Reports - VERSIONED (draft only)
# ---------------------------------------------------------------------------


class ReportRow(Base):
    """Quarterly report. Writes are conditional on status 'draft'."""

    __tablename__ = "cbam_reports"

    report_id: Mapped[UUID] = mapped_column(primary_key=True)
    revision: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    reporting_year: Mapped[int] = mapped_column(Integer, nullable=False)
    reporting_quarter: Mapped[int] = mapped_column(Integer, nullable=False)
    reporting_period: Mapped[str] = mapped_column(String(10), nullable=False, index=True)
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)
    submission_deadline: Mapped[date] = mapped_column(Date, nullable=False)
    declarant: Mapped[dict] = mapped_column(FlexJSON, nullable=False)
    totals: Mapped[dict] = mapped_column(FlexJSON, nullable=False)
    certificates_required: Mapped[int] = mapped_column(Integer, nullable=False)
    breakdown_by_category: Mapped[dict] = mapped_column(FlexJSON, default=dict)
    breakdown_by_country: Mapped[dict] = mapped_column(FlexJSON, default=dict)
    breakdown_by_method: Mapped[dict] = mapped_column(FlexJSON, default=dict)
    data_quality: Mapped[dict] = mapped_column(FlexJSON, default=dict)
    excluded_entries: Mapped[list] = mapped_column(FlexJSON, default=list)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    generated_by: Mapped[str] = mapped_column(String(255), nullable=False)
    generated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    submitted_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class ReportEntryLinkRow(Base):
    """Report ↔ entry link, keyed for the delete-while-submitted check."""

    __tablename__ = "cbam_report_entry_links"

    report_id: Mapped[UUID] = mapped_column(
        ForeignKey("cbam_reports.report_id"), primary_key=True
    )
    entry_id: Mapped[UUID] = mapped_column(primary_key=True, index=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False)


# ---------------------------------------------------------------------------
# Certificates - VERSIONED
# ---------------------------------------------------------------------------


class CertificateRow(Base):
    """Certificate lot. Quantity is whole tonnes."""

    __tablename__ = "cbam_certificates"

    certificate_id: Mapped[UUID] = mapped_column(primary_key=True)
    revision: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    price_per_unit: Mapped[float] = mapped_column(Float, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    purchase_date: Mapped[date] = mapped_column(Date, nullable=False)
    expiry_date: Mapped[date] = mapped_column(Date, nullable=False)
    surrendered_for_report_id: Mapped[UUID | None] = mapped_column(nullable=True, index=True)
    surrendered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    split_from_certificate_id: Mapped[UUID | None] = mapped_column(nullable=True)
    purchased_by: Mapped[str] = mapped_column(String(255), default="")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


# ---------------------------------------------------------------------------
# Reference data
# ---------------------------------------------------------------------------


class VerifierRow(Base):
    """Accredited verifier."""

    __tablename__ = "cbam_verifiers"

    verifier_id: Mapped[UUID] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    accreditation_number: Mapped[str] = mapped_column(String(100), default="")
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    accreditation_expires: Mapped[date | None] = mapped_column(Date, nullable=True)


# ---------------------------------------------------------------------------
# Audit - APPEND-ONLY
# ---------------------------------------------------------------------------


class AuditLogRow(Base):
    """Append-only audit trail."""

    __tablename__ = "cbam_audit_log"
    __table_args__ = (
        Index("ix_audit_entity", "entity_type", "entity_id"),
    )

    audit_id: Mapped[UUID] = mapped_column(primary_key=True)
    entity_type: Mapped[str] = mapped_column(String(100), nullable=False)
    entity_id: Mapped[UUID] = mapped_column(nullable=False)
    action: Mapped[str] = mapped_column(String(100), nullable=False)
    actor: Mapped[str] = mapped_column(String(255), nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    details: Mapped[dict] = mapped_column(FlexJSON, default=dict)
