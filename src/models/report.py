"""Periodic report models."""

import calendar
import re
from datetime import date
from typing import Any
from uuid import UUID

from pydantic import Field

from src.models.common import (
    CBAMBase,
    ReportStatus,
    UTCTimestamp,
    UUIDv7,
    new_uuid7,
    utc_now,
)

_PERIOD_PATTERN = re.compile(r"^Q([1-4])-(\d{4})$")


class ReportingPeriod(CBAMBase, frozen=True):
    """A calendar quarter, rendered as ``Q1-2026``."""

    year: int = Field(..., ge=2023, le=2100)
    quarter: int = Field(..., ge=1, le=4)

    @classmethod
    def parse(cls, value: str) -> "ReportingPeriod":
        match = _PERIOD_PATTERN.match(value.strip())
        if match is None:
            msg = f"Reporting period must look like 'Q1-2026', got {value!r}."
            raise ValueError(msg)
        return cls(year=int(match.group(2)), quarter=int(match.group(1)))

    @property
    def label(self) -> str:
        return f"Q{self.quarter}-{self.year}"

    @property
    def start(self) -> date:
        return date(self.year, (self.quarter - 1) * 3 + 1, 1)

    @property
    def end(self) -> date:
        month = self.quarter * 3
        return date(self.year, month, calendar.monthrange(self.year, month)[1])

    @property
    def submission_deadline(self) -> date:
        """Last day of the month following the quarter."""
        year, month = (self.year + 1, 1) if self.quarter == 4 else (self.year, self.quarter * 3 + 1)
        return date(year, month, calendar.monthrange(year, month)[1])

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end


class Declarant(CBAMBase):
    eori_number: str = ""
    member_state: str = ""
    declarant_name: str = ""


class ReportTotals(CBAMBase):
    total_imports: int = 0
    total_quantity: float = 0.0
    total_direct_emissions: float = 0.0
    total_indirect_emissions: float = 0.0
    total_embedded_emissions: float = 0.0
    total_chargeable_emissions: float = 0.0
    certificates_sum: float = 0.0


class BreakdownItem(CBAMBase):
    count: int = 0
    quantity: float = 0.0
    emissions: float = 0.0
    certificates: float = 0.0


class DataQuality(CBAMBase):
    eligible_entries: int = 0
    excluded_entries: int = 0
    verified_entries: int = 0
    verification_coverage_percent: float = 0.0
    average_compliance_score: float | None = None


class ExcludedEntry(CBAMBase):
    entry_id: UUID
    import_reference: str = ""
    reasons: list[str]


class Report(CBAMBase):
    """Quarterly aggregation of eligible entries. Immutable once submitted."""

    report_id: UUIDv7 = Field(default_factory=new_uuid7)
    revision: int = Field(default=1, ge=1)
    reporting_year: int
    reporting_quarter: int = Field(..., ge=1, le=4)
    reporting_period: str
    period_start: date
    period_end: date
    submission_deadline: date
    declarant: Declarant = Field(default_factory=Declarant)
    totals: ReportTotals = Field(default_factory=ReportTotals)
    certificates_required: int = 0
    breakdown_by_category: dict[str, BreakdownItem] = Field(default_factory=dict)
    breakdown_by_country: dict[str, BreakdownItem] = Field(default_factory=dict)
    breakdown_by_method: dict[str, BreakdownItem] = Field(default_factory=dict)
    data_quality: DataQuality = Field(default_factory=DataQuality)
    linked_entry_ids: list[UUID] = Field(default_factory=list)
    excluded_entries: list[ExcludedEntry] = Field(default_factory=list)
    status: ReportStatus = ReportStatus.DRAFT
    generated_by: str = ""
    generated_at: UTCTimestamp = Field(default_factory=utc_now)
    submitted_by: str | None = None
    submitted_at: UTCTimestamp | None = None


class ReportReadiness(CBAMBase):
    """Pre-generation check for one quarter."""

    reporting_period: str
    total_entries: int
    validated_entries: int
    blocked_entries: int
    unvalidated_entries: int
    unverified_actual_entries: int
    frozen_entries: int
    ready: bool


class ReportDocument(CBAMBase):
    """Structured payload handed to the regulatory export adapter."""

    document_type: str = "CBAM_QUARTERLY_REPORT"
    report_id: UUID
    reporting_period: str
    period_start: date
    period_end: date
    submission_deadline: date
    status: ReportStatus
    declarant: Declarant
    goods: list[dict[str, Any]]
    totals: ReportTotals
    certificates_required: int
    generated_at: UTCTimestamp
    submitted_at: UTCTimestamp | None = None
