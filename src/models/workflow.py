"""Approval workflow models: classification changes, recalculations, snapshots.

Transition tables follow the same shape as the verification table: a
dict from source state to the frozenset of allowed targets.
"""

from typing import Any
from uuid import UUID

from pydantic import Field

from src.models.common import (
    CBAMBase,
    ChangeRequestStatus,
    RecalculationStatus,
    SnapshotReason,
    UTCTimestamp,
    UUIDv7,
    new_uuid7,
    utc_now,
)

# ---------------------------------------------------------------------------
# Classification change control
# ---------------------------------------------------------------------------

VALID_CHANGE_REQUEST_TRANSITIONS: dict[ChangeRequestStatus, frozenset[ChangeRequestStatus]] = {
    ChangeRequestStatus.PENDING_IMPACT_ANALYSIS: frozenset({
        ChangeRequestStatus.IMPACT_ANALYZED,
        ChangeRequestStatus.REJECTED,
    }),
    ChangeRequestStatus.IMPACT_ANALYZED: frozenset({
        ChangeRequestStatus.APPROVED_AND_EXECUTED,
        ChangeRequestStatus.REJECTED,
    }),
    ChangeRequestStatus.APPROVED_AND_EXECUTED: frozenset(),
    ChangeRequestStatus.REJECTED: frozenset(),
}


class ImpactAnalysis(CBAMBase):
    """Consequences of moving an entry to a new CN code."""

    old_total_emissions: float
    new_total_emissions: float
    emissions_delta: float
    emissions_delta_percent: float
    old_certificates: float
    new_certificates: float
    certificates_delta: float
    old_cost_eur: float
    new_cost_eur: float
    cost_delta_eur: float
    reference_price_eur: float
    old_benchmark: float | None = None
    new_benchmark: float | None = None
    benchmark_changed: bool = False
    old_default_value: float | None = None
    new_default_value: float | None = None
    default_value_changed: bool = False
    old_goods_category: str | None = None
    new_goods_category: str | None = None
    analysed_by: str
    analysed_at: UTCTimestamp = Field(default_factory=utc_now)


class ChangeRequest(CBAMBase):
    """Classification (CN code) change awaiting impact analysis and approval."""

    request_id: UUIDv7 = Field(default_factory=new_uuid7)
    revision: int = Field(default=1, ge=1)
    entry_id: UUID
    old_cn_code: str
    new_cn_code: str
    status: ChangeRequestStatus = ChangeRequestStatus.PENDING_IMPACT_ANALYSIS
    impact_analysis: ImpactAnalysis | None = None
    requested_by: str
    requested_at: UTCTimestamp = Field(default_factory=utc_now)
    approved_by: str | None = None
    approved_at: UTCTimestamp | None = None
    approval_justification: str | None = None
    rejected_by: str | None = None
    rejected_at: UTCTimestamp | None = None
    rejection_reason: str | None = None
    snapshot_id: UUID | None = None
    updated_at: UTCTimestamp = Field(default_factory=utc_now)

    @property
    def is_open(self) -> bool:
        return bool(VALID_CHANGE_REQUEST_TRANSITIONS[self.status])


# ---------------------------------------------------------------------------
# Regulatory recalculation
# ---------------------------------------------------------------------------

VALID_RECALCULATION_TRANSITIONS: dict[RecalculationStatus, frozenset[RecalculationStatus]] = {
    RecalculationStatus.PENDING_APPROVAL: frozenset({
        RecalculationStatus.APPROVED,
        RecalculationStatus.REJECTED,
    }),
    RecalculationStatus.APPROVED: frozenset({RecalculationStatus.EXECUTED}),
    RecalculationStatus.EXECUTED: frozenset(),
    RecalculationStatus.REJECTED: frozenset(),
}


class RecalculationEntryResult(CBAMBase):
    """Per-entry outcome of an executed recalculation."""

    entry_id: UUID
    success: bool
    snapshot_id: UUID | None = None
    old_certificates: float | None = None
    new_certificates: float | None = None
    error: str | None = None


class RecalculationRequest(CBAMBase):
    """Batch recalculation of entries under a target regulatory version."""

    request_id: UUIDv7 = Field(default_factory=new_uuid7)
    revision: int = Field(default=1, ge=1)
    entry_ids: list[UUID]
    target_version_id: UUID
    reason: str
    status: RecalculationStatus = RecalculationStatus.PENDING_APPROVAL
    requested_by: str
    requested_at: UTCTimestamp = Field(default_factory=utc_now)
    approved_by: str | None = None
    approved_at: UTCTimestamp | None = None
    rejected_by: str | None = None
    rejected_at: UTCTimestamp | None = None
    rejection_reason: str | None = None
    executed_by: str | None = None
    executed_at: UTCTimestamp | None = None
    results: list[RecalculationEntryResult] = Field(default_factory=list)
    success_count: int = 0
    failed_count: int = 0
    total_count: int = 0


class RecalculationPreviewItem(CBAMBase):
    """Simulated effect of recalculating one entry."""

    entry_id: UUID
    current_certificates: float | None = None
    projected_certificates: float | None = None
    certificates_delta: float | None = None
    error: str | None = None


# ---------------------------------------------------------------------------
# Calculation history
# ---------------------------------------------------------------------------


class CalculationSnapshot(CBAMBase):
    """Immutable copy of an entry's calculation before it was superseded."""

    snapshot_id: UUIDv7 = Field(default_factory=new_uuid7)
    entry_id: UUID
    sequence: int = Field(..., ge=1)
    reason: SnapshotReason
    calculation: dict[str, Any]
    regulatory_version_id: UUID | None = None
    superseded_by_request_id: UUID | None = None
    created_by: str
    created_at: UTCTimestamp = Field(default_factory=utc_now)
