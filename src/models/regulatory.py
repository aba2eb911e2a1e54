"""Regulatory version models: versioned phase-in factors and default mark-ups."""

from datetime import date
from uuid import UUID

from pydantic import Field, field_validator

from src.models.common import (
    CBAMBase,
    RegulatoryVersionStatus,
    UTCTimestamp,
    UUIDv7,
    new_uuid7,
    utc_now,
)

# Phase-in of the obligation as free allocation is withdrawn (share of
# emissions that is chargeable).
DEFAULT_CBAM_FACTORS: dict[int, float] = {
    2026: 0.025,
    2027: 0.05,
    2028: 0.10,
    2029: 0.225,
    2030: 0.4875,
    2031: 0.71,
    2032: 0.8775,
    2033: 0.95,
    2034: 1.0,
}

# Mark-up percent added to default values.
DEFAULT_MARKUPS: dict[int, float] = {
    2026: 10.0,
    2027: 20.0,
    2028: 30.0,
    2029: 30.0,
    2030: 30.0,
}

FALLBACK_VERSION_LABEL = "CBAM-2026-BASE-FALLBACK"


class RegulatoryVersionDraft(CBAMBase):
    """Input for registering a new regulatory version."""

    label: str = Field(..., min_length=1, max_length=100)
    effective_date: date
    publication_reference: str = ""
    scope_of_change: str = ""
    cbam_factors: dict[int, float] = Field(default_factory=lambda: dict(DEFAULT_CBAM_FACTORS))
    default_markups: dict[int, float] = Field(default_factory=lambda: dict(DEFAULT_MARKUPS))
    free_allocation_active: bool = True

    @field_validator("cbam_factors")
    @classmethod
    def _factors_in_range(cls, v: dict[int, float]) -> dict[int, float]:
        for year, factor in v.items():
            if not 0.0 <= factor <= 1.0:
                msg = f"CBAM factor for {year} must be between 0 and 1, got {factor}."
                raise ValueError(msg)
        return v

    @field_validator("default_markups")
    @classmethod
    def _markups_non_negative(cls, v: dict[int, float]) -> dict[int, float]:
        for year, markup in v.items():
            if markup < 0:
                msg = f"Mark-up for {year} must be non-negative, got {markup}."
                raise ValueError(msg)
        return v


class RegulatoryVersion(RegulatoryVersionDraft):
    """A versioned bundle of regulatory parameters.

    Exactly one persisted version is ACTIVE at a time. The fallback
    bundle (``is_fallback=True``) is never persisted.
    """

    version_id: UUIDv7 = Field(default_factory=new_uuid7)
    revision: int = Field(default=1, ge=1)
    status: RegulatoryVersionStatus = RegulatoryVersionStatus.PENDING_ACTIVATION
    created_by: str = ""
    created_at: UTCTimestamp = Field(default_factory=utc_now)
    activated_by: str | None = None
    activated_at: UTCTimestamp | None = None
    superseded_at: UTCTimestamp | None = None
    is_fallback: bool = False


class RegulatoryParameters(CBAMBase, frozen=True):
    """Parameters resolved for one reporting year under one version."""

    version_id: UUID | None
    version_label: str
    year: int
    cbam_factor: float
    markup_percent: float
    free_allocation_active: bool


def fallback_version() -> RegulatoryVersion:
    """Built-in parameters used when no version has been activated."""
    return RegulatoryVersion(
        version_id=UUID(int=0),
        label=FALLBACK_VERSION_LABEL,
        effective_date=date(2026, 1, 1),
        publication_reference="Regulation (EU) 2023/956",
        scope_of_change="Built-in definitive-period defaults",
        status=RegulatoryVersionStatus.ACTIVE,
        created_by="system",
        is_fallback=True,
    )
