"""Certificate models. One certificate covers one tonne of CO2e."""

from datetime import date
from uuid import UUID

from pydantic import Field

from src.models.common import (
    CBAMBase,
    CertificateStatus,
    UTCTimestamp,
    UUIDv7,
    new_uuid7,
    utc_now,
)


class Certificate(CBAMBase):
    """A holding of CBAM certificates purchased in one lot."""

    certificate_id: UUIDv7 = Field(default_factory=new_uuid7)
    revision: int = Field(default=1, ge=1)
    quantity: int = Field(..., gt=0)
    price_per_unit: float = Field(..., ge=0)
    status: CertificateStatus = CertificateStatus.ACTIVE
    purchase_date: date
    expiry_date: date
    surrendered_for_report_id: UUID | None = None
    surrendered_at: UTCTimestamp | None = None
    split_from_certificate_id: UUID | None = None
    purchased_by: str = ""
    created_at: UTCTimestamp = Field(default_factory=utc_now)

    def is_usable(self, as_of: date) -> bool:
        return self.status == CertificateStatus.ACTIVE and self.expiry_date >= as_of


class SurrenderAllocation(CBAMBase, frozen=True):
    """One certificate (or split portion) consumed by a surrender."""

    certificate_id: UUID
    quantity: int
    split_from_certificate_id: UUID | None = None


class SurrenderResult(CBAMBase):
    report_id: UUID
    required: int
    surrendered: int
    allocations: list[SurrenderAllocation] = Field(default_factory=list)


class Holdings(CBAMBase):
    """Certificate quantities by status."""

    active: int = 0
    surrendered: int = 0
    expired: int = 0

    @property
    def total(self) -> int:
        return self.active + self.surrendered + self.expired


class Obligation(CBAMBase):
    """Surrender position for one report."""

    report_id: UUID
    required: int
    surrendered: int
    outstanding: int
    available: int
    estimated_cost_eur: float
