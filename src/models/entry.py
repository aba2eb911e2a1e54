"""Entry models — one declaration of an imported good's embedded emissions."""

from datetime import date
from typing import Any
from uuid import UUID

from pydantic import Field, field_validator, model_validator

from src.models.common import (
    CalculationMethod,
    CBAMBase,
    IssueSeverity,
    UTCTimestamp,
    UUIDv7,
    ValidationStatus,
    VerificationStatus,
    new_uuid7,
    utc_now,
)


class Precursor(CBAMBase):
    """Precursor good consumed in producing a complex good."""

    precursor_cn_code: str = ""
    precursor_name: str = ""
    quantity_consumed: float | None = Field(default=None, ge=0)
    emissions_embedded: float | None = Field(default=None, ge=0)
    emissions_intensity_factor: float | None = Field(default=None, ge=0)
    reporting_period_year: int | None = None
    evidence_ref: str | None = None
    production_installation_id: str | None = None

    @property
    def has_emissions_data(self) -> bool:
        return bool(self.emissions_embedded) or bool(self.emissions_intensity_factor)


class ExternalReference(CBAMBase, frozen=True):
    """Foreign-key pointer to a record owned by another system."""

    kind: str = Field(..., min_length=1, max_length=100)
    reference_id: str = Field(..., min_length=1, max_length=255)


class CalculationOutputs(CBAMBase):
    """Numeric fields returned by the calculation function.

    Only these are persisted from a calculation response.
    """

    direct_emissions_specific: float = 0.0
    indirect_emissions_specific: float = 0.0
    precursor_emissions: float = 0.0
    total_embedded_emissions: float = 0.0
    chargeable_emissions: float = 0.0
    certificates_required: float = 0.0
    cbam_factor_applied: float = 0.0
    free_allocation_adjustment: float = 0.0
    mark_up_percentage_applied: float = 0.0
    production_route: str | None = None
    default_value_used: bool = False


class ValidationIssue(CBAMBase, frozen=True):
    """One rule finding, retained verbatim on the entry for audit."""

    rule: str
    field: str
    severity: IssueSeverity
    message: str
    regulation: str
    current_value: Any = None
    required_value: Any = None


class EntryDraft(CBAMBase):
    """Input for creating an entry."""

    import_reference: str = ""
    country_of_origin: str = ""
    quantity: float = Field(default=0.0, ge=0)
    import_date: date | None = None
    reporting_period_year: int | None = None
    cn_code: str = ""
    calculation_method: CalculationMethod = CalculationMethod.DEFAULT_VALUES
    product_name: str = ""
    production_route: str | None = None
    supplier_reference: str | None = None
    direct_emissions_specific: float | None = Field(default=None, ge=0)
    indirect_emissions_specific: float | None = Field(default=None, ge=0)
    precursors: list[Precursor] = Field(default_factory=list)
    carbon_price_due_paid: float = Field(default=0.0, ge=0)
    carbon_price_certificate_ref: str | None = None

    @field_validator("cn_code")
    @classmethod
    def _strip_code(cls, v: str) -> str:
        return v.strip()

    @model_validator(mode="after")
    def _default_reporting_year(self) -> "EntryDraft":
        if self.reporting_period_year is None and self.import_date is not None:
            self.reporting_period_year = self.import_date.year
        return self


# Fields a caller may change through EntryLifecycleManager.update().
UPDATABLE_FIELDS: frozenset[str] = frozenset({
    "import_reference",
    "country_of_origin",
    "quantity",
    "import_date",
    "reporting_period_year",
    "cn_code",
    "calculation_method",
    "product_name",
    "production_route",
    "supplier_reference",
    "direct_emissions_specific",
    "indirect_emissions_specific",
    "precursors",
    "carbon_price_due_paid",
    "carbon_price_certificate_ref",
})


class Entry(EntryDraft):
    """Persisted declaration with lifecycle state.

    ``revision`` is the optimistic concurrency token; every successful
    write increments it.
    """

    entry_id: UUIDv7 = Field(default_factory=new_uuid7)
    revision: int = Field(default=1, ge=1)
    goods_category: str | None = None

    calculation: CalculationOutputs | None = None
    calculated_at: UTCTimestamp | None = None
    regulatory_version_id: UUID | None = None

    validation_status: ValidationStatus = ValidationStatus.PENDING
    validation_errors: list[ValidationIssue] = Field(default_factory=list)
    validation_warnings: list[ValidationIssue] = Field(default_factory=list)
    compliance_score: float | None = None
    last_validated_at: UTCTimestamp | None = None

    verification_status: VerificationStatus = VerificationStatus.NOT_VERIFIED
    verifier_id: UUID | None = None
    verification_assigned_at: UTCTimestamp | None = None
    verification_report_id: str | None = None
    verification_evidence_refs: list[str] = Field(default_factory=list)
    verification_findings: list[str] = Field(default_factory=list)
    verification_notes: str = ""
    verification_completed_at: UTCTimestamp | None = None
    correction_actions: list[str] = Field(default_factory=list)
    correction_requested_at: UTCTimestamp | None = None
    verification_cycle: int = 0

    calculation_frozen: bool = False
    reporting_blocked: bool = False
    open_change_request_id: UUID | None = None

    external_references: list[ExternalReference] = Field(default_factory=list)

    created_by: str = ""
    created_at: UTCTimestamp = Field(default_factory=utc_now)
    updated_at: UTCTimestamp = Field(default_factory=utc_now)
    data_modified_at: UTCTimestamp = Field(default_factory=utc_now)

    @property
    def total_embedded_emissions(self) -> float | None:
        return self.calculation.total_embedded_emissions if self.calculation else None

    @property
    def certificates_required(self) -> float | None:
        return self.calculation.certificates_required if self.calculation else None

    @property
    def is_calculated(self) -> bool:
        return self.calculation is not None and self.calculation.total_embedded_emissions > 0

    def calculation_snapshot(self) -> dict[str, Any]:
        """Full prior calculation state, as stored in CalculationSnapshot."""
        return {
            "cn_code": self.cn_code,
            "calculation_method": self.calculation_method.value,
            "quantity": self.quantity,
            "regulatory_version_id": (
                str(self.regulatory_version_id) if self.regulatory_version_id else None
            ),
            "calculated_at": self.calculated_at.isoformat() if self.calculated_at else None,
            "outputs": self.calculation.model_dump(mode="json") if self.calculation else None,
        }
