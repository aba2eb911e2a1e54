"""Shared types, enums, and base models used across CBAM domain models."""

from collections.abc import Callable
from datetime import datetime, timezone
from enum import StrEnum
from typing import Annotated
from uuid import UUID

from pydantic import BaseModel, Field
from uuid_extensions import uuid7


def utc_now() -> datetime:
    """Return the current UTC timestamp (timezone-aware)."""
    return datetime.now(tz=timezone.utc)


def new_uuid7() -> UUID:
    """Generate a new time-sortable UUID v7."""
    return uuid7()


def ensure_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive timestamps read back from SQLite."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


Clock = Callable[[], datetime]


# --- Reusable annotated types ---

UUIDv7 = Annotated[UUID, Field(description="Time-sortable UUID v7.")]
UTCTimestamp = Annotated[
    datetime, Field(description="UTC timezone-aware timestamp.")
]
CNCode = Annotated[str, Field(description="8-digit Combined Nomenclature code.")]


# --- Shared enums ---


class CalculationMethod(StrEnum):
    """Emissions determination method chosen for an entry."""

    DEFAULT_VALUES = "default_values"
    ACTUAL_VALUES = "actual_values"
    COMBINED = "combined"


# Methods whose actual-data component needs an accredited verifier opinion.
METHODS_REQUIRING_VERIFICATION = frozenset({
    CalculationMethod.ACTUAL_VALUES,
    CalculationMethod.COMBINED,
})


class ValidationStatus(StrEnum):
    """Outcome of the last validation run on an entry."""

    PENDING = "pending"
    PASS = "pass"
    WARNING = "warning"
    BLOCKED = "blocked"


class IssueSeverity(StrEnum):
    """Severity of a validation issue."""

    BLOCKING = "BLOCKING"
    WARNING = "WARNING"


class VerificationStatus(StrEnum):
    """Accredited verifier states for an entry."""

    NOT_VERIFIED = "not_verified"
    VERIFIER_ASSIGNED = "verifier_assigned"
    VERIFIER_SATISFACTORY = "verifier_satisfactory"
    VERIFIER_UNSATISFACTORY = "verifier_unsatisfactory"
    CORRECTION_REQUIRED = "correction_required"


class VerifierStatus(StrEnum):
    """Accreditation standing of a verifier."""

    ACTIVE = "active"
    SUSPENDED = "suspended"
    WITHDRAWN = "withdrawn"


class ChangeRequestStatus(StrEnum):
    """Classification change request lifecycle."""

    PENDING_IMPACT_ANALYSIS = "pending_impact_analysis"
    IMPACT_ANALYZED = "impact_analyzed"
    APPROVED_AND_EXECUTED = "approved_and_executed"
    REJECTED = "rejected"


class RecalculationStatus(StrEnum):
    """Batch recalculation request lifecycle."""

    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    EXECUTED = "executed"
    REJECTED = "rejected"


class RegulatoryVersionStatus(StrEnum):
    """Regulatory parameter bundle lifecycle."""

    PENDING_ACTIVATION = "pending_activation"
    ACTIVE = "active"
    SUPERSEDED = "superseded"


class SnapshotReason(StrEnum):
    """Why a calculation was superseded."""

    CN_CODE_CHANGE = "cn_code_change"
    REGULATORY_RECALCULATION = "regulatory_recalculation"
    MANUAL_RECALCULATION = "manual_recalculation"


class CertificateStatus(StrEnum):
    """Certificate holding status."""

    ACTIVE = "active"
    SURRENDERED = "surrendered"
    EXPIRED = "expired"


class ReportStatus(StrEnum):
    """Periodic report status. SUBMITTED is terminal."""

    DRAFT = "draft"
    SUBMITTED = "submitted"


class EntityType(StrEnum):
    """Entity types recorded in the audit trail."""

    ENTRY = "CBAMEmissionEntry"
    CHANGE_REQUEST = "CBAMCNCodeChangeRequest"
    RECALCULATION_REQUEST = "CBAMRecalculationRequest"
    REGULATORY_VERSION = "CBAMRegulatoryVersion"
    REPORT = "CBAMReport"
    CERTIFICATE = "CBAMCertificate"


# --- Base model ---


class CBAMBase(BaseModel):
    """Base model with common configuration for all CBAM Pydantic models."""

    model_config = {
        "populate_by_name": True,
        "ser_json_timedelta": "iso8601",
        "protected_namespaces": (),
    }
