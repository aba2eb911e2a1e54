"""Audit trail and verifier reference models."""

from datetime import date
from typing import Any
from uuid import UUID

from pydantic import Field

from src.models.common import (
    CBAMBase,
    UTCTimestamp,
    UUIDv7,
    VerifierStatus,
    new_uuid7,
    utc_now,
)


class AuditLogEntry(CBAMBase, frozen=True):
    """Append-only record of a state-changing action."""

    audit_id: UUIDv7 = Field(default_factory=new_uuid7)
    entity_type: str
    entity_id: UUID
    action: str
    actor: str
    timestamp: UTCTimestamp = Field(default_factory=utc_now)
    details: dict[str, Any] = Field(default_factory=dict)


class Verifier(CBAMBase):
    """Accredited verification body (reference data)."""

    verifier_id: UUIDv7 = Field(default_factory=new_uuid7)
    name: str = Field(..., min_length=1, max_length=255)
    accreditation_number: str = ""
    status: VerifierStatus = VerifierStatus.ACTIVE
    accreditation_expires: date | None = None

    def accreditation_problem(self, as_of: date) -> str | None:
        """Return why this verifier cannot act, or None when it can."""
        if self.status != VerifierStatus.ACTIVE:
            return f"Verifier status is '{self.status}'."
        if not self.accreditation_number:
            return "Verifier has no accreditation number."
        if self.accreditation_expires is not None and self.accreditation_expires < as_of:
            return f"Accreditation expired on {self.accreditation_expires.isoformat()}."
        return None
