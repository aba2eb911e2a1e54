"""Structured business-rule results.

Callers (API, batch jobs) branch on ``Rejection.code`` instead of parsing
exception messages. Every rejection carries enough detail to be rendered
without a further lookup.
"""

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Generic, TypeVar

T = TypeVar("T")


class RejectionCode(StrEnum):
    """Why a business operation was refused."""

    INVALID_TRANSITION = "invalid_transition"
    VALIDATION_REJECTED = "validation_rejected"
    INSUFFICIENT_CERTIFICATES = "insufficient_certificates"
    PRECONDITION_FAILED = "precondition_failed"
    CONFIRMATION_REQUIRED = "confirmation_required"
    CALCULATION_FROZEN = "calculation_frozen"
    FIELD_NOT_ALLOWED = "field_not_allowed"


@dataclass(frozen=True)
class Rejection:
    """A refused operation with machine-readable detail."""

    code: RejectionCode
    message: str
    from_state: str | None = None
    to_state: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code.value,
            "message": self.message,
            "from_state": self.from_state,
            "to_state": self.to_state,
            "details": self.details,
        }


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Either a value or a rejection, never both."""

    value: T | None = None
    rejection: Rejection | None = None

    @property
    def ok(self) -> bool:
        return self.rejection is None

    @classmethod
    def success(cls, value: T) -> "Outcome[T]":
        return cls(value=value)

    @classmethod
    def rejected(
        cls,
        code: RejectionCode,
        message: str,
        *,
        from_state: str | None = None,
        to_state: str | None = None,
        **details: Any,
    ) -> "Outcome[T]":
        return cls(
            rejection=Rejection(
                code=code,
                message=message,
                from_state=from_state,
                to_state=to_state,
                details=details,
            )
        )

    def unwrap(self) -> T:
        """Return the value or raise ValueError with the rejection message."""
        if self.rejection is not None:
            raise ValueError(self.rejection.message)
        return self.value  # type: ignore[return-value]
