"""Exceptions for lookup, concurrency, authorization and upstream failures.

Business-rule failures (invalid transitions, blocking validation,
insufficient certificates) are not exceptions — see src.models.outcome.
"""

from uuid import UUID


class LifecycleError(Exception):
    """Base class for all lifecycle engine exceptions."""

    retryable: bool = False


class NotFound(LifecycleError):
    """A referenced entity does not exist."""

    def __init__(self, entity_type: str, entity_id: UUID | str) -> None:
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} {entity_id} not found.")


class ConcurrencyConflict(LifecycleError):
    """A conditional write lost the race. Re-read and retry."""

    retryable = True

    def __init__(
        self,
        entity_type: str,
        entity_id: UUID | str,
        expected_revision: int | None = None,
        detail: str = "",
    ) -> None:
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.expected_revision = expected_revision
        msg = f"{entity_type} {entity_id} was modified concurrently"
        if expected_revision is not None:
            msg += f" (expected revision {expected_revision})"
        if detail:
            msg += f": {detail}"
        super().__init__(msg + ".")


class AuthorizationDenied(LifecycleError):
    """The actor lacks the capability required by a gated action."""

    def __init__(self, actor: str, capability: str) -> None:
        self.actor = actor
        self.capability = capability
        super().__init__(f"Actor '{actor}' lacks capability '{capability}'.")


class UpstreamFailure(LifecycleError):
    """The external calculation function failed or timed out."""

    def __init__(self, message: str, *, retryable: bool = False, timed_out: bool = False) -> None:
        self.retryable = retryable
        self.timed_out = timed_out
        super().__init__(message)


class CalculationRejected(LifecycleError):
    """The calculation function answered but refused the input."""


class AuditWriteFailure(LifecycleError):
    """Audit append failed while AUDIT_MODE is transactional."""
