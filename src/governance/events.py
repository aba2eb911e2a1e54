"""In-process domain event bus.

Publication is fire-and-forget from the publisher's point of view:
handlers run synchronously inside ``publish`` and a failing handler is
logged and reported in the receipt, never re-raised.
"""

import inspect
import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any, Protocol
from uuid import UUID

from src.models.common import new_uuid7, utc_now

logger = logging.getLogger(__name__)


class EventType(StrEnum):
    ENTRY_CREATED = "EntryCreated"
    ENTRY_UPDATED = "EntryUpdated"
    ENTRY_DELETED = "EntryDeleted"
    ENTRY_CALCULATED = "EntryCalculated"
    ENTRY_VALIDATED = "EntryValidated"
    ENTRY_REFERENCE_LINKED = "EntryReferenceLinked"
    VERIFICATION_REQUESTED = "VerificationRequested"
    VERIFICATION_COMPLETED = "VerificationCompleted"
    CORRECTION_REQUESTED = "CorrectionRequested"
    CLASSIFICATION_CHANGE_DETECTED = "ClassificationChangeDetected"
    CLASSIFICATION_CHANGE_ANALYZED = "ClassificationChangeAnalyzed"
    CLASSIFICATION_CHANGE_APPROVED = "ClassificationChangeApproved"
    CLASSIFICATION_CHANGE_REJECTED = "ClassificationChangeRejected"
    RECALCULATION_REQUESTED = "RecalculationRequested"
    RECALCULATION_APPROVED = "RecalculationApproved"
    RECALCULATION_REJECTED = "RecalculationRejected"
    RECALCULATION_EXECUTED = "RecalculationExecuted"
    REGULATORY_VERSION_ACTIVATED = "RegulatoryVersionActivated"
    REPORT_GENERATED = "ReportGenerated"
    REPORT_SUBMITTED = "ReportSubmitted"
    CERTIFICATES_PURCHASED = "CertificatesPurchased"
    CERTIFICATES_SURRENDERED = "CertificatesSurrendered"
    CERTIFICATES_EXPIRED = "CertificatesExpired"


@dataclass(frozen=True)
class DomainEvent:
    event_type: EventType
    entity_id: UUID
    actor: str
    payload: dict[str, Any] = field(default_factory=dict)
    event_id: UUID = field(default_factory=new_uuid7)
    occurred_at: datetime = field(default_factory=utc_now)


@dataclass(frozen=True)
class HandlerFailure:
    handler: str
    error: str


@dataclass
class PublishReceipt:
    """What happened to one published event."""

    event_id: UUID
    delivered: int = 0
    failures: list[HandlerFailure] = field(default_factory=list)

    @property
    def all_delivered(self) -> bool:
        return not self.failures


Handler = Callable[[DomainEvent], Awaitable[None] | None]


class EventNotifier(Protocol):
    async def publish(self, event: DomainEvent) -> PublishReceipt: ...


class InProcessEventBus:
    """Synchronous dispatch to handlers subscribed by event type."""

    def __init__(self) -> None:
        self._handlers: dict[EventType | None, list[Handler]] = defaultdict(list)

    def subscribe(self, event_type: EventType, handler: Handler) -> None:
        self._handlers[event_type].append(handler)

    def subscribe_all(self, handler: Handler) -> None:
        self._handlers[None].append(handler)

    async def publish(self, event: DomainEvent) -> PublishReceipt:
        receipt = PublishReceipt(event_id=event.event_id)
        for handler in [*self._handlers[event.event_type], *self._handlers[None]]:
            name = getattr(handler, "__qualname__", repr(handler))
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:  # noqa: BLE001 - handler isolation
                logger.exception(
                    "Event handler %s failed for %s %s", name, event.event_type, event.entity_id,
                )
                receipt.failures.append(HandlerFailure(handler=name, error=repr(exc)))
            else:
                receipt.delivered += 1
        return receipt


class RecordingEventBus(InProcessEventBus):
    """Bus that also keeps every published event, for batch jobs and tests."""

    def __init__(self) -> None:
        super().__init__()
        self.published: list[DomainEvent] = []

    async def publish(self, event: DomainEvent) -> PublishReceipt:
        self.published.append(event)
        return await super().publish(event)

    def of_type(self, event_type: EventType) -> list[DomainEvent]:
        return [e for e in self.published if e.event_type == event_type]
