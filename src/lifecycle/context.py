"""Collaborators shared by every lifecycle service.

One LifecycleContext is built per unit of work (one request or one
batch call) so that all services in a call chain share the same session.
"""

from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from src.config.settings import Settings
from src.engine.calculation import (
    BenchmarkCalculator,
    CalculationFunction,
    CalculationGateway,
    HttpCalculationFunction,
)
from src.governance.audit_trail import AuditTrailRecorder
from src.governance.authorization import Authorizer, StaticAdminAuthorizer
from src.governance.events import DomainEvent, EventNotifier, EventType, InProcessEventBus, PublishReceipt
from src.models.common import Clock, utc_now
from src.repositories.ledger import Ledger


@dataclass
class LifecycleContext:
    ledger: Ledger
    audit: AuditTrailRecorder
    events: EventNotifier
    authorizer: Authorizer
    gateway: CalculationGateway
    settings: Settings
    clock: Clock = field(default=utc_now)

    async def publish(
        self, event_type: EventType, entity_id: UUID, actor: str, **payload: Any,
    ) -> PublishReceipt:
        return await self.events.publish(DomainEvent(
            event_type=event_type,
            entity_id=entity_id,
            actor=actor,
            payload=payload,
            occurred_at=self.clock(),
        ))


def default_calculation_function(settings: Settings) -> CalculationFunction:
    """Remote service when CALCULATION_SERVICE_URL is set, else the benchmark calculator."""
    if settings.CALCULATION_SERVICE_URL:
        return HttpCalculationFunction(settings.CALCULATION_SERVICE_URL)
    return BenchmarkCalculator()


def build_context(
    session: AsyncSession,
    settings: Settings,
    *,
    events: EventNotifier | None = None,
    authorizer: Authorizer | None = None,
    calculation_function: CalculationFunction | None = None,
    clock: Clock = utc_now,
) -> LifecycleContext:
    ledger = Ledger(session)
    return LifecycleContext(
        ledger=ledger,
        audit=AuditTrailRecorder(ledger, mode=settings.AUDIT_MODE, clock=clock),
        events=events if events is not None else InProcessEventBus(),
        authorizer=authorizer if authorizer is not None else StaticAdminAuthorizer(settings.ADMIN_ACTORS),
        gateway=CalculationGateway(
            calculation_function or default_calculation_function(settings),
            timeout_seconds=settings.CALCULATION_TIMEOUT_SECONDS,
        ),
        settings=settings,
        clock=clock,
    )
