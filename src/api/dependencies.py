"""FastAPI dependency injection factories for lifecycle services.

One LifecycleContext is built per request from the request's
AsyncSession, so every service resolved for that request shares the
same unit of work. API endpoints use these via Depends().
"""

from typing import TypeVar

from fastapi import Depends, Header, HTTPException
from fastapi.encoders import jsonable_encoder
from sqlalchemy.ext.asyncio import AsyncSession

from src.certificates.ledger import CertificateLedger
from src.config.settings import Settings, get_settings
from src.db.session import get_async_session
from src.governance.events import EventNotifier, InProcessEventBus
from src.lifecycle.change_control import ChangeControlWorkflow
from src.lifecycle.context import LifecycleContext, build_context
from src.lifecycle.entry_manager import EntryLifecycleManager
from src.lifecycle.recalculation import RecalculationController
from src.lifecycle.regulatory_registry import RegulatoryVersionRegistry
from src.lifecycle.verification import VerificationStateMachine
from src.models.outcome import Outcome
from src.reporting.aggregator import ReportAggregator
from src.validation.service import ValidationService

T = TypeVar("T")

# Process-wide bus so handlers subscribed at startup see every request.
_event_bus = InProcessEventBus()


def get_event_bus() -> EventNotifier:
    return _event_bus


async def get_lifecycle_context(
    session: AsyncSession = Depends(get_async_session),
    settings: Settings = Depends(get_settings),
    events: EventNotifier = Depends(get_event_bus),
) -> LifecycleContext:
    return build_context(session, settings, events=events)


def get_actor(x_actor: str = Header(..., min_length=1)) -> str:
    """Acting user, from the ``X-Actor`` header."""
    return x_actor.strip()


def unwrap(outcome: Outcome[T]) -> T:
    """Return the value, or raise 422 carrying the serialized rejection."""
    if outcome.rejection is not None:
        raise HTTPException(status_code=422, detail=jsonable_encoder(outcome.rejection.to_dict()))
    return outcome.value


# ---------------------------------------------------------------------------
# Lifecycle services
# ---------------------------------------------------------------------------


async def get_entry_manager(
    ctx: LifecycleContext = Depends(get_lifecycle_context),
) -> EntryLifecycleManager:
    return EntryLifecycleManager(ctx)


async def get_validation_service(
    ctx: LifecycleContext = Depends(get_lifecycle_context),
) -> ValidationService:
    return ValidationService(ctx)


async def get_verification(
    ctx: LifecycleContext = Depends(get_lifecycle_context),
) -> VerificationStateMachine:
    return VerificationStateMachine(ctx)


async def get_change_control(
    ctx: LifecycleContext = Depends(get_lifecycle_context),
) -> ChangeControlWorkflow:
    return ChangeControlWorkflow(ctx)


async def get_recalculation(
    ctx: LifecycleContext = Depends(get_lifecycle_context),
) -> RecalculationController:
    return RecalculationController(ctx)


async def get_regulatory_registry(
    ctx: LifecycleContext = Depends(get_lifecycle_context),
) -> RegulatoryVersionRegistry:
    return RegulatoryVersionRegistry(ctx)


# ---------------------------------------------------------------------------
# Reporting / certificates
# ---------------------------------------------------------------------------


async def get_report_aggregator(
    ctx: LifecycleContext = Depends(get_lifecycle_context),
) -> ReportAggregator:
    return ReportAggregator(ctx)


async def get_certificate_ledger(
    ctx: LifecycleContext = Depends(get_lifecycle_context),
) -> CertificateLedger:
    return CertificateLedger(ctx)
