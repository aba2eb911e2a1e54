"""FastAPI audit trail and verifier reference-data endpoints.

GET  /v1/audit/{entity_type}/{entity_id} — chronological audit trail
POST /v1/verifiers                       — register a verifier
GET  /v1/verifiers                       — list verifiers
"""

from uuid import UUID

from fastapi import APIRouter, Depends

from src.api.dependencies import get_lifecycle_context
from src.lifecycle.context import LifecycleContext
from src.models.audit import AuditLogEntry, Verifier
from src.models.common import EntityType

router = APIRouter(prefix="/v1", tags=["audit"])


@router.get("/audit/{entity_type}/{entity_id}", response_model=list[AuditLogEntry])
async def audit_trail(
    entity_type: EntityType,
    entity_id: UUID,
    ctx: LifecycleContext = Depends(get_lifecycle_context),
) -> list[AuditLogEntry]:
    return await ctx.audit.get_trail(entity_type, entity_id)


@router.post("/verifiers", response_model=Verifier, status_code=201)
async def register_verifier(
    body: Verifier,
    ctx: LifecycleContext = Depends(get_lifecycle_context),
) -> Verifier:
    return await ctx.ledger.verifiers.create(body)


@router.get("/verifiers", response_model=list[Verifier])
async def list_verifiers(
    ctx: LifecycleContext = Depends(get_lifecycle_context),
) -> list[Verifier]:
    return await ctx.ledger.verifiers.list_all()
