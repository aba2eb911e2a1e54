"""FastAPI entry endpoints.

POST   /v1/entries                          — create entry
GET    /v1/entries                          — list entries
GET    /v1/entries/{entry_id}               — get entry
PATCH  /v1/entries/{entry_id}               — update fields (CN change opens a change request)
DELETE /v1/entries/{entry_id}               — delete entry
POST   /v1/entries/{entry_id}/calculate     — calculate under the active regulatory version
GET    /v1/entries/{entry_id}/history       — calculation snapshots, oldest first
POST   /v1/entries/{entry_id}/references    — link an external reference
"""

from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel

from src.api.dependencies import get_actor, get_entry_manager, unwrap
from src.lifecycle.entry_manager import EntryLifecycleManager
from src.models.entry import Entry, EntryDraft
from src.models.workflow import CalculationSnapshot

router = APIRouter(prefix="/v1/entries", tags=["entries"])


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class UpdateEntryRequest(BaseModel):
    changes: dict[str, Any]
    expected_revision: int | None = None


class LinkReferenceRequest(BaseModel):
    kind: str
    reference_id: str


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.post("", response_model=Entry, status_code=201)
async def create_entry(
    body: EntryDraft,
    actor: str = Depends(get_actor),
    manager: EntryLifecycleManager = Depends(get_entry_manager),
) -> Entry:
    return await manager.create(body, actor)


@router.get("", response_model=list[Entry])
async def list_entries(
    manager: EntryLifecycleManager = Depends(get_entry_manager),
) -> list[Entry]:
    return await manager.list_entries()


@router.get("/{entry_id}", response_model=Entry)
async def get_entry(
    entry_id: UUID,
    manager: EntryLifecycleManager = Depends(get_entry_manager),
) -> Entry:
    return await manager.get(entry_id)


@router.patch("/{entry_id}", response_model=Entry)
async def update_entry(
    entry_id: UUID,
    body: UpdateEntryRequest,
    actor: str = Depends(get_actor),
    manager: EntryLifecycleManager = Depends(get_entry_manager),
) -> Entry:
    return unwrap(await manager.update(
        entry_id, body.changes, actor, expected_revision=body.expected_revision,
    ))


@router.delete("/{entry_id}", status_code=204)
async def delete_entry(
    entry_id: UUID,
    actor: str = Depends(get_actor),
    manager: EntryLifecycleManager = Depends(get_entry_manager),
) -> Response:
    unwrap(await manager.delete(entry_id, actor))
    return Response(status_code=204)


@router.post("/{entry_id}/calculate", response_model=Entry)
async def calculate_entry(
    entry_id: UUID,
    include_precursors: bool = True,
    actor: str = Depends(get_actor),
    manager: EntryLifecycleManager = Depends(get_entry_manager),
) -> Entry:
    return unwrap(await manager.calculate(entry_id, actor, include_precursors=include_precursors))


@router.get("/{entry_id}/history", response_model=list[CalculationSnapshot])
async def calculation_history(
    entry_id: UUID,
    manager: EntryLifecycleManager = Depends(get_entry_manager),
) -> list[CalculationSnapshot]:
    return await manager.calculation_history(entry_id)


@router.post("/{entry_id}/references", response_model=Entry)
async def link_reference(
    entry_id: UUID,
    body: LinkReferenceRequest,
    actor: str = Depends(get_actor),
    manager: EntryLifecycleManager = Depends(get_entry_manager),
) -> Entry:
    return unwrap(await manager.link_reference(entry_id, body.kind, body.reference_id, actor))
