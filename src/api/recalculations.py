"""FastAPI regulatory recalculation endpoints.

POST /v1/recalculations                         — request a batch recalculation
GET  /v1/recalculations                         — list requests
GET  /v1/recalculations/{request_id}            — get request
POST /v1/recalculations/{request_id}/approve    — approve (admin)
POST /v1/recalculations/{request_id}/reject     — reject (admin)
POST /v1/recalculations/{request_id}/execute    — execute an approved request
POST /v1/recalculations/preview                 — simulate without writing
"""

from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from src.api.dependencies import get_actor, get_recalculation, unwrap
from src.lifecycle.recalculation import RecalculationController
from src.models.workflow import RecalculationPreviewItem, RecalculationRequest

router = APIRouter(prefix="/v1/recalculations", tags=["recalculations"])


class CreateRecalculationRequest(BaseModel):
    entry_ids: list[UUID]
    target_version_id: UUID
    reason: str


class PreviewRequest(BaseModel):
    entry_ids: list[UUID]
    target_version_id: UUID


class RejectRecalculationRequest(BaseModel):
    reason: str


@router.post("", response_model=RecalculationRequest, status_code=201)
async def request_recalculation(
    body: CreateRecalculationRequest,
    actor: str = Depends(get_actor),
    controller: RecalculationController = Depends(get_recalculation),
) -> RecalculationRequest:
    return unwrap(await controller.request_recalculation(
        body.entry_ids, body.target_version_id, body.reason, actor,
    ))


@router.get("", response_model=list[RecalculationRequest])
async def list_recalculations(
    controller: RecalculationController = Depends(get_recalculation),
) -> list[RecalculationRequest]:
    return await controller.list_requests()


@router.post("/preview", response_model=list[RecalculationPreviewItem])
async def impact_preview(
    body: PreviewRequest,
    controller: RecalculationController = Depends(get_recalculation),
) -> list[RecalculationPreviewItem]:
    return unwrap(await controller.impact_preview(body.entry_ids, body.target_version_id))


@router.get("/{request_id}", response_model=RecalculationRequest)
async def read_recalculation(
    request_id: UUID,
    controller: RecalculationController = Depends(get_recalculation),
) -> RecalculationRequest:
    return await controller.get(request_id)


@router.post("/{request_id}/approve", response_model=RecalculationRequest)
async def approve_recalculation(
    request_id: UUID,
    actor: str = Depends(get_actor),
    controller: RecalculationController = Depends(get_recalculation),
) -> RecalculationRequest:
    return unwrap(await controller.approve(request_id, actor))


@router.post("/{request_id}/reject", response_model=RecalculationRequest)
async def reject_recalculation(
    request_id: UUID,
    body: RejectRecalculationRequest,
    actor: str = Depends(get_actor),
    controller: RecalculationController = Depends(get_recalculation),
) -> RecalculationRequest:
    return unwrap(await controller.reject(request_id, body.reason, actor))


@router.post("/{request_id}/execute", response_model=RecalculationRequest)
async def execute_recalculation(
    request_id: UUID,
    actor: str = Depends(get_actor),
    controller: RecalculationController = Depends(get_recalculation),
) -> RecalculationRequest:
    return unwrap(await controller.execute(request_id, actor))
