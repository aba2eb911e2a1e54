"""FastAPI CN code change-control endpoints.

GET  /v1/change-requests/{request_id}                   — get change request
GET  /v1/change-requests?entry_id=...                   — change requests for an entry
POST /v1/change-requests/{request_id}/impact-analysis   — run impact analysis
POST /v1/change-requests/{request_id}/approve           — approve (admin)
POST /v1/change-requests/{request_id}/reject            — reject and restore the old code

Change requests are opened by updating an entry's ``cn_code``.
"""

from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from src.api.dependencies import get_actor, get_change_control, unwrap
from src.lifecycle.change_control import ChangeControlWorkflow
from src.models.workflow import ChangeRequest

router = APIRouter(prefix="/v1/change-requests", tags=["change-requests"])


class ApproveChangeRequest(BaseModel):
    justification: str


class RejectChangeRequest(BaseModel):
    reason: str


@router.get("", response_model=list[ChangeRequest])
async def list_change_requests(
    entry_id: UUID,
    workflow: ChangeControlWorkflow = Depends(get_change_control),
) -> list[ChangeRequest]:
    return await workflow.list_for_entry(entry_id)


@router.get("/{request_id}", response_model=ChangeRequest)
async def get_change_request(
    request_id: UUID,
    workflow: ChangeControlWorkflow = Depends(get_change_control),
) -> ChangeRequest:
    return await workflow.get(request_id)


@router.post("/{request_id}/impact-analysis", response_model=ChangeRequest)
async def analyze_impact(
    request_id: UUID,
    actor: str = Depends(get_actor),
    workflow: ChangeControlWorkflow = Depends(get_change_control),
) -> ChangeRequest:
    return unwrap(await workflow.analyze_impact(request_id, actor))


@router.post("/{request_id}/approve", response_model=ChangeRequest)
async def approve_change_request(
    request_id: UUID,
    body: ApproveChangeRequest,
    actor: str = Depends(get_actor),
    workflow: ChangeControlWorkflow = Depends(get_change_control),
) -> ChangeRequest:
    return unwrap(await workflow.approve(request_id, body.justification, actor))


@router.post("/{request_id}/reject", response_model=ChangeRequest)
async def reject_change_request(
    request_id: UUID,
    body: RejectChangeRequest,
    actor: str = Depends(get_actor),
    workflow: ChangeControlWorkflow = Depends(get_change_control),
) -> ChangeRequest:
    return unwrap(await workflow.reject(request_id, body.reason, actor))
