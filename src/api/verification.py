"""FastAPI third-party verification endpoints.

POST /v1/entries/{entry_id}/verification/assign          — assign an accredited verifier
POST /v1/entries/{entry_id}/verification/satisfactory    — satisfactory opinion
POST /v1/entries/{entry_id}/verification/unsatisfactory  — unsatisfactory opinion
POST /v1/entries/{entry_id}/verification/correction      — request correction
POST /v1/entries/{entry_id}/verification/reassign        — reassign after correction
GET  /v1/entries/{entry_id}/verification/history         — verification actions, newest first
GET  /v1/entries/{entry_id}/verification/readiness       — ready for verification?
"""

from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from src.api.dependencies import get_actor, get_verification, unwrap
from src.lifecycle.verification import (
    VerificationHistory,
    VerificationReadiness,
    VerificationStateMachine,
)
from src.models.entry import Entry

router = APIRouter(prefix="/v1/entries/{entry_id}/verification", tags=["verification"])


class AssignVerifierRequest(BaseModel):
    verifier_id: UUID


class SatisfactoryOpinionRequest(BaseModel):
    verifier_id: UUID
    evidence_refs: list[str]
    report_id: str
    notes: str = ""


class UnsatisfactoryOpinionRequest(BaseModel):
    verifier_id: UUID
    findings: list[str]
    evidence_refs: list[str] = Field(default_factory=list)
    report_id: str | None = None
    notes: str = ""


class CorrectionRequest(BaseModel):
    verifier_id: UUID
    actions: list[str]


@router.post("/assign", response_model=Entry)
async def assign_verifier(
    entry_id: UUID,
    body: AssignVerifierRequest,
    actor: str = Depends(get_actor),
    machine: VerificationStateMachine = Depends(get_verification),
) -> Entry:
    return unwrap(await machine.assign_verifier(entry_id, body.verifier_id, actor))


@router.post("/satisfactory", response_model=Entry)
async def submit_satisfactory_opinion(
    entry_id: UUID,
    body: SatisfactoryOpinionRequest,
    actor: str = Depends(get_actor),
    machine: VerificationStateMachine = Depends(get_verification),
) -> Entry:
    return unwrap(await machine.submit_satisfactory_opinion(
        entry_id, body.verifier_id, body.evidence_refs, body.report_id, actor, notes=body.notes,
    ))


@router.post("/unsatisfactory", response_model=Entry)
async def submit_unsatisfactory_opinion(
    entry_id: UUID,
    body: UnsatisfactoryOpinionRequest,
    actor: str = Depends(get_actor),
    machine: VerificationStateMachine = Depends(get_verification),
) -> Entry:
    return unwrap(await machine.submit_unsatisfactory_opinion(
        entry_id, body.verifier_id, body.findings, actor,
        evidence_refs=body.evidence_refs, report_id=body.report_id, notes=body.notes,
    ))


@router.post("/correction", response_model=Entry)
async def request_correction(
    entry_id: UUID,
    body: CorrectionRequest,
    actor: str = Depends(get_actor),
    machine: VerificationStateMachine = Depends(get_verification),
) -> Entry:
    return unwrap(await machine.request_correction(entry_id, body.verifier_id, body.actions, actor))


@router.post("/reassign", response_model=Entry)
async def reassign_after_correction(
    entry_id: UUID,
    body: AssignVerifierRequest,
    actor: str = Depends(get_actor),
    machine: VerificationStateMachine = Depends(get_verification),
) -> Entry:
    return unwrap(await machine.reassign_after_correction(entry_id, body.verifier_id, actor))


@router.get("/history", response_model=VerificationHistory)
async def verification_history(
    entry_id: UUID,
    machine: VerificationStateMachine = Depends(get_verification),
) -> VerificationHistory:
    return await machine.history(entry_id)


@router.get("/readiness", response_model=VerificationReadiness)
async def verification_readiness(
    entry_id: UUID,
    machine: VerificationStateMachine = Depends(get_verification),
) -> VerificationReadiness:
    return await machine.readiness(entry_id)
