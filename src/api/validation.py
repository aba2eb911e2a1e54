"""FastAPI validation endpoints.

POST /v1/validation/entries/{entry_id} — validate one entry
POST /v1/validation/batch              — validate many entries
POST /v1/validation/readiness          — are the given entries ready to report?
"""

from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from src.api.dependencies import get_actor, get_validation_service, unwrap
from src.models.common import ValidationStatus
from src.models.entry import ValidationIssue
from src.validation.service import BatchValidationSummary, ValidationReadiness, ValidationService

router = APIRouter(prefix="/v1/validation", tags=["validation"])


class ValidateEntryRequest(BaseModel):
    benchmark: float | None = None


class ValidateEntryResponse(BaseModel):
    entry_id: UUID
    status: ValidationStatus
    compliance_score: float
    rules_applied: list[str]
    blocking_issues: list[ValidationIssue]
    warnings: list[ValidationIssue]


class EntryIdsRequest(BaseModel):
    entry_ids: list[UUID]


@router.post("/entries/{entry_id}", response_model=ValidateEntryResponse)
async def validate_entry(
    entry_id: UUID,
    body: ValidateEntryRequest | None = None,
    actor: str = Depends(get_actor),
    service: ValidationService = Depends(get_validation_service),
) -> ValidateEntryResponse:
    benchmark = body.benchmark if body is not None else None
    entry, outcome = unwrap(await service.validate_entry(entry_id, actor, benchmark=benchmark))
    return ValidateEntryResponse(
        entry_id=entry.entry_id,
        status=outcome.status,
        compliance_score=outcome.compliance_score,
        rules_applied=outcome.rules_applied,
        blocking_issues=outcome.blocking_issues,
        warnings=outcome.warnings,
    )


@router.post("/batch", response_model=BatchValidationSummary)
async def batch_validate(
    body: EntryIdsRequest,
    actor: str = Depends(get_actor),
    service: ValidationService = Depends(get_validation_service),
) -> BatchValidationSummary:
    return await service.batch_validate(body.entry_ids, actor)


@router.post("/readiness", response_model=ValidationReadiness)
async def validation_readiness(
    body: EntryIdsRequest,
    service: ValidationService = Depends(get_validation_service),
) -> ValidationReadiness:
    return await service.report_readiness(body.entry_ids)
