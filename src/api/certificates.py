"""FastAPI certificate endpoints.

POST /v1/certificates/purchase                — buy a lot (explicit confirmation)
POST /v1/certificates/surrender               — FIFO surrender for a submitted report
POST /v1/certificates/expire                  — expire past-validity lots
GET  /v1/certificates                         — list lots
GET  /v1/certificates/holdings                — quantities by status
GET  /v1/certificates/obligations/{report_id} — surrender position for a report
"""

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from src.api.dependencies import get_actor, get_certificate_ledger, unwrap
from src.certificates.ledger import CertificateLedger
from src.models.certificate import Certificate, Holdings, Obligation, SurrenderResult

router = APIRouter(prefix="/v1/certificates", tags=["certificates"])


class PurchaseRequest(BaseModel):
    quantity: int
    price_per_unit: float
    explicit_confirmation: bool = False


class SurrenderRequest(BaseModel):
    report_id: UUID
    explicit_confirmation: bool = False


class ExpireRequest(BaseModel):
    as_of: date | None = None


@router.post("/purchase", response_model=Certificate, status_code=201)
async def purchase_certificates(
    body: PurchaseRequest,
    actor: str = Depends(get_actor),
    ledger: CertificateLedger = Depends(get_certificate_ledger),
) -> Certificate:
    return unwrap(await ledger.purchase(
        body.quantity, body.price_per_unit, body.explicit_confirmation, actor,
    ))


@router.post("/surrender", response_model=SurrenderResult)
async def surrender_certificates(
    body: SurrenderRequest,
    actor: str = Depends(get_actor),
    ledger: CertificateLedger = Depends(get_certificate_ledger),
) -> SurrenderResult:
    return unwrap(await ledger.surrender(body.report_id, body.explicit_confirmation, actor))


@router.post("/expire", response_model=list[Certificate])
async def expire_certificates(
    body: ExpireRequest,
    actor: str = Depends(get_actor),
    ledger: CertificateLedger = Depends(get_certificate_ledger),
) -> list[Certificate]:
    return await ledger.expire_certificates(body.as_of, actor)


@router.get("", response_model=list[Certificate])
async def list_certificates(
    ledger: CertificateLedger = Depends(get_certificate_ledger),
) -> list[Certificate]:
    return await ledger.list_certificates()


@router.get("/holdings", response_model=Holdings)
async def holdings(
    ledger: CertificateLedger = Depends(get_certificate_ledger),
) -> Holdings:
    return await ledger.holdings()


@router.get("/obligations/{report_id}", response_model=Obligation)
async def obligation(
    report_id: UUID,
    ledger: CertificateLedger = Depends(get_certificate_ledger),
) -> Obligation:
    return await ledger.obligation(report_id)
