"""FastAPI quarterly report endpoints.

POST /v1/reports                          — generate a draft report for a quarter
GET  /v1/reports                          — list reports
GET  /v1/reports/readiness?year=&quarter= — pre-generation readiness
GET  /v1/reports/{report_id}              — get report
POST /v1/reports/{report_id}/submit       — submit (terminal)
GET  /v1/reports/{report_id}/export       — structured export document
"""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from src.api.dependencies import get_actor, get_lifecycle_context, get_report_aggregator, unwrap
from src.lifecycle.context import LifecycleContext
from src.models.report import Declarant, Report, ReportDocument, ReportingPeriod, ReportReadiness
from src.reporting.aggregator import ReportAggregator
from src.reporting.export import export_document

router = APIRouter(prefix="/v1/reports", tags=["reports"])


class GenerateReportRequest(BaseModel):
    reporting_period: str = Field(..., examples=["Q1-2026"])
    declarant: Declarant = Field(default_factory=Declarant)


@router.post("", response_model=Report, status_code=201)
async def generate_report(
    body: GenerateReportRequest,
    actor: str = Depends(get_actor),
    aggregator: ReportAggregator = Depends(get_report_aggregator),
) -> Report:
    try:
        period = ReportingPeriod.parse(body.reporting_period)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return unwrap(await aggregator.generate_report(period, body.declarant, actor))


@router.get("", response_model=list[Report])
async def list_reports(
    aggregator: ReportAggregator = Depends(get_report_aggregator),
) -> list[Report]:
    return await aggregator.list_reports()


@router.get("/readiness", response_model=ReportReadiness)
async def report_readiness(
    year: int = Query(..., ge=2023, le=2100),
    quarter: int = Query(..., ge=1, le=4),
    aggregator: ReportAggregator = Depends(get_report_aggregator),
) -> ReportReadiness:
    return await aggregator.readiness(year, quarter)


@router.get("/{report_id}", response_model=Report)
async def get_report(
    report_id: UUID,
    aggregator: ReportAggregator = Depends(get_report_aggregator),
) -> Report:
    return await aggregator.get(report_id)


@router.post("/{report_id}/submit", response_model=Report)
async def submit_report(
    report_id: UUID,
    actor: str = Depends(get_actor),
    aggregator: ReportAggregator = Depends(get_report_aggregator),
) -> Report:
    return unwrap(await aggregator.submit_report(report_id, actor))


@router.get("/{report_id}/export", response_model=ReportDocument)
async def export_report(
    report_id: UUID,
    ctx: LifecycleContext = Depends(get_lifecycle_context),
) -> ReportDocument:
    return await export_document(ctx, report_id)
