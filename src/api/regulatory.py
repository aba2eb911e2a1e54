"""FastAPI regulatory version endpoints.

GET  /v1/regulatory-versions                           — list versions
GET  /v1/regulatory-versions/current                   — active version (or built-in fallback)
GET  /v1/regulatory-versions/current/parameters?year=  — resolved parameters for a year
POST /v1/regulatory-versions                           — register a pending version (admin)
POST /v1/regulatory-versions/{version_id}/activate     — activate (admin)
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Query

from src.api.dependencies import get_actor, get_regulatory_registry, unwrap
from src.lifecycle.regulatory_registry import RegulatoryVersionRegistry
from src.models.regulatory import RegulatoryParameters, RegulatoryVersion, RegulatoryVersionDraft

router = APIRouter(prefix="/v1/regulatory-versions", tags=["regulatory"])


@router.get("", response_model=list[RegulatoryVersion])
async def list_versions(
    registry: RegulatoryVersionRegistry = Depends(get_regulatory_registry),
) -> list[RegulatoryVersion]:
    return await registry.list_versions()


@router.get("/current", response_model=RegulatoryVersion)
async def current_version(
    registry: RegulatoryVersionRegistry = Depends(get_regulatory_registry),
) -> RegulatoryVersion:
    return await registry.get_current_version()


@router.get("/current/parameters", response_model=RegulatoryParameters)
async def current_parameters(
    year: int = Query(..., ge=2026, le=2100),
    registry: RegulatoryVersionRegistry = Depends(get_regulatory_registry),
) -> RegulatoryParameters:
    return await registry.current_parameters(year)


@router.get("/{version_id}", response_model=RegulatoryVersion)
async def get_version(
    version_id: UUID,
    registry: RegulatoryVersionRegistry = Depends(get_regulatory_registry),
) -> RegulatoryVersion:
    return await registry.get(version_id)


@router.post("", response_model=RegulatoryVersion, status_code=201)
async def register_version(
    body: RegulatoryVersionDraft,
    actor: str = Depends(get_actor),
    registry: RegulatoryVersionRegistry = Depends(get_regulatory_registry),
) -> RegulatoryVersion:
    return unwrap(await registry.register_new_version(body, actor))


@router.post("/{version_id}/activate", response_model=RegulatoryVersion)
async def activate_version(
    version_id: UUID,
    actor: str = Depends(get_actor),
    registry: RegulatoryVersionRegistry = Depends(get_regulatory_registry),
) -> RegulatoryVersion:
    return unwrap(await registry.activate_version(version_id, actor))
