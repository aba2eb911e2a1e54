"""FastAPI application entry point for the CBAM lifecycle engine.

Domain exceptions map onto HTTP statuses here; business-rule rejections
are turned into 422 responses by the routers.
"""

import logging

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from src.api.audit import router as audit_router
from src.api.certificates import router as certificates_router
from src.api.change_requests import router as change_requests_router
from src.api.entries import router as entries_router
from src.api.recalculations import router as recalculations_router
from src.api.regulatory import router as regulatory_router
from src.api.reports import router as reports_router
from src.api.validation import router as validation_router
from src.api.verification import router as verification_router
from src.config.settings import get_settings
from src.models.errors import (
    AuditWriteFailure,
    AuthorizationDenied,
    CalculationRejected,
    ConcurrencyConflict,
    NotFound,
    UpstreamFailure,
)

APP_VERSION = "0.1.0"

settings = get_settings()

_LOG_NAME_TO_LEVEL: dict[str, int] = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

# --- Structured logging ---
structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer() if settings.ENVIRONMENT == "dev"
        else structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(
        _LOG_NAME_TO_LEVEL[settings.LOG_LEVEL.value],
    ),
    context_class=dict,
    logger_factory=structlog.PrintLoggerFactory(),
    cache_logger_on_first_use=True,
)
logging.basicConfig(level=_LOG_NAME_TO_LEVEL[settings.LOG_LEVEL.value])

logger: structlog.stdlib.BoundLogger = structlog.get_logger()

# --- FastAPI app ---
app = FastAPI(
    title="CBAM Lifecycle API",
    description="Carbon Border Adjustment Mechanism compliance lifecycle engine.",
    version=APP_VERSION,
)

# --- CORS middleware ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.ENVIRONMENT == "dev" else [],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Exception mapping ---


@app.exception_handler(NotFound)
async def not_found_handler(request: Request, exc: NotFound) -> JSONResponse:
    return JSONResponse(status_code=404, content={
        "detail": str(exc), "entity_type": exc.entity_type, "entity_id": str(exc.entity_id),
    })


@app.exception_handler(AuthorizationDenied)
async def authorization_denied_handler(request: Request, exc: AuthorizationDenied) -> JSONResponse:
    logger.warning("authorization_denied", actor=exc.actor, capability=exc.capability)
    return JSONResponse(status_code=403, content={
        "detail": str(exc), "actor": exc.actor, "capability": exc.capability,
    })


@app.exception_handler(ConcurrencyConflict)
async def concurrency_conflict_handler(request: Request, exc: ConcurrencyConflict) -> JSONResponse:
    return JSONResponse(status_code=409, content={"detail": str(exc), "retryable": True})


@app.exception_handler(UpstreamFailure)
async def upstream_failure_handler(request: Request, exc: UpstreamFailure) -> JSONResponse:
    logger.warning("calculation_upstream_failure", error=str(exc), timed_out=exc.timed_out)
    return JSONResponse(
        status_code=504 if exc.timed_out else 502,
        content={"detail": str(exc), "retryable": exc.retryable},
    )


@app.exception_handler(CalculationRejected)
async def calculation_rejected_handler(request: Request, exc: CalculationRejected) -> JSONResponse:
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(AuditWriteFailure)
async def audit_write_failure_handler(request: Request, exc: AuditWriteFailure) -> JSONResponse:
    logger.error("audit_write_failure", error=str(exc))
    return JSONResponse(status_code=500, content={"detail": str(exc), "retryable": False})


# --- Routers ---
app.include_router(entries_router)
app.include_router(validation_router)
app.include_router(verification_router)
app.include_router(change_requests_router)
app.include_router(recalculations_router)
app.include_router(regulatory_router)
app.include_router(reports_router)
app.include_router(certificates_router)
app.include_router(audit_router)


# --- Infrastructure Endpoints ---


@app.get("/health")
async def health_check() -> dict:
    """Liveness probe with component health checks.

    Returns 200 always (degraded status if components are down).
    """
    checks: dict[str, bool] = {"api": True}

    try:
        from src.db.session import async_session_factory
        async with async_session_factory() as session:
            await session.execute(text("SELECT 1"))
        checks["database"] = True
    except (SQLAlchemyError, OSError):
        checks["database"] = False

    all_ok = all(checks.values())

    return {
        "status": "ok" if all_ok else "degraded",
        "version": APP_VERSION,
        "environment": settings.ENVIRONMENT.value,
        "checks": checks,
    }


@app.get("/api/version")
async def get_version() -> dict[str, str]:
    """Return application name, version, and environment."""
    return {
        "name": "CBAM Lifecycle Engine",
        "version": APP_VERSION,
        "environment": settings.ENVIRONMENT.value,
    }
