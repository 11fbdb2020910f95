"""Health check endpoints."""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Response, status
from pydantic import BaseModel
from sqlalchemy import func, select, text
from sqlalchemy.exc import SQLAlchemyError

from workorder_payroll import __version__
from workorder_payroll.api.dependencies import DbSession, ServicesDep
from workorder_payroll.models import DeductionType, PayCalculation

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    timestamp: datetime
    database: str


class ReadinessResponse(BaseModel):
    """Readiness check response."""

    status: str
    schema_ready: bool
    approval_handlers: int


@router.get("/health", response_model=HealthResponse)
async def health_check(db: DbSession) -> HealthResponse:
    """Report API version and database reachability."""
    try:
        await db.execute(text("SELECT 1"))
        database = "healthy"
    except (SQLAlchemyError, OSError):
        logger.warning("Database health check failed", exc_info=True)
        database = "unhealthy"

    return HealthResponse(
        status="healthy" if database == "healthy" else "degraded",
        version=__version__,
        timestamp=datetime.now(timezone.utc),
        database=database,
    )


@router.get(
    "/ready",
    response_model=ReadinessResponse,
    responses={503: {"model": ReadinessResponse}},
)
async def readiness_check(
    db: DbSession,
    services: ServicesDep,
    response: Response,
) -> ReadinessResponse:
    """Ready once the payroll tables exist and approvals reach the ledger."""
    try:
        await db.scalar(select(func.count()).select_from(DeductionType))
        await db.scalar(select(func.count()).select_from(PayCalculation))
        schema_ready = True
    except SQLAlchemyError:
        logger.warning("Payroll schema not available", exc_info=True)
        schema_ready = False

    handlers = services.emitter.handler_count("WorkOrderApproved")
    ready = schema_ready and handlers > 0
    if not ready:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return ReadinessResponse(
        status="ready" if ready else "not_ready",
        schema_ready=schema_ready,
        approval_handlers=handlers,
    )


@router.get("/live")
async def liveness_check() -> dict[str, str]:
    """Liveness check for container orchestration."""
    return {"status": "alive"}
