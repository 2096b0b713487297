"""Health and readiness endpoints."""

from typing import Literal

from fastapi import APIRouter, Depends, Request, Response, status
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.common.request_id import get_request_id
from app.core.config import settings
from app.core.logging import get_logger
from app.core.redis_client import is_redis_available
from app.db.session import get_db

logger = get_logger(__name__)

router = APIRouter(tags=["Health"])

CheckStatus = Literal["ok", "degraded", "down"]


class HealthResponse(BaseModel):
    status: Literal["ok"] = "ok"


class ReadinessCheck(BaseModel):
    status: CheckStatus
    message: str | None = None


class ReadinessResponse(BaseModel):
    """Readiness check response."""

    status: CheckStatus
    checks: dict[str, ReadinessCheck]
    request_id: str


@router.get(
    "/health",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Health check",
    description="Liveness check. Returns 200 while the process is serving requests.",
)
async def health_check() -> HealthResponse:
    return HealthResponse()


@router.get(
    "/ready",
    response_model=ReadinessResponse,
    status_code=status.HTTP_200_OK,
    summary="Readiness check",
    description=(
        "Readiness check. Checks the database and, when enabled, Redis. "
        "Returns 503 when a required dependency is down."
    ),
)
def readiness_check(
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
) -> ReadinessResponse:
    """Readiness check endpoint - checks dependencies."""
    checks: dict[str, ReadinessCheck] = {}
    overall_status: CheckStatus = "ok"

    try:
        db.execute(text("SELECT 1"))
        checks["db"] = ReadinessCheck(status="ok")
    except SQLAlchemyError as e:
        logger.error("Readiness: database check failed", extra={"error": str(e)})
        checks["db"] = ReadinessCheck(status="down", message="Database unavailable")
        overall_status = "down"

    # Rate limits and MFA lockouts fail open without Redis
    if settings.REDIS_ENABLED:
        if is_redis_available():
            checks["redis"] = ReadinessCheck(status="ok")
        elif settings.REDIS_REQUIRED:
            checks["redis"] = ReadinessCheck(status="down", message="Redis unavailable")
            overall_status = "down"
        else:
            checks["redis"] = ReadinessCheck(status="degraded", message="Redis unavailable")
            if overall_status == "ok":
                overall_status = "degraded"
    else:
        checks["redis"] = ReadinessCheck(status="ok", message="Not enabled")

    checks["email"] = ReadinessCheck(status="ok", message=settings.EMAIL_BACKEND.lower())

    if overall_status == "down":
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return ReadinessResponse(
        status=overall_status,
        checks=checks,
        request_id=get_request_id(request),
    )
