"""
Health check endpoints.

We provide two endpoints:
- /health: liveness, no dependencies touched
- /health/ready: configuration, database and Claude status

Readiness pings the database and checks configuration. A missing
Anthropic key only degrades the coaching routes, so it is reported but
does not make the service unready.
"""

import logging
from typing import Any

from fastapi import APIRouter, Response, status
from pydantic import BaseModel

from ... import __version__
from ..dependencies import DiveLogRepositoryDep, SettingsDep

logger = logging.getLogger(__name__)

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str
    details: dict[str, Any] = {}


class ReadinessCheck(BaseModel):
    """Outcome of one readiness check."""
    name: str
    status: str  # "ok", "degraded" or "error"
    error: str | None = None


class ReadinessResponse(BaseModel):
    """Overall readiness with every check listed."""
    status: str  # "ready" or "not_ready"
    version: str
    checks: list[ReadinessCheck]


@router.get(
    "",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Liveness",
    description="200 whenever the process is up.",
)
async def health_check(settings: SettingsDep) -> HealthResponse:
    return HealthResponse(
        status="ok",
        version=__version__,
        details={"mock_mode": {"snowflake": settings.snowflake_mock_mode}},
    )


@router.get(
    "/ready",
    response_model=ReadinessResponse,
    status_code=status.HTTP_200_OK,
    summary="Readiness",
    description="200 when configuration and the dive log database are usable.",
    responses={
        503: {
            "description": "Service not ready",
            "model": ReadinessResponse,
        }
    },
)
async def readiness_check(
    settings: SettingsDep,
    repository: DiveLogRepositoryDep,
    response: Response,
) -> ReadinessResponse:
    """
    Check configuration, the database and Claude.

    Returns 503 if the database or the storage configuration is unusable.
    """
    checks: list[ReadinessCheck] = []
    all_ok = True

    missing_fields = [
        f for f in settings.validate_required_fields() if f != "ANTHROPIC_API_KEY"
    ]
    if missing_fields:
        checks.append(ReadinessCheck(
            name="configuration",
            status="error",
            error=f"Missing required fields: {', '.join(missing_fields)}"
        ))
        all_ok = False
    else:
        checks.append(ReadinessCheck(name="configuration", status="ok"))

    try:
        repository.ping()
        checks.append(ReadinessCheck(
            name="database",
            status="ok",
            error="mock mode" if settings.snowflake_mock_mode else None,
        ))
    except Exception as e:
        logger.error("Dive log database ping failed", extra={"error": str(e)})
        checks.append(ReadinessCheck(name="database", status="error", error=str(e)))
        all_ok = False

    if settings.anthropic_api_key:
        checks.append(ReadinessCheck(name="anthropic", status="ok"))
    else:
        checks.append(ReadinessCheck(
            name="anthropic",
            status="degraded",
            error="API key not configured; coaching routes unavailable"
        ))

    if not all_ok:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        logger.warning(
            "Readiness check failed",
            extra={
                "checks": [
                    {"name": c.name, "status": c.status, "error": c.error}
                    for c in checks
                ]
            }
        )

    return ReadinessResponse(
        status="ready" if all_ok else "not_ready",
        version=__version__,
        checks=checks,
    )
