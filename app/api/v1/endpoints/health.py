"""Health check endpoints."""

from fastapi import APIRouter
from pydantic import BaseModel

from app.config import settings
from app.database import check_database_connection

router = APIRouter(tags=["Health"])


class HealthResponse(BaseModel):
    """Service identity and overall status."""

    status: str
    version: str
    environment: str


class DetailedHealthResponse(HealthResponse):
    """Health check including the store and provider configuration."""

    database: str
    providers: dict[str, bool]


def _health(status: str) -> dict[str, str]:
    return {"status": status, "version": settings.app_version, "environment": settings.environment}


@router.get("/health", response_model=HealthResponse, summary="Basic health check")
async def health_check() -> HealthResponse:
    """Report that the process is up."""
    return HealthResponse(**_health("healthy"))


@router.get(
    "/health/detailed",
    response_model=DetailedHealthResponse,
    summary="Detailed health check",
)
async def detailed_health_check() -> DetailedHealthResponse:
    """
    Report database reachability and which external providers have credentials.

    Missing provider credentials do not make the service unhealthy; payments
    through that provider fail with a configuration error instead.
    """
    db_healthy = await check_database_connection()

    return DetailedHealthResponse(
        **_health("healthy" if db_healthy else "degraded"),
        database="healthy" if db_healthy else "unhealthy",
        providers=settings.provider_configuration,
    )


@router.get("/ping", summary="Simple ping")
async def ping() -> dict[str, str]:
    """Liveness probe."""
    return {"message": "pong"}
