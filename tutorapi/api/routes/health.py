"""
Health Check Routes - System health and monitoring endpoints.

These endpoints are used for:
1. Load balancer health checks
2. Readiness checks (database reachable)
"""
from datetime import datetime

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from tutorapi.core.logging_config import get_logger
from tutorapi.database.connection import get_database
from tutorapi.models.common import HealthResponse

logger = get_logger(__name__)

router = APIRouter(
    prefix="/health",
    tags=["Health"],
)

APP_VERSION = "1.0.0"


@router.get(
    "",
    response_model=HealthResponse,
    summary="Health check endpoint",
)
def health_check() -> HealthResponse:
    """
    Perform a basic health check.

    Verifies that the API is running and responsive. It does not touch
    the database or the LLM providers.
    """
    logger.debug("Health check requested")

    return HealthResponse(
        status="healthy",
        version=APP_VERSION,
        timestamp=datetime.utcnow()
    )


@router.get(
    "/ready",
    response_model=HealthResponse,
    summary="Readiness check endpoint",
    responses={503: {"model": HealthResponse, "description": "Database unreachable"}},
)
def readiness_check():
    """Ready only when the database answers."""
    logger.debug("Readiness check requested")

    database_ok = get_database().check_connection()
    body = HealthResponse(
        status="ready" if database_ok else "not_ready",
        version=APP_VERSION,
        timestamp=datetime.utcnow(),
        database="ok" if database_ok else "unavailable",
    )

    if not database_ok:
        return JSONResponse(status_code=503, content=body.model_dump(mode="json"))
    return body
