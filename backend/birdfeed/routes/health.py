"""
Bird Feed Backend — Health Check Route
=======================================

What:  GET /health for container health checks and load balancers.
How:   Runs SELECT 1 against the database and reads the Haikubox circuit
       breaker state (no outbound call).

Status levels:
    healthy     database up, Haikubox circuit closed        (200)
    degraded    database up, Haikubox circuit open/testing  (200)
    unhealthy   database unreachable                        (503)
"""

import logging
import time

from fastapi import APIRouter, Response
from sqlalchemy import text

from birdfeed import __version__, database
from birdfeed.schemas.common import HealthResponse
from birdfeed.services.haikubox_client import CircuitBreaker, haikubox_client

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()

_CIRCUIT_STATUS = {
    CircuitBreaker.CLOSED: "available",
    CircuitBreaker.HALF_OPEN: "recovering",
    CircuitBreaker.OPEN: "circuit_open",
}


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
)
async def health_check(response: Response) -> HealthResponse:
    db_status = "connected"
    overall = "healthy"

    try:
        async with database.async_session_factory() as session:
            await session.execute(text("SELECT 1"))
    except Exception as e:
        db_status = "disconnected"
        overall = "unhealthy"
        logger.warning("Health check: database unreachable: %s", str(e))

    haikubox_status = _CIRCUIT_STATUS.get(haikubox_client.circuit_breaker.state, "unknown")
    if haikubox_status != "available" and overall == "healthy":
        overall = "degraded"

    if overall == "unhealthy":
        response.status_code = 503

    return HealthResponse(
        status=overall,
        version=__version__,
        database=db_status,
        haikubox=haikubox_status,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
