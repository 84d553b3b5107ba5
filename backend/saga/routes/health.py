"""
Heimursaga API — Health Check Route
=====================================

What:  Liveness/readiness check for Docker and load balancers.
How:   Runs `SELECT 1` against the database.
           healthy     database reachable       HTTP 200
           degraded    database unreachable     HTTP 503
"""

import logging
import time

from fastapi import APIRouter, Response

from saga import __version__
from saga.database import check_database_health, utcnow
from saga.schemas.common import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

# Set once when the module loads
_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
    responses={503: {"description": "Database unreachable", "model": HealthResponse}},
)
async def health_check(response: Response) -> HealthResponse:
    database_ok = await check_database_health()
    if not database_ok:
        logger.warning("Health check: database unreachable")
        response.status_code = 503

    return HealthResponse(
        status="healthy" if database_ok else "degraded",
        database="connected" if database_ok else "disconnected",
        version=__version__,
        uptime_seconds=round(time.time() - _start_time, 2),
        timestamp=utcnow(),
    )
