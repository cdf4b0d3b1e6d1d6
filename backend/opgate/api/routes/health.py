"""Health & Readiness Checks — liveness and readiness endpoints for container orchestration.

Invariants:
    - GET and POST on the health path always answer {"status": "OK"} (no audit record)
    - GET {health path}/ready returns 503 only when a configured database is unreachable

Design Decisions:
    - Router built by a factory: the health path comes from settings
    - Separate liveness/readiness: liveness restarts, readiness removes from load balancer
"""

import logging

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from opgate.core.envelopes import ok_envelope
from opgate.infrastructure import database

logger = logging.getLogger(__name__)


async def health_check():
    """Basic liveness check. Returns 200 if the process is up."""
    return ok_envelope()


async def readiness_check():
    """Readiness check — includes database connectivity when persistence is on."""
    if database.db_manager is None:
        return {"status": "OK", "checks": {"database": "disabled"}}
    if not await database.db_manager.health_check():
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "ERROR",
                "checks": {"database": "unavailable"},
            },
        )
    return {"status": "OK", "checks": {"database": "healthy"}}


def build_health_router(path: str) -> APIRouter:
    router = APIRouter(tags=["health"])
    router.add_api_route(
        path, health_check, methods=["GET", "POST"], status_code=status.HTTP_200_OK,
    )
    router.add_api_route(f"{path.rstrip('/')}/ready", readiness_check, methods=["GET"])
    return router
