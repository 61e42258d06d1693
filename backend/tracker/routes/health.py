"""
Request Tracker: Health Check Route
====================================

What:  Liveness/readiness probe reporting whether event delivery is enabled.
How:   Reads the Dispatcher from app.state; performs no network calls, so a
       collector outage never turns the probe red.
Who:   Called by container health checks and load balancers.
"""

import logging
import time

from fastapi import APIRouter, Request

from tracker import __version__
from tracker.schemas.health import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
)
async def health_check(request: Request) -> HealthResponse:
    dispatcher = getattr(request.app.state, "dispatcher", None)
    enabled = bool(dispatcher is not None and dispatcher.enabled)

    return HealthResponse(
        status="healthy",
        version=__version__,
        tracking="enabled" if enabled else "disabled",
        pending_deliveries=dispatcher.pending if dispatcher is not None else 0,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
