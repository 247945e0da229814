"""
MCT API — Health Check Routes
===============================

What:  Liveness and readiness endpoints for monitoring and load balancers.

    GET /health        liveness: the process is up and serving requests.
                       Never touches the pools, so a slow database cannot
                       make the orchestrator restart a healthy worker.
    GET /health/ready  readiness: both pools answer a ping. 503 otherwise,
                       so the load balancer routes traffic elsewhere.
"""

from typing import Dict

from fastapi import APIRouter, Depends, Request

from mct_api.database import ResourcePools, get_pools
from mct_api.exceptions import AppError, ErrorCode
from mct_api.schemas.envelope import ApiResponse, envelope_response

router = APIRouter(tags=["Health"])


@router.get(
    "/health",
    response_model=ApiResponse[Dict[str, str]],
    summary="Service liveness check",
)
async def health_check(request: Request):
    service = request.app.state.settings.service_name
    return envelope_response(ApiResponse.ok({"status": "ok", "service": service}))


@router.get(
    "/health/ready",
    response_model=ApiResponse[Dict[str, str]],
    summary="Backing store readiness check",
)
async def readiness_check(pools: ResourcePools = Depends(get_pools)):
    """
    Ping PostgreSQL and Redis through the shared pools.

    Returns:
        200 {"status": "ready", "database": "connected", "cache": "connected"}
        503 INTERNAL_ERROR with the unreachable stores listed in ``details``
    """
    status = await pools.health_check()
    down = sorted(store for store, state in status.items() if state != "connected")
    if down:
        error = AppError(
            ErrorCode.INTERNAL_ERROR,
            "Service dependencies unavailable",
            details=", ".join(down),
        )
        return envelope_response(ApiResponse.fail(error), status_code=503)
    return envelope_response(ApiResponse.ok({"status": "ready", **status}))
