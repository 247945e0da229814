"""Versioned API surface. Business routers are mounted under this prefix."""

from fastapi import APIRouter

from mct_api.schemas.envelope import ApiResponse, envelope_response

router = APIRouter(prefix="/api/v1", tags=["API v1"])


@router.get("/ping", response_model=ApiResponse[str], summary="Round-trip check for API clients")
async def ping():
    return envelope_response(ApiResponse.ok("pong"))
