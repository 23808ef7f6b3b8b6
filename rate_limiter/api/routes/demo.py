"""Sample endpoints protected by the rate limiter."""

from __future__ import annotations

from fastapi import APIRouter

from rate_limiter.schemas.status import StatusResponse

router = APIRouter(tags=["Demo"])


@router.get("/", response_model=StatusResponse)
async def home() -> StatusResponse:
    return StatusResponse(message="Welcome to the Rate Limiter API")


@router.get("/api/test", response_model=StatusResponse)
async def test_endpoint() -> StatusResponse:
    return StatusResponse(message="This is a test endpoint")
