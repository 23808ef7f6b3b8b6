"""Liveness endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Request

from rate_limiter.schemas.status import HealthResponse

router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    """Report liveness and the configured storage backend.

    The request already went through the admission check, so a 200 here also
    means the storage answered. Rate limits apply to this route as to any other.
    """

    backend = request.app.state.settings.storage.type
    return HealthResponse(storage=backend.value)
