"""Pydantic schemas for informational endpoints."""

from __future__ import annotations

from pydantic import BaseModel, Field


class StatusResponse(BaseModel):
    """Simple message/status payload."""

    message: str = Field(..., description="Human-readable message.")
    status: str = Field("ok", description="Service status.")


class HealthResponse(BaseModel):
    """Liveness payload naming the storage backend in use."""

    status: str = Field("ok", description="Service status.")
    storage: str = Field(..., description="Configured storage backend: 'memory' or 'redis'.")
