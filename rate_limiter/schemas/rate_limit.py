"""Pydantic schemas for rate limiting responses."""

from __future__ import annotations

from pydantic import BaseModel, Field

RATE_LIMIT_EXCEEDED_ERROR = "Rate limit exceeded"
RATE_LIMIT_EXCEEDED_MESSAGE = (
    "you have reached the maximum number of requests or actions allowed within a certain time frame"
)


class RateLimitExceededResponse(BaseModel):
    """Body returned with HTTP 429 when a request is denied."""

    error: str = Field(
        default=RATE_LIMIT_EXCEEDED_ERROR,
        description="Short error label.",
    )
    message: str = Field(
        default=RATE_LIMIT_EXCEEDED_MESSAGE,
        description="Human-readable explanation for the client.",
    )
