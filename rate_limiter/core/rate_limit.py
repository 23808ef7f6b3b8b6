"""Rate limiting middleware.

Every request is classified into one identifier:
- a non-empty ``API_KEY`` header selects the token limit, and the client IP is
  then ignored for this request;
- otherwise the client IP is used: the first ``X-Forwarded-For`` entry when the
  header is present (taken as-is, proxies are not verified), else the peer
  address of the connection.

The limiter is read from ``request.app.state.rate_limiter``, which the
application lifespan populates.

Responses:
- denied: 429 with a JSON body;
- storage failure or deadline exceeded: 500 plain text, never an implicit
  allow or deny;
- admitted: the request continues unchanged.
"""

from __future__ import annotations

import asyncio
import logging

from fastapi import Request, Response, status
from fastapi.responses import JSONResponse, PlainTextResponse

from rate_limiter.core.config import settings
from rate_limiter.core.errors import StorageAppError
from rate_limiter.core.logging import hash_identifier
from rate_limiter.schemas.rate_limit import RateLimitExceededResponse
from rate_limiter.services.rate_limiter import AbstractRateLimiter

logger = logging.getLogger(__name__)

TOKEN_HEADER = "API_KEY"
FORWARDED_FOR_HEADER = "X-Forwarded-For"
INTERNAL_ERROR_BODY = "Internal server error"


def get_client_ip(request: Request) -> str:
    """Resolve the client IP for rate limiting.

    Args:
        request: FastAPI request.

    Returns:
        str: First X-Forwarded-For entry (trimmed), else the peer host, else
            "unknown" when the transport exposes no peer.
    """

    forwarded_for = request.headers.get(FORWARDED_FOR_HEADER)
    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first

    return request.client.host if request.client else "unknown"


def get_token(request: Request) -> str | None:
    """Return the access token header value, or None when absent/empty."""

    return request.headers.get(TOKEN_HEADER) or None


def rate_limit_exceeded_response() -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content=RateLimitExceededResponse().model_dump(),
    )


def internal_error_response() -> PlainTextResponse:
    return PlainTextResponse(
        INTERNAL_ERROR_BODY,
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


async def rate_limit_middleware(request: Request, call_next) -> Response:
    """HTTP middleware enforcing the IP and token limits.

    Args:
        request: The incoming HTTP request object.
        call_next: The next middleware/route handler in the stack.

    Returns:
        Response: 429/500 produced here, or the downstream response.
    """

    limiter: AbstractRateLimiter | None = getattr(request.app.state, "rate_limiter", None)
    if limiter is None:
        logger.error("rate_limit.not_initialized", extra={"request_path": request.url.path})
        return internal_error_response()

    token = get_token(request)
    if token is not None:
        key_type = "token"
        identifier = token
        check = limiter.check_token(token)
    else:
        key_type = "ip"
        identifier = get_client_ip(request)
        check = limiter.check_ip(identifier)

    cfg = getattr(request.app.state, "settings", settings)
    timeout_seconds = cfg.rate_limiter.operation_timeout_seconds
    try:
        allowed = await asyncio.wait_for(check, timeout=timeout_seconds)
    except StorageAppError as exc:
        logger.error(
            "rate_limit.storage_failure",
            extra={
                "key_type": key_type,
                "key_hash": hash_identifier(identifier),
                "error_code": exc.code,
                "error_message": exc.message,
            },
        )
        return internal_error_response()
    except asyncio.TimeoutError:
        logger.error(
            "rate_limit.storage_timeout",
            extra={
                "key_type": key_type,
                "key_hash": hash_identifier(identifier),
                "timeout_seconds": timeout_seconds,
            },
        )
        return internal_error_response()

    if not allowed:
        logger.warning(
            "rate_limit.exceeded",
            extra={
                "key_type": key_type,
                "key_hash": hash_identifier(identifier),
                "request_path": request.url.path,
            },
        )
        return rate_limit_exceeded_response()

    return await call_next(request)
