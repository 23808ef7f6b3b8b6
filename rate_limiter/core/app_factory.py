"""Application factory for the rate limiter service.

Centralizes app construction (middleware, handlers, routers, lifespan) so
tests can build isolated instances with their own settings or limiter.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from rate_limiter.adapters.storage.factory import create_storage
from rate_limiter.api.routes import demo_router, health_router
from rate_limiter.core.config import Settings, settings as default_settings
from rate_limiter.core.exception_handlers import setup_exception_handlers
from rate_limiter.core.logging import configure_logging
from rate_limiter.core.middleware import request_id_middleware
from rate_limiter.core.rate_limit import rate_limit_middleware
from rate_limiter.services.rate_limiter import AbstractRateLimiter, RateLimiter

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Own the storage and limiter for the lifetime of the app.

    A limiter injected through create_app() is used as-is and left for the
    caller to close. Otherwise the configured storage is created here (an
    unreachable Redis aborts startup) and closed on shutdown; close errors are
    logged and do not prevent the process from exiting.
    """
    cfg: Settings = app.state.settings

    if app.state.rate_limiter is not None:
        yield
        return

    storage = await create_storage(cfg)
    limiter = RateLimiter.from_settings(storage, cfg.rate_limiter)
    app.state.rate_limiter = limiter
    logger.info(
        "rate_limiter.started",
        extra={
            "backend": cfg.storage.type.value,
            "ip_limit": cfg.rate_limiter.ip_limit,
            "ip_window_s": cfg.rate_limiter.ip_expiration,
            "token_limit": cfg.rate_limiter.token_limit,
            "token_window_s": cfg.rate_limiter.token_expiration,
            "block_s": cfg.rate_limiter.block_duration,
        },
    )
    try:
        yield
    finally:
        app.state.rate_limiter = None
        try:
            await limiter.close()
        except Exception as exc:
            logger.error(
                "rate_limiter.close_failed",
                extra={"error_type": type(exc).__name__, "error_msg": str(exc)},
            )
        else:
            logger.info("rate_limiter.stopped")


def create_app(
    app_settings: Settings | None = None,
    *,
    rate_limiter: AbstractRateLimiter | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        app_settings: Settings to use; defaults to the global settings.
        rate_limiter: Pre-built limiter; when omitted the lifespan builds one
            from settings.

    Returns:
        Configured FastAPI app with middleware, handlers and routers.
    """
    cfg = app_settings or default_settings

    # Logging first so subsequent init logs are formatted as desired
    configure_logging(cfg.log)

    app = FastAPI(
        title="Rate Limiter API",
        description=(
            "Admission control per client IP or API_KEY token, backed by an "
            "in-memory store or Redis."
        ),
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = cfg
    app.state.rate_limiter = rate_limiter

    # Middleware: the last one registered runs first, so request ids are
    # assigned before rate limiting and also appear on 429/500 responses.
    app.middleware("http")(rate_limit_middleware)
    app.middleware("http")(request_id_middleware)

    setup_exception_handlers(app)

    app.include_router(demo_router)
    app.include_router(health_router)

    return app
