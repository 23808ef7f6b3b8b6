from __future__ import annotations

from rate_limiter.api.routes.demo import router as demo_router
from rate_limiter.api.routes.health import router as health_router

__all__ = ["demo_router", "health_router"]
