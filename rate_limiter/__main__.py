"""Run the service with uvicorn: ``python -m rate_limiter``."""

from __future__ import annotations

import uvicorn

from rate_limiter.core.config import settings


def main() -> None:
    uvicorn.run(
        "rate_limiter.main:app",
        host=settings.server.host,
        port=settings.server.port,
        reload=False,
        log_config=None,
    )


if __name__ == "__main__":
    main()
