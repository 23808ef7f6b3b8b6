"""Redis-backed storage for counters and blocks.

Atomicity is delegated to Redis:
- increment issues INCR and PEXPIRE in one MULTI/EXEC transaction, so a
  cancelled request cannot leave a counter without an expiry;
- blocks are a single SET ... PX under the ``blocked:`` namespace, kept apart
  from counter keys.

Redis serializes commands per key, so no client-side locking is needed and
every instance sharing the server sees the same counters and blocks.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import contextmanager
from typing import Any, Iterator

import redis.asyncio as redis
from redis.exceptions import RedisError

from rate_limiter.adapters.storage.base import AbstractStorage, validate_duration, validate_key
from rate_limiter.core.errors import StorageAppError
from rate_limiter.core.logging import hash_identifier

logger = logging.getLogger(__name__)

BLOCK_KEY_PREFIX = "blocked:"


def _to_milliseconds(seconds: float) -> int:
    return max(1, int(seconds * 1000))


@contextmanager
def _storage_errors(operation: str, key: str | None = None) -> Iterator[None]:
    """Translate redis-py failures and unreadable replies into StorageAppError."""

    try:
        yield
    except (RedisError, ValueError) as exc:
        logger.error(
            "storage.error",
            extra={
                "backend": "redis",
                "operation": operation,
                "key_hash": hash_identifier(key) if key else None,
                "error_type": type(exc).__name__,
                "error_msg": str(exc),
            },
        )
        raise StorageAppError(
            code="storage_unavailable",
            message=f"Redis {operation} failed",
            details={"backend": "redis", "operation": operation},
        ) from exc


class RedisStorage(AbstractStorage):
    """Storage using a shared Redis server.

    Use connect() to build an instance from connection parameters; the
    constructor accepts an existing redis.asyncio client (or a compatible
    object) so the adapter can be tested without a server.
    """

    def __init__(self, client: Any) -> None:
        self._client = client

    @classmethod
    async def connect(
        cls,
        *,
        host: str = "localhost",
        port: int = 6379,
        password: str | None = None,
        db: int = 0,
        connect_timeout_seconds: float = 5.0,
    ) -> "RedisStorage":
        """Create a client and verify the server answers PING.

        Raises:
            StorageAppError: If the server is unreachable within the timeout.
        """

        client = redis.Redis(
            host=host,
            port=port,
            password=password or None,
            db=db,
            decode_responses=True,
            socket_connect_timeout=connect_timeout_seconds,
            socket_timeout=connect_timeout_seconds,
            health_check_interval=30,
        )
        try:
            await asyncio.wait_for(client.ping(), timeout=connect_timeout_seconds)
        except (RedisError, OSError, asyncio.TimeoutError) as exc:
            await client.aclose()
            logger.error(
                "storage.connect_failed",
                extra={
                    "backend": "redis",
                    "host": host,
                    "port": port,
                    "db": db,
                    "error_type": type(exc).__name__,
                },
            )
            raise StorageAppError(
                code="storage_unavailable",
                message=f"Failed to connect to Redis at {host}:{port}",
                details={"backend": "redis", "operation": "connect"},
            ) from exc

        logger.info("storage.connected", extra={"backend": "redis", "host": host, "port": port, "db": db})
        return cls(client)

    async def increment(self, key: str, window_seconds: float) -> int:
        validate_key(key)
        validate_duration("window_seconds", window_seconds)

        with _storage_errors("increment", key):
            pipe = self._client.pipeline(transaction=True)
            pipe.incr(key)
            pipe.pexpire(key, _to_milliseconds(window_seconds))
            count, _ = await pipe.execute()
            return int(count)

    async def get(self, key: str) -> int:
        with _storage_errors("get", key):
            value = await self._client.get(key)
            return int(value) if value is not None else 0

    async def is_blocked(self, key: str) -> bool:
        with _storage_errors("is_blocked", key):
            exists = await self._client.exists(BLOCK_KEY_PREFIX + key)
        return exists > 0

    async def block(self, key: str, duration_seconds: float) -> None:
        validate_key(key)
        validate_duration("duration_seconds", duration_seconds)

        with _storage_errors("block", key):
            await self._client.set(BLOCK_KEY_PREFIX + key, 1, px=_to_milliseconds(duration_seconds))

    async def close(self) -> None:
        with _storage_errors("close"):
            await self._client.aclose()
