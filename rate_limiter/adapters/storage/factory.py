"""Factory for the configured storage backend."""

from __future__ import annotations

import logging

from rate_limiter.adapters.storage.base import AbstractStorage
from rate_limiter.adapters.storage.in_memory import InMemoryStorage
from rate_limiter.adapters.storage.redis_backend import RedisStorage
from rate_limiter.core.config import Settings, StorageType, settings as default_settings

logger = logging.getLogger(__name__)


async def create_storage(app_settings: Settings | None = None) -> AbstractStorage:
    """Instantiate the storage backend selected by STORAGE_TYPE.

    The in-memory backend starts its cleanup sweep on the running loop. The
    Redis backend must answer PING; an unreachable server is fatal at startup
    because the service has no usable backend.

    Args:
        app_settings: Settings to use; defaults to the global settings.

    Returns:
        AbstractStorage: Ready-to-use storage instance.

    Raises:
        StorageAppError: If Redis is selected and cannot be reached.
    """
    cfg = app_settings or default_settings
    storage_type = cfg.storage.type

    if storage_type is StorageType.MEMORY:
        logger.info("storage.selected", extra={"backend": storage_type.value})
        storage = InMemoryStorage()
        storage.start_cleanup(cfg.rate_limiter.cleanup_interval_seconds)
        return storage

    logger.info("storage.selected", extra={"backend": StorageType.REDIS.value})
    return await RedisStorage.connect(
        host=cfg.redis.host,
        port=cfg.redis.port,
        password=cfg.redis.password,
        db=cfg.redis.db,
        connect_timeout_seconds=cfg.redis.connect_timeout_seconds,
    )
