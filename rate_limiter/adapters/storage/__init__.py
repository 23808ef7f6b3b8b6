"""Rate limit storage adapters.

The limiter depends only on AbstractStorage, so a single-process deployment
can use the in-memory backend while multiple instances share state through
Redis without changes to the limiter or the HTTP layer.
"""

from rate_limiter.adapters.storage.base import AbstractStorage
from rate_limiter.adapters.storage.in_memory import InMemoryStorage
from rate_limiter.adapters.storage.redis_backend import RedisStorage

__all__ = ["AbstractStorage", "InMemoryStorage", "RedisStorage"]
