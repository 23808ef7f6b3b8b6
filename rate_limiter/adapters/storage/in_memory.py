"""In-memory storage for counters and blocks.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: one lock guards both maps, and every critical section is a
  handful of dict operations with no awaits inside.
- Every read compares the stored expiry with the clock, so the periodic sweep
  only reclaims memory and is not needed for correct answers.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable

from rate_limiter.adapters.storage.base import AbstractStorage, validate_duration, validate_key

logger = logging.getLogger(__name__)


@dataclass
class _Counter:
    value: int
    expires_at: float


class InMemoryStorage(AbstractStorage):
    """Storage backed by two dicts owned by this instance.

    The optional cleanup task is started with start_cleanup() and cancelled by
    close(), so it never outlives the store.
    """

    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        """Initialize an empty store.

        Args:
            clock: Time source returning seconds; must be monotonic for real use.
        """
        self._clock = clock
        self._lock = threading.Lock()
        self._counters: dict[str, _Counter] = {}
        self._blocks: dict[str, float] = {}
        self._cleanup_task: asyncio.Task[None] | None = None
        self._closed = False

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return f"InMemoryStorage(counters={len(self._counters)}, blocks={len(self._blocks)})"

    def _is_expired(self, expires_at: float, now: float) -> bool:
        return now > expires_at

    async def increment(self, key: str, window_seconds: float) -> int:
        validate_key(key)
        validate_duration("window_seconds", window_seconds)

        with self._lock:
            now = self._clock()
            counter = self._counters.get(key)
            if counter is None or self._is_expired(counter.expires_at, now):
                counter = _Counter(value=0, expires_at=now)
                self._counters[key] = counter

            counter.value += 1
            counter.expires_at = now + window_seconds
            return counter.value

    async def get(self, key: str) -> int:
        with self._lock:
            counter = self._counters.get(key)
            if counter is None or self._is_expired(counter.expires_at, self._clock()):
                return 0
            return counter.value

    async def is_blocked(self, key: str) -> bool:
        with self._lock:
            expires_at = self._blocks.get(key)
            if expires_at is None:
                return False
            return not self._is_expired(expires_at, self._clock())

    async def block(self, key: str, duration_seconds: float) -> None:
        validate_key(key)
        validate_duration("duration_seconds", duration_seconds)

        with self._lock:
            self._blocks[key] = self._clock() + duration_seconds

    def cleanup(self) -> int:
        """Evict expired counters and blocks.

        Returns:
            Number of entries removed.
        """

        with self._lock:
            now = self._clock()
            expired_counters = [k for k, c in self._counters.items() if self._is_expired(c.expires_at, now)]
            expired_blocks = [k for k, exp in self._blocks.items() if self._is_expired(exp, now)]
            for key in expired_counters:
                del self._counters[key]
            for key in expired_blocks:
                del self._blocks[key]

        removed = len(expired_counters) + len(expired_blocks)
        if removed:
            logger.debug(
                "storage.cleanup",
                extra={
                    "expired_counters": len(expired_counters),
                    "expired_blocks": len(expired_blocks),
                },
            )
        return removed

    def start_cleanup(self, interval_seconds: float) -> None:
        """Start the periodic sweep on the running event loop.

        A no-op once the store is closed or while a sweep is already running.

        Raises:
            ValidationAppError: If the interval is not positive.
            RuntimeError: If called without a running event loop.
        """

        validate_duration("interval_seconds", interval_seconds)
        if self._closed:
            return
        if self._cleanup_task is not None and not self._cleanup_task.done():
            return
        self._cleanup_task = asyncio.get_running_loop().create_task(
            self._cleanup_loop(interval_seconds),
            name="rate-limiter-storage-cleanup",
        )

    async def _cleanup_loop(self, interval_seconds: float) -> None:
        while True:
            await asyncio.sleep(interval_seconds)
            self.cleanup()

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True

        task, self._cleanup_task = self._cleanup_task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        with self._lock:
            self._counters.clear()
            self._blocks.clear()
