"""Storage interface for rate limit counters and blocks.

Two record kinds live behind this interface, both keyed by a namespaced
identifier such as ``ip:203.0.113.7`` or ``token:abc``:

- a counter that expires ``window_seconds`` after its most recent increment;
- a block flag with its own, independent expiry.

An expired record is indistinguishable from an absent one. Absence means
"zero requests" / "not blocked" and is never an error.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from rate_limiter.core.errors import ValidationAppError


def validate_key(key: str) -> None:
    if not key:
        raise ValidationAppError(code="invalid_key", message="key must be a non-empty string")


def validate_duration(name: str, value: float) -> None:
    if value <= 0:
        raise ValidationAppError(
            code="invalid_duration",
            message=f"{name} must be > 0",
        )


class AbstractStorage(ABC):
    """Interface for rate limit storage backends.

    Every method except close() may raise StorageAppError when the backend
    cannot be reached; implementations must not report a failure as
    "count zero" or "not blocked".
    """

    @abstractmethod
    async def increment(self, key: str, window_seconds: float) -> int:
        """Atomically increment the counter for key.

        Creates the counter with value 1 when it is absent or expired.
        Otherwise adds 1. In both cases the expiry moves to
        ``now + window_seconds``.

        Args:
            key: Namespaced identifier.
            window_seconds: Counter lifetime after this hit.

        Returns:
            The post-increment count.
        """
        raise NotImplementedError

    @abstractmethod
    async def get(self, key: str) -> int:
        """Return the live count for key, or 0 when absent/expired."""
        raise NotImplementedError

    @abstractmethod
    async def is_blocked(self, key: str) -> bool:
        """Return True iff a live block exists for key."""
        raise NotImplementedError

    @abstractmethod
    async def block(self, key: str, duration_seconds: float) -> None:
        """Create or overwrite a block for key expiring after duration_seconds."""
        raise NotImplementedError

    @abstractmethod
    async def close(self) -> None:
        """Release backend resources. Called once at shutdown."""
        raise NotImplementedError
