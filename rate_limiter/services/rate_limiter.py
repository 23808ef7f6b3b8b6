"""Admission decisions for client IPs and access tokens.

The limiter allows the first ``limit`` requests for an identifier while its
counter is alive and blocks it on the next one. A blocked identifier is
rejected without touching its counter until the block expires; there is no
explicit unblock.

The block check and the increment are two separate storage calls. Under heavy
concurrency for one identifier a request can pass the block check just before
another request sets the block and still be admitted. Each storage operation
is atomic on its own and no additional locking is applied.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

from rate_limiter.adapters.storage.base import AbstractStorage
from rate_limiter.core.config import RateLimiterSettings
from rate_limiter.core.errors import ValidationAppError
from rate_limiter.core.logging import hash_identifier

logger = logging.getLogger(__name__)

IP_KEY_PREFIX = "ip:"
TOKEN_KEY_PREFIX = "token:"


def ip_key(ip: str) -> str:
    """Namespaced storage key for a client IP."""
    return f"{IP_KEY_PREFIX}{ip}"


def token_key(token: str) -> str:
    """Namespaced storage key for an access token."""
    return f"{TOKEN_KEY_PREFIX}{token}"


class AbstractRateLimiter(ABC):
    """Interface the HTTP layer depends on."""

    @abstractmethod
    async def check_ip(self, ip: str) -> bool:
        """Return True if a request from ip is admitted."""
        raise NotImplementedError

    @abstractmethod
    async def check_token(self, token: str) -> bool:
        """Return True if a request presenting token is admitted."""
        raise NotImplementedError

    @abstractmethod
    async def close(self) -> None:
        raise NotImplementedError


@dataclass(frozen=True)
class LimitPolicy:
    """Limit and counter window for one identifier kind.

    Attributes:
        limit: Requests admitted per window.
        window_seconds: Counter lifetime after the most recent request.
    """

    limit: int
    window_seconds: float

    def __post_init__(self) -> None:
        if self.limit < 1:
            raise ValidationAppError(code="invalid_limit", message="limit must be >= 1")
        if self.window_seconds <= 0:
            raise ValidationAppError(code="invalid_window", message="window_seconds must be > 0")


class RateLimiter(AbstractRateLimiter):
    """Fixed-window limiter with an independent block list."""

    def __init__(
        self,
        storage: AbstractStorage,
        *,
        ip_policy: LimitPolicy,
        token_policy: LimitPolicy,
        block_duration_seconds: float,
    ) -> None:
        """Initialize the limiter.

        Args:
            storage: Backend holding counters and blocks.
            ip_policy: Limit/window applied to client IPs.
            token_policy: Limit/window applied to access tokens.
            block_duration_seconds: How long an identifier stays blocked.

        Raises:
            ValidationAppError: If block_duration_seconds is not positive.
        """
        if block_duration_seconds <= 0:
            raise ValidationAppError(
                code="invalid_block_duration",
                message="block_duration_seconds must be > 0",
            )
        self._storage = storage
        self._ip_policy = ip_policy
        self._token_policy = token_policy
        self._block_duration_seconds = block_duration_seconds

    @classmethod
    def from_settings(cls, storage: AbstractStorage, cfg: RateLimiterSettings) -> "RateLimiter":
        return cls(
            storage,
            ip_policy=LimitPolicy(limit=cfg.ip_limit, window_seconds=cfg.ip_expiration),
            token_policy=LimitPolicy(limit=cfg.token_limit, window_seconds=cfg.token_expiration),
            block_duration_seconds=cfg.block_duration,
        )

    @property
    def storage(self) -> AbstractStorage:
        return self._storage

    async def check_ip(self, ip: str) -> bool:
        return await self._check(ip_key(ip), self._ip_policy, key_type="ip")

    async def check_token(self, token: str) -> bool:
        return await self._check(token_key(token), self._token_policy, key_type="token")

    async def _check(self, key: str, policy: LimitPolicy, *, key_type: str) -> bool:
        """Run the block-check / increment / block sequence for one key.

        Storage errors propagate unchanged to the caller.
        """
        if await self._storage.is_blocked(key):
            logger.info(
                "rate_limit.blocked",
                extra={"key_type": key_type, "key_hash": hash_identifier(key)},
            )
            return False

        count = await self._storage.increment(key, policy.window_seconds)
        if count <= policy.limit:
            return True

        await self._storage.block(key, self._block_duration_seconds)
        logger.warning(
            "rate_limit.block_applied",
            extra={
                "key_type": key_type,
                "key_hash": hash_identifier(key),
                "count": count,
                "limit": policy.limit,
                "window_s": policy.window_seconds,
                "block_s": self._block_duration_seconds,
            },
        )
        return False

    async def close(self) -> None:
        """Close the underlying storage."""
        await self._storage.close()
