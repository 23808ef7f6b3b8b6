"""Unit tests for the admission decision logic."""

from __future__ import annotations

from unittest.mock import AsyncMock, Mock

import pytest

from rate_limiter.adapters.storage.base import AbstractStorage
from rate_limiter.adapters.storage.in_memory import InMemoryStorage
from rate_limiter.core.config import RateLimiterSettings
from rate_limiter.core.errors import StorageAppError, ValidationAppError
from rate_limiter.services.rate_limiter import LimitPolicy, RateLimiter, ip_key, token_key


class MockStorage(AbstractStorage):
    """Dict-backed storage that records the windows it was asked to use."""

    def __init__(self) -> None:
        self.counters: dict[str, int] = {}
        self.blocked: dict[str, float] = {}
        self.windows: list[float] = []
        self.closed = False

    async def increment(self, key: str, window_seconds: float) -> int:
        self.windows.append(window_seconds)
        self.counters[key] = self.counters.get(key, 0) + 1
        return self.counters[key]

    async def get(self, key: str) -> int:
        return self.counters.get(key, 0)

    async def is_blocked(self, key: str) -> bool:
        return key in self.blocked

    async def block(self, key: str, duration_seconds: float) -> None:
        self.blocked[key] = duration_seconds

    async def close(self) -> None:
        self.closed = True


def build_limiter(storage: AbstractStorage, *, ip_limit: int = 3, token_limit: int = 5) -> RateLimiter:
    return RateLimiter(
        storage,
        ip_policy=LimitPolicy(limit=ip_limit, window_seconds=300),
        token_policy=LimitPolicy(limit=token_limit, window_seconds=600),
        block_duration_seconds=300,
    )


@pytest.mark.asyncio
async def test_ip_limit_blocks_fourth_request() -> None:
    storage = MockStorage()
    limiter = build_limiter(storage, ip_limit=3)

    for _ in range(3):
        assert await limiter.check_ip("192.168.1.1") is True

    assert await limiter.check_ip("192.168.1.1") is False
    assert await storage.is_blocked("ip:192.168.1.1") is True
    assert storage.blocked["ip:192.168.1.1"] == 300


@pytest.mark.asyncio
async def test_token_limit_blocks_sixth_request() -> None:
    storage = MockStorage()
    limiter = build_limiter(storage, token_limit=5)

    for _ in range(5):
        assert await limiter.check_token("test-token") is True

    assert await limiter.check_token("test-token") is False
    assert await storage.is_blocked("token:test-token") is True


@pytest.mark.asyncio
async def test_each_identifier_kind_uses_its_own_window() -> None:
    storage = MockStorage()
    limiter = build_limiter(storage)

    await limiter.check_ip("10.0.0.1")
    await limiter.check_token("abc")

    assert storage.windows == [300, 600]


@pytest.mark.asyncio
async def test_blocked_identifier_is_rejected_without_counting() -> None:
    storage = AsyncMock(spec=AbstractStorage)
    storage.is_blocked.return_value = True
    limiter = build_limiter(storage)

    assert await limiter.check_ip("10.0.0.1") is False

    storage.is_blocked.assert_awaited_once_with("ip:10.0.0.1")
    storage.increment.assert_not_awaited()
    storage.block.assert_not_awaited()


@pytest.mark.asyncio
async def test_token_and_ip_limits_are_independent() -> None:
    storage = MockStorage()
    limiter = build_limiter(storage, ip_limit=1, token_limit=1)

    assert await limiter.check_token("10.0.0.1") is True
    assert await limiter.check_token("10.0.0.1") is False

    # Same string as an IP lives in a different namespace
    assert await limiter.check_ip("10.0.0.1") is True
    assert await limiter.check_ip("10.0.0.1") is False
    assert await limiter.check_token("other") is True


@pytest.mark.asyncio
async def test_storage_errors_propagate() -> None:
    storage = AsyncMock(spec=AbstractStorage)
    storage.is_blocked.return_value = False
    storage.increment.side_effect = StorageAppError(code="storage_unavailable", message="down")
    limiter = build_limiter(storage)

    with pytest.raises(StorageAppError):
        await limiter.check_token("abc")


@pytest.mark.asyncio
async def test_block_check_errors_are_not_treated_as_unblocked() -> None:
    storage = AsyncMock(spec=AbstractStorage)
    storage.is_blocked.side_effect = StorageAppError(code="storage_unavailable", message="down")
    limiter = build_limiter(storage)

    with pytest.raises(StorageAppError):
        await limiter.check_ip("10.0.0.1")
    storage.increment.assert_not_awaited()


@pytest.mark.asyncio
async def test_block_expiry_starts_a_fresh_window() -> None:
    clock = Mock(return_value=1000.0)
    storage = InMemoryStorage(clock=clock)
    limiter = build_limiter(storage, ip_limit=3)

    for _ in range(3):
        assert await limiter.check_ip("192.168.1.1") is True
    assert await limiter.check_ip("192.168.1.1") is False

    clock.return_value = 1200.0
    assert await limiter.check_ip("192.168.1.1") is False

    # Block and counter both expired at 1300
    clock.return_value = 1300.5
    assert await storage.is_blocked(ip_key("192.168.1.1")) is False
    assert await limiter.check_ip("192.168.1.1") is True
    assert await storage.get(ip_key("192.168.1.1")) == 1


@pytest.mark.asyncio
async def test_close_closes_storage() -> None:
    storage = MockStorage()
    limiter = build_limiter(storage)

    await limiter.close()

    assert storage.closed is True


@pytest.mark.asyncio
async def test_from_settings_applies_configured_limits_and_windows() -> None:
    storage = MockStorage()
    cfg = RateLimiterSettings(
        ip_limit=2,
        ip_expiration=30,
        token_limit=3,
        token_expiration=90,
        block_duration=120,
    )

    limiter = RateLimiter.from_settings(storage, cfg)

    ip_results = [await limiter.check_ip("10.0.0.1") for _ in range(3)]
    token_results = [await limiter.check_token("abc") for _ in range(4)]

    assert limiter.storage is storage
    assert ip_results == [True, True, False]
    assert token_results == [True, True, True, False]
    assert storage.windows == [30, 30, 30, 90, 90, 90, 90]
    assert storage.blocked == {ip_key("10.0.0.1"): 120, token_key("abc"): 120}


@pytest.mark.parametrize(
    "kwargs",
    [
        {"limit": 0, "window_seconds": 60},
        {"limit": 1, "window_seconds": 0},
    ],
)
def test_invalid_policy(kwargs: dict) -> None:
    with pytest.raises(ValidationAppError):
        LimitPolicy(**kwargs)


def test_invalid_block_duration() -> None:
    with pytest.raises(ValidationAppError):
        RateLimiter(
            MockStorage(),
            ip_policy=LimitPolicy(limit=1, window_seconds=1),
            token_policy=LimitPolicy(limit=1, window_seconds=1),
            block_duration_seconds=0,
        )


def test_keys_are_namespaced() -> None:
    assert ip_key("1.2.3.4") == "ip:1.2.3.4"
    assert token_key("1.2.3.4") == "token:1.2.3.4"
