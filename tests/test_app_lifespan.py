"""Tests for application startup/shutdown and request id propagation."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from rate_limiter.adapters.storage.base import AbstractStorage
from rate_limiter.adapters.storage.in_memory import InMemoryStorage
from rate_limiter.core.app_factory import create_app
from rate_limiter.core.config import Settings, StorageSettings
from rate_limiter.core.errors import StorageAppError
from rate_limiter.services.rate_limiter import RateLimiter


def memory_settings() -> Settings:
    return Settings(storage=StorageSettings(type="memory"))


def test_lifespan_builds_and_releases_limiter() -> None:
    app = create_app(memory_settings())

    with TestClient(app) as client:
        limiter = app.state.rate_limiter
        assert isinstance(limiter, RateLimiter)
        assert isinstance(limiter.storage, InMemoryStorage)
        assert client.get("/health").json() == {"status": "ok", "storage": "memory"}

    assert app.state.rate_limiter is None


def test_unreachable_storage_aborts_startup() -> None:
    app = create_app(memory_settings())
    failure = AsyncMock(side_effect=StorageAppError(code="storage_unavailable", message="no redis"))

    with patch("rate_limiter.core.app_factory.create_storage", failure):
        with pytest.raises(StorageAppError):
            with TestClient(app):
                pass


def test_close_errors_do_not_break_shutdown() -> None:
    app = create_app(memory_settings())
    storage = AsyncMock(spec=AbstractStorage)
    storage.is_blocked.return_value = False
    storage.increment.return_value = 1
    storage.close.side_effect = StorageAppError(code="storage_unavailable", message="gone")

    with patch("rate_limiter.core.app_factory.create_storage", AsyncMock(return_value=storage)):
        with TestClient(app) as client:
            assert client.get("/").status_code == 200

    storage.close.assert_awaited_once()


def test_injected_limiter_is_not_closed_by_app() -> None:
    storage = AsyncMock(spec=AbstractStorage)
    storage.is_blocked.return_value = False
    storage.increment.return_value = 1
    limiter = RateLimiter.from_settings(storage, memory_settings().rate_limiter)
    app = create_app(rate_limiter=limiter)

    with TestClient(app) as client:
        assert client.get("/").status_code == 200

    storage.close.assert_not_awaited()
    assert app.state.rate_limiter is limiter


def test_preserves_incoming_request_id_header() -> None:
    with TestClient(create_app(memory_settings())) as client:
        resp = client.get("/health", headers={"X-Request-ID": "test-request-id-123"})

    assert resp.status_code == 200
    assert resp.headers.get("X-Request-ID") == "test-request-id-123"


def test_generates_request_id_when_missing() -> None:
    with TestClient(create_app(memory_settings())) as client:
        resp = client.get("/health")

    assert resp.status_code == 200
    assert resp.headers.get("X-Request-ID")
    assert resp.headers.get("X-Request-Duration-ms") is not None


def test_home_endpoint() -> None:
    with TestClient(create_app(memory_settings())) as client:
        resp = client.get("/")

    assert resp.json() == {"message": "Welcome to the Rate Limiter API", "status": "ok"}


def test_health_reports_configured_backend() -> None:
    storage = AsyncMock(spec=AbstractStorage)
    storage.is_blocked.return_value = False
    storage.increment.return_value = 1
    redis_settings = Settings(storage=StorageSettings(type="redis"))
    limiter = RateLimiter.from_settings(storage, redis_settings.rate_limiter)

    with TestClient(create_app(redis_settings, rate_limiter=limiter)) as client:
        resp = client.get("/health")

    assert resp.status_code == 200
    assert resp.json() == {"status": "ok", "storage": "redis"}
