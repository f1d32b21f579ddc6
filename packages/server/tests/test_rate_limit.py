"""
Fixed-window rate limiting and client address extraction.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest
from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient
from redis.exceptions import ConnectionError as RedisConnectionError

from app.core.config import get_settings
from app.core.rate_limit import RateLimit, RateLimiter, client_address, rate_limit
from app.main import register_exception_handlers

LIMIT = RateLimit("test", 2, 60)


class FakeRedis:
    """Just enough of the Redis API for counters."""

    def __init__(self):
        self.counters: dict[str, int] = {}
        self.ttls: dict[str, int] = {}

    async def incr(self, key: str) -> int:
        self.counters[key] = self.counters.get(key, 0) + 1
        return self.counters[key]

    async def expire(self, key: str, seconds: int) -> bool:
        self.ttls[key] = seconds
        return True


class TestRateLimiter:
    @pytest.mark.asyncio
    async def test_budget_then_reject(self):
        redis = FakeRedis()
        limiter = RateLimiter(redis)

        results = [await limiter.hit(LIMIT, "1.2.3.4") for _ in range(3)]

        assert results == [True, True, False]
        assert redis.ttls == {"ratelimit:test:1.2.3.4": 60}

    @pytest.mark.asyncio
    async def test_keys_are_per_address(self):
        limiter = RateLimiter(FakeRedis())
        for _ in range(2):
            await limiter.hit(LIMIT, "1.1.1.1")
        assert await limiter.hit(LIMIT, "2.2.2.2") is True

    @pytest.mark.asyncio
    async def test_redis_outage_allows_request(self):
        redis = AsyncMock()
        redis.incr.side_effect = RedisConnectionError("down")
        assert await RateLimiter(redis).hit(LIMIT, "1.2.3.4") is True


def _limited_app(settings) -> FastAPI:
    app = FastAPI()
    register_exception_handlers(app)
    app.dependency_overrides[get_settings] = lambda: settings

    @app.post("/limited", dependencies=[Depends(rate_limit(LIMIT))])
    async def limited():
        return {"ok": True}

    return app


class TestRateLimitDependency:
    def test_rejects_with_429(self, settings):
        enabled = settings.model_copy(update={"rate_limit_enabled": True})
        client = TestClient(_limited_app(enabled))

        with patch("app.core.rate_limit.get_redis", AsyncMock(return_value=FakeRedis())):
            statuses = [client.post("/limited").status_code for _ in range(3)]
            rejected = client.post("/limited")

        assert statuses == [200, 200, 429]
        assert rejected.json()["error"]["code"] == "RATE_LIMITED"

    def test_forwarded_header_does_not_reset_budget(self, settings):
        enabled = settings.model_copy(update={"rate_limit_enabled": True})
        client = TestClient(_limited_app(enabled))

        with patch("app.core.rate_limit.get_redis", AsyncMock(return_value=FakeRedis())):
            statuses = [
                client.post("/limited", headers={"X-Forwarded-For": f"10.9.9.{i}"}).status_code
                for i in range(4)
            ]

        assert statuses == [200, 200, 429, 429]

    def test_disabled_never_touches_redis(self, settings):
        client = TestClient(_limited_app(settings))
        get_redis = AsyncMock()

        with patch("app.core.rate_limit.get_redis", get_redis):
            for _ in range(5):
                assert client.post("/limited").status_code == 200

        get_redis.assert_not_called()


class _Request:
    def __init__(self, headers, host):
        self.headers = headers
        self.client = type("Client", (), {"host": host})() if host else None


@pytest.mark.parametrize(
    "headers, host, expected",
    [
        ({"x-forwarded-for": "203.0.113.7, 10.0.0.1"}, "10.0.0.2", "10.0.0.2"),
        ({}, "10.0.0.2", "10.0.0.2"),
        ({}, None, "unknown"),
    ],
)
def test_client_address(headers, host, expected):
    assert client_address(_Request(headers, host)) == expected
