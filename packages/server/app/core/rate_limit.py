"""
Fixed-window rate limiting backed by Redis.

Each (limit, client address) pair gets a counter that expires with its
window. When Redis is unreachable the request is allowed and the outage is
logged.
"""

from __future__ import annotations

from dataclasses import dataclass

import structlog
from fastapi import Depends, Request
from redis.exceptions import RedisError

from app.core.config import Settings, get_settings
from app.core.errors import AuthError, ErrorCode
from app.core.redis import get_redis

log = structlog.get_logger()


@dataclass(frozen=True)
class RateLimit:
    name: str
    max_requests: int
    window_seconds: int


LOGIN_LIMIT = RateLimit("login", 5, 15 * 60)
REGISTER_LIMIT = RateLimit("register", 10, 60 * 60)
FORGOT_PASSWORD_LIMIT = RateLimit("forgot_password", 3, 60 * 60)
RESEND_VERIFICATION_LIMIT = RateLimit("resend_verification", 3, 60 * 60)


def client_address(request: Request) -> str:
    """Peer address of the connection.

    Forwarding headers are not read here; behind a proxy, run uvicorn with
    `--proxy-headers` and `--forwarded-allow-ips` so the peer is rewritten
    only for trusted hops.
    """
    return request.client.host if request.client else "unknown"


class RateLimiter:
    def __init__(self, redis_client):
        self._redis = redis_client

    async def hit(self, limit: RateLimit, key: str) -> bool:
        """Count one request; False once the window's budget is spent."""
        counter = f"ratelimit:{limit.name}:{key}"
        try:
            count = await self._redis.incr(counter)
            if count == 1:
                await self._redis.expire(counter, limit.window_seconds)
        except (RedisError, OSError) as exc:
            log.warning("ratelimit.unavailable", limit=limit.name, error=str(exc))
            return True
        return count <= limit.max_requests


def rate_limit(limit: RateLimit):
    """Dependency factory: reject with 429 once ``limit`` is exceeded for the caller's address."""

    async def dependency(
        request: Request,
        settings: Settings = Depends(get_settings),
    ) -> None:
        if not settings.rate_limit_enabled:
            return
        limiter = RateLimiter(await get_redis())
        address = client_address(request)
        if not await limiter.hit(limit, address):
            log.warning("ratelimit.exceeded", limit=limit.name, ip=address)
            raise AuthError(ErrorCode.RATE_LIMITED)

    return dependency
