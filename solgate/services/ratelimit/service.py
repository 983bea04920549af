"""
Fixed-window request rate limiter (per client key) backed by Redis.
"""
import logging
from dataclasses import dataclass

import redis
from starlette.requests import Request

from solgate.core.config import Settings, settings

logger = logging.getLogger("ratelimit")


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int


def get_client_ip(request: Request) -> str:
    """Client IP (supports X-Forwarded-For from proxy)."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded and settings.app_env == "production":
        trusted = settings.trusted_proxy_ips_set
        if trusted and request.client and request.client.host in trusted:
            return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "127.0.0.1"


class RateLimiter:
    def __init__(self, client: redis.Redis | None, limit: int, window_seconds: int):
        self.client = client
        self.limit = limit
        self.window_seconds = window_seconds

    @classmethod
    def from_settings(cls, config: Settings) -> "RateLimiter":
        client = redis.Redis.from_url(config.redis_url, decode_responses=True) if config.redis_url else None
        return cls(client, config.rate_limit_requests, config.rate_limit_window_seconds)

    def check(self, key: str) -> RateLimitResult:
        """
        Count one request for `key`. Fails open when Redis is unavailable or not configured.
        """
        if self.client is None:
            return RateLimitResult(allowed=True, remaining=self.limit)
        try:
            redis_key = f"rate_limit:{key}"
            current = self.client.incr(redis_key)
            if current == 1:
                self.client.expire(redis_key, self.window_seconds)
            remaining = max(0, self.limit - current)
            if current > self.limit:
                logger.warning("rate_limited", extra={"key": key})
                return RateLimitResult(allowed=False, remaining=0)
            return RateLimitResult(allowed=True, remaining=remaining)
        except redis.RedisError as e:
            logger.warning("rate_limit_redis_error", extra={"error": str(e)})
            return RateLimitResult(allowed=True, remaining=self.limit)
