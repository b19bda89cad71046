from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

import redis

from Gateway.errors import RateLimited
from Gateway.settings import get_settings


logger = logging.getLogger(__name__)

MESSAGE_LIMIT = (20, 60)      # 20 messages per minute
UPLOAD_LIMIT = (10, 60 * 60)  # 10 uploads per hour


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    wait_seconds: int = 0


# Sliding-window limiter per (user, limiter name) backed by a Redis sorted set
class RedisRateLimiter:
    def __init__(self, client: Optional[Any], name: str, max_requests: int, window_seconds: int):
        self._client = client
        self.name = name
        self.max_requests = max_requests
        self.window_seconds = window_seconds

    def key(self, user_id: str) -> str:
        return f"ratelimit:user:{user_id}:{self.name}"

    def check(self, user_id: str) -> RateLimitDecision:
        if self._client is None:
            return RateLimitDecision(allowed=True)

        key = self.key(user_id)
        now_ts = datetime.now(timezone.utc).timestamp()
        min_ts = now_ts - self.window_seconds  # anything older is outside the window

        try:
            pipe = self._client.pipeline(transaction=True)
            pipe.zremrangebyscore(key, 0, min_ts)
            pipe.zcard(key)
            pipe.zrange(key, 0, 0, withscores=True)  # oldest request, to compute the wait
            pipe.expire(key, self.window_seconds + 5)
            _, count, oldest, _ = pipe.execute()

            if int(count) >= self.max_requests:
                oldest_ts = None
                if oldest and isinstance(oldest, list):
                    oldest_ts = float(oldest[0][1])
                if oldest_ts is None:
                    return RateLimitDecision(allowed=False, wait_seconds=self.window_seconds)
                wait_s = max(0, int((oldest_ts + self.window_seconds) - now_ts))
                return RateLimitDecision(allowed=False, wait_seconds=wait_s)

            self._client.zadd(key, {f"{now_ts}:{uuid.uuid4().hex[:8]}": now_ts})
            self._client.expire(key, self.window_seconds + 5)
            return RateLimitDecision(allowed=True)
        # Redis down/unreachable: never block the request
        except Exception:
            logger.warning("ratelimit.error: limiter=%s", self.name, exc_info=True)
            return RateLimitDecision(allowed=True)

    def enforce(self, user_id: str, message: str) -> None:
        decision = self.check(user_id)
        if decision.allowed:
            return
        raise RateLimited(
            f"{message} Please wait {decision.wait_seconds} seconds before trying again.",
            headers={"Retry-After": str(decision.wait_seconds)},
        )


_client: Optional[Any] = None
_limiters: dict[str, RedisRateLimiter] = {}


def _redis_client() -> Optional[Any]:
    global _client
    if _client is None:
        redis_url = get_settings().redis_url
        if redis_url:
            _client = redis.from_url(redis_url, decode_responses=True)
    return _client


def _get_limiter(name: str, limit: tuple[int, int]) -> RedisRateLimiter:
    limiter = _limiters.get(name)
    if limiter is None:
        max_requests, window_seconds = limit
        limiter = RedisRateLimiter(_redis_client(), name, max_requests, window_seconds)
        _limiters[name] = limiter
    return limiter


def get_message_rate_limiter() -> RedisRateLimiter:
    return _get_limiter("message", MESSAGE_LIMIT)


def get_upload_rate_limiter() -> RedisRateLimiter:
    return _get_limiter("upload", UPLOAD_LIMIT)
