import pytest

from Gateway.errors import RateLimited
from Gateway.rate_limiters.user_rate_limiter import RateLimitDecision, RedisRateLimiter


class BrokenRedis:
    def pipeline(self, transaction=True):
        raise ConnectionError("redis unavailable")


def test_key_is_scoped_by_user_and_limiter():
    limiter = RedisRateLimiter(None, "upload", 10, 3600)
    assert limiter.key("u1") == "ratelimit:user:u1:upload"


def test_no_client_always_allows():
    limiter = RedisRateLimiter(None, "message", 1, 60)
    assert limiter.check("u1").allowed
    assert limiter.check("u1").allowed


def test_redis_failure_does_not_block():
    limiter = RedisRateLimiter(BrokenRedis(), "message", 1, 60)
    assert limiter.check("u1") == RateLimitDecision(allowed=True)


def test_enforce_raises_with_retry_after(monkeypatch):
    limiter = RedisRateLimiter(None, "message", 20, 60)
    monkeypatch.setattr(limiter, "check", lambda user_id: RateLimitDecision(allowed=False, wait_seconds=17))
    with pytest.raises(RateLimited) as exc_info:
        limiter.enforce("u1", "Sending messages too quickly.")
    assert exc_info.value.status_code == 429
    assert exc_info.value.headers == {"Retry-After": "17"}
    assert "17 seconds" in exc_info.value.message
