"""Fixed-window request throttling kept in Redis.

Counters live in ``rate:<scope>:<sha256(subject)>`` and expire with their
window, so limits survive process restarts and are shared across workers.
"""

import hashlib
import logging
from dataclasses import dataclass

from redis import Redis

from app.cache import store_call

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    retry_after: int


class RateLimiter:
    def __init__(self, client: Redis, *, enabled: bool = True) -> None:
        self.client = client
        self.enabled = enabled

    @staticmethod
    def _key(scope: str, subject: str) -> str:
        digest = hashlib.sha256(subject.encode("utf-8")).hexdigest()
        return f"rate:{scope}:{digest}"

    def hit(self, scope: str, subject: str, limit: int, window_seconds: int) -> RateLimitResult:
        """Count one request for ``subject`` and report whether it is within ``limit``."""
        if not self.enabled:
            return RateLimitResult(allowed=True, remaining=limit, retry_after=0)

        key = self._key(scope, subject)
        with store_call("rate_limit"):
            pipe = self.client.pipeline(transaction=True)
            pipe.incr(key)
            pipe.ttl(key)
            count, ttl = pipe.execute()
            if ttl is None or ttl < 0:
                self.client.expire(key, window_seconds)
                ttl = window_seconds

        retry_after = ttl
        if count > limit:
            logger.warning("Rate limit exceeded: scope=%s count=%s limit=%s", scope, count, limit)
            return RateLimitResult(allowed=False, remaining=0, retry_after=retry_after)
        return RateLimitResult(allowed=True, remaining=limit - count, retry_after=0)

    def reset(self, scope: str, subject: str) -> None:
        with store_call("rate_limit_reset"):
            self.client.delete(self._key(scope, subject))
