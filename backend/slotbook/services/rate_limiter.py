"""
Per-caller fixed-window rate limiter backed by Redis.

Each (purpose, caller) pair owns one counter key, rate:{purpose}:{caller}.
A Lua script increments it and sets the window TTL on the first increment,
atomically, so concurrent requests from the same caller cannot both see
count == 1. A call is denied once the post-increment count exceeds the limit;
the caller then waits for the key to expire.

Circuit Breaker Pattern:
  On Redis failure, the limiter "fails open" (permits the request).
  An outage of the shared counter store must not take the booking path down
  with it; the admission transaction and the storage constraints still guard
  the slot.
"""

import os
import time
from dataclasses import dataclass
from typing import Callable, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from slotbook.core.config import get_settings
from slotbook.core.errors import RateLimited
from slotbook.core.logging import get_logger
from slotbook.core.metrics import record_rate_limit, redis_connection_errors
from slotbook.infrastructure.redis_client import get_redis

logger = get_logger(__name__)

# Load Lua script
SCRIPT_PATH = os.path.join(os.path.dirname(__file__), '../infrastructure/rate_limit.lua')
with open(SCRIPT_PATH, 'r') as f:
    RATE_LIMIT_SCRIPT = f.read()

BOOKING_PURPOSE = "booking"


@dataclass(frozen=True)
class RateLimitDecision:
    permitted: bool
    limit: int
    remaining: int
    reset_at: int  # epoch seconds
    retry_after: int  # seconds until the window resets

    def headers(self) -> dict:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset_at),
        }


class FixedWindowRateLimiter:
    """
    Fixed-window counter for one purpose (e.g. the booking endpoint).

    Callers are tracked independently; there is no shared budget.
    """

    def __init__(
        self,
        purpose: str,
        limit: int,
        window_seconds: int,
        client_getter: Callable[[], redis.Redis] = get_redis,
    ):
        self.purpose = purpose
        self.limit = limit
        self.window_seconds = window_seconds
        self._client_getter = client_getter
        self._script = None
        self._script_client = None

    def _script_for(self, client: redis.Redis):
        """Register the Lua script once per client; later calls reuse its SHA."""
        if self._script is None or self._script_client is not client:
            self._script = client.register_script(RATE_LIMIT_SCRIPT)
            self._script_client = client
        return self._script

    def key_for(self, caller_id) -> str:
        return f"rate:{self.purpose}:{caller_id}"

    async def allow(self, caller_id, now: Optional[float] = None) -> RateLimitDecision:
        now = now if now is not None else time.time()
        key = self.key_for(caller_id)

        try:
            client = self._client_getter()
            script = self._script_for(client)
            count, ttl = await script(keys=[key], args=[self.window_seconds])
            count, ttl = int(count), int(ttl)
        except (RedisError, OSError) as exc:
            redis_connection_errors.inc()
            record_rate_limit(self.purpose, "fail_open")
            logger.warning(
                "rate_limiter_fail_open",
                purpose=self.purpose,
                caller_id=caller_id,
                error=str(exc),
            )
            return RateLimitDecision(
                permitted=True,
                limit=self.limit,
                remaining=self.limit,
                reset_at=int(now) + self.window_seconds,
                retry_after=0,
            )

        permitted = count <= self.limit
        decision = RateLimitDecision(
            permitted=permitted,
            limit=self.limit,
            remaining=max(0, self.limit - count),
            reset_at=int(now) + ttl,
            retry_after=ttl,
        )

        if permitted:
            record_rate_limit(self.purpose, "permitted")
        else:
            record_rate_limit(self.purpose, "denied")
            logger.warning(
                "rate_limit_exceeded",
                purpose=self.purpose,
                caller_id=caller_id,
                count=count,
                limit=self.limit,
                retry_after=ttl,
            )
        return decision

    async def check(self, caller_id) -> RateLimitDecision:
        """Like allow(), but raises RateLimited on denial."""
        decision = await self.allow(caller_id)
        if not decision.permitted:
            raise RateLimited(decision.retry_after, decision=decision)
        return decision


# Singleton instance
_booking_limiter: Optional[FixedWindowRateLimiter] = None


def booking_rate_limiter() -> FixedWindowRateLimiter:
    """Booking endpoint limiter, rebuilt only when its settings change."""
    global _booking_limiter
    settings = get_settings()
    limit = settings.BOOKING_RATE_LIMIT_MAX
    window = settings.BOOKING_RATE_LIMIT_WINDOW_SECONDS
    limiter = _booking_limiter
    if limiter is None or (limiter.limit, limiter.window_seconds) != (limit, window):
        _booking_limiter = FixedWindowRateLimiter(
            purpose=BOOKING_PURPOSE, limit=limit, window_seconds=window
        )
    return _booking_limiter
