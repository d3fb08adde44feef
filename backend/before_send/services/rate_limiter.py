"""
Rate Limiter
Daily per-identifier quota with a local and a Redis-backed implementation
"""
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Mapping, Optional

from before_send.clock import Clock, utcnow
from before_send.config import Settings

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 3
DEFAULT_WINDOW = timedelta(days=1)
UNKNOWN_IP = "unknown"


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset: datetime


def rate_limit_identifier(user_id: Optional[str], ip: Optional[str]) -> str:
    """User-scoped key for signed-in callers, IP-scoped key otherwise"""
    if user_id:
        return f"user:{user_id}"
    return f"ip:{ip or UNKNOWN_IP}"


def client_ip(headers: Mapping[str, str]) -> str:
    """
    First X-Forwarded-For entry, else X-Real-IP, else "unknown".

    Both headers are client-controlled, so anonymous limits can be dodged by
    spoofing them and are shared by everyone behind the same proxy.
    """
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first

    return headers.get("x-real-ip") or UNKNOWN_IP


class BaseRateLimiter(ABC):
    """Base class for rate limit backends"""

    def __init__(self, limit: int = DEFAULT_LIMIT, window: timedelta = DEFAULT_WINDOW, clock: Clock = utcnow):
        self.limit = limit
        self.window = window
        self.clock = clock

    @abstractmethod
    async def check(self, identifier: str) -> RateLimitResult:
        """Count one request for the identifier and report whether it is allowed"""

    async def close(self) -> None:
        """Release backend connections; nothing to do for local counters"""


@dataclass
class _Window:
    count: int
    reset_at: datetime


class InMemoryRateLimiter(BaseRateLimiter):
    """
    Fixed window counter kept in process memory.
    Suitable for a single process; counters vanish on restart.
    """

    def __init__(self, limit: int = DEFAULT_LIMIT, window: timedelta = DEFAULT_WINDOW, clock: Clock = utcnow):
        super().__init__(limit, window, clock)
        self._windows: Dict[str, _Window] = {}
        self._lock = threading.Lock()

    async def check(self, identifier: str) -> RateLimitResult:
        with self._lock:
            now = self.clock()
            current = self._windows.get(identifier)

            if current is None or now > current.reset_at:
                self._evict_expired(now)
                current = _Window(count=1, reset_at=now + self.window)
                self._windows[identifier] = current
                return RateLimitResult(allowed=True, remaining=self.limit - 1, reset=current.reset_at)

            if current.count >= self.limit:
                return RateLimitResult(allowed=False, remaining=0, reset=current.reset_at)

            current.count += 1
            return RateLimitResult(
                allowed=True,
                remaining=self.limit - current.count,
                reset=current.reset_at,
            )

    def _evict_expired(self, now: datetime) -> None:
        expired = [key for key, w in self._windows.items() if now > w.reset_at]
        for key in expired:
            del self._windows[key]

    def __len__(self) -> int:
        return len(self._windows)


class RedisRateLimiter(BaseRateLimiter):
    """
    Fixed window counter shared through Redis.

    SET NX with an expiry opens the window, INCR counts the request and
    PTTL reports when the window closes. All three run in one MULTI/EXEC
    so concurrent requests never lose an increment.
    """

    def __init__(
        self,
        client,
        limit: int = DEFAULT_LIMIT,
        window: timedelta = DEFAULT_WINDOW,
        prefix: str = "before-send",
        clock: Clock = utcnow,
    ):
        super().__init__(limit, window, clock)
        self.client = client
        self.prefix = prefix

    def _key(self, identifier: str) -> str:
        return f"{self.prefix}:{identifier}"

    async def check(self, identifier: str) -> RateLimitResult:
        key = self._key(identifier)
        window_ms = int(self.window.total_seconds() * 1000)

        async with self.client.pipeline(transaction=True) as pipe:
            pipe.set(key, 0, px=window_ms, nx=True)
            pipe.incr(key)
            pipe.pttl(key)
            _, count, ttl_ms = await pipe.execute()

        # A key without expiry should not exist; treat it as a fresh window
        if ttl_ms is None or ttl_ms < 0:
            ttl_ms = window_ms
        reset = self.clock() + timedelta(milliseconds=ttl_ms)

        count = int(count)
        if count > self.limit:
            return RateLimitResult(allowed=False, remaining=0, reset=reset)

        return RateLimitResult(allowed=True, remaining=self.limit - count, reset=reset)

    async def close(self) -> None:
        await self.client.aclose()


def build_rate_limiter(settings: Settings) -> BaseRateLimiter:
    """Redis backend when a URL is configured, local counter otherwise"""
    if settings.rate_limit_redis_url:
        import redis.asyncio as redis

        logger.info("Rate limiting through Redis")
        client = redis.from_url(settings.rate_limit_redis_url, decode_responses=True)
        return RedisRateLimiter(
            client,
            limit=settings.rate_limit_per_day,
            prefix=settings.rate_limit_prefix,
        )

    logger.info("Rate limiting in process memory")
    return InMemoryRateLimiter(limit=settings.rate_limit_per_day)
