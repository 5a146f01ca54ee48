import math
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Protocol

import structlog
from redis.asyncio import Redis

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    reset_after: int  # seconds until the current window ends


@dataclass
class RateLimitWindow:
    count: int
    window_start: float


class RateLimiter(Protocol):
    """Counts one request for a client and says whether it is admitted."""
    limit: int
    window_seconds: int

    async def hit(self, client_id: str) -> RateLimitDecision: ...


class FixedWindowRateLimiter:
    """
    Per-client fixed window counter kept in process memory.

    Updates are a plain read-increment-compare; concurrent requests from the
    same client may be over-admitted slightly.
    """

    def __init__(
        self,
        limit: int = 30,
        window_seconds: int = 10,
        clock: Callable[[], float] = time.monotonic,
        max_tracked_clients: int = 10_000,
    ):
        self.limit = limit
        self.window_seconds = window_seconds
        self.max_tracked_clients = max_tracked_clients
        self._clock = clock
        self._windows: Dict[str, RateLimitWindow] = {}

    def __len__(self) -> int:
        return len(self._windows)

    async def hit(self, client_id: str) -> RateLimitDecision:
        now = self._clock()
        window = self._windows.get(client_id)
        if window is None or now - window.window_start >= self.window_seconds:
            if window is None and len(self._windows) >= self.max_tracked_clients:
                self._prune(now)
            window = RateLimitWindow(count=0, window_start=now)
            self._windows[client_id] = window

        window.count += 1
        reset_after = max(0, math.ceil(window.window_start + self.window_seconds - now))
        return RateLimitDecision(
            allowed=window.count <= self.limit,
            limit=self.limit,
            remaining=max(0, self.limit - window.count),
            reset_after=reset_after,
        )

    def _prune(self, now: float) -> None:
        expired = [
            key for key, window in self._windows.items()
            if now - window.window_start >= self.window_seconds
        ]
        for key in expired:
            del self._windows[key]
        logger.debug("rate_limit_windows_pruned", removed=len(expired), tracked=len(self._windows))


class RedisRateLimiter:
    """
    Fixed window counter stored in Redis, one key per client and window.
    A Lua script makes the increment and the expiry a single step.
    """

    SCRIPT = """
    local key = KEYS[1]
    local window = tonumber(ARGV[1])
    local current = redis.call('INCR', key)
    if current == 1 then
      redis.call('EXPIRE', key, window)
    end
    local ttl = redis.call('TTL', key)
    return {current, ttl}
    """

    def __init__(
        self,
        redis_client: Redis,
        limit: int = 30,
        window_seconds: int = 10,
        key_prefix: str = "rate_limit:suggestions",
    ):
        self.redis_client = redis_client
        self.limit = limit
        self.window_seconds = window_seconds
        self.key_prefix = key_prefix

    @classmethod
    def from_url(cls, url: Optional[str], **kwargs) -> "RedisRateLimiter":
        if not url:
            raise ValueError("REDIS_URL is not set in the environment")
        return cls(Redis.from_url(url), **kwargs)

    async def hit(self, client_id: str) -> RateLimitDecision:
        key = f"{self.key_prefix}:{client_id}"
        try:
            result = await self.redis_client.eval(self.SCRIPT, 1, key, self.window_seconds)
            count = int(result[0])
            ttl = int(result[1])
        except Exception as e:
            # Fail open: a Redis outage must not take suggestions down with it
            logger.error("rate_limit_redis_error", error=str(e), key=key)
            return RateLimitDecision(
                allowed=True,
                limit=self.limit,
                remaining=self.limit,
                reset_after=self.window_seconds,
            )
        return RateLimitDecision(
            allowed=count <= self.limit,
            limit=self.limit,
            remaining=max(0, self.limit - count),
            reset_after=ttl if ttl >= 0 else self.window_seconds,
        )

    async def close(self) -> None:
        await self.redis_client.aclose()
