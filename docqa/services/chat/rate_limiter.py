"""Per-session sliding-window rate limiting for chat messages."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
import logging
import math
import time
from typing import Any, Callable, Dict, List, Optional, Sequence
import uuid

import redis.asyncio as redis

from docqa.core.config import settings

logger = logging.getLogger(__name__)

SESSION_IDLE_SECONDS = 5 * 60


@dataclass
class RateLimitDecision:
    allowed: bool
    retry_after: int = 0
    reason: Optional[str] = None
    limit: Optional[int] = None
    window: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "allowed": self.allowed,
            "retryAfter": self.retry_after,
            "reason": self.reason,
            "limit": self.limit,
            "window": self.window,
        }


class RateLimiter(ABC):
    """Burst and sustained sliding windows over the same timestamp list.

    A rejected request is not recorded, so it does not count towards either
    window.
    """

    def __init__(
        self,
        burst_limit: Optional[int] = None,
        burst_window: Optional[int] = None,
        sustained_limit: Optional[int] = None,
        sustained_window: Optional[int] = None,
    ):
        self.burst_limit = burst_limit or settings.BURST_LIMIT
        self.burst_window = burst_window or settings.BURST_WINDOW_SECONDS
        self.sustained_limit = sustained_limit or settings.SUSTAINED_LIMIT
        self.sustained_window = sustained_window or settings.SUSTAINED_WINDOW_SECONDS

    @abstractmethod
    async def check_limit(self, session_id: str) -> RateLimitDecision:
        ...

    @abstractmethod
    async def cleanup(self) -> int:
        ...

    @staticmethod
    def _retry_after(oldest: float, window: int, now: float) -> int:
        return max(math.ceil(oldest + window - now), 1)

    def decide(self, timestamps: Sequence[float], now: float) -> RateLimitDecision:
        """Decision for a session given its recorded timestamps, oldest first."""
        recent = [ts for ts in timestamps if ts > now - self.sustained_window]
        burst = [ts for ts in recent if ts > now - self.burst_window]

        if len(burst) >= self.burst_limit:
            return RateLimitDecision(
                allowed=False,
                retry_after=self._retry_after(burst[0], self.burst_window, now),
                reason="burst_limit",
                limit=self.burst_limit,
                window=f"{self.burst_window} seconds",
            )

        if len(recent) >= self.sustained_limit:
            return RateLimitDecision(
                allowed=False,
                retry_after=self._retry_after(recent[0], self.sustained_window, now),
                reason="rate_limit",
                limit=self.sustained_limit,
                window="minute" if self.sustained_window == 60 else f"{self.sustained_window} seconds",
            )

        return RateLimitDecision(allowed=True)


class InMemoryRateLimiter(RateLimiter):
    """Process-local limiter. State does not survive restarts or span instances."""

    def __init__(
        self,
        clock: Callable[[], float] = time.time,
        sweep_interval: Optional[int] = None,
        **limits: int,
    ):
        super().__init__(**limits)
        self._clock = clock
        self.sweep_interval = sweep_interval or settings.RATE_LIMIT_SWEEP_SECONDS
        self.sessions: Dict[str, List[float]] = {}
        self._last_sweep = clock()

    async def check_limit(self, session_id: str) -> RateLimitDecision:
        now = self._clock()
        if now - self._last_sweep >= self.sweep_interval:
            await self.cleanup()

        timestamps = [ts for ts in self.sessions.get(session_id, []) if ts > now - self.sustained_window]
        decision = self.decide(timestamps, now)
        if decision.allowed:
            timestamps.append(now)
        else:
            logger.info(
                f"Rate limit hit for session {session_id[:8]}: {decision.reason}, retry in {decision.retry_after}s"
            )
        self.sessions[session_id] = timestamps
        return decision

    async def cleanup(self) -> int:
        """Drop sessions with no activity in the last five minutes."""
        now = self._clock()
        self._last_sweep = now
        cutoff = now - SESSION_IDLE_SECONDS
        removed = 0
        for session_id in list(self.sessions):
            recent = [ts for ts in self.sessions[session_id] if ts > cutoff]
            if recent:
                self.sessions[session_id] = recent
            else:
                del self.sessions[session_id]
                removed += 1
        if removed:
            logger.info(f"Rate limiter cleanup: removed {removed} inactive sessions")
        return removed

    def stats(self) -> Dict[str, int]:
        return {
            "active_sessions": len(self.sessions),
            "total_timestamps": sum(len(v) for v in self.sessions.values()),
        }


class RedisRateLimiter(RateLimiter):
    """Limiter shared across instances through one Redis sorted set per session."""

    def __init__(
        self,
        redis_client: Optional[redis.Redis] = None,
        clock: Callable[[], float] = time.time,
        key_prefix: str = "chat_rate",
        **limits: int,
    ):
        super().__init__(**limits)
        self.redis_client = redis_client or redis.from_url(settings.REDIS_URL)
        self._clock = clock
        self.key_prefix = key_prefix

    def _key(self, session_id: str) -> str:
        return f"{self.key_prefix}:{session_id}"

    async def check_limit(self, session_id: str) -> RateLimitDecision:
        now = self._clock()
        key = self._key(session_id)

        pipe = self.redis_client.pipeline()
        pipe.zremrangebyscore(key, 0, now - self.sustained_window)
        pipe.zrange(key, 0, -1, withscores=True)
        results = await pipe.execute()
        timestamps = [score for _, score in results[1]]

        decision = self.decide(timestamps, now)
        if decision.allowed:
            pipe = self.redis_client.pipeline()
            pipe.zadd(key, {f"{now}:{uuid.uuid4().hex[:8]}": now})
            pipe.expire(key, self.sustained_window)
            await pipe.execute()
        else:
            logger.info(
                f"Rate limit hit for session {session_id[:8]}: {decision.reason}, retry in {decision.retry_after}s"
            )
        return decision

    async def cleanup(self) -> int:
        # Keys expire on their own
        return 0


_limiter: Optional[RateLimiter] = None


def get_rate_limiter() -> RateLimiter:
    """Process-wide limiter for the configured backend."""
    global _limiter
    if _limiter is None:
        if settings.RATE_LIMIT_BACKEND == "redis":
            _limiter = RedisRateLimiter()
        else:
            _limiter = InMemoryRateLimiter()
    return _limiter
