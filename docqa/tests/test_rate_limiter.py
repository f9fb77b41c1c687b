"""Tests for the sliding-window chat rate limiter."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from docqa.services.chat.rate_limiter import InMemoryRateLimiter, RedisRateLimiter


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def limiter(clock):
    return InMemoryRateLimiter(
        clock=clock,
        sweep_interval=10_000,
        burst_limit=3,
        burst_window=10,
        sustained_limit=10,
        sustained_window=60,
    )


@pytest.mark.asyncio
async def test_burst_limit(limiter, clock):
    for offset in (0, 1, 2):
        clock.now = 1000 + offset
        assert (await limiter.check_limit("session-a")).allowed

    clock.now = 1003
    decision = await limiter.check_limit("session-a")

    assert not decision.allowed
    assert decision.reason == "burst_limit"
    assert decision.retry_after == 7
    assert decision.limit == 3
    assert decision.window == "10 seconds"
    assert len(limiter.sessions["session-a"]) == 3


@pytest.mark.asyncio
async def test_burst_window_slides(limiter, clock):
    for offset in (0, 1, 2):
        clock.now = 1000 + offset
        await limiter.check_limit("session-a")

    clock.now = 1010.5
    assert (await limiter.check_limit("session-a")).allowed


@pytest.mark.asyncio
async def test_sustained_limit(limiter, clock):
    for i in range(10):
        clock.now = 1000 + i * 4
        assert (await limiter.check_limit("session-a")).allowed

    clock.now = 1040
    decision = await limiter.check_limit("session-a")

    assert not decision.allowed
    assert decision.reason == "rate_limit"
    assert decision.retry_after == 20
    assert decision.window == "minute"
    assert decision.to_dict()["retryAfter"] == 20


@pytest.mark.asyncio
async def test_sessions_are_independent(limiter, clock):
    for _ in range(3):
        await limiter.check_limit("session-a")

    assert not (await limiter.check_limit("session-a")).allowed
    assert (await limiter.check_limit("session-b")).allowed


@pytest.mark.asyncio
async def test_cleanup_drops_idle_sessions(limiter, clock):
    await limiter.check_limit("idle")
    clock.now += 301
    await limiter.check_limit("active")

    removed = await limiter.cleanup()

    assert removed == 1
    assert list(limiter.sessions) == ["active"]
    assert limiter.stats() == {"active_sessions": 1, "total_timestamps": 1}


def redis_client_with(timestamps):
    client = MagicMock()
    read_pipe = MagicMock()
    read_pipe.execute = AsyncMock(return_value=[0, [(f"{ts}:x", ts) for ts in timestamps]])
    write_pipe = MagicMock()
    write_pipe.execute = AsyncMock(return_value=[1, True])
    client.pipeline.side_effect = [read_pipe, write_pipe]
    return client, read_pipe, write_pipe


@pytest.mark.asyncio
async def test_redis_limiter_records_allowed_request(clock):
    client, read_pipe, write_pipe = redis_client_with([990.0])
    limiter = RedisRateLimiter(redis_client=client, clock=clock, burst_limit=3, burst_window=10)

    decision = await limiter.check_limit("session-a")

    assert decision.allowed
    read_pipe.zremrangebyscore.assert_called_once_with("chat_rate:session-a", 0, clock.now - limiter.sustained_window)
    write_pipe.zadd.assert_called_once()
    write_pipe.expire.assert_called_once_with("chat_rate:session-a", limiter.sustained_window)


@pytest.mark.asyncio
async def test_redis_limiter_rejects_without_recording(clock):
    client, _, write_pipe = redis_client_with([998.0, 999.0, 999.5])
    limiter = RedisRateLimiter(redis_client=client, clock=clock, burst_limit=3, burst_window=10)

    decision = await limiter.check_limit("session-a")

    assert not decision.allowed
    assert decision.reason == "burst_limit"
    assert decision.retry_after == 8
    write_pipe.zadd.assert_not_called()
