import asyncio
import time

import pytest

from courier.errors import RateLimitError
from courier.rate_limiter import RateLimiter, wait_interval_ms


class FakeClock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def _limiter(clock: FakeClock, **kwargs) -> RateLimiter:
    return RateLimiter(clock=clock, sleep=clock.sleep, **kwargs)


def test_sixth_channel_acquisition_waits_one_refill_interval() -> None:
    clock = FakeClock()
    limiter = _limiter(clock)

    async def scenario() -> None:
        for _ in range(6):
            await limiter.acquire_token("chan-1")

    asyncio.run(scenario())

    assert clock.sleeps == [pytest.approx(0.2)]
    assert clock.now == pytest.approx(0.2)


def test_channel_buckets_are_independent() -> None:
    clock = FakeClock()
    limiter = _limiter(clock)

    async def scenario() -> None:
        for _ in range(5):
            await limiter.acquire_token("chan-1")
        for _ in range(5):
            await limiter.acquire_token("chan-2")

    asyncio.run(scenario())

    assert clock.sleeps == []
    assert set(limiter.channel_buckets) == {"chan-1", "chan-2"}
    assert limiter.global_bucket.tokens == pytest.approx(40)


def test_global_bucket_is_acquired_before_channel_bucket() -> None:
    clock = FakeClock()
    limiter = _limiter(clock, global_capacity=1, global_refill_rate=1.0)

    async def scenario() -> None:
        await limiter.acquire_token("chan-1")
        await limiter.acquire_token("chan-2")

    asyncio.run(scenario())

    # chan-2 has a full bucket, so the only wait is the global one (1000ms at 1/s).
    assert clock.sleeps == [pytest.approx(1.0)]
    assert limiter.channel_buckets["chan-2"].tokens == pytest.approx(4)


def test_tokens_never_exceed_capacity_after_refill() -> None:
    clock = FakeClock()
    limiter = _limiter(clock)

    async def scenario() -> None:
        for step in range(40):
            await limiter.acquire_token("chan-1")
            bucket = limiter.channel_buckets["chan-1"]
            assert bucket.tokens <= bucket.capacity
            assert limiter.global_bucket.tokens <= limiter.global_bucket.capacity
            clock.now += 0.05 * (step % 7)

    asyncio.run(scenario())

    clock.now += 3600
    limiter._refill(limiter.channel_buckets["chan-1"])
    assert limiter.channel_buckets["chan-1"].tokens == 5


def test_handle_rate_limit_blocks_channel_for_cooldown() -> None:
    clock = FakeClock()
    limiter = _limiter(clock)

    async def scenario() -> None:
        limiter.handle_rate_limit("chan-1", 5000)
        await limiter.acquire_token("chan-1")

    asyncio.run(scenario())

    assert clock.now >= 5.0
    # Polling keeps the bucket's normal interval regardless of the cooldown length.
    assert set(round(s, 6) for s in clock.sleeps) == {0.2}


def test_handle_rate_limit_does_not_touch_other_channels() -> None:
    clock = FakeClock()
    limiter = _limiter(clock)

    async def scenario() -> None:
        limiter.handle_rate_limit("chan-1", 5000)
        await limiter.acquire_token("chan-2")

    asyncio.run(scenario())

    assert clock.sleeps == []


def test_reset_refills_every_bucket() -> None:
    clock = FakeClock()
    limiter = _limiter(clock)

    async def scenario() -> None:
        for _ in range(5):
            await limiter.acquire_token("chan-1")

    asyncio.run(scenario())
    limiter.handle_rate_limit("chan-2", 10000)
    clock.now += 1.0

    limiter.reset()

    assert limiter.global_bucket.tokens == 50
    assert limiter.channel_buckets["chan-1"].tokens == 5
    assert limiter.channel_buckets["chan-2"].tokens == 5
    assert limiter.channel_buckets["chan-2"].last_refill == clock.now


def test_execute_with_rate_limit_depletes_channel_and_tags_error() -> None:
    clock = FakeClock(now=10.0)
    limiter = _limiter(clock)

    async def operation():
        raise RateLimitError(3000)

    with pytest.raises(RateLimitError) as exc_info:
        asyncio.run(limiter.execute_with_rate_limit("chan-1", operation))

    assert exc_info.value.channel_id == "chan-1"
    assert exc_info.value.retry_after_ms == 3000
    bucket = limiter.channel_buckets["chan-1"]
    assert bucket.tokens == 0
    assert bucket.last_refill == pytest.approx(13.0)


def test_execute_with_rate_limit_returns_result() -> None:
    clock = FakeClock()
    limiter = _limiter(clock)

    async def operation():
        return {"id": "1"}

    assert asyncio.run(limiter.execute_with_rate_limit("chan-1", operation)) == {"id": "1"}
    assert limiter.channel_buckets["chan-1"].tokens == pytest.approx(4)


def test_wait_interval_rounds_up() -> None:
    clock = FakeClock()
    limiter = _limiter(clock, global_capacity=3, global_refill_rate=3.0)
    assert wait_interval_ms(limiter.global_bucket) == 334
    assert wait_interval_ms(limiter.channel_bucket("chan-1")) == 200


def test_real_clock_sixth_acquisition_waits() -> None:
    limiter = RateLimiter()

    async def scenario() -> float:
        t0 = time.monotonic()
        for _ in range(6):
            await limiter.acquire_token("chan-1")
        return time.monotonic() - t0

    elapsed = asyncio.run(scenario())

    # 6th token should wait around 0.2s at 5 tokens/sec.
    assert elapsed >= 0.19


class YieldingClock(FakeClock):
    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(0)
        await super().sleep(seconds)


def test_concurrent_acquisitions_never_oversubscribe_channel() -> None:
    clock = YieldingClock()
    limiter = _limiter(clock)
    granted: list[float] = []

    async def acquire() -> None:
        await limiter.acquire_token("c")
        granted.append(clock.now)

    async def scenario() -> None:
        await asyncio.gather(*(acquire() for _ in range(10)))

    asyncio.run(scenario())

    assert len(granted) == 10
    # Five tokens up front, then one every 200ms at most.
    assert clock.now >= 1.0 - 1e-9
    for index, at in enumerate(sorted(granted)):
        assert at >= (index - 4) * 0.2 - 1e-9
    assert limiter.channel_bucket("c").tokens >= 0
