from __future__ import annotations

import asyncio
import logging
import math
import time
from collections.abc import Awaitable, Callable
from typing import TypeVar

from courier.errors import RateLimitError
from courier.models import TokenBucket

T = TypeVar("T")

GLOBAL_CAPACITY = 50
GLOBAL_REFILL_RATE = 50.0
CHANNEL_CAPACITY = 5
CHANNEL_REFILL_RATE = 5.0

logger = logging.getLogger(__name__)


def wait_interval_ms(bucket: TokenBucket) -> int:
    # Time to generate one token.
    return math.ceil(1000 / bucket.refill_rate)


class RateLimiter:
    """Global plus per-channel token buckets for outbound API calls.

    Every operation takes one token from the global bucket and then one from
    its channel bucket. Refill, check and deduct happen with no await in
    between, so coroutines sharing the limiter cannot oversubscribe a bucket.
    """

    def __init__(
        self,
        global_capacity: int = GLOBAL_CAPACITY,
        global_refill_rate: float = GLOBAL_REFILL_RATE,
        channel_capacity: int = CHANNEL_CAPACITY,
        channel_refill_rate: float = CHANNEL_REFILL_RATE,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.clock = clock
        self.sleep = sleep
        self.channel_capacity = channel_capacity
        self.channel_refill_rate = channel_refill_rate
        self.global_bucket = TokenBucket.full(global_capacity, global_refill_rate, clock())
        self.channel_buckets: dict[str, TokenBucket] = {}

    async def acquire_token(self, channel_id: str) -> None:
        await self._acquire_from_bucket(self.global_bucket, "global")
        await self._acquire_from_bucket(self.channel_bucket(channel_id), channel_id)

    def channel_bucket(self, channel_id: str) -> TokenBucket:
        bucket = self.channel_buckets.get(channel_id)
        if bucket is None:
            bucket = TokenBucket.full(self.channel_capacity, self.channel_refill_rate, self.clock())
            self.channel_buckets[channel_id] = bucket
        return bucket

    def handle_rate_limit(self, channel_id: str, retry_after_ms: int) -> None:
        logger.warning("Rate limited on channel=%s retry_after_ms=%s", channel_id, retry_after_ms)
        bucket = self.channel_bucket(channel_id)
        bucket.tokens = 0.0
        # A future last_refill makes the next refills negative until the cooldown passes.
        bucket.last_refill = self.clock() + retry_after_ms / 1000

    async def execute_with_rate_limit(self, channel_id: str, operation: Callable[[], Awaitable[T]]) -> T:
        await self.acquire_token(channel_id)
        try:
            return await operation()
        except RateLimitError as exc:
            self.handle_rate_limit(channel_id, exc.retry_after_ms)
            if exc.channel_id == channel_id:
                raise
            raise RateLimitError(exc.retry_after_ms, channel_id) from exc

    def reset(self) -> None:
        now = self.clock()
        for bucket in (self.global_bucket, *self.channel_buckets.values()):
            bucket.tokens = float(bucket.capacity)
            bucket.last_refill = now

    async def _acquire_from_bucket(self, bucket: TokenBucket, bucket_id: str) -> None:
        while True:
            self._refill(bucket)
            if bucket.tokens >= 1:
                bucket.tokens -= 1
                logger.debug("Acquired token from %s bucket. Remaining: %.2f", bucket_id, bucket.tokens)
                return
            wait_ms = wait_interval_ms(bucket)
            logger.debug("%s bucket empty. Waiting %sms for refill", bucket_id, wait_ms)
            await self.sleep(wait_ms / 1000)

    def _refill(self, bucket: TokenBucket) -> None:
        now = self.clock()
        elapsed = now - bucket.last_refill
        bucket.tokens = min(bucket.capacity, bucket.tokens + elapsed * bucket.refill_rate)
        bucket.last_refill = now
