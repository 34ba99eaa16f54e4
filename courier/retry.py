from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from courier.alerts import AlertManager
from courier.classifier import ErrorClassifier
from courier.models import ErrorKind, RateLimited, RetryPolicy
from courier.rate_limiter import RateLimiter

T = TypeVar("T")

logger = logging.getLogger(__name__)


def backoff_delay_ms(attempt: int, base_delay_ms: int) -> int:
    return base_delay_ms * (2 ** max(attempt, 0))


class RetryOrchestrator:
    """Runs an async operation up to ``max_retries + 1`` times.

    Failures classified as fatal, and the failure of the last attempt, are
    re-raised unchanged. When a rate limiter is attached and the call names
    a channel, every attempt first acquires a token for that channel and a
    rate-limited failure depletes the channel bucket before backing off.
    """

    def __init__(
        self,
        policy: RetryPolicy | None = None,
        rate_limiter: RateLimiter | None = None,
        classifier: ErrorClassifier | None = None,
        alerts: AlertManager | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.policy = policy or RetryPolicy()
        self.rate_limiter = rate_limiter
        self.classifier = classifier or ErrorClassifier(self.policy.retryable_http_codes)
        self.alerts = alerts
        self.sleep = sleep

    def calculate_delay(self, attempt: int) -> int:
        return backoff_delay_ms(attempt, self.policy.base_delay_ms)

    async def execute(self, operation: Callable[[], Awaitable[T]], channel_id: str | None = None) -> T:
        max_retries = self.policy.max_retries
        for attempt in range(max_retries + 1):
            try:
                if self.rate_limiter is not None and channel_id is not None:
                    await self.rate_limiter.acquire_token(channel_id)
                return await operation()
            except Exception as exc:
                classification = self.classifier.classify(exc)
                if classification.kind is ErrorKind.FATAL:
                    logger.debug("Non-retryable %s: %s", type(exc).__name__, exc)
                    raise
                if isinstance(classification, RateLimited) and self.rate_limiter is not None and channel_id is not None:
                    self.rate_limiter.handle_rate_limit(channel_id, classification.retry_after_ms)
                if attempt >= max_retries:
                    logger.error("Max retries (%s) exceeded: %s: %s", max_retries, type(exc).__name__, exc)
                    if self.alerts is not None:
                        self.alerts.error(
                            "RETRY_EXHAUSTED",
                            f"operation failed after {attempt + 1} attempts: {exc}",
                            {"channel_id": channel_id, "kind": classification.kind.value},
                        )
                    raise
                delay = self.calculate_delay(attempt)
                logger.warning(
                    "Retry attempt %s/%s after %sms due to %s: %s",
                    attempt + 1,
                    max_retries,
                    delay,
                    classification.kind.value,
                    exc,
                )
                await self.sleep(delay / 1000)
