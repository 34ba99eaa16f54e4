from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

DEFAULT_RETRYABLE_HTTP_CODES = frozenset({429, 500, 502, 503, 504})


class ErrorKind(str, Enum):
    RATE_LIMITED = "RATE_LIMITED"
    NETWORK_TRANSIENT = "NETWORK_TRANSIENT"
    HTTP_TRANSIENT = "HTTP_TRANSIENT"
    FATAL = "FATAL"


@dataclass(frozen=True)
class RateLimited:
    retry_after_ms: int
    kind: ErrorKind = field(default=ErrorKind.RATE_LIMITED, init=False)


@dataclass(frozen=True)
class NetworkTransient:
    code: str
    kind: ErrorKind = field(default=ErrorKind.NETWORK_TRANSIENT, init=False)


@dataclass(frozen=True)
class HttpTransient:
    status_code: int
    kind: ErrorKind = field(default=ErrorKind.HTTP_TRANSIENT, init=False)


@dataclass(frozen=True)
class Fatal:
    kind: ErrorKind = field(default=ErrorKind.FATAL, init=False)


ErrorClassification = RateLimited | NetworkTransient | HttpTransient | Fatal


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 3
    base_delay_ms: int = 1000
    retryable_http_codes: frozenset[int] = DEFAULT_RETRYABLE_HTTP_CODES

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.base_delay_ms < 0:
            raise ValueError("base_delay_ms must be >= 0")
        # Accept any iterable of codes but store an immutable set.
        object.__setattr__(self, "retryable_http_codes", frozenset(self.retryable_http_codes))


@dataclass
class TokenBucket:
    tokens: float
    capacity: int
    refill_rate: float
    last_refill: float

    @classmethod
    def full(cls, capacity: int, refill_rate: float, now: float) -> "TokenBucket":
        if capacity <= 0:
            raise ValueError("capacity must be > 0")
        if refill_rate <= 0:
            raise ValueError("refill_rate must be > 0")
        return cls(tokens=float(capacity), capacity=capacity, refill_rate=refill_rate, last_refill=now)


@dataclass
class InteractionDeadline:
    handler_id: str
    dispatched_at: float
    acknowledged: bool = False


@dataclass
class ButtonContext:
    message_id: str
    channel_id: str
    guild_id: str | None
    user_id: str
    custom_id: str
