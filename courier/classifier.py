from __future__ import annotations

from collections.abc import Iterable

from courier.errors import HttpStatusError, NetworkError, RateLimitError
from courier.models import (
    DEFAULT_RETRYABLE_HTTP_CODES,
    ErrorClassification,
    ErrorKind,
    Fatal,
    HttpTransient,
    NetworkTransient,
    RateLimited,
)

NETWORK_ERROR_CODES = frozenset({"ECONNRESET", "ECONNREFUSED", "ETIMEDOUT", "ENOTFOUND", "EAI_AGAIN"})


class ErrorClassifier:
    def __init__(self, retryable_http_codes: Iterable[int] = DEFAULT_RETRYABLE_HTTP_CODES) -> None:
        self.retryable_http_codes = frozenset(retryable_http_codes)

    def classify(self, exc: BaseException) -> ErrorClassification:
        # Rate limits are checked first: they also carry a status code but
        # need the dedicated variant so the caller can deplete the bucket.
        if isinstance(exc, RateLimitError):
            return RateLimited(retry_after_ms=exc.retry_after_ms)
        if isinstance(exc, NetworkError) and exc.code in NETWORK_ERROR_CODES:
            return NetworkTransient(code=exc.code)
        if isinstance(exc, HttpStatusError) and exc.status_code in self.retryable_http_codes:
            return HttpTransient(status_code=exc.status_code)
        return Fatal()

    def is_retryable(self, exc: BaseException) -> bool:
        return self.classify(exc).kind is not ErrorKind.FATAL
