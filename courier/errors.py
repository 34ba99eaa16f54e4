from __future__ import annotations


class CourierError(Exception):
    pass


class ConfigError(CourierError, ValueError):
    pass


class TransportError(CourierError):
    """Failure raised at the transport boundary.

    Every failure that leaves the transport is one of the subclasses below,
    so callers can classify it by type instead of inspecting attributes.
    """


class RateLimitError(TransportError):
    def __init__(self, retry_after_ms: int, channel_id: str | None = None) -> None:
        super().__init__(f"Rate limited. Retry after {retry_after_ms}ms")
        self.retry_after_ms = retry_after_ms
        self.channel_id = channel_id


class NetworkError(TransportError):
    def __init__(self, code: str, message: str = "") -> None:
        super().__init__(message or f"network error {code}")
        self.code = code


class HttpStatusError(TransportError):
    def __init__(self, status_code: int, message: str = "", body: str = "") -> None:
        super().__init__(message or f"HTTP {status_code}")
        self.status_code = status_code
        self.body = body


class PermissionDeniedError(HttpStatusError):
    def __init__(self, message: str = "Permission denied", channel_id: str | None = None, body: str = "") -> None:
        super().__init__(403, message, body)
        self.channel_id = channel_id


class ChannelNotFoundError(HttpStatusError):
    def __init__(self, channel_id: str, body: str = "") -> None:
        super().__init__(404, f"Channel not found: {channel_id}", body)
        self.channel_id = channel_id


class MessageNotFoundError(HttpStatusError):
    def __init__(self, channel_id: str, message_id: str, body: str = "") -> None:
        super().__init__(404, f"Message not found: {message_id} in channel {channel_id}", body)
        self.channel_id = channel_id
        self.message_id = message_id


class InteractionTimeoutError(CourierError):
    def __init__(self, handler_id: str, elapsed_ms: float, deadline_ms: int = 3000) -> None:
        super().__init__(
            f"Interaction timed out for button: {handler_id} after {elapsed_ms:.0f}ms. "
            f"Must acknowledge within {deadline_ms}ms."
        )
        self.handler_id = handler_id
        self.elapsed_ms = elapsed_ms
        self.deadline_ms = deadline_ms
