from __future__ import annotations

import asyncio
import math
from typing import Any

import requests

from courier.config import DiscordConfig
from courier.errors import (
    ChannelNotFoundError,
    HttpStatusError,
    MessageNotFoundError,
    NetworkError,
    PermissionDeniedError,
    RateLimitError,
)

DEFAULT_RETRY_AFTER_MS = 1000

# Substrings of urllib3/socket error text, checked in order.
_CONNECTION_ERROR_CODES = (
    ("Temporary failure in name resolution", "EAI_AGAIN"),
    ("Name or service not known", "ENOTFOUND"),
    ("nodename nor servname", "ENOTFOUND"),
    ("getaddrinfo failed", "ENOTFOUND"),
    ("Connection refused", "ECONNREFUSED"),
    ("Connection reset", "ECONNRESET"),
)


def translate_request_error(exc: requests.RequestException) -> NetworkError:
    if isinstance(exc, requests.Timeout):
        return NetworkError("ETIMEDOUT", str(exc))
    if isinstance(exc, requests.ConnectionError):
        text = str(exc)
        for needle, code in _CONNECTION_ERROR_CODES:
            if needle in text:
                return NetworkError(code, text)
        return NetworkError("ECONNRESET", text)
    return NetworkError("EUNKNOWN", str(exc))


def retry_after_ms(response: requests.Response) -> int:
    try:
        payload = response.json()
    except ValueError:
        payload = {}
    if isinstance(payload, dict) and payload.get("retry_after") is not None:
        # Discord reports retry_after in seconds.
        return math.ceil(float(payload["retry_after"]) * 1000)
    header = response.headers.get("Retry-After")
    if header:
        try:
            return math.ceil(float(header) * 1000)
        except ValueError:
            pass
    return DEFAULT_RETRY_AFTER_MS


def raise_for_response(response: requests.Response, channel_id: str, message_id: str | None = None) -> None:
    status = response.status_code
    if status < 400:
        return
    if status == 429:
        raise RateLimitError(retry_after_ms(response), channel_id)
    if status == 403:
        raise PermissionDeniedError(f"Permission denied in channel {channel_id}", channel_id, response.text)
    if status == 404:
        # A 404 on a message path means the message is gone, not the channel.
        if message_id is not None:
            raise MessageNotFoundError(channel_id, message_id, response.text)
        raise ChannelNotFoundError(channel_id, response.text)
    raise HttpStatusError(status, f"Discord HTTP {status}: {response.text}", response.text)


class DiscordTransport:
    """Blocking REST calls against the Discord API, exposed as coroutines.

    Every failure leaves this class as a ``TransportError`` subclass.
    """

    def __init__(self, config: DiscordConfig, session: requests.Session | None = None) -> None:
        self.config = config
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "Authorization": f"Bot {config.token}",
                "Content-Type": "application/json",
            }
        )

    async def send_message(self, channel_id: str, payload: dict[str, Any]) -> dict[str, Any]:
        return await asyncio.to_thread(self._request, "POST", channel_id, f"/channels/{channel_id}/messages", payload)

    async def edit_message(self, channel_id: str, message_id: str, payload: dict[str, Any]) -> dict[str, Any]:
        return await asyncio.to_thread(
            self._request, "PATCH", channel_id, f"/channels/{channel_id}/messages/{message_id}", payload, message_id
        )

    async def delete_message(self, channel_id: str, message_id: str) -> None:
        await asyncio.to_thread(
            self._request, "DELETE", channel_id, f"/channels/{channel_id}/messages/{message_id}", None, message_id
        )

    def close(self) -> None:
        self.session.close()

    def _request(
        self,
        method: str,
        channel_id: str,
        path: str,
        body: dict[str, Any] | None = None,
        message_id: str | None = None,
    ) -> Any:
        url = f"{self.config.base_url}{path}"
        try:
            response = self.session.request(
                method,
                url,
                json=body,
                timeout=self.config.request_timeout_seconds,
            )
        except requests.RequestException as exc:
            raise translate_request_error(exc) from exc

        raise_for_response(response, channel_id, message_id)
        if response.status_code == 204 or not response.content:
            return None
        return response.json()
