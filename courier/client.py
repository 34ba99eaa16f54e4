from __future__ import annotations

import logging
from typing import Any

from courier.alerts import AlertManager
from courier.config import AppConfig
from courier.interactions import ButtonHandler, InteractionDeadlineTracker, InteractionDispatcher
from courier.rate_limiter import RateLimiter
from courier.retry import RetryOrchestrator
from courier.transport import DiscordTransport

logger = logging.getLogger(__name__)

ERROR_EMBED_COLOR = 0xED4245
MAX_ERROR_DESCRIPTION = 4096


class CourierClient:
    """Posts, edits and deletes channel messages through the rate-limited retry core.

    The client owns the only RateLimiter for its transport, so every
    operation it issues counts against the same global and channel quotas.
    """

    def __init__(
        self,
        config: AppConfig,
        transport: DiscordTransport | None = None,
        rate_limiter: RateLimiter | None = None,
        retry: RetryOrchestrator | None = None,
        dispatcher: InteractionDispatcher | None = None,
        alerts: AlertManager | None = None,
    ) -> None:
        self.config = config
        self.transport = transport or DiscordTransport(config.discord)
        self.alerts = alerts
        rl = config.rate_limit
        self.rate_limiter = rate_limiter or RateLimiter(
            global_capacity=rl.global_capacity,
            global_refill_rate=rl.global_refill_rate,
            channel_capacity=rl.channel_capacity,
            channel_refill_rate=rl.channel_refill_rate,
        )
        self.retry = retry or RetryOrchestrator(
            policy=config.retry.to_policy(),
            rate_limiter=self.rate_limiter,
            alerts=alerts,
        )
        self.dispatcher = dispatcher or InteractionDispatcher(
            InteractionDeadlineTracker(deadline_ms=config.interaction.ack_deadline_ms, alerts=alerts)
        )

    async def post_message(self, payload: dict[str, Any], channel_id: str | None = None) -> dict[str, Any]:
        target = channel_id or self.config.discord.channel_id
        return await self.retry.execute(lambda: self.transport.send_message(target, payload), channel_id=target)

    async def update_message(
        self,
        message_id: str,
        payload: dict[str, Any],
        channel_id: str | None = None,
    ) -> dict[str, Any]:
        target = channel_id or self.config.discord.channel_id
        return await self.retry.execute(
            lambda: self.transport.edit_message(target, message_id, payload),
            channel_id=target,
        )

    async def remove_message(self, message_id: str, channel_id: str | None = None) -> None:
        target = channel_id or self.config.discord.channel_id
        await self.retry.execute(lambda: self.transport.delete_message(target, message_id), channel_id=target)

    async def post_error(self, error: BaseException, context: dict[str, Any] | None = None) -> dict[str, Any] | None:
        payload = build_error_payload(error, context)

        error_channel_id = self.config.discord.error_channel_id
        if error_channel_id:
            try:
                return await self.post_message(payload, channel_id=error_channel_id)
            except Exception as exc:  # noqa: BLE001
                logger.warning("Failed to post to error channel %s, falling back to primary: %s", error_channel_id, exc)
                if self.alerts is not None:
                    self.alerts.warn(
                        "ERROR_CHANNEL_FALLBACK",
                        f"error channel {error_channel_id} unavailable: {exc}",
                        {"error_channel_id": error_channel_id},
                    )

        try:
            return await self.post_message(payload)
        except Exception:  # noqa: BLE001
            # Raising here would feed the error reporter its own failure.
            logger.exception("Failed to post error to both error and primary channels: %s", error)
            return None

    def on_button_click(self, custom_id: str, handler: ButtonHandler) -> None:
        self.dispatcher.register(custom_id, handler)

    def off_button_click(self, custom_id: str) -> None:
        self.dispatcher.unregister(custom_id)

    async def handle_interaction(self, interaction: Any) -> None:
        await self.dispatcher.handle(interaction)

    def close(self) -> None:
        self.transport.close()


def build_error_payload(error: BaseException, context: dict[str, Any] | None = None) -> dict[str, Any]:
    description = str(error) or type(error).__name__
    if len(description) > MAX_ERROR_DESCRIPTION:
        description = description[: MAX_ERROR_DESCRIPTION - 3] + "..."
    fields = [{"name": str(key), "value": str(value), "inline": True} for key, value in (context or {}).items()]
    return {
        "embeds": [
            {
                "title": type(error).__name__,
                "description": description,
                "color": ERROR_EMBED_COLOR,
                "fields": fields,
            }
        ]
    }
