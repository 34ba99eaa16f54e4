from __future__ import annotations

import contextlib
import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any, Protocol

from courier.alerts import AlertManager
from courier.errors import InteractionTimeoutError
from courier.models import ButtonContext, InteractionDeadline

ACK_DEADLINE_MS = 3000
ERROR_REPLY_CONTENT = "An error occurred while processing your request."

logger = logging.getLogger(__name__)


class ButtonInteraction(Protocol):
    is_button: bool
    custom_id: str
    message_id: str
    channel_id: str
    guild_id: str | None
    user_id: str
    replied: bool
    deferred: bool

    async def reply(self, content: str, ephemeral: bool = False) -> Any: ...


ButtonHandler = Callable[[Any, ButtonContext], Awaitable[None]]


class InteractionDeadlineTracker:
    """Observes whether a handler acknowledged its interaction in time.

    The platform invalidates an interaction token that is not acknowledged
    within the deadline. The tracker cannot enforce that; it only reports
    the violation once the handler has finished.
    """

    def __init__(
        self,
        deadline_ms: int = ACK_DEADLINE_MS,
        clock: Callable[[], float] = time.monotonic,
        alerts: AlertManager | None = None,
    ) -> None:
        self.deadline_ms = deadline_ms
        self.clock = clock
        self.alerts = alerts

    def dispatch(self, handler_id: str) -> InteractionDeadline:
        return InteractionDeadline(handler_id=handler_id, dispatched_at=self.clock())

    def acknowledge(self, deadline: InteractionDeadline) -> None:
        deadline.acknowledged = True

    def elapsed_ms(self, deadline: InteractionDeadline) -> float:
        return (self.clock() - deadline.dispatched_at) * 1000

    def is_timed_out(self, deadline: InteractionDeadline) -> bool:
        return not deadline.acknowledged and self.elapsed_ms(deadline) > self.deadline_ms

    def finish(self, deadline: InteractionDeadline) -> None:
        elapsed = self.elapsed_ms(deadline)
        if deadline.acknowledged or elapsed <= self.deadline_ms:
            return
        self._report(deadline, elapsed)
        raise InteractionTimeoutError(deadline.handler_id, elapsed, self.deadline_ms)

    @contextlib.asynccontextmanager
    async def track(self, handler_id: str) -> AsyncIterator[InteractionDeadline]:
        deadline = self.dispatch(handler_id)
        try:
            yield deadline
        except Exception:
            # The handler's own failure wins; the missed deadline is only reported.
            if self.is_timed_out(deadline):
                self._report(deadline, self.elapsed_ms(deadline))
            raise
        self.finish(deadline)

    def _report(self, deadline: InteractionDeadline, elapsed: float) -> None:
        logger.error(
            "Interaction %s not acknowledged within %sms (elapsed=%.0fms)",
            deadline.handler_id,
            self.deadline_ms,
            elapsed,
        )
        if self.alerts is not None:
            self.alerts.error(
                "INTERACTION_TIMEOUT",
                f"interaction {deadline.handler_id} missed the acknowledgment deadline",
                {"handler_id": deadline.handler_id, "elapsed_ms": round(elapsed), "deadline_ms": self.deadline_ms},
            )


class InteractionDispatcher:
    def __init__(self, tracker: InteractionDeadlineTracker | None = None) -> None:
        self.tracker = tracker or InteractionDeadlineTracker()
        self.handlers: dict[str, ButtonHandler] = {}

    def register(self, custom_id: str, handler: ButtonHandler) -> None:
        self.handlers[custom_id] = handler
        logger.debug("Registered handler for button: %s", custom_id)

    def unregister(self, custom_id: str) -> None:
        self.handlers.pop(custom_id, None)
        logger.debug("Unregistered handler for button: %s", custom_id)

    async def handle(self, interaction: ButtonInteraction) -> None:
        if not getattr(interaction, "is_button", False):
            return

        custom_id = interaction.custom_id
        handler = self.handlers.get(custom_id)
        if handler is None:
            logger.warning("No handler registered for button: %s", custom_id)
            return

        context = ButtonContext(
            message_id=interaction.message_id,
            channel_id=interaction.channel_id,
            guild_id=interaction.guild_id,
            user_id=interaction.user_id,
            custom_id=custom_id,
        )
        try:
            async with self.tracker.track(custom_id) as deadline:
                try:
                    await handler(interaction, context)
                finally:
                    # A handler may defer or reply and then fail.
                    if _is_acknowledged(interaction):
                        self.tracker.acknowledge(deadline)
        except Exception:
            logger.exception("Error handling button interaction %s", custom_id)
            if not _is_acknowledged(interaction):
                try:
                    await interaction.reply(content=ERROR_REPLY_CONTENT, ephemeral=True)
                except Exception as reply_exc:  # noqa: BLE001
                    # Usually the interaction token already expired.
                    logger.warning("Error reply for %s failed: %s", custom_id, reply_exc)
            raise


def _is_acknowledged(interaction: ButtonInteraction) -> bool:
    return bool(getattr(interaction, "replied", False) or getattr(interaction, "deferred", False))
