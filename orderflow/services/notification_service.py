"""Customer notifications for order reassignment and driver exhaustion.

The dispatcher receives engine events synchronously and turns each into a
background task, so a slow or failing message generator never delays an
order's state machine. Failures are contained here and reported through
NotificationResult; nothing propagates back into the engine.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Coroutine
from datetime import UTC, datetime
from typing import Any

from orderflow.core.config import settings
from orderflow.core.logging import span
from orderflow.interface import customer_sender
from orderflow.interface.customer_sender import SendMessageResult
from orderflow.models.service_models import ChatReply, NotificationResult, RenderedMessage, WorkItemStatusView
from orderflow.services import message_service
from orderflow.services.message_service import NotificationKind


logger = logging.getLogger(__name__)

Renderer = Callable[[WorkItemStatusView, NotificationKind], Awaitable[RenderedMessage]]
Sender = Callable[..., Awaitable[SendMessageResult]]


class NotificationDispatcher:
    """Sends customer messages on reassignment and exhaustion events.

    Policy:
    - reassignments up to `threshold` are not notified (the first one by default);
    - exhaustion is always notified;
    - at most `max_per_order` notifications per order, further ones are dropped.
    """

    def __init__(
        self,
        *,
        enabled: bool | None = None,
        threshold: int | None = None,
        max_per_order: int | None = None,
        renderer: Renderer | None = None,
        sender: Sender | None = None,
    ) -> None:
        self.enabled = settings.enable_reassignment_notifications if enabled is None else enabled
        self.threshold = settings.reassignment_notification_threshold if threshold is None else threshold
        self.max_per_order = settings.max_notifications_per_order if max_per_order is None else max_per_order
        self._renderer = renderer or message_service.render
        self._sender = sender or customer_sender.send_customer_message
        self._counters: dict[str, int] = {}
        self._tasks: set[asyncio.Task[NotificationResult]] = set()

        logger.info(
            "NotificationDispatcher initialized. Reassignment notifications enabled: %s",
            self.enabled,
            extra={"threshold": self.threshold, "max_per_order": self.max_per_order},
        )

    # Engine event contract

    def on_reassigned(
        self, *, work_item_id: str, owner_id: str, reassignment_count: int, view: WorkItemStatusView
    ) -> None:
        self._spawn(
            self.notify_reassignment(
                work_item_id=work_item_id,
                owner_id=owner_id,
                reassignment_count=reassignment_count,
                view=view,
            )
        )

    def on_exhausted(self, *, work_item_id: str, owner_id: str, view: WorkItemStatusView) -> None:
        self._spawn(self.notify_exhausted(work_item_id=work_item_id, owner_id=owner_id, view=view))

    def on_accepted(self, *, work_item_id: str, owner_id: str) -> None:
        # Accepted orders send nothing more
        if self._counters.pop(work_item_id, None) is not None:
            logger.debug("Released notification counter for accepted order %s", work_item_id)

    def _spawn(self, coro: Coroutine[Any, Any, NotificationResult]) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    @property
    def pending_tasks(self) -> int:
        return len(self._tasks)

    async def drain(self) -> list[NotificationResult]:
        """Wait for every in-flight notification, including ones spawned meanwhile."""
        results: list[NotificationResult] = []
        while self._tasks:
            done = await asyncio.gather(*list(self._tasks), return_exceptions=True)
            results.extend(r for r in done if isinstance(r, NotificationResult))
        return results

    # Counters

    def notification_count(self, work_item_id: str) -> int:
        return self._counters.get(work_item_id, 0)

    def _reserve_slot(self, work_item_id: str) -> bool:
        """Claim one notification slot for the order; False once the cap is reached.

        The check and the increment run without an await in between.
        """
        count = self._counters.get(work_item_id, 0)
        if count >= self.max_per_order:
            return False
        self._counters[work_item_id] = count + 1
        return True

    # Notifications

    async def notify_reassignment(
        self,
        *,
        work_item_id: str,
        owner_id: str,
        reassignment_count: int,
        view: WorkItemStatusView,
    ) -> NotificationResult:
        """Notify the customer about a reassignment unless policy suppresses it."""
        kind = NotificationKind.REASSIGNMENT_REASON
        if not self.enabled:
            logger.debug("Reassignment notifications disabled, skipping for order %s", work_item_id)
            return NotificationResult(
                order_id=work_item_id, owner_id=owner_id, kind=kind.value, success=False, skipped=True
            )

        if reassignment_count <= self.threshold:
            logger.debug(
                "Skipping reassignment notification for order %s (count %d <= %d)",
                work_item_id,
                reassignment_count,
                self.threshold,
            )
            return NotificationResult(
                order_id=work_item_id, owner_id=owner_id, kind=kind.value, success=False, skipped=True
            )

        return await self._notify(view=view, owner_id=owner_id, kind=kind)

    async def notify_exhausted(
        self,
        *,
        work_item_id: str,
        owner_id: str,
        view: WorkItemStatusView,
    ) -> NotificationResult:
        """Notify the customer that no driver could be found. Always attempted."""
        result = await self._notify(view=view, owner_id=owner_id, kind=NotificationKind.TIMEOUT_EXPLANATION)
        # Terminal order: no further events will arrive for it
        self._counters.pop(work_item_id, None)
        return result

    async def _notify(self, *, view: WorkItemStatusView, owner_id: str, kind: NotificationKind) -> NotificationResult:
        order_id = view.order_id
        with span("notification_service.notify", order_id=order_id, kind=str(kind)):
            if not self._reserve_slot(order_id):
                logger.warning(
                    "Notification limit reached for order %s",
                    order_id,
                    extra={"kind": str(kind), "max_per_order": self.max_per_order},
                )
                return NotificationResult(
                    order_id=order_id,
                    owner_id=owner_id,
                    kind=kind.value,
                    success=False,
                    limited=True,
                    error="Notification limit reached for this order",
                )

            start = time.monotonic()
            try:
                rendered = await self._renderer(view, kind)
            except Exception as e:
                logger.exception("Renderer failed for order %s, using fallback", order_id)
                rendered = RenderedMessage(
                    text=message_service.fallback_message(view, kind),
                    used_fallback=True,
                    error=str(e),
                )

            try:
                send_result = await self._sender(customer_id=owner_id, order_id=order_id, text=rendered.text)
            except Exception as e:
                logger.exception("Error sending notification for order %s", order_id)
                send_result = SendMessageResult(success=False, error=str(e))

            response_time_ms = (time.monotonic() - start) * 1000
            if send_result.success:
                logger.info(
                    "Customer notification sent for order %s",
                    order_id,
                    extra={
                        "customer_id": owner_id,
                        "kind": str(kind),
                        "used_fallback": rendered.used_fallback,
                        "response_time_ms": response_time_ms,
                        "notification_count": self.notification_count(order_id),
                    },
                )
            else:
                logger.error(
                    "Failed to deliver notification for order %s: %s",
                    order_id,
                    send_result.error,
                    extra={"customer_id": owner_id, "kind": str(kind)},
                )

            return NotificationResult(
                order_id=order_id,
                owner_id=owner_id,
                kind=kind.value,
                success=send_result.success,
                message=rendered.text,
                used_fallback=rendered.used_fallback,
                error=send_result.error or rendered.error,
                sent_at=datetime.now(UTC) if send_result.success else None,
                response_time_ms=response_time_ms,
            )

    async def handle_chat_query(self, *, view: WorkItemStatusView, customer_id: str, query: str) -> ChatReply:
        """Answer a customer's question about their order."""
        kind = message_service.determine_kind(query)
        with span("notification_service.handle_chat_query", order_id=view.order_id, kind=str(kind)):
            start = time.monotonic()
            try:
                rendered = await self._renderer(view, kind)
            except Exception as e:
                logger.exception("Error handling chat query for order %s", view.order_id)
                return ChatReply(success=False, order_id=view.order_id, customer_id=customer_id, error=str(e))

            response_time_ms = (time.monotonic() - start) * 1000
            logger.info(
                "Chatbot response generated for order %s",
                view.order_id,
                extra={"customer_id": customer_id, "query_type": str(kind), "response_time_ms": response_time_ms},
            )
            return ChatReply(
                success=True,
                order_id=view.order_id,
                customer_id=customer_id,
                query_type=kind.value,
                response=rendered.text,
                used_fallback=rendered.used_fallback,
                timestamp=datetime.now(UTC),
                response_time_ms=response_time_ms,
            )
