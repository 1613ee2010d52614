"""
Notification delivery queue.

Design:
- In-process FIFO in front of the gateway; push() is synchronous and never blocks
- One drain loop processes the queue to empty, then sleeps until woken by push()
- Failed items go back to the tail after retry_delay * retries (linear backoff)
- Items that fail max_retries times are dropped and logged
- A pacing delay follows every attempt, delivered or not

Delivery is at-least-once from the tracker's point of view: callers mark
their "sent" flags when push() accepts the item, not on remote delivery.
"""

import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from goalwatch.alerting.telegram import GatewayError, NotificationGateway
from goalwatch.telemetry import record_notification, set_queue_depth

logger = logging.getLogger(__name__)

KIND_DETECTION = "detection"
KIND_RESULT = "result"
KIND_TEST = "test"


@dataclass
class PendingNotification:
    chat_id: str
    text: str
    kind: str = KIND_TEST
    retries: int = 0


@dataclass
class DeliveryOutcome:
    notification: PendingNotification
    delivered: bool
    requeued: bool = False
    error: Optional[str] = None

    @property
    def retries(self) -> int:
        return self.notification.retries


class NotificationQueue:
    """FIFO with bounded retries and pacing, drained by one background task."""

    def __init__(
        self,
        gateway: NotificationGateway,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        pacing: float = 0.1,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.gateway = gateway
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.pacing = pacing
        self._sleep = sleep
        self._items: deque[PendingNotification] = deque()
        self._wake = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        self._running = False
        self.delivered_count = 0
        self.dropped_count = 0

    @property
    def depth(self) -> int:
        return len(self._items)

    @property
    def running(self) -> bool:
        return self._running

    def push(self, text: str, kind: str = KIND_TEST, chat_id: Optional[str] = None) -> bool:
        """
        Hand a message to the queue.

        Returns False (nothing queued) when the gateway is not configured.
        """
        target = chat_id or self.gateway.default_chat_id
        if not self.gateway.configured or not target:
            logger.error(f"[NOTIFY] Telegram not configured or chat ID missing; {kind} message not queued")
            record_notification(kind, "rejected")
            return False

        self._items.append(PendingNotification(chat_id=target, text=text, kind=kind))
        set_queue_depth(len(self._items))
        self._wake.set()
        return True

    async def start(self) -> None:
        """Start the background drain loop."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._drain_loop())
        logger.info("[NOTIFY] Delivery queue started")

    async def stop(self, timeout: float = 10.0) -> None:
        """Finish the current drain pass, then stop."""
        self._running = False
        self._wake.set()
        if self._task:
            try:
                await asyncio.wait_for(self._task, timeout=timeout)
            except asyncio.TimeoutError:
                self._task.cancel()
                logger.warning(f"[NOTIFY] Drain loop did not finish in {timeout}s, cancelled")
            self._task = None
        logger.info(f"[NOTIFY] Delivery queue stopped (pending={len(self._items)})")

    async def _drain_loop(self) -> None:
        while self._running:
            await self._wake.wait()
            self._wake.clear()
            try:
                await self.drain()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"[NOTIFY] Drain loop error: {e}", exc_info=True)

    async def drain(self) -> list[DeliveryOutcome]:
        """Process the queue until it is empty (retries included)."""
        outcomes = []
        while self._items:
            item = self._items.popleft()
            set_queue_depth(len(self._items))
            outcomes.append(await self._deliver(item))
            await self._sleep(self.pacing)
        return outcomes

    async def _deliver(self, item: PendingNotification) -> DeliveryOutcome:
        try:
            await self.gateway.send(item.chat_id, item.text)
        except GatewayError as e:
            return await self._failed(item, str(e))
        except Exception as e:
            logger.error(f"[NOTIFY] Unexpected gateway error: {e}", exc_info=True)
            return await self._failed(item, f"{type(e).__name__}: {e}")

        self.delivered_count += 1
        record_notification(item.kind, "delivered")
        logger.info(f"[NOTIFY] {item.kind} message sent to {item.chat_id} (retries={item.retries})")
        return DeliveryOutcome(notification=item, delivered=True)

    async def _failed(self, item: PendingNotification, error: str) -> DeliveryOutcome:
        item.retries += 1
        if item.retries < self.max_retries:
            logger.warning(f"[NOTIFY] Failed to send {item.kind} message ({item.retries}/{self.max_retries}): {error}")
            self._items.append(item)
            set_queue_depth(len(self._items))
            record_notification(item.kind, "retried")
            await self._sleep(self.retry_delay * item.retries)
            return DeliveryOutcome(notification=item, delivered=False, requeued=True, error=error)

        self.dropped_count += 1
        record_notification(item.kind, "dropped")
        logger.error(f"[NOTIFY] Max retries reached for {item.kind} message to {item.chat_id}, dropped: {error}")
        return DeliveryOutcome(notification=item, delivered=False, error=error)
