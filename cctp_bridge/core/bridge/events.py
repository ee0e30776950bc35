"""
Bridge progress events.

Publish/subscribe over per-subscriber asyncio queues. ``publish`` never
awaits, so a slow observer cannot stall a transfer; each subscriber sees
events in publish order.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Set, Union

from ...config import settings
from .models import BridgeProgressEvent

ProgressHandler = Callable[[BridgeProgressEvent], Union[None, Awaitable[None]]]

_CLOSED = object()


class BridgeEventSubscription:
    """One observer's ordered view of the event stream."""

    def __init__(self, bus: "BridgeEventBus", maxsize: int) -> None:
        self._bus = bus
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self.closed = False
        self.dropped = 0

    def _offer(self, event: BridgeProgressEvent) -> None:
        if self.closed:
            return
        if self._queue.full():
            # Slow consumer: keep the newest events
            self._queue.get_nowait()
            self.dropped += 1
            self._bus.logger.warning(
                "Progress subscriber lagging, dropped oldest event (total dropped=%d)",
                self.dropped,
            )
        self._queue.put_nowait(event)

    async def get(self) -> BridgeProgressEvent:
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item

    def get_nowait(self) -> Optional[BridgeProgressEvent]:
        try:
            item = self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None
        return None if item is _CLOSED else item

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._bus.unsubscribe(self)
        if self._queue.full():
            self._queue.get_nowait()
        self._queue.put_nowait(_CLOSED)

    def __aiter__(self) -> "BridgeEventSubscription":
        return self

    async def __anext__(self) -> BridgeProgressEvent:
        return await self.get()

    async def __aenter__(self) -> "BridgeEventSubscription":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        self.close()


class BridgeEventBus:
    """Fan-out of ``BridgeProgressEvent`` to any number of subscribers."""

    def __init__(
        self,
        *,
        queue_size: Optional[int] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.logger = logger or logging.getLogger(__name__)
        self._queue_size = queue_size or settings.event_queue_size
        self._subscriptions: Set[BridgeEventSubscription] = set()
        self._handler_tasks: Dict[ProgressHandler, asyncio.Task] = {}
        self._handler_subscriptions: Dict[ProgressHandler, BridgeEventSubscription] = {}
        # Dispatchers detached by off() that are still draining their queue
        self._draining: Set[asyncio.Task] = set()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def subscribe(self, maxsize: Optional[int] = None) -> BridgeEventSubscription:
        subscription = BridgeEventSubscription(self, maxsize or self._queue_size)
        self._subscriptions.add(subscription)
        return subscription

    def unsubscribe(self, subscription: BridgeEventSubscription) -> None:
        self._subscriptions.discard(subscription)

    def publish(self, event: BridgeProgressEvent) -> None:
        for subscription in list(self._subscriptions):
            subscription._offer(event)

    # ------------------------------------------------------------------
    # Callback convenience
    # ------------------------------------------------------------------

    def on(self, handler: ProgressHandler) -> None:
        """Run ``handler`` (sync or async) for every event from now on.

        Must be called from within a running event loop.
        """
        if handler in self._handler_tasks:
            return
        subscription = self.subscribe()
        self._handler_subscriptions[handler] = subscription
        self._handler_tasks[handler] = asyncio.create_task(
            self._dispatch(handler, subscription),
            name="bridge-progress-handler",
        )

    def off(self, handler: ProgressHandler) -> None:
        subscription = self._handler_subscriptions.pop(handler, None)
        task = self._handler_tasks.pop(handler, None)
        if task is not None and not task.done():
            self._draining.add(task)
            task.add_done_callback(self._draining.discard)
        if subscription is not None:
            # The dispatcher drains what was queued before the close marker
            subscription.close()

    async def _dispatch(self, handler: ProgressHandler, subscription: BridgeEventSubscription) -> None:
        async for event in subscription:
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:  # noqa: BLE001
                self.logger.error("Progress handler error: %s", exc, exc_info=True)

    async def close(self) -> None:
        tasks = [*self._handler_tasks.values(), *self._draining]
        for handler in list(self._handler_subscriptions):
            self.off(handler)
        for subscription in list(self._subscriptions):
            subscription.close()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
