"""
In-process event channel for entitlement changes and user-facing notices.
Events are delivered strictly in the order they were published.
"""

import asyncio
from collections import defaultdict
from typing import Awaitable, Callable, Dict, List, Optional

from creditsync.core.logger.logger import get_logger
from creditsync.core.service.events.models import Event, EventType

logger = get_logger(__name__)

EventHandler = Callable[[Event], Awaitable[None]]


class Subscription:
    """Handle returned by ``EventChannel.subscribe``; call ``unsubscribe()`` to stop delivery"""

    def __init__(self, channel: "EventChannel", event_type: EventType, handler: EventHandler):
        self._channel = channel
        self.event_type = event_type
        self.handler = handler
        self.active = True

    def unsubscribe(self) -> None:
        if self.active:
            self._channel._remove(self)
            self.active = False


class EventChannel:
    """Single-consumer queue dispatching typed events to subscribers"""

    def __init__(self):
        self._subscriptions: Dict[EventType, List[Subscription]] = defaultdict(list)
        self._queue: "asyncio.Queue[Event]" = asyncio.Queue()
        self._worker: Optional[asyncio.Task] = None
        self.logger = logger

    def subscribe(self, event_type: EventType, handler: EventHandler) -> Subscription:
        subscription = Subscription(self, event_type, handler)
        self._subscriptions[event_type].append(subscription)
        self.logger.debug("Subscribed to events", extra={"event_type": event_type.value})
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        subscriptions = self._subscriptions.get(subscription.event_type, [])
        if subscription in subscriptions:
            subscriptions.remove(subscription)

    def subscriber_count(self, event_type: EventType) -> int:
        return len(self._subscriptions.get(event_type, []))

    async def publish(self, event: Event) -> None:
        """Queue an event for ordered delivery"""
        await self._queue.put(event)

    async def start(self) -> None:
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._run())
            self.logger.info("Event channel started")

    async def stop(self) -> None:
        if self._worker is None:
            return
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None
        self.logger.info("Event channel stopped")

    async def join(self) -> None:
        """Wait until every queued event has been delivered"""
        await self._queue.join()

    async def _run(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self._dispatch(event)
            finally:
                self._queue.task_done()

    async def _dispatch(self, event: Event) -> None:
        for subscription in list(self._subscriptions.get(event.type, [])):
            if not subscription.active:
                continue
            try:
                await subscription.handler(event)
            except Exception as e:
                # One failing subscriber must not block the rest of the stream
                self.logger.error(
                    "Event handler failed",
                    extra={"event_type": event.type.value, "error": str(e)},
                    exc_info=True
                )
