"""
In-process publish/subscribe channel for crawl progress.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional

from ..interfaces import ProgressPublisher
from ..models import ProgressEvent


logger = logging.getLogger(__name__)

Listener = Callable[[ProgressEvent], Awaitable[None]]


class Subscription:
    """A subscriber's bounded inbox; the oldest event is dropped when it is full."""

    def __init__(self, channel: "ProgressChannel", maxsize: int):
        self._channel = channel
        self.queue: "asyncio.Queue[ProgressEvent]" = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0

    def offer(self, event: ProgressEvent) -> None:
        if self.queue.full():
            self.queue.get_nowait()
            self.dropped += 1
        self.queue.put_nowait(event)

    async def get(self) -> ProgressEvent:
        return await self.queue.get()

    def get_nowait(self) -> Optional[ProgressEvent]:
        try:
            return self.queue.get_nowait()
        except asyncio.QueueEmpty:
            return None

    def close(self) -> None:
        self._channel.unsubscribe(self)

    def __aiter__(self):
        return self

    async def __anext__(self) -> ProgressEvent:
        return await self.get()


class ProgressChannel(ProgressPublisher):
    """Fans each progress event out to queue subscribers and async listeners.

    Delivery is best effort: slow subscribers lose their oldest events and a
    failing listener is logged and skipped.  ``latest(site_id)`` gives the
    newest event seen per site.
    """

    def __init__(self, queue_size: int = 100):
        self.queue_size = queue_size
        self._subscriptions: List[Subscription] = []
        self._listeners: List[Listener] = []
        self._latest: Dict[int, ProgressEvent] = {}

    def subscribe(self, maxsize: Optional[int] = None) -> Subscription:
        sub = Subscription(self, maxsize or self.queue_size)
        self._subscriptions.append(sub)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        if sub in self._subscriptions:
            self._subscriptions.remove(sub)

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def latest(self, site_id: int) -> Optional[ProgressEvent]:
        return self._latest.get(site_id)

    def snapshot(self) -> Dict[int, ProgressEvent]:
        return dict(self._latest)

    async def publish(self, event: ProgressEvent) -> None:
        self._latest[event.site_id] = event
        logger.debug(f"Progress site={event.site_id} status={event.status.value} {event.message or ''}")

        for sub in list(self._subscriptions):
            sub.offer(event)

        for listener in list(self._listeners):
            try:
                await listener(event)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(f"Progress listener {getattr(listener, '__name__', listener)} failed: {e}")
