"""
Event Bus

Broadcast channel for AgentEvents. Loop controllers publish; any number of
subscribers (TUI, dashboards, transports) consume. Subscribers can join and
leave at any time and only see events published after they subscribed.

Usage:
    bus = EventBus()

    async with bus.subscribe(session_id) as events:
        async for event in events:
            print(event.type)
            if event.terminal:
                break
"""

import asyncio
import logging
from typing import Optional

from .models import AgentEvent

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 256

_CLOSED = object()


class Subscription:
    """
    One subscriber's view of the bus.

    Registered with the bus at construction time, so no event published after
    ``EventBus.subscribe()`` returns can be missed. Each subscription owns a
    bounded queue; when a slow consumer lets it fill up, its oldest event is
    dropped instead of blocking the publisher.
    """

    def __init__(
        self,
        bus: "EventBus",
        session_id: Optional[str] = None,
        maxsize: int = DEFAULT_QUEUE_SIZE,
    ):
        self._bus = bus
        self.session_id = session_id
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._closed = False
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def accepts(self, event: AgentEvent) -> bool:
        return self.session_id is None or event.session_id == self.session_id

    def _offer(self, item: object) -> None:
        if self._queue.full():
            self._queue.get_nowait()
            self.dropped += 1
            logger.warning(
                "Subscriber queue full, dropped oldest event (%d dropped so far)",
                self.dropped,
            )
        self._queue.put_nowait(item)

    async def get(self, timeout: Optional[float] = None) -> AgentEvent:
        """
        Wait for the next event.

        Raises:
            asyncio.TimeoutError: No event arrived within ``timeout`` seconds
            StopAsyncIteration: The subscription was closed
        """
        if self._closed and self._queue.empty():
            raise StopAsyncIteration
        if timeout is None:
            item = await self._queue.get()
        else:
            item = await asyncio.wait_for(self._queue.get(), timeout)
        if item is _CLOSED:
            raise StopAsyncIteration
        return item

    def get_nowait(self) -> Optional[AgentEvent]:
        """Return a buffered event, or None when nothing is pending."""
        try:
            item = self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None
        return None if item is _CLOSED else item

    def close(self) -> None:
        """Detach from the bus. Buffered events remain readable."""
        if self._closed:
            return
        self._closed = True
        self._bus._remove(self)
        self._offer(_CLOSED)

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> AgentEvent:
        return await self.get()

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


class EventBus:
    """
    Fan-out of AgentEvents to live subscribers.

    ``publish`` never blocks and never raises because of a subscriber, so it
    is safe to call from any session's loop.
    """

    def __init__(self, max_queue_size: int = DEFAULT_QUEUE_SIZE):
        self._max_queue_size = max_queue_size
        self._subscribers: list[Subscription] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self, session_id: Optional[str] = None) -> Subscription:
        """
        Start receiving events from now on.

        Args:
            session_id: Only deliver events of this session (all sessions if None)

        Returns:
            Subscription usable as an async iterator / async context manager
        """
        subscription = Subscription(self, session_id, self._max_queue_size)
        self._subscribers.append(subscription)
        logger.debug("Subscriber added (session=%s, total=%d)", session_id, len(self._subscribers))
        return subscription

    def publish(self, event: AgentEvent) -> int:
        """
        Deliver an event to every matching subscriber.

        Returns:
            Number of subscribers the event was delivered to
        """
        delivered = 0
        for subscription in list(self._subscribers):
            if subscription.accepts(event):
                subscription._offer(event)
                delivered += 1
        return delivered

    def close(self) -> None:
        """Close every subscription."""
        for subscription in list(self._subscribers):
            subscription.close()

    def _remove(self, subscription: Subscription) -> None:
        if subscription in self._subscribers:
            self._subscribers.remove(subscription)
