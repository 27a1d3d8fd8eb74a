"""In-process fan-out hub.

Every process owns one hub. Local publishes and events received from the
cross-process transport both end up in ``publish``, which copies the event
into the queue of every subscription on a matching topic.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator

from crm_chat.application.ports.bus import Event
from crm_chat.application.topics import topics_for

logger = logging.getLogger(__name__)


class QueueSubscription:
    """Implements application.ports.bus.Subscription."""

    def __init__(self, hub: LiveHub, topics: tuple[str, ...]) -> None:
        self._hub = hub
        self.topics = topics
        self._queue: asyncio.Queue[Event | None] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def push(self, event: Event) -> None:
        if not self._closed:
            self._queue.put_nowait(event)

    async def get(self) -> Event | None:
        if self._closed and self._queue.empty():
            return None
        return await self._queue.get()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._hub.detach(self)
        # Wake a pending get()
        self._queue.put_nowait(None)

    def __aiter__(self) -> AsyncIterator[Event]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[Event]:
        while True:
            event = await self.get()
            if event is None:
                return
            yield event


class LiveHub:
    """Implements EventPublisher and EventSource for one process."""

    def __init__(self) -> None:
        self._subscriptions: dict[str, set[QueueSubscription]] = {}

    def subscribe(self, *topics: str) -> QueueSubscription:
        if not topics:
            raise ValueError("At least one topic is required")
        subscription = QueueSubscription(self, topics)
        for topic in topics:
            self._subscriptions.setdefault(topic, set()).add(subscription)
        return subscription

    def detach(self, subscription: QueueSubscription) -> None:
        for topic in subscription.topics:
            subs = self._subscriptions.get(topic)
            if subs is None:
                continue
            subs.discard(subscription)
            if not subs:
                del self._subscriptions[topic]

    def subscriber_count(self, topic: str) -> int:
        return len(self._subscriptions.get(topic, ()))

    async def publish(self, event_type: str, payload: dict[str, Any]) -> None:
        self.dispatch(event_type, payload)

    def dispatch(self, event_type: str, payload: dict[str, Any]) -> int:
        """Deliver to local subscribers. Return how many received it."""
        delivered: set[QueueSubscription] = set()
        for topic in topics_for(event_type, payload):
            for subscription in self._subscriptions.get(topic, ()):
                if subscription not in delivered:
                    subscription.push((event_type, payload))
                    delivered.add(subscription)
        if not delivered:
            logger.debug("No local subscribers for %s", event_type)
        return len(delivered)
