"""Redis Pub/Sub: the cross-process leg of the fan-out.

Every process publishes chat events to one channel and runs one subscriber
that replays them into its local hub, so feeds attached to any worker see
every write.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable

import redis.asyncio as aioredis
from redis.exceptions import ConnectionError as RedisConnectionError

from crm_chat.infrastructure.bus.serializer import deserialize_event, serialize_event

logger = logging.getLogger(__name__)

OnEventCallback = Callable[[str, dict[str, Any]], Any]


class RedisPubSubPublisher:
    """EventPublisher backed by ``PUBLISH``."""

    def __init__(self, redis: aioredis.Redis, channel: str) -> None:
        self._redis = redis
        self._channel = channel

    async def publish(self, event_type: str, payload: dict[str, Any]) -> None:
        receivers = await self._redis.publish(self._channel, serialize_event(event_type, payload))
        logger.debug("Published %s to %s (%d receivers)", event_type, self._channel, receivers)


class RedisPubSubSubscriber:
    """Listens on the fan-out channel and hands each event to ``callback``.

    The callback may be sync (``LiveHub.dispatch``) or a coroutine function.
    A dropped connection is retried after ``reconnect_delay`` seconds.
    """

    def __init__(
        self,
        redis: aioredis.Redis,
        channel: str,
        callback: OnEventCallback,
        *,
        reconnect_delay: float = 1.0,
    ) -> None:
        self._redis = redis
        self._channel = channel
        self._callback = callback
        self._reconnect_delay = reconnect_delay
        self._task: asyncio.Task[None] | None = None
        self.received = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        self._task = asyncio.create_task(self._run(), name=f"pubsub:{self._channel}")
        logger.info("Fan-out subscriber listening on %s", self._channel)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Fan-out subscriber stopped after %d events", self.received)

    async def _run(self) -> None:
        while True:
            try:
                await self._listen()
            except RedisConnectionError:
                logger.warning(
                    "Lost Pub/Sub connection on %s, retrying in %.1fs",
                    self._channel, self._reconnect_delay,
                )
                await asyncio.sleep(self._reconnect_delay)

    async def _listen(self) -> None:
        pubsub = self._redis.pubsub(ignore_subscribe_messages=True)
        await pubsub.subscribe(self._channel)
        try:
            async for message in pubsub.listen():
                if message is None or message["type"] != "message":
                    continue
                await self._handle(message["data"])
        finally:
            await pubsub.aclose()

    async def _handle(self, raw: str | bytes) -> None:
        self.received += 1
        try:
            event_type, data = deserialize_event(raw)
            result = self._callback(event_type, data)
            if asyncio.iscoroutine(result):
                await result
        except Exception:
            logger.exception("Failed to dispatch fan-out event")
