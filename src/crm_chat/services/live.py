"""Live snapshot feeds over hub subscriptions.

A feed subscribes before it loads its initial state, so nothing published
between the two is lost. Every iteration yields the complete current state;
an iteration only completes when that state actually changed.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Generic, TypeVar

from crm_chat.application.ports.bus import Subscription
from crm_chat.application.ports.clock import Clock

logger = logging.getLogger(__name__)

T = TypeVar("T")


class LiveFeed(Generic[T]):
    def __init__(self, subscription: Subscription, clock: Clock) -> None:
        self._subscription = subscription
        self._clock = clock
        self._loaded = False
        self._closed = False
        self._last: T | None = None

    async def _load(self) -> None:
        raise NotImplementedError

    def _apply(self, event_type: str, data: dict[str, Any]) -> bool:
        """Fold an event into local state. Return True if anything changed."""
        raise NotImplementedError

    def _snapshot(self) -> T:
        raise NotImplementedError

    def _next_expiry(self) -> int | None:
        """Epoch ms at which the snapshot changes by age alone, if ever."""
        return None

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._subscription.close()

    def __aiter__(self) -> LiveFeed[T]:
        return self

    async def __anext__(self) -> T:
        if self._closed:
            raise StopAsyncIteration

        if not self._loaded:
            await self._load()
            self._loaded = True
            self._last = self._snapshot()
            return self._last

        while True:
            timeout = None
            expiry = self._next_expiry()
            if expiry is not None:
                timeout = max(expiry - self._clock.now_ms(), 0) / 1000

            try:
                event = await asyncio.wait_for(self._subscription.get(), timeout)
            except asyncio.TimeoutError:
                pass
            else:
                if event is None:
                    self._closed = True
                    raise StopAsyncIteration
                if not self._apply(*event):
                    continue

            snapshot = self._snapshot()
            if snapshot != self._last:
                self._last = snapshot
                return snapshot

    async def __aenter__(self) -> LiveFeed[T]:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.close()


class FeedPumps:
    """Named background tasks that forward feed snapshots to a handler."""

    def __init__(self, owner: str) -> None:
        self._owner = owner
        self._tasks: dict[str, tuple[asyncio.Task[None], LiveFeed[Any]]] = {}

    def start(
        self,
        name: str,
        feed: LiveFeed[T],
        handler: Callable[[T], Awaitable[None]],
    ) -> None:
        if name in self._tasks:
            raise RuntimeError(f"Pump {name} already running")
        task = asyncio.create_task(self._run(name, feed, handler), name=f"{self._owner}-{name}")
        self._tasks[name] = (task, feed)

    async def stop(self, name: str) -> None:
        entry = self._tasks.pop(name, None)
        if entry is None:
            return
        task, feed = entry
        feed.close()
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def stop_all(self) -> None:
        for name in list(self._tasks):
            await self.stop(name)

    def running(self, name: str) -> bool:
        return name in self._tasks

    async def _run(
        self,
        name: str,
        feed: LiveFeed[T],
        handler: Callable[[T], Awaitable[None]],
    ) -> None:
        try:
            async for snapshot in feed:
                await handler(snapshot)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Feed %s of %s failed", name, self._owner)
        finally:
            feed.close()
