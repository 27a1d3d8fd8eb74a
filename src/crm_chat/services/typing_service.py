from __future__ import annotations

import asyncio
import logging
from typing import Any

from crm_chat.application.exceptions import ValidationError
from crm_chat.application.ports.bus import EventPublisher, EventSource, Subscription
from crm_chat.application.ports.clock import Clock, SystemClock
from crm_chat.application.ports.typing import TypingStore
from crm_chat.application.topics import typing_topic
from crm_chat.domain.entities.typing import TypingIndicator
from crm_chat.domain.events.typing_changed import TYPING_CHANGED, TypingChanged
from crm_chat.services.live import LiveFeed

logger = logging.getLogger(__name__)

_clock = SystemClock()

DEFAULT_STALE_MS = 5000
DEFAULT_IDLE_MS = 3000


def fresh_indicators(
    indicators: list[TypingIndicator],
    now: int,
    *,
    exclude_user_id: str | None = None,
    stale_ms: int = DEFAULT_STALE_MS,
) -> list[TypingIndicator]:
    result = [
        i for i in indicators
        if i.user_id != exclude_user_id and i.is_fresh(now, stale_ms)
    ]
    return sorted(result, key=lambda i: (i.timestamp, i.user_id))


async def set_typing(
    chat_id: str,
    user_id: str,
    user_name: str,
    is_typing: bool,
    store: TypingStore,
    publisher: EventPublisher,
    *,
    clock: Clock = _clock,
) -> TypingIndicator | None:
    if not chat_id:
        raise ValidationError("chat_id is required")

    indicator = None
    if is_typing:
        indicator = TypingIndicator(
            chat_id=chat_id,
            user_id=user_id,
            user_name=user_name,
            timestamp=clock.now_ms(),
        )
        await store.put(indicator)
    else:
        await store.remove(chat_id, user_id)

    event = TypingChanged(chat_id=chat_id, user_id=user_id, indicator=indicator)
    await publisher.publish(event.event_type, event.to_payload())
    return indicator


async def list_typing(
    chat_id: str,
    store: TypingStore,
    *,
    exclude_user_id: str | None = None,
    stale_ms: int = DEFAULT_STALE_MS,
    clock: Clock = _clock,
) -> list[TypingIndicator]:
    if not chat_id:
        raise ValidationError("chat_id is required")
    indicators = await store.list_for_chat(chat_id)
    return fresh_indicators(
        indicators, clock.now_ms(), exclude_user_id=exclude_user_id, stale_ms=stale_ms,
    )


class TypingFeed(LiveFeed[list[TypingIndicator]]):
    """Who else is typing in a chat. Entries drop out once they go stale."""

    def __init__(
        self,
        chat_id: str,
        exclude_user_id: str | None,
        subscription: Subscription,
        store: TypingStore,
        stale_ms: int,
        clock: Clock,
    ) -> None:
        super().__init__(subscription, clock)
        self.chat_id = chat_id
        self._exclude_user_id = exclude_user_id
        self._store = store
        self._stale_ms = stale_ms
        self._indicators: dict[str, TypingIndicator] = {}

    async def _load(self) -> None:
        for indicator in await self._store.list_for_chat(self.chat_id):
            current = self._indicators.get(indicator.user_id)
            if current is None or current.timestamp <= indicator.timestamp:
                self._indicators[indicator.user_id] = indicator

    def _apply(self, event_type: str, data: dict[str, Any]) -> bool:
        if event_type != TYPING_CHANGED:
            return False
        event = TypingChanged.from_payload(data)
        if event.chat_id != self.chat_id or event.user_id == self._exclude_user_id:
            return False
        if event.indicator is None:
            return self._indicators.pop(event.user_id, None) is not None
        self._indicators[event.user_id] = event.indicator
        return True

    def _fresh(self) -> list[TypingIndicator]:
        return fresh_indicators(
            list(self._indicators.values()),
            self._clock.now_ms(),
            exclude_user_id=self._exclude_user_id,
            stale_ms=self._stale_ms,
        )

    def _snapshot(self) -> list[TypingIndicator]:
        return self._fresh()

    def _next_expiry(self) -> int | None:
        if not self._last:
            return None
        return min(i.timestamp for i in self._last) + self._stale_ms + 1


def subscribe_to_typing(
    chat_id: str,
    exclude_user_id: str | None,
    store: TypingStore,
    source: EventSource,
    *,
    stale_ms: int = DEFAULT_STALE_MS,
    clock: Clock = _clock,
) -> TypingFeed:
    return TypingFeed(
        chat_id, exclude_user_id, source.subscribe(typing_topic(chat_id)), store, stale_ms, clock,
    )


class TypingDebouncer:
    """Caller-side write policy for one user composing in one chat.

    The first keystroke of a burst writes ``typing=True``; every keystroke
    restarts the idle timer; the timer, a send, or close writes ``False``.
    """

    def __init__(
        self,
        chat_id: str,
        user_id: str,
        user_name: str,
        store: TypingStore,
        publisher: EventPublisher,
        *,
        idle_ms: int = DEFAULT_IDLE_MS,
        clock: Clock = _clock,
    ) -> None:
        self.chat_id = chat_id
        self._user_id = user_id
        self._user_name = user_name
        self._store = store
        self._publisher = publisher
        self._idle_ms = idle_ms
        self._clock = clock
        self._typing = False
        self._timer: asyncio.TimerHandle | None = None
        self._idle_task: asyncio.Task[None] | None = None

    @property
    def is_typing(self) -> bool:
        return self._typing

    async def keystroke(self) -> None:
        self._restart_timer()
        if not self._typing:
            self._typing = True
            await self._write(True)

    async def stop(self) -> None:
        self._cancel_timer()
        if self._typing:
            self._typing = False
            await self._write(False)

    async def close(self) -> None:
        await self.stop()
        if self._idle_task is not None and not self._idle_task.done():
            await self._idle_task

    async def _write(self, is_typing: bool) -> None:
        await set_typing(
            self.chat_id,
            self._user_id,
            self._user_name,
            is_typing,
            self._store,
            self._publisher,
            clock=self._clock,
        )

    def _restart_timer(self) -> None:
        self._cancel_timer()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self._idle_ms / 1000, self._on_idle)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_idle(self) -> None:
        self._timer = None
        self._idle_task = asyncio.create_task(self.stop(), name=f"typing-idle-{self.chat_id}")
        self._idle_task.add_done_callback(self._log_idle_failure)

    @staticmethod
    def _log_idle_failure(task: asyncio.Task[None]) -> None:
        if not task.cancelled() and task.exception() is not None:
            logger.error("Clearing typing flag failed", exc_info=task.exception())
