"""Advisory online/offline state.

Records are overwritten on every heartbeat. Readers may pass a staleness
cutoff so an ``online`` claim whose heartbeat stopped reads as ``offline``.
"""
from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any

from crm_chat.application.exceptions import ValidationError
from crm_chat.application.ports.bus import EventPublisher, EventSource, Subscription
from crm_chat.application.ports.clock import Clock, SystemClock
from crm_chat.application.ports.presence import PresenceStore
from crm_chat.application.topics import presence_topic
from crm_chat.domain.entities.presence import PresenceRecord
from crm_chat.domain.events.presence_changed import PRESENCE_CHANGED, PresenceChanged
from crm_chat.domain.value_objects.enums import PresenceStatus
from crm_chat.services.live import LiveFeed

logger = logging.getLogger(__name__)

_clock = SystemClock()

_MINUTE_MS = 60_000
_HOUR_MS = 60 * _MINUTE_MS
_DAY_MS = 24 * _HOUR_MS


def effective_status(record: PresenceRecord, now: int, stale_after_ms: int = 0) -> PresenceStatus:
    if (
        record.is_online
        and stale_after_ms > 0
        and now - record.last_seen > stale_after_ms
    ):
        return PresenceStatus.OFFLINE
    return record.status


def _effective(record: PresenceRecord, now: int, stale_after_ms: int) -> PresenceRecord:
    status = effective_status(record, now, stale_after_ms)
    if status == record.status:
        return record
    return replace(record, status=status)


def format_last_seen(last_seen: int, now: int) -> str:
    elapsed = now - last_seen
    minutes = elapsed // _MINUTE_MS
    hours = elapsed // _HOUR_MS
    days = elapsed // _DAY_MS

    if minutes < 1:
        return "Just now"
    if minutes < 60:
        return f"{minutes}m ago"
    if hours < 24:
        return f"{hours}h ago"
    if days == 1:
        return "Yesterday"
    if days < 7:
        return f"{days}d ago"
    seen = datetime.fromtimestamp(last_seen / 1000, tz=timezone.utc)
    return f"{seen:%b} {seen.day}"


def presence_label(record: PresenceRecord, now: int, stale_after_ms: int = 0) -> str:
    if effective_status(record, now, stale_after_ms) == PresenceStatus.ONLINE:
        return "Online"
    return f"Last seen {format_last_seen(record.last_seen, now)}"


def offline_placeholder(user_id: str) -> PresenceRecord:
    """Reading for a user who never connected."""
    return PresenceRecord(user_id=user_id, status=PresenceStatus.OFFLINE, last_seen=0)


async def update_presence(
    user_id: str,
    status: str,
    store: PresenceStore,
    publisher: EventPublisher,
    *,
    clock: Clock = _clock,
) -> PresenceRecord:
    """Unconditionally overwrite the user's status with last_seen=now."""
    try:
        parsed = PresenceStatus(status)
    except ValueError:
        raise ValidationError("Invalid status") from None

    record = PresenceRecord(user_id=user_id, status=parsed, last_seen=clock.now_ms())
    await store.put(record)
    event = PresenceChanged(record)
    await publisher.publish(event.event_type, event.to_payload())
    logger.debug("Presence %s -> %s", user_id, parsed)
    return record


async def get_presence(
    user_ids: list[str],
    store: PresenceStore,
    *,
    stale_after_ms: int = 0,
    clock: Clock = _clock,
) -> list[PresenceRecord]:
    if not user_ids:
        return []
    now = clock.now_ms()
    records = await store.get_many(user_ids)
    return [_effective(r, now, stale_after_ms) for r in records]


class PresenceFeed(LiveFeed[PresenceRecord]):
    def __init__(
        self,
        user_id: str,
        subscription: Subscription,
        store: PresenceStore,
        stale_after_ms: int,
        clock: Clock,
    ) -> None:
        super().__init__(subscription, clock)
        self.user_id = user_id
        self._store = store
        self._stale_after_ms = stale_after_ms
        self._record = offline_placeholder(user_id)

    async def _load(self) -> None:
        record = await self._store.get(self.user_id)
        if record is not None and record.last_seen >= self._record.last_seen:
            self._record = record

    def _apply(self, event_type: str, data: dict[str, Any]) -> bool:
        if event_type != PRESENCE_CHANGED:
            return False
        record = PresenceChanged.from_payload(data).record
        if record.user_id != self.user_id or record.last_seen < self._record.last_seen:
            return False
        self._record = record
        return True

    def _snapshot(self) -> PresenceRecord:
        return _effective(self._record, self._clock.now_ms(), self._stale_after_ms)

    def _next_expiry(self) -> int | None:
        if self._stale_after_ms <= 0 or not self._record.is_online:
            return None
        if self._last is not None and not self._last.is_online:
            # Staleness already reported
            return None
        return self._record.last_seen + self._stale_after_ms + 1


def subscribe_to_presence(
    user_id: str,
    store: PresenceStore,
    source: EventSource,
    *,
    stale_after_ms: int = 0,
    clock: Clock = _clock,
) -> PresenceFeed:
    return PresenceFeed(
        user_id, source.subscribe(presence_topic(user_id)), store, stale_after_ms, clock,
    )
