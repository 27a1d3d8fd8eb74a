from __future__ import annotations

import asyncio

import pytest

from crm_chat.application.exceptions import ValidationError
from crm_chat.domain.entities.presence import PresenceRecord
from crm_chat.domain.value_objects.enums import PresenceStatus
from crm_chat.services import presence_service
from tests.conftest import T0

MINUTE = 60_000
HOUR = 60 * MINUTE
DAY = 24 * HOUR


@pytest.mark.asyncio
async def test_read_after_write(presence_store, hub, clock):
    await presence_service.update_presence("u-alex", "online", presence_store, hub, clock=clock)

    [record] = await presence_service.get_presence(["u-alex"], presence_store, clock=clock)

    assert record.status == PresenceStatus.ONLINE
    assert record.last_seen == clock.now


@pytest.mark.asyncio
async def test_offline_overwrites_online(presence_store, hub, clock):
    await presence_service.update_presence("u-alex", "online", presence_store, hub, clock=clock)
    clock.advance(1000)
    await presence_service.update_presence("u-alex", "offline", presence_store, hub, clock=clock)

    record = await presence_store.get("u-alex")
    assert record.status == PresenceStatus.OFFLINE
    assert record.last_seen == T0 + 1000


@pytest.mark.asyncio
async def test_invalid_status_rejected(presence_store, hub, clock):
    with pytest.raises(ValidationError):
        await presence_service.update_presence("u-alex", "away", presence_store, hub, clock=clock)
    assert await presence_store.get("u-alex") is None


@pytest.mark.asyncio
async def test_stale_online_reads_offline(presence_store, hub, clock):
    await presence_service.update_presence("u-alex", "online", presence_store, hub, clock=clock)
    clock.advance(61_000)

    [record] = await presence_service.get_presence(
        ["u-alex"], presence_store, stale_after_ms=60_000, clock=clock,
    )
    assert record.status == PresenceStatus.OFFLINE
    # Without a cutoff the stored claim is returned as-is
    [raw] = await presence_service.get_presence(["u-alex"], presence_store, clock=clock)
    assert raw.status == PresenceStatus.ONLINE


@pytest.mark.asyncio
async def test_get_presence_skips_unknown_users(presence_store, clock):
    assert await presence_service.get_presence(["u-ghost"], presence_store, clock=clock) == []
    assert await presence_service.get_presence([], presence_store, clock=clock) == []


@pytest.mark.parametrize(
    ("elapsed", "expected"),
    [
        (30_000, "Just now"),
        (5 * MINUTE, "5m ago"),
        (3 * HOUR, "3h ago"),
        (DAY + HOUR, "Yesterday"),
        (3 * DAY, "3d ago"),
    ],
)
def test_format_last_seen(elapsed, expected):
    assert presence_service.format_last_seen(T0, T0 + elapsed) == expected


def test_format_last_seen_falls_back_to_date():
    # 2023-11-14 22:13 UTC
    assert presence_service.format_last_seen(T0, T0 + 10 * DAY) == "Nov 14"


def test_presence_label():
    online = PresenceRecord("u-alex", PresenceStatus.ONLINE, T0)
    offline = PresenceRecord("u-alex", PresenceStatus.OFFLINE, T0)
    assert presence_service.presence_label(online, T0 + HOUR) == "Online"
    assert presence_service.presence_label(offline, T0 + 2 * HOUR) == "Last seen 2h ago"
    assert presence_service.presence_label(online, T0 + 2 * MINUTE, 60_000) == "Last seen 2m ago"


@pytest.mark.asyncio
async def test_presence_feed_follows_updates(presence_store, hub, clock):
    feed = presence_service.subscribe_to_presence("u-sam", presence_store, hub, clock=clock)

    first = await feed.__anext__()
    assert first.status == PresenceStatus.OFFLINE
    assert first.last_seen == 0

    await presence_service.update_presence("u-sam", "online", presence_store, hub, clock=clock)
    second = await asyncio.wait_for(feed.__anext__(), 1)
    assert second.status == PresenceStatus.ONLINE
    feed.close()


@pytest.mark.asyncio
async def test_presence_feed_expires_stale_online(presence_store, hub, clock):
    await presence_service.update_presence("u-sam", "online", presence_store, hub, clock=clock)
    feed = presence_service.subscribe_to_presence(
        "u-sam", presence_store, hub, stale_after_ms=60_000, clock=clock,
    )
    assert (await feed.__anext__()).status == PresenceStatus.ONLINE

    clock.advance(60_001)
    record = await asyncio.wait_for(feed.__anext__(), 1)

    assert record.status == PresenceStatus.OFFLINE
    feed.close()


@pytest.mark.asyncio
async def test_presence_feed_ignores_other_users(presence_store, hub, clock):
    feed = presence_service.subscribe_to_presence("u-sam", presence_store, hub, clock=clock)
    await feed.__anext__()

    await presence_service.update_presence("u-kim", "online", presence_store, hub, clock=clock)
    with pytest.raises(asyncio.TimeoutError):
        await asyncio.wait_for(feed.__anext__(), 0.05)
    feed.close()
