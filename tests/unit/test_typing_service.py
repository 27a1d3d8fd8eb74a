from __future__ import annotations

import asyncio

import pytest

from crm_chat.application.exceptions import ValidationError
from crm_chat.services import typing_service

CHAT = "direct/u-alex_u-sam"


@pytest.mark.asyncio
async def test_typing_true_then_false_clears(typing_store, hub, clock):
    await typing_service.set_typing(CHAT, "u-sam", "Sam Staff", True, typing_store, hub, clock=clock)
    listed = await typing_service.list_typing(CHAT, typing_store, exclude_user_id="u-alex", clock=clock)
    assert [i.user_name for i in listed] == ["Sam Staff"]

    await typing_service.set_typing(CHAT, "u-sam", "Sam Staff", False, typing_store, hub, clock=clock)
    assert await typing_service.list_typing(CHAT, typing_store, exclude_user_id="u-alex", clock=clock) == []
    assert await typing_store.list_for_chat(CHAT) == []


@pytest.mark.asyncio
async def test_viewer_is_excluded(typing_store, hub, clock):
    await typing_service.set_typing(CHAT, "u-alex", "Alex Staff", True, typing_store, hub, clock=clock)
    assert await typing_service.list_typing(CHAT, typing_store, exclude_user_id="u-alex", clock=clock) == []


@pytest.mark.asyncio
async def test_stale_typing_hidden(typing_store, hub, clock):
    await typing_service.set_typing(CHAT, "u-sam", "Sam Staff", True, typing_store, hub, clock=clock)

    clock.advance(5000)
    assert len(await typing_service.list_typing(CHAT, typing_store, clock=clock)) == 1

    clock.advance(1000)
    assert await typing_service.list_typing(CHAT, typing_store, clock=clock) == []


@pytest.mark.asyncio
async def test_set_typing_requires_chat(typing_store, hub, clock):
    with pytest.raises(ValidationError):
        await typing_service.set_typing("", "u-sam", "Sam Staff", True, typing_store, hub, clock=clock)


@pytest.mark.asyncio
async def test_typing_feed_tracks_and_expires(typing_store, hub, clock):
    feed = typing_service.subscribe_to_typing(CHAT, "u-alex", typing_store, hub, clock=clock)
    assert await feed.__anext__() == []

    await typing_service.set_typing(CHAT, "u-sam", "Sam Staff", True, typing_store, hub, clock=clock)
    indicators = await asyncio.wait_for(feed.__anext__(), 1)
    assert [i.user_id for i in indicators] == ["u-sam"]

    # No event arrives; the entry ages out on its own
    clock.advance(6000)
    assert await asyncio.wait_for(feed.__anext__(), 1) == []
    feed.close()


@pytest.mark.asyncio
async def test_typing_feed_ignores_own_typing(typing_store, hub, clock):
    feed = typing_service.subscribe_to_typing(CHAT, "u-alex", typing_store, hub, clock=clock)
    await feed.__anext__()

    await typing_service.set_typing(CHAT, "u-alex", "Alex Staff", True, typing_store, hub, clock=clock)
    with pytest.raises(asyncio.TimeoutError):
        await asyncio.wait_for(feed.__anext__(), 0.05)
    feed.close()


@pytest.mark.asyncio
async def test_debouncer_writes_once_per_burst(typing_store, hub, clock):
    debouncer = typing_service.TypingDebouncer(
        CHAT, "u-alex", "Alex Staff", typing_store, hub, idle_ms=3000, clock=clock,
    )
    sub = hub.subscribe(f"typing:{CHAT}")

    await debouncer.keystroke()
    await debouncer.keystroke()
    await debouncer.keystroke()

    assert debouncer.is_typing
    assert len(await typing_store.list_for_chat(CHAT)) == 1
    _, payload = await asyncio.wait_for(sub.get(), 1)
    assert payload["timestamp"] == clock.now
    with pytest.raises(asyncio.TimeoutError):
        await asyncio.wait_for(sub.get(), 0.05)

    await debouncer.close()
    assert not debouncer.is_typing
    assert await typing_store.list_for_chat(CHAT) == []
    sub.close()


@pytest.mark.asyncio
async def test_debouncer_idle_timer_clears(typing_store, hub, clock):
    debouncer = typing_service.TypingDebouncer(
        CHAT, "u-alex", "Alex Staff", typing_store, hub, idle_ms=20, clock=clock,
    )
    await debouncer.keystroke()
    assert len(await typing_store.list_for_chat(CHAT)) == 1

    await asyncio.sleep(0.1)

    assert not debouncer.is_typing
    assert await typing_store.list_for_chat(CHAT) == []
    await debouncer.close()


@pytest.mark.asyncio
async def test_debouncer_stop_without_typing_is_noop(typing_store, hub, clock):
    debouncer = typing_service.TypingDebouncer(CHAT, "u-alex", "Alex Staff", typing_store, hub, clock=clock)
    sub = hub.subscribe(f"typing:{CHAT}")

    await debouncer.stop()

    with pytest.raises(asyncio.TimeoutError):
        await asyncio.wait_for(sub.get(), 0.05)
    sub.close()
