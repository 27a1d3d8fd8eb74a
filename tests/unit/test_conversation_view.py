from __future__ import annotations

import asyncio
from typing import Any, Callable

import pytest
import pytest_asyncio

from crm_chat.domain.value_objects.enums import NotificationPermission, PresenceStatus
from crm_chat.services import message_service
from crm_chat.services.conversation_view import ConversationView
from crm_chat.services.notification_service import NotificationDispatcher
from tests.conftest import KIM, SAM, make_direct_chat


class Recorder:
    """Collects emitted frames."""

    def __init__(self) -> None:
        self.frames: list[tuple[str, dict[str, Any]]] = []

    async def __call__(self, event_type: str, data: dict[str, Any]) -> None:
        self.frames.append((event_type, data))

    async def wait_for(
        self,
        event_type: str,
        predicate: Callable[[dict[str, Any]], bool] = lambda d: True,
        timeout: float = 1.0,
    ) -> dict[str, Any]:
        async def _poll() -> dict[str, Any]:
            while True:
                for t, d in self.frames:
                    if t == event_type and predicate(d):
                        return d
                await asyncio.sleep(0.005)

        return await asyncio.wait_for(_poll(), timeout)


async def _eventually(check: Callable[[], bool], timeout: float = 1.0) -> None:
    async def _poll() -> None:
        while not check():
            await asyncio.sleep(0.005)

    await asyncio.wait_for(_poll(), timeout)


@pytest.fixture
def direct_chat(uow):
    return uow.add_chat(make_direct_chat())


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


def _make_view(principal, recorder, hub, uow, presence_store, typing_store, preferences, alert_sink, clock):
    dispatcher = NotificationDispatcher(
        f"device-{principal.id}", preferences, alert_sink,
        permission=NotificationPermission.GRANTED, clock=clock,
    )
    return ConversationView(
        principal,
        emit=recorder,
        source=hub,
        publisher=hub,
        uow_factory=uow.factory(),
        presence_store=presence_store,
        typing_store=typing_store,
        dispatcher=dispatcher,
        clock=clock,
    )


@pytest_asyncio.fixture
async def view(user_principal, recorder, hub, uow, presence_store, typing_store, preferences, alert_sink, clock):
    view = _make_view(
        user_principal, recorder, hub, uow, presence_store, typing_store, preferences, alert_sink, clock,
    )
    await view.start()
    yield view
    await view.close()


@pytest.mark.asyncio
async def test_start_creates_group_and_goes_online(view, recorder, uow, presence_store, user_principal):
    frame = await recorder.wait_for("chats.snapshot", lambda d: len(d["chats"]) == 1)

    assert frame["chats"][0]["id"] == "group/office-all"
    assert frame["chats"][0]["display_name"] == "All Office Members"
    record = await presence_store.get(user_principal.id)
    assert record.status == PresenceStatus.ONLINE


@pytest.mark.asyncio
async def test_open_chat_streams_messages(view, recorder, uow, hub, clock, direct_chat, other_principal):
    await view.open_chat(direct_chat.id)
    await recorder.wait_for("messages.snapshot", lambda d: d["messages"] == [])

    await message_service.send_message(direct_chat.id, other_principal, "ping", uow, hub, clock=clock)

    frame = await recorder.wait_for("messages.snapshot", lambda d: len(d["messages"]) == 1)
    assert frame["chat_id"] == direct_chat.id
    assert frame["messages"][0]["text"] == "ping"


@pytest.mark.asyncio
async def test_open_chat_reports_peer_presence(view, recorder, direct_chat):
    await view.open_chat(direct_chat.id)

    frame = await recorder.wait_for("presence")
    assert frame["user_id"] == SAM.id
    assert frame["status"] == "offline"


@pytest.mark.asyncio
async def test_active_chat_is_marked_read(view, uow, hub, clock, direct_chat, other_principal, user_principal):
    await view.open_chat(direct_chat.id)
    await message_service.send_message(direct_chat.id, other_principal, "read me", uow, hub, clock=clock)

    await _eventually(lambda: uow.messages._messages[0].is_read_by(user_principal.id))


@pytest.mark.asyncio
async def test_incoming_in_other_chat_raises_alert(view, uow, hub, clock, direct_chat, other_principal, alert_sink):
    await message_service.send_message(direct_chat.id, other_principal, "psst", uow, hub, clock=clock)

    await _eventually(lambda: len(alert_sink.alerts) == 1)
    alert = alert_sink.alerts[0]
    assert alert.title == "New message from Sam Staff"
    assert alert.chat_id == direct_chat.id


@pytest.mark.asyncio
async def test_actively_viewed_chat_raises_no_alert(view, recorder, uow, hub, clock, direct_chat, other_principal, alert_sink):
    await view.open_chat(direct_chat.id)
    await message_service.send_message(direct_chat.id, other_principal, "hey", uow, hub, clock=clock)

    await recorder.wait_for("messages.snapshot", lambda d: len(d["messages"]) == 1)
    await asyncio.sleep(0.05)
    assert alert_sink.alerts == []


@pytest.mark.asyncio
async def test_hidden_page_alerts_and_goes_offline(
    view, uow, hub, clock, direct_chat, other_principal, alert_sink, presence_store, user_principal,
):
    await view.open_chat(direct_chat.id)
    await view.set_visible(False)

    assert (await presence_store.get(user_principal.id)).status == PresenceStatus.OFFLINE

    await message_service.send_message(direct_chat.id, other_principal, "you there?", uow, hub, clock=clock)
    await _eventually(lambda: len(alert_sink.alerts) == 1)


@pytest.mark.asyncio
async def test_own_messages_raise_no_alert(view, uow, hub, clock, direct_chat, user_principal, alert_sink):
    await message_service.send_message(direct_chat.id, user_principal, "note to self", uow, hub, clock=clock)
    await asyncio.sleep(0.05)
    assert alert_sink.alerts == []


@pytest.mark.asyncio
async def test_send_clears_typing(view, typing_store, direct_chat):
    await view.open_chat(direct_chat.id)
    await view.keystroke()
    assert len(await typing_store.list_for_chat(direct_chat.id)) == 1

    await view.send("done typing")

    assert await typing_store.list_for_chat(direct_chat.id) == []


@pytest.mark.asyncio
async def test_switching_chats_clears_typing(view, typing_store, direct_chat):
    await view.open_chat(direct_chat.id)
    await view.keystroke()

    await view.open_chat("group/office-all")

    assert view.active_chat_id == "group/office-all"
    assert await typing_store.list_for_chat(direct_chat.id) == []


@pytest.mark.asyncio
async def test_open_direct_chat_by_user(view, uow):
    chat_id = await view.open_direct_chat(SAM.id)

    assert chat_id == "direct/u-alex_u-sam"
    assert view.active_chat_id == chat_id
    assert await uow.chats.get_by_id(chat_id) is not None


@pytest.mark.asyncio
async def test_close_goes_offline(view, presence_store, user_principal):
    await view.close()
    assert (await presence_store.get(user_principal.id)).status == PresenceStatus.OFFLINE


@pytest.mark.asyncio
async def test_close_keeps_presence_when_other_tabs_remain(view, presence_store, user_principal):
    await view.close(last_connection=False)
    assert (await presence_store.get(user_principal.id)).status == PresenceStatus.ONLINE


@pytest.mark.asyncio
async def test_marked_messages_are_not_marked_again(
    view, recorder, uow, hub, clock, direct_chat, other_principal, user_principal,
):
    await view.open_chat(direct_chat.id)
    await message_service.send_message(direct_chat.id, other_principal, "one", uow, hub, clock=clock)
    await _eventually(lambda: uow.messages_w.mark_calls == 1)

    await message_service.send_message(direct_chat.id, user_principal, "my reply", uow, hub, clock=clock)
    await recorder.wait_for("messages.snapshot", lambda d: len(d["messages"]) == 2)
    await asyncio.sleep(0.05)

    assert uow.messages_w.mark_calls == 1


@pytest.mark.asyncio
async def test_admin_watching_foreign_chat_leaves_read_state(
    admin_principal, other_principal, recorder, hub, uow, presence_store, typing_store, preferences,
    alert_sink, clock,
):
    chat = uow.add_chat(make_direct_chat(SAM, KIM))
    view = _make_view(
        admin_principal, recorder, hub, uow, presence_store, typing_store, preferences, alert_sink, clock,
    )
    await view.start()
    try:
        await view.open_chat(chat.id)
        await message_service.send_message(chat.id, other_principal, "for kim", uow, hub, clock=clock)
        await recorder.wait_for("messages.snapshot", lambda d: len(d["messages"]) == 1)
        await asyncio.sleep(0.05)
    finally:
        await view.close()

    assert uow.messages_w.mark_calls == 0
    assert not uow.messages._messages[0].is_read_by(admin_principal.id)
