from __future__ import annotations

import asyncio

import pytest

from crm_chat.application.exceptions import ForbiddenError, NotFoundError, ValidationError
from crm_chat.application.topics import ALL_CHATS
from crm_chat.domain.value_objects.enums import ChatType
from crm_chat.domain.value_objects.ids import chat_type_of, direct_chat_id
from crm_chat.services import chat_service, message_service
from tests.conftest import ALEX, KIM, SAM, make_direct_chat, make_group_chat


def test_direct_chat_id_is_order_independent():
    assert direct_chat_id("b", "a") == direct_chat_id("a", "b") == "direct/a_b"
    assert chat_type_of("direct/a_b") == ChatType.DIRECT
    assert chat_type_of("group/office-all") == ChatType.GROUP
    assert chat_type_of("nonsense") is None


@pytest.mark.asyncio
async def test_swapped_arguments_create_one_chat(uow, hub, clock):
    first = await chat_service.get_or_create_direct_chat(
        ALEX.id, SAM.id, ALEX.name, SAM.name, uow, hub, clock=clock,
    )
    second = await chat_service.get_or_create_direct_chat(
        SAM.id, ALEX.id, SAM.name, ALEX.name, uow, hub, clock=clock,
    )

    assert first == second
    assert len(await uow.chats.list_all()) == 1
    chat = await uow.chats.get_by_id(first)
    assert chat.participant_ids == sorted([ALEX.id, SAM.id])
    assert chat.display_name_for(ALEX.id) == SAM.name
    assert chat.display_name_for(SAM.id) == ALEX.name
    assert uow.commits == 1


@pytest.mark.asyncio
async def test_concurrent_direct_chat_creation_converges(uow, hub, clock):
    ids = await asyncio.gather(
        chat_service.get_or_create_direct_chat(ALEX.id, SAM.id, ALEX.name, SAM.name, uow, hub, clock=clock),
        chat_service.get_or_create_direct_chat(SAM.id, ALEX.id, SAM.name, ALEX.name, uow, hub, clock=clock),
    )
    assert ids[0] == ids[1]
    assert len(await uow.chats.list_all()) == 1


@pytest.mark.asyncio
async def test_direct_chat_with_self_rejected(uow, hub, clock):
    with pytest.raises(ValidationError):
        await chat_service.get_or_create_direct_chat(ALEX.id, ALEX.id, ALEX.name, ALEX.name, uow, hub, clock=clock)


@pytest.mark.asyncio
async def test_start_direct_chat_unknown_user(user_principal, uow, hub, clock):
    with pytest.raises(NotFoundError):
        await chat_service.start_direct_chat(user_principal, "u-ghost", uow, hub, clock=clock)


@pytest.mark.asyncio
async def test_start_direct_chat_uses_directory_name(user_principal, uow, hub, clock):
    chat_id = await chat_service.start_direct_chat(user_principal, KIM.id, uow, hub, clock=clock)
    chat = await uow.chats.get_by_id(chat_id)
    assert chat.participant_names == {ALEX.id: ALEX.name, KIM.id: KIM.name}


@pytest.mark.asyncio
async def test_initialize_group_chat_is_idempotent(uow, hub, clock):
    sub = hub.subscribe(ALL_CHATS)

    first = await chat_service.initialize_group_chat(uow, hub, clock=clock)
    second = await chat_service.initialize_group_chat(uow, hub, clock=clock)

    assert first == second == "group/office-all"
    assert uow.commits == 1
    event_type, payload = await asyncio.wait_for(sub.get(), 1)
    assert payload["id"] == first
    assert payload["name"] == "All Office Members"
    sub.close()


def test_sort_chats_recent_first_empty_last():
    quiet = make_group_chat()
    old = make_direct_chat(ALEX, SAM)
    new = make_direct_chat(ALEX, KIM)
    from dataclasses import replace

    old = replace(old, last_message_time=100)
    new = replace(new, last_message_time=200)

    assert [c.id for c in chat_service.sort_chats([quiet, old, new])] == [new.id, old.id, quiet.id]


@pytest.mark.asyncio
async def test_user_sees_group_and_own_direct_chats(user_principal, uow):
    uow.add_chat(make_group_chat())
    mine = uow.add_chat(make_direct_chat(ALEX, SAM))
    uow.add_chat(make_direct_chat(SAM, KIM))

    chats = await chat_service.list_user_chats(user_principal, uow)

    assert {c.id for c in chats} == {"group/office-all", mine.id}


@pytest.mark.asyncio
async def test_list_all_chats_requires_admin(user_principal, admin_principal, uow):
    uow.add_chat(make_direct_chat(SAM, KIM))
    with pytest.raises(ForbiddenError):
        await chat_service.list_all_chats(user_principal, uow)
    assert len(await chat_service.list_all_chats(admin_principal, uow)) == 1


@pytest.mark.asyncio
async def test_search_users_excludes_self(user_principal, uow):
    users = await chat_service.search_users(user_principal, uow)
    assert ALEX.id not in {u.id for u in users}

    found = await chat_service.search_users(user_principal, uow, "KIM@")
    assert [u.id for u in found] == [KIM.id]


@pytest.mark.asyncio
async def test_admin_feed_sees_all_user_feed_filters(user_principal, admin_principal, other_principal, uow, hub, clock):
    foreign = uow.add_chat(make_direct_chat(SAM, KIM))

    user_feed = chat_service.subscribe_to_user_chats(user_principal.id, hub, uow.factory(), clock=clock)
    admin_feed = chat_service.subscribe_to_all_chats(admin_principal, hub, uow.factory(), clock=clock)
    assert await user_feed.__anext__() == []
    assert [c.id for c in await admin_feed.__anext__()] == [foreign.id]

    await message_service.send_message(foreign.id, other_principal, "private", uow, hub, clock=clock)

    admin_chats = await asyncio.wait_for(admin_feed.__anext__(), 1)
    assert admin_chats[0].last_message == "private"
    with pytest.raises(asyncio.TimeoutError):
        await asyncio.wait_for(user_feed.__anext__(), 0.05)

    user_feed.close()
    admin_feed.close()


def test_subscribe_to_all_chats_requires_admin(user_principal, uow, hub):
    with pytest.raises(ForbiddenError):
        chat_service.subscribe_to_all_chats(user_principal, hub, uow.factory())


@pytest.mark.asyncio
async def test_chat_feed_ignores_older_summary(user_principal, uow, hub, clock):
    from dataclasses import replace

    chat = uow.add_chat(replace(make_direct_chat(ALEX, SAM), last_message="new", last_message_time=200))
    feed = chat_service.subscribe_to_user_chats(user_principal.id, hub, uow.factory(), clock=clock)
    await feed.__anext__()

    await chat_service.publish_chat(replace(chat, last_message="old", last_message_time=100), hub)
    await chat_service.publish_chat(replace(chat, last_message="newer", last_message_time=300), hub)

    chats = await asyncio.wait_for(feed.__anext__(), 1)
    assert chats[0].last_message == "newer"
    feed.close()
