from __future__ import annotations

import logging
from typing import Any, Iterable

from crm_chat.application.dto.principal import Principal
from crm_chat.application.exceptions import NotFoundError, ValidationError
from crm_chat.application.policies.permissions import assert_admin
from crm_chat.application.ports.bus import EventPublisher, EventSource, Subscription
from crm_chat.application.ports.clock import Clock, SystemClock
from crm_chat.application.topics import ALL_CHATS
from crm_chat.application.uow import UnitOfWork, UoWFactory
from crm_chat.config import settings
from crm_chat.domain.entities.chat import Chat
from crm_chat.domain.entities.user import ChatUser
from crm_chat.domain.events.chat_updated import CHAT_UPDATED, ChatUpdated
from crm_chat.domain.value_objects.enums import ChatType
from crm_chat.domain.value_objects.ids import direct_chat_id, group_chat_id
from crm_chat.services.live import LiveFeed

logger = logging.getLogger(__name__)

_clock = SystemClock()


def default_group_chat_id() -> str:
    return group_chat_id(settings.GROUP_CHAT_KEY)


def sort_chats(chats: Iterable[Chat]) -> list[Chat]:
    """Most recent activity first; chats without messages go last."""
    return sorted(
        chats,
        key=lambda c: (
            c.last_message_time is None,
            -(c.last_message_time or 0),
            c.id,
        ),
    )


async def publish_chat(chat: Chat, publisher: EventPublisher) -> None:
    event = ChatUpdated(chat)
    await publisher.publish(event.event_type, event.to_payload())


async def ensure_group_chat(
    uow: UnitOfWork,
    *,
    clock: Clock = _clock,
) -> tuple[Chat, bool]:
    """Return the singleton group chat, creating it if absent. Caller commits."""
    chat_id = default_group_chat_id()
    existing = await uow.chats.get_by_id(chat_id)
    if existing is not None:
        return existing, False

    chat = Chat(
        id=chat_id,
        type=ChatType.GROUP,
        name=settings.GROUP_CHAT_NAME,
        created_at=clock.now_ms(),
    )
    created = await uow.chats_w.create_if_absent(chat)
    if not created:
        # Lost the creation race; the winner's row is identical in shape
        chat = await uow.chats.get_by_id(chat_id) or chat
    return chat, created


async def initialize_group_chat(
    uow: UnitOfWork,
    publisher: EventPublisher,
    *,
    clock: Clock = _clock,
) -> str:
    chat, created = await ensure_group_chat(uow, clock=clock)
    if created:
        await uow.commit()
        logger.info("Created group chat %s", chat.id)
        await publish_chat(chat, publisher)
    return chat.id


async def get_or_create_direct_chat(
    user_a: str,
    user_b: str,
    name_a: str,
    name_b: str,
    uow: UnitOfWork,
    publisher: EventPublisher,
    *,
    clock: Clock = _clock,
) -> str:
    """Return the direct chat id for the unordered pair, creating the chat if needed.

    The id is derived from the sorted pair, so concurrent calls from both
    participants converge on one row.
    """
    if not user_a or not user_b:
        raise ValidationError("Both participants are required")
    if user_a == user_b:
        raise ValidationError("Cannot start a direct chat with yourself")

    chat_id = direct_chat_id(user_a, user_b)
    existing = await uow.chats.get_by_id(chat_id)
    if existing is not None:
        return existing.id

    chat = Chat(
        id=chat_id,
        type=ChatType.DIRECT,
        name=None,
        created_at=clock.now_ms(),
        participant_ids=sorted((user_a, user_b)),
        participant_names={user_a: name_a, user_b: name_b},
    )
    created = await uow.chats_w.create_if_absent(chat)
    if created:
        await uow.commit()
        logger.info("Created direct chat %s", chat_id)
        await publish_chat(chat, publisher)
    return chat_id


async def start_direct_chat(
    principal: Principal,
    other_user_id: str,
    uow: UnitOfWork,
    publisher: EventPublisher,
    *,
    clock: Clock = _clock,
) -> str:
    """Direct chat between the caller and a user picked from the directory."""
    other = await uow.users.get_by_id(other_user_id)
    if other is None:
        raise NotFoundError("User not found")
    return await get_or_create_direct_chat(
        principal.id, other.id, principal.name, other.name, uow, publisher, clock=clock,
    )


async def get_chat(chat_id: str, uow: UnitOfWork) -> Chat:
    chat = await uow.chats.get_by_id(chat_id)
    if chat is None:
        raise NotFoundError("Chat not found")
    return chat


async def list_user_chats(principal: Principal, uow: UnitOfWork) -> list[Chat]:
    return sort_chats(await uow.chats.list_for_user(principal.id))


async def list_all_chats(principal: Principal, uow: UnitOfWork) -> list[Chat]:
    assert_admin(principal)
    return sort_chats(await uow.chats.list_all())


class ChatListFeed(LiveFeed[list[Chat]]):
    """Sorted chat list. ``viewer_id=None`` means no participant filter."""

    def __init__(
        self,
        subscription: Subscription,
        uow_factory: UoWFactory,
        viewer_id: str | None,
        clock: Clock,
    ) -> None:
        super().__init__(subscription, clock)
        self._uow_factory = uow_factory
        self._viewer_id = viewer_id
        self._chats: dict[str, Chat] = {}

    async def _load(self) -> None:
        async with self._uow_factory() as uow:
            if self._viewer_id is None:
                chats = await uow.chats.list_all()
            else:
                chats = await uow.chats.list_for_user(self._viewer_id)
        for chat in chats:
            self._upsert(chat)

    def _apply(self, event_type: str, data: dict[str, Any]) -> bool:
        if event_type != CHAT_UPDATED:
            return False
        chat = ChatUpdated.from_payload(data).chat
        if self._viewer_id is not None and not chat.has_participant(self._viewer_id):
            return False
        return self._upsert(chat)

    def _upsert(self, chat: Chat) -> bool:
        current = self._chats.get(chat.id)
        if current is not None:
            if (current.last_message_time or 0) > (chat.last_message_time or 0):
                return False
            if current == chat:
                return False
        self._chats[chat.id] = chat
        return True

    def _snapshot(self) -> list[Chat]:
        return sort_chats(self._chats.values())


def subscribe_to_user_chats(
    user_id: str,
    source: EventSource,
    uow_factory: UoWFactory,
    *,
    clock: Clock = _clock,
) -> ChatListFeed:
    return ChatListFeed(source.subscribe(ALL_CHATS), uow_factory, user_id, clock)


def subscribe_to_all_chats(
    principal: Principal,
    source: EventSource,
    uow_factory: UoWFactory,
    *,
    clock: Clock = _clock,
) -> ChatListFeed:
    assert_admin(principal)
    return ChatListFeed(source.subscribe(ALL_CHATS), uow_factory, None, clock)


async def search_users(
    principal: Principal,
    uow: UnitOfWork,
    query: str | None = None,
) -> list[ChatUser]:
    """Directory entries the caller can start a direct chat with."""
    needle = (query or "").strip().lower()
    return [
        u for u in await uow.users.list_users()
        if u.id != principal.id
        and (not needle or needle in u.name.lower() or needle in u.email.lower())
    ]
