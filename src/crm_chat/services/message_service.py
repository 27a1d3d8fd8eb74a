from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from typing import Any

from crm_chat.application.dto.principal import Principal
from crm_chat.application.exceptions import ValidationError
from crm_chat.application.policies.permissions import assert_chat_access
from crm_chat.application.ports.bus import EventPublisher, EventSource, Subscription
from crm_chat.application.ports.clock import Clock, SystemClock
from crm_chat.application.topics import messages_topic
from crm_chat.application.uow import UnitOfWork, UoWFactory
from crm_chat.config import settings
from crm_chat.domain.entities.chat import Chat
from crm_chat.domain.entities.message import Message
from crm_chat.domain.events.message_created import MESSAGE_CREATED, MessageCreated
from crm_chat.domain.value_objects.enums import UserRole
from crm_chat.services import chat_service
from crm_chat.services.live import LiveFeed

logger = logging.getLogger(__name__)

_clock = SystemClock()


def _validate_text(text: str | None) -> str:
    if text is None or not text.strip():
        raise ValidationError("Message text is required")
    return text


def _validate_role(sender_role: str | None, principal: Principal) -> UserRole:
    if sender_role is None:
        return principal.role
    try:
        return UserRole(sender_role)
    except ValueError:
        raise ValidationError(f"Invalid sender role: {sender_role}") from None


async def _resolve_chat(chat_id: str, uow: UnitOfWork, clock: Clock) -> Chat | None:
    chat = await uow.chats.get_by_id(chat_id)
    if chat is None and chat_id == chat_service.default_group_chat_id():
        chat, _created = await chat_service.ensure_group_chat(uow, clock=clock)
    return chat


async def send_message(
    chat_id: str,
    principal: Principal,
    text: str | None,
    uow: UnitOfWork,
    publisher: EventPublisher,
    *,
    sender_name: str | None = None,
    sender_role: str | None = None,
    clock: Clock = _clock,
) -> Message:
    """Append a message to the chat log and refresh the chat's summary.

    Validation happens before any write. There is no retry: a failure
    propagates to the caller, who still holds the drafted text.
    """
    if not chat_id:
        raise ValidationError("Chat id is required")
    text = _validate_text(text)
    role = _validate_role(sender_role, principal)

    chat = await _resolve_chat(chat_id, uow, clock)
    chat = assert_chat_access(principal, chat, allow_admin=False)

    # Never order a new message before the chat's current last message
    timestamp = max(clock.now_ms(), chat.last_message_time or 0)
    name = sender_name or principal.name
    msg = Message(
        id=uuid.uuid4(),
        chat_id=chat.id,
        sender_id=principal.id,
        sender_name=name,
        sender_role=role,
        text=text,
        timestamp=timestamp,
        read={principal.id: timestamp},
    )
    msg = await uow.messages_w.append(msg)
    await uow.chats_w.update_last_message(chat.id, text, name, timestamp)
    await uow.commit()

    summary = replace(
        chat,
        last_message=text,
        last_message_sender=name,
        last_message_time=timestamp,
    )
    try:
        created = MessageCreated(msg)
        await publisher.publish(created.event_type, created.to_payload())
        await chat_service.publish_chat(summary, publisher)
    except Exception:
        # The log is authoritative; subscribers catch up on their next load
        logger.exception("Fan-out failed for message %s in %s", msg.id, chat.id)

    return msg


async def list_messages(
    chat_id: str,
    principal: Principal,
    uow: UnitOfWork,
    *,
    before: str | None = None,
    limit: int = 100,
) -> list[Message]:
    if limit < 1:
        raise ValidationError("limit must be positive")
    chat = await uow.chats.get_by_id(chat_id)
    if chat is None and chat_id == chat_service.default_group_chat_id():
        return []
    assert_chat_access(principal, chat)
    return await uow.messages.list_recent(chat_id, limit=limit, before=before)


async def mark_read(
    chat_id: str,
    principal: Principal,
    uow: UnitOfWork,
    *,
    clock: Clock = _clock,
) -> int:
    """Mark every message currently in the log as read by the caller."""
    chat = await uow.chats.get_by_id(chat_id)
    if chat is None and chat_id == chat_service.default_group_chat_id():
        return 0
    assert_chat_access(principal, chat, allow_admin=False)
    changed = await uow.messages_w.mark_read(chat_id, principal.id, clock.now_ms())
    await uow.commit()
    return changed


class MessageWindowFeed(LiveFeed[list[Message]]):
    """Most recent ``limit`` messages of one chat, oldest first."""

    def __init__(
        self,
        chat_id: str,
        subscription: Subscription,
        uow_factory: UoWFactory,
        limit: int,
        clock: Clock,
    ) -> None:
        super().__init__(subscription, clock)
        self.chat_id = chat_id
        self._uow_factory = uow_factory
        self._limit = limit
        self._window: dict[uuid.UUID, Message] = {}

    async def _load(self) -> None:
        async with self._uow_factory() as uow:
            messages = await uow.messages.list_recent(self.chat_id, limit=self._limit)
        self._merge(messages)

    def _apply(self, event_type: str, data: dict[str, Any]) -> bool:
        if event_type != MESSAGE_CREATED:
            return False
        message = MessageCreated.from_payload(data).message
        if message.chat_id != self.chat_id:
            return False
        return self._merge([message])

    def _merge(self, messages: list[Message]) -> bool:
        changed = False
        for message in messages:
            if self._window.get(message.id) != message:
                self._window[message.id] = message
                changed = True
        if changed:
            ordered = sorted(self._window.values(), key=lambda m: m.order_key)
            self._window = {m.id: m for m in ordered[-self._limit:]}
        return changed

    def _snapshot(self) -> list[Message]:
        return list(self._window.values())


async def subscribe_to_messages(
    chat_id: str,
    principal: Principal,
    source: EventSource,
    uow_factory: UoWFactory,
    *,
    limit: int | None = None,
    clock: Clock = _clock,
) -> MessageWindowFeed:
    """Live window of a chat's log. Admins may watch any chat."""
    limit = limit or settings.MESSAGE_WINDOW_LIMIT
    if limit < 1:
        raise ValidationError("limit must be positive")
    if chat_id != chat_service.default_group_chat_id():
        async with uow_factory() as uow:
            chat = await uow.chats.get_by_id(chat_id)
        assert_chat_access(principal, chat)
    return MessageWindowFeed(
        chat_id, source.subscribe(messages_topic(chat_id)), uow_factory, limit, clock,
    )
