"""Two-pane chat for a regular user: chat list plus the active conversation.

One instance backs one client connection. It owns every feed it opens and
tears them down when the active chat changes or the connection closes.
"""
from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Any, Awaitable, Callable
from uuid import UUID

from crm_chat.application.dto.principal import Principal
from crm_chat.application.exceptions import ValidationError
from crm_chat.application.ports.bus import EventPublisher, EventSource
from crm_chat.application.ports.clock import Clock, SystemClock
from crm_chat.application.ports.presence import PresenceStore
from crm_chat.application.ports.typing import TypingStore
from crm_chat.application.topics import ALL_MESSAGES
from crm_chat.application.uow import UoWFactory
from crm_chat.config import settings
from crm_chat.domain.entities.chat import Chat
from crm_chat.domain.entities.message import Message
from crm_chat.domain.entities.presence import PresenceRecord
from crm_chat.domain.entities.typing import TypingIndicator
from crm_chat.domain.events.message_created import MESSAGE_CREATED, MessageCreated
from crm_chat.domain.value_objects.enums import PresenceStatus
from crm_chat.domain.value_objects.ids import direct_chat_id, is_group_chat
from crm_chat.services import (
    chat_service,
    message_service,
    presence_service,
    typing_service,
)
from crm_chat.services.live import FeedPumps, LiveFeed
from crm_chat.services.notification_service import NotificationDispatcher, priority_for

logger = logging.getLogger(__name__)

_clock = SystemClock()

Emit = Callable[[str, dict[str, Any]], Awaitable[None]]


def message_frame(message: Message) -> dict[str, Any]:
    return MessageCreated(message).to_payload()


def chat_frame(chat: Chat, viewer_id: str) -> dict[str, Any]:
    data = asdict(chat)
    data["display_name"] = chat.display_name_for(viewer_id)
    data["other_participant_id"] = chat.other_participant_id(viewer_id)
    return data


def typing_frame(indicator: TypingIndicator) -> dict[str, Any]:
    return {
        "user_id": indicator.user_id,
        "user_name": indicator.user_name,
        "timestamp": indicator.timestamp,
    }


class _IncomingFeed(LiveFeed[Message]):
    """Every message posted anywhere, one per iteration. Starts empty."""

    def __init__(self, source: EventSource, clock: Clock) -> None:
        super().__init__(source.subscribe(ALL_MESSAGES), clock)
        self._latest: Message | None = None

    async def _load(self) -> None:
        return None

    def _apply(self, event_type: str, data: dict[str, Any]) -> bool:
        if event_type != MESSAGE_CREATED:
            return False
        self._latest = MessageCreated.from_payload(data).message
        return True

    def _snapshot(self) -> Message | None:  # type: ignore[override]
        return self._latest


class ConversationView:
    def __init__(
        self,
        principal: Principal,
        *,
        emit: Emit,
        source: EventSource,
        publisher: EventPublisher,
        uow_factory: UoWFactory,
        presence_store: PresenceStore,
        typing_store: TypingStore,
        dispatcher: NotificationDispatcher,
        clock: Clock = _clock,
    ) -> None:
        self.principal = principal
        self._emit = emit
        self._source = source
        self._publisher = publisher
        self._uow_factory = uow_factory
        self._presence_store = presence_store
        self._typing_store = typing_store
        self.dispatcher = dispatcher
        self._clock = clock

        self._pumps = FeedPumps(f"view-{principal.id}")
        self._chats: dict[str, Chat] = {}
        self._active_chat_id: str | None = None
        self._debouncer: typing_service.TypingDebouncer | None = None
        self._visible = True
        self._participant = True
        self._marked: set[UUID] = set()

    @property
    def active_chat_id(self) -> str | None:
        return self._active_chat_id

    @property
    def visible(self) -> bool:
        return self._visible

    def is_actively_viewing(self, chat_id: str) -> bool:
        return self._visible and chat_id == self._active_chat_id

    # lifecycle

    async def start(self) -> None:
        async with self._uow_factory() as uow:
            await chat_service.initialize_group_chat(uow, self._publisher, clock=self._clock)
        await self._set_presence(PresenceStatus.ONLINE)

        self._pumps.start(
            "chats",
            chat_service.subscribe_to_user_chats(
                self.principal.id, self._source, self._uow_factory, clock=self._clock,
            ),
            self._on_chats,
        )
        self._pumps.start("incoming", _IncomingFeed(self._source, self._clock), self._on_incoming)

    async def close(self, *, last_connection: bool = True) -> None:
        await self._leave_active_chat()
        await self._pumps.stop_all()
        if last_connection:
            await self._set_presence(PresenceStatus.OFFLINE)

    async def heartbeat(self) -> None:
        if self._visible:
            await self._set_presence(PresenceStatus.ONLINE)

    async def set_visible(self, visible: bool) -> None:
        self._visible = visible
        if not visible and self._debouncer is not None:
            await self._debouncer.stop()
        await self._set_presence(PresenceStatus.ONLINE if visible else PresenceStatus.OFFLINE)

    # active conversation

    async def open_chat(self, chat_id: str) -> None:
        if not chat_id:
            raise ValidationError("chat_id is required")
        feed = await message_service.subscribe_to_messages(
            chat_id, self.principal, self._source, self._uow_factory, clock=self._clock,
        )
        try:
            chat = await self._load_chat(chat_id)
        except Exception:
            feed.close()
            raise
        await self._leave_active_chat()
        self._active_chat_id = chat_id
        # Admins may watch foreign chats here but leave their read state alone
        self._participant = chat is None or chat.has_participant(self.principal.id)
        self._debouncer = typing_service.TypingDebouncer(
            chat_id,
            self.principal.id,
            self.principal.name,
            self._typing_store,
            self._publisher,
            idle_ms=settings.TYPING_IDLE_MS,
            clock=self._clock,
        )

        self._pumps.start("messages", feed, self._on_messages)
        self._pumps.start(
            "typing",
            typing_service.subscribe_to_typing(
                chat_id,
                self.principal.id,
                self._typing_store,
                self._source,
                stale_ms=settings.TYPING_STALE_MS,
                clock=self._clock,
            ),
            self._on_typing,
        )
        peer_id = chat.other_participant_id(self.principal.id) if chat is not None else None
        if peer_id is not None:
            self._pumps.start(
                "presence",
                presence_service.subscribe_to_presence(
                    peer_id,
                    self._presence_store,
                    self._source,
                    stale_after_ms=settings.presence_stale_after_ms,
                    clock=self._clock,
                ),
                self._on_presence,
            )
        logger.debug("%s opened %s", self.principal.id, chat_id)

    async def open_direct_chat(self, user_id: str) -> str:
        async with self._uow_factory() as uow:
            chat_id = await chat_service.start_direct_chat(
                self.principal, user_id, uow, self._publisher, clock=self._clock,
            )
        await self.open_chat(chat_id)
        return chat_id

    async def close_chat(self) -> None:
        await self._leave_active_chat()

    async def keystroke(self) -> None:
        if self._debouncer is None:
            raise ValidationError("No chat is open")
        await self._debouncer.keystroke()

    async def send(self, text: str | None, chat_id: str | None = None) -> Message:
        target = chat_id or self._active_chat_id
        if not target:
            raise ValidationError("No chat is open")
        if self._debouncer is not None and self._debouncer.chat_id == target:
            try:
                await self._debouncer.stop()
            except Exception:
                logger.exception("Clearing typing flag before send failed")
        async with self._uow_factory() as uow:
            return await message_service.send_message(
                target,
                self.principal,
                text,
                uow,
                self._publisher,
                clock=self._clock,
            )

    async def mark_active_read(self) -> int:
        if self._active_chat_id is None:
            return 0
        async with self._uow_factory() as uow:
            return await message_service.mark_read(
                self._active_chat_id, self.principal, uow, clock=self._clock,
            )

    # feed handlers

    async def _on_chats(self, chats: list[Chat]) -> None:
        self._chats = {c.id: c for c in chats}
        await self._emit(
            "chats.snapshot",
            {"chats": [chat_frame(c, self.principal.id) for c in chats]},
        )

    async def _on_messages(self, messages: list[Message]) -> None:
        await self._emit(
            "messages.snapshot",
            {
                "chat_id": self._active_chat_id,
                "messages": [message_frame(m) for m in messages],
            },
        )
        if not (self._visible and self._participant):
            return
        unread = {
            m.id for m in messages
            if m.sender_id != self.principal.id
            and not m.is_read_by(self.principal.id)
            and m.id not in self._marked
        }
        if not unread:
            return
        try:
            await self.mark_active_read()
        except Exception:
            logger.exception("mark_read failed for %s", self._active_chat_id)
            return
        self._marked |= unread

    async def _on_typing(self, indicators: list[TypingIndicator]) -> None:
        await self._emit(
            "typing.snapshot",
            {
                "chat_id": self._active_chat_id,
                "users": [typing_frame(i) for i in indicators],
            },
        )

    async def _on_presence(self, record: PresenceRecord) -> None:
        now = self._clock.now_ms()
        await self._emit(
            "presence",
            {
                "user_id": record.user_id,
                "status": str(record.status),
                "last_seen": record.last_seen,
                "label": presence_service.presence_label(record, now),
            },
        )

    async def _on_incoming(self, message: Message | None) -> None:
        if message is None or message.sender_id == self.principal.id:
            return
        if not self._is_my_chat(message.chat_id, message.sender_id):
            return
        if self.is_actively_viewing(message.chat_id):
            return
        await self.dispatcher.notify_new_message(
            message.sender_name,
            message.text,
            message.chat_id,
            message.sender_id,
            is_group_chat(message.chat_id),
            priority_for(message.sender_role),
        )

    # helpers

    def _is_my_chat(self, chat_id: str, sender_id: str) -> bool:
        chat = self._chats.get(chat_id)
        if chat is not None:
            return chat.has_participant(self.principal.id)
        if is_group_chat(chat_id):
            return chat_id == chat_service.default_group_chat_id()
        return chat_id == direct_chat_id(self.principal.id, sender_id)

    async def _load_chat(self, chat_id: str) -> Chat | None:
        chat = self._chats.get(chat_id)
        if chat is None:
            async with self._uow_factory() as uow:
                chat = await uow.chats.get_by_id(chat_id)
        return chat

    async def _leave_active_chat(self) -> None:
        if self._active_chat_id is None:
            return
        if self._debouncer is not None:
            try:
                await self._debouncer.close()
            except Exception:
                logger.exception("Clearing typing flag on leave failed")
            self._debouncer = None
        for name in ("messages", "typing", "presence"):
            await self._pumps.stop(name)
        self._active_chat_id = None
        self._participant = True
        self._marked.clear()

    async def _set_presence(self, status: PresenceStatus) -> None:
        try:
            await presence_service.update_presence(
                self.principal.id,
                status,
                self._presence_store,
                self._publisher,
                clock=self._clock,
            )
        except Exception:
            logger.exception("Presence update failed for %s", self.principal.id)
