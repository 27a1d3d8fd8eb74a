"""Read-only view over every chat for admins.

Unlike the conversation view, the monitor has no send, typing or read path.
"""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any

from crm_chat.application.dto.principal import Principal
from crm_chat.application.exceptions import ValidationError
from crm_chat.application.policies.permissions import assert_admin
from crm_chat.application.ports.bus import EventSource
from crm_chat.application.ports.clock import Clock, SystemClock
from crm_chat.application.uow import UoWFactory
from crm_chat.config import settings
from crm_chat.domain.entities.chat import Chat
from crm_chat.domain.entities.message import Message
from crm_chat.services import chat_service, message_service
from crm_chat.services.conversation_view import Emit, message_frame
from crm_chat.services.live import FeedPumps

logger = logging.getLogger(__name__)

_clock = SystemClock()


@dataclass(frozen=True, slots=True)
class ChatLabel:
    name: str
    participants: str


def describe_chat(chat: Chat) -> ChatLabel:
    if chat.is_group:
        return ChatLabel(
            name=chat.name or "Group Chat",
            participants=settings.GROUP_CHAT_NAME,
        )
    names = [chat.participant_names.get(pid, pid) for pid in chat.participant_ids]
    return ChatLabel(
        name=" & ".join(names) or "Direct Chat",
        participants=f"{len(chat.participant_ids)} participants",
    )


def monitor_frame(chat: Chat) -> dict[str, Any]:
    label = describe_chat(chat)
    data = asdict(chat)
    data["display_name"] = label.name
    data["participants_label"] = label.participants
    return data


class AdminMonitor:
    def __init__(
        self,
        principal: Principal,
        *,
        emit: Emit,
        source: EventSource,
        uow_factory: UoWFactory,
        clock: Clock = _clock,
    ) -> None:
        assert_admin(principal)
        self.principal = principal
        self._emit = emit
        self._source = source
        self._uow_factory = uow_factory
        self._clock = clock
        self._pumps = FeedPumps(f"monitor-{principal.id}")
        self._selected_chat_id: str | None = None

    @property
    def selected_chat_id(self) -> str | None:
        return self._selected_chat_id

    async def start(self) -> None:
        self._pumps.start(
            "chats",
            chat_service.subscribe_to_all_chats(
                self.principal, self._source, self._uow_factory, clock=self._clock,
            ),
            self._on_chats,
        )

    async def open_chat(self, chat_id: str) -> None:
        if not chat_id:
            raise ValidationError("chat_id is required")
        feed = await message_service.subscribe_to_messages(
            chat_id,
            self.principal,
            self._source,
            self._uow_factory,
            limit=settings.MESSAGE_WINDOW_LIMIT,
            clock=self._clock,
        )
        await self.close_chat()
        self._selected_chat_id = chat_id
        self._pumps.start("messages", feed, self._on_messages)

    async def close_chat(self) -> None:
        await self._pumps.stop("messages")
        self._selected_chat_id = None

    async def close(self) -> None:
        await self._pumps.stop_all()
        self._selected_chat_id = None

    async def _on_chats(self, chats: list[Chat]) -> None:
        await self._emit("chats.snapshot", {"chats": [monitor_frame(c) for c in chats]})

    async def _on_messages(self, messages: list[Message]) -> None:
        await self._emit(
            "messages.snapshot",
            {
                "chat_id": self._selected_chat_id,
                "read_only": True,
                "messages": [message_frame(m) for m in messages],
            },
        )
