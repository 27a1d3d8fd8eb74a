from __future__ import annotations

from typing import Protocol

from crm_chat.domain.entities.message import Message


class MessageReader(Protocol):
    async def list_recent(
        self,
        chat_id: str,
        *,
        limit: int = 100,
        before: str | None = None,
    ) -> list[Message]:
        """Newest ``limit`` messages, oldest first.

        ``before`` is a cursor of a message; only older messages are returned.
        """
        ...


class MessageWriter(Protocol):
    async def append(self, message: Message) -> Message:
        """Insert message. Return it with the store-assigned seq."""
        ...

    async def mark_read(self, chat_id: str, user_id: str, timestamp: int) -> int:
        """Set read[user_id] on every message lacking it. Return rows changed."""
        ...
