from __future__ import annotations

from typing import Protocol

from crm_chat.domain.entities.chat import Chat


class ChatReader(Protocol):
    async def get_by_id(self, chat_id: str) -> Chat | None: ...

    async def list_for_user(self, user_id: str) -> list[Chat]:
        """Group chats plus direct chats where user_id is a participant."""
        ...

    async def list_all(self) -> list[Chat]: ...


class ChatWriter(Protocol):
    async def create_if_absent(self, chat: Chat) -> bool:
        """Insert chat unless its id exists. Return True if inserted."""
        ...

    async def update_last_message(
        self,
        chat_id: str,
        text: str,
        sender_name: str,
        timestamp: int,
    ) -> None: ...
