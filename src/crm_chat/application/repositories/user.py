from __future__ import annotations

from typing import Protocol

from crm_chat.domain.entities.user import ChatUser


class UserReader(Protocol):
    async def list_users(self) -> list[ChatUser]: ...

    async def get_by_id(self, user_id: str) -> ChatUser | None: ...
