from __future__ import annotations

from typing import Protocol

from crm_chat.domain.entities.typing import TypingIndicator


class TypingStore(Protocol):
    async def put(self, indicator: TypingIndicator) -> None: ...

    async def remove(self, chat_id: str, user_id: str) -> None:
        """Delete the record; absence is the canonical not-typing state."""
        ...

    async def list_for_chat(self, chat_id: str) -> list[TypingIndicator]: ...
