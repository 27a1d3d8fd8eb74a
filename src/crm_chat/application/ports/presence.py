from __future__ import annotations

from typing import Protocol

from crm_chat.domain.entities.presence import PresenceRecord


class PresenceStore(Protocol):
    async def put(self, record: PresenceRecord) -> None: ...

    async def get(self, user_id: str) -> PresenceRecord | None: ...

    async def get_many(self, user_ids: list[str]) -> list[PresenceRecord]: ...
