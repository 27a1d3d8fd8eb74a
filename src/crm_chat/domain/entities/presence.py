from __future__ import annotations

from dataclasses import dataclass

from crm_chat.domain.value_objects.enums import PresenceStatus


@dataclass(frozen=True, slots=True)
class PresenceRecord:
    user_id: str
    status: PresenceStatus
    last_seen: int

    @property
    def is_online(self) -> bool:
        return self.status == PresenceStatus.ONLINE
