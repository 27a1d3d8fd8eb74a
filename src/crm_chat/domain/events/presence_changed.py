from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from crm_chat.domain.entities.presence import PresenceRecord
from crm_chat.domain.value_objects.enums import PresenceStatus

PRESENCE_CHANGED = "chat.presence_changed"


@dataclass(frozen=True, slots=True)
class PresenceChanged:
    record: PresenceRecord

    event_type = PRESENCE_CHANGED

    def to_payload(self) -> dict[str, Any]:
        return {
            "user_id": self.record.user_id,
            "status": str(self.record.status),
            "last_seen": self.record.last_seen,
        }

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> PresenceChanged:
        return cls(
            record=PresenceRecord(
                user_id=data["user_id"],
                status=PresenceStatus(data["status"]),
                last_seen=int(data["last_seen"]),
            )
        )
