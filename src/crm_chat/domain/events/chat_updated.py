from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any

from crm_chat.domain.entities.chat import Chat
from crm_chat.domain.value_objects.enums import ChatType

CHAT_UPDATED = "chat.updated"


@dataclass(frozen=True, slots=True)
class ChatUpdated:
    """Chat created or its last-message summary changed."""

    chat: Chat

    event_type = CHAT_UPDATED

    def to_payload(self) -> dict[str, Any]:
        return asdict(self.chat)

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> ChatUpdated:
        last_time = data.get("last_message_time")
        return cls(
            chat=Chat(
                id=data["id"],
                type=ChatType(data["type"]),
                name=data.get("name"),
                created_at=int(data["created_at"]),
                participant_ids=list(data.get("participant_ids") or []),
                participant_names=dict(data.get("participant_names") or {}),
                last_message=data.get("last_message"),
                last_message_sender=data.get("last_message_sender"),
                last_message_time=int(last_time) if last_time is not None else None,
            )
        )
