from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any
from uuid import UUID

from crm_chat.domain.entities.message import Message

MESSAGE_CREATED = "chat.message_created"


@dataclass(frozen=True, slots=True)
class MessageCreated:
    message: Message

    event_type = MESSAGE_CREATED

    def to_payload(self) -> dict[str, Any]:
        data = asdict(self.message)
        data["id"] = str(self.message.id)
        return data

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> MessageCreated:
        return cls(
            message=Message(
                id=UUID(str(data["id"])),
                chat_id=data["chat_id"],
                sender_id=data["sender_id"],
                sender_name=data["sender_name"],
                sender_role=data["sender_role"],
                text=data["text"],
                timestamp=int(data["timestamp"]),
                seq=int(data.get("seq", 0)),
                read={k: int(v) for k, v in (data.get("read") or {}).items()},
            )
        )
