from __future__ import annotations

from crm_chat.domain.entities.message import Message
from crm_chat.infrastructure.db.models.message import MessageModel


def model_to_entity(model: MessageModel) -> Message:
    return Message(
        id=model.id,
        chat_id=model.chat_id,
        sender_id=model.sender_id,
        sender_name=model.sender_name,
        sender_role=model.sender_role,
        text=model.text,
        timestamp=model.timestamp,
        seq=model.seq,
        read={k: int(v) for k, v in (model.read or {}).items()},
    )


def entity_to_values(entity: Message) -> dict:
    # seq is left to the identity column
    return {
        "id": entity.id,
        "chat_id": entity.chat_id,
        "sender_id": entity.sender_id,
        "sender_name": entity.sender_name,
        "sender_role": str(entity.sender_role),
        "text": entity.text,
        "timestamp": entity.timestamp,
        "read": dict(entity.read),
    }
