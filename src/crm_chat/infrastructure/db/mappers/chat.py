from __future__ import annotations

from crm_chat.domain.entities.chat import Chat
from crm_chat.domain.value_objects.enums import ChatType
from crm_chat.infrastructure.db.models.chat import ChatModel


def model_to_entity(model: ChatModel) -> Chat:
    return Chat(
        id=model.id,
        type=ChatType(model.type),
        name=model.name,
        created_at=model.created_at,
        participant_ids=list(model.participant_ids or []),
        participant_names=dict(model.participant_names or {}),
        last_message=model.last_message,
        last_message_sender=model.last_message_sender,
        last_message_time=model.last_message_time,
    )


def entity_to_values(entity: Chat) -> dict:
    return {
        "id": entity.id,
        "type": entity.type.value,
        "name": entity.name,
        "participant_ids": list(entity.participant_ids),
        "participant_names": dict(entity.participant_names),
        "last_message": entity.last_message,
        "last_message_sender": entity.last_message_sender,
        "last_message_time": entity.last_message_time,
        "created_at": entity.created_at,
    }
