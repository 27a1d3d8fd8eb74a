from __future__ import annotations

from crm_chat.domain.entities.user import ChatUser
from crm_chat.infrastructure.db.models.user import UserModel


def model_to_entity(model: UserModel) -> ChatUser:
    return ChatUser(
        id=model.id,
        name=model.name,
        email=model.email,
        role=model.role,
    )
