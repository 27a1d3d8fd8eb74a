from __future__ import annotations

from pydantic import BaseModel, Field

from crm_chat.domain.entities.chat import Chat


class ChatResponse(BaseModel):
    id: str
    type: str
    name: str | None
    display_name: str
    created_at: int
    participant_ids: list[str]
    participant_names: dict[str, str]
    other_participant_id: str | None = None
    last_message: str | None = None
    last_message_sender: str | None = None
    last_message_time: int | None = None

    @classmethod
    def for_viewer(cls, chat: Chat, viewer_id: str) -> ChatResponse:
        return cls(
            id=chat.id,
            type=chat.type,
            name=chat.name,
            display_name=chat.display_name_for(viewer_id),
            created_at=chat.created_at,
            participant_ids=chat.participant_ids,
            participant_names=chat.participant_names,
            other_participant_id=chat.other_participant_id(viewer_id),
            last_message=chat.last_message,
            last_message_sender=chat.last_message_sender,
            last_message_time=chat.last_message_time,
        )


class AdminChatResponse(BaseModel):
    """Chat as listed in the admin monitor."""

    id: str
    type: str
    name: str
    participants_label: str
    participant_ids: list[str]
    last_message: str | None = None
    last_message_sender: str | None = None
    last_message_time: int | None = None


class StartDirectChatRequest(BaseModel):
    user_id: str = Field(min_length=1)


class ChatIdResponse(BaseModel):
    chat_id: str
