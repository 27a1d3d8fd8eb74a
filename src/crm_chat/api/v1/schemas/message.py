from __future__ import annotations

from uuid import UUID

from pydantic import BaseModel


class SendMessageRequest(BaseModel):
    text: str | None = None


class MessageResponse(BaseModel):
    id: UUID
    chat_id: str
    sender_id: str
    sender_name: str
    sender_role: str
    text: str
    timestamp: int
    read: dict[str, int] = {}

    model_config = {"from_attributes": True}


class MessagePage(BaseModel):
    items: list[MessageResponse]
    # Pass as ``before`` to fetch the previous page
    next_cursor: str | None = None


class MarkReadResponse(BaseModel):
    marked: int
