from __future__ import annotations

from pydantic import BaseModel, Field


class SetTypingRequest(BaseModel):
    chat_id: str = Field(min_length=1)
    is_typing: bool


class TypingUserResponse(BaseModel):
    user_id: str
    user_name: str
    timestamp: int
