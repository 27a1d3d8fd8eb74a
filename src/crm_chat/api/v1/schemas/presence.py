from __future__ import annotations

from pydantic import BaseModel

from crm_chat.domain.value_objects.enums import PresenceStatus


class UpdatePresenceRequest(BaseModel):
    status: str


class PresenceResponse(BaseModel):
    user_id: str
    status: PresenceStatus
    last_seen: int
    label: str
