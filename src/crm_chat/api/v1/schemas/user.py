from __future__ import annotations

from pydantic import BaseModel


class UserResponse(BaseModel):
    id: str
    name: str
    email: str
    role: str

    model_config = {"from_attributes": True}
