"""WebSocket message envelope models."""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel


class WsInbound(BaseModel):
    """Client → Server."""

    type: str  # chat.open | message.send | typing.keystroke | heartbeat | ...
    data: dict[str, Any] = {}


class WsOutbound(BaseModel):
    """Server → Client."""

    type: str  # chats.snapshot | messages.snapshot | notification | error | ...
    data: dict[str, Any] = {}
