from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class ChatUser:
    """Row of the user directory owned by the CRM user module."""

    id: str
    name: str
    email: str
    role: str
