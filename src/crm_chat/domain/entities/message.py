from __future__ import annotations

from dataclasses import dataclass, field
from uuid import UUID


@dataclass(frozen=True, slots=True)
class Message:
    id: UUID
    chat_id: str
    sender_id: str
    sender_name: str
    sender_role: str
    text: str
    timestamp: int
    seq: int = 0
    read: dict[str, int] = field(default_factory=dict)

    @property
    def order_key(self) -> tuple[int, int]:
        """Log order: server timestamp, then insertion sequence."""
        return self.timestamp, self.seq

    def is_read_by(self, user_id: str) -> bool:
        return user_id in self.read
