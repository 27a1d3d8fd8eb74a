from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class TypingIndicator:
    chat_id: str
    user_id: str
    user_name: str
    timestamp: int

    def is_fresh(self, now: int, window_ms: int) -> bool:
        return now - self.timestamp <= window_ms
