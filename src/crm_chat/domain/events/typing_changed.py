from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from crm_chat.domain.entities.typing import TypingIndicator

TYPING_CHANGED = "chat.typing_changed"


@dataclass(frozen=True, slots=True)
class TypingChanged:
    chat_id: str
    user_id: str
    indicator: TypingIndicator | None  # None: record deleted

    event_type = TYPING_CHANGED

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"chat_id": self.chat_id, "user_id": self.user_id}
        if self.indicator is not None:
            payload["user_name"] = self.indicator.user_name
            payload["timestamp"] = self.indicator.timestamp
        return payload

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> TypingChanged:
        indicator = None
        if data.get("timestamp") is not None:
            indicator = TypingIndicator(
                chat_id=data["chat_id"],
                user_id=data["user_id"],
                user_name=data.get("user_name", ""),
                timestamp=int(data["timestamp"]),
            )
        return cls(chat_id=data["chat_id"], user_id=data["user_id"], indicator=indicator)
