"""Fan-out topic names and event routing."""
from __future__ import annotations

from typing import Any

from crm_chat.domain.events.chat_updated import CHAT_UPDATED
from crm_chat.domain.events.message_created import MESSAGE_CREATED
from crm_chat.domain.events.presence_changed import PRESENCE_CHANGED
from crm_chat.domain.events.typing_changed import TYPING_CHANGED

ALL_MESSAGES = "messages"
ALL_CHATS = "chats"


def messages_topic(chat_id: str) -> str:
    return f"messages:{chat_id}"


def presence_topic(user_id: str) -> str:
    return f"presence:{user_id}"


def typing_topic(chat_id: str) -> str:
    return f"typing:{chat_id}"


def topics_for(event_type: str, payload: dict[str, Any]) -> list[str]:
    if event_type == MESSAGE_CREATED:
        return [messages_topic(payload["chat_id"]), ALL_MESSAGES]
    if event_type == CHAT_UPDATED:
        return [ALL_CHATS]
    if event_type == PRESENCE_CHANGED:
        return [presence_topic(payload["user_id"])]
    if event_type == TYPING_CHANGED:
        return [typing_topic(payload["chat_id"])]
    return []
