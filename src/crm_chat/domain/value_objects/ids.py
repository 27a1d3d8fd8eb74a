"""Chat identifiers.

Chat ids are ``<type>/<key>``. The group key is a fixed well-known value;
the direct key is the two participant ids sorted and joined with ``_``.
"""
from __future__ import annotations

from typing import NewType

from crm_chat.domain.value_objects.enums import ChatType

ChatId = NewType("ChatId", str)
UserId = NewType("UserId", str)

DIRECT_KEY_SEPARATOR = "_"


def group_chat_id(key: str) -> ChatId:
    return ChatId(f"{ChatType.GROUP}/{key}")


def direct_chat_id(user_a: str, user_b: str) -> ChatId:
    first, second = sorted((user_a, user_b))
    return ChatId(f"{ChatType.DIRECT}/{first}{DIRECT_KEY_SEPARATOR}{second}")


def chat_type_of(chat_id: str) -> ChatType | None:
    prefix, sep, key = chat_id.partition("/")
    if not sep or not key:
        return None
    try:
        return ChatType(prefix)
    except ValueError:
        return None


def is_group_chat(chat_id: str) -> bool:
    return chat_type_of(chat_id) == ChatType.GROUP
