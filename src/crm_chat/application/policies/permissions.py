from __future__ import annotations

from crm_chat.application.dto.principal import Principal
from crm_chat.application.exceptions import ForbiddenError, NotFoundError
from crm_chat.domain.entities.chat import Chat


def assert_chat_access(
    principal: Principal,
    chat: Chat | None,
    *,
    allow_admin: bool = True,
) -> Chat:
    """Raise if chat doesn't exist or principal may not use it."""
    if chat is None:
        raise NotFoundError("Chat not found")

    if chat.has_participant(principal.id):
        return chat

    # Admins read every chat through the monitor but never post into foreign ones
    if allow_admin and principal.is_admin:
        return chat

    raise ForbiddenError("Not a participant of this chat")


def assert_admin(principal: Principal) -> None:
    if not principal.is_admin:
        raise ForbiddenError("Admin access required")
