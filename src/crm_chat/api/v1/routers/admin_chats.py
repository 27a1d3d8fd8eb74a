from __future__ import annotations

from fastapi import APIRouter, Query

from crm_chat.api.deps import CurrentAdmin, UoWDep
from crm_chat.api.v1.routers.messages import message_page
from crm_chat.api.v1.schemas.chat import AdminChatResponse
from crm_chat.api.v1.schemas.message import MessagePage
from crm_chat.services import chat_service, message_service
from crm_chat.services.admin_monitor import describe_chat

router = APIRouter(prefix="/api/v1/chat/admin/chats", tags=["admin"])


@router.get("", response_model=list[AdminChatResponse])
async def list_all_chats(
    admin: CurrentAdmin,
    uow: UoWDep,
) -> list[AdminChatResponse]:
    chats = await chat_service.list_all_chats(admin, uow)
    result = []
    for chat in chats:
        label = describe_chat(chat)
        result.append(
            AdminChatResponse(
                id=chat.id,
                type=chat.type,
                name=label.name,
                participants_label=label.participants,
                participant_ids=chat.participant_ids,
                last_message=chat.last_message,
                last_message_sender=chat.last_message_sender,
                last_message_time=chat.last_message_time,
            )
        )
    return result


@router.get("/{chat_id:path}/messages", response_model=MessagePage)
async def list_chat_messages(
    chat_id: str,
    admin: CurrentAdmin,
    uow: UoWDep,
    before: str | None = Query(None),
    limit: int = Query(100, ge=1, le=200),
) -> MessagePage:
    messages = await message_service.list_messages(
        chat_id, admin, uow, before=before, limit=limit,
    )
    return message_page(messages, limit)
