from __future__ import annotations

from fastapi import APIRouter, Query

from crm_chat.api.deps import ClockDep, CurrentPrincipal, PublisherDep, UoWDep
from crm_chat.api.v1.schemas.message import (
    MarkReadResponse,
    MessagePage,
    MessageResponse,
    SendMessageRequest,
)
from crm_chat.domain.entities.message import Message
from crm_chat.infrastructure.db.repositories._cursor import encode_cursor
from crm_chat.services import message_service

# Chat ids contain a slash ("group/office-all"), hence the path converter.
router = APIRouter(prefix="/api/v1/chat/chats", tags=["messages"])


def message_page(messages: list[Message], limit: int) -> MessagePage:
    next_cursor = None
    if len(messages) == limit:
        oldest = messages[0]
        next_cursor = encode_cursor(oldest.timestamp, oldest.seq)
    return MessagePage(
        items=[MessageResponse.model_validate(m, from_attributes=True) for m in messages],
        next_cursor=next_cursor,
    )


@router.get("/{chat_id:path}/messages", response_model=MessagePage)
async def list_messages(
    chat_id: str,
    principal: CurrentPrincipal,
    uow: UoWDep,
    before: str | None = Query(None),
    limit: int = Query(100, ge=1, le=200),
) -> MessagePage:
    messages = await message_service.list_messages(
        chat_id, principal, uow, before=before, limit=limit,
    )
    return message_page(messages, limit)


@router.post("/{chat_id:path}/messages", response_model=MessageResponse, status_code=201)
async def send_message(
    chat_id: str,
    body: SendMessageRequest,
    principal: CurrentPrincipal,
    uow: UoWDep,
    publisher: PublisherDep,
    clock: ClockDep,
) -> MessageResponse:
    msg = await message_service.send_message(
        chat_id, principal, body.text, uow, publisher, clock=clock,
    )
    return MessageResponse.model_validate(msg, from_attributes=True)


@router.post("/{chat_id:path}/read", response_model=MarkReadResponse)
async def mark_read(
    chat_id: str,
    principal: CurrentPrincipal,
    uow: UoWDep,
    clock: ClockDep,
) -> MarkReadResponse:
    marked = await message_service.mark_read(chat_id, principal, uow, clock=clock)
    return MarkReadResponse(marked=marked)
