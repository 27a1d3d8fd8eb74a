from __future__ import annotations

from fastapi import APIRouter

from crm_chat.api.deps import ClockDep, CurrentPrincipal, PublisherDep, UoWDep
from crm_chat.api.v1.schemas.chat import ChatIdResponse, ChatResponse, StartDirectChatRequest
from crm_chat.services import chat_service

router = APIRouter(prefix="/api/v1/chat/chats", tags=["chats"])


@router.get("", response_model=list[ChatResponse])
async def list_chats(
    principal: CurrentPrincipal,
    uow: UoWDep,
) -> list[ChatResponse]:
    chats = await chat_service.list_user_chats(principal, uow)
    return [ChatResponse.for_viewer(c, principal.id) for c in chats]


@router.post("/direct", response_model=ChatIdResponse)
async def start_direct_chat(
    body: StartDirectChatRequest,
    principal: CurrentPrincipal,
    uow: UoWDep,
    publisher: PublisherDep,
    clock: ClockDep,
) -> ChatIdResponse:
    chat_id = await chat_service.start_direct_chat(
        principal, body.user_id, uow, publisher, clock=clock,
    )
    return ChatIdResponse(chat_id=chat_id)


@router.post("/group", response_model=ChatIdResponse)
async def initialize_group_chat(
    _principal: CurrentPrincipal,
    uow: UoWDep,
    publisher: PublisherDep,
    clock: ClockDep,
) -> ChatIdResponse:
    chat_id = await chat_service.initialize_group_chat(uow, publisher, clock=clock)
    return ChatIdResponse(chat_id=chat_id)
