from __future__ import annotations

from fastapi import APIRouter, Query, Response

from crm_chat.api.deps import ClockDep, CurrentPrincipal, PublisherDep, TypingStoreDep
from crm_chat.api.v1.schemas.typing import SetTypingRequest, TypingUserResponse
from crm_chat.config import settings
from crm_chat.services import typing_service

router = APIRouter(prefix="/api/v1/chat/typing", tags=["typing"])


@router.get("", response_model=list[TypingUserResponse])
async def list_typing(
    principal: CurrentPrincipal,
    store: TypingStoreDep,
    clock: ClockDep,
    chat_id: str = Query(..., min_length=1),
) -> list[TypingUserResponse]:
    indicators = await typing_service.list_typing(
        chat_id,
        store,
        exclude_user_id=principal.id,
        stale_ms=settings.TYPING_STALE_MS,
        clock=clock,
    )
    return [
        TypingUserResponse(user_id=i.user_id, user_name=i.user_name, timestamp=i.timestamp)
        for i in indicators
    ]


@router.post("", status_code=204)
async def set_typing(
    body: SetTypingRequest,
    principal: CurrentPrincipal,
    store: TypingStoreDep,
    publisher: PublisherDep,
    clock: ClockDep,
) -> Response:
    await typing_service.set_typing(
        body.chat_id,
        principal.id,
        principal.name,
        body.is_typing,
        store,
        publisher,
        clock=clock,
    )
    return Response(status_code=204)
