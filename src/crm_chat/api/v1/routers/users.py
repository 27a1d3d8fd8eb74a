from __future__ import annotations

from fastapi import APIRouter, Query

from crm_chat.api.deps import CurrentPrincipal, UoWDep
from crm_chat.api.v1.schemas.user import UserResponse
from crm_chat.services import chat_service

router = APIRouter(prefix="/api/v1/chat/users", tags=["users"])


@router.get("", response_model=list[UserResponse])
async def list_users(
    principal: CurrentPrincipal,
    uow: UoWDep,
    q: str | None = Query(None, max_length=100),
) -> list[UserResponse]:
    users = await chat_service.search_users(principal, uow, q)
    return [UserResponse.model_validate(u, from_attributes=True) for u in users]
