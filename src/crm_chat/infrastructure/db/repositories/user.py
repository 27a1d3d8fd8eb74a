from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from crm_chat.domain.entities.user import ChatUser
from crm_chat.infrastructure.db.mappers import user as mapper
from crm_chat.infrastructure.db.models.user import UserModel


class UserReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def list_users(self) -> list[ChatUser]:
        result = await self._session.execute(select(UserModel).order_by(UserModel.name))
        return [mapper.model_to_entity(m) for m in result.scalars().all()]

    async def get_by_id(self, user_id: str) -> ChatUser | None:
        result = await self._session.get(UserModel, user_id)
        return mapper.model_to_entity(result) if result else None
