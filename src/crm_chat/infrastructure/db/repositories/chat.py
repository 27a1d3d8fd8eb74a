from __future__ import annotations

from sqlalchemy import or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from crm_chat.domain.entities.chat import Chat
from crm_chat.domain.value_objects.enums import ChatType
from crm_chat.infrastructure.db.mappers import chat as mapper
from crm_chat.infrastructure.db.models.chat import ChatModel

_ORDER = (
    ChatModel.last_message_time.desc().nullslast(),
    ChatModel.id,
)


class ChatReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, chat_id: str) -> Chat | None:
        result = await self._session.get(ChatModel, chat_id)
        return mapper.model_to_entity(result) if result else None

    async def list_for_user(self, user_id: str) -> list[Chat]:
        stmt = (
            select(ChatModel)
            .where(
                or_(
                    ChatModel.type == ChatType.GROUP.value,
                    ChatModel.participant_ids.contains([user_id]),
                )
            )
            .order_by(*_ORDER)
        )
        result = await self._session.execute(stmt)
        return [mapper.model_to_entity(m) for m in result.scalars().all()]

    async def list_all(self) -> list[Chat]:
        result = await self._session.execute(select(ChatModel).order_by(*_ORDER))
        return [mapper.model_to_entity(m) for m in result.scalars().all()]


class ChatWriterRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create_if_absent(self, chat: Chat) -> bool:
        stmt = (
            pg_insert(ChatModel)
            .values(**mapper.entity_to_values(chat))
            .on_conflict_do_nothing(index_elements=[ChatModel.id])
            .returning(ChatModel.id)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def update_last_message(
        self,
        chat_id: str,
        text: str,
        sender_name: str,
        timestamp: int,
    ) -> None:
        stmt = (
            update(ChatModel)
            .where(
                ChatModel.id == chat_id,
                or_(
                    ChatModel.last_message_time.is_(None),
                    ChatModel.last_message_time <= timestamp,
                ),
            )
            .values(
                last_message=text,
                last_message_sender=sender_name,
                last_message_time=timestamp,
            )
        )
        await self._session.execute(stmt)
