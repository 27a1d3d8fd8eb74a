from __future__ import annotations

from sqlalchemy import BigInteger, String, func, literal, not_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from crm_chat.domain.entities.message import Message
from crm_chat.infrastructure.db.mappers import message as mapper
from crm_chat.infrastructure.db.models.message import MessageModel
from crm_chat.infrastructure.db.repositories._cursor import decode_cursor


class MessageReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def list_recent(
        self,
        chat_id: str,
        *,
        limit: int = 100,
        before: str | None = None,
    ) -> list[Message]:
        stmt = (
            select(MessageModel)
            .where(MessageModel.chat_id == chat_id)
            .order_by(MessageModel.timestamp.desc(), MessageModel.seq.desc())
            .limit(limit)
        )
        if before:
            ts, seq = decode_cursor(before)
            stmt = stmt.where(
                (MessageModel.timestamp < ts)
                | ((MessageModel.timestamp == ts) & (MessageModel.seq < seq))
            )
        result = await self._session.execute(stmt)
        newest_first = [mapper.model_to_entity(m) for m in result.scalars().all()]
        return newest_first[::-1]


class MessageWriterRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def append(self, message: Message) -> Message:
        stmt = (
            pg_insert(MessageModel)
            .values(**mapper.entity_to_values(message))
            .returning(MessageModel)
        )
        result = await self._session.execute(stmt)
        return mapper.model_to_entity(result.scalar_one())

    async def mark_read(self, chat_id: str, user_id: str, timestamp: int) -> int:
        stmt = (
            update(MessageModel)
            .where(
                MessageModel.chat_id == chat_id,
                not_(MessageModel.read.has_key(user_id)),
            )
            .values(
                read=MessageModel.read.op("||")(
                    func.jsonb_build_object(
                        literal(user_id, String()), literal(timestamp, BigInteger()),
                    )
                )
            )
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount or 0
