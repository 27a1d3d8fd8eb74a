"""Seed development data: a few office users, the group chat and some messages."""
from __future__ import annotations

import asyncio
import logging

from sqlalchemy.dialects.postgresql import insert as pg_insert

from crm_chat.application.dto.principal import Principal
from crm_chat.domain.value_objects.enums import UserRole
from crm_chat.infrastructure.bus.local_hub import LiveHub
from crm_chat.infrastructure.db.base import Base
from crm_chat.infrastructure.db.models import UserModel
from crm_chat.infrastructure.db.session import AsyncSessionLocal, engine
from crm_chat.infrastructure.db.uow import SqlAlchemyUoW
from crm_chat.services import chat_service, message_service

logger = logging.getLogger(__name__)

USERS = [
    ("u-admin", "Dana Admin", "dana@example.com", UserRole.ADMIN),
    ("u-alex", "Alex Staff", "alex@example.com", UserRole.STAFF),
    ("u-sam", "Sam Staff", "sam@example.com", UserRole.STAFF),
]


async def seed() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    # Nobody listens; events are dropped
    publisher = LiveHub()
    principals = {uid: Principal(id=uid, name=name, role=role) for uid, name, _, role in USERS}

    async with AsyncSessionLocal() as session:
        for uid, name, email, role in USERS:
            await session.execute(
                pg_insert(UserModel)
                .values(id=uid, name=name, email=email, role=str(role))
                .on_conflict_do_nothing(index_elements=[UserModel.id])
            )
        await session.commit()

        uow = SqlAlchemyUoW(session)
        group_id = await chat_service.initialize_group_chat(uow, publisher)
        direct_id = await chat_service.get_or_create_direct_chat(
            "u-alex", "u-sam", "Alex Staff", "Sam Staff", uow, publisher,
        )

        script = [
            (group_id, "u-admin", "Morning all, stand-up in 10 minutes."),
            (group_id, "u-alex", "On my way."),
            (direct_id, "u-sam", "Can you take the Henderson lead today?"),
            (direct_id, "u-alex", "Sure, sending the quote this afternoon."),
        ]
        for chat_id, sender_id, text in script:
            await message_service.send_message(
                chat_id, principals[sender_id], text, uow, publisher,
            )

    logger.info("Seeded %d users and %d messages", len(USERS), len(script))


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    asyncio.run(seed())


if __name__ == "__main__":
    main()
