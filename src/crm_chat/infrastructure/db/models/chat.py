from __future__ import annotations

from sqlalchemy import BigInteger, Index, String, Text
from sqlalchemy import text as sa_text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from crm_chat.infrastructure.db.base import Base


class ChatModel(Base):
    __tablename__ = "chats"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    participant_ids: Mapped[list[str]] = mapped_column(
        JSONB, nullable=False, server_default=sa_text("'[]'::jsonb"),
    )
    participant_names: Mapped[dict[str, str]] = mapped_column(
        JSONB, nullable=False, server_default=sa_text("'{}'::jsonb"),
    )
    last_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_message_sender: Mapped[str | None] = mapped_column(String(255), nullable=True)
    last_message_time: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False)

    messages = relationship("MessageModel", back_populates="chat", lazy="noload")

    __table_args__ = (
        Index("ix_chats_last_message_time", last_message_time.desc()),
        Index("ix_chats_participants", "participant_ids", postgresql_using="gin"),
    )
