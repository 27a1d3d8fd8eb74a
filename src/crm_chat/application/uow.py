from __future__ import annotations

from contextlib import AbstractAsyncContextManager
from typing import Callable, Protocol

from crm_chat.application.repositories.chat import ChatReader, ChatWriter
from crm_chat.application.repositories.message import MessageReader, MessageWriter
from crm_chat.application.repositories.user import UserReader


class UnitOfWork(Protocol):
    chats: ChatReader
    chats_w: ChatWriter
    messages: MessageReader
    messages_w: MessageWriter
    users: UserReader

    async def commit(self) -> None: ...
    async def rollback(self) -> None: ...
    async def flush(self) -> None: ...


# Opens a short-lived unit of work; live feeds use one per snapshot load.
UoWFactory = Callable[[], AbstractAsyncContextManager[UnitOfWork]]
