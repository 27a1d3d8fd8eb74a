"""Shared test fixtures."""
from __future__ import annotations

import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field, replace
from typing import AsyncIterator

import pytest

from crm_chat.application.dto.alert import Alert
from crm_chat.application.dto.principal import Principal
from crm_chat.application.uow import UoWFactory
from crm_chat.domain.entities.chat import Chat
from crm_chat.domain.entities.message import Message
from crm_chat.domain.entities.presence import PresenceRecord
from crm_chat.domain.entities.typing import TypingIndicator
from crm_chat.domain.entities.user import ChatUser
from crm_chat.domain.value_objects.enums import ChatType, UserRole
from crm_chat.domain.value_objects.ids import direct_chat_id, group_chat_id
from crm_chat.infrastructure.bus.local_hub import LiveHub
from crm_chat.infrastructure.db.repositories._cursor import decode_cursor

T0 = 1_700_000_000_000

ALEX = ChatUser(id="u-alex", name="Alex Staff", email="alex@example.com", role="STAFF")
SAM = ChatUser(id="u-sam", name="Sam Staff", email="sam@example.com", role="STAFF")
KIM = ChatUser(id="u-kim", name="Kim Staff", email="kim@example.com", role="STAFF")
DANA = ChatUser(id="u-admin", name="Dana Admin", email="dana@example.com", role="ADMIN")


@pytest.fixture
def user_principal() -> Principal:
    return Principal(id=ALEX.id, name=ALEX.name)


@pytest.fixture
def other_principal() -> Principal:
    return Principal(id=SAM.id, name=SAM.name)


@pytest.fixture
def admin_principal() -> Principal:
    return Principal(id=DANA.id, name=DANA.name, role=UserRole.ADMIN)


def make_group_chat(*, created_at: int = T0) -> Chat:
    return Chat(
        id=group_chat_id("office-all"),
        type=ChatType.GROUP,
        name="All Office Members",
        created_at=created_at,
    )


def make_direct_chat(a: ChatUser = ALEX, b: ChatUser = SAM, *, created_at: int = T0) -> Chat:
    return Chat(
        id=direct_chat_id(a.id, b.id),
        type=ChatType.DIRECT,
        name=None,
        created_at=created_at,
        participant_ids=sorted((a.id, b.id)),
        participant_names={a.id: a.name, b.id: b.name},
    )


def make_message(
    chat_id: str,
    *,
    sender: ChatUser = ALEX,
    text: str = "hello",
    timestamp: int = T0,
    seq: int = 0,
) -> Message:
    return Message(
        id=uuid.uuid4(),
        chat_id=chat_id,
        sender_id=sender.id,
        sender_name=sender.name,
        sender_role=sender.role,
        text=text,
        timestamp=timestamp,
        seq=seq,
        read={sender.id: timestamp},
    )


class FakeClock:
    def __init__(self, now: int = T0) -> None:
        self.now = now

    def now_ms(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@dataclass
class FakeChatReader:
    _store: dict[str, Chat] = field(default_factory=dict)

    async def get_by_id(self, chat_id: str) -> Chat | None:
        return self._store.get(chat_id)

    async def list_for_user(self, user_id: str) -> list[Chat]:
        return [c for c in self._store.values() if c.has_participant(user_id)]

    async def list_all(self) -> list[Chat]:
        return list(self._store.values())


@dataclass
class FakeChatWriter:
    _reader: FakeChatReader

    async def create_if_absent(self, chat: Chat) -> bool:
        if chat.id in self._reader._store:
            return False
        self._reader._store[chat.id] = chat
        return True

    async def update_last_message(
        self, chat_id: str, text: str, sender_name: str, timestamp: int,
    ) -> None:
        chat = self._reader._store.get(chat_id)
        if chat is None:
            return
        if chat.last_message_time is not None and chat.last_message_time > timestamp:
            return
        self._reader._store[chat_id] = replace(
            chat,
            last_message=text,
            last_message_sender=sender_name,
            last_message_time=timestamp,
        )


@dataclass
class FakeMessageReader:
    _messages: list[Message] = field(default_factory=list)

    async def list_recent(
        self, chat_id: str, *, limit: int = 100, before: str | None = None,
    ) -> list[Message]:
        rows = sorted(
            (m for m in self._messages if m.chat_id == chat_id),
            key=lambda m: m.order_key,
        )
        if before:
            cutoff = decode_cursor(before)
            rows = [m for m in rows if m.order_key < cutoff]
        return rows[-limit:]


@dataclass
class FakeMessageWriter:
    _reader: FakeMessageReader
    _seq: int = 0
    fail_next: bool = False
    mark_calls: int = 0

    async def append(self, message: Message) -> Message:
        if self.fail_next:
            self.fail_next = False
            raise ConnectionError("database unavailable")
        self._seq += 1
        stored = replace(message, seq=self._seq)
        self._reader._messages.append(stored)
        return stored

    async def mark_read(self, chat_id: str, user_id: str, timestamp: int) -> int:
        self.mark_calls += 1
        changed = 0
        for i, m in enumerate(self._reader._messages):
            if m.chat_id == chat_id and user_id not in m.read:
                self._reader._messages[i] = replace(m, read={**m.read, user_id: timestamp})
                changed += 1
        return changed


@dataclass
class FakeUserReader:
    _users: dict[str, ChatUser] = field(default_factory=dict)

    async def list_users(self) -> list[ChatUser]:
        return sorted(self._users.values(), key=lambda u: u.name)

    async def get_by_id(self, user_id: str) -> ChatUser | None:
        return self._users.get(user_id)


@dataclass
class FakeUoW:
    """In-memory UoW for unit tests."""
    chats: FakeChatReader = field(default_factory=FakeChatReader)
    chats_w: FakeChatWriter | None = None
    messages: FakeMessageReader = field(default_factory=FakeMessageReader)
    messages_w: FakeMessageWriter | None = None
    users: FakeUserReader = field(default_factory=FakeUserReader)
    commits: int = 0

    def __post_init__(self) -> None:
        if self.chats_w is None:
            self.chats_w = FakeChatWriter(self.chats)
        if self.messages_w is None:
            self.messages_w = FakeMessageWriter(self.messages)

    @property
    def _committed(self) -> bool:
        return self.commits > 0

    def add_chat(self, chat: Chat) -> Chat:
        self.chats._store[chat.id] = chat
        return chat

    def add_users(self, *users: ChatUser) -> None:
        for user in users:
            self.users._users[user.id] = user

    def factory(self) -> UoWFactory:
        """Every opened unit of work shares this one's state."""

        @asynccontextmanager
        async def _open() -> AsyncIterator[FakeUoW]:
            yield self

        return _open

    async def flush(self) -> None:
        pass

    async def commit(self) -> None:
        self.commits += 1

    async def rollback(self) -> None:
        pass


@dataclass
class FakePresenceStore:
    _records: dict[str, PresenceRecord] = field(default_factory=dict)

    async def put(self, record: PresenceRecord) -> None:
        self._records[record.user_id] = record

    async def get(self, user_id: str) -> PresenceRecord | None:
        return self._records.get(user_id)

    async def get_many(self, user_ids: list[str]) -> list[PresenceRecord]:
        return [self._records[uid] for uid in user_ids if uid in self._records]


@dataclass
class FakeTypingStore:
    _records: dict[tuple[str, str], TypingIndicator] = field(default_factory=dict)
    fail_puts: bool = False

    async def put(self, indicator: TypingIndicator) -> None:
        if self.fail_puts:
            raise ConnectionError("redis unavailable")
        self._records[(indicator.chat_id, indicator.user_id)] = indicator

    async def remove(self, chat_id: str, user_id: str) -> None:
        self._records.pop((chat_id, user_id), None)

    async def list_for_chat(self, chat_id: str) -> list[TypingIndicator]:
        return [i for (cid, _uid), i in self._records.items() if cid == chat_id]


@dataclass
class FakePreferenceStore:
    _muted: set[str] = field(default_factory=set)
    fail_reads: bool = False

    async def is_muted(self, device_id: str) -> bool:
        if self.fail_reads:
            raise ConnectionError("redis unavailable")
        return device_id in self._muted

    async def set_muted(self, device_id: str, muted: bool) -> None:
        if muted:
            self._muted.add(device_id)
        else:
            self._muted.discard(device_id)


@dataclass
class RecordingAlertSink:
    alerts: list[Alert] = field(default_factory=list)
    fail: bool = False

    async def deliver(self, alert: Alert) -> None:
        if self.fail:
            raise ConnectionError("socket closed")
        self.alerts.append(alert)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def hub() -> LiveHub:
    return LiveHub()


@pytest.fixture
def uow() -> FakeUoW:
    uow = FakeUoW()
    uow.add_users(ALEX, SAM, KIM, DANA)
    return uow


@pytest.fixture
def presence_store() -> FakePresenceStore:
    return FakePresenceStore()


@pytest.fixture
def typing_store() -> FakeTypingStore:
    return FakeTypingStore()


@pytest.fixture
def preferences() -> FakePreferenceStore:
    return FakePreferenceStore()


@pytest.fixture
def alert_sink() -> RecordingAlertSink:
    return RecordingAlertSink()
