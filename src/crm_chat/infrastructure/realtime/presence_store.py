"""Presence records in Redis, one hash per user."""
from __future__ import annotations

import redis.asyncio as aioredis

from crm_chat.domain.entities.presence import PresenceRecord
from crm_chat.domain.value_objects.enums import PresenceStatus


def _decode(value: str | bytes) -> str:
    return value.decode() if isinstance(value, bytes) else value


class RedisPresenceStore:
    """Implements application.ports.presence.PresenceStore."""

    def __init__(self, redis: aioredis.Redis, prefix: str) -> None:
        self._redis = redis
        self._prefix = prefix

    def _key(self, user_id: str) -> str:
        return f"{self._prefix}:presence:{user_id}"

    async def put(self, record: PresenceRecord) -> None:
        await self._redis.hset(
            self._key(record.user_id),
            mapping={"status": str(record.status), "last_seen": record.last_seen},
        )

    async def get(self, user_id: str) -> PresenceRecord | None:
        raw = await self._redis.hgetall(self._key(user_id))
        return self._to_record(user_id, raw)

    async def get_many(self, user_ids: list[str]) -> list[PresenceRecord]:
        pipe = self._redis.pipeline(transaction=False)
        for user_id in user_ids:
            pipe.hgetall(self._key(user_id))
        rows = await pipe.execute()
        records = []
        for user_id, raw in zip(user_ids, rows):
            record = self._to_record(user_id, raw)
            if record is not None:
                records.append(record)
        return records

    @staticmethod
    def _to_record(user_id: str, raw: dict) -> PresenceRecord | None:
        if not raw:
            return None
        fields = {_decode(k): _decode(v) for k, v in raw.items()}
        return PresenceRecord(
            user_id=user_id,
            status=PresenceStatus(fields["status"]),
            last_seen=int(fields["last_seen"]),
        )
