"""Typing records in Redis: one hash per chat, one JSON field per user."""
from __future__ import annotations

import json

import redis.asyncio as aioredis

from crm_chat.domain.entities.typing import TypingIndicator


class RedisTypingStore:
    """Implements application.ports.typing.TypingStore."""

    def __init__(self, redis: aioredis.Redis, prefix: str, ttl_seconds: int = 60) -> None:
        self._redis = redis
        self._prefix = prefix
        self._ttl_seconds = ttl_seconds

    def _key(self, chat_id: str) -> str:
        return f"{self._prefix}:typing:{chat_id}"

    async def put(self, indicator: TypingIndicator) -> None:
        key = self._key(indicator.chat_id)
        value = json.dumps({"user_name": indicator.user_name, "timestamp": indicator.timestamp})
        pipe = self._redis.pipeline(transaction=True)
        pipe.hset(key, indicator.user_id, value)
        # Whole hash disappears once a chat goes quiet
        pipe.expire(key, self._ttl_seconds)
        await pipe.execute()

    async def remove(self, chat_id: str, user_id: str) -> None:
        await self._redis.hdel(self._key(chat_id), user_id)

    async def list_for_chat(self, chat_id: str) -> list[TypingIndicator]:
        raw = await self._redis.hgetall(self._key(chat_id))
        indicators = []
        for user_id, value in raw.items():
            if isinstance(user_id, bytes):
                user_id = user_id.decode()
            data = json.loads(value)
            indicators.append(
                TypingIndicator(
                    chat_id=chat_id,
                    user_id=user_id,
                    user_name=data.get("user_name", ""),
                    timestamp=int(data["timestamp"]),
                )
            )
        return indicators
