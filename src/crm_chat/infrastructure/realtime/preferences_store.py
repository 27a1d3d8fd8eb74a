from __future__ import annotations

import redis.asyncio as aioredis


class RedisMutePreferenceStore:
    """Implements application.ports.preferences.MutePreferenceStore."""

    def __init__(self, redis: aioredis.Redis, prefix: str) -> None:
        self._redis = redis
        self._key = f"{prefix}:muted_devices"

    async def is_muted(self, device_id: str) -> bool:
        return bool(await self._redis.sismember(self._key, device_id))

    async def set_muted(self, device_id: str, muted: bool) -> None:
        if muted:
            await self._redis.sadd(self._key, device_id)
        else:
            await self._redis.srem(self._key, device_id)
