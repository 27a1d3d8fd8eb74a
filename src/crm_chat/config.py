from __future__ import annotations

from typing import Literal

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    POSTGRES_USER: str
    POSTGRES_PASSWORD: str
    POSTGRES_DB: str
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432

    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    DB_POOL_RECYCLE: int = 300

    REDIS_URL: str = "redis://localhost:6379/0"

    JWT_SECRET: str = ""
    JWT_VERIFY_MODE: Literal["hs256", "jwks"] = "hs256"
    JWT_ALGORITHM: str = "HS256"
    JWKS_URL: str | None = None

    CORS_ORIGINS: list[str] = ["*"]

    # "local" keeps fan-out inside one process (single worker, tests)
    FANOUT_BACKEND: Literal["redis", "local"] = "redis"
    REDIS_PUBSUB_CHANNEL: str = "crm.chat.fanout"
    REDIS_KEY_PREFIX: str = "crm:chat"

    PRESENCE_HEARTBEAT_SECONDS: int = 30
    PRESENCE_STALE_AFTER_SECONDS: int = 60

    TYPING_STALE_MS: int = 5000
    TYPING_IDLE_MS: int = 3000

    MESSAGE_WINDOW_LIMIT: int = 100

    GROUP_CHAT_KEY: str = "office-all"
    GROUP_CHAT_NAME: str = "All Office Members"

    NOTIFICATION_BODY_MAX: int = 100
    NOTIFICATION_AUTO_CLOSE_MS: int = 5000
    NOTIFICATION_CLICK_PATH: str = "/dashboard/chat"

    @property
    def database_url(self) -> str:
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.POSTGRES_DB}"
        )

    @property
    def presence_stale_after_ms(self) -> int:
        return self.PRESENCE_STALE_AFTER_SECONDS * 1000

    model_config = ConfigDict(
        env_file=".env",
        extra="ignore",
    )


settings = Settings()  # type: ignore[call-arg]
