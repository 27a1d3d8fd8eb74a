"""FastAPI dependency injection helpers."""
from __future__ import annotations

from typing import Annotated, AsyncIterator

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from starlette.requests import HTTPConnection

from crm_chat.application.dto.principal import Principal
from crm_chat.application.ports.auth import TokenVerifier
from crm_chat.application.ports.bus import EventPublisher, EventSource
from crm_chat.application.ports.clock import Clock, SystemClock
from crm_chat.application.ports.preferences import MutePreferenceStore
from crm_chat.application.ports.presence import PresenceStore
from crm_chat.application.ports.typing import TypingStore
from crm_chat.application.uow import UoWFactory
from crm_chat.config import settings
from crm_chat.infrastructure.auth.hs256_verifier import HS256Verifier
from crm_chat.infrastructure.auth.jwks_verifier import JWKSVerifier
from crm_chat.infrastructure.bus.local_hub import LiveHub
from crm_chat.infrastructure.bus.redis_pubsub import RedisPubSubPublisher
from crm_chat.infrastructure.db.session import AsyncSessionLocal
from crm_chat.infrastructure.db.uow import SqlAlchemyUoW, open_uow
from crm_chat.infrastructure.realtime.preferences_store import RedisMutePreferenceStore
from crm_chat.infrastructure.realtime.presence_store import RedisPresenceStore
from crm_chat.infrastructure.realtime.typing_store import RedisTypingStore

_bearer_scheme = HTTPBearer()

_clock = SystemClock()


async def get_uow() -> AsyncIterator[SqlAlchemyUoW]:
    async with AsyncSessionLocal() as session:
        uow = SqlAlchemyUoW(session)
        try:
            yield uow
        finally:
            await session.close()


UoWDep = Annotated[SqlAlchemyUoW, Depends(get_uow)]


def get_uow_factory() -> UoWFactory:
    """Per-operation UoWs for long-lived WebSocket sessions."""
    return open_uow


def get_clock() -> Clock:
    return _clock


ClockDep = Annotated[Clock, Depends(get_clock)]


# fan-out


def get_hub(conn: HTTPConnection) -> LiveHub:
    return conn.app.state.hub


def get_publisher(conn: HTTPConnection) -> EventPublisher:
    if settings.FANOUT_BACKEND == "local":
        return conn.app.state.hub
    return RedisPubSubPublisher(conn.app.state.redis, settings.REDIS_PUBSUB_CHANNEL)


def get_source(conn: HTTPConnection) -> EventSource:
    return conn.app.state.hub


PublisherDep = Annotated[EventPublisher, Depends(get_publisher)]
SourceDep = Annotated[EventSource, Depends(get_source)]


# realtime stores


def get_presence_store(conn: HTTPConnection) -> PresenceStore:
    return RedisPresenceStore(conn.app.state.redis, settings.REDIS_KEY_PREFIX)


def get_typing_store(conn: HTTPConnection) -> TypingStore:
    return RedisTypingStore(conn.app.state.redis, settings.REDIS_KEY_PREFIX)


def get_preferences(conn: HTTPConnection) -> MutePreferenceStore:
    return RedisMutePreferenceStore(conn.app.state.redis, settings.REDIS_KEY_PREFIX)


PresenceStoreDep = Annotated[PresenceStore, Depends(get_presence_store)]
TypingStoreDep = Annotated[TypingStore, Depends(get_typing_store)]


# auth


def _get_verifier() -> TokenVerifier:
    if settings.JWT_VERIFY_MODE == "jwks":
        assert settings.JWKS_URL, "JWKS_URL must be set when JWT_VERIFY_MODE=jwks"
        return JWKSVerifier(settings.JWKS_URL)
    return HS256Verifier(settings.JWT_SECRET, settings.JWT_ALGORITHM)


_verifier: TokenVerifier | None = None


def get_verifier() -> TokenVerifier:
    global _verifier  # noqa: PLW0603
    if _verifier is None:
        _verifier = _get_verifier()
    return _verifier


async def get_current_principal(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(_bearer_scheme)],
) -> Principal:
    verifier = get_verifier()
    try:
        return await verifier.verify(credentials.credentials)
    except Exception as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
        ) from exc


CurrentPrincipal = Annotated[Principal, Depends(get_current_principal)]


async def get_current_admin(principal: CurrentPrincipal) -> Principal:
    if not principal.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return principal


CurrentAdmin = Annotated[Principal, Depends(get_current_admin)]
