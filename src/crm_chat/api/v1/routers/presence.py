from __future__ import annotations

from fastapi import APIRouter, Query

from crm_chat.api.deps import ClockDep, CurrentPrincipal, PresenceStoreDep, PublisherDep
from crm_chat.api.v1.schemas.presence import PresenceResponse, UpdatePresenceRequest
from crm_chat.config import settings
from crm_chat.domain.entities.presence import PresenceRecord
from crm_chat.services import presence_service

router = APIRouter(prefix="/api/v1/chat/presence", tags=["presence"])


def _response(record: PresenceRecord, now: int) -> PresenceResponse:
    return PresenceResponse(
        user_id=record.user_id,
        status=record.status,
        last_seen=record.last_seen,
        label=presence_service.presence_label(record, now),
    )


@router.get("", response_model=list[PresenceResponse])
async def get_presence(
    _principal: CurrentPrincipal,
    store: PresenceStoreDep,
    clock: ClockDep,
    user_ids: list[str] = Query([]),
) -> list[PresenceResponse]:
    records = await presence_service.get_presence(
        user_ids, store, stale_after_ms=settings.presence_stale_after_ms, clock=clock,
    )
    found = {r.user_id: r for r in records}
    now = clock.now_ms()
    return [
        _response(found.get(uid) or presence_service.offline_placeholder(uid), now)
        for uid in user_ids
    ]


@router.post("", response_model=PresenceResponse)
async def update_presence(
    body: UpdatePresenceRequest,
    principal: CurrentPrincipal,
    store: PresenceStoreDep,
    publisher: PublisherDep,
    clock: ClockDep,
) -> PresenceResponse:
    record = await presence_service.update_presence(
        principal.id, body.status, store, publisher, clock=clock,
    )
    return _response(record, clock.now_ms())
