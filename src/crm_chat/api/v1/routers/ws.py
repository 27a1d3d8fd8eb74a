from __future__ import annotations

import asyncio
import logging
from typing import Any

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect

from crm_chat.api.deps import (
    get_clock,
    get_preferences,
    get_presence_store,
    get_publisher,
    get_source,
    get_typing_store,
    get_uow_factory,
    get_verifier,
)
from crm_chat.application.dto.principal import Principal
from crm_chat.application.exceptions import AppError
from crm_chat.application.ports.bus import EventPublisher, EventSource
from crm_chat.application.ports.clock import Clock
from crm_chat.application.ports.preferences import MutePreferenceStore
from crm_chat.application.ports.presence import PresenceStore
from crm_chat.application.ports.typing import TypingStore
from crm_chat.application.uow import UoWFactory
from crm_chat.config import settings
from crm_chat.infrastructure.ws.alerts import WsAlertSink
from crm_chat.infrastructure.ws.manager import ConnectionManager
from crm_chat.infrastructure.ws.protocol import WsInbound
from crm_chat.services import chat_service
from crm_chat.services.admin_monitor import AdminMonitor
from crm_chat.services.conversation_view import ConversationView, message_frame
from crm_chat.services.notification_service import NotificationDispatcher

logger = logging.getLogger(__name__)
router = APIRouter(tags=["websocket"])

manager = ConnectionManager()


def get_manager() -> ConnectionManager:
    return manager


async def _authenticate(token: str) -> Principal | None:
    try:
        verifier = get_verifier()
        return await verifier.verify(token)
    except Exception:
        logger.debug("WS auth failed", exc_info=True)
        return None


async def _error(ws: WebSocket, code: str, detail: str | None = None, **extra: Any) -> None:
    await manager.send(ws, "error", {"code": code, "detail": detail, **extra})


def _notification_state(dispatcher: NotificationDispatcher) -> dict[str, Any]:
    return {
        "permission": str(dispatcher.permission),
        "muted": dispatcher.muted,
        "enabled": dispatcher.is_enabled,
    }


@router.websocket("/ws/chat")
async def ws_chat(
    websocket: WebSocket,
    token: str = Query(...),
    device_id: str | None = Query(None),
    source: EventSource = Depends(get_source),
    publisher: EventPublisher = Depends(get_publisher),
    uow_factory: UoWFactory = Depends(get_uow_factory),
    presence_store: PresenceStore = Depends(get_presence_store),
    typing_store: TypingStore = Depends(get_typing_store),
    preferences: MutePreferenceStore = Depends(get_preferences),
    clock: Clock = Depends(get_clock),
) -> None:
    principal = await _authenticate(token)
    if principal is None:
        await websocket.close(code=4001, reason="Authentication failed")
        return

    await manager.connect(websocket, principal.id)

    async def emit(event_type: str, data: dict[str, Any]) -> None:
        await manager.send(websocket, event_type, data)

    view: ConversationView | None = None
    heartbeat_task: asyncio.Task[None] | None = None
    try:
        dispatcher = await NotificationDispatcher.load(
            device_id or principal.id,
            preferences,
            WsAlertSink(manager, websocket),
            clock=clock,
        )
        view = ConversationView(
            principal,
            emit=emit,
            source=source,
            publisher=publisher,
            uow_factory=uow_factory,
            presence_store=presence_store,
            typing_store=typing_store,
            dispatcher=dispatcher,
            clock=clock,
        )
        await view.start()
        await emit(
            "session.ready",
            {
                "user_id": principal.id,
                "user_name": principal.name,
                "role": str(principal.role),
                "group_chat_id": chat_service.default_group_chat_id(),
                "notifications": _notification_state(dispatcher),
            },
        )
        heartbeat_task = asyncio.create_task(
            _presence_heartbeat(view), name=f"ws-heartbeat-{principal.id}",
        )
        await _read_loop(websocket, view)
    except WebSocketDisconnect:
        pass
    except Exception:
        logger.exception("WS error for %s", principal.id)
        await _close_after_error(websocket)
    finally:
        if heartbeat_task is not None:
            heartbeat_task.cancel()
        last = manager.disconnect(websocket, principal.id)
        if view is not None:
            await view.close(last_connection=last)


async def _close_after_error(ws: WebSocket) -> None:
    try:
        await ws.close(code=1011, reason="Internal error")
    except RuntimeError:
        # Already closed by the peer
        logger.debug("Socket was closed before the error close", exc_info=True)


async def _presence_heartbeat(view: ConversationView) -> None:
    interval = settings.PRESENCE_HEARTBEAT_SECONDS
    while True:
        await asyncio.sleep(interval)
        await view.heartbeat()


async def _read_loop(ws: WebSocket, view: ConversationView) -> None:
    while True:
        raw = await ws.receive_text()
        try:
            msg = WsInbound.model_validate_json(raw)
        except ValueError:
            await _error(ws, "invalid_payload")
            continue

        try:
            await _handle(ws, view, msg)
        except WebSocketDisconnect:
            raise
        except AppError as exc:
            await _error(ws, exc.code, exc.detail, type=msg.type)
        except Exception:
            # The session and its feeds outlive a failed operation
            logger.exception("WS %s failed for %s", msg.type, view.principal.id)
            await _error(ws, "internal", "Operation failed", type=msg.type)


async def _handle(ws: WebSocket, view: ConversationView, msg: WsInbound) -> None:
    data = msg.data

    if msg.type == "ping":
        await manager.send(ws, "pong", {})

    elif msg.type == "heartbeat":
        await view.heartbeat()

    elif msg.type == "visibility":
        await view.set_visible(bool(data.get("visible", True)))

    elif msg.type == "chat.open":
        await view.open_chat(str(data.get("chat_id") or ""))
        await manager.send(ws, "chat.opened", {"chat_id": view.active_chat_id})

    elif msg.type == "chat.open_direct":
        chat_id = await view.open_direct_chat(str(data.get("user_id") or ""))
        await manager.send(ws, "chat.opened", {"chat_id": chat_id})

    elif msg.type == "chat.close":
        await view.close_chat()

    elif msg.type == "message.send":
        await _handle_send(ws, view, data)

    elif msg.type == "typing.keystroke":
        await view.keystroke()

    elif msg.type == "mark_read":
        marked = await view.mark_active_read()
        await manager.send(ws, "read.marked", {"chat_id": view.active_chat_id, "marked": marked})

    elif msg.type == "notifications.permission":
        try:
            view.dispatcher.update_permission(str(data.get("permission")))
        except ValueError:
            await _error(ws, "invalid_data", "Unknown permission", type=msg.type)
            return
        await manager.send(ws, "notifications.state", _notification_state(view.dispatcher))

    elif msg.type == "notifications.mute":
        if "muted" in data:
            await view.dispatcher.set_muted(bool(data["muted"]))
        else:
            await view.dispatcher.toggle_mute()
        await manager.send(ws, "notifications.state", _notification_state(view.dispatcher))

    else:
        await _error(ws, "unknown_type", type=msg.type)


async def _handle_send(ws: WebSocket, view: ConversationView, data: dict[str, Any]) -> None:
    text = data.get("text")
    try:
        message = await view.send(text, data.get("chat_id"))
    except AppError as exc:
        await _error(ws, exc.code, exc.detail, type="message.send", draft=text)
        return
    except Exception:
        # Nothing was retried; the client keeps the draft
        logger.exception("Send failed for %s", view.principal.id)
        await _error(ws, "send_failed", "Message could not be sent", type="message.send", draft=text)
        return
    await manager.send(ws, "message.sent", message_frame(message))


@router.websocket("/ws/chat/admin")
async def ws_chat_admin(
    websocket: WebSocket,
    token: str = Query(...),
    source: EventSource = Depends(get_source),
    uow_factory: UoWFactory = Depends(get_uow_factory),
    clock: Clock = Depends(get_clock),
) -> None:
    principal = await _authenticate(token)
    if principal is None:
        await websocket.close(code=4001, reason="Authentication failed")
        return
    if not principal.is_admin:
        await websocket.close(code=4003, reason="Admin access required")
        return

    await manager.connect(websocket, principal.id)

    async def emit(event_type: str, data: dict[str, Any]) -> None:
        await manager.send(websocket, event_type, data)

    monitor: AdminMonitor | None = None
    try:
        monitor = AdminMonitor(
            principal, emit=emit, source=source, uow_factory=uow_factory, clock=clock,
        )
        await monitor.start()
        await _admin_read_loop(websocket, monitor)
    except WebSocketDisconnect:
        pass
    except Exception:
        logger.exception("Admin WS error for %s", principal.id)
        await _close_after_error(websocket)
    finally:
        manager.disconnect(websocket, principal.id)
        if monitor is not None:
            await monitor.close()


async def _admin_read_loop(ws: WebSocket, monitor: AdminMonitor) -> None:
    while True:
        raw = await ws.receive_text()
        try:
            msg = WsInbound.model_validate_json(raw)
        except ValueError:
            await _error(ws, "invalid_payload")
            continue

        try:
            if msg.type == "ping":
                await manager.send(ws, "pong", {})
            elif msg.type == "chat.open":
                await monitor.open_chat(str(msg.data.get("chat_id") or ""))
                await manager.send(ws, "chat.opened", {"chat_id": monitor.selected_chat_id})
            elif msg.type == "chat.close":
                await monitor.close_chat()
            elif msg.type == "message.send":
                await _error(ws, "read_only", "The admin monitor cannot send messages", type=msg.type)
            else:
                await _error(ws, "unknown_type", type=msg.type)
        except WebSocketDisconnect:
            raise
        except AppError as exc:
            await _error(ws, exc.code, exc.detail, type=msg.type)
        except Exception:
            logger.exception("Admin WS %s failed for %s", msg.type, monitor.principal.id)
            await _error(ws, "internal", "Operation failed", type=msg.type)
