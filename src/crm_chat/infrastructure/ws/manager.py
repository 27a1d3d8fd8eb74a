"""In-process WebSocket connection registry."""
from __future__ import annotations

import asyncio
import logging
from typing import Any

from fastapi import WebSocket

from crm_chat.infrastructure.ws.protocol import WsOutbound

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Tracks open sockets per user.

    A user may hold several tabs; presence goes offline only when the
    last one closes.
    """

    def __init__(self) -> None:
        self._connections: dict[str, set[WebSocket]] = {}
        self._send_locks: dict[WebSocket, asyncio.Lock] = {}

    async def connect(self, ws: WebSocket, user_id: str) -> None:
        await ws.accept()
        self._connections.setdefault(user_id, set()).add(ws)
        self._send_locks[ws] = asyncio.Lock()
        logger.debug("WS connected: %s (sockets=%d)", user_id, self.count(user_id))

    def disconnect(self, ws: WebSocket, user_id: str) -> bool:
        """Forget the socket. Return True if it was the user's last one."""
        self._send_locks.pop(ws, None)
        conns = self._connections.get(user_id)
        if conns:
            conns.discard(ws)
            if not conns:
                del self._connections[user_id]
        logger.debug("WS disconnected: %s", user_id)
        return user_id not in self._connections

    def count(self, user_id: str) -> int:
        return len(self._connections.get(user_id, ()))

    async def send(self, ws: WebSocket, event_type: str, data: dict[str, Any]) -> None:
        """Send one frame. Feed pumps and the read loop share the socket."""
        raw = WsOutbound(type=event_type, data=data).model_dump_json()
        lock = self._send_locks.get(ws)
        if lock is None:
            await ws.send_text(raw)
            return
        async with lock:
            await ws.send_text(raw)
