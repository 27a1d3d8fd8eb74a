from __future__ import annotations

from dataclasses import asdict

from fastapi import WebSocket

from crm_chat.application.dto.alert import Alert
from crm_chat.infrastructure.ws.manager import ConnectionManager


class WsAlertSink:
    """Implements application.ports.alerts.AlertSink over the device's socket."""

    def __init__(self, manager: ConnectionManager, ws: WebSocket) -> None:
        self._manager = manager
        self._ws = ws

    async def deliver(self, alert: Alert) -> None:
        await self._manager.send(self._ws, "notification", asdict(alert))
