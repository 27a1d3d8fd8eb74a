from __future__ import annotations

from typing import Protocol

from crm_chat.application.dto.alert import Alert


class AlertSink(Protocol):
    """Delivers a decided alert to the device that displays it."""

    async def deliver(self, alert: Alert) -> None: ...
