"""Decides whether a new message raises a desktop alert on a device.

Alerts are enabled only when the browser granted permission and the device
is not muted. Mute is a device-level switch stored apart from the grant, so
unmuting never needs a new permission prompt.
"""
from __future__ import annotations

import logging
from typing import Awaitable, Callable
from urllib.parse import urlencode

from crm_chat.application.dto.alert import Alert, Tone
from crm_chat.application.ports.alerts import AlertSink
from crm_chat.application.ports.clock import Clock, SystemClock
from crm_chat.application.ports.preferences import MutePreferenceStore
from crm_chat.config import settings
from crm_chat.domain.value_objects.enums import (
    NotificationPermission,
    NotificationPriority,
    UserRole,
)

logger = logging.getLogger(__name__)

_clock = SystemClock()

HIGH_PRIORITY_TONE = Tone()


def priority_for(sender_role: str | None) -> NotificationPriority:
    if sender_role == UserRole.ADMIN:
        return NotificationPriority.HIGH
    return NotificationPriority.NORMAL


def truncate_body(text: str, limit: int) -> str:
    if len(text) > limit:
        return text[:limit] + "..."
    return text


def chat_link(chat_id: str) -> str:
    return f"{settings.NOTIFICATION_CLICK_PATH}?{urlencode({'openChat': chat_id})}"


class NotificationDispatcher:
    def __init__(
        self,
        device_id: str,
        preferences: MutePreferenceStore,
        sink: AlertSink,
        *,
        permission: NotificationPermission = NotificationPermission.DEFAULT,
        muted: bool = False,
        clock: Clock = _clock,
    ) -> None:
        self.device_id = device_id
        self._preferences = preferences
        self._sink = sink
        self._permission = permission
        self._muted = muted
        self._clock = clock

    @classmethod
    async def load(
        cls,
        device_id: str,
        preferences: MutePreferenceStore,
        sink: AlertSink,
        *,
        permission: NotificationPermission = NotificationPermission.DEFAULT,
        clock: Clock = _clock,
    ) -> NotificationDispatcher:
        try:
            muted = await preferences.is_muted(device_id)
        except Exception:
            logger.exception("Mute lookup failed for device %s; alerts stay unmuted", device_id)
            muted = False
        return cls(device_id, preferences, sink, permission=permission, muted=muted, clock=clock)

    @property
    def permission(self) -> NotificationPermission:
        return self._permission

    @property
    def muted(self) -> bool:
        return self._muted

    @property
    def is_enabled(self) -> bool:
        return self._permission == NotificationPermission.GRANTED and not self._muted

    def update_permission(self, permission: str) -> NotificationPermission:
        """Record the grant as reported by the browser."""
        self._permission = NotificationPermission(permission)
        return self._permission

    async def request_permission(
        self,
        prompt: Callable[[], Awaitable[str]],
    ) -> bool:
        """Ask once. A decided grant is only changed outside the app."""
        if self._permission == NotificationPermission.DEFAULT:
            self._permission = NotificationPermission(await prompt())
        return self._permission == NotificationPermission.GRANTED

    async def set_muted(self, muted: bool) -> bool:
        await self._preferences.set_muted(self.device_id, muted)
        self._muted = muted
        return self._muted

    async def toggle_mute(self) -> bool:
        return await self.set_muted(not self._muted)

    def build_alert(
        self,
        sender_name: str,
        text: str,
        chat_id: str,
        sender_id: str,
        is_group_chat: bool = False,
        priority: NotificationPriority = NotificationPriority.NORMAL,
    ) -> Alert:
        if is_group_chat:
            title = f"{sender_name} in {settings.GROUP_CHAT_NAME}"
        else:
            title = f"New message from {sender_name}"
        high = priority == NotificationPriority.HIGH
        return Alert(
            title=title,
            body=truncate_body(text, settings.NOTIFICATION_BODY_MAX),
            tag=chat_id,
            chat_id=chat_id,
            sender_id=sender_id,
            priority=priority,
            require_interaction=high,
            auto_close_ms=None if high else settings.NOTIFICATION_AUTO_CLOSE_MS,
            tone=HIGH_PRIORITY_TONE if high else None,
            navigate_to=chat_link(chat_id),
            timestamp=self._clock.now_ms(),
        )

    async def notify_new_message(
        self,
        sender_name: str,
        text: str,
        chat_id: str,
        sender_id: str,
        is_group_chat: bool = False,
        priority: NotificationPriority = NotificationPriority.NORMAL,
    ) -> Alert | None:
        """Deliver an alert if enabled. Return the delivered alert, else None."""
        if not self.is_enabled:
            return None

        alert = self.build_alert(sender_name, text, chat_id, sender_id, is_group_chat, priority)
        try:
            await self._sink.deliver(alert)
        except Exception:
            logger.exception("Failed to deliver alert for chat %s", chat_id)
            return None
        return alert
