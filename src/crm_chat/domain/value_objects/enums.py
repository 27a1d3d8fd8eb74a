from __future__ import annotations

from enum import StrEnum


class ChatType(StrEnum):
    GROUP = "group"
    DIRECT = "direct"


class UserRole(StrEnum):
    ADMIN = "ADMIN"
    STAFF = "STAFF"


class PresenceStatus(StrEnum):
    ONLINE = "online"
    OFFLINE = "offline"


class NotificationPriority(StrEnum):
    HIGH = "high"
    NORMAL = "normal"


class NotificationPermission(StrEnum):
    DEFAULT = "default"
    GRANTED = "granted"
    DENIED = "denied"
