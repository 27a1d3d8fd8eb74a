from __future__ import annotations

from dataclasses import dataclass

from crm_chat.domain.value_objects.enums import NotificationPriority


@dataclass(frozen=True, slots=True)
class Tone:
    """Short synthesized beep played with high-priority alerts."""

    frequency_hz: int = 800
    waveform: str = "sine"
    gain: float = 0.3
    duration_ms: int = 500


@dataclass(frozen=True, slots=True)
class Alert:
    title: str
    body: str
    tag: str
    chat_id: str
    sender_id: str
    priority: NotificationPriority
    require_interaction: bool
    auto_close_ms: int | None
    tone: Tone | None
    navigate_to: str
    timestamp: int
    focus_window: bool = True
