from __future__ import annotations

from typing import Protocol


class MutePreferenceStore(Protocol):
    """Per-device notification mute switch."""

    async def is_muted(self, device_id: str) -> bool: ...

    async def set_muted(self, device_id: str, muted: bool) -> None: ...
