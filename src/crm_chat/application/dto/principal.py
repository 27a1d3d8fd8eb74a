from __future__ import annotations

from dataclasses import dataclass

from crm_chat.domain.value_objects.enums import UserRole


@dataclass(frozen=True, slots=True)
class Principal:
    """Authenticated session identity. Trusted as-is by the chat core."""

    id: str
    name: str
    role: UserRole = UserRole.STAFF

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN
