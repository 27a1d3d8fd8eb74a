from __future__ import annotations

from typing import Any

from crm_chat.application.dto.principal import Principal
from crm_chat.domain.value_objects.enums import UserRole


def principal_from_claims(payload: dict[str, Any]) -> Principal:
    role_raw = str(payload.get("role", UserRole.STAFF)).upper()
    role = UserRole(role_raw) if role_raw in UserRole.__members__.values() else UserRole.STAFF
    user_id = str(payload["sub"])
    return Principal(
        id=user_id,
        name=payload.get("name") or payload.get("email") or user_id,
        role=role,
    )
