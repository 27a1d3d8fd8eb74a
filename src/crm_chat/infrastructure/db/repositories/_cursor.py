"""Cursor helpers for paging a chat log backwards.

Cursor format: base64("<timestamp>|<seq>")
"""
from __future__ import annotations

import base64

from crm_chat.application.exceptions import ValidationError


def encode_cursor(timestamp: int, seq: int) -> str:
    raw = f"{timestamp}|{seq}"
    cursor = base64.urlsafe_b64encode(raw.encode()).decode()
    return cursor.rstrip("=")


def decode_cursor(cursor: str) -> tuple[int, int]:
    # Restore base64 padding if it was stripped
    cursor += "=" * ((4 - len(cursor) % 4) % 4)
    try:
        raw = base64.urlsafe_b64decode(cursor.encode()).decode()
        ts_str, seq_str = raw.split("|", 1)
        return int(ts_str), int(seq_str)
    except ValueError:
        raise ValidationError("Invalid cursor") from None
