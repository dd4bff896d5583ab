"""
Opaque pagination cursors.

A cursor is the URL-safe base64 of a small JSON object holding the sort key
``(created_at, id)`` of the last row a caller received. Callers pass it back
verbatim; they never parse it.
"""

from __future__ import annotations

import base64
import binascii
import json
from datetime import datetime
from typing import NamedTuple, Optional

from .primitives import ensure_utc


class CursorPosition(NamedTuple):
    """Sort key of the last row on a page. Ids are unique, so the tuple is a total order."""

    created_at: datetime
    id: str


def encode_cursor(created_at: datetime, id: str) -> str:
    """Encode a sort key as an opaque token."""
    payload = json.dumps(
        {"created_at": ensure_utc(created_at).isoformat(), "id": id},
        separators=(",", ":"),
    )
    token = base64.urlsafe_b64encode(payload.encode("utf-8")).decode("ascii")
    return token.rstrip("=")


def decode_cursor(token: Optional[str]) -> Optional[CursorPosition]:
    """Decode a token produced by :func:`encode_cursor`.

    Returns None for empty, malformed or foreign input. Callers treat None as
    "start from the beginning".
    """
    if not token or not isinstance(token, str):
        return None
    try:
        padded = token + "=" * (-len(token) % 4)
        raw = base64.urlsafe_b64decode(padded.encode("ascii"))
        parsed = json.loads(raw.decode("utf-8"))
    except (binascii.Error, UnicodeError, ValueError):
        return None

    if not isinstance(parsed, dict):
        return None
    created_at = parsed.get("created_at")
    comment_id = parsed.get("id")
    if not isinstance(created_at, str) or not isinstance(comment_id, str) or not comment_id:
        return None
    try:
        timestamp = datetime.fromisoformat(created_at)
    except ValueError:
        return None
    return CursorPosition(created_at=ensure_utc(timestamp), id=comment_id)
