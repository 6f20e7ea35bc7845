"""Opaque cursor pagination shared by list endpoints.

Cursors wrap the last seen primary key (a Snowflake string or a BIGSERIAL)
as Base64 JSON. Services fetch limit+1 rows to detect has_more without a
COUNT(*) query.
"""

import base64
import json
from typing import Any, TypeVar

T = TypeVar("T")

MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 20


def cursor_encode(last_id: str | int) -> str:
    """Encode a primary key into an opaque Base64 cursor string."""
    payload = json.dumps({"id": last_id})
    return base64.b64encode(payload.encode()).decode()


def cursor_decode(cursor: str | None) -> Any:
    """Decode a cursor string back to the last seen id. Returns None on error."""
    if cursor is None:
        return None
    try:
        payload = json.loads(base64.b64decode(cursor.encode()).decode())
        return payload["id"]
    except Exception:
        return None


def split_page(rows: list[T], limit: int) -> tuple[list[T], bool]:
    """Trim a limit+1 fetch to one page and report whether more rows exist."""
    return rows[:limit], len(rows) > limit
