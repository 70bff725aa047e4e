from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Optional

# Numeric timestamps above this are milliseconds, below are seconds.
_MILLIS_THRESHOLD = 1e10


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def generate_id(prefix: str = "") -> str:
    value = uuid.uuid4().hex
    return f"{prefix}_{value}" if prefix else value


def parse_iso(value: str) -> Optional[datetime]:
    """Parse an ISO-8601 string (``Z`` suffix allowed); None if invalid."""
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(text)
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def normalize_timestamp(value: Any) -> str:
    """
    Convert an export timestamp into an ISO-8601 UTC string.

    Numbers greater than 1e10 are treated as milliseconds, other numbers as
    Unix seconds. Strings are parsed as ISO-8601. Anything unparseable falls
    back to the current time.
    """
    if isinstance(value, bool):
        return now_iso()
    if isinstance(value, (int, float)):
        seconds = value / 1000.0 if value > _MILLIS_THRESHOLD else float(value)
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc).isoformat()
        except (OverflowError, OSError, ValueError):
            return now_iso()
    if isinstance(value, datetime):
        dt = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
        return dt.astimezone(timezone.utc).isoformat()
    if isinstance(value, str):
        dt = parse_iso(value)
        if dt is not None:
            return dt.astimezone(timezone.utc).isoformat()
        try:
            return normalize_timestamp(float(value))
        except ValueError:
            return now_iso()
    return now_iso()
