from __future__ import annotations

from datetime import datetime, timezone

from ulid import ULID


def generate_id() -> str:
    """Lexicographically time-ordered unique id."""
    return str(ULID())


def now_iso() -> str:
    """Current UTC time, eg 2025-01-31T08:15:00.123Z."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
