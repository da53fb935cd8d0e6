from __future__ import annotations

from datetime import datetime, timedelta, timezone


def utcnow_iso() -> str:
    """Current UTC time as ISO-8601 string with Z."""
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def utc_in_iso(minutes: int) -> str:
    """UTC time `minutes` from now, same format as utcnow_iso()."""
    dt = datetime.now(timezone.utc) + timedelta(minutes=int(minutes))
    return dt.replace(microsecond=0).isoformat().replace("+00:00", "Z")
