from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class SessionClaim:
    session_id: str
    email: str


def normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


def same_email(a: str | None, b: str | None) -> bool:
    """The one ownership comparison used everywhere: normalized string equality."""
    na = normalize_email(a)
    return bool(na) and na == normalize_email(b)


def is_staff(access_level: int | None) -> bool:
    return int(access_level or 0) >= 1
