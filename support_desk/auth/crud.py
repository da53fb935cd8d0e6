from __future__ import annotations

from typing import Any, Dict, List, Optional

from support_desk.config import Config
from support_desk.db import connect, is_integrity_error
from support_desk.errors import DuplicateKey, NotFound
from support_desk.models import normalize_email
from support_desk.util.time import utcnow_iso

from .security import hash_password, verify_password


def public_user(row: Any | Dict[str, Any]) -> Dict[str, Any]:
    """Render a users row for clients (never includes the password hash)."""
    d = dict(row)
    return {
        "_id": d.get("email"),
        "firstName": d.get("first_name"),
        "lastName": d.get("last_name"),
        "stripeId": d.get("stripe_customer_id"),
        "accessLevel": int(d.get("access_level") or 0),
    }


def public_author(row: Any | Dict[str, Any]) -> Dict[str, Any]:
    """The subset of a user shown next to tickets and messages."""
    d = dict(row)
    return {
        "_id": d.get("email"),
        "firstName": d.get("first_name"),
        "lastName": d.get("last_name"),
    }


def get_user_by_email(conn: Any, email: str) -> Optional[Any]:
    e = normalize_email(email)
    if not e:
        return None
    return conn.execute(
        "SELECT * FROM users WHERE email=?",
        (e,),
    ).fetchone()


def user_exists(conn: Any, email: str) -> bool:
    e = normalize_email(email)
    if not e:
        return False
    return conn.execute("SELECT 1 FROM users WHERE email=?", (e,)).fetchone() is not None


def verify_user_credentials(conn: Any, email: str, password: str) -> Optional[Any]:
    row = get_user_by_email(conn, email)
    if row is None:
        return None
    if not verify_password(password, str(row["password_hash"])):
        return None
    return row


def create_user(
    conn: Any,
    *,
    email: str,
    first_name: str,
    last_name: str,
    password: str,
    stripe_customer_id: str | None = None,
    access_level: int = 0,
) -> Dict[str, Any]:
    e = normalize_email(email)
    if not e:
        raise ValueError("email_blank")

    if user_exists(conn, e):
        raise DuplicateKey(e)

    now = utcnow_iso()
    try:
        conn.execute(
            """
            INSERT INTO users (email, first_name, last_name, password_hash, stripe_customer_id,
                               access_level, created_at, updated_at)
            VALUES (?,?,?,?,?,?,?,?)
            """,
            (
                e,
                first_name.strip(),
                last_name.strip(),
                hash_password(password),
                stripe_customer_id,
                int(access_level),
                now,
                now,
            ),
        )
    except Exception as exc:
        # Lost a race against a concurrent signup for the same email.
        if is_integrity_error(exc):
            raise DuplicateKey(e) from exc
        raise
    row = get_user_by_email(conn, e)
    assert row is not None
    return public_user(row)


def list_users(conn: Any) -> List[Dict[str, Any]]:
    rows = conn.execute("SELECT * FROM users ORDER BY created_at, email").fetchall()
    return [public_user(r) for r in rows]


def set_access_level(conn: Any, email: str, access_level: int) -> Dict[str, Any]:
    """Change a user's privilege level. Only reachable from admin scripts."""
    e = normalize_email(email)
    cur = conn.execute(
        "UPDATE users SET access_level=?, updated_at=? WHERE email=?",
        (int(access_level), utcnow_iso(), e),
    )
    if cur.rowcount == 0:
        raise NotFound(f"user_not_found: {e}")
    row = get_user_by_email(conn, e)
    return public_user(row)


def touch_last_login(conn: Any, email: str) -> None:
    now = utcnow_iso()
    conn.execute(
        "UPDATE users SET last_login_at=?, updated_at=? WHERE email=?",
        (now, now, normalize_email(email)),
    )


def bootstrap_admin_if_needed(cfg: Config) -> Optional[Dict[str, Any]]:
    """Create the first staff user if the users table is empty.

    Controlled via environment variables:

    - AUTH_BOOTSTRAP_ADMIN_EMAIL
    - AUTH_BOOTSTRAP_ADMIN_PASSWORD

    Nothing happens unless both are set and there are 0 rows in `users`.
    """

    email = normalize_email(cfg.AUTH_BOOTSTRAP_ADMIN_EMAIL)
    password = cfg.AUTH_BOOTSTRAP_ADMIN_PASSWORD
    if not email or not password:
        return None

    with connect(cfg.DB_DSN) as conn:
        n = conn.execute("SELECT COUNT(*) AS n FROM users").fetchone()["n"]
        if int(n) > 0:
            return None
        return create_user(
            conn,
            email=email,
            first_name="Support",
            last_name="Admin",
            password=password,
            access_level=1,
        )
