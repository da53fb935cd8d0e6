"""Session / identity management.

One `SessionManager` is built per application (see `create_app`) and handed to request
handlers through `app.state`. It owns the whole login lifecycle:

    Anonymous --login()--> Authenticated --logout() / expiry--> Anonymous

The cookie holds a signed token with just the session id and the email. `restore()`
re-reads the user on every request and asks billing for the subscription status.
"""

from __future__ import annotations

import secrets
from typing import Any, Dict, Mapping, Optional, Tuple

import jwt

from support_desk.billing.stripe_billing import StripeBilling
from support_desk.config import Config
from support_desk.db import connect
from support_desk.errors import (
    DuplicateKey,
    InvalidCredentials,
    SessionTeardownError,
    StoreError,
    UpstreamError,
)
from support_desk.models import normalize_email, same_email
from support_desk.tickets.crud import list_user_tickets
from support_desk.util.hashing import sha256_hex
from support_desk.util.time import utc_in_iso, utcnow_iso

from .crud import (
    create_user,
    get_user_by_email,
    public_user,
    touch_last_login,
    user_exists,
    verify_user_credentials,
)
from .security import create_session_token, decode_session_token
from .validation import validate_signup

UNKNOWN_SUBSCRIPTION = "Unknown"


def _debug(msg: str) -> None:
    print(f"[auth] {msg}")


class SessionManager:
    def __init__(self, cfg: Config, billing: StripeBilling):
        self.cfg = cfg
        self.billing = billing

    # -----------------
    # Anonymous -> Authenticated
    # -----------------

    def login(self, email: str, password: str) -> Tuple[str, Dict[str, Any]]:
        """Verify credentials and open a session. Returns (token, public user)."""
        with connect(self.cfg.DB_DSN) as conn:
            row = verify_user_credentials(conn, email, password)
            if row is None:
                raise InvalidCredentials()
            touch_last_login(conn, str(row["email"]))
            user = public_user(row)
            token = self._open_session(conn, str(row["email"]))
        self.purge_expired()
        return token, user

    def signup(self, data: Mapping[str, Any]) -> Tuple[str, Dict[str, Any]]:
        """Register a user and open their first session. Returns (token, public user).

        Order matters: validation and the duplicate check happen before any billing call,
        and a Stripe customer created for a signup that then loses a duplicate race is
        deleted again.
        """
        validate_signup(data)
        email = normalize_email(data.get("email"))
        first_name = str(data.get("firstName")).strip()
        last_name = str(data.get("lastName")).strip()

        with connect(self.cfg.DB_DSN) as conn:
            if user_exists(conn, email):
                raise DuplicateKey(email)

        customer_id = self.billing.create_customer(email=email, name=f"{first_name} {last_name}")
        try:
            with connect(self.cfg.DB_DSN) as conn:
                user = create_user(
                    conn,
                    email=email,
                    first_name=first_name,
                    last_name=last_name,
                    password=str(data.get("password")),
                    stripe_customer_id=customer_id,
                )
                token = self._open_session(conn, email)
        except (DuplicateKey, StoreError):
            if customer_id:
                _debug(f"signup for {email} failed after creating customer {customer_id}; deleting it")
                try:
                    self.billing.delete_customer(customer_id)
                except UpstreamError as e:
                    _debug(f"could not delete orphaned customer {customer_id}: {e}")
            raise
        _debug(f"signup: {email}")
        return token, user

    def _open_session(self, conn: Any, email: str) -> str:
        session_id = secrets.token_urlsafe(32)
        conn.execute(
            "INSERT INTO sessions (session_hash, email, created_at, expires_at) VALUES (?,?,?,?)",
            (sha256_hex(session_id), email, utcnow_iso(), utc_in_iso(self.cfg.SESSION_TTL_MINUTES)),
        )
        return create_session_token(
            secret=self.cfg.SESSION_SECRET,
            session_id=session_id,
            email=email,
            expires_minutes=self.cfg.SESSION_TTL_MINUTES,
        )

    # -----------------
    # Per-request restore
    # -----------------

    def restore(self, token: str | None, *, expand_tickets: bool = False) -> Optional[Dict[str, Any]]:
        """Rebuild the identity behind a session token, or None if it is not valid."""
        if not token:
            return None
        try:
            claim = decode_session_token(token=token, secret=self.cfg.SESSION_SECRET)
        except (jwt.InvalidTokenError, ValueError):
            return None

        with connect(self.cfg.DB_DSN) as conn:
            session = conn.execute(
                "SELECT email, expires_at FROM sessions WHERE session_hash=?",
                (sha256_hex(claim.session_id),),
            ).fetchone()
            if session is None:
                return None
            if str(session["expires_at"]) <= utcnow_iso():
                return None
            if not same_email(session["email"], claim.email):
                return None

            row = get_user_by_email(conn, claim.email)
            if row is None:
                return None
            user = public_user(row)
            if expand_tickets:
                user["tickets"] = list_user_tickets(conn, user["_id"])

        user["subscription"] = self._subscription_for(user)
        return user

    def _subscription_for(self, user: Dict[str, Any]) -> str:
        customer_id = user.get("stripeId")
        try:
            return self.billing.subscription_status(customer_id)
        except UpstreamError as e:
            # A billing outage should not log everybody out.
            fallback = self.billing.last_known_status(customer_id) or UNKNOWN_SUBSCRIPTION
            _debug(f"subscription lookup failed for {user.get('_id')}: {e}; using {fallback}")
            return fallback

    # -----------------
    # Authenticated -> Anonymous
    # -----------------

    def logout(self, token: str | None) -> None:
        """Destroy the session behind `token` server-side.

        An unknown or already-expired session is not an error; a storage failure is.
        """
        if not token:
            return
        try:
            claim = decode_session_token(token=token, secret=self.cfg.SESSION_SECRET)
        except (jwt.InvalidTokenError, ValueError):
            return
        try:
            with connect(self.cfg.DB_DSN) as conn:
                conn.execute("DELETE FROM sessions WHERE session_hash=?", (sha256_hex(claim.session_id),))
        except StoreError as e:
            _debug(f"logout failed for {claim.email}: {e}")
            raise SessionTeardownError() from e

    def purge_expired(self) -> int:
        with connect(self.cfg.DB_DSN) as conn:
            cur = conn.execute("DELETE FROM sessions WHERE expires_at<=?", (utcnow_iso(),))
            n = cur.rowcount
        if n:
            _debug(f"purged {n} expired session(s)")
        return n
