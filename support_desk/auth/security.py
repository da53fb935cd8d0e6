from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict

import jwt
from passlib.context import CryptContext

from support_desk.models import SessionClaim


_pwd = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
_JWT_ALG = "HS256"


def hash_password(password: str) -> str:
    if not password:
        raise ValueError("password_blank")
    return _pwd.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    if not password or not password_hash:
        return False
    try:
        return _pwd.verify(password, password_hash)
    except Exception:
        # Malformed or unknown hash format: fail closed.
        return False


def create_session_token(
    *,
    secret: str,
    session_id: str,
    email: str,
    expires_minutes: int,
) -> str:
    """Sign the session cookie value.

    The claims are deliberately minimal: the session id and the email. Everything else is
    re-read from the database on each request.
    """
    if not secret:
        raise ValueError("session_secret_blank")

    now = datetime.now(timezone.utc)
    exp = now + timedelta(minutes=max(1, int(expires_minutes)))

    payload: Dict[str, Any] = {
        "sid": session_id,
        "sub": email,
        "iat": int(now.timestamp()),
        "exp": int(exp.timestamp()),
    }
    return jwt.encode(payload, secret, algorithm=_JWT_ALG)


def decode_session_token(*, token: str, secret: str) -> SessionClaim:
    """Verify a session token and return its claims.

    Raises jwt.InvalidTokenError (incl. ExpiredSignatureError) for bad tokens and
    ValueError for tokens missing a claim.
    """
    if not token:
        raise ValueError("token_blank")
    if not secret:
        raise ValueError("session_secret_blank")
    payload = jwt.decode(token, secret, algorithms=[_JWT_ALG])
    sid = str(payload.get("sid") or "")
    sub = str(payload.get("sub") or "")
    if not sid or not sub:
        raise ValueError("token_missing_claim")
    return SessionClaim(session_id=sid, email=sub)
