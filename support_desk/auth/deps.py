from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import Depends, HTTPException, Request

from support_desk.errors import NotAuthorized
from support_desk.models import is_staff


def session_token(request: Request) -> Optional[str]:
    cfg = getattr(request.app.state, "cfg", None)
    if cfg is None:
        raise HTTPException(status_code=500, detail="server_config_missing")
    return request.cookies.get(cfg.SESSION_COOKIE_NAME)


def get_optional_user(request: Request) -> Optional[Dict[str, Any]]:
    """Identity behind the session cookie, or None for anonymous requests."""
    sessions = getattr(request.app.state, "sessions", None)
    if sessions is None:
        raise HTTPException(status_code=500, detail="server_sessions_missing")
    return sessions.restore(session_token(request))


def get_current_user(user: Optional[Dict[str, Any]] = Depends(get_optional_user)) -> Dict[str, Any]:
    if user is None:
        raise NotAuthorized()
    return user


def require_staff(user: Optional[Dict[str, Any]] = Depends(get_optional_user)) -> Dict[str, Any]:
    """Staff only: an authenticated user with access level >= 1."""
    if user is None or not is_staff(user.get("accessLevel")):
        raise NotAuthorized()
    return user
