from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from support_desk.auth import get_current_user, require_staff
from support_desk.auth.crud import bootstrap_admin_if_needed, list_users
from support_desk.auth.deps import session_token
from support_desk.auth.sessions import SessionManager
from support_desk.billing.stripe_billing import StripeBilling
from support_desk.config import Config, load_config
from support_desk.db import connect, init_db
from support_desk.errors import SupportDeskError
from support_desk.tickets.crud import add_message, create_ticket, view_ticket


def _debug(msg: str) -> None:
    print(f"[api] {msg}")


# -----------------------------
# Request bodies
# -----------------------------


class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class SignupRequest(BaseModel):
    """Self-serve registration. Field rules live in auth/validation.py."""

    email: Optional[str] = None
    firstName: Optional[str] = None
    lastName: Optional[str] = None
    password: Optional[str] = None
    confirmPassword: Optional[str] = None


class TicketCreateRequest(BaseModel):
    categories: List[str] = Field(default_factory=list)


class MessageCreateRequest(BaseModel):
    ticketId: str = Field(..., min_length=1)
    messageBody: str = Field(..., min_length=1)


# -----------------------------
# Cookies
# -----------------------------


def _set_session_cookie(response: Response, *, token: str, cfg: Config) -> None:
    samesite = str(cfg.SESSION_COOKIE_SAMESITE or "lax").lower()
    response.set_cookie(
        key=cfg.SESSION_COOKIE_NAME,
        value=str(token),
        httponly=True,
        samesite=samesite,
        # Browsers require Secure when SameSite=None
        secure=bool(cfg.USE_SECURE_COOKIES) or samesite == "none",
        max_age=int(cfg.SESSION_TTL_MINUTES) * 60,
        path=cfg.SESSION_COOKIE_PATH,
    )


def _clear_session_cookie(response: Response, cfg: Config) -> None:
    response.delete_cookie(key=cfg.SESSION_COOKIE_NAME, path=cfg.SESSION_COOKIE_PATH)


def _sessions(request: Request) -> SessionManager:
    return request.app.state.sessions


def _cfg(request: Request) -> Config:
    return request.app.state.cfg


# -----------------------------
# Auth + tickets (/api/auth)
# -----------------------------

auth_router = APIRouter(prefix="/api/auth", tags=["auth"])


@auth_router.post("/login")
def auth_login(payload: LoginRequest, request: Request, response: Response) -> str:
    token, user = _sessions(request).login(payload.email or "", payload.password or "")
    _set_session_cookie(response, token=token, cfg=_cfg(request))
    _debug(f"login: {user['_id']}")
    return "OK"


@auth_router.post("/signup")
def auth_signup(payload: SignupRequest, request: Request, response: Response) -> str:
    token, _user = _sessions(request).signup(payload.model_dump())
    _set_session_cookie(response, token=token, cfg=_cfg(request))
    return "OK"


@auth_router.get("/get")
def auth_get(request: Request) -> Optional[Dict[str, Any]]:
    """Current identity (with expanded tickets), or null when not logged in."""
    return _sessions(request).restore(session_token(request), expand_tickets=True)


@auth_router.post("/logout")
def auth_logout(
    request: Request,
    response: Response,
    user: Dict[str, Any] = Depends(get_current_user),
) -> str:
    _sessions(request).logout(session_token(request))
    _clear_session_cookie(response, _cfg(request))
    _debug(f"logout: {user['_id']}")
    return "OK"


@auth_router.post("/ticket/new")
def ticket_new(
    payload: TicketCreateRequest,
    request: Request,
    user: Dict[str, Any] = Depends(get_current_user),
) -> Dict[str, Any]:
    with connect(_cfg(request).DB_DSN) as conn:
        return create_ticket(conn, categories=payload.categories, author_email=user["_id"])


@auth_router.get("/ticket/view/{ticket_id}")
def ticket_view(
    ticket_id: str,
    request: Request,
    user: Dict[str, Any] = Depends(get_current_user),
) -> Dict[str, Any]:
    with connect(_cfg(request).DB_DSN) as conn:
        return view_ticket(conn, ticket_id, user["_id"])


@auth_router.post("/ticket/message/new")
def ticket_message_new(
    payload: MessageCreateRequest,
    request: Request,
    user: Dict[str, Any] = Depends(get_current_user),
) -> Dict[str, Any]:
    with connect(_cfg(request).DB_DSN) as conn:
        return add_message(
            conn,
            ticket_id=payload.ticketId,
            author_email=user["_id"],
            body=payload.messageBody,
            access_level=int(user.get("accessLevel") or 0),
        )


# -----------------------------
# Admin (/api/admin)
# -----------------------------

admin_router = APIRouter(prefix="/api/admin", tags=["admin"])


@admin_router.get("/getUsers")
def admin_get_users(
    request: Request,
    _staff: Dict[str, Any] = Depends(require_staff),
) -> List[Dict[str, Any]]:
    with connect(_cfg(request).DB_DSN) as conn:
        return list_users(conn)


# -----------------------------
# Billing (/api/billing)
# -----------------------------

billing_router = APIRouter(prefix="/api/billing", tags=["billing"])


@billing_router.post("/webhook")
async def billing_webhook(
    request: Request,
    stripe_signature: str | None = Header(default=None, alias="Stripe-Signature"),
) -> Dict[str, Any]:
    """Stripe webhook: drops the cached subscription status of the affected customer."""
    payload_bytes = await request.body()
    billing: StripeBilling = request.app.state.billing
    try:
        event_id, customer_id = billing.process_webhook(payload_bytes=payload_bytes, signature=stripe_signature)
    except RuntimeError as e:
        # Stripe not configured.
        raise HTTPException(status_code=501, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"ok": True, "event_id": event_id, "invalidated": customer_id}


# -----------------------------
# Errors
# -----------------------------


async def _support_desk_error(request: Request, exc: SupportDeskError) -> JSONResponse:
    if exc.status_code >= 500:
        _debug(f"{request.method} {request.url.path} failed: {type(exc).__name__}: {exc}")
    return JSONResponse(status_code=exc.status_code, content=exc.body())


async def _request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Same shape as signup validation: {"errors": [{"param", "msg"}]}
    errors = []
    for e in exc.errors():
        loc = [str(p) for p in e.get("loc", ()) if p != "body"]
        errors.append({"param": ".".join(loc) or "body", "msg": str(e.get("msg", "invalid"))})
    return JSONResponse(status_code=422, content={"errors": errors})


# -----------------------------
# App factory
# -----------------------------


def create_app(cfg: Config | None = None, billing: StripeBilling | None = None) -> FastAPI:
    """Build the API.

    The session manager and billing client are created once here and shared with the
    handlers through `app.state`.
    """
    cfg = cfg or load_config()
    billing = billing or StripeBilling(cfg)

    app = FastAPI(title="Support Desk", version="0.1.0")
    app.state.cfg = cfg
    app.state.billing = billing
    app.state.sessions = SessionManager(cfg, billing)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[cfg.CORS_ALLOW_ORIGIN],
        allow_credentials=True,
        allow_methods=["GET", "PUT", "POST", "DELETE"],
        allow_headers=["Content-Type"],
    )

    app.add_exception_handler(SupportDeskError, _support_desk_error)
    app.add_exception_handler(RequestValidationError, _request_validation_error)

    @app.get("/health")
    def health() -> Dict[str, Any]:
        return {"status": "ok"}

    app.include_router(auth_router)
    app.include_router(admin_router)
    app.include_router(billing_router)

    # Ensure schema exists.
    init_db(cfg.DB_DSN)
    app.state.sessions.purge_expired()

    # Bootstrap first staff user if needed (only when users table is empty)
    boot = bootstrap_admin_if_needed(cfg)
    if boot:
        _debug(f"Bootstrapped initial staff user: email={boot.get('_id')} accessLevel={boot.get('accessLevel')}")
    if not billing.enabled:
        _debug("STRIPE_SECRET_KEY not set: billing disabled, subscriptions report 'None'")

    return app
