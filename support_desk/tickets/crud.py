from __future__ import annotations

import json
import uuid
from typing import Any, Dict, List, Optional, Sequence

from support_desk.auth.crud import get_user_by_email, public_author
from support_desk.errors import NotAuthorized, NotFound
from support_desk.models import is_staff, normalize_email, same_email
from support_desk.util.time import utcnow_iso


def _new_id() -> str:
    return uuid.uuid4().hex


def _message_ids(conn: Any, ticket_id: str) -> List[str]:
    rows = conn.execute(
        "SELECT message_id FROM messages WHERE ticket_id=? ORDER BY position",
        (ticket_id,),
    ).fetchall()
    return [str(r["message_id"]) for r in rows]


def public_ticket(conn: Any, row: Any) -> Dict[str, Any]:
    """A ticket with its message ids (not expanded)."""
    d = dict(row)
    return {
        "_id": d["ticket_id"],
        "categories": json.loads(d.get("categories_json") or "[]"),
        "author": d["author_email"],
        "messages": _message_ids(conn, d["ticket_id"]),
        "createdAt": d.get("created_at"),
    }


def public_message(row: Any) -> Dict[str, Any]:
    d = dict(row)
    return {
        "_id": d["message_id"],
        "ticketRef": d["ticket_id"],
        "author": d["author_email"],
        "body": d["body"],
        "createdAt": d.get("created_at"),
    }


def get_ticket_row(conn: Any, ticket_id: str) -> Optional[Any]:
    tid = (ticket_id or "").strip()
    if not tid:
        return None
    return conn.execute("SELECT * FROM tickets WHERE ticket_id=?", (tid,)).fetchone()


def create_ticket(conn: Any, *, categories: Sequence[str], author_email: str) -> Dict[str, Any]:
    """Open a ticket for an existing user.

    The author's ticket list is read back from `tickets.author_email`, so this single
    insert is the whole write.
    """
    author = get_user_by_email(conn, author_email)
    if author is None:
        raise NotFound("author_not_found")

    ticket_id = _new_id()
    conn.execute(
        "INSERT INTO tickets (ticket_id, author_email, categories_json, created_at) VALUES (?,?,?,?)",
        (ticket_id, str(author["email"]), json.dumps([str(c) for c in categories]), utcnow_iso()),
    )
    row = get_ticket_row(conn, ticket_id)
    assert row is not None
    return public_ticket(conn, row)


def list_user_tickets(conn: Any, email: str) -> List[Dict[str, Any]]:
    rows = conn.execute(
        "SELECT * FROM tickets WHERE author_email=? ORDER BY created_at, ticket_id",
        (normalize_email(email),),
    ).fetchall()
    return [public_ticket(conn, r) for r in rows]


def view_ticket(conn: Any, ticket_id: str, requester_email: str) -> Dict[str, Any]:
    """Return a ticket with author and messages (and their authors) expanded.

    Only the ticket's author may view it.
    """
    row = get_ticket_row(conn, ticket_id)
    if row is None:
        raise NotFound("ticket_not_found")
    if not same_email(row["author_email"], requester_email):
        raise NotAuthorized()

    ticket = public_ticket(conn, row)
    authors: Dict[str, Any] = {}

    def _author(email: str) -> Dict[str, Any]:
        if email not in authors:
            u = get_user_by_email(conn, email)
            authors[email] = public_author(u) if u is not None else {"_id": email}
        return authors[email]

    ticket["author"] = _author(str(row["author_email"]))
    msg_rows = conn.execute(
        "SELECT * FROM messages WHERE ticket_id=? ORDER BY position",
        (ticket["_id"],),
    ).fetchall()
    messages = []
    for r in msg_rows:
        m = public_message(r)
        m["author"] = _author(str(r["author_email"]))
        messages.append(m)
    ticket["messages"] = messages
    return ticket


def _lock_for_append(conn: Any, ticket_id: str) -> None:
    if getattr(conn, "dialect", "sqlite") == "postgres":
        conn.execute("SELECT ticket_id FROM tickets WHERE ticket_id=? FOR UPDATE", ((ticket_id or "").strip(),))
        return
    # SQLite has no row locks; take the database write lock unless this transaction already holds it.
    if not conn.in_transaction:
        conn.execute("BEGIN IMMEDIATE")


def add_message(
    conn: Any,
    *,
    ticket_id: str,
    author_email: str,
    body: str,
    access_level: int = 0,
) -> Dict[str, Any]:
    """Append a message to a ticket's thread.

    Allowed for the ticket's author and for staff (access level >= 1). The ticket is
    write-locked before the next position is read, so concurrent appends to one ticket
    queue up instead of picking the same slot.
    """
    _lock_for_append(conn, ticket_id)
    row = get_ticket_row(conn, ticket_id)
    if row is None:
        raise NotFound("ticket_not_found")
    if not (same_email(row["author_email"], author_email) or is_staff(access_level)):
        raise NotAuthorized()

    author = get_user_by_email(conn, author_email)
    if author is None:
        raise NotFound("author_not_found")

    tid = str(row["ticket_id"])
    nxt = conn.execute(
        "SELECT COALESCE(MAX(position), -1) + 1 AS next_pos FROM messages WHERE ticket_id=?",
        (tid,),
    ).fetchone()["next_pos"]

    message_id = _new_id()
    conn.execute(
        """
        INSERT INTO messages (message_id, ticket_id, author_email, body, position, created_at)
        VALUES (?,?,?,?,?,?)
        """,
        (message_id, tid, str(author["email"]), body, int(nxt), utcnow_iso()),
    )
    msg = conn.execute("SELECT * FROM messages WHERE message_id=?", (message_id,)).fetchone()
    return public_message(msg)
