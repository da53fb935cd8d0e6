import threading

import pytest

from support_desk.auth.crud import create_user
from support_desk.db import connect
from support_desk.errors import NotAuthorized, NotFound
from support_desk.tickets.crud import add_message, create_ticket, list_user_tickets, view_ticket


@pytest.fixture
def people(db):
    with connect(db) as conn:
        for email, level in (("author@x.com", 0), ("other@x.com", 0), ("staff@x.com", 1)):
            create_user(
                conn,
                email=email,
                first_name=email.split("@")[0].title(),
                last_name="Test",
                password="secret1",
                access_level=level,
            )
    return db


def test_create_ticket_links_author(people):
    with connect(people) as conn:
        t = create_ticket(conn, categories=["billing", "login"], author_email="Author@x.com")
        assert t["author"] == "author@x.com"
        assert t["categories"] == ["billing", "login"]
        assert t["messages"] == []
        assert [x["_id"] for x in list_user_tickets(conn, "author@x.com")] == [t["_id"]]
        assert list_user_tickets(conn, "other@x.com") == []


def test_create_ticket_requires_existing_author(people):
    with pytest.raises(NotFound):
        with connect(people) as conn:
            create_ticket(conn, categories=[], author_email="ghost@x.com")
    with connect(people) as conn:
        assert conn.execute("SELECT COUNT(*) AS n FROM tickets").fetchone()["n"] == 0


def test_view_ticket_author_only(people):
    with connect(people) as conn:
        t = create_ticket(conn, categories=[], author_email="author@x.com")
    with connect(people) as conn:
        with pytest.raises(NotAuthorized):
            view_ticket(conn, t["_id"], "other@x.com")
        with pytest.raises(NotAuthorized):
            view_ticket(conn, t["_id"], "staff@x.com")
        # canonical comparison: normalized string equality
        assert view_ticket(conn, t["_id"], " AUTHOR@x.com ")["_id"] == t["_id"]


def test_view_missing_ticket(people):
    with connect(people) as conn:
        with pytest.raises(NotFound):
            view_ticket(conn, "does-not-exist", "author@x.com")


def test_messages_keep_creation_order_and_expand_authors(people):
    with connect(people) as conn:
        t = create_ticket(conn, categories=["x"], author_email="author@x.com")
    bodies = ["first", "second", "third"]
    ids = []
    for i, body in enumerate(bodies):
        sender = "staff@x.com" if i == 1 else "author@x.com"
        with connect(people) as conn:
            level = 1 if sender == "staff@x.com" else 0
            ids.append(add_message(conn, ticket_id=t["_id"], author_email=sender, body=body, access_level=level)["_id"])

    with connect(people) as conn:
        viewed = view_ticket(conn, t["_id"], "author@x.com")
        listed = list_user_tickets(conn, "author@x.com")[0]

    assert [m["body"] for m in viewed["messages"]] == bodies
    assert [m["_id"] for m in viewed["messages"]] == ids
    assert listed["messages"] == ids
    assert viewed["author"] == {"_id": "author@x.com", "firstName": "Author", "lastName": "Test"}
    assert viewed["messages"][1]["author"]["_id"] == "staff@x.com"
    assert all(m["ticketRef"] == t["_id"] for m in viewed["messages"])


def test_non_author_non_staff_cannot_append(people):
    with connect(people) as conn:
        t = create_ticket(conn, categories=[], author_email="author@x.com")
    with pytest.raises(NotAuthorized):
        with connect(people) as conn:
            add_message(conn, ticket_id=t["_id"], author_email="other@x.com", body="hi", access_level=0)
    with connect(people) as conn:
        assert conn.execute("SELECT COUNT(*) AS n FROM messages").fetchone()["n"] == 0


def test_staff_can_append_to_any_ticket(people):
    with connect(people) as conn:
        t = create_ticket(conn, categories=[], author_email="author@x.com")
        m = add_message(conn, ticket_id=t["_id"], author_email="staff@x.com", body="on it", access_level=1)
    assert m["author"] == "staff@x.com"
    assert m["ticketRef"] == t["_id"]


def test_append_to_missing_ticket(people):
    with pytest.raises(NotFound):
        with connect(people) as conn:
            add_message(conn, ticket_id="nope", author_email="author@x.com", body="hi")


def test_concurrent_appends_all_land_in_distinct_positions(people):
    with connect(people) as conn:
        t = create_ticket(conn, categories=[], author_email="author@x.com")

    senders = [("author@x.com", 0), ("staff@x.com", 1)] * 4
    start = threading.Barrier(len(senders))
    errors = []

    def append(i, email, level):
        start.wait()
        try:
            with connect(people) as conn:
                add_message(conn, ticket_id=t["_id"], author_email=email, body=f"m{i}", access_level=level)
        except Exception as e:  # collected and asserted below
            errors.append(e)

    threads = [threading.Thread(target=append, args=(i, e, lvl)) for i, (e, lvl) in enumerate(senders)]
    for th in threads:
        th.start()
    for th in threads:
        th.join()

    assert errors == []
    with connect(people) as conn:
        rows = conn.execute(
            "SELECT position, body FROM messages WHERE ticket_id=? ORDER BY position", (t["_id"],)
        ).fetchall()
    assert [r["position"] for r in rows] == list(range(len(senders)))
    assert sorted(r["body"] for r in rows) == sorted(f"m{i}" for i in range(len(senders)))


def test_negative_access_level_is_not_staff(people):
    with connect(people) as conn:
        t = create_ticket(conn, categories=[], author_email="author@x.com")
    with pytest.raises(NotAuthorized):
        with connect(people) as conn:
            add_message(conn, ticket_id=t["_id"], author_email="other@x.com", body="hi", access_level=-1)
