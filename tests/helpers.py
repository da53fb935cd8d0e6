from __future__ import annotations

from typing import Dict, List, Optional

from support_desk.billing.stripe_billing import NO_SUBSCRIPTION, StripeBilling
from support_desk.config import Config
from support_desk.db import connect
from support_desk.errors import UpstreamError


class FakeBilling(StripeBilling):
    """StripeBilling with the network calls replaced; caching logic is the real one."""

    def __init__(self, cfg: Config):
        super().__init__(cfg)
        self.customers: Dict[str, str] = {}
        self.deleted: List[str] = []
        self.statuses: Dict[str, str] = {}
        self.lookups = 0
        self.fail_lookups = False
        self.fail_create = False
        self.fail_delete = False

    def create_customer(self, *, email: str, name: str) -> Optional[str]:
        if self.fail_create:
            raise UpstreamError("card_declined")
        cid = f"cus_{len(self.customers) + 1}"
        self.customers[cid] = email
        return cid

    def delete_customer(self, customer_id: str) -> None:
        if self.fail_delete:
            raise UpstreamError("stripe_down")
        self.deleted.append(customer_id)
        self.invalidate(customer_id)

    def _fetch_status(self, customer_id: str) -> str:
        self.lookups += 1
        if self.fail_lookups:
            raise UpstreamError("stripe_down")
        return self.statuses.get(customer_id, NO_SUBSCRIPTION)


def signup_body(email: str = "a@x.com", password: str = "secret1", **overrides) -> dict:
    body = {
        "email": email,
        "firstName": "A",
        "lastName": "B",
        "password": password,
        "confirmPassword": password,
    }
    body.update(overrides)
    return body


def make_staff(db_dsn: str, email: str, level: int = 1) -> None:
    with connect(db_dsn) as conn:
        conn.execute("UPDATE users SET access_level=? WHERE email=?", (level, email))
