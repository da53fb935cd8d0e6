import dataclasses
import hashlib
import hmac
import json
import time

import pytest

from support_desk.billing.stripe_billing import NO_SUBSCRIPTION, StripeBilling


def _signed(payload: bytes, secret: str) -> str:
    ts = int(time.time())
    sig = hmac.new(secret.encode(), f"{ts}.".encode() + payload, hashlib.sha256).hexdigest()
    return f"t={ts},v1={sig}"


def test_disabled_billing_is_inert(cfg):
    b = StripeBilling(dataclasses.replace(cfg, STRIPE_SECRET_KEY=None))
    assert not b.enabled
    assert b.create_customer(email="a@x.com", name="A B") is None
    assert b.subscription_status("cus_1") == NO_SUBSCRIPTION
    b.delete_customer("cus_1")


def test_status_is_cached_until_invalidated(billing):
    billing.statuses["cus_1"] = "active"
    assert billing.subscription_status("cus_1") == "active"
    billing.statuses["cus_1"] = NO_SUBSCRIPTION
    assert billing.subscription_status("cus_1") == "active"
    assert billing.lookups == 1

    billing.invalidate("cus_1")
    assert billing.subscription_status("cus_1") == NO_SUBSCRIPTION
    assert billing.lookups == 2


def test_no_customer_means_no_lookup(billing):
    assert billing.subscription_status(None) == NO_SUBSCRIPTION
    assert billing.subscription_status("  ") == NO_SUBSCRIPTION
    assert billing.lookups == 0


def test_cache_expires(cfg):
    from tests.helpers import FakeBilling

    b = FakeBilling(dataclasses.replace(cfg, SUBSCRIPTION_CACHE_SECONDS=0))
    b.subscription_status("cus_1")
    b.subscription_status("cus_1")
    assert b.lookups == 2


def test_webhook_requires_configuration(billing):
    with pytest.raises(RuntimeError):
        billing.process_webhook(payload_bytes=b"{}", signature="t=1,v1=x")


def test_webhook_rejects_bad_signature(cfg):
    b = StripeBilling(dataclasses.replace(cfg, STRIPE_WEBHOOK_SECRET="whsec_test"))
    with pytest.raises(ValueError):
        b.process_webhook(payload_bytes=b"{}", signature=None)
    with pytest.raises(ValueError):
        b.process_webhook(payload_bytes=b"{}", signature="garbage")


def test_subscription_webhook_invalidates_customer(cfg):
    from tests.helpers import FakeBilling

    b = FakeBilling(dataclasses.replace(cfg, STRIPE_WEBHOOK_SECRET="whsec_test"))
    b.statuses["cus_9"] = "active"
    b.subscription_status("cus_9")
    assert b.last_known_status("cus_9") == "active"

    payload = json.dumps(
        {
            "id": "evt_1",
            "object": "event",
            "type": "customer.subscription.deleted",
            "data": {"object": {"id": "sub_1", "object": "subscription", "customer": "cus_9"}},
        }
    ).encode()
    event_id, customer_id = b.process_webhook(payload_bytes=payload, signature=_signed(payload, "whsec_test"))
    assert (event_id, customer_id) == ("evt_1", "cus_9")
    assert b.last_known_status("cus_9") is None


def test_unrelated_webhook_is_ignored(cfg):
    b = StripeBilling(dataclasses.replace(cfg, STRIPE_WEBHOOK_SECRET="whsec_test"))
    payload = json.dumps(
        {"id": "evt_2", "object": "event", "type": "invoice.paid", "data": {"object": {"id": "in_1", "object": "invoice"}}}
    ).encode()
    assert b.process_webhook(payload_bytes=payload, signature=_signed(payload, "whsec_test")) == ("evt_2", None)


def test_lookup_overlapping_webhook_is_not_cached(cfg):
    from tests.helpers import FakeBilling

    class WebhookMidFetch(FakeBilling):
        def _fetch_status(self, customer_id):
            status = super()._fetch_status(customer_id)
            # the subscription changes and its webhook arrives before this lookup returns
            self.statuses[customer_id] = NO_SUBSCRIPTION
            self.invalidate(customer_id)
            return status

    b = WebhookMidFetch(cfg)
    b.statuses["cus_1"] = "active"
    assert b.subscription_status("cus_1") == "active"
    assert b.last_known_status("cus_1") is None

    assert b.subscription_status("cus_1") == NO_SUBSCRIPTION
    assert b.lookups == 2


def test_cache_evicts_oldest_customers(cfg):
    from tests.helpers import FakeBilling

    b = FakeBilling(dataclasses.replace(cfg, SUBSCRIPTION_CACHE_MAX_ENTRIES=2))
    for cid in ("cus_1", "cus_2", "cus_3"):
        b.subscription_status(cid)
    assert b.last_known_status("cus_1") is None
    assert b.last_known_status("cus_2") == NO_SUBSCRIPTION
    assert b.last_known_status("cus_3") == NO_SUBSCRIPTION
