from __future__ import annotations

import threading
import time
from typing import Dict, Optional, Tuple

import stripe

from support_desk.config import Config
from support_desk.errors import UpstreamError

NO_SUBSCRIPTION = "None"

# Subscription states that count as a live subscription.
_LIVE_STATUSES = ("active", "trialing")


def _debug(msg: str) -> None:
    print(f"[billing] {msg}")


def _get_stripe(cfg: Config):
    if not cfg.STRIPE_SECRET_KEY:
        raise RuntimeError("stripe_secret_key_missing")

    stripe.api_key = cfg.STRIPE_SECRET_KEY
    return stripe


class StripeBilling:
    """Billing collaborator: Stripe customers + subscription status.

    Subscription lookups sit on the request hot path (every session restore), so results
    are cached per customer for SUBSCRIPTION_CACHE_SECONDS, up to
    SUBSCRIPTION_CACHE_MAX_ENTRIES customers. Webhooks for a customer drop that customer's
    entry, and a lookup that overlapped an invalidation is not cached.
    """

    def __init__(self, cfg: Config):
        self.cfg = cfg
        self._cache: Dict[str, Tuple[str, float]] = {}
        self._lock = threading.Lock()
        self._generation = 0

    @property
    def enabled(self) -> bool:
        return bool(self.cfg.STRIPE_SECRET_KEY)

    # -----------------
    # Customers
    # -----------------

    def create_customer(self, *, email: str, name: str) -> Optional[str]:
        """Create a Stripe customer and return its id (None when billing is disabled)."""
        if not self.enabled:
            return None
        client = _get_stripe(self.cfg)
        try:
            customer = client.Customer.create(email=email, name=name)
        except stripe.StripeError as e:
            _debug(f"create_customer failed for {email}: {e}")
            raise UpstreamError(str(e)) from e
        return str(customer.id)

    def delete_customer(self, customer_id: str) -> None:
        if not self.enabled or not customer_id:
            return
        client = _get_stripe(self.cfg)
        try:
            client.Customer.delete(customer_id)
        except stripe.StripeError as e:
            raise UpstreamError(str(e)) from e
        self.invalidate(customer_id)

    # -----------------
    # Subscriptions
    # -----------------

    def subscription_status(self, customer_id: str | None) -> str:
        """Return the live subscription status ("active"/"trialing") or "None"."""
        cid = (customer_id or "").strip()
        if not cid or not self.enabled:
            return NO_SUBSCRIPTION

        now = time.monotonic()
        with self._lock:
            hit = self._cache.get(cid)
            generation = self._generation
        if hit is not None and now - hit[1] < self.cfg.SUBSCRIPTION_CACHE_SECONDS:
            return hit[0]

        status = self._fetch_status(cid)
        with self._lock:
            # An invalidation that landed mid-fetch may mean `status` is already stale.
            if self._generation == generation:
                self._cache[cid] = (status, now)
                self._prune_locked()
        return status

    def last_known_status(self, customer_id: str | None) -> Optional[str]:
        """Cached status regardless of age, or None if never looked up."""
        with self._lock:
            hit = self._cache.get((customer_id or "").strip())
        return hit[0] if hit is not None else None

    def invalidate(self, customer_id: str) -> None:
        with self._lock:
            self._generation += 1
            self._cache.pop((customer_id or "").strip(), None)

    def _prune_locked(self) -> None:
        limit = max(1, int(self.cfg.SUBSCRIPTION_CACHE_MAX_ENTRIES))
        if len(self._cache) <= limit:
            return
        oldest = sorted(self._cache, key=lambda k: self._cache[k][1])
        for cid in oldest[: len(self._cache) - limit]:
            del self._cache[cid]

    def _fetch_status(self, customer_id: str) -> str:
        client = _get_stripe(self.cfg)
        try:
            subs = client.Subscription.list(customer=customer_id, status="all", limit=10)
        except stripe.StripeError as e:
            raise UpstreamError(str(e)) from e
        for sub in subs.data:
            status = str(getattr(sub, "status", "") or "")
            if status in _LIVE_STATUSES:
                return status
        return NO_SUBSCRIPTION

    # -----------------
    # Webhooks
    # -----------------

    def process_webhook(self, *, payload_bytes: bytes, signature: str | None) -> Tuple[str, Optional[str]]:
        """Verify a Stripe webhook and invalidate the affected customer's cached status.

        Returns: (event_id, invalidated_customer_id)

        Raises RuntimeError when webhooks are not configured and ValueError for a bad
        payload or signature.
        """
        client = _get_stripe(self.cfg)
        if not self.cfg.STRIPE_WEBHOOK_SECRET:
            raise RuntimeError("stripe_webhook_secret_missing")
        if not signature:
            raise ValueError("stripe_signature_missing")

        try:
            event = client.Webhook.construct_event(payload_bytes, signature, self.cfg.STRIPE_WEBHOOK_SECRET)
        except stripe.SignatureVerificationError as e:
            raise ValueError("stripe_signature_invalid") from e

        event_id = str(event.id or "")
        event_type = str(event.type or "")
        if not (event_type.startswith("customer.subscription.") or event_type.startswith("customer.deleted")):
            return event_id, None

        obj = event.data.object
        # subscription events carry `customer`; customer events are the customer itself
        customer_id = getattr(obj, "customer", None) if event_type.startswith("customer.subscription.") else getattr(obj, "id", None)
        if not customer_id:
            return event_id, None

        self.invalidate(str(customer_id))
        _debug(f"{event_type}: invalidated subscription cache for {customer_id}")
        return event_id, str(customer_id)
