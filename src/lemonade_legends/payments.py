"""Pending-invoice tracking for paid mints.

Each invoice is bound to the pubkey that requested it and to the price
quoted at the time. An invoice stops being payable at its bolt11 expiry
(or ``ttl_secs`` after issue when the provider gave none), but the entry
is retained for ``retain_secs`` beyond that so a payment settled just
before expiry, or a mint whose publish failed, can still be claimed.
Entries are consumed exactly once: after the badge has been recorded, or
after the provider confirms an expired invoice was never paid.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from lemonade_legends.lnurl_client import LightningInvoice

logger = logging.getLogger(__name__)

DEFAULT_RETAIN_SECS = 7 * 24 * 3600


@dataclass(frozen=True)
class PendingPayment:
    """An issued invoice awaiting settlement."""

    invoice: LightningInvoice
    recipient_pubkey: str
    expires_at: float

    @property
    def payment_id(self) -> str:
        return self.invoice.payment_hash

    @property
    def amount_sats(self) -> int:
        return self.invoice.amount_sats

    def is_expired(self, now: float | None = None) -> bool:
        """True once the invoice can no longer be paid."""
        return (time.time() if now is None else now) >= self.expires_at


class PaymentTracker:
    """In-memory store of pending invoices plus per-pubkey mint locks.

    - ``add()`` records an invoice for a pubkey.
    - ``get()`` returns it only to the pubkey it was issued to, expired or
      not; the caller decides after checking settlement.
    - ``consume()`` removes it once it is settled and recorded, or known unpaid.
    - ``recipient_lock()`` serialises mints for one recipient.
    """

    def __init__(self, ttl_secs: int = 600, retain_secs: int = DEFAULT_RETAIN_SECS) -> None:
        self._ttl = ttl_secs
        self._retain = retain_secs
        self._pending: dict[str, PendingPayment] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    @asynccontextmanager
    async def recipient_lock(self, recipient_pubkey: str) -> AsyncIterator[None]:
        """Hold the per-recipient lock; it is dropped when nobody holds or awaits it."""
        lock = self._locks.get(recipient_pubkey)
        if lock is None:
            lock = self._locks[recipient_pubkey] = asyncio.Lock()
        self._lock_users[recipient_pubkey] = self._lock_users.get(recipient_pubkey, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[recipient_pubkey] -= 1
            if self._lock_users[recipient_pubkey] == 0:
                del self._lock_users[recipient_pubkey]
                self._locks.pop(recipient_pubkey, None)

    @property
    def lock_count(self) -> int:
        return len(self._locks)

    def _cleanup(self, now: float) -> None:
        """Drop entries whose retention window has passed."""
        stale = [
            pid for pid, p in self._pending.items()
            if now >= p.expires_at + self._retain
        ]
        for pid in stale:
            logger.warning(
                "Forgetting unclaimed invoice %s for %s (%d sats).",
                pid, self._pending[pid].recipient_pubkey, self._pending[pid].amount_sats,
            )
            del self._pending[pid]

    def add(
        self, invoice: LightningInvoice, recipient_pubkey: str, now: float | None = None
    ) -> PendingPayment:
        """Record a freshly issued invoice."""
        if now is None:
            now = time.time()
        self._cleanup(now)
        if invoice.expires_at is not None:
            expires_at = invoice.expires_at
        else:
            expires_at = now + self._ttl
        pending = PendingPayment(
            invoice=invoice,
            recipient_pubkey=recipient_pubkey,
            expires_at=expires_at,
        )
        self._pending[pending.payment_id] = pending
        return pending

    def get(
        self, payment_id: str, recipient_pubkey: str, now: float | None = None
    ) -> PendingPayment | None:
        """Look up an invoice issued to ``recipient_pubkey``, including expired ones."""
        if now is None:
            now = time.time()
        self._cleanup(now)
        pending = self._pending.get(payment_id)
        if pending is None:
            return None
        if pending.recipient_pubkey != recipient_pubkey:
            logger.warning(
                "Invoice %s presented by %s but issued to %s.",
                payment_id, recipient_pubkey, pending.recipient_pubkey,
            )
            return None
        return pending

    def consume(self, payment_id: str) -> bool:
        """Remove an invoice. Returns False if unknown."""
        return self._pending.pop(payment_id, None) is not None

    @property
    def pending_count(self) -> int:
        return len(self._pending)
