"""Async LNURL-pay client for a Lightning Address (LUD-06/16/21)."""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass
from typing import Any

import bolt11
import httpx


# ---------------------------------------------------------------------------
# Exception hierarchy
# ---------------------------------------------------------------------------


class LnurlError(Exception):
    """Base exception for LNURL operations."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class LnurlNotFoundError(LnurlError):
    """404 — the Lightning Address does not exist at the provider."""


class LnurlServerError(LnurlError):
    """5xx — provider-side error (retryable)."""


class LnurlConnectionError(LnurlError):
    """Network/DNS failure (retryable)."""


class LnurlTimeoutError(LnurlError):
    """Request timeout (retryable)."""


class LnurlProtocolError(LnurlError):
    """The provider answered, but with ``status: ERROR`` or a malformed body."""


class LnurlAmountError(LnurlError):
    """Requested amount is outside the provider's sendable range."""


# ---------------------------------------------------------------------------
# Lightning Address parsing
# ---------------------------------------------------------------------------

_ADDRESS_RE = re.compile(r"^[a-z0-9\-_.+]+@[a-z0-9\-.]+\.[a-z0-9\-]+(:\d+)?$")


def parse_lightning_address(address: str) -> tuple[str, str]:
    """Split ``user@domain`` into ``(user, domain)``.

    Raises ValueError on anything that is not a LUD-16 address.
    """
    normalized = address.strip().lower()
    if not _ADDRESS_RE.match(normalized):
        raise ValueError(
            f"Invalid Lightning Address {address!r} (expected user@domain, "
            "e.g. user@walletofsatoshi.com)"
        )
    user, domain = normalized.split("@", 1)
    return user, domain


def lnurlp_url(address: str) -> str:
    """Well-known LNURL-pay endpoint for a Lightning Address (LUD-16)."""
    user, domain = parse_lightning_address(address)
    scheme = "http" if domain.endswith(".onion") else "https"
    return f"{scheme}://{domain}/.well-known/lnurlp/{user}"


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LightningInvoice:
    """A bolt11 invoice obtained from the LNURL-pay callback."""

    bolt11: str
    payment_hash: str
    amount_sats: int
    verify_url: str | None = None
    expires_at: float | None = None  # bolt11 date + expiry (unix seconds)


@dataclass(frozen=True)
class PaymentStatus:
    """Outcome of a LUD-21 verify poll."""

    settled: bool
    preimage: str | None = None


def preimage_matches(preimage: str, payment_hash: str) -> bool:
    """True when sha256(preimage) equals the invoice payment hash."""
    try:
        raw = bytes.fromhex(preimage)
    except ValueError:
        return False
    return hashlib.sha256(raw).hexdigest() == payment_hash.lower()


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class LightningAddressClient:
    """Async client that invoices and verifies payments to one Lightning Address.

    Constructor accepts explicit params — no env-var loading. Pay parameters
    (callback URL and sendable range) are fetched once and cached.
    """

    def __init__(self, ln_address: str) -> None:
        self._ln_address = ln_address.strip()
        self._pay_url = lnurlp_url(self._ln_address)
        self._pay_params: dict[str, Any] | None = None
        self._client = httpx.AsyncClient(
            follow_redirects=True,
            timeout=httpx.Timeout(connect=5.0, read=15.0, write=10.0, pool=5.0),
        )

    @property
    def ln_address(self) -> str:
        return self._ln_address

    # -- internal request dispatcher -----------------------------------------

    async def _request(self, url: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """GET a LNURL endpoint and map errors to the LNURL exception hierarchy."""
        try:
            response = await self._client.get(url, params=params)
        except httpx.ConnectError as exc:
            raise LnurlConnectionError(str(exc)) from exc
        except httpx.TimeoutException as exc:
            raise LnurlTimeoutError(str(exc)) from exc

        if response.status_code >= 400:
            body = response.text
            if response.status_code == 404:
                raise LnurlNotFoundError(body, status_code=404)
            if response.status_code >= 500:
                raise LnurlServerError(body, status_code=response.status_code)
            raise LnurlError(body, status_code=response.status_code)

        try:
            data = response.json()
        except ValueError as exc:
            raise LnurlProtocolError(f"Non-JSON response from {url}") from exc

        if not isinstance(data, dict):
            raise LnurlProtocolError(f"Unexpected response shape from {url}")
        if str(data.get("status", "")).upper() == "ERROR":
            raise LnurlProtocolError(data.get("reason") or "unreported reason")
        return data

    # -- public API methods ---------------------------------------------------

    async def fetch_pay_params(self) -> dict[str, Any]:
        """GET /.well-known/lnurlp/{user} — callback and sendable range (cached)."""
        if self._pay_params is not None:
            return self._pay_params

        data = await self._request(self._pay_url)
        missing = [k for k in ("callback", "minSendable", "maxSendable") if k not in data]
        if missing:
            raise LnurlProtocolError(
                f"LNURL-pay response for {self._ln_address} is missing {', '.join(missing)}"
            )
        self._pay_params = data
        return data

    async def create_invoice(self, amount_sats: int, comment: str | None = None) -> LightningInvoice:
        """Request a bolt11 invoice for ``amount_sats`` from the pay callback.

        The returned invoice is checked against the requested amount.
        """
        if amount_sats <= 0:
            raise ValueError(f"amount_sats must be positive, got {amount_sats}")

        pay_params = await self.fetch_pay_params()
        amount_msat = amount_sats * 1000
        min_sendable = int(pay_params["minSendable"])
        max_sendable = int(pay_params["maxSendable"])
        if not min_sendable <= amount_msat <= max_sendable:
            raise LnurlAmountError(
                f"{amount_sats} sats is outside the sendable range "
                f"{min_sendable // 1000}-{max_sendable // 1000} sats"
            )

        params: dict[str, Any] = {"amount": amount_msat}
        comment_allowed = int(pay_params.get("commentAllowed", 0) or 0)
        if comment and comment_allowed > 0:
            params["comment"] = comment[:comment_allowed]

        data = await self._request(pay_params["callback"], params=params)
        pr = data.get("pr")
        if not pr:
            raise LnurlProtocolError("Invoice response did not include a payment request")

        try:
            decoded = bolt11.decode(pr)
        except Exception as exc:
            raise LnurlProtocolError(f"Provider returned an undecodable invoice: {exc}") from exc

        if decoded.amount_msat is not None and decoded.amount_msat != amount_msat:
            raise LnurlProtocolError(
                f"Invoice amount {decoded.amount_msat} msat does not match "
                f"requested {amount_msat} msat"
            )

        return LightningInvoice(
            bolt11=pr,
            payment_hash=decoded.payment_hash,
            amount_sats=amount_sats,
            verify_url=data.get("verify"),
            expires_at=decoded.expiry_time,
        )

    async def check_payment(self, invoice: LightningInvoice) -> PaymentStatus:
        """GET the LUD-21 verify URL — has the invoice been paid?

        A returned preimage must hash to the invoice's payment hash.
        """
        if not invoice.verify_url:
            raise LnurlProtocolError(
                f"{self._ln_address} does not support payment verification (LUD-21)"
            )

        data = await self._request(invoice.verify_url)
        settled = bool(data.get("settled", False))
        preimage = data.get("preimage") or None
        if settled and preimage and not preimage_matches(preimage, invoice.payment_hash):
            raise LnurlProtocolError(
                f"Preimage does not match payment hash {invoice.payment_hash}"
            )
        return PaymentStatus(settled=settled, preimage=preimage)

    # -- lifecycle ------------------------------------------------------------

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> LightningAddressClient:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()
