"""Badge tools: mint_badge (payment-gated) and stats."""

from __future__ import annotations

import logging
import time
from typing import Any

from lemonade_legends.award import BadgeAward, dedupe_recipients
from lemonade_legends.award_store import AwardStore
from lemonade_legends.badges import BadgePublisher, PublishError, normalize_pubkey
from lemonade_legends.constants import BADGE_NAME, RECENT_AWARDS_SHOWN
from lemonade_legends.lnurl_client import LightningAddressClient, LnurlError
from lemonade_legends.payments import PaymentTracker
from lemonade_legends.pricing import PricingInfo, PricingRamp

logger = logging.getLogger(__name__)

MISSING_IDENTITY_ERROR = "Error: Unable to determine your public key."
ALREADY_AWARDED_REASON = "You already have the badge!"


def priced_capability(ramp: PricingRamp) -> dict[str, Any]:
    """Advertised price sheet entry for ``mint_badge``."""
    return {
        "method": "tools/call",
        "name": "mint_badge",
        "amount": ramp.opening_price,
        "max_amount": ramp.max_price,
        "currency_unit": "sats",
        "description": (
            f'Mint a "{BADGE_NAME}" badge. Price starts at {ramp.opening_price} sats '
            f"and increases by {ramp.daily_increment} sats each day!"
        ),
    }


async def resolve_price(
    store: AwardStore,
    ramp: PricingRamp,
    client_pubkey: str,
    now: float | None = None,
) -> dict[str, Any]:
    """Quote today's price for ``client_pubkey``, rejecting existing holders.

    Rejections still carry the current amount so clients can display it.
    """
    info = ramp.info(now)

    if await store.has_award(client_pubkey):
        return {
            "rejected": True,
            "amount": info.current_price,
            "reason": ALREADY_AWARDED_REASON,
        }

    return {
        "amount": info.current_price,
        "description": f"Day {info.days_elapsed} price: {info.current_price} sats",
        "_meta": {
            "daysElapsed": info.days_elapsed,
            "openingDate": info.opening_date,
        },
    }


async def _request_payment(
    lnurl: LightningAddressClient,
    payments: PaymentTracker,
    recipient: str,
    quote: dict[str, Any],
    now: float,
) -> dict[str, Any]:
    """Issue an invoice for the quoted amount and remember it for this caller."""
    amount = quote["amount"]
    try:
        invoice = await lnurl.create_invoice(amount, comment=f"{BADGE_NAME} badge")
    except LnurlError as e:
        logger.warning("Invoice creation for %s failed: %s", recipient, e)
        return {"success": False, "error": f"Could not create invoice: {e}"}

    pending = payments.add(invoice, recipient, now=now)
    logger.info("Invoice %s issued to %s for %d sats.", pending.payment_id, recipient, amount)

    return {
        "success": True,
        "payment_required": True,
        "payment_id": pending.payment_id,
        "invoice": invoice.bolt11,
        "amount_sats": amount,
        "currency_unit": "sats",
        "description": quote["description"],
        "expires_at": int(pending.expires_at),
        "_meta": quote["_meta"],
        "message": (
            f"{quote['description']}.\n\n"
            f"Pay this invoice: {invoice.bolt11}\n\n"
            f'After paying, call mint_badge with payment_id: "{pending.payment_id}"'
        ),
    }


async def mint_badge_tool(
    store: AwardStore,
    publisher: BadgePublisher,
    lnurl: LightningAddressClient,
    payments: PaymentTracker,
    ramp: PricingRamp,
    client_pubkey: str | None,
    payment_id: str | None = None,
    now: float | None = None,
) -> dict[str, Any]:
    """Mint the Lemonade Legends badge for the calling pubkey.

    Two-step flow:

    1. Without ``payment_id``: quote today's price and return a bolt11
       invoice (``payment_required: True``).
    2. With ``payment_id``: check settlement; once paid, publish the badge
       definition and award events and record the award.

    Returns dict with ``success``; failures carry ``error`` instead.
    A failed publish leaves the payment pending so the caller can retry
    with the same ``payment_id``.
    """
    if now is None:
        now = time.time()

    if not client_pubkey:
        return {"success": False, "error": MISSING_IDENTITY_ERROR}
    try:
        recipient = normalize_pubkey(client_pubkey)
    except ValueError:
        logger.warning("Rejected mint for unparsable pubkey %r.", client_pubkey)
        return {"success": False, "error": MISSING_IDENTITY_ERROR}

    quote = await resolve_price(store, ramp, recipient, now)
    if quote.get("rejected"):
        return {
            "success": False,
            "error": quote["reason"],
            "amount_sats": quote["amount"],
        }

    if not payment_id:
        return await _request_payment(lnurl, payments, recipient, quote, now)

    pending = payments.get(payment_id, recipient, now=now)
    if pending is None:
        return {
            "success": False,
            "error": (
                f"Unknown or expired payment_id {payment_id!r}. "
                "Call mint_badge without a payment_id to get a new invoice."
            ),
        }

    try:
        status = await lnurl.check_payment(pending.invoice)
    except LnurlError as e:
        return {"success": False, "error": f"Payment check failed: {e}"}

    if not status.settled and pending.is_expired(now):
        payments.consume(pending.payment_id)
        logger.info("Invoice %s for %s expired unpaid.", pending.payment_id, recipient)
        return {
            "success": False,
            "error": (
                f"Invoice for payment_id {payment_id!r} expired without being paid. "
                "Call mint_badge without a payment_id to get a new invoice."
            ),
        }

    if not status.settled:
        return {
            "success": True,
            "payment_required": True,
            "status": "pending",
            "payment_id": pending.payment_id,
            "invoice": pending.invoice.bolt11,
            "amount_sats": pending.amount_sats,
            "message": "Invoice not paid yet. Pay it, then call mint_badge again.",
        }

    async with payments.recipient_lock(recipient):
        # Re-check under the lock: another paid invoice may have minted first.
        if await store.has_award(recipient):
            payments.consume(pending.payment_id)
            logger.warning(
                "Paid invoice %s (%d sats) from %s arrived after an earlier award.",
                pending.payment_id, pending.amount_sats, recipient,
            )
            return {"success": False, "error": ALREADY_AWARDED_REASON}

        try:
            definition_id = await publisher.publish_definition()
            logger.info("Badge definition published: %s", definition_id)
            award_event_id = await publisher.publish_award(recipient)
        except PublishError as e:
            logger.error("Mint for %s failed after payment %s: %s", recipient, pending.payment_id, e)
            return {
                "success": False,
                "error": (
                    f"Badge could not be published: {e}. Your payment is safe; "
                    f'call mint_badge again with payment_id "{pending.payment_id}".'
                ),
                "payment_id": pending.payment_id,
            }

        inserted = await store.insert_award(recipient, award_event_id, int(now))
        payments.consume(pending.payment_id)

    if not inserted:
        return {"success": False, "error": ALREADY_AWARDED_REASON}

    logger.info("Badge awarded to %s (award event %s).", recipient, award_event_id)
    return {
        "success": True,
        "award_event_id": award_event_id,
        "recipient_pubkey": recipient,
        "amount_sats": pending.amount_sats,
        "message": (
            f'🎉 You\'ve been awarded the "{BADGE_NAME}" badge!\n\n'
            f"Award Event ID: {award_event_id}\n\n"
            "View your badge at: https://badges.page or https://nostrsigil.com"
        ),
    }


def format_stats(awards: list[BadgeAward], info: PricingInfo) -> str:
    """Human-readable statistics block."""
    lines = [
        "📊 Lemonade Legends Statistics",
        "",
        "🍋 PRICING:",
        f"• Current: {info.current_price} sats",
        f"• Opening: {info.opening_date}",
        f"• Day: {info.days_elapsed}",
        f"• Rate: +{info.daily_increment} sats/day",
        "",
        "📈 STATS:",
        f"• Total: {len(awards)}",
        "",
        "🏆 Recent:",
    ]
    if awards:
        for i, award in enumerate(awards[:RECENT_AWARDS_SHOWN], start=1):
            lines.append(f"{i}. {award.recipient_pubkey[:16]}... ({award.created_date})")
        if len(awards) > RECENT_AWARDS_SHOWN:
            lines.append(f"... and {len(awards) - RECENT_AWARDS_SHOWN} more")
    else:
        lines.append("No badges issued yet.")
    return "\n".join(lines)


async def stats_tool(
    store: AwardStore,
    ramp: PricingRamp,
    now: float | None = None,
) -> dict[str, Any]:
    """Report pricing, award totals, recent recipients and unique pubkeys.

    Read-only — no side effects. ``pubkeys`` lists each recipient once,
    most recent first.
    """
    awards = await store.list_awards()
    info = ramp.info(now)

    return {
        "success": True,
        "pubkeys": dedupe_recipients(awards),
        "total": len(awards),
        "pricing": info.to_dict(),
        "recent": [a.to_dict() for a in awards[:RECENT_AWARDS_SHOWN]],
        "message": format_stats(awards, info),
    }
