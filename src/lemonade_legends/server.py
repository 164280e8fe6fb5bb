"""Lemonade Legends — FastMCP server minting a NIP-58 badge for a Lightning payment.

Price: 21 sats on day 0, increasing by 21 sats each day.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from dataclasses import dataclass
from typing import Any

from fastmcp import Context, FastMCP
from fastmcp.exceptions import ToolError

from lemonade_legends.award_store import AwardStore
from lemonade_legends.badges import BadgePublisher
from lemonade_legends.config import Settings
from lemonade_legends.constants import BADGE_NAME, DAILY_INCREMENT, OPENING_PRICE
from lemonade_legends.lnurl_client import LightningAddressClient
from lemonade_legends.payments import PaymentTracker
from lemonade_legends.pricing import PricingRamp
from lemonade_legends.stores import SqliteAwardStore
from lemonade_legends.tools.badges import mint_badge_tool, priced_capability, stats_tool

logger = logging.getLogger(__name__)

mcp = FastMCP("lemonade-legends")


# ---------------------------------------------------------------------------
# Runtime singletons
# ---------------------------------------------------------------------------


@dataclass
class Runtime:
    """Objects built at startup and shared by every tool call."""

    store: AwardStore
    publisher: BadgePublisher
    lnurl: LightningAddressClient
    payments: PaymentTracker
    ramp: PricingRamp


_settings: Settings | None = None
_runtime: Runtime | None = None


def get_settings() -> Settings:
    """Get or create the Settings singleton."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def _get_runtime() -> Runtime:
    if _runtime is None:
        raise ToolError("Server is still starting up; try again shortly.")
    return _runtime


def _client_pubkey(ctx: Context) -> str | None:
    """Caller pubkey injected by the transport into ``_meta.clientPubkey``."""
    try:
        meta = ctx.request_context.meta
    except (AttributeError, LookupError, ValueError):
        return None
    if meta is None:
        return None
    value = getattr(meta, "clientPubkey", None)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _tool_result(result: dict[str, Any]) -> dict[str, Any]:
    """Return a tool dict, or raise ToolError so the response is error-flagged."""
    if "error" in result:
        raise ToolError(result["error"])
    return result


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


async def mint_badge(ctx: Context, payment_id: str | None = None) -> dict[str, Any]:
    """Mint the badge for the calling pubkey (invoice first, then pay and retry)."""
    rt = _get_runtime()
    result = await mint_badge_tool(
        rt.store, rt.publisher, rt.lnurl, rt.payments, rt.ramp,
        client_pubkey=_client_pubkey(ctx),
        payment_id=payment_id,
    )
    return _tool_result(result)


async def stats() -> dict[str, Any]:
    """Statistics about issued badges and current pricing."""
    rt = _get_runtime()
    return _tool_result(await stats_tool(rt.store, rt.ramp))


mcp.tool(
    mint_badge,
    description=(
        f'Mint a "{BADGE_NAME}" badge for your Nostr profile. Price starts at '
        f"{OPENING_PRICE} sats and increases by {DAILY_INCREMENT} sats daily. "
        "Call without payment_id to receive an invoice; after paying, call again "
        "with the returned payment_id."
    ),
)
mcp.tool(stats, description="Get statistics about issued badges and current pricing")


# ---------------------------------------------------------------------------
# Startup / shutdown
# ---------------------------------------------------------------------------


async def startup(settings: Settings) -> Runtime:
    """Build clients, connect to relays, and publish the badge definition.

    Raises on any misconfiguration or connection failure.
    """
    global _runtime

    ln_address = settings.require_ln_address()
    lnurl = LightningAddressClient(ln_address)
    publisher = BadgePublisher(settings.private_key(), settings.relay_urls())
    ramp = settings.pricing_ramp()

    store: SqliteAwardStore | None = None
    try:
        await publisher.connect()
        store = SqliteAwardStore(settings.database_path)
        definition_id = await publisher.publish_definition()
    except Exception:
        await publisher.disconnect()
        await lnurl.close()
        if store is not None:
            await store.close()
        raise

    capability = priced_capability(ramp)
    logger.info(
        "Server started: pubkey=%s badge_def=%s ln_address=%s price=%d-%d sats",
        publisher.pubkey_hex, definition_id, ln_address,
        capability["amount"], capability["max_amount"],
    )

    _runtime = Runtime(
        store=store,
        publisher=publisher,
        lnurl=lnurl,
        payments=PaymentTracker(
            ttl_secs=settings.invoice_ttl_seconds,
            retain_secs=settings.payment_retention_seconds,
        ),
        ramp=ramp,
    )
    return _runtime


async def shutdown(runtime: Runtime) -> None:
    """Disconnect relays and close the HTTP client and award store."""
    global _runtime
    logger.info("Shutting down...")
    try:
        await runtime.publisher.disconnect()
    finally:
        await runtime.lnurl.close()
        await runtime.store.close()
        _runtime = None


async def _serve(settings: Settings) -> None:
    try:
        runtime = await startup(settings)
    except Exception as e:
        logger.error("Startup failed: %s", e)
        raise SystemExit(1) from e

    try:
        if settings.mcp_transport == "http":
            await mcp.run_async(transport="http", host=settings.mcp_host, port=settings.mcp_port)
        else:
            await mcp.run_async(transport="stdio")
    finally:
        await shutdown(runtime)


def main() -> None:
    """Console entry point."""
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    try:
        asyncio.run(_serve(settings))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
