"""Lemonade Legends settings loaded from environment variables."""

from __future__ import annotations

import logging
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

from lemonade_legends.pricing import PricingRamp

logger = logging.getLogger(__name__)

DEV_RELAYS = ["ws://localhost:10547"]
DEFAULT_PUBLISH_RELAYS = [
    "wss://relay.damus.io",
    "wss://nos.lol",
    "wss://relay.nostr.net",
    "wss://relay.primal.net",
    "wss://nostr.mom",
]

# Well-known throwaway key (secret = 1). Only suitable for local demos.
DEMO_PRIVATE_KEY = "0000000000000000000000000000000000000000000000000000000000000001"


class ConfigError(Exception):
    """Raised when required configuration is missing or invalid."""


def split_relays(raw: str | None) -> list[str]:
    """Parse a comma-separated relay list, dropping blanks."""
    if not raw:
        return []
    return [url.strip() for url in raw.split(",") if url.strip()]


class Settings(BaseSettings):
    """Lemonade Legends badge server settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    is_dev: bool = False

    # Nostr
    publish_relays: str | None = None  # Comma-separated relay URLs
    server_private_key: str | None = None  # hex or nsec

    # Lightning Address that receives mint payments (required)
    ln_address: str | None = None
    invoice_ttl_seconds: int = 600  # used when the bolt11 carries no expiry
    payment_retention_seconds: int = 7 * 24 * 3600  # keep expired invoices claimable

    # Award records
    database_path: str = "lemonade-legends.db"

    # Pin the pricing ramp's day 0 (unix seconds); defaults to process start
    opening_timestamp: float | None = None

    # MCP transport
    mcp_transport: Literal["stdio", "http"] = "stdio"
    mcp_host: str = "127.0.0.1"
    mcp_port: int = 8000

    log_level: str = "INFO"

    def relay_urls(self) -> list[str]:
        """Publish relays from PUBLISH_RELAYS, else the dev or public defaults."""
        relays = split_relays(self.publish_relays)
        if relays:
            return relays
        return list(DEV_RELAYS if self.is_dev else DEFAULT_PUBLISH_RELAYS)

    def require_ln_address(self) -> str:
        if not self.ln_address or not self.ln_address.strip():
            raise ConfigError(
                "LN_ADDRESS environment variable is required. "
                "Set your Lightning Address (e.g., user@walletofsatoshi.com)"
            )
        return self.ln_address.strip()

    def private_key(self) -> str:
        """The server signing key, falling back to the demo key with a warning."""
        if self.server_private_key and self.server_private_key.strip():
            return self.server_private_key.strip()
        logger.warning(
            "SERVER_PRIVATE_KEY is not set; signing badges with the public demo key. "
            "Run scripts/generate_nostr_keypair.py to create a real one."
        )
        return DEMO_PRIVATE_KEY

    def pricing_ramp(self) -> PricingRamp:
        if self.opening_timestamp is not None:
            return PricingRamp(opening_timestamp=self.opening_timestamp)
        return PricingRamp()
