"""Lemonade Legends — a NIP-58 badge minted for a daily-escalating Lightning price."""

__version__ = "1.0.0"

from lemonade_legends.award import BadgeAward, dedupe_recipients
from lemonade_legends.award_store import AwardStore
from lemonade_legends.badges import BadgePublisher, PublishError, normalize_pubkey
from lemonade_legends.config import ConfigError, Settings
from lemonade_legends.lnurl_client import LightningAddressClient, LnurlError
from lemonade_legends.payments import PaymentTracker, PendingPayment
from lemonade_legends.pricing import PricingInfo, PricingRamp
from lemonade_legends.stores import SqliteAwardStore

__all__ = [
    "AwardStore",
    "BadgeAward",
    "BadgePublisher",
    "ConfigError",
    "LightningAddressClient",
    "LnurlError",
    "PaymentTracker",
    "PendingPayment",
    "PricingInfo",
    "PricingRamp",
    "PublishError",
    "Settings",
    "SqliteAwardStore",
    "dedupe_recipients",
    "normalize_pubkey",
]
