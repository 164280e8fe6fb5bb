"""NIP-58 badge events — templates, signing and relay publishing via nostr-sdk.

Templates are plain data (kind, tags, content, created_at) so they can be
built and inspected without keys. ``BadgePublisher`` turns them into
signed events and sends them to the publish relays.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field

from nostr_sdk import (
    Client,
    Event,
    EventBuilder,
    Keys,
    Kind,
    NostrSigner,
    PublicKey,
    RelayUrl,
    Tag,
    Timestamp,
)

from lemonade_legends.constants import (
    BADGE_DESCRIPTION,
    BADGE_DISPLAY_NAME,
    BADGE_IMAGE,
    BADGE_IMAGE_DIMENSIONS,
    BADGE_NAME,
    BADGE_THUMB_DIMENSIONS,
    EventKind,
)

logger = logging.getLogger(__name__)


class PublishError(Exception):
    """Raised when a signed event could not be delivered to any relay."""


def normalize_pubkey(raw: str) -> str:
    """Accept a hex pubkey or an ``npub`` and return lowercase hex.

    Raises ValueError when the value is not a valid public key.
    """
    stripped = raw.strip()
    if not stripped:
        raise ValueError("Public key is empty.")
    try:
        return PublicKey.parse(stripped).to_hex()
    except Exception as e:
        raise ValueError(f"Invalid public key {stripped!r}: {e}") from e


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EventTemplate:
    """An unsigned event: everything but id, pubkey and signature."""

    kind: int
    content: str
    tags: list[list[str]] = field(default_factory=list)
    created_at: int = 0

    def tag_values(self, name: str) -> list[list[str]]:
        """All tags whose first element is ``name``."""
        return [t for t in self.tags if t and t[0] == name]


def badge_address(server_pubkey: str) -> str:
    """NIP-33 coordinate of the badge definition (``30009:<pubkey>:<d>``)."""
    return f"{int(EventKind.BADGE_DEFINITION)}:{server_pubkey}:{BADGE_NAME}"


def badge_definition_template(created_at: int | None = None) -> EventTemplate:
    """Kind 30009 badge definition for the Lemonade Legends badge."""
    return EventTemplate(
        kind=int(EventKind.BADGE_DEFINITION),
        content="",
        tags=[
            ["d", BADGE_NAME],
            ["name", BADGE_DISPLAY_NAME],
            ["description", BADGE_DESCRIPTION],
            ["image", BADGE_IMAGE, BADGE_IMAGE_DIMENSIONS],
            ["thumb", BADGE_IMAGE, BADGE_THUMB_DIMENSIONS],
        ],
        created_at=int(time.time()) if created_at is None else created_at,
    )


def badge_award_template(
    server_pubkey: str, recipient_pubkey: str, created_at: int | None = None
) -> EventTemplate:
    """Kind 8 award pointing at the badge definition and the recipient."""
    return EventTemplate(
        kind=int(EventKind.BADGE_AWARD),
        content=f"Awarded {BADGE_NAME} badge to {recipient_pubkey}",
        tags=[
            ["a", badge_address(server_pubkey)],
            ["p", recipient_pubkey],
        ],
        created_at=int(time.time()) if created_at is None else created_at,
    )


# ---------------------------------------------------------------------------
# Publisher
# ---------------------------------------------------------------------------


class BadgePublisher:
    """Signs templates with the server key and publishes them to relays."""

    def __init__(
        self,
        private_key: str,
        relays: list[str],
        io_timeout_secs: float = 15.0,
    ) -> None:
        """Load keys from a hex or nsec secret. Raises on an invalid key."""
        self._keys = Keys.parse(private_key)
        self._relays = list(relays)
        self._io_timeout = io_timeout_secs
        self._client = Client(NostrSigner.keys(self._keys))
        self._connected = False

    @property
    def pubkey_hex(self) -> str:
        """Server public key in hex format."""
        return self._keys.public_key().to_hex()

    @property
    def npub(self) -> str:
        """Server public key in bech32 npub format."""
        return self._keys.public_key().to_bech32()

    @property
    def relays(self) -> list[str]:
        return list(self._relays)

    async def connect(self) -> None:
        """Add every publish relay and open connections."""
        if self._connected:
            return
        for url in self._relays:
            await self._client.add_relay(RelayUrl.parse(url))
        await asyncio.wait_for(self._client.connect(), timeout=self._io_timeout)
        self._connected = True
        logger.info("Connected to %d publish relay(s).", len(self._relays))

    async def disconnect(self) -> None:
        if not self._connected:
            return
        await self._client.disconnect()
        self._connected = False

    def sign(self, template: EventTemplate) -> Event:
        """Build and sign a nostr-sdk event from a template."""
        builder = (
            EventBuilder(Kind(template.kind), template.content)
            .tags([Tag.parse(t) for t in template.tags])
            .custom_created_at(Timestamp.from_secs(template.created_at))
        )
        return builder.sign_with_keys(self._keys)

    async def publish(self, template: EventTemplate) -> str:
        """Sign and send a template. Returns the event id (hex)."""
        event = self.sign(template)
        event_id = event.id().to_hex()
        try:
            output = await asyncio.wait_for(
                self._client.send_event(event), timeout=self._io_timeout
            )
        except Exception as e:
            raise PublishError(f"Failed to publish kind {template.kind} event {event_id}: {e}") from e

        if not output.success:
            raise PublishError(
                f"No relay accepted kind {template.kind} event {event_id}: {output.failed}"
            )
        logger.debug(
            "Published kind %d event %s to %d relay(s).",
            template.kind, event_id, len(output.success),
        )
        return event_id

    async def publish_definition(self) -> str:
        return await self.publish(badge_definition_template())

    async def publish_award(self, recipient_pubkey: str) -> str:
        return await self.publish(badge_award_template(self.pubkey_hex, recipient_pubkey))
