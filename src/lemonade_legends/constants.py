"""Constants for the Lemonade Legends badge and its pricing ramp."""

from enum import IntEnum


# Badge identity (NIP-58 ``d`` tag and display metadata)
BADGE_NAME = "lemonade-legends"
BADGE_DISPLAY_NAME = "Lemonade Legends"
BADGE_DESCRIPTION = "Awarded to legends of the digital lemonade stand"
BADGE_IMAGE = (
    "https://image.nostr.build/"
    "3c3575191bdfd060e27719302abc8c7e86e29652b6e432b40988aa0c902e2dd9.png"
)
BADGE_IMAGE_DIMENSIONS = "1024x1024"
BADGE_THUMB_DIMENSIONS = "256x256"

# Pricing ramp (sats)
OPENING_PRICE = 21
DAILY_INCREMENT = 21
SECONDS_PER_DAY = 24 * 60 * 60
MAX_PRICED_DAYS = 365  # advertised ceiling: opening + 365 increments

RECENT_AWARDS_SHOWN = 10


class EventKind(IntEnum):
    """Nostr event kinds used by the badge server."""

    BADGE_AWARD = 8
    BADGE_DEFINITION = 30009
