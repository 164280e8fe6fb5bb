"""Badge award records.

Pure data model — no I/O. Rows come from an ``AwardStore``; the store is
responsible for the one-award-per-recipient guarantee.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any


@dataclass(frozen=True)
class BadgeAward:
    """One issued badge: who received it and which award event proves it."""

    id: int
    recipient_pubkey: str
    award_event_id: str
    created_at: int  # unix seconds

    @property
    def created_date(self) -> str:
        """ISO date (UTC) the award was recorded."""
        return datetime.fromtimestamp(self.created_at, tz=timezone.utc).date().isoformat()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "recipient_pubkey": self.recipient_pubkey,
            "award_event_id": self.award_event_id,
            "created_at": self.created_at,
        }

    @classmethod
    def from_row(cls, row: Sequence[Any]) -> BadgeAward:
        """Build from an ``(id, recipient_pubkey, award_event_id, created_at)`` row."""
        award_id, recipient_pubkey, award_event_id, created_at = row
        return cls(
            id=int(award_id),
            recipient_pubkey=str(recipient_pubkey),
            award_event_id=str(award_event_id),
            created_at=int(created_at),
        )


def dedupe_recipients(awards: Iterable[BadgeAward]) -> list[str]:
    """Unique recipient pubkeys, keeping first-occurrence order."""
    return list(dict.fromkeys(a.recipient_pubkey for a in awards))
