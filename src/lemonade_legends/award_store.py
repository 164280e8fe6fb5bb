"""Abstract persistence interface for badge award records.

Defines the AwardStore Protocol that the badge tools depend on.
Concrete implementations (e.g., SqliteAwardStore) live in ``stores``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from lemonade_legends.award import BadgeAward


@runtime_checkable
class AwardStore(Protocol):
    """Async persistence backend for award rows.

    ``insert_award`` is a single conditional write: it returns False
    (and writes nothing) when the recipient already holds an award.
    """

    async def has_award(self, recipient_pubkey: str) -> bool: ...

    async def insert_award(
        self, recipient_pubkey: str, award_event_id: str, created_at: int
    ) -> bool: ...

    async def list_awards(self) -> list[BadgeAward]: ...

    async def count_awards(self) -> int: ...

    async def close(self) -> None: ...
