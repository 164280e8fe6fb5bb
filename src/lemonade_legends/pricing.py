"""Daily price ramp for badge mints.

Pure data model — no I/O. The price starts at ``opening_price`` sats on
the opening day and grows by ``daily_increment`` sats for every full day
elapsed since ``opening_timestamp``.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from lemonade_legends.constants import (
    DAILY_INCREMENT,
    MAX_PRICED_DAYS,
    OPENING_PRICE,
    SECONDS_PER_DAY,
)


@dataclass(frozen=True)
class PricingInfo:
    """Snapshot of the ramp at a given instant, for display."""

    current_price: int
    days_elapsed: int
    opening_date: str
    opening_price: int
    daily_increment: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "current_price": self.current_price,
            "days_elapsed": self.days_elapsed,
            "opening_date": self.opening_date,
            "opening_price": self.opening_price,
            "daily_increment": self.daily_increment,
        }


@dataclass(frozen=True)
class PricingRamp:
    """Linear price ramp: ``opening_price + days_elapsed * daily_increment``.

    ``now`` arguments are unix seconds and default to the current time.
    Instants before the opening count as day 0.
    """

    opening_price: int = OPENING_PRICE
    daily_increment: int = DAILY_INCREMENT
    opening_timestamp: float = field(default_factory=time.time)

    def __post_init__(self) -> None:
        if self.opening_price < 0:
            raise ValueError(f"opening_price must be non-negative, got {self.opening_price}")
        if self.daily_increment < 0:
            raise ValueError(f"daily_increment must be non-negative, got {self.daily_increment}")

    @property
    def opening_date(self) -> str:
        """ISO date (UTC) of the opening day."""
        return datetime.fromtimestamp(self.opening_timestamp, tz=timezone.utc).date().isoformat()

    @property
    def max_price(self) -> int:
        """Advertised ceiling: the price after ``MAX_PRICED_DAYS`` days."""
        return self.opening_price + MAX_PRICED_DAYS * self.daily_increment

    def days_elapsed(self, now: float | None = None) -> int:
        """Whole days since opening."""
        if now is None:
            now = time.time()
        return max(0, int((now - self.opening_timestamp) // SECONDS_PER_DAY))

    def current_price(self, now: float | None = None) -> int:
        return self.opening_price + self.days_elapsed(now) * self.daily_increment

    def info(self, now: float | None = None) -> PricingInfo:
        if now is None:
            now = time.time()
        return PricingInfo(
            current_price=self.current_price(now),
            days_elapsed=self.days_elapsed(now),
            opening_date=self.opening_date,
            opening_price=self.opening_price,
            daily_increment=self.daily_increment,
        )
