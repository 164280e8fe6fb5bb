"""Concrete AwardStore backends."""

from lemonade_legends.stores.sqlite import SqliteAwardStore

__all__ = ["SqliteAwardStore"]
