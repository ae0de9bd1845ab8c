"""Storage package providing persistence utilities for arbitrage data."""

from .sqlite_repository import SQLiteRepository

__all__ = ["SQLiteRepository"]
