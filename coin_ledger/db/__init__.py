"""Database module - async engine and session management."""

from coin_ledger.db.engine import Database

__all__ = [
    "Database",
]
