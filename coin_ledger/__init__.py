"""Coin Ledger - reward-coin wallet ledger and order payment reconciliation."""

__version__ = "0.1.0"
