"""Coin Ledger utility functions."""

from coin_ledger.utils.amount import as_decimal, precision_tagged, to_major, to_minor
from coin_ledger.utils.helpers import (
    ensure_utc,
    format_utc_datetime,
    parse_utc_datetime,
    utcnow,
)

__all__ = [
    "as_decimal",
    "precision_tagged",
    "to_major",
    "to_minor",
    "ensure_utc",
    "format_utc_datetime",
    "parse_utc_datetime",
    "utcnow",
]
