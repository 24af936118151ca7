"""Core module - configuration, exceptions and logging."""

from coin_ledger.core.config import Settings, get_settings
from coin_ledger.core.exceptions import (
    InsufficientBalanceError,
    LedgerError,
    NegativeBalanceError,
    OrderNotFoundError,
    ValidationError,
    WalletAccountError,
)

__all__ = [
    "Settings",
    "get_settings",
    "LedgerError",
    "ValidationError",
    "InsufficientBalanceError",
    "NegativeBalanceError",
    "WalletAccountError",
    "OrderNotFoundError",
]
