"""Models module - SQLModel database entities."""

from coin_ledger.models.order import (
    Order,
    OrderSummary,
    OrderTransaction,
    Payment,
    generate_transaction_id,
)
from coin_ledger.models.wallet import LedgerEntryType, WalletAccount, WalletLedger

__all__ = [
    # Wallet
    "WalletAccount",
    "WalletLedger",
    "LedgerEntryType",
    # Order payments
    "Order",
    "Payment",
    "OrderTransaction",
    "OrderSummary",
    "generate_transaction_id",
]
