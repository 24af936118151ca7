"""Coin Ledger Service Layer.

Business logic for the reward-coin wallet and order payment reconciliation.
Services receive a session factory and open their own transactions.
"""

from coin_ledger.services.checkout_service import CheckoutService
from coin_ledger.services.ledger_service import WalletLedgerService, reward_for_order_total
from coin_ledger.services.reconciliation_service import OrderReconciliationService

__all__ = [
    "CheckoutService",
    "OrderReconciliationService",
    "WalletLedgerService",
    "reward_for_order_total",
]
