"""Schemas module - Pydantic DTOs for request/response."""

from coin_ledger.schemas.checkout import (
    ConfirmPaymentResponse,
    PaymentConfirmation,
    RazorpayConfirmRequest,
)
from coin_ledger.schemas.ledger import (
    ExpiredEarn,
    ExpiringCoinsResponse,
    LedgerEntryResponse,
    LedgerMetadata,
    LedgerResult,
    RedeemCoinsRequest,
    RefundCoinDiscountRequest,
    ReverseCoinsRequest,
    SpendRecord,
    WalletSnapshot,
)
from coin_ledger.schemas.reconciliation import CaptureResult, ReconciliationReport

__all__: list[str] = [
    # Ledger
    "LedgerMetadata",
    "LedgerResult",
    "SpendRecord",
    "LedgerEntryResponse",
    "WalletSnapshot",
    "ExpiredEarn",
    "ExpiringCoinsResponse",
    "RedeemCoinsRequest",
    "ReverseCoinsRequest",
    "RefundCoinDiscountRequest",
    # Reconciliation
    "ReconciliationReport",
    "CaptureResult",
    # Checkout
    "PaymentConfirmation",
    "RazorpayConfirmRequest",
    "ConfirmPaymentResponse",
]
