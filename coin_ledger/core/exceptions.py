"""Coin Ledger - Custom exceptions."""

from typing import Any


class LedgerError(Exception):
    """Base exception for all coin ledger errors."""

    code = "LEDGER_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ValidationError(LedgerError):
    """Input validation failed. Raised before any transaction is opened."""

    code = "INVALID_INPUT"


class InsufficientBalanceError(LedgerError):
    """Spend requested exceeds the available balance."""

    code = "INSUFFICIENT_BALANCE"

    def __init__(
        self,
        required: int | None = None,
        available: int | None = None,
        message: str = "Insufficient coins",
    ) -> None:
        details = {}
        if required is not None:
            details["required"] = required
        if available is not None:
            details["available"] = available
        super().__init__(message, details)


class NegativeBalanceError(LedgerError):
    """Account is in deficit; every spend is refused until it is settled."""

    code = "NEGATIVE_BALANCE"

    def __init__(
        self,
        balance: int | None = None,
        message: str = "Wallet has pending adjustments",
    ) -> None:
        details = {}
        if balance is not None:
            details["pending_adjustment"] = abs(balance)
        super().__init__(message, details)


class WalletAccountError(LedgerError):
    """Wallet account row could not be created or locked."""

    code = "WALLET_ACCOUNT_ERROR"


class OrderNotFoundError(LedgerError):
    """Referenced order does not exist."""

    code = "ORDER_NOT_FOUND"
