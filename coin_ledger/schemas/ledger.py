"""Ledger schemas - metadata validation and wallet result DTOs."""

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from coin_ledger.models.wallet import LedgerEntryType
from coin_ledger.utils.helpers import format_utc_datetime, parse_utc_datetime

# =============================================================================
# Ledger metadata (closed key set)
# =============================================================================


class LedgerMetadata(BaseModel):
    """Recognised keys of ``wallet_ledger.metadata``.

    Unknown keys are rejected so the JSON bag cannot drift silently.
    """

    model_config = ConfigDict(extra="forbid")

    expires_at: str | None = Field(default=None, description="UTC expiry, YYYY-MM-DDTHH:MM:SSZ")
    reason: str | None = Field(default=None, min_length=1, max_length=255)
    earn_id: int | None = Field(default=None, gt=0)
    discount_code: str | None = Field(default=None, max_length=128)
    cart_id: str | None = Field(default=None, max_length=64)
    source_order_id: str | None = Field(default=None, max_length=64)

    @field_validator("expires_at", mode="before")
    @classmethod
    def normalise_expires_at(cls, value: Any) -> str | None:
        if value is None:
            return None
        if not isinstance(value, str | datetime):
            raise ValueError("expires_at must be an ISO-8601 string or datetime")
        return format_utc_datetime(parse_utc_datetime(value))

    def to_json(self) -> dict[str, Any]:
        """Keys the caller actually set, ready for the JSON column."""
        return self.model_dump(exclude_unset=True)


# =============================================================================
# Results
# =============================================================================


class LedgerResult(BaseModel):
    """Outcome of a balance mutation.

    ``applied=False`` means the idempotency key was already used; it is a
    success signal for retries, not an error.
    """

    applied: bool
    actual_balance: int | None = None
    customer_id: str | None = None


class SpendRecord(BaseModel):
    """Most recent SPEND entry for a reference."""

    amount_minor: int
    metadata: dict[str, Any]
    created_at: datetime


class LedgerEntryResponse(BaseModel):
    """Ledger row as exposed to wallet screens."""

    id: int
    order_id: str | None = None
    transaction_type: LedgerEntryType
    amount: int
    reference_id: str | None = None
    metadata: dict[str, Any]
    created_at: datetime


class WalletSnapshot(BaseModel):
    """Reconciled wallet state.

    The display balance is never negative; a deficit is surfaced as
    ``pending_adjustment_minor`` instead.
    """

    actual_balance_minor: int
    display_balance_minor: int
    pending_adjustment_minor: int
    transactions: list[LedgerEntryResponse]


class ExpiredEarn(BaseModel):
    """Worklist item produced by the expiry scan."""

    id: int
    customer_id: str
    amount: int
    metadata: dict[str, Any]


class ExpiringCoin(BaseModel):
    """Earned coins expiring soon."""

    id: int
    amount: int
    expires_at: str
    days_until_expiry: int
    order_id: str | None = None


class ExpiringCoinsBreakdown(BaseModel):
    expiring_in_7_days: int = 0
    expiring_in_15_days: int = 0
    expiring_in_30_days: int = 0


class ExpiringCoinsResponse(BaseModel):
    """Coins expiring within the look-ahead window, soonest first."""

    expiring_soon: int
    earliest_expiry: str | None = None
    breakdown: ExpiringCoinsBreakdown
    coins_expiring: list[ExpiringCoin]


# =============================================================================
# Request bodies
# =============================================================================


class RedeemCoinsRequest(BaseModel):
    """Apply coins as a checkout discount."""

    coin_amount: int = Field(gt=0, description="Coins to spend, minor units")
    discount_code: str | None = Field(default=None, max_length=128)
    cart_id: str | None = Field(default=None, max_length=64)


class RedeemCoinsResponse(BaseModel):
    success: bool
    discount_code: str
    discount_amount_minor: int
    discount_amount_rupees: Decimal
    actual_balance: int | None = None


class ReverseCoinsRequest(BaseModel):
    """Claw back the reward of a cancelled or refunded order."""

    order_id: str = Field(min_length=1)
    reason: str | None = None


class RefundCoinDiscountRequest(BaseModel):
    """Credit back coins spent on an order that was returned.

    Customer and amount come from the order itself, never from the body.
    """

    order_id: str = Field(min_length=1)
    reason: str = Field(default="return", min_length=1, max_length=32)
