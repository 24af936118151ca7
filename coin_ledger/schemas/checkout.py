"""Checkout schemas - payment confirmation event and API payloads."""

from pydantic import BaseModel, Field

from coin_ledger.schemas.ledger import LedgerResult
from coin_ledger.schemas.reconciliation import CaptureResult


class PaymentConfirmation(BaseModel):
    """A captured payment whose signature the caller has already verified."""

    order_id: str = Field(min_length=1)
    amount_minor: int = Field(gt=0, description="Captured amount in paise")
    currency: str = Field(default="INR", min_length=3, max_length=8)
    razorpay_payment_id: str = Field(min_length=1)
    razorpay_order_id: str | None = None


class RazorpayConfirmRequest(BaseModel):
    """Checkout confirmation posted by the storefront after the gateway modal.

    The reward always goes to the order's customer.
    """

    order_id: str = Field(min_length=1)
    razorpay_payment_id: str = Field(min_length=1)
    razorpay_order_id: str = Field(min_length=1)
    razorpay_signature: str = Field(min_length=1)
    amount_minor: int = Field(gt=0)
    currency: str = "INR"


class ConfirmPaymentResponse(BaseModel):
    ok: bool
    capture: CaptureResult
    reward: LedgerResult | None = None
