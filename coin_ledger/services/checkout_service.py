"""Checkout Service - Glue between storefront events and the two ledgers.

Payment confirmation records the capture and credits the reward. Order
cancellation claws the reward back. Coin redemption and refunds of coin
discounts are plain ledger calls with keys derived from the discount code
or the order.
"""

import hashlib
import hmac
import logging
import secrets
import string
import time
from datetime import timedelta
from decimal import Decimal

from coin_ledger.core.exceptions import OrderNotFoundError
from coin_ledger.schemas.checkout import ConfirmPaymentResponse, PaymentConfirmation
from coin_ledger.schemas.ledger import LedgerResult
from coin_ledger.services.ledger_service import WalletLedgerService, reward_for_order_total
from coin_ledger.services.reconciliation_service import OrderReconciliationService
from coin_ledger.utils.amount import as_decimal, round_minor, to_minor
from coin_ledger.utils.helpers import utcnow

logger = logging.getLogger(__name__)


def generate_signature(message: str, secret_key: str) -> str:
    """Generate HMAC-SHA256 signature as lowercase hex."""
    return hmac.new(
        secret_key.encode("utf-8"),
        message.encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


def verify_checkout_signature(
    gateway_order_id: str,
    payment_id: str,
    signature: str,
    secret_key: str,
) -> bool:
    """Verify the gateway checkout signature over ``"{order_id}|{payment_id}"``.

    An unconfigured secret never verifies.
    """
    if not secret_key or not signature:
        return False
    expected = generate_signature(f"{gateway_order_id}|{payment_id}", secret_key)
    return hmac.compare_digest(expected.lower(), signature.lower())


def generate_discount_code() -> str:
    """Generate a coin discount code.

    Format: COINS-{epoch_ms}-{6 random chars}
    """
    suffix = "".join(secrets.choice(string.ascii_uppercase + string.digits) for _ in range(6))
    return f"COINS-{int(time.time() * 1000)}-{suffix}"


def coin_discount_code(order_metadata: dict) -> str | None:
    """Coin discount code the storefront recorded on the order, if any."""
    for key in ("coin_discount_code", "coin_discount", "coin_discount_id"):
        value = order_metadata.get(key)
        if isinstance(value, str) and value:
            return value
    return None


def recorded_coin_discount_minor(order_metadata: dict) -> int:
    """Coin discount recorded on the order, in minor units.

    Rupee keys win over ``coin_discount_minor``; ``coins_discountend`` is the
    key older storefront builds wrote.
    """
    for key in ("coins_discountend", "coin_discount_rupees"):
        if order_metadata.get(key) is not None:
            return max(to_minor(as_decimal(order_metadata[key])), 0)
    if order_metadata.get("coin_discount_minor") is not None:
        return max(round_minor(as_decimal(order_metadata["coin_discount_minor"])), 0)
    return 0


class CheckoutService:
    """Service for checkout-driven wallet and order bookkeeping."""

    def __init__(
        self,
        ledger: WalletLedgerService,
        reconciliation: OrderReconciliationService,
        earning_rate: Decimal = Decimal("0.01"),
        coin_expiry_days: int = 365,
    ) -> None:
        self.ledger = ledger
        self.reconciliation = reconciliation
        self.earning_rate = earning_rate
        self.coin_expiry_days = coin_expiry_days

    async def confirm_payment(self, event: PaymentConfirmation) -> ConfirmPaymentResponse:
        """Record a verified capture, then credit the order reward.

        Both steps are idempotent, so gateway retries and duplicate browser
        posts are harmless.

        Args:
            event: Confirmed payment with a verified signature. The reward goes
                to the order's customer.

        Returns:
            ConfirmPaymentResponse: capture outcome and reward (None when the
            order has no customer or the reward rounds to zero)

        Raises:
            OrderNotFoundError: Unknown order
        """
        capture = await self.reconciliation.record_capture(
            order_id=event.order_id,
            amount_minor=event.amount_minor,
            currency_code=event.currency.lower(),
            reference_id=event.razorpay_payment_id,
        )

        order = await self.reconciliation.get_order(event.order_id)
        customer_id = order.customer_id if order else None

        reward = None
        coins = reward_for_order_total(event.amount_minor, self.earning_rate)
        if not customer_id:
            logger.info(f"[checkout] order_id={event.order_id} has no customer, no reward")
        elif coins <= 0:
            logger.info(f"[checkout] order_id={event.order_id} reward rounds to zero")
        else:
            reward = await self.ledger.earn_coins(
                customer_id=customer_id,
                order_id=event.order_id,
                amount_minor=coins,
                expires_at=utcnow() + timedelta(days=self.coin_expiry_days),
                metadata={"reason": "order_reward"},
            )

        return ConfirmPaymentResponse(ok=True, capture=capture, reward=reward)

    async def cancel_order(self, order_id: str, reason: str | None = None) -> LedgerResult:
        """Reverse the reward of a cancelled or refunded order."""
        return await self.ledger.reverse_earned(order_id, reason=reason or "order_canceled")

    async def redeem_coins(
        self,
        customer_id: str,
        amount_minor: int,
        discount_code: str | None = None,
        cart_id: str | None = None,
    ) -> tuple[str, LedgerResult]:
        """Spend coins as a checkout discount.

        The discount code is both the reference and the idempotency seed, so
        re-submitting the same code spends once.

        Returns:
            (discount_code, result)

        Raises:
            NegativeBalanceError: Wallet in deficit
            InsufficientBalanceError: Not enough coins
        """
        code = discount_code or generate_discount_code()
        metadata = {"discount_code": code, "reason": "coin_discount"}
        if cart_id:
            metadata["cart_id"] = cart_id

        result = await self.ledger.spend_coins(
            customer_id=customer_id,
            amount_minor=amount_minor,
            reference_id=code,
            idempotency_key=f"spend:{code}",
            metadata=metadata,
        )
        return code, result

    async def refund_coin_discount(self, order_id: str, reason: str = "return") -> LedgerResult:
        """Credit back the coins spent as a discount on a returned order.

        The customer and the discount both come from the order. When the order
        names its discount code, the credit is capped at the SPEND recorded for
        that code. Earlier refunds of the same order count against the cap, so
        refunding again under another reason credits nothing.

        Raises:
            OrderNotFoundError: Unknown order
        """
        order = await self.reconciliation.get_order(order_id)
        if order is None:
            raise OrderNotFoundError(f"Order {order_id} not found", {"order_id": order_id})

        customer_id = order.customer_id
        metadata = order.meta or {}
        discount_code = coin_discount_code(metadata)
        amount = recorded_coin_discount_minor(metadata)

        if not customer_id:
            logger.info(f"[checkout] order_id={order_id} has no customer, nothing to refund")
            return LedgerResult(applied=False, actual_balance=None)

        if discount_code:
            spend = await self.ledger.find_spend_by_reference(customer_id, discount_code)
            spent = spend.amount_minor if spend else 0
            amount = min(amount, spent) if amount > 0 else spent

        amount -= await self.ledger.refunded_for_order(customer_id, order_id)
        if amount <= 0:
            logger.info(f"[checkout] order_id={order_id} has no coin discount left to refund")
            return LedgerResult(applied=False, actual_balance=None, customer_id=customer_id)

        key = f"refund-{reason}:{order_id}"
        extra = {"source_order_id": order_id}
        if discount_code:
            extra["discount_code"] = discount_code
        result = await self.ledger.credit_adjustment(
            customer_id=customer_id,
            amount_minor=amount,
            reference_id=key,
            idempotency_key=key,
            reason=f"Refund coins for {reason} {order_id}",
            metadata=extra,
        )
        result.customer_id = customer_id
        return result
