"""Wallet API - Reward-coin wallet endpoints."""

from fastapi import APIRouter, HTTPException, Query

from coin_ledger.api.deps import CheckoutServiceDep, CustomerId, LedgerServiceDep
from coin_ledger.core.exceptions import (
    InsufficientBalanceError,
    NegativeBalanceError,
    OrderNotFoundError,
    ValidationError,
)
from coin_ledger.schemas.ledger import (
    ExpiringCoinsResponse,
    LedgerResult,
    RedeemCoinsRequest,
    RedeemCoinsResponse,
    RefundCoinDiscountRequest,
    ReverseCoinsRequest,
    WalletSnapshot,
)
from coin_ledger.utils.amount import to_major

router = APIRouter(prefix="/api/wallet", tags=["Wallet"])

NEGATIVE_BALANCE_MESSAGE = (
    "Wallet has pending adjustments. Redemption is disabled until the balance is settled."
)


@router.get("", response_model=WalletSnapshot)
async def get_wallet(customer_id: CustomerId, service: LedgerServiceDep) -> WalletSnapshot:
    """Reconciled balance and recent transactions of the calling customer."""
    return await service.get_wallet_snapshot(customer_id)


@router.get("/expiring", response_model=ExpiringCoinsResponse)
async def get_expiring_coins(
    customer_id: CustomerId,
    service: LedgerServiceDep,
    days: int = Query(30, ge=1, le=365, description="Look-ahead window in days"),
) -> ExpiringCoinsResponse:
    """Coins expiring soon, with 7/15/30 day buckets."""
    return await service.list_expiring_coins(customer_id, within_days=days)


@router.post("/redeem", response_model=RedeemCoinsResponse)
async def redeem_coins(
    data: RedeemCoinsRequest,
    customer_id: CustomerId,
    service: CheckoutServiceDep,
) -> RedeemCoinsResponse:
    """Spend coins as a checkout discount.

    Re-posting with the same discount code does not spend twice.
    """
    try:
        code, result = await service.redeem_coins(
            customer_id=customer_id,
            amount_minor=data.coin_amount,
            discount_code=data.discount_code,
            cart_id=data.cart_id,
        )
    except NegativeBalanceError as e:
        raise HTTPException(
            status_code=400,
            detail={"code": e.code, "message": NEGATIVE_BALANCE_MESSAGE, **e.details},
        ) from e
    except InsufficientBalanceError as e:
        raise HTTPException(
            status_code=400,
            detail={"code": e.code, "message": "Insufficient coins", **e.details},
        ) from e
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.message) from e

    return RedeemCoinsResponse(
        success=True,
        discount_code=code,
        discount_amount_minor=data.coin_amount,
        discount_amount_rupees=to_major(data.coin_amount),
        actual_balance=result.actual_balance,
    )


@router.post("/reverse", response_model=LedgerResult)
async def reverse_coins(data: ReverseCoinsRequest, service: CheckoutServiceDep) -> LedgerResult:
    """Reverse the reward of a cancelled order (admin/workflow hook)."""
    try:
        return await service.cancel_order(data.order_id, reason=data.reason)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.message) from e


@router.post("/refund-coin-discount-order", response_model=LedgerResult)
async def refund_coin_discount_order(
    data: RefundCoinDiscountRequest,
    service: CheckoutServiceDep,
) -> LedgerResult:
    """Credit back the coin discount of a returned order."""
    try:
        return await service.refund_coin_discount(order_id=data.order_id, reason=data.reason)
    except OrderNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message) from e
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.message) from e
