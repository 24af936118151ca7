"""Checkout API - Gateway payment confirmation."""

import logging

from fastapi import APIRouter, HTTPException

from coin_ledger.api.deps import CheckoutServiceDep
from coin_ledger.core.config import get_settings
from coin_ledger.core.exceptions import OrderNotFoundError, ValidationError
from coin_ledger.schemas.checkout import (
    ConfirmPaymentResponse,
    PaymentConfirmation,
    RazorpayConfirmRequest,
)
from coin_ledger.services.checkout_service import verify_checkout_signature

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/checkout", tags=["Checkout"])


@router.post("/razorpay/confirm", response_model=ConfirmPaymentResponse)
async def confirm_razorpay_payment(
    data: RazorpayConfirmRequest,
    service: CheckoutServiceDep,
) -> ConfirmPaymentResponse:
    """Confirm a gateway payment posted by the storefront.

    The signature over ``"{razorpay_order_id}|{razorpay_payment_id}"`` must
    verify before anything is written.
    """
    settings = get_settings()
    if not verify_checkout_signature(
        data.razorpay_order_id,
        data.razorpay_payment_id,
        data.razorpay_signature,
        settings.razorpay_key_secret,
    ):
        logger.warning(
            f"[checkout] invalid signature order_id={data.order_id} "
            f"payment_id={data.razorpay_payment_id}"
        )
        raise HTTPException(status_code=400, detail="invalid_signature")

    event = PaymentConfirmation(
        order_id=data.order_id,
        amount_minor=data.amount_minor,
        currency=data.currency,
        razorpay_payment_id=data.razorpay_payment_id,
        razorpay_order_id=data.razorpay_order_id,
    )
    try:
        return await service.confirm_payment(event)
    except OrderNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message) from e
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.message) from e
