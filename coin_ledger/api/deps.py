"""Common FastAPI dependencies for API endpoints."""

from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request

from coin_ledger.core.config import get_settings
from coin_ledger.db.engine import Database
from coin_ledger.services.checkout_service import CheckoutService
from coin_ledger.services.ledger_service import WalletLedgerService
from coin_ledger.services.reconciliation_service import OrderReconciliationService


def get_database(request: Request) -> Database:
    """Database opened by the application lifespan."""
    return request.app.state.database


def get_ledger_service(
    database: Annotated[Database, Depends(get_database)],
) -> WalletLedgerService:
    """Get wallet ledger service instance."""
    settings = get_settings()
    return WalletLedgerService(
        database.session_factory,
        snapshot_limit=settings.snapshot_transactions_limit,
    )


def get_reconciliation_service(
    database: Annotated[Database, Depends(get_database)],
) -> OrderReconciliationService:
    """Get order reconciliation service instance."""
    return OrderReconciliationService(database.session_factory)


def get_checkout_service(
    ledger: Annotated[WalletLedgerService, Depends(get_ledger_service)],
    reconciliation: Annotated[OrderReconciliationService, Depends(get_reconciliation_service)],
) -> CheckoutService:
    """Get checkout service instance."""
    settings = get_settings()
    return CheckoutService(
        ledger,
        reconciliation,
        earning_rate=settings.coin_earning_rate,
        coin_expiry_days=settings.coin_expiry_days,
    )


async def get_customer_id(
    x_customer_id: Annotated[str | None, Header()] = None,
) -> str:
    """Customer resolved by the storefront's auth layer and forwarded as a header."""
    if not x_customer_id or not x_customer_id.strip():
        raise HTTPException(status_code=401, detail="Unauthorized")
    return x_customer_id.strip()


CustomerId = Annotated[str, Depends(get_customer_id)]
LedgerServiceDep = Annotated[WalletLedgerService, Depends(get_ledger_service)]
CheckoutServiceDep = Annotated[CheckoutService, Depends(get_checkout_service)]
