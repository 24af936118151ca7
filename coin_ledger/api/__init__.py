"""API module - route handlers and common dependencies."""

from fastapi import FastAPI

from coin_ledger.api.deps import CustomerId, get_database

__all__ = [
    "CustomerId",
    "get_database",
    "register_routers",
]


def register_routers(app: FastAPI) -> None:
    """Register all API routers to the application.

    Args:
        app: FastAPI application instance
    """
    from coin_ledger.api.checkout import router as checkout_router
    from coin_ledger.api.wallet import router as wallet_router

    app.include_router(wallet_router)
    app.include_router(checkout_router)
