import os

# Settings are read at import time by the Celery app and the app factory
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("RAZORPAY_KEY_SECRET", "test_secret")

from datetime import datetime, timedelta  # noqa: E402

import pytest_asyncio  # noqa: E402
from sqlalchemy import event  # noqa: E402

from coin_ledger.db.engine import Database  # noqa: E402
from coin_ledger.models.order import Order, OrderSummary, Payment  # noqa: E402
from coin_ledger.services.checkout_service import CheckoutService  # noqa: E402
from coin_ledger.services.ledger_service import WalletLedgerService  # noqa: E402
from coin_ledger.services.reconciliation_service import OrderReconciliationService  # noqa: E402
from coin_ledger.utils.helpers import utcnow  # noqa: E402


def _enable_sqlite_savepoints(database: Database) -> None:
    """pysqlite/aiosqlite need explicit BEGIN for SAVEPOINT to work."""

    @event.listens_for(database.engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(database.engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")


@pytest_asyncio.fixture()
async def database(tmp_path):
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'coin_ledger.db'}")
    _enable_sqlite_savepoints(db)
    await db.init_models()
    yield db
    await db.dispose()


@pytest_asyncio.fixture()
async def ledger(database):
    return WalletLedgerService(database.session_factory)


@pytest_asyncio.fixture()
async def reconciliation(database):
    return OrderReconciliationService(database.session_factory)


@pytest_asyncio.fixture()
async def checkout(ledger, reconciliation):
    return CheckoutService(ledger, reconciliation)


async def seed_order(
    database: Database,
    order_id: str,
    *,
    customer_id: str | None = "cus_1",
    order_total: int = 10000,
    totals: dict | None = None,
    payments: list[dict] | None = None,
    created_at: datetime | None = None,
    with_summary: bool = True,
    metadata: dict | None = None,
) -> None:
    """Insert an order with optional summary and payments.

    ``payments`` items: {"id", "amount", "captured": bool, "razorpay_payment_id"}
    """
    async with database.session() as session:
        session.add(
            Order(
                id=order_id,
                customer_id=customer_id,
                currency_code="inr",
                created_at=created_at or utcnow(),
                meta=metadata,
            )
        )
        await session.flush()
        if with_summary:
            session.add(
                OrderSummary(
                    order_id=order_id,
                    totals=totals
                    if totals is not None
                    else {"current_order_total": order_total, "paid_total": 0, "transaction_total": 0},
                )
            )
        for payment in payments or []:
            data = {}
            if payment.get("razorpay_payment_id"):
                data["razorpay_payment_id"] = payment["razorpay_payment_id"]
            session.add(
                Payment(
                    id=payment["id"],
                    order_id=order_id,
                    amount=payment["amount"],
                    currency_code=payment.get("currency_code"),
                    captured_at=utcnow() - timedelta(minutes=5) if payment.get("captured", True) else None,
                    data=data,
                )
            )
