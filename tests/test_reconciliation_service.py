from datetime import timedelta

import pytest
from sqlmodel import select

from coin_ledger.core.exceptions import OrderNotFoundError
from coin_ledger.models.order import OrderSummary, OrderTransaction
from coin_ledger.utils.helpers import utcnow
from tests.conftest import seed_order


async def _transactions(database, order_id: str) -> list[OrderTransaction]:
    async with database.session() as session:
        result = await session.execute(
            select(OrderTransaction).where(OrderTransaction.order_id == order_id)
        )
        return list(result.scalars().all())


async def _totals(database, order_id: str) -> dict:
    async with database.session() as session:
        result = await session.execute(
            select(OrderSummary).where(OrderSummary.order_id == order_id)
        )
        return result.scalar_one().totals


@pytest.mark.asyncio
async def test_reconciliation_converges(reconciliation, database):
    await seed_order(
        database,
        "order_1",
        totals={"current_order_total": 10000, "paid_total": 0, "transaction_total": 0, "item_total": 9500},
        payments=[{"id": "pay_1", "amount": 10000, "razorpay_payment_id": "pay_rzp_1"}],
    )

    first = await reconciliation.reconcile_recent()
    assert first.orders_analyzed == 1
    assert first.transactions_created == 1
    assert first.summaries_fixed == 1
    assert first.already_correct == 0
    assert first.errors == 0

    transactions = await _transactions(database, "order_1")
    assert len(transactions) == 1
    assert transactions[0].amount == 10000
    assert transactions[0].reference_id == "pay_rzp_1"
    assert transactions[0].reference == "capture"
    assert transactions[0].currency_code == "inr"
    assert transactions[0].raw_amount == {"value": "10000", "precision": 20}

    totals = await _totals(database, "order_1")
    assert totals["paid_total"] == 10000
    assert totals["transaction_total"] == 10000
    assert totals["pending_difference"] == 0
    assert totals["raw_paid_total"] == {"value": "10000", "precision": 20}
    assert totals["item_total"] == 9500

    second = await reconciliation.reconcile_recent()
    assert second.transactions_created == 0
    assert second.summaries_fixed == 0
    assert second.already_correct == 1
    assert len(await _transactions(database, "order_1")) == 1


@pytest.mark.asyncio
async def test_partial_capture_leaves_pending_difference(reconciliation, database):
    await seed_order(
        database,
        "order_1",
        order_total=15000,
        payments=[{"id": "pay_1", "amount": 10000}],
    )

    await reconciliation.reconcile_order("order_1")

    totals = await _totals(database, "order_1")
    assert totals["paid_total"] == 10000
    assert totals["pending_difference"] == 5000
    # Payment without gateway id falls back to the internal id
    assert (await _transactions(database, "order_1"))[0].reference_id == "pay_1"


@pytest.mark.asyncio
async def test_orders_without_captures_are_skipped(reconciliation, database):
    await seed_order(
        database,
        "order_1",
        payments=[{"id": "pay_1", "amount": 10000, "captured": False}],
    )

    report = await reconciliation.reconcile_recent()
    assert report.orders_analyzed == 1
    assert report.transactions_created == 0
    assert report.summaries_fixed == 0
    assert report.already_correct == 0
    assert await _totals(database, "order_1") == {
        "current_order_total": 10000,
        "paid_total": 0,
        "transaction_total": 0,
    }


@pytest.mark.asyncio
async def test_summary_within_tolerance_is_left_alone(reconciliation, database):
    await seed_order(
        database,
        "order_1",
        totals={"current_order_total": 10000, "paid_total": "10000.005", "transaction_total": 10000},
        payments=[{"id": "pay_1", "amount": 10000}],
    )
    await reconciliation.record_capture("order_1", 10000, "inr", "pay_1")

    report = await reconciliation.reconcile_order("order_1")
    assert report.summaries_fixed == 0
    assert report.already_correct == 1
    assert (await _totals(database, "order_1"))["paid_total"] == "10000.005"


@pytest.mark.asyncio
async def test_soft_deleted_transactions_are_not_counted(reconciliation, database):
    await seed_order(database, "order_1", payments=[{"id": "pay_1", "amount": 10000}])
    async with database.session() as session:
        session.add(
            OrderTransaction(
                order_id="order_1",
                amount=10000,
                currency_code="inr",
                reference_id="pay_old",
                deleted_at=utcnow(),
            )
        )

    await reconciliation.reconcile_order("order_1")

    live = [tx for tx in await _transactions(database, "order_1") if tx.deleted_at is None]
    assert [tx.reference_id for tx in live] == ["pay_1"]
    assert (await _totals(database, "order_1"))["paid_total"] == 10000


@pytest.mark.asyncio
async def test_failing_order_does_not_abort_batch(reconciliation, database, monkeypatch):
    now = utcnow()
    await seed_order(
        database,
        "order_bad",
        payments=[{"id": "pay_bad", "amount": 500}],
        created_at=now,
    )
    await seed_order(
        database,
        "order_good",
        payments=[{"id": "pay_good", "amount": 700}],
        created_at=now - timedelta(minutes=1),
    )

    original = reconciliation._reconcile_in_session

    async def flaky(session, order_id):
        if order_id == "order_bad":
            raise RuntimeError("boom")
        return await original(session, order_id)

    monkeypatch.setattr(reconciliation, "_reconcile_in_session", flaky)

    report = await reconciliation.reconcile_recent()
    assert report.orders_analyzed == 2
    assert report.errors == 1
    assert report.transactions_created == 1
    assert report.summaries_fixed == 1
    assert await _transactions(database, "order_bad") == []


@pytest.mark.asyncio
async def test_reconcile_recent_is_newest_first_and_bounded(reconciliation, database):
    now = utcnow()
    for index in range(3):
        await seed_order(
            database,
            f"order_{index}",
            payments=[{"id": f"pay_{index}", "amount": 100}],
            created_at=now - timedelta(minutes=index),
        )
    await seed_order(database, "order_no_summary", with_summary=False)

    report = await reconciliation.reconcile_recent(limit=2)
    assert report.orders_analyzed == 2
    assert await _transactions(database, "order_2") == []
    assert len(await _transactions(database, "order_0")) == 1


@pytest.mark.asyncio
async def test_record_capture_is_idempotent(reconciliation, database):
    await seed_order(database, "order_1", order_total=10000)

    first = await reconciliation.record_capture("order_1", 6000, "INR", "pay_rzp_1")
    assert first.created is True
    assert first.transaction_total == 6000
    assert first.summary_fixed is True

    replay = await reconciliation.record_capture("order_1", 6000, "INR", "pay_rzp_1")
    assert replay.created is False
    assert replay.transaction_total == 6000
    assert replay.summary_fixed is False

    second = await reconciliation.record_capture("order_1", 4000, "inr", "pay_rzp_2")
    assert second.transaction_total == 10000

    totals = await _totals(database, "order_1")
    assert totals["paid_total"] == 10000
    assert totals["pending_difference"] == 0
    assert {tx.currency_code for tx in await _transactions(database, "order_1")} == {"inr"}


@pytest.mark.asyncio
async def test_record_capture_unknown_order(reconciliation):
    with pytest.raises(OrderNotFoundError):
        await reconciliation.record_capture("nope", 100, "inr", "pay_1")


@pytest.mark.asyncio
async def test_sync_summary_rewrites_stale_totals(reconciliation, database):
    await seed_order(
        database,
        "order_1",
        totals={"current_order_total": 10000, "paid_total": 20000, "transaction_total": 20000},
    )

    assert await reconciliation.sync_summary("order_1") is True
    totals = await _totals(database, "order_1")
    assert totals["paid_total"] == 0
    assert totals["pending_difference"] == 10000
    assert await reconciliation.sync_summary("order_1") is False
