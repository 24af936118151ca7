from datetime import timedelta

import pytest
import sqlalchemy as sa
from sqlmodel import select

from coin_ledger.core.exceptions import (
    InsufficientBalanceError,
    NegativeBalanceError,
    ValidationError,
)
from coin_ledger.models.wallet import LedgerEntryType, WalletAccount, WalletLedger
from coin_ledger.services.ledger_service import reward_for_order_total
from coin_ledger.utils.helpers import utcnow


async def _ledger_rows(database, customer_id: str) -> list[WalletLedger]:
    async with database.session() as session:
        result = await session.execute(
            select(WalletLedger)
            .where(WalletLedger.customer_id == customer_id)
            .order_by(WalletLedger.id)
        )
        return list(result.scalars().all())


async def _cached_balance(database, customer_id: str) -> int:
    async with database.session() as session:
        account = await session.get(WalletAccount, customer_id)
        return account.actual_balance


@pytest.mark.asyncio
async def test_earn_is_idempotent_per_order(ledger, database):
    first = await ledger.earn_coins("cus_1", "order_1", 100)
    assert first.applied is True
    assert first.actual_balance == 100

    second = await ledger.earn_coins("cus_1", "order_1", 100)
    assert second.applied is False
    assert second.actual_balance == 100

    rows = await _ledger_rows(database, "cus_1")
    assert len(rows) == 1
    assert rows[0].idempotency_key == "earn:order_1"
    assert rows[0].type == LedgerEntryType.EARN


@pytest.mark.asyncio
async def test_earn_stores_normalised_expiry(ledger, database):
    await ledger.earn_coins("cus_1", "order_1", 100, expires_at="2027-03-01T10:00:00+05:30")

    rows = await _ledger_rows(database, "cus_1")
    assert rows[0].meta["expires_at"] == "2027-03-01T04:30:00Z"


@pytest.mark.asyncio
async def test_snapshot_timestamps_are_utc_aware(ledger):
    before = utcnow()
    await ledger.earn_coins("cus_1", "order_1", 100)

    snapshot = await ledger.get_wallet_snapshot("cus_1")
    created_at = snapshot.transactions[0].created_at
    assert created_at.tzinfo is not None
    assert created_at.utcoffset() == timedelta(0)
    assert created_at >= before - timedelta(seconds=1)


@pytest.mark.asyncio
async def test_refunded_for_order_sums_refund_credits(ledger):
    await ledger.credit_adjustment("cus_1", 120, reference_id="refund-return:order_1", idempotency_key="r1")
    await ledger.credit_adjustment("cus_1", 30, reference_id="refund-damaged:order_1", idempotency_key="r2")
    await ledger.credit_adjustment("cus_1", 500, reference_id="refund-return:order_11", idempotency_key="r3")
    await ledger.credit_adjustment("cus_1", 70)

    assert await ledger.refunded_for_order("cus_1", "order_1") == 150
    assert await ledger.refunded_for_order("cus_2", "order_1") == 0


@pytest.mark.asyncio
async def test_customer_c1_spends_into_deficit_after_reversal(ledger, database):
    earned = await ledger.earn_coins("C1", "O1", 250)
    assert (earned.applied, earned.actual_balance) == (True, 250)

    spent = await ledger.spend_coins("C1", 100, reference_id="discount-1")
    assert (spent.applied, spent.actual_balance) == (True, 150)

    reversed_ = await ledger.reverse_earned("O1")
    assert reversed_.applied is True
    assert reversed_.actual_balance == -100
    assert reversed_.customer_id == "C1"

    with pytest.raises(NegativeBalanceError) as exc_info:
        await ledger.spend_coins("C1", 1)
    assert exc_info.value.code == "NEGATIVE_BALANCE"
    assert exc_info.value.details["pending_adjustment"] == 100
    assert await _cached_balance(database, "C1") == -100
    rows = await _ledger_rows(database, "C1")
    assert [row.type for row in rows] == [
        LedgerEntryType.EARN,
        LedgerEntryType.SPEND,
        LedgerEntryType.REVERSE,
    ]


@pytest.mark.asyncio
async def test_spend_over_balance_is_rejected_and_balance_unchanged(ledger, database):
    await ledger.earn_coins("cus_1", "order_1", 300)

    with pytest.raises(InsufficientBalanceError) as exc_info:
        await ledger.spend_coins("cus_1", 301)
    assert exc_info.value.code == "INSUFFICIENT_BALANCE"
    assert exc_info.value.details == {"required": 301, "available": 300}

    assert await _cached_balance(database, "cus_1") == 300
    assert len(await _ledger_rows(database, "cus_1")) == 1


@pytest.mark.asyncio
async def test_spend_replay_is_noop_even_when_balance_is_now_short(ledger):
    await ledger.earn_coins("cus_1", "order_1", 300)

    first = await ledger.spend_coins("cus_1", 200, idempotency_key="spend:CODE1")
    assert first.applied is True
    assert first.actual_balance == 100

    replay = await ledger.spend_coins("cus_1", 200, idempotency_key="spend:CODE1")
    assert replay.applied is False
    assert replay.actual_balance == 100


@pytest.mark.asyncio
async def test_spend_on_unknown_customer_is_insufficient(ledger):
    with pytest.raises(InsufficientBalanceError):
        await ledger.spend_coins("new_customer", 1)


@pytest.mark.asyncio
async def test_reverse_targets_oldest_earn(ledger, database):
    await ledger.earn_coins("cus_1", "order_1", 120)
    # Correction entry for the same order under a different key
    async with database.session() as session:
        session.add(
            WalletLedger(
                customer_id="cus_1",
                order_id="order_1",
                type=LedgerEntryType.EARN,
                amount=40,
                idempotency_key="earn-correction:order_1",
            )
        )
        account = await session.get(WalletAccount, "cus_1")
        account.actual_balance += 40
        session.add(account)

    result = await ledger.reverse_earned("order_1", reason="order_canceled")
    assert result.applied is True
    assert result.actual_balance == 40

    rows = await _ledger_rows(database, "cus_1")
    reverse = [row for row in rows if row.type == LedgerEntryType.REVERSE]
    assert len(reverse) == 1
    assert reverse[0].amount == -120
    assert reverse[0].idempotency_key == "reverse:order_1"
    assert reverse[0].meta == {"reason": "order_canceled"}


@pytest.mark.asyncio
async def test_reverse_without_earn_is_noop(ledger):
    result = await ledger.reverse_earned("missing_order")
    assert result.applied is False
    assert result.actual_balance is None
    assert result.customer_id is None


@pytest.mark.asyncio
async def test_reverse_twice_applies_once(ledger):
    await ledger.earn_coins("cus_1", "order_1", 50)
    assert (await ledger.reverse_earned("order_1")).applied is True

    again = await ledger.reverse_earned("order_1")
    assert again.applied is False
    assert again.actual_balance == 0
    assert again.customer_id == "cus_1"


@pytest.mark.asyncio
async def test_credit_adjustment_defaults_reason(ledger, database):
    result = await ledger.credit_adjustment("cus_1", 75, idempotency_key="manual:1")
    assert result.applied is True
    assert result.actual_balance == 75

    replay = await ledger.credit_adjustment("cus_1", 75, idempotency_key="manual:1")
    assert replay.applied is False

    rows = await _ledger_rows(database, "cus_1")
    assert len(rows) == 1
    assert rows[0].order_id is None
    assert rows[0].type == LedgerEntryType.EARN
    assert rows[0].meta == {"reason": "adjustment"}


@pytest.mark.asyncio
async def test_find_spend_by_reference_returns_latest(ledger):
    await ledger.earn_coins("cus_1", "order_1", 500)
    await ledger.spend_coins("cus_1", 100, reference_id="COINS-1", metadata={"discount_code": "COINS-1"})
    await ledger.spend_coins("cus_1", 150, reference_id="COINS-1")

    record = await ledger.find_spend_by_reference("cus_1", "COINS-1")
    assert record is not None
    assert record.amount_minor == 150

    assert await ledger.find_spend_by_reference("cus_1", "unknown") is None
    assert await ledger.find_spend_by_reference("", "COINS-1") is None


@pytest.mark.asyncio
async def test_snapshot_repairs_corrupted_cached_balance(ledger, database):
    await ledger.earn_coins("cus_1", "order_1", 400)
    await ledger.spend_coins("cus_1", 150)

    async with database.session() as session:
        await session.execute(
            sa.update(WalletAccount)
            .where(WalletAccount.customer_id == "cus_1")
            .values(actual_balance=9999)
        )

    snapshot = await ledger.get_wallet_snapshot("cus_1")
    assert snapshot.actual_balance_minor == 250
    assert snapshot.display_balance_minor == 250
    assert snapshot.pending_adjustment_minor == 0
    assert await _cached_balance(database, "cus_1") == 250

    assert [tx.amount for tx in snapshot.transactions] == [-150, 400]
    assert snapshot.transactions[0].transaction_type == LedgerEntryType.SPEND


@pytest.mark.asyncio
async def test_snapshot_hides_deficit_from_display_balance(ledger):
    await ledger.earn_coins("cus_1", "order_1", 500)
    await ledger.spend_coins("cus_1", 500)
    await ledger.reverse_earned("order_1")

    snapshot = await ledger.get_wallet_snapshot("cus_1")
    assert snapshot.actual_balance_minor == -500
    assert snapshot.display_balance_minor == 0
    assert snapshot.pending_adjustment_minor == 500


@pytest.mark.asyncio
async def test_snapshot_of_new_customer_is_empty(ledger):
    snapshot = await ledger.get_wallet_snapshot("fresh")
    assert snapshot.actual_balance_minor == 0
    assert snapshot.transactions == []


@pytest.mark.asyncio
async def test_expired_earns_are_swept_once(ledger, database):
    past = utcnow() - timedelta(days=1)
    future = utcnow() + timedelta(days=10)
    await ledger.earn_coins("cus_1", "order_old", 100, expires_at=past)
    await ledger.earn_coins("cus_1", "order_new", 70, expires_at=future)
    await ledger.earn_coins("cus_1", "order_forever", 30)

    worklist = await ledger.expire_earned_coins()
    assert [(item.customer_id, item.amount) for item in worklist] == [("cus_1", 100)]

    earn = worklist[0]
    result = await ledger.apply_expiry(earn.id, earn.customer_id, earn.amount)
    assert result.applied is True
    assert result.actual_balance == 100

    replay = await ledger.apply_expiry(earn.id, earn.customer_id, earn.amount)
    assert replay.applied is False

    assert await ledger.expire_earned_coins() == []

    rows = await _ledger_rows(database, "cus_1")
    expiry = rows[-1]
    assert expiry.type == LedgerEntryType.SPEND
    assert expiry.amount == -100
    assert expiry.reference_id == f"expire:{earn.id}"
    assert expiry.meta == {"reason": "expiry", "earn_id": earn.id}


@pytest.mark.asyncio
async def test_reversed_earn_is_not_expired(ledger):
    await ledger.earn_coins("cus_1", "order_1", 100, expires_at=utcnow() - timedelta(hours=1))
    await ledger.reverse_earned("order_1")

    assert await ledger.expire_earned_coins() == []


@pytest.mark.asyncio
async def test_expire_respects_limit_and_order(ledger):
    past = utcnow() - timedelta(days=2)
    for index in range(3):
        await ledger.earn_coins(f"cus_{index}", f"order_{index}", 10 + index, expires_at=past)

    worklist = await ledger.expire_earned_coins(limit=2)
    assert [item.customer_id for item in worklist] == ["cus_0", "cus_1"]


@pytest.mark.asyncio
async def test_list_expiring_coins_buckets(ledger):
    now = utcnow()
    await ledger.earn_coins("cus_1", "order_a", 10, expires_at=now + timedelta(days=3, hours=1))
    await ledger.earn_coins("cus_1", "order_b", 20, expires_at=now + timedelta(days=12))
    await ledger.earn_coins("cus_1", "order_c", 30, expires_at=now + timedelta(days=25))
    await ledger.earn_coins("cus_1", "order_d", 40, expires_at=now + timedelta(days=90))

    response = await ledger.list_expiring_coins("cus_1")
    assert response.expiring_soon == 60
    assert [coin.order_id for coin in response.coins_expiring] == ["order_a", "order_b", "order_c"]
    assert response.coins_expiring[0].days_until_expiry == 3
    assert response.earliest_expiry == response.coins_expiring[0].expires_at
    assert response.breakdown.expiring_in_7_days == 10
    assert response.breakdown.expiring_in_15_days == 30
    assert response.breakdown.expiring_in_30_days == 60


@pytest.mark.parametrize(
    "amount",
    [0, -5, 1.5, "10", True],
)
@pytest.mark.asyncio
async def test_invalid_amounts_are_rejected(ledger, amount):
    with pytest.raises(ValidationError):
        await ledger.earn_coins("cus_1", "order_1", amount)


@pytest.mark.asyncio
async def test_missing_customer_is_rejected(ledger):
    with pytest.raises(ValidationError):
        await ledger.spend_coins("", 10)


@pytest.mark.asyncio
async def test_unknown_metadata_key_is_rejected(ledger, database):
    with pytest.raises(ValidationError):
        await ledger.earn_coins("cus_1", "order_1", 10, metadata={"colour": "blue"})

    assert await _ledger_rows(database, "cus_1") == []


def test_reward_rounds_half_up():
    assert reward_for_order_total(10050) == 101
    assert reward_for_order_total(10049) == 100
    assert reward_for_order_total(49) == 0
    assert reward_for_order_total(0) == 0
