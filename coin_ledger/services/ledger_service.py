"""Ledger Service - Reward-coin wallet accounting.

Every balance mutation runs in one database transaction:

1. lock the customer's ``wallet_account`` row (created on first use),
2. insert a ``wallet_ledger`` row inside a SAVEPOINT; a unique-key conflict on
   ``idempotency_key`` rolls back only the savepoint and turns the call into
   a no-op (``applied=False``),
3. otherwise move ``actual_balance`` by the signed amount and commit.

The account row lock serialises concurrent mutations for one customer.
Different customers never contend.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any

import pydantic
import sqlalchemy as sa
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import aliased
from sqlmodel import select

from coin_ledger.core.exceptions import (
    InsufficientBalanceError,
    NegativeBalanceError,
    ValidationError,
    WalletAccountError,
)
from coin_ledger.models.wallet import LedgerEntryType, WalletAccount, WalletLedger
from coin_ledger.schemas.ledger import (
    ExpiredEarn,
    ExpiringCoin,
    ExpiringCoinsBreakdown,
    ExpiringCoinsResponse,
    LedgerEntryResponse,
    LedgerMetadata,
    LedgerResult,
    SpendRecord,
    WalletSnapshot,
)
from coin_ledger.utils.amount import round_minor
from coin_ledger.utils.helpers import ensure_utc, format_utc_datetime, parse_utc_datetime, utcnow

logger = logging.getLogger(__name__)

DEFAULT_EXPIRY_BATCH = 500
DEFAULT_SNAPSHOT_LIMIT = 50


def earn_key(order_id: str) -> str:
    return f"earn:{order_id}"


def reverse_key(order_id: str) -> str:
    return f"reverse:{order_id}"


def expire_key(earn_id: int) -> str:
    return f"expire:{earn_id}"


def reward_for_order_total(total_minor: int, rate: Decimal = Decimal("0.01")) -> int:
    """Coins earned for a paid amount, rounded half-up to whole minor units.

    Example: 10050 paise at 1% -> 101
    """
    if total_minor <= 0:
        return 0
    return round_minor(Decimal(total_minor) * rate)


def _require_id(value: str | None, name: str) -> str:
    if not value or not str(value).strip():
        raise ValidationError(f"{name} is required", {"field": name})
    return str(value)


def _require_positive_amount(amount_minor: Any) -> int:
    # bool is an int subclass; reject it along with floats and Decimals
    if isinstance(amount_minor, bool) or not isinstance(amount_minor, int):
        raise ValidationError(
            "amount_minor must be an integer number of minor units",
            {"amount_minor": repr(amount_minor)},
        )
    if amount_minor <= 0:
        raise ValidationError("amount_minor must be positive", {"amount_minor": amount_minor})
    return amount_minor


def _build_metadata(metadata: dict[str, Any] | None, **extra: Any) -> dict[str, Any]:
    try:
        return LedgerMetadata.model_validate({**(metadata or {}), **extra}).to_json()
    except pydantic.ValidationError as e:
        raise ValidationError("Invalid ledger metadata", {"errors": e.errors()}) from e


class WalletLedgerService:
    """Service for reward-coin balance mutations and wallet reads."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        snapshot_limit: int = DEFAULT_SNAPSHOT_LIMIT,
    ) -> None:
        self._session_factory = session_factory
        self.snapshot_limit = snapshot_limit

    # =========================================================================
    # Transaction helpers
    # =========================================================================

    @asynccontextmanager
    async def _transaction(self) -> AsyncGenerator[AsyncSession, None]:
        """One session, one transaction: commit on success, rollback on error."""
        async with self._session_factory() as session:
            async with session.begin():
                yield session

    async def _lock_account(self, session: AsyncSession, customer_id: str) -> WalletAccount:
        """Ensure the account row exists and hold its row lock until commit."""
        stmt = (
            select(WalletAccount)
            .where(WalletAccount.customer_id == customer_id)
            .with_for_update()
        )
        account = (await session.execute(stmt)).scalar_one_or_none()
        if account is not None:
            return account

        account = WalletAccount(customer_id=customer_id, actual_balance=0)
        try:
            async with session.begin_nested():
                session.add(account)
                await session.flush()
            return account
        except IntegrityError:
            # A concurrent request created the row first
            logger.debug(f"[ledger] wallet_account race on create customer_id={customer_id}")

        account = (await session.execute(stmt)).scalar_one_or_none()
        if account is None:
            raise WalletAccountError(
                "Failed to load wallet account", {"customer_id": customer_id}
            )
        return account

    async def _insert_entry(self, session: AsyncSession, entry: WalletLedger) -> bool:
        """Insert a ledger row; False when its idempotency key already exists."""
        try:
            async with session.begin_nested():
                session.add(entry)
                await session.flush()
        except IntegrityError:
            logger.info(
                f"[ledger] duplicate idempotency_key={entry.idempotency_key} "
                f"customer_id={entry.customer_id}, skipped"
            )
            return False
        return True

    async def _apply(
        self,
        session: AsyncSession,
        account: WalletAccount,
        entry: WalletLedger,
    ) -> LedgerResult:
        if not await self._insert_entry(session, entry):
            return LedgerResult(applied=False, actual_balance=account.actual_balance)

        account.actual_balance = account.actual_balance + entry.amount
        account.updated_at = utcnow()
        session.add(account)

        logger.info(
            f"[ledger] {entry.type.value} customer_id={entry.customer_id} "
            f"amount={entry.amount} balance={account.actual_balance}"
        )
        return LedgerResult(applied=True, actual_balance=account.actual_balance)

    async def _key_exists(self, session: AsyncSession, idempotency_key: str) -> bool:
        result = await session.execute(
            select(WalletLedger.id).where(WalletLedger.idempotency_key == idempotency_key)
        )
        return result.first() is not None

    # =========================================================================
    # Mutations
    # =========================================================================

    async def earn_coins(
        self,
        customer_id: str,
        order_id: str,
        amount_minor: int,
        expires_at: datetime | str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> LedgerResult:
        """Credit the reward for an order.

        Keyed by ``earn:{order_id}`` so repeated webhook deliveries credit once.

        Args:
            customer_id: Wallet owner
            order_id: Rewarded order
            amount_minor: Positive coin amount (caller rounds)
            expires_at: When the coins lapse; stored in metadata for the sweep
            metadata: Extra recognised metadata keys

        Returns:
            LedgerResult: applied flag and resulting balance

        Raises:
            ValidationError: Missing ids, non-positive amount or bad metadata
        """
        customer_id = _require_id(customer_id, "customer_id")
        order_id = _require_id(order_id, "order_id")
        amount = _require_positive_amount(amount_minor)
        meta = _build_metadata(metadata, expires_at=expires_at)

        async with self._transaction() as session:
            account = await self._lock_account(session, customer_id)
            entry = WalletLedger(
                customer_id=customer_id,
                order_id=order_id,
                type=LedgerEntryType.EARN,
                amount=amount,
                idempotency_key=earn_key(order_id),
                meta=meta,
            )
            return await self._apply(session, account, entry)

    async def spend_coins(
        self,
        customer_id: str,
        amount_minor: int,
        order_id: str | None = None,
        reference_id: str | None = None,
        idempotency_key: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> LedgerResult:
        """Debit coins for a redemption.

        A deficit account may not spend at all, whatever the amount.

        Raises:
            ValidationError: Missing customer or non-positive amount
            NegativeBalanceError: Balance is below zero
            InsufficientBalanceError: Balance is below the requested amount
        """
        customer_id = _require_id(customer_id, "customer_id")
        amount = _require_positive_amount(amount_minor)
        meta = _build_metadata(metadata)

        async with self._transaction() as session:
            account = await self._lock_account(session, customer_id)

            # A replay of an applied spend is a no-op even if the balance has moved
            # since. The account lock makes this read race-free for the customer.
            if idempotency_key and await self._key_exists(session, idempotency_key):
                return LedgerResult(applied=False, actual_balance=account.actual_balance)

            if account.actual_balance < 0:
                raise NegativeBalanceError(balance=account.actual_balance)
            if account.actual_balance < amount:
                raise InsufficientBalanceError(required=amount, available=account.actual_balance)

            entry = WalletLedger(
                customer_id=customer_id,
                order_id=order_id or None,
                type=LedgerEntryType.SPEND,
                amount=-amount,
                reference_id=reference_id or None,
                idempotency_key=idempotency_key or None,
                meta=meta,
            )
            return await self._apply(session, account, entry)

    async def reverse_earned(self, order_id: str, reason: str | None = None) -> LedgerResult:
        """Claw back the reward of a cancelled or refunded order.

        Reverses the oldest EARN row of the order by exactly its amount. Returns
        ``applied=False`` with ``actual_balance=None`` when nothing was earned.
        """
        order_id = _require_id(order_id, "order_id")
        meta = _build_metadata({"reason": reason} if reason else None)

        async with self._transaction() as session:
            result = await session.execute(
                select(WalletLedger)
                .where(
                    WalletLedger.order_id == order_id,
                    WalletLedger.type == LedgerEntryType.EARN,
                )
                .order_by(WalletLedger.id.asc())
                .limit(1)
            )
            earned = result.scalar_one_or_none()
            if earned is None or abs(earned.amount) <= 0:
                logger.info(f"[ledger] nothing to reverse for order_id={order_id}")
                return LedgerResult(applied=False, actual_balance=None)

            customer_id = earned.customer_id
            earned_amount = abs(earned.amount)
            account = await self._lock_account(session, customer_id)

            entry = WalletLedger(
                customer_id=customer_id,
                order_id=order_id,
                type=LedgerEntryType.REVERSE,
                amount=-earned_amount,
                idempotency_key=reverse_key(order_id),
                meta=meta,
            )
            outcome = await self._apply(session, account, entry)
            outcome.customer_id = customer_id
            return outcome

    async def credit_adjustment(
        self,
        customer_id: str,
        amount_minor: int,
        reference_id: str | None = None,
        idempotency_key: str | None = None,
        reason: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> LedgerResult:
        """Operator or refund credit, recorded as an EARN row without an order."""
        customer_id = _require_id(customer_id, "customer_id")
        amount = _require_positive_amount(amount_minor)
        meta = _build_metadata(metadata, reason=reason or "adjustment")

        async with self._transaction() as session:
            account = await self._lock_account(session, customer_id)
            entry = WalletLedger(
                customer_id=customer_id,
                order_id=None,
                type=LedgerEntryType.EARN,
                amount=amount,
                reference_id=reference_id or None,
                idempotency_key=idempotency_key or None,
                meta=meta,
            )
            return await self._apply(session, account, entry)

    async def apply_expiry(self, earn_id: int, customer_id: str, amount_minor: int) -> LedgerResult:
        """Expire one earned entry found by ``expire_earned_coins``.

        Keyed by ``expire:{earn_id}`` so re-running a sweep is safe.
        """
        customer_id = _require_id(customer_id, "customer_id")
        if isinstance(earn_id, bool) or not isinstance(earn_id, int) or earn_id <= 0:
            raise ValidationError("earn_id must be a positive integer", {"earn_id": earn_id})
        if isinstance(amount_minor, bool) or not isinstance(amount_minor, int) or amount_minor == 0:
            raise ValidationError("amount_minor must be a non-zero integer")
        amount = abs(amount_minor)
        meta = _build_metadata({"reason": "expiry", "earn_id": earn_id})

        async with self._transaction() as session:
            account = await self._lock_account(session, customer_id)
            entry = WalletLedger(
                customer_id=customer_id,
                order_id=None,
                type=LedgerEntryType.SPEND,
                amount=-amount,
                reference_id=expire_key(earn_id),
                idempotency_key=expire_key(earn_id),
                meta=meta,
            )
            return await self._apply(session, account, entry)

    # =========================================================================
    # Reads
    # =========================================================================

    async def find_spend_by_reference(
        self,
        customer_id: str,
        reference_id: str,
    ) -> SpendRecord | None:
        """Latest SPEND for a reference, e.g. "was this discount already paid for"."""
        if not customer_id or not reference_id:
            return None

        async with self._session_factory() as session:
            result = await session.execute(
                select(WalletLedger)
                .where(
                    WalletLedger.customer_id == customer_id,
                    WalletLedger.reference_id == reference_id,
                    WalletLedger.type == LedgerEntryType.SPEND,
                )
                .order_by(WalletLedger.id.desc())
                .limit(1)
            )
            entry = result.scalar_one_or_none()
            if entry is None:
                return None
            return SpendRecord(
                amount_minor=abs(entry.amount),
                metadata=entry.meta or {},
                created_at=ensure_utc(entry.created_at),
            )

    async def refunded_for_order(self, customer_id: str, order_id: str) -> int:
        """Coins already credited back for an order's coin discount, any reason."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(sa.func.coalesce(sa.func.sum(WalletLedger.amount), 0)).where(
                    WalletLedger.customer_id == customer_id,
                    WalletLedger.type == LedgerEntryType.EARN,
                    WalletLedger.reference_id.startswith("refund-"),
                    WalletLedger.reference_id.endswith(f":{order_id}", autoescape=True),
                )
            )
            return int(result.scalar_one())

    async def _reconcile_balance(self, session: AsyncSession, customer_id: str) -> int:
        account = await self._lock_account(session, customer_id)
        result = await session.execute(
            select(sa.func.coalesce(sa.func.sum(WalletLedger.amount), 0)).where(
                WalletLedger.customer_id == customer_id
            )
        )
        ledger_sum = int(result.scalar_one())
        if ledger_sum != account.actual_balance:
            logger.warning(
                f"[ledger] balance drift customer_id={customer_id} "
                f"cached={account.actual_balance} ledger={ledger_sum}, repaired"
            )
            account.actual_balance = ledger_sum
            account.updated_at = utcnow()
            session.add(account)
        return ledger_sum

    async def get_wallet_snapshot(self, customer_id: str) -> WalletSnapshot:
        """Reconcile the cached balance with the ledger, then describe the wallet.

        Returns:
            WalletSnapshot: actual, display (never negative) and pending
            adjustment balances with the most recent ledger rows
        """
        customer_id = _require_id(customer_id, "customer_id")

        async with self._transaction() as session:
            actual = await self._reconcile_balance(session, customer_id)

        async with self._session_factory() as session:
            result = await session.execute(
                select(WalletLedger)
                .where(WalletLedger.customer_id == customer_id)
                .order_by(WalletLedger.created_at.desc(), WalletLedger.id.desc())
                .limit(self.snapshot_limit)
            )
            entries = result.scalars().all()

        return WalletSnapshot(
            actual_balance_minor=actual,
            display_balance_minor=max(actual, 0),
            pending_adjustment_minor=abs(actual) if actual < 0 else 0,
            transactions=[
                LedgerEntryResponse(
                    id=entry.id,
                    order_id=entry.order_id,
                    transaction_type=entry.type,
                    amount=entry.amount,
                    reference_id=entry.reference_id,
                    metadata=entry.meta or {},
                    created_at=ensure_utc(entry.created_at),
                )
                for entry in entries
            ],
        )

    def _open_earns_query(self):
        """EARN rows with an expiry that have not been expired or reversed yet."""
        expires_at = WalletLedger.meta["expires_at"].as_string()
        expired = aliased(WalletLedger)
        reversed_ = aliased(WalletLedger)
        return select(WalletLedger).where(
            WalletLedger.type == LedgerEntryType.EARN,
            expires_at.is_not(None),
            ~sa.exists().where(
                expired.idempotency_key
                == sa.literal("expire:") + sa.cast(WalletLedger.id, sa.String)
            ),
            ~sa.exists().where(
                reversed_.order_id == WalletLedger.order_id,
                reversed_.type == LedgerEntryType.REVERSE,
            ),
        ), expires_at

    async def expire_earned_coins(self, limit: int = DEFAULT_EXPIRY_BATCH) -> list[ExpiredEarn]:
        """Pull the next batch of EARN rows whose expiry has passed, oldest first.

        The caller applies ``apply_expiry`` to each item.
        """
        now = format_utc_datetime(utcnow())
        query, expires_at = self._open_earns_query()
        query = query.where(expires_at < now).order_by(WalletLedger.id.asc()).limit(limit)

        async with self._session_factory() as session:
            entries = (await session.execute(query)).scalars().all()

        return [
            ExpiredEarn(
                id=entry.id,
                customer_id=entry.customer_id,
                amount=entry.amount,
                metadata=entry.meta or {},
            )
            for entry in entries
        ]

    async def list_expiring_coins(
        self,
        customer_id: str,
        within_days: int = 30,
    ) -> ExpiringCoinsResponse:
        """Coins expiring within ``within_days``, soonest first."""
        customer_id = _require_id(customer_id, "customer_id")
        now_dt = utcnow()
        now = format_utc_datetime(now_dt)
        until = format_utc_datetime(now_dt + timedelta(days=within_days))

        query, expires_at = self._open_earns_query()
        query = query.where(
            WalletLedger.customer_id == customer_id,
            expires_at >= now,
            expires_at <= until,
        ).order_by(expires_at.asc(), WalletLedger.id.asc())

        async with self._session_factory() as session:
            entries = (await session.execute(query)).scalars().all()

        coins = []
        breakdown = ExpiringCoinsBreakdown()
        for entry in entries:
            expiry = entry.meta["expires_at"]
            days = (parse_utc_datetime(expiry) - now_dt).days
            coins.append(
                ExpiringCoin(
                    id=entry.id,
                    amount=entry.amount,
                    expires_at=expiry,
                    days_until_expiry=days,
                    order_id=entry.order_id,
                )
            )
            if days <= 7:
                breakdown.expiring_in_7_days += entry.amount
            if days <= 15:
                breakdown.expiring_in_15_days += entry.amount
            breakdown.expiring_in_30_days += entry.amount

        return ExpiringCoinsResponse(
            expiring_soon=sum(coin.amount for coin in coins),
            earliest_expiry=coins[0].expires_at if coins else None,
            breakdown=breakdown,
            coins_expiring=coins,
        )
