"""Reconciliation Service - Order payment bookkeeping repair.

Captured payments are the source of truth. For each order this service makes
sure there is an ``order_transaction`` per captured payment and that the
payment keys of ``order_summary.totals`` equal the sum of live transactions.

Running it again on a converged order changes nothing.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from decimal import Decimal
from typing import Any

import sqlalchemy as sa
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import select

from coin_ledger.core.exceptions import OrderNotFoundError, ValidationError
from coin_ledger.models.order import Order, OrderSummary, OrderTransaction, Payment
from coin_ledger.schemas.reconciliation import CaptureResult, ReconciliationReport
from coin_ledger.utils.amount import as_decimal, precision_tagged
from coin_ledger.utils.helpers import utcnow

logger = logging.getLogger(__name__)

SUMMARY_TOLERANCE = Decimal("0.01")
DEFAULT_RECONCILE_BATCH = 200
DEFAULT_CURRENCY = "inr"


def _json_number(value: Decimal) -> int | float:
    """JSON-safe number; integral values stay ints."""
    if value == value.to_integral_value():
        return int(value)
    return float(value)


class OrderReconciliationService:
    """Service for order transaction creation and summary repair."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @asynccontextmanager
    async def _transaction(self) -> AsyncGenerator[AsyncSession, None]:
        async with self._session_factory() as session:
            async with session.begin():
                yield session

    # =========================================================================
    # Building blocks
    # =========================================================================

    async def _insert_transaction(
        self,
        session: AsyncSession,
        order_id: str,
        amount_minor: int,
        currency_code: str,
        reference_id: str,
    ) -> bool:
        """Insert a capture transaction; False if ``(order_id, reference_id)`` exists."""
        transaction = OrderTransaction(
            order_id=order_id,
            amount=amount_minor,
            raw_amount=precision_tagged(amount_minor),
            currency_code=currency_code.lower(),
            reference="capture",
            reference_id=reference_id,
        )
        try:
            async with session.begin_nested():
                session.add(transaction)
                await session.flush()
        except IntegrityError:
            logger.info(
                f"[reconcile] transaction exists order_id={order_id} "
                f"reference_id={reference_id}, skipped"
            )
            return False

        logger.info(
            f"[reconcile] created transaction {transaction.id} order_id={order_id} "
            f"amount={amount_minor} reference_id={reference_id}"
        )
        return True

    async def _transaction_total(self, session: AsyncSession, order_id: str) -> int:
        result = await session.execute(
            select(sa.func.coalesce(sa.func.sum(OrderTransaction.amount), 0)).where(
                OrderTransaction.order_id == order_id,
                OrderTransaction.deleted_at.is_(None),
            )
        )
        return int(result.scalar_one())

    async def _sync_summary(self, session: AsyncSession, order_id: str) -> tuple[bool, int]:
        """Align summary payment totals with live transactions.

        Returns:
            (fixed, transaction_total)
        """
        actual = await self._transaction_total(session, order_id)

        result = await session.execute(
            select(OrderSummary)
            .where(OrderSummary.order_id == order_id)
            .execution_options(populate_existing=True)
        )
        summary = result.scalar_one_or_none()
        if summary is None:
            logger.warning(f"[reconcile] no order_summary for order_id={order_id}")
            return False, actual

        totals: dict[str, Any] = dict(summary.totals or {})
        actual_dec = Decimal(actual)
        paid_total = as_decimal(totals.get("paid_total"))
        transaction_total = as_decimal(totals.get("transaction_total"))

        if (
            abs(paid_total - actual_dec) <= SUMMARY_TOLERANCE
            and abs(transaction_total - actual_dec) <= SUMMARY_TOLERANCE
        ):
            return False, actual

        order_total = as_decimal(totals.get("current_order_total"))
        pending = max(Decimal(0), order_total - actual_dec)

        # Reassign so the JSON column is flagged dirty; unrelated keys are kept
        summary.totals = {
            **totals,
            "paid_total": actual,
            "raw_paid_total": precision_tagged(actual),
            "transaction_total": actual,
            "raw_transaction_total": precision_tagged(actual),
            "pending_difference": _json_number(pending),
            "raw_pending_difference": precision_tagged(pending),
        }
        summary.updated_at = utcnow()
        session.add(summary)

        logger.info(
            f"[reconcile] fixed summary order_id={order_id} "
            f"paid_total {paid_total} -> {actual}, pending={pending}"
        )
        return True, actual

    async def _reconcile_in_session(
        self,
        session: AsyncSession,
        order_id: str,
    ) -> ReconciliationReport:
        report = ReconciliationReport(orders_analyzed=1)

        order = await session.get(Order, order_id)
        if order is None:
            raise OrderNotFoundError(f"Order {order_id} not found", {"order_id": order_id})

        result = await session.execute(
            select(Payment)
            .where(Payment.order_id == order_id, Payment.captured_at.is_not(None))
            .order_by(Payment.captured_at.asc(), Payment.id.asc())
        )
        payments = result.scalars().all()
        if not payments:
            # Nothing captured yet; the summary is left to the framework
            return report

        count_result = await session.execute(
            select(sa.func.count())
            .select_from(OrderTransaction)
            .where(
                OrderTransaction.order_id == order_id,
                OrderTransaction.deleted_at.is_(None),
            )
        )
        existing = int(count_result.scalar_one())

        if existing == 0:
            for payment in payments:
                currency = payment.currency_code or order.currency_code or DEFAULT_CURRENCY
                created = await self._insert_transaction(
                    session,
                    order_id=order_id,
                    amount_minor=payment.amount,
                    currency_code=currency,
                    reference_id=payment.gateway_payment_id,
                )
                if created:
                    report.transactions_created += 1

        fixed, _ = await self._sync_summary(session, order_id)
        if fixed:
            report.summaries_fixed += 1
        elif existing > 0:
            report.already_correct += 1
        return report

    # =========================================================================
    # Public API
    # =========================================================================

    async def reconcile_order(self, order_id: str) -> ReconciliationReport:
        """Repair one order in its own transaction.

        Raises:
            OrderNotFoundError: Unknown order id
        """
        async with self._transaction() as session:
            return await self._reconcile_in_session(session, order_id)

    async def reconcile_recent(self, limit: int = DEFAULT_RECONCILE_BATCH) -> ReconciliationReport:
        """Repair the most recent orders that have a summary, newest first.

        Each order commits on its own; a failing order is logged, counted in
        ``errors`` and does not stop the batch.
        """
        async with self._session_factory() as session:
            result = await session.execute(
                select(Order.id)
                .join(OrderSummary, OrderSummary.order_id == Order.id)
                .order_by(Order.created_at.desc(), Order.id.desc())
                .limit(limit)
            )
            order_ids = list(result.scalars().all())

        logger.info(f"[reconcile] found {len(order_ids)} orders to analyze")

        report = ReconciliationReport()
        for order_id in order_ids:
            try:
                report.merge(await self.reconcile_order(order_id))
            except Exception:
                logger.exception(f"[reconcile] order_id={order_id} failed")
                report.merge(ReconciliationReport(orders_analyzed=1, errors=1))

        logger.info(
            f"[reconcile] done analyzed={report.orders_analyzed} "
            f"created={report.transactions_created} fixed={report.summaries_fixed} "
            f"correct={report.already_correct} errors={report.errors}"
        )
        return report

    async def record_capture(
        self,
        order_id: str,
        amount_minor: int,
        currency_code: str,
        reference_id: str,
    ) -> CaptureResult:
        """Record a confirmed gateway capture and resync the order summary.

        Safe to repeat for the same ``reference_id``.

        Raises:
            ValidationError: Missing ids or non-positive amount
            OrderNotFoundError: Unknown order id
        """
        if not order_id or not reference_id:
            raise ValidationError("order_id and reference_id are required")
        if isinstance(amount_minor, bool) or not isinstance(amount_minor, int) or amount_minor <= 0:
            raise ValidationError("amount_minor must be a positive integer", {"amount_minor": amount_minor})

        async with self._transaction() as session:
            order = await session.get(Order, order_id)
            if order is None:
                raise OrderNotFoundError(f"Order {order_id} not found", {"order_id": order_id})

            created = await self._insert_transaction(
                session,
                order_id=order_id,
                amount_minor=amount_minor,
                currency_code=currency_code or order.currency_code or DEFAULT_CURRENCY,
                reference_id=reference_id,
            )
            fixed, total = await self._sync_summary(session, order_id)

        return CaptureResult(created=created, transaction_total=total, summary_fixed=fixed)

    async def sync_summary(self, order_id: str) -> bool:
        """Recompute summary payment totals from live transactions only."""
        async with self._transaction() as session:
            fixed, _ = await self._sync_summary(session, order_id)
            return fixed

    async def get_order(self, order_id: str) -> Order | None:
        async with self._session_factory() as session:
            return await session.get(Order, order_id)
