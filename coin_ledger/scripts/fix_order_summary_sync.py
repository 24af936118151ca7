"""Order Summary Sync Script - Repair order transactions and summary totals.

Creates missing capture transactions for recent orders and rewrites summary
payment totals that disagree with them. Safe to run repeatedly.

Usage:
    # Reconcile the 200 most recent orders
    python -m coin_ledger.scripts.fix_order_summary_sync

    # Reconcile a single order
    python -m coin_ledger.scripts.fix_order_summary_sync --action order --order-id order_01H...

    # Run one coin expiry sweep
    python -m coin_ledger.scripts.fix_order_summary_sync --action expire --limit 500

Options:
    --action: sync, order, expire
    --order-id: Order to reconcile (order action)
    --limit: Batch size (default: from settings)
"""

import argparse
import asyncio
import logging

from coin_ledger.core.config import get_settings
from coin_ledger.db.engine import Database
from coin_ledger.schemas.reconciliation import ReconciliationReport
from coin_ledger.services.ledger_service import WalletLedgerService
from coin_ledger.services.reconciliation_service import OrderReconciliationService
from coin_ledger.tasks.wallet import sweep_expired_coins

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def print_report(report: ReconciliationReport) -> None:
    print("\n=== Order summary sync ===")
    print(f"Orders analyzed:       {report.orders_analyzed}")
    print(f"Transactions created:  {report.transactions_created}")
    print(f"Summaries fixed:       {report.summaries_fixed}")
    print(f"Already correct:       {report.already_correct}")
    print(f"Errors:                {report.errors}")


async def main(args: argparse.Namespace) -> None:
    """Main entry point."""
    settings = get_settings()
    database = Database.from_settings(settings)
    try:
        if args.action == "sync":
            service = OrderReconciliationService(database.session_factory)
            report = await service.reconcile_recent(args.limit or settings.reconcile_batch_limit)
            print_report(report)
        elif args.action == "order":
            if not args.order_id:
                print("Error: --order-id is required for order action")
                return
            service = OrderReconciliationService(database.session_factory)
            report = await service.reconcile_order(args.order_id)
            print_report(report)
        elif args.action == "expire":
            ledger = WalletLedgerService(database.session_factory)
            result = await sweep_expired_coins(ledger, args.limit or settings.expiry_batch_limit)
            logger.info(f"Expiry sweep: {result}")
        else:
            print(f"Unknown action: {args.action}")
    finally:
        await database.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Order summary sync script")
    parser.add_argument(
        "--action",
        type=str,
        choices=["sync", "order", "expire"],
        default="sync",
        help="Action to perform",
    )
    parser.add_argument(
        "--order-id",
        type=str,
        help="Order to reconcile",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Batch size",
    )

    args = parser.parse_args()
    asyncio.run(main(args))
