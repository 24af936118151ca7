"""Order reconciliation tasks.

- Summary sync: repair order transactions and summary totals of recent orders
"""

import logging
import time

from coin_ledger.core.config import get_settings
from coin_ledger.db.engine import Database
from coin_ledger.services.reconciliation_service import OrderReconciliationService
from coin_ledger.tasks.celery_app import celery_app, run_async

logger = logging.getLogger(__name__)


@celery_app.task(name="reconciliation.sync_order_summaries")
def sync_order_summaries(limit: int | None = None) -> dict:
    """Periodic reconciliation of the most recent orders.

    Args:
        limit: Orders to scan, defaults to settings.reconcile_batch_limit

    Returns:
        Dict with reconciliation counters
    """
    return run_async(_sync_order_summaries_async(limit))


async def _sync_order_summaries_async(limit: int | None, database: Database | None = None) -> dict:
    """Async implementation of sync_order_summaries."""
    settings = get_settings()
    owns_database = database is None
    database = database or Database.from_settings(settings)

    start_time = time.time()
    try:
        service = OrderReconciliationService(database.session_factory)
        report = await service.reconcile_recent(limit or settings.reconcile_batch_limit)
        elapsed = time.time() - start_time
        logger.info(f"[sync_order_summaries] finished took={elapsed:.3f}s")
        return {"success": report.errors == 0, **report.model_dump()}
    except Exception as e:
        logger.exception(f"[sync_order_summaries] run failed error={e}")
        return {"success": False, "error": str(e)}
    finally:
        if owns_database:
            await database.dispose()
