"""Wallet maintenance tasks.

- Coin expiry sweep: pull expired EARN entries and apply one expiry each
"""

import logging
import time

from coin_ledger.core.config import get_settings
from coin_ledger.db.engine import Database
from coin_ledger.services.ledger_service import WalletLedgerService
from coin_ledger.tasks.celery_app import celery_app, run_async

logger = logging.getLogger(__name__)


async def sweep_expired_coins(service: WalletLedgerService, limit: int) -> dict:
    """Expire one batch of earned coins.

    A failure on one entry is logged and counted; the rest of the batch
    still runs. Entries left behind are picked up by the next sweep.
    """
    worklist = await service.expire_earned_coins(limit=limit)
    applied = skipped = failed = 0

    for earn in worklist:
        try:
            result = await service.apply_expiry(earn.id, earn.customer_id, earn.amount)
        except Exception:
            failed += 1
            logger.exception(
                f"[expire_coins] failed earn_id={earn.id} customer_id={earn.customer_id}"
            )
            continue
        if result.applied:
            applied += 1
        else:
            skipped += 1

    return {
        "success": failed == 0,
        "scanned": len(worklist),
        "applied": applied,
        "skipped": skipped,
        "failed": failed,
    }


@celery_app.task(name="wallet.expire_coins")
def expire_coins(limit: int | None = None) -> dict:
    """Periodic expiry sweep scheduled by Celery beat.

    Args:
        limit: Max entries per run, defaults to settings.expiry_batch_limit

    Returns:
        Dict with sweep counters
    """
    return run_async(_expire_coins_async(limit))


async def _expire_coins_async(limit: int | None, database: Database | None = None) -> dict:
    """Async implementation of expire_coins."""
    settings = get_settings()
    owns_database = database is None
    database = database or Database.from_settings(settings)

    start_time = time.time()
    logger.info("[expire_coins] sweep started")

    try:
        service = WalletLedgerService(database.session_factory)
        result = await sweep_expired_coins(service, limit or settings.expiry_batch_limit)
        elapsed = time.time() - start_time
        logger.info(
            f"[expire_coins] scanned={result['scanned']} applied={result['applied']} "
            f"skipped={result['skipped']} failed={result['failed']} took={elapsed:.3f}s"
        )
        return result
    except Exception as e:
        logger.exception(f"[expire_coins] sweep failed error={e}")
        return {"success": False, "error": str(e)}
    finally:
        if owns_database:
            await database.dispose()
