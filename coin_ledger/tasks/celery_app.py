"""Celery configuration."""

import asyncio

from celery import Celery
from celery.signals import setup_logging as celery_setup_logging

from coin_ledger.core.config import get_settings
from coin_ledger.core.logging_config import setup_logging

settings = get_settings()

celery_app = Celery(
    "coin_ledger_tasks",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=[
        "coin_ledger.tasks.wallet",
        "coin_ledger.tasks.reconciliation",
    ],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    result_expires=3600,
    task_default_retry_delay=60,
    task_max_retries=5,
    task_routes={
        "wallet.*": {"queue": "wallet"},
        "reconciliation.*": {"queue": "reconciliation"},
    },
    beat_schedule={
        "expire-coins": {
            "task": "wallet.expire_coins",
            "schedule": settings.expiry_sweep_interval_seconds,
        },
        "sync-order-summaries": {
            "task": "reconciliation.sync_order_summaries",
            "schedule": settings.reconcile_interval_seconds,
        },
    },
)


@celery_setup_logging.connect
def configure_worker_logging(**kwargs) -> None:
    """Use the application log format in workers instead of Celery's own."""
    setup_logging(get_settings().log_level)


def run_async(coro):
    """Run async coroutine in sync context for Celery."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()
