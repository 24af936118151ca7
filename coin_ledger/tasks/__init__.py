"""Coin Ledger Tasks Module."""

from coin_ledger.tasks.celery_app import celery_app
from coin_ledger.tasks.reconciliation import sync_order_summaries
from coin_ledger.tasks.wallet import expire_coins

__all__ = [
    "celery_app",
    "expire_coins",
    "sync_order_summaries",
]
