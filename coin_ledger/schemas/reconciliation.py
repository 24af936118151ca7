"""Reconciliation schemas - run counters and capture results."""

from pydantic import BaseModel


class ReconciliationReport(BaseModel):
    """Counters for one reconciliation run."""

    orders_analyzed: int = 0
    transactions_created: int = 0
    summaries_fixed: int = 0
    already_correct: int = 0
    errors: int = 0

    def merge(self, other: "ReconciliationReport") -> None:
        self.orders_analyzed += other.orders_analyzed
        self.transactions_created += other.transactions_created
        self.summaries_fixed += other.summaries_fixed
        self.already_correct += other.already_correct
        self.errors += other.errors


class CaptureResult(BaseModel):
    """Outcome of recording a confirmed capture against an order."""

    created: bool
    transaction_total: int
    summary_fixed: bool
