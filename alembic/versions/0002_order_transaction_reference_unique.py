"""order_transaction_reference_unique

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-19

Make (order_id, reference_id) unique on the framework's order_transaction
table so a repeated capture insert fails instead of double counting.
Duplicates must be soft-deleted or removed before upgrading.
"""

from collections.abc import Sequence

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0002"
down_revision: str | Sequence[str] | None = "0001"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Add unique constraint on order transaction references."""
    op.create_unique_constraint(
        "uq_order_transaction_reference",
        "order_transaction",
        ["order_id", "reference_id"],
    )


def downgrade() -> None:
    """Drop unique constraint on order transaction references."""
    op.drop_constraint("uq_order_transaction_reference", "order_transaction", type_="unique")
