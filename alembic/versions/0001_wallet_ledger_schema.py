"""wallet_ledger_schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19

Wallet account and append-only wallet ledger tables.
"""

from collections.abc import Sequence

import sqlalchemy as sa
import sqlmodel

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create wallet tables."""
    # Wallet account table
    op.create_table(
        "wallet_account",
        sa.Column("customer_id", sqlmodel.sql.sqltypes.AutoString(length=64), nullable=False),
        sa.Column("actual_balance", sa.BigInteger(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("customer_id"),
    )

    # Wallet ledger table
    op.create_table(
        "wallet_ledger",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("customer_id", sqlmodel.sql.sqltypes.AutoString(length=64), nullable=False),
        sa.Column("order_id", sqlmodel.sql.sqltypes.AutoString(length=64), nullable=True),
        sa.Column(
            "type",
            sa.Enum("EARN", "SPEND", "REVERSE", name="ledgerentrytype"),
            nullable=False,
        ),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("reference_id", sqlmodel.sql.sqltypes.AutoString(length=128), nullable=True),
        sa.Column("idempotency_key", sqlmodel.sql.sqltypes.AutoString(length=128), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("idempotency_key"),
    )
    op.create_index(op.f("ix_wallet_ledger_customer_id"), "wallet_ledger", ["customer_id"], unique=False)
    op.create_index(op.f("ix_wallet_ledger_created_at"), "wallet_ledger", ["created_at"], unique=False)
    op.create_index("ix_wallet_ledger_order_type", "wallet_ledger", ["order_id", "type"], unique=False)
    op.create_index(
        "ix_wallet_ledger_customer_reference",
        "wallet_ledger",
        ["customer_id", "reference_id"],
        unique=False,
    )


def downgrade() -> None:
    """Drop wallet tables."""
    op.drop_index("ix_wallet_ledger_customer_reference", table_name="wallet_ledger")
    op.drop_index("ix_wallet_ledger_order_type", table_name="wallet_ledger")
    op.drop_index(op.f("ix_wallet_ledger_created_at"), table_name="wallet_ledger")
    op.drop_index(op.f("ix_wallet_ledger_customer_id"), table_name="wallet_ledger")
    op.drop_table("wallet_ledger")
    op.drop_table("wallet_account")
