"""Coin Ledger - Wallet models.

Two tables back the reward-coin wallet:
1. Wallet Account - one row per customer holding the cached running balance
2. Wallet Ledger - append-only history of every balance-affecting event
"""

from datetime import datetime
from enum import Enum
from typing import Any

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from coin_ledger.utils.helpers import utcnow


class LedgerEntryType(str, Enum):
    """Ledger entry type. Assigned at creation and never changed."""

    EARN = "EARN"  # order reward or manual credit (amount > 0)
    SPEND = "SPEND"  # redemption or expiry (amount < 0)
    REVERSE = "REVERSE"  # clawback of an order reward (amount < 0)


class WalletAccount(SQLModel, table=True):
    """Wallet account - cached projection of a customer's ledger.

    ``actual_balance`` must equal ``SUM(wallet_ledger.amount)`` for the
    customer. It is repaired by the snapshot reconciliation, not by a
    database constraint. The value may be negative (deficit account).

    Attributes:
        customer_id: Customer identifier from the storefront
        actual_balance: Signed balance in minor units
        created_at: Row creation time
        updated_at: Last balance change
    """

    __tablename__ = "wallet_account"

    customer_id: str = Field(primary_key=True, max_length=64)
    actual_balance: int = Field(
        default=0,
        sa_column=sa.Column(sa.BigInteger, nullable=False, default=0),
        description="Signed balance in minor units",
    )

    created_at: datetime = Field(default_factory=utcnow, sa_type=sa.DateTime(timezone=True))
    updated_at: datetime = Field(default_factory=utcnow, sa_type=sa.DateTime(timezone=True))


class WalletLedger(SQLModel, table=True):
    """Wallet ledger - one immutable row per balance-affecting event.

    Corrections are new REVERSE or SPEND rows, never edits.

    Attributes:
        id: Monotonic insertion id
        customer_id: Wallet owner
        order_id: Linked order for rewards and reversals, null for adjustments
        type: EARN / SPEND / REVERSE
        amount: Signed minor units (positive for EARN)
        reference_id: External correlation id (discount code, expiry marker)
        idempotency_key: Unique dedup key; a duplicate insert is a no-op
        meta: JSON attributes (column ``metadata``), see schemas.ledger.LedgerMetadata
        created_at: Insertion time
    """

    __tablename__ = "wallet_ledger"
    __table_args__ = (
        sa.Index("ix_wallet_ledger_order_type", "order_id", "type"),
        sa.Index("ix_wallet_ledger_customer_reference", "customer_id", "reference_id"),
    )

    id: int | None = Field(default=None, primary_key=True)
    customer_id: str = Field(max_length=64, index=True)
    order_id: str | None = Field(default=None, max_length=64)

    type: LedgerEntryType = Field(description="Entry type")
    amount: int = Field(
        sa_column=sa.Column(sa.BigInteger, nullable=False),
        description="Signed amount in minor units",
    )
    reference_id: str | None = Field(default=None, max_length=128)
    idempotency_key: str | None = Field(default=None, max_length=128, unique=True)
    meta: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=sa.Column("metadata", sa.JSON, nullable=False),
    )

    created_at: datetime = Field(
        default_factory=utcnow, index=True, sa_type=sa.DateTime(timezone=True)
    )
