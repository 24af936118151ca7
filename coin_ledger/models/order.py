"""Coin Ledger - Order payment models.

``order`` and ``payment`` belong to the e-commerce framework; they are mapped
here only with the columns the reconciliation reads. ``order_transaction``
rows and the ``order_summary.totals`` blob are written by this package.
"""

import uuid
from datetime import datetime
from typing import Any

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from coin_ledger.utils.helpers import utcnow


def generate_transaction_id() -> str:
    """Generate an order transaction id in the framework's prefixed style."""
    return f"ordtrans_{uuid.uuid4().hex}"


class Order(SQLModel, table=True):
    """Storefront order (read only).

    ``meta`` (column ``metadata``) is written by the storefront at checkout.
    Coin discounts are recorded there as ``coin_discount_code`` plus
    ``coin_discount_rupees`` (or ``coin_discount_minor``).
    """

    __tablename__ = "order"

    id: str = Field(primary_key=True, max_length=64)
    display_id: int | None = Field(default=None)
    customer_id: str | None = Field(default=None, max_length=64, index=True)
    currency_code: str = Field(default="inr", max_length=8)
    meta: dict[str, Any] | None = Field(
        default=None,
        sa_column=sa.Column("metadata", sa.JSON, nullable=True),
    )
    created_at: datetime = Field(
        default_factory=utcnow, index=True, sa_type=sa.DateTime(timezone=True)
    )


class Payment(SQLModel, table=True):
    """Gateway payment attached to an order (read only).

    A payment is captured once ``captured_at`` is set. ``data`` carries the
    gateway identifiers (``razorpay_payment_id``, ``razorpay_order_id``).
    """

    __tablename__ = "payment"

    id: str = Field(primary_key=True, max_length=64)
    order_id: str = Field(foreign_key="order.id", max_length=64, index=True)
    amount: int = Field(
        sa_column=sa.Column(sa.BigInteger, nullable=False),
        description="Amount in minor units",
    )
    currency_code: str | None = Field(default=None, max_length=8)
    captured_at: datetime | None = Field(default=None, sa_type=sa.DateTime(timezone=True))
    data: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=sa.Column(sa.JSON, nullable=False),
    )

    @property
    def gateway_payment_id(self) -> str:
        """Gateway payment id, falling back to the internal payment id."""
        return (self.data or {}).get("razorpay_payment_id") or self.id


class OrderTransaction(SQLModel, table=True):
    """One recognised payment capture applied to an order.

    ``(order_id, reference_id)`` is unique, so a repeated capture for the
    same gateway payment is rejected by the database and treated as a no-op.

    Attributes:
        id: Prefixed uuid
        order_id: Order the capture belongs to
        version: Order version at capture time (always 1 here)
        amount: Captured amount in minor units
        raw_amount: Precision-tagged twin ``{"value": "...", "precision": 20}``
        currency_code: Lower-case ISO currency
        reference: Transaction kind, ``capture``
        reference_id: Gateway payment id
        deleted_at: Soft delete marker honoured by every sum
    """

    __tablename__ = "order_transaction"
    __table_args__ = (
        sa.UniqueConstraint("order_id", "reference_id", name="uq_order_transaction_reference"),
    )

    id: str = Field(default_factory=generate_transaction_id, primary_key=True, max_length=64)
    order_id: str = Field(foreign_key="order.id", max_length=64, index=True)
    version: int = Field(default=1)
    amount: int = Field(
        sa_column=sa.Column(sa.BigInteger, nullable=False),
        description="Amount in minor units",
    )
    raw_amount: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=sa.Column(sa.JSON, nullable=False),
    )
    currency_code: str = Field(max_length=8)
    reference: str = Field(default="capture", max_length=32)
    reference_id: str = Field(max_length=128)

    created_at: datetime = Field(default_factory=utcnow, sa_type=sa.DateTime(timezone=True))
    updated_at: datetime = Field(default_factory=utcnow, sa_type=sa.DateTime(timezone=True))
    deleted_at: datetime | None = Field(default=None, sa_type=sa.DateTime(timezone=True))


class OrderSummary(SQLModel, table=True):
    """Per-order totals the admin UI reads to render payment status.

    Derived from ``order_transaction``; only the reconciliation rewrites the
    payment keys of ``totals``.
    """

    __tablename__ = "order_summary"

    id: str = Field(
        default_factory=lambda: f"ordsum_{uuid.uuid4().hex}",
        primary_key=True,
        max_length=64,
    )
    order_id: str = Field(foreign_key="order.id", max_length=64, unique=True)
    totals: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=sa.Column(sa.JSON, nullable=False),
    )

    created_at: datetime = Field(default_factory=utcnow, sa_type=sa.DateTime(timezone=True))
    updated_at: datetime = Field(default_factory=utcnow, sa_type=sa.DateTime(timezone=True))
