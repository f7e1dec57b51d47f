"""
Billing database tables.

Backing tables for the SQLAlchemy implementations of the event store, the
recurring item store and the fee store.
"""

from datetime import UTC, datetime
from decimal import Decimal
from typing import Any
from uuid import uuid4

from sqlalchemy import (
    JSON,
    BigInteger,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from usagebill.db import Base, TimestampMixin


class BillingUsageEventTable(Base):
    """Ingested usage events."""

    __tablename__ = "billing_usage_events"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    organization_id: Mapped[str] = mapped_column(String(50), nullable=False)
    subscription_id: Mapped[str] = mapped_column(String(50), nullable=False)
    code: Mapped[str] = mapped_column(String(255), nullable=False)
    transaction_id: Mapped[str] = mapped_column(String(255), nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    properties: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    group_value: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )

    __table_args__ = (
        UniqueConstraint("organization_id", "transaction_id", name="uq_usage_event_transaction"),
        Index("ix_usage_events_lookup", "code", "subscription_id", "timestamp"),
    )


class BillingRecurringItemTable(Base):
    """Persisted recurring items tracked across billing periods."""

    __tablename__ = "billing_recurring_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    organization_id: Mapped[str] = mapped_column(String(50), nullable=False)
    billable_metric_id: Mapped[str] = mapped_column(String(50), nullable=False)
    subscription_id: Mapped[str] = mapped_column(String(50), nullable=False)
    external_id: Mapped[str] = mapped_column(String(255), nullable=False)
    properties: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    added_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    removed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_recurring_items_lookup", "billable_metric_id", "subscription_id", "added_at"),
    )


class BillingFeeSetTable(TimestampMixin, Base):
    """
    One row per committed fee set.

    The primary key on the idempotency key is the compare-and-swap point:
    a second commit for the same (invoice, charge, subscription) fails to
    insert and observes the first commit instead.
    """

    __tablename__ = "billing_fee_sets"

    idempotency_key: Mapped[str] = mapped_column(String(255), primary_key=True)
    organization_id: Mapped[str] = mapped_column(String(50), nullable=False)
    fees_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class BillingFeeTable(Base):
    """Committed fees."""

    __tablename__ = "billing_fees"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    idempotency_key: Mapped[str] = mapped_column(
        String(255), ForeignKey("billing_fee_sets.idempotency_key"), nullable=False
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    organization_id: Mapped[str] = mapped_column(String(50), nullable=False)
    invoice_id: Mapped[str | None] = mapped_column(String(50), nullable=True)
    subscription_id: Mapped[str] = mapped_column(String(50), nullable=False)
    charge_id: Mapped[str] = mapped_column(String(50), nullable=False)
    group_id: Mapped[str | None] = mapped_column(String(50), nullable=True)
    fee_type: Mapped[str] = mapped_column(String(20), nullable=False)
    amount_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    amount_currency: Mapped[str] = mapped_column(String(3), nullable=False)
    units: Mapped[Decimal] = mapped_column(Numeric(38, 12), nullable=False)
    events_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    taxes_amount_cents: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    taxes_rate: Mapped[Decimal] = mapped_column(Numeric(10, 5), nullable=False, default=0)
    payment_status: Mapped[str] = mapped_column(String(20), nullable=False)
    properties: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    true_up_parent_fee_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    pay_in_advance_event_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint("idempotency_key", "position", name="uq_fee_position"),
        Index("ix_fees_invoice_charge", "invoice_id", "charge_id", "subscription_id"),
    )
