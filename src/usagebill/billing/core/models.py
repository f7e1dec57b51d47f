"""
Billing domain records.

Events, metrics and charges are reference data the engine reads and never
mutates; aggregation and charge-model results are values passed between the
pipeline stages; fees are what the engine produces.
"""

from datetime import UTC, datetime
from decimal import Decimal
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from usagebill.billing.core.enums import (
    AggregationType,
    ChargeModelType,
    FeeType,
    PaymentStatus,
)


def ensure_utc(value: datetime) -> datetime:
    """Normalize to UTC, treating naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class BillingRecord(BaseModel):
    """Base model for immutable billing records."""

    model_config = ConfigDict(frozen=True, extra="forbid")


# ============================================================================
# Reference data
# ============================================================================


class Event(BillingRecord):
    """A metered usage fact, as recorded at ingestion."""

    organization_id: str
    subscription_id: str
    code: str = Field(description="Billable metric code")
    transaction_id: str = Field(description="Deduplication key, unique per organization")
    timestamp: datetime
    properties: dict[str, Any] = Field(default_factory=dict)
    group_value: str | None = Field(None, description="Explicit group-dimension value")

    @field_validator("timestamp")
    @classmethod
    def validate_timestamp(cls, v: datetime) -> datetime:
        return ensure_utc(v)


class Group(BillingRecord):
    """A dimension value partitioning a metric, optionally nested under a parent."""

    id: str
    key: str
    value: str
    parent: "Group | None" = None

    def matches(self, event: Event) -> bool:
        """Whether the event falls into this group (and its parent group)."""
        return self.matches_properties(event.properties, event.group_value)

    def matches_properties(self, properties: dict[str, Any], group_value: str | None = None) -> bool:
        # The explicit group value only stands in for the leaf dimension
        actual = properties.get(self.key)
        if actual is None:
            actual = group_value
        if actual is None or str(actual) != self.value:
            return False
        if self.parent is not None:
            return self.parent.matches_properties(properties)
        return True


class BillableMetric(BillingRecord):
    """Definition of how events of a given code are aggregated."""

    id: str
    organization_id: str
    code: str
    name: str | None = None
    aggregation_type: AggregationType
    field_name: str | None = Field(None, description="Event property read by the aggregator")
    groups: list[Group] = Field(default_factory=list)

    def find_group(self, group_id: str) -> Group | None:
        return next((group for group in self.groups if group.id == group_id), None)


class GroupProperties(BillingRecord):
    """Charge parameters overridden for one group."""

    group_id: str
    values: dict[str, Any] = Field(default_factory=dict)


class Charge(BillingRecord):
    """A billable metric bound to a charge model and its parameters."""

    id: str
    billable_metric: BillableMetric
    charge_model: ChargeModelType
    properties: dict[str, Any] = Field(default_factory=dict)
    group_properties: list[GroupProperties] = Field(default_factory=list)
    invoiceable: bool = True
    pay_in_advance: bool = False
    min_amount_cents: int = Field(0, ge=0, description="Minimum commitment in minor units")


class Subscription(BillingRecord):
    id: str
    organization_id: str
    customer_id: str | None = None
    currency: str = "USD"


class Invoice(BillingRecord):
    id: str
    organization_id: str
    currency: str = "USD"


class Boundaries(BillingRecord):
    """
    Billing period window supplied by the caller.

    ``charges_from_datetime``/``charges_to_datetime`` delimit the half-open
    aggregation window and default to the period bounds. ``charges_duration``
    is the length in days of a full period and is only needed to prorate a
    minimum commitment.
    """

    from_datetime: datetime
    to_datetime: datetime
    charges_from_datetime: datetime
    charges_to_datetime: datetime
    timestamp: datetime | None = None
    charges_duration: int | None = Field(None, gt=0)

    @model_validator(mode="before")
    @classmethod
    def default_charges_window(cls, data: Any) -> Any:
        if isinstance(data, dict):
            data = dict(data)
            data.setdefault("charges_from_datetime", data.get("from_datetime"))
            data.setdefault("charges_to_datetime", data.get("to_datetime"))
        return data

    @field_validator(
        "from_datetime", "to_datetime", "charges_from_datetime", "charges_to_datetime", "timestamp"
    )
    @classmethod
    def validate_aware(cls, v: datetime | None) -> datetime | None:
        return ensure_utc(v) if v is not None else None

    @model_validator(mode="after")
    def validate_window(self) -> "Boundaries":
        if self.charges_from_datetime >= self.charges_to_datetime:
            raise ValueError("charges_from_datetime must be before charges_to_datetime")
        return self

    @property
    def charges_days(self) -> Decimal:
        """Length of the aggregation window in (fractional) days."""
        seconds = (self.charges_to_datetime - self.charges_from_datetime).total_seconds()
        return Decimal(str(seconds)) / Decimal(86400)

    def to_properties(self) -> dict[str, Any]:
        """Snapshot stored on fees."""
        snapshot: dict[str, Any] = {
            "from_datetime": self.from_datetime.isoformat(),
            "to_datetime": self.to_datetime.isoformat(),
            "charges_from_datetime": self.charges_from_datetime.isoformat(),
            "charges_to_datetime": self.charges_to_datetime.isoformat(),
        }
        if self.timestamp is not None:
            snapshot["timestamp"] = self.timestamp.isoformat()
        if self.charges_duration is not None:
            snapshot["charges_duration"] = self.charges_duration
        return snapshot


# ============================================================================
# Pipeline values
# ============================================================================


class AggregationResult(BillingRecord):
    """Usage value produced by an aggregator."""

    aggregation: Decimal = Decimal(0)
    pay_in_advance_aggregation: Decimal = Decimal(0)
    count: int = 0
    # Position of the trigger event among the per-event values
    pay_in_advance_index: int | None = None
    options: dict[str, list[Decimal]] = Field(default_factory=dict)

    @property
    def running_total(self) -> list[Decimal]:
        return self.options.get("running_total", [])

    @property
    def per_event_aggregation(self) -> list[Decimal]:
        return self.options.get("per_event_aggregation", [])


class ChargeModelResult(BillingRecord):
    """Amount in major currency units computed by a charge model."""

    amount: Decimal
    units: Decimal
    count: int


# ============================================================================
# Fees
# ============================================================================


class FeeKey(BillingRecord):
    """Idempotency key of a fee set."""

    invoice_id: str | None
    charge_id: str
    subscription_id: str
    event_transaction_id: str | None = None

    def as_string(self) -> str:
        return ":".join(
            [
                self.invoice_id or "-",
                self.charge_id,
                self.subscription_id,
                self.event_transaction_id or "-",
            ]
        )


class Fee(BillingRecord):
    """One monetary line item."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    organization_id: str
    invoice_id: str | None = None
    subscription_id: str
    charge_id: str
    group_id: str | None = None
    fee_type: FeeType = FeeType.CHARGE
    amount_cents: int = Field(ge=0)
    amount_currency: str = Field(min_length=3, max_length=3)
    units: Decimal = Field(Decimal(0), ge=0)
    events_count: int = Field(0, ge=0)
    taxes_amount_cents: int = Field(0, ge=0)
    taxes_rate: Decimal = Field(Decimal(0), ge=0)
    payment_status: PaymentStatus = PaymentStatus.PENDING
    properties: dict[str, Any] = Field(default_factory=dict)
    true_up_parent_fee_id: str | None = None
    pay_in_advance_event_id: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def total_amount_cents(self) -> int:
        return self.amount_cents + self.taxes_amount_cents
