"""
Aggregator base class and shared numeric coercion.

An aggregator reduces the events of one billable metric, for one
subscription and optional group, inside a half-open ``[from, to)`` window to
a single usage value.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, ClassVar

import structlog
from pydantic import Field

from usagebill.billing.core.enums import AggregationType, OperationType
from usagebill.billing.core.models import (
    AggregationResult,
    BillableMetric,
    BillingRecord,
    Event,
    Group,
)
from usagebill.billing.exceptions import AggregationError
from usagebill.billing.usage.store import EventStore

logger = structlog.get_logger(__name__)

OPERATION_TYPE_FIELD = "operation_type"


def coerce_decimal(value: Any) -> Decimal | None:
    """
    Coerce an event property value to a Decimal.

    Returns ``None`` for an absent value. Raises ``ValueError`` for values
    that are present but not a finite number.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError(f"boolean is not a number: {value!r}")
    if isinstance(value, Decimal):
        number = value
    elif isinstance(value, int):
        number = Decimal(value)
    elif isinstance(value, (float, str)):
        try:
            number = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValueError(f"not a number: {value!r}") from None
    else:
        raise ValueError(f"unsupported value type {type(value).__name__}")

    if not number.is_finite():
        raise ValueError(f"not a finite number: {value!r}")
    return number


class AggregationOptions(BillingRecord):
    """Free-unit options forwarded from the charge properties."""

    free_units_per_events: int | None = Field(None, ge=0)
    free_units_per_total_aggregation: Decimal | None = Field(None, ge=0)

    @classmethod
    def from_properties(cls, properties: dict[str, Any]) -> "AggregationOptions":
        return cls(
            free_units_per_events=properties.get("free_units_per_events"),
            free_units_per_total_aggregation=properties.get("free_units_per_total_aggregation"),
        )


class BaseAggregator(ABC):
    """Base class for all aggregation types."""

    aggregation_type: ClassVar[AggregationType]

    def __init__(
        self,
        billable_metric: BillableMetric,
        subscription_id: str,
        event_store: EventStore,
        group: Group | None = None,
    ) -> None:
        self.billable_metric = billable_metric
        self.subscription_id = subscription_id
        self.event_store = event_store
        self.group = group

    @abstractmethod
    async def aggregate(
        self,
        from_datetime: datetime,
        to_datetime: datetime,
        options: AggregationOptions | None = None,
        event: Event | None = None,
    ) -> AggregationResult:
        """
        Aggregate usage in ``[from_datetime, to_datetime)``.

        Args:
            from_datetime: Window start (inclusive)
            to_datetime: Window end (exclusive)
            options: Free-unit options (sum aggregation only)
            event: Pay-in-advance trigger event; populates
                ``pay_in_advance_aggregation`` from that event alone

        Raises:
            AggregationError: When a present property value is not numeric
        """

    async def _events(self, from_datetime: datetime, to_datetime: datetime) -> list[Event]:
        return await self.event_store.events_matching(
            metric_code=self.billable_metric.code,
            subscription_id=self.subscription_id,
            group=self.group,
            from_datetime=from_datetime,
            to_datetime=to_datetime,
        )

    @property
    def field_name(self) -> str:
        field_name = self.billable_metric.field_name
        if not field_name:
            raise AggregationError(
                f"Billable metric '{self.billable_metric.code}' has no field name to aggregate",
                metric_code=self.billable_metric.code,
            )
        return field_name

    def _numeric_value(self, event: Event) -> Decimal | None:
        """Numeric field value of an event; None when the property is absent."""
        raw = event.properties.get(self.field_name)
        try:
            return coerce_decimal(raw)
        except ValueError as exc:
            raise AggregationError(
                f"Property '{self.field_name}' of event '{event.transaction_id}' "
                f"cannot be aggregated: {exc}",
                metric_code=self.billable_metric.code,
                field_name=self.field_name,
                transaction_id=event.transaction_id,
            ) from exc

    def _pay_in_advance_value(self, event: Event | None) -> Decimal:
        """Trigger event value; absent or non-numeric values count as zero."""
        if event is None:
            return Decimal(0)
        try:
            value = coerce_decimal(event.properties.get(self.field_name))
        except ValueError:
            logger.debug(
                "Non numeric pay in advance value counted as zero",
                metric_code=self.billable_metric.code,
                transaction_id=event.transaction_id,
            )
            return Decimal(0)
        return value if value is not None else Decimal(0)


class IdentifierAggregator(BaseAggregator):
    """Shared add/remove bookkeeping for unique and recurring counts."""

    def _identifier(self, event: Event) -> str | None:
        raw = event.properties.get(self.field_name)
        return None if raw is None else str(raw)

    def _operation(self, event: Event) -> OperationType:
        raw = event.properties.get(OPERATION_TYPE_FIELD, OperationType.ADD.value)
        try:
            return OperationType(str(raw).lower())
        except ValueError as exc:
            raise AggregationError(
                f"Unknown operation type {raw!r} on event '{event.transaction_id}'",
                metric_code=self.billable_metric.code,
                field_name=OPERATION_TYPE_FIELD,
                transaction_id=event.transaction_id,
            ) from exc

    def _apply(self, active: set[str], events: list[Event]) -> int:
        """Apply add/remove events to the active set; returns the events counted."""
        counted = 0
        for event in events:
            identifier = self._identifier(event)
            if identifier is None:
                continue
            counted += 1
            if self._operation(event) is OperationType.ADD:
                active.add(identifier)
            else:
                active.discard(identifier)
        return counted

    def _adds_new_identifier(self, trigger: Event | None, before: set[str]) -> Decimal:
        if trigger is None:
            return Decimal(0)
        identifier = self._identifier(trigger)
        if identifier is None or self._operation(trigger) is not OperationType.ADD:
            return Decimal(0)
        return Decimal(0) if identifier in before else Decimal(1)

    @staticmethod
    def _prior_events(events: list[Event], trigger: Event) -> list[Event]:
        """Window events that happened before the trigger, excluding the trigger itself."""
        return [
            event
            for event in events
            if event.transaction_id != trigger.transaction_id
            and event.timestamp <= trigger.timestamp
        ]
