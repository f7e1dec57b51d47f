"""
Sum aggregation.

Sums the metric field over the window. When free-unit options are given the
result also carries the running total used by the percentage charge model to
work out which part of the usage is free.
"""

from datetime import datetime
from decimal import Decimal

from usagebill.billing.aggregations.base import AggregationOptions, BaseAggregator
from usagebill.billing.core.enums import AggregationType
from usagebill.billing.core.models import AggregationResult, Event


def compute_running_total(values: list[Decimal], options: AggregationOptions | None) -> list[Decimal]:
    """
    Cumulative sums that fall inside the free allowance.

    ``free_units_per_events`` keeps only the first N events.
    ``free_units_per_total_aggregation`` stops once the cumulative value
    reached the allowance; the event that crosses it is still included.
    """
    if options is None:
        return []

    per_events = options.free_units_per_events or 0
    per_total = options.free_units_per_total_aggregation or Decimal(0)
    if per_events <= 0 and per_total <= 0:
        return []

    candidates = values[:per_events] if per_events > 0 else values
    running_total: list[Decimal] = []
    total = Decimal(0)
    for value in candidates:
        if per_total > 0 and total >= per_total:
            break
        total += value
        running_total.append(total)
    return running_total


class SumAggregator(BaseAggregator):
    aggregation_type = AggregationType.SUM

    async def aggregate(
        self,
        from_datetime: datetime,
        to_datetime: datetime,
        options: AggregationOptions | None = None,
        event: Event | None = None,
    ) -> AggregationResult:
        events = await self._events(from_datetime, to_datetime)

        values: list[Decimal] = []
        trigger_index: int | None = None
        for usage_event in events:
            value = self._numeric_value(usage_event)
            if value is None:
                continue
            if event is not None and usage_event.transaction_id == event.transaction_id:
                trigger_index = len(values)
            values.append(value)

        return AggregationResult(
            aggregation=sum(values, Decimal(0)),
            pay_in_advance_aggregation=self._pay_in_advance_value(event),
            count=len(values),
            pay_in_advance_index=trigger_index,
            options={
                "running_total": compute_running_total(values, options),
                "per_event_aggregation": values,
            },
        )
