"""Max aggregation: highest field value over the window."""

from datetime import datetime
from decimal import Decimal

from usagebill.billing.aggregations.base import AggregationOptions, BaseAggregator
from usagebill.billing.core.enums import AggregationType
from usagebill.billing.core.models import AggregationResult, Event


class MaxAggregator(BaseAggregator):
    aggregation_type = AggregationType.MAX

    async def aggregate(
        self,
        from_datetime: datetime,
        to_datetime: datetime,
        options: AggregationOptions | None = None,
        event: Event | None = None,
    ) -> AggregationResult:
        events = await self._events(from_datetime, to_datetime)

        values = [
            value
            for value in (self._numeric_value(usage_event) for usage_event in events)
            if value is not None
        ]

        return AggregationResult(
            aggregation=max(values) if values else Decimal(0),
            pay_in_advance_aggregation=self._pay_in_advance_value(event),
            count=len(values),
        )
