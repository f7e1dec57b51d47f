"""Count aggregation: number of matching events."""

from datetime import datetime
from decimal import Decimal

from usagebill.billing.aggregations.base import AggregationOptions, BaseAggregator
from usagebill.billing.core.enums import AggregationType
from usagebill.billing.core.models import AggregationResult, Event


class CountAggregator(BaseAggregator):
    aggregation_type = AggregationType.COUNT

    async def aggregate(
        self,
        from_datetime: datetime,
        to_datetime: datetime,
        options: AggregationOptions | None = None,
        event: Event | None = None,
    ) -> AggregationResult:
        events = await self._events(from_datetime, to_datetime)
        return AggregationResult(
            aggregation=Decimal(len(events)),
            pay_in_advance_aggregation=Decimal(1) if event is not None else Decimal(0),
            count=len(events),
        )
