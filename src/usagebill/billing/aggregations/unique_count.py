"""
Unique count aggregation.

Counts the distinct identifiers that are active at the end of the window.
Events add an identifier by default; ``operation_type: remove`` deactivates
it. Adding an identifier that is already active is a no-op.
"""

from datetime import datetime
from decimal import Decimal

from usagebill.billing.aggregations.base import AggregationOptions, IdentifierAggregator
from usagebill.billing.core.enums import AggregationType
from usagebill.billing.core.models import AggregationResult, Event


class UniqueCountAggregator(IdentifierAggregator):
    aggregation_type = AggregationType.UNIQUE_COUNT

    async def aggregate(
        self,
        from_datetime: datetime,
        to_datetime: datetime,
        options: AggregationOptions | None = None,
        event: Event | None = None,
    ) -> AggregationResult:
        events = await self._events(from_datetime, to_datetime)

        active: set[str] = set()
        counted = self._apply(active, events)

        pay_in_advance = Decimal(0)
        if event is not None:
            before: set[str] = set()
            self._apply(before, self._prior_events(events, event))
            pay_in_advance = self._adds_new_identifier(event, before)

        return AggregationResult(
            aggregation=Decimal(len(active)),
            pay_in_advance_aggregation=pay_in_advance,
            count=counted,
        )
