"""
Recurring count aggregation.

Starts from the items still active when the window opens, as recorded by the
recurring item store, then applies the add/remove events of the window.
"""

from datetime import datetime
from decimal import Decimal

from usagebill.billing.aggregations.base import AggregationOptions, IdentifierAggregator
from usagebill.billing.core.enums import AggregationType
from usagebill.billing.core.models import AggregationResult, BillableMetric, Event, Group
from usagebill.billing.usage.store import EventStore, RecurringItemStore


class RecurringCountAggregator(IdentifierAggregator):
    aggregation_type = AggregationType.RECURRING_COUNT

    def __init__(
        self,
        billable_metric: BillableMetric,
        subscription_id: str,
        event_store: EventStore,
        recurring_item_store: RecurringItemStore,
        group: Group | None = None,
    ) -> None:
        super().__init__(billable_metric, subscription_id, event_store, group=group)
        self.recurring_item_store = recurring_item_store

    async def aggregate(
        self,
        from_datetime: datetime,
        to_datetime: datetime,
        options: AggregationOptions | None = None,
        event: Event | None = None,
    ) -> AggregationResult:
        carried_over = await self.recurring_item_store.active_items(
            billable_metric_id=self.billable_metric.id,
            subscription_id=self.subscription_id,
            group=self.group,
            at=from_datetime,
        )
        events = await self._events(from_datetime, to_datetime)

        active = set(carried_over)
        counted = self._apply(active, events)

        pay_in_advance = Decimal(0)
        if event is not None:
            before = set(carried_over)
            self._apply(before, self._prior_events(events, event))
            pay_in_advance = self._adds_new_identifier(event, before)

        return AggregationResult(
            aggregation=Decimal(len(active)),
            pay_in_advance_aggregation=pay_in_advance,
            count=counted,
        )
