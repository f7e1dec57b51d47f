"""
Aggregator dispatch and the per-computation aggregator cache.
"""

from usagebill.billing.aggregations.base import BaseAggregator
from usagebill.billing.aggregations.count import CountAggregator
from usagebill.billing.aggregations.max import MaxAggregator
from usagebill.billing.aggregations.recurring_count import RecurringCountAggregator
from usagebill.billing.aggregations.sum import SumAggregator
from usagebill.billing.aggregations.unique_count import UniqueCountAggregator
from usagebill.billing.core.enums import AggregationType
from usagebill.billing.core.models import BillableMetric, Group
from usagebill.billing.exceptions import BillingConfigurationError, UnsupportedModelError
from usagebill.billing.usage.store import EventStore, RecurringItemStore


def build_aggregator(
    billable_metric: BillableMetric,
    subscription_id: str,
    event_store: EventStore,
    group: Group | None = None,
    recurring_item_store: RecurringItemStore | None = None,
) -> BaseAggregator:
    """
    Build the aggregator for a metric's aggregation type.

    Raises:
        UnsupportedModelError: Unknown aggregation type
        BillingConfigurationError: Recurring count without a recurring item store
    """
    match billable_metric.aggregation_type:
        case AggregationType.COUNT:
            return CountAggregator(billable_metric, subscription_id, event_store, group=group)
        case AggregationType.SUM:
            return SumAggregator(billable_metric, subscription_id, event_store, group=group)
        case AggregationType.MAX:
            return MaxAggregator(billable_metric, subscription_id, event_store, group=group)
        case AggregationType.UNIQUE_COUNT:
            return UniqueCountAggregator(billable_metric, subscription_id, event_store, group=group)
        case AggregationType.RECURRING_COUNT:
            if recurring_item_store is None:
                raise BillingConfigurationError(
                    "Recurring count aggregation requires a recurring item store",
                    config_key="recurring_item_store",
                )
            return RecurringCountAggregator(
                billable_metric,
                subscription_id,
                event_store,
                recurring_item_store,
                group=group,
            )
        case unknown:
            raise UnsupportedModelError(
                f"Unsupported aggregation type: {unknown}",
                model_kind="aggregation",
                model_type=str(unknown),
            )


class AggregatorCache:
    """
    Aggregators keyed by (metric, subscription, group).

    Owned by a single fee computation and discarded with it.
    """

    def __init__(
        self,
        event_store: EventStore,
        recurring_item_store: RecurringItemStore | None = None,
    ) -> None:
        self.event_store = event_store
        self.recurring_item_store = recurring_item_store
        self._aggregators: dict[tuple[str, str, str | None], BaseAggregator] = {}

    def get(
        self,
        billable_metric: BillableMetric,
        subscription_id: str,
        group: Group | None = None,
    ) -> BaseAggregator:
        key = (billable_metric.id, subscription_id, group.id if group else None)
        if key not in self._aggregators:
            self._aggregators[key] = build_aggregator(
                billable_metric,
                subscription_id,
                self.event_store,
                group=group,
                recurring_item_store=self.recurring_item_store,
            )
        return self._aggregators[key]

    def __len__(self) -> int:
        return len(self._aggregators)
