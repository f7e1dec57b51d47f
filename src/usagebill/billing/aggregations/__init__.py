"""
Usage aggregation.

One aggregator per aggregation type (count, sum, max, unique count,
recurring count), dispatched by ``build_aggregator``.
"""

from usagebill.billing.aggregations.base import (
    AggregationOptions,
    BaseAggregator,
    coerce_decimal,
)
from usagebill.billing.aggregations.count import CountAggregator
from usagebill.billing.aggregations.factory import AggregatorCache, build_aggregator
from usagebill.billing.aggregations.max import MaxAggregator
from usagebill.billing.aggregations.recurring_count import RecurringCountAggregator
from usagebill.billing.aggregations.sum import SumAggregator, compute_running_total
from usagebill.billing.aggregations.unique_count import UniqueCountAggregator

__all__ = [
    "AggregationOptions",
    "AggregatorCache",
    "BaseAggregator",
    "CountAggregator",
    "MaxAggregator",
    "RecurringCountAggregator",
    "SumAggregator",
    "UniqueCountAggregator",
    "build_aggregator",
    "coerce_decimal",
    "compute_running_total",
]
