"""Tests for aggregator dispatch and caching."""

import pytest

from usagebill.billing.aggregations import (
    AggregatorCache,
    CountAggregator,
    MaxAggregator,
    RecurringCountAggregator,
    SumAggregator,
    UniqueCountAggregator,
    build_aggregator,
)
from usagebill.billing.core.enums import AggregationType
from usagebill.billing.exceptions import BillingConfigurationError, UnsupportedModelError


@pytest.mark.unit
class TestBuildAggregator:
    """Test aggregator dispatch on the aggregation type."""

    @pytest.mark.parametrize(
        ("aggregation_type", "expected"),
        [
            (AggregationType.COUNT, CountAggregator),
            (AggregationType.SUM, SumAggregator),
            (AggregationType.MAX, MaxAggregator),
            (AggregationType.UNIQUE_COUNT, UniqueCountAggregator),
            (AggregationType.RECURRING_COUNT, RecurringCountAggregator),
        ],
    )
    def test_dispatch(
        self,
        make_metric,
        subscription,
        event_store,
        recurring_item_store,
        aggregation_type,
        expected,
    ):
        """Test each aggregation type builds its aggregator."""
        metric = make_metric(aggregation_type)

        aggregator = build_aggregator(
            metric, subscription.id, event_store, recurring_item_store=recurring_item_store
        )

        assert type(aggregator) is expected
        assert aggregator.aggregation_type is aggregation_type

    def test_recurring_count_requires_item_store(self, make_metric, subscription, event_store):
        """Test recurring count cannot be built without its item store."""
        metric = make_metric(AggregationType.RECURRING_COUNT)

        with pytest.raises(BillingConfigurationError) as exc_info:
            build_aggregator(metric, subscription.id, event_store)

        assert exc_info.value.context["config_key"] == "recurring_item_store"

    def test_unsupported_type(self, make_metric, subscription, event_store):
        """Test an unknown aggregation type is rejected."""
        metric = make_metric().model_copy(update={"aggregation_type": "weighted_sum_agg"})

        with pytest.raises(UnsupportedModelError) as exc_info:
            build_aggregator(metric, subscription.id, event_store)

        assert exc_info.value.error_code == "unsupported_model"


@pytest.mark.unit
class TestAggregatorCache:
    """Test the per-computation aggregator cache."""

    def test_reuses_aggregator_per_key(self, sum_metric, subscription, event_store, europe_group):
        """Test the same metric, subscription and group share an aggregator."""
        cache = AggregatorCache(event_store)

        first = cache.get(sum_metric, subscription.id, europe_group)
        second = cache.get(sum_metric, subscription.id, europe_group)

        assert first is second
        assert len(cache) == 1

    def test_groups_get_distinct_aggregators(
        self, sum_metric, subscription, event_store, europe_group, usa_group
    ):
        """Test each group has its own aggregator."""
        cache = AggregatorCache(event_store)

        europe = cache.get(sum_metric, subscription.id, europe_group)
        usa = cache.get(sum_metric, subscription.id, usa_group)
        ungrouped = cache.get(sum_metric, subscription.id)

        assert len({id(europe), id(usa), id(ungrouped)}) == 3
        assert europe.group == europe_group
        assert ungrouped.group is None
