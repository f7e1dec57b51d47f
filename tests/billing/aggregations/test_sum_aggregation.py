"""Tests for sum aggregation."""

from datetime import timedelta
from decimal import Decimal

import pytest

from tests.billing.support import PERIOD_END, PERIOD_START
from usagebill.billing.aggregations import AggregationOptions, SumAggregator
from usagebill.billing.exceptions import AggregationError

pytestmark = pytest.mark.asyncio


@pytest.fixture
def aggregator(sum_metric, subscription, event_store):
    return SumAggregator(sum_metric, subscription.id, event_store)


@pytest.fixture
def four_events(event_store, make_event):
    for _ in range(4):
        event_store.add(make_event({"total_count": 12}))


@pytest.mark.unit
@pytest.mark.usefixtures("four_events")
class TestSumAggregation:
    """Test sum aggregation over the window."""

    async def test_aggregates_events_with_free_unit_options(self, aggregator):
        """Test the running total stops at the per-events allowance."""
        options = AggregationOptions(
            free_units_per_events=2, free_units_per_total_aggregation=Decimal("30")
        )

        result = await aggregator.aggregate(PERIOD_START, PERIOD_END, options=options)

        assert result.aggregation == Decimal("48")
        assert result.pay_in_advance_aggregation == 0
        assert result.count == 4
        assert result.running_total == [Decimal("12"), Decimal("24")]

    async def test_no_options_returns_empty_running_total(self, aggregator):
        """Test missing options produce no running total."""
        result = await aggregator.aggregate(PERIOD_START, PERIOD_END)

        assert result.aggregation == Decimal("48")
        assert result.running_total == []

    async def test_nil_option_values_return_empty_running_total(self, aggregator):
        """Test both options unset produce no running total."""
        options = AggregationOptions(
            free_units_per_events=None, free_units_per_total_aggregation=None
        )

        result = await aggregator.aggregate(PERIOD_START, PERIOD_END, options=options)

        assert result.running_total == []

    async def test_running_total_by_total_allowance(self, aggregator):
        """Test the event crossing the total allowance is still included."""
        options = AggregationOptions(free_units_per_total_aggregation=Decimal("30"))

        result = await aggregator.aggregate(PERIOD_START, PERIOD_END, options=options)

        assert result.running_total == [Decimal("12"), Decimal("24"), Decimal("36")]

    async def test_running_total_by_event_allowance(self, aggregator):
        """Test only the first N events are tracked."""
        options = AggregationOptions(free_units_per_events=2)

        result = await aggregator.aggregate(PERIOD_START, PERIOD_END, options=options)

        assert result.running_total == [Decimal("12"), Decimal("24")]

    async def test_per_event_values_are_exposed(self, aggregator):
        """Test per-event values are available to the charge model."""
        result = await aggregator.aggregate(PERIOD_START, PERIOD_END)

        assert result.per_event_aggregation == [Decimal("12")] * 4

    async def test_events_out_of_window_are_excluded(self, aggregator):
        """Test events outside [from, to) contribute nothing."""
        result = await aggregator.aggregate(PERIOD_START, PERIOD_START + timedelta(hours=1))

        assert result.aggregation == 0
        assert result.count == 0
        assert result.running_total == []

    async def test_window_end_is_exclusive(self, sum_metric, subscription, event_store, make_event):
        """Test an event exactly at the window end is excluded."""
        event_store.add(make_event({"total_count": 100}, timestamp=PERIOD_END))
        aggregator = SumAggregator(sum_metric, subscription.id, event_store)

        result = await aggregator.aggregate(PERIOD_START, PERIOD_END)

        assert result.aggregation == Decimal("48")

    async def test_missing_property_counts_as_zero(self, make_metric, subscription, event_store):
        """Test events without the field are ignored."""
        metric = make_metric(field_name="foo_bar")
        aggregator = SumAggregator(metric, subscription.id, event_store)

        result = await aggregator.aggregate(PERIOD_START, PERIOD_END)

        assert result.aggregation == 0
        assert result.count == 0

    async def test_float_values(self, aggregator, event_store, make_event):
        """Test float property values aggregate exactly."""
        event_store.add(make_event({"total_count": 4.5}))

        result = await aggregator.aggregate(PERIOD_START, PERIOD_END)

        assert result.aggregation == Decimal("52.5")

    async def test_numeric_strings(self, aggregator, event_store, make_event):
        """Test numeric strings are coerced."""
        event_store.add(make_event({"total_count": "0.25"}))

        result = await aggregator.aggregate(PERIOD_START, PERIOD_END)

        assert result.aggregation == Decimal("48.25")

    @pytest.mark.parametrize("bad_value", ["foo_bar", True, "NaN", "Infinity", {"nested": 1}])
    async def test_non_numeric_value_fails(self, aggregator, event_store, make_event, bad_value):
        """Test a present but non-numeric value fails the aggregation."""
        event_store.add(make_event({"total_count": bad_value}, transaction_id="tx-bad"))

        with pytest.raises(AggregationError) as exc_info:
            await aggregator.aggregate(PERIOD_START, PERIOD_END)

        error = exc_info.value
        assert error.error_code == "aggregation_failure"
        assert error.message
        assert error.context["transaction_id"] == "tx-bad"
        assert error.context["field_name"] == "total_count"

    async def test_pay_in_advance_value_is_isolated(self, aggregator, event_store, make_event):
        """Test the trigger value is reported independently of the window total."""
        trigger = make_event({"total_count": 12.4})
        event_store.add(trigger)

        result = await aggregator.aggregate(PERIOD_START, PERIOD_END, event=trigger)

        assert result.pay_in_advance_aggregation == Decimal("12.4")
        assert result.aggregation == Decimal("60.4")

    async def test_pay_in_advance_index_follows_event_time(
        self, aggregator, event_store, make_event
    ):
        """Test a back-dated trigger is located by transaction, not by arrival."""
        trigger = make_event({"total_count": 7}, timestamp=PERIOD_START)
        event_store.add(trigger)

        result = await aggregator.aggregate(PERIOD_START, PERIOD_END, event=trigger)

        assert result.pay_in_advance_index == 0
        assert result.per_event_aggregation[0] == Decimal("7")

    async def test_pay_in_advance_index_without_trigger(self, aggregator):
        """Test no trigger position is reported outside pay in advance."""
        result = await aggregator.aggregate(PERIOD_START, PERIOD_END)

        assert result.pay_in_advance_index is None

    async def test_pay_in_advance_non_numeric_value_is_zero(self, aggregator, make_event):
        """Test a non-numeric trigger value counts as zero."""
        trigger = make_event({"total_count": "foo_bar"})

        result = await aggregator.aggregate(PERIOD_START, PERIOD_END, event=trigger)

        assert result.pay_in_advance_aggregation == 0

    async def test_pay_in_advance_missing_value_is_zero(self, aggregator, make_event):
        """Test a trigger without the field counts as zero."""
        trigger = make_event({"other": 3})

        result = await aggregator.aggregate(PERIOD_START, PERIOD_END, event=trigger)

        assert result.pay_in_advance_aggregation == 0


@pytest.mark.unit
class TestSumAggregationGroups:
    """Test sum aggregation restricted to a group."""

    async def test_only_group_events_are_summed(
        self, sum_metric, subscription, event_store, make_event, europe_group
    ):
        """Test events are filtered on the group dimension."""
        event_store.add(make_event({"total_count": 12, "region": "europe"}))
        event_store.add(make_event({"total_count": 8, "region": "europe"}))
        event_store.add(make_event({"total_count": 12, "region": "africa"}))
        aggregator = SumAggregator(sum_metric, subscription.id, event_store, group=europe_group)
        options = AggregationOptions(
            free_units_per_events=2, free_units_per_total_aggregation=Decimal("30")
        )

        result = await aggregator.aggregate(PERIOD_START, PERIOD_END, options=options)

        assert result.aggregation == Decimal("20")
        assert result.count == 2
        assert result.running_total == [Decimal("12"), Decimal("20")]

    async def test_explicit_group_value_matches(
        self, sum_metric, subscription, event_store, make_event, europe_group
    ):
        """Test the event's explicit group value stands in for the property."""
        event_store.add(make_event({"total_count": 5}, group_value="europe"))
        aggregator = SumAggregator(sum_metric, subscription.id, event_store, group=europe_group)

        result = await aggregator.aggregate(PERIOD_START, PERIOD_END)

        assert result.aggregation == Decimal("5")
