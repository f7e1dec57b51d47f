"""Tests for unique count aggregation."""

from decimal import Decimal

import pytest

from tests.billing.support import PERIOD_END, PERIOD_START
from usagebill.billing.aggregations import UniqueCountAggregator
from usagebill.billing.core.enums import AggregationType
from usagebill.billing.exceptions import AggregationError

pytestmark = pytest.mark.asyncio


@pytest.fixture
def unique_metric(make_metric):
    return make_metric(AggregationType.UNIQUE_COUNT, field_name="user_id", code="active_users")


@pytest.fixture
def aggregator(unique_metric, subscription, event_store):
    return UniqueCountAggregator(unique_metric, subscription.id, event_store)


@pytest.fixture
def user_event(make_event):
    def _make(user_id, operation_type=None, **kwargs):
        properties = {"user_id": user_id}
        if operation_type is not None:
            properties["operation_type"] = operation_type
        return make_event(properties, code="active_users", **kwargs)

    return _make


@pytest.mark.unit
class TestUniqueCountAggregation:
    """Test unique count aggregation."""

    async def test_counts_distinct_identifiers(self, aggregator, event_store, user_event):
        """Test repeated identifiers are counted once."""
        for user_id in ("alice", "bob", "alice"):
            event_store.add(user_event(user_id))

        result = await aggregator.aggregate(PERIOD_START, PERIOD_END)

        assert result.aggregation == Decimal("2")
        assert result.count == 3

    async def test_removed_identifier_is_not_active(self, aggregator, event_store, user_event):
        """Test a remove operation deactivates the identifier."""
        event_store.add(user_event("alice"))
        event_store.add(user_event("bob"))
        event_store.add(user_event("alice", "remove"))

        result = await aggregator.aggregate(PERIOD_START, PERIOD_END)

        assert result.aggregation == Decimal("1")

    async def test_operation_type_is_case_insensitive(self, aggregator, event_store, user_event):
        """Test operation types are matched regardless of case."""
        event_store.add(user_event("alice", "ADD"))
        event_store.add(user_event("alice", "Remove"))

        result = await aggregator.aggregate(PERIOD_START, PERIOD_END)

        assert result.aggregation == 0

    async def test_unknown_operation_type_fails(self, aggregator, event_store, user_event):
        """Test an unknown operation type fails the aggregation."""
        event_store.add(user_event("alice", "toggle", transaction_id="tx-toggle"))

        with pytest.raises(AggregationError) as exc_info:
            await aggregator.aggregate(PERIOD_START, PERIOD_END)

        assert exc_info.value.context["transaction_id"] == "tx-toggle"
        assert exc_info.value.context["field_name"] == "operation_type"

    async def test_events_without_identifier_are_skipped(
        self, aggregator, event_store, make_event, user_event
    ):
        """Test events missing the field are ignored."""
        event_store.add(user_event("alice"))
        event_store.add(make_event({"other": "x"}, code="active_users"))

        result = await aggregator.aggregate(PERIOD_START, PERIOD_END)

        assert result.aggregation == Decimal("1")
        assert result.count == 1

    async def test_pay_in_advance_new_identifier(self, aggregator, event_store, user_event):
        """Test a trigger adding an unseen identifier is worth one unit."""
        event_store.add(user_event("alice"))
        trigger = user_event("bob")
        event_store.add(trigger)

        result = await aggregator.aggregate(PERIOD_START, PERIOD_END, event=trigger)

        assert result.pay_in_advance_aggregation == Decimal("1")

    async def test_pay_in_advance_known_identifier(self, aggregator, event_store, user_event):
        """Test re-adding an active identifier is worth nothing."""
        event_store.add(user_event("alice"))
        trigger = user_event("alice")
        event_store.add(trigger)

        result = await aggregator.aggregate(PERIOD_START, PERIOD_END, event=trigger)

        assert result.pay_in_advance_aggregation == 0
        assert result.aggregation == Decimal("1")

    async def test_pay_in_advance_remove_is_zero(self, aggregator, event_store, user_event):
        """Test a remove trigger is never billed in advance."""
        event_store.add(user_event("alice"))
        trigger = user_event("alice", "remove")
        event_store.add(trigger)

        result = await aggregator.aggregate(PERIOD_START, PERIOD_END, event=trigger)

        assert result.pay_in_advance_aggregation == 0
