"""Tests for percentage charge model."""

from decimal import Decimal

import pytest

from tests.billing.support import usage
from usagebill.billing.charge_models import PercentageChargeModel
from usagebill.billing.core.enums import ChargeModelType
from usagebill.billing.exceptions import ChargeModelValidationError


@pytest.fixture
def charge(make_charge):
    return make_charge(ChargeModelType.PERCENTAGE, properties={"rate": "1.5"})


def apply(charge, result, **properties):
    return PercentageChargeModel.apply(charge, result, {"rate": "1.5", **properties})


@pytest.mark.unit
class TestPercentageChargeModel:
    """Test percentage pricing."""

    def test_rate_applies_to_usage(self, charge):
        """Test the rate is a percentage of the aggregated value."""
        result = apply(charge, usage(800, count=4))

        assert result.amount == Decimal("12")

    def test_fixed_amount_per_event(self, charge):
        """Test the fixed amount is added for every event."""
        result = apply(charge, usage(800, count=4), fixed_amount="2")

        assert result.amount == Decimal("20")

    def test_zero_usage_costs_nothing(self, charge):
        """Test no usage means no fixed fee either."""
        result = apply(charge, usage(0, count=0), fixed_amount="2")

        assert result.amount == 0

    def test_free_units_per_total_aggregation(self, charge):
        """Test the free value is capped and only events inside the cap are free."""
        result = apply(
            charge,
            usage(800, count=4, running_total=[100, 200, 300]),
            fixed_amount="2",
            free_units_per_total_aggregation="250",
        )

        # (800 - 250) * 1.5% + 2 paying events * 2
        assert result.amount == Decimal("12.25")

    def test_free_units_per_events(self, charge):
        """Test the first N events are free."""
        result = apply(
            charge,
            usage(800, count=4, running_total=[100, 200]),
            fixed_amount="2",
            free_units_per_events=2,
        )

        assert result.amount == Decimal("13")

    def test_usage_within_free_units(self, charge):
        """Test usage fully covered by free units costs nothing."""
        result = apply(
            charge,
            usage(200, count=2, running_total=[100, 200]),
            fixed_amount="2",
            free_units_per_total_aggregation="1000",
        )

        assert result.amount == 0

    def test_per_transaction_bounds(self, charge):
        """Test each event amount is clamped to the transaction bounds."""
        result = apply(
            charge,
            usage(1110, count=3, per_event=[100, 1000, 10]),
            per_transaction_min_amount="2",
            per_transaction_max_amount="5",
        )

        # 1.5 -> 2, 15 -> 5, 0.15 -> 2
        assert result.amount == Decimal("9")

    def test_per_transaction_bounds_skip_free_events(self, charge):
        """Test fully free events are not raised to the minimum."""
        result = apply(
            charge,
            usage(1110, count=3, per_event=[100, 1000, 10], running_total=[100]),
            free_units_per_events=1,
            per_transaction_min_amount="2",
            per_transaction_max_amount="5",
        )

        assert result.amount == Decimal("7")

    def test_min_above_max_is_rejected(self, charge):
        """Test inconsistent transaction bounds are a validation error."""
        with pytest.raises(ChargeModelValidationError) as exc_info:
            apply(
                charge,
                usage(10),
                per_transaction_min_amount="5",
                per_transaction_max_amount="2",
            )

        assert "__root__" in exc_info.value.context["validation_errors"]

    def test_negative_rate_is_rejected(self, charge):
        """Test the rate cannot be negative."""
        with pytest.raises(ChargeModelValidationError):
            PercentageChargeModel.apply(charge, usage(10), {"rate": "-1"})
