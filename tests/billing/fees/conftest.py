"""Fee computation fixtures."""

import pytest

from tests.billing.support import RecordingMetrics
from usagebill.billing.core.enums import AggregationType
from usagebill.billing.core.models import GroupProperties
from usagebill.billing.fees import FeeChargeService


@pytest.fixture
def metrics():
    return RecordingMetrics()


@pytest.fixture
def grouped_metric(make_metric, europe_group, usa_group):
    return make_metric(AggregationType.SUM, groups=[europe_group, usa_group])


@pytest.fixture
def grouped_charge(make_charge, grouped_metric):
    """Charge priced per region, USA listed first."""
    return make_charge(
        billable_metric=grouped_metric,
        group_properties=[
            GroupProperties(group_id="grp-usa", values={"amount": "2"}),
            GroupProperties(group_id="grp-europe", values={"amount": "1"}),
        ],
    )


@pytest.fixture
def make_service(
    invoice,
    subscription,
    boundaries,
    event_store,
    recurring_item_store,
    fee_store,
    billing_config,
    money_handler,
    event_bus,
    metrics,
):
    """Factory for fee services sharing the test's stores."""

    def _make(charge, invoice=invoice, **overrides):
        kwargs = {
            "event_store": event_store,
            "fee_store": fee_store,
            "recurring_item_store": recurring_item_store,
            "money_handler": money_handler,
            "config": billing_config,
            "event_bus": event_bus,
            "metrics": metrics,
            **overrides,
        }
        return FeeChargeService(invoice, charge, subscription, boundaries, **kwargs)

    return _make
