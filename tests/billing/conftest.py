"""
Billing engine test fixtures.

Provides reusable reference data (metrics, charges, subscription, period) and
in-memory or SQLite-backed collaborators.
"""

from collections.abc import Callable
from datetime import datetime, timedelta
from itertools import count
from typing import Any

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from tests.billing.support import PERIOD_END, PERIOD_START
from usagebill.billing.config import BillingConfig, TaxConfig, set_billing_config
from usagebill.billing.core.enums import AggregationType, ChargeModelType
from usagebill.billing.core.models import (
    BillableMetric,
    Boundaries,
    Charge,
    Event,
    Group,
    GroupProperties,
    Invoice,
    Subscription,
)
from usagebill.billing.fees import InMemoryFeeStore
from usagebill.billing.money_utils import MoneyHandler
from usagebill.billing.usage import InMemoryEventStore, InMemoryRecurringItemStore
from usagebill.db import create_all_tables_async, drop_all_tables_async
from usagebill.events import EventBus


@pytest.fixture
def organization_id():
    """Standard organization ID for billing tests."""
    return "org-123"


@pytest.fixture
def subscription(organization_id):
    return Subscription(
        id="sub-456", organization_id=organization_id, customer_id="cust-789", currency="USD"
    )


@pytest.fixture
def invoice(organization_id):
    return Invoice(id="inv-001", organization_id=organization_id, currency="USD")


@pytest.fixture
def boundaries():
    """March 2024 billing period."""
    return Boundaries(
        from_datetime=PERIOD_START,
        to_datetime=PERIOD_END,
        timestamp=PERIOD_END,
        charges_duration=31,
    )


@pytest.fixture
def europe_group():
    return Group(id="grp-europe", key="region", value="europe")


@pytest.fixture
def usa_group():
    return Group(id="grp-usa", key="region", value="usa")


@pytest.fixture
def make_metric(organization_id) -> Callable[..., BillableMetric]:
    """Factory for billable metrics."""

    def _make(
        aggregation_type: AggregationType = AggregationType.SUM,
        field_name: str | None = "total_count",
        code: str = "api_calls",
        groups: list[Group] | None = None,
    ) -> BillableMetric:
        return BillableMetric(
            id=f"bm-{code}",
            organization_id=organization_id,
            code=code,
            name=code.replace("_", " ").title(),
            aggregation_type=aggregation_type,
            field_name=field_name,
            groups=groups or [],
        )

    return _make


@pytest.fixture
def sum_metric(make_metric):
    return make_metric(AggregationType.SUM)


@pytest.fixture
def make_charge(sum_metric) -> Callable[..., Charge]:
    """Factory for charges."""

    def _make(
        charge_model: ChargeModelType = ChargeModelType.STANDARD,
        properties: dict[str, Any] | None = None,
        billable_metric: BillableMetric | None = None,
        group_properties: list[GroupProperties] | None = None,
        charge_id: str = "charge-1",
        **kwargs: Any,
    ) -> Charge:
        return Charge(
            id=charge_id,
            billable_metric=billable_metric or sum_metric,
            charge_model=charge_model,
            properties=properties if properties is not None else {"amount": "1"},
            group_properties=group_properties or [],
            **kwargs,
        )

    return _make


@pytest.fixture
def make_event(organization_id, subscription) -> Callable[..., Event]:
    """Factory for usage events with unique transaction ids."""
    sequence = count(1)

    def _make(
        properties: dict[str, Any] | None = None,
        timestamp: datetime | None = None,
        code: str = "api_calls",
        transaction_id: str | None = None,
        group_value: str | None = None,
    ) -> Event:
        number = next(sequence)
        return Event(
            organization_id=organization_id,
            subscription_id=subscription.id,
            code=code,
            transaction_id=transaction_id or f"tx-{number:04d}",
            timestamp=timestamp or PERIOD_START + timedelta(days=1, minutes=number),
            properties=properties or {},
            group_value=group_value,
        )

    return _make


@pytest.fixture
def event_store():
    return InMemoryEventStore()


@pytest.fixture
def recurring_item_store():
    return InMemoryRecurringItemStore()


@pytest.fixture
def fee_store():
    return InMemoryFeeStore()


@pytest.fixture
def event_bus():
    bus = EventBus()
    bus.keep_history = True
    return bus


@pytest.fixture
def billing_config():
    """Billing configuration without taxes."""
    config = BillingConfig(tax=TaxConfig(enabled=False, default_tax_rate=0.0))
    set_billing_config(config)
    return config


@pytest.fixture
def money_handler():
    return MoneyHandler()


@pytest.fixture
async def sqlite_session_maker():
    """Session factory over a fresh in-memory SQLite database."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await create_all_tables_async(engine)
    try:
        yield async_sessionmaker(engine, expire_on_commit=False)
    finally:
        await drop_all_tables_async(engine)
        await engine.dispose()
