"""
Pay-in-advance processing.

Runs at event ingestion time for charges billed as usage happens. A
non-invoiceable charge gets a fee for the event right away; an invoiceable
charge is handed to invoicing through the event bus instead.
"""

import asyncio
import calendar
from collections.abc import Iterable, Mapping
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Protocol

import structlog
from pydantic import Field

from usagebill.billing.aggregations import coerce_decimal
from usagebill.billing.config import BillingConfig, get_billing_config
from usagebill.billing.core.enums import AggregationType
from usagebill.billing.core.models import (
    BillingRecord,
    Boundaries,
    Charge,
    Event,
    Fee,
    Subscription,
)
from usagebill.billing.events import emit_pay_in_advance_invoice_requested
from usagebill.billing.exceptions import (
    BillingConfigurationError,
    BillingError,
    BillingNotFoundError,
)
from usagebill.billing.fees.service import FeeChargeService
from usagebill.billing.fees.store import FeeStore
from usagebill.billing.fees.taxes import FlatRateTaxService, TaxService
from usagebill.billing.metrics import BillingMetrics, get_billing_metrics
from usagebill.billing.money_utils import MoneyHandler, get_money_handler
from usagebill.billing.usage.store import EventStore, RecurringItemStore
from usagebill.events import EventBus, get_event_bus

logger = structlog.get_logger(__name__)


class PayInAdvanceStatus(str, Enum):
    """What happened to one charge for one event."""

    FEE_CREATED = "fee_created"
    INVOICE_REQUESTED = "invoice_requested"
    SKIPPED = "skipped"
    FAILED = "failed"


class PayInAdvanceOutcome(BillingRecord):
    charge_id: str
    status: PayInAdvanceStatus
    fees: list[Fee] = Field(default_factory=list)
    error: dict[str, Any] | None = None


def monthly_boundaries(timestamp: datetime) -> Boundaries:
    """Calendar-month billing period containing ``timestamp``."""
    timestamp = timestamp.astimezone(UTC)
    start = datetime(timestamp.year, timestamp.month, 1, tzinfo=UTC)
    days = calendar.monthrange(timestamp.year, timestamp.month)[1]
    if timestamp.month == 12:
        end = datetime(timestamp.year + 1, 1, 1, tzinfo=UTC)
    else:
        end = datetime(timestamp.year, timestamp.month + 1, 1, tzinfo=UTC)
    return Boundaries(
        from_datetime=start,
        to_datetime=end,
        timestamp=timestamp,
        charges_duration=days,
    )


class ChargeCatalog(Protocol):
    """Subscription and plan lookups needed at ingestion time."""

    async def subscription(self, subscription_id: str) -> Subscription | None:
        ...  # pragma: no cover - protocol

    async def pay_in_advance_charges(self, subscription_id: str, metric_code: str) -> list[Charge]:
        """Pay-in-advance charges of the subscription's plan for a metric code."""
        ...  # pragma: no cover - protocol

    async def boundaries(self, subscription: Subscription, timestamp: datetime) -> Boundaries:
        """Billing period of the subscription containing ``timestamp``."""
        ...  # pragma: no cover - protocol


class InMemoryChargeCatalog:
    """Charge catalog over in-process subscriptions and charges (monthly periods)."""

    def __init__(
        self,
        subscriptions: Iterable[Subscription] = (),
        charges: Mapping[str, Iterable[Charge]] | None = None,
    ) -> None:
        self._subscriptions = {subscription.id: subscription for subscription in subscriptions}
        self._charges = {
            subscription_id: list(subscription_charges)
            for subscription_id, subscription_charges in (charges or {}).items()
        }

    async def subscription(self, subscription_id: str) -> Subscription | None:
        return self._subscriptions.get(subscription_id)

    async def pay_in_advance_charges(self, subscription_id: str, metric_code: str) -> list[Charge]:
        return [
            charge
            for charge in self._charges.get(subscription_id, [])
            if charge.pay_in_advance and charge.billable_metric.code == metric_code
        ]

    async def boundaries(self, subscription: Subscription, timestamp: datetime) -> Boundaries:
        return monthly_boundaries(timestamp)


class PayInAdvanceService:
    """Entry point invoked once per ingested event."""

    def __init__(
        self,
        catalog: ChargeCatalog,
        *,
        event_store: EventStore,
        fee_store: FeeStore,
        recurring_item_store: RecurringItemStore | None = None,
        tax_service: TaxService | None = None,
        money_handler: MoneyHandler | None = None,
        config: BillingConfig | None = None,
        event_bus: EventBus | None = None,
        metrics: BillingMetrics | None = None,
    ) -> None:
        self.catalog = catalog
        self.event_store = event_store
        self.fee_store = fee_store
        self.recurring_item_store = recurring_item_store
        self.config = config or get_billing_config()
        self.tax_service = tax_service or FlatRateTaxService.from_config(self.config)
        self.money_handler = money_handler or get_money_handler()
        self.event_bus = event_bus or get_event_bus()
        self.metrics = metrics or get_billing_metrics()

    async def process_event(self, event: Event) -> list[PayInAdvanceOutcome]:
        """
        Bill an ingested event against every matching pay-in-advance charge.

        The event must already be recorded in the event store. Charges are
        processed independently: a failing charge is reported in its own
        outcome and does not affect the others.

        Raises:
            BillingNotFoundError: The event's subscription is unknown
        """
        subscription = await self.catalog.subscription(event.subscription_id)
        if subscription is None:
            raise BillingNotFoundError(
                f"Subscription {event.subscription_id} not found",
                resource="subscription",
                resource_id=event.subscription_id,
            )

        charges = await self.catalog.pay_in_advance_charges(subscription.id, event.code)
        outcomes = await asyncio.gather(
            *(self._process_charge(subscription, charge, event) for charge in charges)
        )

        for outcome in outcomes:
            self.metrics.record_pay_in_advance(
                subscription.organization_id, outcome.charge_id, outcome.status.value
            )
        return list(outcomes)

    def _billable(self, charge: Charge, event: Event) -> bool:
        """Sum metrics skip events whose value is missing, non numeric or negative."""
        metric = charge.billable_metric
        if metric.aggregation_type is not AggregationType.SUM or not metric.field_name:
            return True
        try:
            value = coerce_decimal(event.properties.get(metric.field_name))
        except ValueError:
            return False
        return value is not None and value >= 0

    async def _process_charge(
        self, subscription: Subscription, charge: Charge, event: Event
    ) -> PayInAdvanceOutcome:
        if not self._billable(charge, event):
            logger.info(
                "Event skipped for pay in advance charge",
                charge_id=charge.id,
                transaction_id=event.transaction_id,
            )
            return PayInAdvanceOutcome(charge_id=charge.id, status=PayInAdvanceStatus.SKIPPED)

        try:
            if charge.billable_metric.aggregation_type is AggregationType.MAX:
                raise BillingConfigurationError(
                    f"Charge {charge.id} cannot be paid in advance: max aggregation "
                    "has no per-event increment",
                    config_key="pay_in_advance",
                ).with_context(charge_id=charge.id)

            if charge.invoiceable:
                await emit_pay_in_advance_invoice_requested(
                    event, charge.id, event_bus=self.event_bus
                )
                return PayInAdvanceOutcome(
                    charge_id=charge.id, status=PayInAdvanceStatus.INVOICE_REQUESTED
                )

            boundaries = await self.catalog.boundaries(subscription, event.timestamp)
            fees = await FeeChargeService(
                None,
                charge,
                subscription,
                boundaries,
                event_store=self.event_store,
                fee_store=self.fee_store,
                recurring_item_store=self.recurring_item_store,
                tax_service=self.tax_service,
                money_handler=self.money_handler,
                config=self.config,
                event_bus=self.event_bus,
                metrics=self.metrics,
            ).create_pay_in_advance(event)
        except BillingError as exc:
            logger.warning(
                "Pay in advance charge failed",
                charge_id=charge.id,
                transaction_id=event.transaction_id,
                error_code=exc.error_code,
                error=exc.message,
            )
            return PayInAdvanceOutcome(
                charge_id=charge.id, status=PayInAdvanceStatus.FAILED, error=exc.to_dict()
            )

        status = PayInAdvanceStatus.FEE_CREATED if fees else PayInAdvanceStatus.SKIPPED
        return PayInAdvanceOutcome(charge_id=charge.id, status=status, fees=fees)
