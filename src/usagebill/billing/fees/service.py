"""
Charge fee assembly.

``FeeChargeService`` computes the fees of one (invoice, charge, subscription)
tuple: it aggregates usage per group, prices it with the charge model, rounds
to the currency's minor units, applies taxes, adds the true-up fee and commits
everything in one idempotent store call.
"""

import asyncio
from decimal import Decimal
from typing import Any

import structlog
from pydantic import ValidationError

from usagebill.billing.aggregations import AggregationOptions, AggregatorCache
from usagebill.billing.charge_models import apply_charge_model, apply_pay_in_advance_charge_model
from usagebill.billing.config import BillingConfig, get_billing_config
from usagebill.billing.core.models import (
    Boundaries,
    Charge,
    ChargeModelResult,
    Event,
    Fee,
    FeeKey,
    Group,
    Invoice,
    Subscription,
)
from usagebill.billing.events import emit_fees_created, emit_pay_in_advance_fee_created
from usagebill.billing.exceptions import (
    AggregationError,
    BillingError,
    BillingNotFoundError,
    ChargeModelValidationError,
    FeeValidationError,
    validation_error_details,
)
from usagebill.billing.fees.store import FeeStore
from usagebill.billing.fees.taxes import FlatRateTaxService, TaxService
from usagebill.billing.fees.true_up import TrueUpFeeService
from usagebill.billing.metrics import BillingMetrics, get_billing_metrics
from usagebill.billing.money_utils import MoneyHandler, get_money_handler
from usagebill.billing.usage.store import EventStore, RecurringItemStore
from usagebill.events import EventBus, get_event_bus

logger = structlog.get_logger(__name__)


class FeeChargeService:
    """
    Computes and commits the fees of one charge for one subscription.

    A service instance covers a single computation; its aggregator cache is
    discarded with it.
    """

    def __init__(
        self,
        invoice: Invoice | None,
        charge: Charge,
        subscription: Subscription,
        boundaries: Boundaries,
        *,
        event_store: EventStore,
        fee_store: FeeStore,
        recurring_item_store: RecurringItemStore | None = None,
        tax_service: TaxService | None = None,
        true_up_service: TrueUpFeeService | None = None,
        money_handler: MoneyHandler | None = None,
        config: BillingConfig | None = None,
        event_bus: EventBus | None = None,
        metrics: BillingMetrics | None = None,
    ) -> None:
        self.invoice = invoice
        self.charge = charge
        self.subscription = subscription
        self.boundaries = boundaries
        self.event_store = event_store
        self.fee_store = fee_store
        self.config = config or get_billing_config()
        self.tax_service = tax_service or FlatRateTaxService.from_config(self.config)
        self.true_up_service = true_up_service or TrueUpFeeService(
            self.tax_service, config=self.config
        )
        self.money_handler = money_handler or get_money_handler()
        self.event_bus = event_bus or get_event_bus()
        self.metrics = metrics or get_billing_metrics()
        self.aggregators = AggregatorCache(event_store, recurring_item_store)

    @property
    def currency(self) -> str:
        return self.invoice.currency if self.invoice else self.subscription.currency

    @property
    def fee_key(self) -> FeeKey:
        return FeeKey(
            invoice_id=self.invoice.id if self.invoice else None,
            charge_id=self.charge.id,
            subscription_id=self.subscription.id,
        )

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def create(self) -> list[Fee]:
        """
        Compute, commit and return the charge's fees.

        Re-invocation for the same tuple returns the committed fees unchanged.

        Raises:
            BillingError: Any failure; nothing is committed and the error
                context names the charge (and group) at fault
        """
        key = self.fee_key
        with self.metrics.trace_fee_computation(
            self.charge.id, self.subscription.id, invoice_id=key.invoice_id
        ):
            existing = await self.fee_store.existing_fees(key)
            if existing is not None:
                return self._replayed(existing)

            try:
                fees = await self._init_fees()
                true_up_fee = await self.true_up_service.create(
                    self.charge,
                    parent_fee=fees[0],
                    amount_cents=sum(fee.amount_cents for fee in fees),
                    boundaries=self.boundaries,
                )
                if true_up_fee is not None:
                    fees.append(true_up_fee)

                committed = await self.fee_store.commit_fees(key, fees)
            except BillingError as exc:
                self._record_failure(exc)
                raise

        if [fee.id for fee in committed] != [fee.id for fee in fees]:
            # A concurrent computation committed first
            return self._replayed(committed)

        await self._committed(committed)
        return committed

    async def current_usage(self) -> list[Fee]:
        """Fees (with taxes) for the window so far; nothing is checked or committed."""
        return await self._init_fees()

    async def create_pay_in_advance(self, event: Event) -> list[Fee]:
        """
        Compute and commit the fee owed for a single pay-in-advance event.

        The event must already be recorded in the event store. Returns an
        empty list when the event belongs to none of the charge's groups.
        """
        key = self.fee_key.model_copy(update={"event_transaction_id": event.transaction_id})

        existing = await self.fee_store.existing_fees(key)
        if existing is not None:
            return self._replayed(existing)

        try:
            matched = self._pay_in_advance_target(event)
            if matched is None:
                logger.debug(
                    "Event matches no charge group",
                    charge_id=self.charge.id,
                    transaction_id=event.transaction_id,
                )
                return []
            properties, group = matched

            result = await self._compute(properties, group, event=event)
            fee = await self._build_fee(result, group, pay_in_advance_event_id=event.transaction_id)
            committed = await self.fee_store.commit_fees(key, [fee])
        except BillingError as exc:
            self._record_failure(exc)
            raise

        if committed[0].id != fee.id:
            return self._replayed(committed)

        self._record_committed(committed)
        await emit_pay_in_advance_fee_created(committed[0], event_bus=self.event_bus)
        return committed

    # ------------------------------------------------------------------
    # Fee computation
    # ------------------------------------------------------------------

    def _targets(self) -> list[tuple[dict[str, Any], Group | None]]:
        """Properties and group of every fee to compute, in the charge's group order."""
        if not self.charge.group_properties:
            return [(self.charge.properties, None)]

        metric = self.charge.billable_metric
        targets = []
        for group_properties in self.charge.group_properties:
            group = metric.find_group(group_properties.group_id)
            if group is None:
                raise BillingNotFoundError(
                    f"Group {group_properties.group_id} is not defined on metric {metric.code}",
                    resource="group",
                    resource_id=group_properties.group_id,
                ).with_context(charge_id=self.charge.id)
            targets.append((group_properties.values, group))
        return targets

    def _pay_in_advance_target(self, event: Event) -> tuple[dict[str, Any], Group | None] | None:
        return next(
            (
                (properties, group)
                for properties, group in self._targets()
                if group is None or group.matches(event)
            ),
            None,
        )

    async def _init_fees(self) -> list[Fee]:
        targets = self._targets()
        # Fee order follows the charge's group order
        return list(
            await asyncio.gather(
                *(self._init_fee(properties, group) for properties, group in targets)
            )
        )

    async def _init_fee(self, properties: dict[str, Any], group: Group | None) -> Fee:
        result = await self._compute(properties, group)
        return await self._build_fee(result, group)

    async def _compute(
        self,
        properties: dict[str, Any],
        group: Group | None,
        event: Event | None = None,
    ) -> ChargeModelResult:
        metric = self.charge.billable_metric
        group_id = group.id if group else None
        try:
            options = AggregationOptions.from_properties(properties)
            aggregator = self.aggregators.get(metric, self.subscription.id, group)
            aggregation_result = await aggregator.aggregate(
                from_datetime=self.boundaries.charges_from_datetime,
                to_datetime=self.boundaries.charges_to_datetime,
                options=options,
                event=event,
            )

            defaults = self.config.charge_models.defaults()
            if event is not None:
                return apply_pay_in_advance_charge_model(
                    self.charge, aggregation_result, properties, defaults=defaults
                )
            return apply_charge_model(self.charge, aggregation_result, properties, defaults=defaults)
        except AggregationError as exc:
            self.metrics.record_aggregation_failed(metric.organization_id, metric.code)
            raise exc.with_context(charge_id=self.charge.id, group_id=group_id)
        except BillingError as exc:
            raise exc.with_context(charge_id=self.charge.id, group_id=group_id)
        except ValidationError as exc:
            raise ChargeModelValidationError(
                f"Invalid aggregation options for charge {self.charge.id}",
                charge_model=self.charge.charge_model.value,
                validation_errors=validation_error_details(exc),
            ).with_context(charge_id=self.charge.id, group_id=group_id) from exc

    def _amount_cents(self, amount: Decimal) -> int:
        try:
            return self.money_handler.amount_to_minor_units(amount, self.currency)
        except ValueError as exc:
            raise FeeValidationError(
                f"Cannot convert {amount} to {self.currency} minor units: {exc}",
                validation_errors={"amount_currency": self.currency},
            ).with_context(charge_id=self.charge.id) from exc

    async def _build_fee(
        self,
        result: ChargeModelResult,
        group: Group | None,
        pay_in_advance_event_id: str | None = None,
    ) -> Fee:
        group_id = group.id if group else None
        try:
            fee = Fee(
                organization_id=self.subscription.organization_id,
                invoice_id=self.invoice.id if self.invoice else None,
                subscription_id=self.subscription.id,
                charge_id=self.charge.id,
                group_id=group_id,
                amount_cents=self._amount_cents(result.amount),
                amount_currency=self.currency,
                units=result.units,
                events_count=result.count,
                properties=self.boundaries.to_properties(),
                pay_in_advance_event_id=pay_in_advance_event_id,
            )
        except ValidationError as exc:
            raise FeeValidationError(
                f"Invalid fee for charge {self.charge.id}",
                validation_errors=validation_error_details(exc),
            ).with_context(charge_id=self.charge.id, group_id=group_id) from exc

        try:
            return await self.tax_service.apply_taxes(fee)
        except BillingError as exc:
            raise exc.with_context(charge_id=self.charge.id, group_id=group_id)

    # ------------------------------------------------------------------
    # Outcomes
    # ------------------------------------------------------------------

    def _replayed(self, fees: list[Fee]) -> list[Fee]:
        logger.info(
            "Fees already created",
            charge_id=self.charge.id,
            subscription_id=self.subscription.id,
            fees_count=len(fees),
        )
        self.metrics.record_fee_replayed(self.subscription.organization_id, self.charge.id)
        return fees

    def _record_failure(self, exc: BillingError) -> None:
        logger.warning(
            "Fee computation failed",
            charge_id=self.charge.id,
            subscription_id=self.subscription.id,
            error_code=exc.error_code,
            error=exc.message,
        )
        self.metrics.record_fee_failed(
            self.subscription.organization_id, self.charge.id, exc.error_code
        )

    def _record_committed(self, fees: list[Fee]) -> None:
        for fee in fees:
            self.metrics.record_fee_created(
                fee.organization_id,
                fee.charge_id,
                fee.fee_type,
                fee.amount_cents,
                fee.amount_currency,
            )

    async def _committed(self, fees: list[Fee]) -> None:
        self._record_committed(fees)
        logger.info(
            "Fees created",
            charge_id=self.charge.id,
            subscription_id=self.subscription.id,
            invoice_id=self.invoice.id if self.invoice else None,
            fees_count=len(fees),
            amount_cents=sum(fee.amount_cents for fee in fees),
        )
        await emit_fees_created(
            fees,
            organization_id=self.subscription.organization_id,
            charge_id=self.charge.id,
            subscription_id=self.subscription.id,
            invoice_id=self.invoice.id if self.invoice else None,
            event_bus=self.event_bus,
        )
