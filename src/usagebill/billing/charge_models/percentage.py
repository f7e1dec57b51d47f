"""
Percentage pricing.

A rate (in percent) applies to the aggregated value, optionally plus a fixed
fee per paying event. Free units come from the sum aggregator's running
total: the free value is the last running total capped at
``free_units_per_total_aggregation``, and the free events are those whose
running total stays within that cap.

With ``per_transaction_min_amount``/``per_transaction_max_amount`` each
paying event is priced on its own and clamped to the bounds.
"""

from decimal import Decimal

from usagebill.billing.charge_models.base import ZERO, BaseChargeModel
from usagebill.billing.charge_models.schemas import PercentageProperties
from usagebill.billing.core.enums import ChargeModelType

HUNDRED = Decimal(100)


class PercentageChargeModel(BaseChargeModel):
    charge_model_type = ChargeModelType.PERCENTAGE
    properties_schema = PercentageProperties

    properties: PercentageProperties

    def compute_amount(self) -> Decimal:
        if self.units == 0:
            return ZERO

        per_event = self.aggregation_result.per_event_aggregation
        if self.properties.has_transaction_bounds and per_event:
            return self.transaction_amount(per_event)

        return self.percentage_amount() + self.fixed_amount()

    @property
    def free_units_value(self) -> Decimal:
        running_total = self.aggregation_result.running_total
        if not running_total:
            return ZERO

        cap = self.properties.free_units_per_total_aggregation
        last = running_total[-1]
        return min(last, cap) if cap is not None else last

    @property
    def free_units_count(self) -> int:
        running_total = self.aggregation_result.running_total
        cap = self.properties.free_units_per_total_aggregation
        if cap is None:
            return len(running_total)
        return sum(1 for total in running_total if total <= cap)

    def percentage_amount(self) -> Decimal:
        billed_value = max(self.units - self.free_units_value, ZERO)
        return billed_value * self.properties.rate / HUNDRED

    def fixed_amount(self) -> Decimal:
        if not self.properties.fixed_amount:
            return ZERO
        paying_events = max(self.aggregation_result.count - self.free_units_count, 0)
        return paying_events * self.properties.fixed_amount

    def transaction_amount(self, per_event: list[Decimal]) -> Decimal:
        props = self.properties
        remaining_free = self.free_units_value
        free_events = self.free_units_count

        total = ZERO
        for index, value in enumerate(per_event):
            free_part = min(max(value, ZERO), remaining_free)
            remaining_free -= free_part
            billed_value = value - free_part

            is_free_event = index < free_events
            if is_free_event and billed_value == 0:
                continue

            amount = billed_value * props.rate / HUNDRED
            if props.fixed_amount and not is_free_event:
                amount += props.fixed_amount

            if props.per_transaction_min_amount is not None:
                amount = max(amount, props.per_transaction_min_amount)
            if props.per_transaction_max_amount is not None:
                amount = min(amount, props.per_transaction_max_amount)
            total += amount

        return total
