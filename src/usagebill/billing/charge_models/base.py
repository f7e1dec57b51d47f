"""
Charge model base class.

A charge model maps an aggregation result and the charge's parameters to an
amount in major currency units. Models are pure: they never touch stores or
round to currency precision; the fee assembler does that.
"""

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any, ClassVar

from pydantic import ValidationError

from usagebill.billing.aggregations.base import AggregationOptions
from usagebill.billing.aggregations.sum import compute_running_total
from usagebill.billing.charge_models.schemas import ChargeProperties
from usagebill.billing.core.enums import ChargeModelType
from usagebill.billing.core.models import AggregationResult, Charge, ChargeModelResult
from usagebill.billing.exceptions import ChargeModelValidationError, validation_error_details

ZERO = Decimal(0)


class BaseChargeModel(ABC):
    """Base class for all charge models."""

    charge_model_type: ClassVar[ChargeModelType]
    properties_schema: ClassVar[type[ChargeProperties]]

    def __init__(
        self,
        charge: Charge,
        aggregation_result: AggregationResult,
        properties: dict[str, Any],
    ) -> None:
        self.charge = charge
        self.aggregation_result = aggregation_result
        self.properties = self.parse_properties(properties)

    @classmethod
    def parse_properties(cls, properties: dict[str, Any]) -> Any:
        try:
            return cls.properties_schema.model_validate(properties)
        except ValidationError as exc:
            raise ChargeModelValidationError(
                f"Invalid {cls.charge_model_type.value} charge properties",
                charge_model=cls.charge_model_type.value,
                validation_errors=validation_error_details(exc),
            ) from exc

    @classmethod
    def apply(
        cls,
        charge: Charge,
        aggregation_result: AggregationResult,
        properties: dict[str, Any],
    ) -> ChargeModelResult:
        """Price the whole aggregation."""
        return cls(charge, aggregation_result, properties).compute()

    @classmethod
    def apply_pay_in_advance(
        cls,
        charge: Charge,
        aggregation_result: AggregationResult,
        properties: dict[str, Any],
    ) -> ChargeModelResult:
        """
        Price the trigger event alone.

        The event amount is the difference between pricing the window with
        the event and pricing it without, so tiers, packages and free units
        already consumed by earlier events are honored.
        """
        with_event = cls(charge, aggregation_result, properties)
        without_event = cls(
            charge,
            _without_trigger(aggregation_result, AggregationOptions.from_properties(properties)),
            properties,
        )
        amount = with_event.amount() - without_event.amount()
        return ChargeModelResult(
            amount=max(amount, ZERO),
            units=aggregation_result.pay_in_advance_aggregation,
            count=1,
        )

    @property
    def units(self) -> Decimal:
        return self.aggregation_result.aggregation

    def amount(self) -> Decimal:
        if self.units < 0:
            raise ChargeModelValidationError(
                f"Aggregated usage {self.units} is negative",
                charge_model=self.charge_model_type.value,
                validation_errors={"units": "must be greater than or equal to 0"},
            )
        amount = self.compute_amount()
        if amount < 0:
            raise ChargeModelValidationError(
                f"Computed amount {amount} is negative",
                charge_model=self.charge_model_type.value,
            )
        return amount

    def compute(self) -> ChargeModelResult:
        return ChargeModelResult(
            amount=self.amount(),
            units=self.units,
            count=self.aggregation_result.count,
        )

    @abstractmethod
    def compute_amount(self) -> Decimal:
        """Amount in major currency units for ``self.units``."""


def _without_trigger(result: AggregationResult, options: AggregationOptions) -> AggregationResult:
    """The aggregation as it stood before the trigger event was recorded."""
    index = result.pay_in_advance_index
    if index is None and result.per_event_aggregation:
        # The trigger contributed no value to the window
        return result.model_copy(update={"pay_in_advance_aggregation": ZERO})

    update: dict[str, Any] = {
        "aggregation": max(result.aggregation - result.pay_in_advance_aggregation, ZERO),
        "pay_in_advance_aggregation": ZERO,
        "pay_in_advance_index": None,
        "count": max(result.count - 1, 0),
    }
    if index is not None:
        values = result.per_event_aggregation[:index] + result.per_event_aggregation[index + 1 :]
        update["options"] = {
            "running_total": compute_running_total(values, options),
            "per_event_aggregation": values,
        }
    return result.model_copy(update=update)
