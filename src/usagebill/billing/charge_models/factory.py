"""
Charge model dispatch.
"""

from typing import Any

from usagebill.billing.charge_models.base import BaseChargeModel
from usagebill.billing.charge_models.graduated import GraduatedChargeModel
from usagebill.billing.charge_models.package import PackageChargeModel
from usagebill.billing.charge_models.percentage import PercentageChargeModel
from usagebill.billing.charge_models.standard import StandardChargeModel
from usagebill.billing.charge_models.volume import VolumeChargeModel
from usagebill.billing.core.enums import ChargeModelType
from usagebill.billing.core.models import AggregationResult, Charge, ChargeModelResult
from usagebill.billing.exceptions import UnsupportedModelError


def charge_model_class(charge_model: ChargeModelType) -> type[BaseChargeModel]:
    """
    Resolve the charge model implementation.

    Raises:
        UnsupportedModelError: Unknown charge model type
    """
    match charge_model:
        case ChargeModelType.STANDARD:
            return StandardChargeModel
        case ChargeModelType.GRADUATED:
            return GraduatedChargeModel
        case ChargeModelType.PACKAGE:
            return PackageChargeModel
        case ChargeModelType.PERCENTAGE:
            return PercentageChargeModel
        case ChargeModelType.VOLUME:
            return VolumeChargeModel
        case unknown:
            raise UnsupportedModelError(
                f"Unsupported charge model: {unknown}",
                model_kind="charge_model",
                model_type=str(unknown),
            )


def _with_defaults(properties: dict[str, Any], defaults: dict[str, Any] | None) -> dict[str, Any]:
    # Explicit charge properties win over configured defaults
    return {**(defaults or {}), **properties}


def apply_charge_model(
    charge: Charge,
    aggregation_result: AggregationResult,
    properties: dict[str, Any],
    defaults: dict[str, Any] | None = None,
) -> ChargeModelResult:
    """Price an aggregation with the charge's model."""
    model_class = charge_model_class(charge.charge_model)
    return model_class.apply(charge, aggregation_result, _with_defaults(properties, defaults))


def apply_pay_in_advance_charge_model(
    charge: Charge,
    aggregation_result: AggregationResult,
    properties: dict[str, Any],
    defaults: dict[str, Any] | None = None,
) -> ChargeModelResult:
    """Price the pay-in-advance trigger event of an aggregation."""
    model_class = charge_model_class(charge.charge_model)
    return model_class.apply_pay_in_advance(
        charge, aggregation_result, _with_defaults(properties, defaults)
    )
