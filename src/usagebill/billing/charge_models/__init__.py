"""
Charge models.

Standard, graduated, package, percentage and volume pricing, dispatched on
the charge's model type by ``apply_charge_model``.
"""

from usagebill.billing.charge_models.base import BaseChargeModel
from usagebill.billing.charge_models.factory import (
    apply_charge_model,
    apply_pay_in_advance_charge_model,
    charge_model_class,
)
from usagebill.billing.charge_models.graduated import GraduatedChargeModel
from usagebill.billing.charge_models.package import PackageChargeModel
from usagebill.billing.charge_models.percentage import PercentageChargeModel
from usagebill.billing.charge_models.schemas import (
    GraduatedProperties,
    PackageProperties,
    PercentageProperties,
    StandardProperties,
    Tier,
    VolumeProperties,
)
from usagebill.billing.charge_models.standard import StandardChargeModel
from usagebill.billing.charge_models.volume import VolumeChargeModel

__all__ = [
    "BaseChargeModel",
    "GraduatedChargeModel",
    "GraduatedProperties",
    "PackageChargeModel",
    "PackageProperties",
    "PercentageChargeModel",
    "PercentageProperties",
    "StandardChargeModel",
    "StandardProperties",
    "Tier",
    "VolumeChargeModel",
    "VolumeProperties",
    "apply_charge_model",
    "apply_pay_in_advance_charge_model",
    "charge_model_class",
]
