"""Package pricing: usage is billed in whole packages."""

from decimal import ROUND_CEILING, Decimal

from usagebill.billing.charge_models.base import ZERO, BaseChargeModel
from usagebill.billing.charge_models.schemas import PackageProperties
from usagebill.billing.core.enums import ChargeModelType


class PackageChargeModel(BaseChargeModel):
    charge_model_type = ChargeModelType.PACKAGE
    properties_schema = PackageProperties

    properties: PackageProperties

    def compute_amount(self) -> Decimal:
        billed_units = self.units - self.properties.free_units
        if billed_units <= 0:
            return ZERO

        # A started package is a charged package
        packages = (billed_units / self.properties.package_size).to_integral_value(
            rounding=ROUND_CEILING
        )
        return packages * self.properties.amount
