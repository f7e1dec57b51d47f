"""Standard (per-unit) pricing."""

from decimal import Decimal

from usagebill.billing.charge_models.base import BaseChargeModel
from usagebill.billing.charge_models.schemas import StandardProperties
from usagebill.billing.core.enums import ChargeModelType


class StandardChargeModel(BaseChargeModel):
    charge_model_type = ChargeModelType.STANDARD
    properties_schema = StandardProperties

    properties: StandardProperties

    def compute_amount(self) -> Decimal:
        return self.units * self.properties.amount
