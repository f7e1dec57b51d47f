"""
Graduated pricing.

Each range prices only the units that fall inside it, and its flat fee is
owed once usage reaches the range.
"""

from decimal import Decimal

from usagebill.billing.charge_models.base import ZERO, BaseChargeModel
from usagebill.billing.charge_models.schemas import GraduatedProperties
from usagebill.billing.core.enums import ChargeModelType, FreeUnitsApplication


class GraduatedChargeModel(BaseChargeModel):
    charge_model_type = ChargeModelType.GRADUATED
    properties_schema = GraduatedProperties

    properties: GraduatedProperties

    def compute_amount(self) -> Decimal:
        props = self.properties
        usage = self.units
        remaining_free = ZERO

        if props.free_units_application is FreeUnitsApplication.BEFORE_TIERS:
            usage = max(usage - props.free_units, ZERO)
        else:
            remaining_free = props.free_units

        if usage == 0 and not props.charge_flat_fee_on_zero_usage:
            return ZERO

        amount = ZERO
        for tier in props.graduated_ranges:
            if not tier.reached_by(usage, props.boundary_mode):
                break

            tier_units = tier.units_in(usage)
            # Free units are consumed from the lowest tiers first
            free_here = min(tier_units, remaining_free)
            remaining_free -= free_here

            amount += (tier_units - free_here) * tier.per_unit_amount + tier.flat_amount

        return amount
