"""Volume pricing: the range holding the total usage prices every unit."""

from decimal import Decimal

from usagebill.billing.charge_models.base import ZERO, BaseChargeModel
from usagebill.billing.charge_models.schemas import Tier, VolumeProperties
from usagebill.billing.core.enums import ChargeModelType, FreeUnitsApplication


class VolumeChargeModel(BaseChargeModel):
    charge_model_type = ChargeModelType.VOLUME
    properties_schema = VolumeProperties

    properties: VolumeProperties

    def compute_amount(self) -> Decimal:
        props = self.properties
        billed_units = max(self.units - props.free_units, ZERO)

        # Before tiers, free units also move usage down into a lower range
        if props.free_units_application is FreeUnitsApplication.BEFORE_TIERS:
            tier_usage = billed_units
        else:
            tier_usage = self.units

        if tier_usage == 0 and not props.charge_flat_fee_on_zero_usage:
            return ZERO

        tier = self.tier_for(tier_usage)
        return billed_units * tier.per_unit_amount + tier.flat_amount

    def tier_for(self, usage: Decimal) -> Tier:
        ranges = self.properties.volume_ranges
        for tier in ranges:
            if tier.contains(usage, self.properties.boundary_mode):
                return tier
        # Contiguous ranges from 0 to unbounded cover every non-negative usage
        return ranges[-1]
