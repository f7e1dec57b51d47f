"""
Charge model parameter schemas.

Charge properties arrive as loose JSON-like mappings (amounts are usually
decimal strings). Each charge model validates them into one of these models
before computing anything.
"""

from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from usagebill.billing.core.enums import FreeUnitsApplication, TierBoundaryMode


class ChargeProperties(BaseModel):
    """Base model for charge properties."""

    model_config = ConfigDict(frozen=True, extra="ignore")


class StandardProperties(ChargeProperties):
    amount: Decimal = Field(ge=0, description="Price per unit")


class PackageProperties(ChargeProperties):
    amount: Decimal = Field(ge=0, description="Price per package")
    package_size: Decimal = Field(gt=0, description="Units per package")
    free_units: Decimal = Field(Decimal(0), ge=0, description="Units free before the first package")


class PercentageProperties(ChargeProperties):
    rate: Decimal = Field(ge=0, description="Percentage applied to the usage value")
    fixed_amount: Decimal | None = Field(None, ge=0, description="Fixed fee per paying event")
    free_units_per_events: int | None = Field(None, ge=0)
    free_units_per_total_aggregation: Decimal | None = Field(None, ge=0)
    per_transaction_min_amount: Decimal | None = Field(None, ge=0)
    per_transaction_max_amount: Decimal | None = Field(None, ge=0)

    @model_validator(mode="after")
    def validate_transaction_bounds(self) -> "PercentageProperties":
        if (
            self.per_transaction_min_amount is not None
            and self.per_transaction_max_amount is not None
            and self.per_transaction_min_amount > self.per_transaction_max_amount
        ):
            raise ValueError("per_transaction_min_amount must not exceed per_transaction_max_amount")
        return self

    @property
    def has_transaction_bounds(self) -> bool:
        return self.per_transaction_min_amount is not None or self.per_transaction_max_amount is not None


class Tier(BaseModel):
    """One pricing range; ``to_value`` of ``None`` is unbounded."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    from_value: Decimal = Field(ge=0)
    to_value: Decimal | None = Field(None, ge=0)
    per_unit_amount: Decimal = Field(Decimal(0), ge=0)
    flat_amount: Decimal = Field(Decimal(0), ge=0)

    @model_validator(mode="after")
    def validate_bounds(self) -> "Tier":
        if self.to_value is not None and self.to_value <= self.from_value:
            raise ValueError("to_value must be greater than from_value")
        return self

    def units_in(self, usage: Decimal) -> Decimal:
        """Portion of usage falling inside this tier."""
        upper = usage if self.to_value is None else min(usage, self.to_value)
        return max(upper - self.from_value, Decimal(0))

    def reached_by(self, usage: Decimal, mode: TierBoundaryMode) -> bool:
        """Whether usage enters this tier (and so owes its flat fee)."""
        if usage > self.from_value:
            return True
        if usage == self.from_value:
            return mode is TierBoundaryMode.LOWER_INCLUSIVE or self.from_value == 0
        return False

    def contains(self, usage: Decimal, mode: TierBoundaryMode) -> bool:
        """Whether the total usage value lies in this tier."""
        if mode is TierBoundaryMode.UPPER_INCLUSIVE:
            above_lower = usage > self.from_value or self.from_value == 0
            below_upper = self.to_value is None or usage <= self.to_value
        else:
            above_lower = usage >= self.from_value
            below_upper = self.to_value is None or usage < self.to_value
        return above_lower and below_upper


class TieredProperties(ChargeProperties):
    """Parameters shared by graduated and volume charges."""

    boundary_mode: TierBoundaryMode = TierBoundaryMode.UPPER_INCLUSIVE
    free_units: Decimal = Field(Decimal(0), ge=0)
    free_units_application: FreeUnitsApplication = FreeUnitsApplication.BEFORE_TIERS
    charge_flat_fee_on_zero_usage: bool = False

    @staticmethod
    def _validate_ranges(ranges: list[Tier]) -> list[Tier]:
        if not ranges:
            raise ValueError("at least one range is required")
        if ranges[0].from_value != 0:
            raise ValueError("the first range must start at 0")
        for previous, current in zip(ranges, ranges[1:]):
            if previous.to_value is None:
                raise ValueError("only the last range can be unbounded")
            if current.from_value != previous.to_value:
                raise ValueError(
                    f"ranges must be contiguous: {current.from_value} does not follow "
                    f"{previous.to_value}"
                )
        if ranges[-1].to_value is not None:
            raise ValueError("the last range must be unbounded")
        return ranges


class GraduatedProperties(TieredProperties):
    graduated_ranges: list[Tier]

    @field_validator("graduated_ranges")
    @classmethod
    def validate_ranges(cls, v: list[Tier]) -> list[Tier]:
        return cls._validate_ranges(v)


class VolumeProperties(TieredProperties):
    volume_ranges: list[Tier]

    @field_validator("volume_ranges")
    @classmethod
    def validate_ranges(cls, v: list[Tier]) -> list[Tier]:
        return cls._validate_ranges(v)
