"""
Billing engine configuration
"""

from pydantic import BaseModel, ConfigDict, Field

from usagebill.billing.core.enums import FreeUnitsApplication, TierBoundaryMode


class CurrencyConfig(BaseModel):
    """Currency configuration - single currency per fee set"""

    model_config = ConfigDict()

    default_currency: str = Field("USD", description="Default currency code")
    exponent_overrides: dict[str, int] = Field(
        default_factory=dict,
        description="Minor-unit exponents that take precedence over CLDR data",
    )


class TaxConfig(BaseModel):
    """Tax configuration"""

    model_config = ConfigDict()

    enabled: bool = Field(True, description="Apply taxes to computed fees")
    default_tax_rate: float = Field(0.0, ge=0, description="Default tax rate percentage")


class ChargeModelConfig(BaseModel):
    """Defaults for tiered charge parameters that a charge does not set itself"""

    model_config = ConfigDict()

    tier_boundary_mode: TierBoundaryMode = Field(
        TierBoundaryMode.UPPER_INCLUSIVE, description="Which tier owns a boundary value"
    )
    free_units_application: FreeUnitsApplication = Field(
        FreeUnitsApplication.BEFORE_TIERS, description="When free units are deducted"
    )
    charge_flat_fee_on_zero_usage: bool = Field(
        False, description="Charge tier flat fees when usage is zero"
    )

    def defaults(self) -> dict[str, object]:
        """Property defaults merged under explicit tiered charge properties."""
        return {
            "boundary_mode": self.tier_boundary_mode,
            "free_units_application": self.free_units_application,
            "charge_flat_fee_on_zero_usage": self.charge_flat_fee_on_zero_usage,
        }


class FeeConfig(BaseModel):
    """Fee assembly configuration"""

    model_config = ConfigDict()

    prorate_true_up: bool = Field(
        True, description="Prorate minimum commitments when the period is partial"
    )


def _default_currency_config() -> CurrencyConfig:
    """Create default CurrencyConfig instance"""
    return CurrencyConfig(default_currency="USD")


def _default_tax_config() -> TaxConfig:
    """Create default TaxConfig instance"""
    return TaxConfig(enabled=True, default_tax_rate=0.0)


def _default_charge_model_config() -> ChargeModelConfig:
    """Create default ChargeModelConfig instance"""
    return ChargeModelConfig(
        tier_boundary_mode=TierBoundaryMode.UPPER_INCLUSIVE,
        free_units_application=FreeUnitsApplication.BEFORE_TIERS,
        charge_flat_fee_on_zero_usage=False,
    )


class BillingConfig(BaseModel):
    """Main billing engine configuration"""

    model_config = ConfigDict()

    currency: CurrencyConfig = Field(default_factory=_default_currency_config)
    tax: TaxConfig = Field(default_factory=_default_tax_config)
    charge_models: ChargeModelConfig = Field(default_factory=_default_charge_model_config)
    fees: FeeConfig = Field(default_factory=FeeConfig)

    @classmethod
    def from_env(cls) -> "BillingConfig":
        """Create configuration from application settings"""
        from usagebill.settings import settings

        billing = settings.billing
        return cls(
            currency=CurrencyConfig(default_currency=billing.default_currency),
            tax=TaxConfig(enabled=billing.tax_enabled, default_tax_rate=billing.default_tax_rate),
            charge_models=ChargeModelConfig(
                tier_boundary_mode=TierBoundaryMode(billing.tier_boundary_mode),
                free_units_application=FreeUnitsApplication(billing.free_units_application),
                charge_flat_fee_on_zero_usage=billing.charge_flat_fee_on_zero_usage,
            ),
            fees=FeeConfig(prorate_true_up=billing.prorate_true_up),
        )


# Global configuration instance
_billing_config: BillingConfig | None = None


def get_billing_config() -> BillingConfig:
    """Get the global billing configuration instance"""
    global _billing_config
    if _billing_config is None:
        _billing_config = BillingConfig.from_env()
    return _billing_config


def set_billing_config(config: BillingConfig | None) -> None:
    """Set the global billing configuration instance"""
    global _billing_config
    _billing_config = config
