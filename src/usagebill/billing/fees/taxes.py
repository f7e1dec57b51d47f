"""
Tax application.

Tax-rate resolution belongs to an external service; the engine only needs
``apply_taxes(fee) -> fee``. ``FlatRateTaxService`` applies the configured
default rate and is what the engine uses when no provider is wired in.
"""

from decimal import ROUND_HALF_EVEN, Decimal, InvalidOperation
from typing import Protocol

import structlog

from usagebill.billing.config import BillingConfig, get_billing_config
from usagebill.billing.core.models import Fee
from usagebill.billing.exceptions import TaxServiceError

logger = structlog.get_logger(__name__)


class TaxService(Protocol):
    """Computes the taxes owed on a fee."""

    async def apply_taxes(self, fee: Fee) -> Fee:
        """Return the fee with ``taxes_amount_cents``/``taxes_rate`` set."""
        ...  # pragma: no cover - protocol


class FlatRateTaxService:
    """Applies one percentage rate to every fee."""

    provider = "flat_rate"

    def __init__(self, rate: Decimal | float | str = Decimal(0)) -> None:
        self.rate = Decimal(str(rate))
        if self.rate < 0:
            raise TaxServiceError(f"Tax rate cannot be negative: {self.rate}", provider=self.provider)

    @classmethod
    def from_config(cls, config: BillingConfig | None = None) -> "FlatRateTaxService":
        config = config or get_billing_config()
        rate = config.tax.default_tax_rate if config.tax.enabled else 0
        return cls(rate)

    async def apply_taxes(self, fee: Fee) -> Fee:
        try:
            taxes = (Decimal(fee.amount_cents) * self.rate / Decimal(100)).quantize(
                Decimal(1), rounding=ROUND_HALF_EVEN
            )
        except InvalidOperation as exc:
            raise TaxServiceError(
                f"Could not compute taxes for fee {fee.id}",
                fee_id=fee.id,
                provider=self.provider,
            ) from exc

        logger.debug(
            "Taxes applied",
            fee_id=fee.id,
            taxes_rate=str(self.rate),
            taxes_amount_cents=int(taxes),
        )
        return fee.model_copy(update={"taxes_amount_cents": int(taxes), "taxes_rate": self.rate})
