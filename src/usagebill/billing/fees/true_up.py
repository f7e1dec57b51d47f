"""
True-up fees.

A charge with a minimum commitment (``min_amount_cents``) owes at least that
much per period. When the computed fees fall short, one extra ``true_up``
fee covers the difference.
"""

from decimal import ROUND_HALF_EVEN, Decimal

import structlog

from usagebill.billing.config import BillingConfig, get_billing_config
from usagebill.billing.core.enums import FeeType
from usagebill.billing.core.models import Boundaries, Charge, Fee
from usagebill.billing.fees.taxes import TaxService

logger = structlog.get_logger(__name__)


class TrueUpFeeService:
    """Builds the true-up fee for a minimum-commitment shortfall."""

    def __init__(
        self,
        tax_service: TaxService,
        config: BillingConfig | None = None,
    ) -> None:
        self.tax_service = tax_service
        self.config = config or get_billing_config()

    def minimum_amount_cents(self, charge: Charge, boundaries: Boundaries) -> int:
        """
        Minimum commitment owed for the charges window.

        Prorated by ``charges_days / charges_duration`` when proration is
        enabled and the full period length is known; never more than the
        full commitment.
        """
        minimum = Decimal(charge.min_amount_cents)
        if not self.config.fees.prorate_true_up or boundaries.charges_duration is None:
            return charge.min_amount_cents

        ratio = min(boundaries.charges_days / Decimal(boundaries.charges_duration), Decimal(1))
        return int((minimum * ratio).quantize(Decimal(1), rounding=ROUND_HALF_EVEN))

    async def create(
        self,
        charge: Charge,
        parent_fee: Fee,
        amount_cents: int,
        boundaries: Boundaries,
    ) -> Fee | None:
        """
        True-up fee for the shortfall, taxed, or None when the minimum is met.

        Args:
            charge: The charge carrying the minimum commitment
            parent_fee: First fee of the set; the true-up fee links to it
            amount_cents: Sum of the set's fee amounts before taxes
            boundaries: Billing period window
        """
        if charge.min_amount_cents <= 0:
            return None

        minimum_cents = self.minimum_amount_cents(charge, boundaries)
        shortfall = minimum_cents - amount_cents
        if shortfall <= 0:
            return None

        true_up_fee = Fee(
            organization_id=parent_fee.organization_id,
            invoice_id=parent_fee.invoice_id,
            subscription_id=parent_fee.subscription_id,
            charge_id=charge.id,
            fee_type=FeeType.TRUE_UP,
            amount_cents=shortfall,
            amount_currency=parent_fee.amount_currency,
            units=Decimal(1),
            events_count=0,
            properties=dict(parent_fee.properties),
            true_up_parent_fee_id=parent_fee.id,
        )
        logger.info(
            "True up fee computed",
            charge_id=charge.id,
            minimum_amount_cents=minimum_cents,
            amount_cents=amount_cents,
            shortfall_cents=shortfall,
        )
        return await self.tax_service.apply_taxes(true_up_fee)
