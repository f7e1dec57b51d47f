"""
Fee assembly.

Charge fees (``FeeChargeService``), true-up fees, tax application, the
idempotent fee store and the pay-in-advance entry point.
"""

from usagebill.billing.fees.pay_in_advance import (
    ChargeCatalog,
    InMemoryChargeCatalog,
    PayInAdvanceOutcome,
    PayInAdvanceService,
    PayInAdvanceStatus,
    monthly_boundaries,
)
from usagebill.billing.fees.service import FeeChargeService
from usagebill.billing.fees.store import FeeStore, InMemoryFeeStore, SqlFeeStore
from usagebill.billing.fees.taxes import FlatRateTaxService, TaxService
from usagebill.billing.fees.true_up import TrueUpFeeService

__all__ = [
    "ChargeCatalog",
    "FeeChargeService",
    "FeeStore",
    "FlatRateTaxService",
    "InMemoryChargeCatalog",
    "InMemoryFeeStore",
    "PayInAdvanceOutcome",
    "PayInAdvanceService",
    "PayInAdvanceStatus",
    "SqlFeeStore",
    "TaxService",
    "TrueUpFeeService",
    "monthly_boundaries",
]
