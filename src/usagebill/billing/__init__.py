"""
Billing engine module.

Provides:
- Usage aggregation per billable metric and group
- Charge models mapping usage to amounts
- Fee assembly, true-up fees and tax application
- Pay-in-advance processing
"""

from usagebill.billing.exceptions import (
    AggregationError,
    BillingConfigurationError,
    BillingError,
    BillingNotFoundError,
    ChargeModelValidationError,
    FeeValidationError,
    TaxServiceError,
    UnsupportedModelError,
    ValidationFailure,
)
from usagebill.billing.fees import FeeChargeService, PayInAdvanceService

__all__ = [
    "AggregationError",
    "BillingConfigurationError",
    "BillingError",
    "BillingNotFoundError",
    "ChargeModelValidationError",
    "FeeChargeService",
    "FeeValidationError",
    "PayInAdvanceService",
    "TaxServiceError",
    "UnsupportedModelError",
    "ValidationFailure",
]
