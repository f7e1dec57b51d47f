"""Core billing domain: enums and pydantic records."""

from usagebill.billing.core.enums import (
    AggregationType,
    ChargeModelType,
    FeeType,
    FreeUnitsApplication,
    OperationType,
    PaymentStatus,
    TierBoundaryMode,
)
from usagebill.billing.core.models import (
    AggregationResult,
    BillableMetric,
    Boundaries,
    Charge,
    ChargeModelResult,
    Event,
    Fee,
    FeeKey,
    Group,
    GroupProperties,
    Invoice,
    Subscription,
)

__all__ = [
    "AggregationType",
    "ChargeModelType",
    "FeeType",
    "FreeUnitsApplication",
    "OperationType",
    "PaymentStatus",
    "TierBoundaryMode",
    "AggregationResult",
    "BillableMetric",
    "Boundaries",
    "Charge",
    "ChargeModelResult",
    "Event",
    "Fee",
    "FeeKey",
    "Group",
    "GroupProperties",
    "Invoice",
    "Subscription",
]
