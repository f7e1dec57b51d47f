"""Enumerations shared across the billing engine."""

from enum import Enum


class AggregationType(str, Enum):
    """How a billable metric reduces its events to a usage value."""

    COUNT = "count_agg"
    SUM = "sum_agg"
    MAX = "max_agg"
    UNIQUE_COUNT = "unique_count_agg"
    RECURRING_COUNT = "recurring_count_agg"


class ChargeModelType(str, Enum):
    """Pricing shape applied to aggregated usage."""

    STANDARD = "standard"
    GRADUATED = "graduated"
    PACKAGE = "package"
    PERCENTAGE = "percentage"
    VOLUME = "volume"


class FeeType(str, Enum):
    """Kind of fee line item."""

    CHARGE = "charge"
    TRUE_UP = "true_up"


class PaymentStatus(str, Enum):
    """Payment status of a fee."""

    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    REFUNDED = "refunded"


class OperationType(str, Enum):
    """Add/remove operation carried by unique and recurring count events."""

    ADD = "add"
    REMOVE = "remove"


class TierBoundaryMode(str, Enum):
    """Which tier a usage value exactly equal to a boundary belongs to."""

    # Tier covers (from_value, to_value]
    UPPER_INCLUSIVE = "upper_inclusive"
    # Tier covers [from_value, to_value)
    LOWER_INCLUSIVE = "lower_inclusive"


class FreeUnitsApplication(str, Enum):
    """When free units are deducted for graduated and volume charges."""

    # Usage is reduced before it is placed in tiers
    BEFORE_TIERS = "before_tiers"
    # Tiers are selected on full usage, free units are then priced at zero
    AFTER_TIERS = "after_tiers"
