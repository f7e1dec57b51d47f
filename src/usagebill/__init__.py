"""
Usage billing engine.

Turns metered usage events into deterministic, idempotent fees:
- Aggregation of events per billable metric
- Charge models (standard, graduated, package, percentage, volume)
- Fee assembly with currency rounding, taxes and true-up fees
- Pay-in-advance billing at event ingestion time
"""

__version__ = "1.0.0"


def get_version() -> str:
    """Get the billing engine version."""
    return __version__
