"""
Shared test configuration.

Registers markers and isolates the process-wide singletons (settings-derived
billing config, event bus, metrics) between tests.
"""

import os

import pytest

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("TESTING", "1")
os.environ.setdefault("OBSERVABILITY__LOG_FORMAT", "text")


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit test")
    config.addinivalue_line("markers", "integration: Integration test")
    config.addinivalue_line("markers", "slow: Slow test")


@pytest.fixture(autouse=True)
def reset_billing_globals():
    """Reset global billing state before and after each test."""
    from usagebill.billing.config import set_billing_config
    from usagebill.billing.metrics import set_billing_metrics
    from usagebill.events import reset_event_bus

    set_billing_config(None)
    set_billing_metrics(None)
    reset_event_bus()
    yield
    set_billing_config(None)
    set_billing_metrics(None)
    reset_event_bus()
