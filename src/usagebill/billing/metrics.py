"""
Billing engine metrics and tracing
"""

from contextlib import AbstractContextManager
from typing import Any

import structlog
from opentelemetry import metrics, trace
from opentelemetry.metrics import Counter, Histogram, Meter
from opentelemetry.trace import Span, Tracer

from usagebill.billing.core.enums import FeeType

logger = structlog.get_logger(__name__)

INSTRUMENTATION_NAME = "usagebill.billing"


class BillingMetrics:
    """Billing metrics collector"""

    def __init__(
        self,
        meter: Meter | None = None,
        tracer: Tracer | None = None,
    ) -> None:
        """Initialize billing metrics"""
        # Without a configured SDK the API hands out no-op instruments
        self.meter = meter or metrics.get_meter(INSTRUMENTATION_NAME)
        self.tracer = tracer or trace.get_tracer(INSTRUMENTATION_NAME)

        # Fee metrics
        self.fee_created_counter = self._create_counter(
            name="billing.fee.created",
            description="Number of fees committed",
        )
        self.fee_amount_histogram = self._create_histogram(
            name="billing.fee.amount",
            description="Committed fee amounts",
            unit="cents",
        )
        self.fee_replayed_counter = self._create_counter(
            name="billing.fee.replayed",
            description="Fee computations answered from previously committed fees",
        )
        self.fee_failed_counter = self._create_counter(
            name="billing.fee.failed",
            description="Fee computations that failed and committed nothing",
        )

        # Aggregation metrics
        self.aggregation_failed_counter = self._create_counter(
            name="billing.aggregation.failed",
            description="Number of aggregation failures",
        )

        # Pay-in-advance metrics
        self.pay_in_advance_counter = self._create_counter(
            name="billing.pay_in_advance.processed",
            description="Pay-in-advance charge outcomes",
        )

    def _create_counter(self, name: str, description: str, unit: str = "1") -> Counter:
        return self.meter.create_counter(name=name, description=description, unit=unit)

    def _create_histogram(self, name: str, description: str, unit: str = "1") -> Histogram:
        return self.meter.create_histogram(name=name, description=description, unit=unit)

    # Fee metrics
    def record_fee_created(
        self,
        organization_id: str,
        charge_id: str,
        fee_type: FeeType,
        amount_cents: int,
        currency: str,
    ) -> None:
        """Record a committed fee"""
        attributes = {
            "organization_id": organization_id,
            "charge_id": charge_id,
            "fee_type": fee_type.value,
            "currency": currency,
        }
        self.fee_created_counter.add(1, attributes)
        self.fee_amount_histogram.record(amount_cents, attributes)

    def record_fee_replayed(self, organization_id: str, charge_id: str) -> None:
        """Record an idempotent replay"""
        self.fee_replayed_counter.add(
            1, {"organization_id": organization_id, "charge_id": charge_id}
        )

    def record_fee_failed(self, organization_id: str, charge_id: str, error_code: str) -> None:
        """Record a failed fee computation"""
        attributes = {
            "organization_id": organization_id,
            "charge_id": charge_id,
            "error_code": error_code,
        }
        self.fee_failed_counter.add(1, attributes)
        logger.debug("Fee computation failure recorded", **attributes)

    # Aggregation metrics
    def record_aggregation_failed(self, organization_id: str, metric_code: str) -> None:
        """Record an aggregation failure"""
        self.aggregation_failed_counter.add(
            1, {"organization_id": organization_id, "metric_code": metric_code}
        )

    # Pay-in-advance metrics
    def record_pay_in_advance(self, organization_id: str, charge_id: str, outcome: str) -> None:
        """Record the outcome of one pay-in-advance charge"""
        self.pay_in_advance_counter.add(
            1,
            {"organization_id": organization_id, "charge_id": charge_id, "outcome": outcome},
        )

    # Tracing helpers
    def trace_fee_computation(
        self, charge_id: str, subscription_id: str, **attributes: Any
    ) -> AbstractContextManager[Span]:
        """Create a trace span for one fee computation"""
        return self.tracer.start_as_current_span(
            "billing.fee.compute",
            kind=trace.SpanKind.INTERNAL,
            attributes={
                "charge_id": charge_id,
                "subscription_id": subscription_id,
                **{key: str(value) for key, value in attributes.items() if value is not None},
            },
        )


# Global metrics instance
_billing_metrics: BillingMetrics | None = None


def get_billing_metrics() -> BillingMetrics:
    """Get the global billing metrics instance"""
    global _billing_metrics
    if _billing_metrics is None:
        _billing_metrics = BillingMetrics()
    return _billing_metrics


def set_billing_metrics(metrics_instance: BillingMetrics | None) -> None:
    """Set the global billing metrics instance"""
    global _billing_metrics
    _billing_metrics = metrics_instance
