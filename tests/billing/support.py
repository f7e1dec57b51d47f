"""Constants and builders shared by billing tests."""

from contextlib import nullcontext
from datetime import UTC, datetime
from decimal import Decimal

from usagebill.billing.core.models import AggregationResult

PERIOD_START = datetime(2024, 3, 1, tzinfo=UTC)
PERIOD_END = datetime(2024, 4, 1, tzinfo=UTC)


def usage(
    aggregation,
    count: int = 1,
    pay_in_advance=0,
    running_total=None,
    per_event=None,
    pay_in_advance_index=None,
) -> AggregationResult:
    """Build an aggregation result from plain numbers."""
    options = {}
    if running_total is not None:
        options["running_total"] = [Decimal(str(value)) for value in running_total]
    if per_event is not None:
        options["per_event_aggregation"] = [Decimal(str(value)) for value in per_event]
    return AggregationResult(
        aggregation=Decimal(str(aggregation)),
        pay_in_advance_aggregation=Decimal(str(pay_in_advance)),
        count=count,
        pay_in_advance_index=pay_in_advance_index,
        options=options,
    )


class RecordingMetrics:
    """Billing metrics double that remembers what was recorded."""

    def __init__(self) -> None:
        self.records: list[tuple[str, tuple]] = []

    def _record(self, name: str, *args) -> None:
        self.records.append((name, args))

    def named(self, name: str) -> list[tuple]:
        return [args for record_name, args in self.records if record_name == name]

    def record_fee_created(self, organization_id, charge_id, fee_type, amount_cents, currency):
        self._record("fee_created", organization_id, charge_id, fee_type, amount_cents, currency)

    def record_fee_replayed(self, organization_id, charge_id):
        self._record("fee_replayed", organization_id, charge_id)

    def record_fee_failed(self, organization_id, charge_id, error_code):
        self._record("fee_failed", organization_id, charge_id, error_code)

    def record_aggregation_failed(self, organization_id, metric_code):
        self._record("aggregation_failed", organization_id, metric_code)

    def record_pay_in_advance(self, organization_id, charge_id, outcome):
        self._record("pay_in_advance", organization_id, charge_id, outcome)

    def trace_fee_computation(self, charge_id, subscription_id, **attributes):
        self._record("trace", charge_id, subscription_id)
        return nullcontext()
