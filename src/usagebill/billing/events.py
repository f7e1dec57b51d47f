"""
Billing event types and event emission helpers.

This module defines the billing engine's post-commit events and provides
helper functions for emitting them through the event bus.
"""

from collections.abc import Sequence
from typing import Any

import structlog

from usagebill.billing.core.models import Event as UsageEvent
from usagebill.billing.core.models import Fee
from usagebill.events import EventBus, EventPriority, get_event_bus

logger = structlog.get_logger(__name__)


# ============================================================================
# Billing Event Types
# ============================================================================


class BillingEvents:
    """Billing event type constants."""

    # Fee events
    FEES_CREATED = "fees.created"
    FEES_PAY_IN_ADVANCE_CREATED = "fees.pay_in_advance_created"

    # Invoice triggers
    INVOICE_PAY_IN_ADVANCE_REQUESTED = "invoice.pay_in_advance_requested"


def _fee_payload(fee: Fee) -> dict[str, Any]:
    return fee.model_dump(mode="json")


# ============================================================================
# Event Emission Helpers
# ============================================================================


async def emit_fees_created(
    fees: Sequence[Fee],
    organization_id: str,
    charge_id: str,
    subscription_id: str,
    invoice_id: str | None = None,
    event_bus: EventBus | None = None,
) -> None:
    """
    Emit fees created event.

    Args:
        fees: The committed fees
        organization_id: Organization owning the fees
        charge_id: Charge the fees were computed for
        subscription_id: Subscription the fees were computed for
        invoice_id: Invoice the fees belong to
        event_bus: Event bus instance (injected, optional - will use global if not provided)
    """
    if event_bus is None:
        event_bus = get_event_bus()

    await event_bus.publish(
        event_type=BillingEvents.FEES_CREATED,
        payload={
            "invoice_id": invoice_id,
            "charge_id": charge_id,
            "subscription_id": subscription_id,
            "fees": [_fee_payload(fee) for fee in fees],
        },
        metadata={
            "organization_id": organization_id,
            "source": "billing",
        },
        priority=EventPriority.HIGH,
    )

    logger.info(
        "Fees created event emitted",
        invoice_id=invoice_id,
        charge_id=charge_id,
        fees_count=len(fees),
    )


async def emit_pay_in_advance_fee_created(
    fee: Fee,
    event_bus: EventBus | None = None,
) -> None:
    """Emit the event for a fee created at event ingestion time."""
    if event_bus is None:
        event_bus = get_event_bus()

    await event_bus.publish(
        event_type=BillingEvents.FEES_PAY_IN_ADVANCE_CREATED,
        payload={"fee": _fee_payload(fee)},
        metadata={
            "organization_id": fee.organization_id,
            "source": "billing",
        },
    )

    logger.info(
        "Pay in advance fee created event emitted",
        fee_id=fee.id,
        charge_id=fee.charge_id,
        transaction_id=fee.pay_in_advance_event_id,
    )


async def emit_pay_in_advance_invoice_requested(
    event: UsageEvent,
    charge_id: str,
    event_bus: EventBus | None = None,
) -> None:
    """Ask the invoicing side to bill an invoiceable pay-in-advance charge."""
    if event_bus is None:
        event_bus = get_event_bus()

    await event_bus.publish(
        event_type=BillingEvents.INVOICE_PAY_IN_ADVANCE_REQUESTED,
        payload={
            "charge_id": charge_id,
            "subscription_id": event.subscription_id,
            "event": event.model_dump(mode="json"),
        },
        metadata={
            "organization_id": event.organization_id,
            "source": "billing",
        },
        priority=EventPriority.HIGH,
    )

    logger.info(
        "Pay in advance invoice requested",
        charge_id=charge_id,
        transaction_id=event.transaction_id,
    )
