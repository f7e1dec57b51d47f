"""
Fee persistence.

``commit_fees`` is the engine's compare-and-swap point: the first commit for
a ``FeeKey`` wins and every later (or concurrent) commit for the same key
gets the winner's fees back instead of writing its own.
"""

from collections.abc import Sequence
from typing import Protocol

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from usagebill.billing.core.enums import FeeType, PaymentStatus
from usagebill.billing.core.models import Fee, FeeKey
from usagebill.billing.exceptions import FeeValidationError
from usagebill.billing.models import BillingFeeSetTable, BillingFeeTable
from usagebill.db import get_async_session_maker
from usagebill.logging import log_audit_event

logger = structlog.get_logger(__name__)


class FeeStore(Protocol):
    """Atomic, idempotent storage of fee sets."""

    async def existing_fees(self, key: FeeKey) -> list[Fee] | None:
        """Fees committed under the key, or None when nothing was committed."""
        ...  # pragma: no cover - protocol

    async def commit_fees(self, key: FeeKey, fees: Sequence[Fee]) -> list[Fee]:
        """Commit all fees or none; returns the fees stored under the key."""
        ...  # pragma: no cover - protocol


def _require_fees(key: FeeKey, fees: Sequence[Fee]) -> None:
    if not fees:
        raise FeeValidationError(
            f"Fee set {key.as_string()} must contain at least one fee",
            validation_errors={"fees": "empty"},
        )


def _audit_commit(key: FeeKey, fees: Sequence[Fee]) -> None:
    log_audit_event(
        "fees.committed",
        organization_id=fees[0].organization_id,
        resource_type="fee_set",
        resource_id=key.as_string(),
        fees_count=len(fees),
        amount_cents=sum(fee.amount_cents for fee in fees),
        taxes_amount_cents=sum(fee.taxes_amount_cents for fee in fees),
    )


class InMemoryFeeStore:
    """Fee store holding fee sets in process memory."""

    def __init__(self) -> None:
        self._fee_sets: dict[str, list[Fee]] = {}

    async def existing_fees(self, key: FeeKey) -> list[Fee] | None:
        fees = self._fee_sets.get(key.as_string())
        return list(fees) if fees is not None else None

    async def commit_fees(self, key: FeeKey, fees: Sequence[Fee]) -> list[Fee]:
        _require_fees(key, fees)
        key_string = key.as_string()
        # Check-and-set with no await in between
        existing = self._fee_sets.get(key_string)
        if existing is not None:
            logger.info("Fee set already committed", idempotency_key=key_string)
            return list(existing)

        self._fee_sets[key_string] = list(fees)

        _audit_commit(key, fees)
        return list(fees)

    def all_fees(self) -> list[Fee]:
        return [fee for fees in self._fee_sets.values() for fee in fees]


class SqlFeeStore:
    """Fee store backed by the ``billing_fee_sets`` and ``billing_fees`` tables."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession] | None = None) -> None:
        self.session_maker = session_maker or get_async_session_maker()

    async def existing_fees(self, key: FeeKey) -> list[Fee] | None:
        key_string = key.as_string()
        async with self.session_maker() as session:
            fee_set = await session.get(BillingFeeSetTable, key_string)
            if fee_set is None:
                return None

            stmt = (
                select(BillingFeeTable)
                .where(BillingFeeTable.idempotency_key == key_string)
                .order_by(BillingFeeTable.position)
            )
            rows = (await session.execute(stmt)).scalars().all()

        return [self._to_fee(row) for row in rows]

    async def commit_fees(self, key: FeeKey, fees: Sequence[Fee]) -> list[Fee]:
        _require_fees(key, fees)
        key_string = key.as_string()

        async with self.session_maker() as session:
            session.add(
                BillingFeeSetTable(
                    idempotency_key=key_string,
                    organization_id=fees[0].organization_id,
                    fees_count=len(fees),
                )
            )
            try:
                # The fee set row must exist before its fees reference it
                await session.flush()
                session.add_all(
                    self._to_row(key_string, position, fee) for position, fee in enumerate(fees)
                )
                await session.commit()
            except IntegrityError:
                await session.rollback()
                winner = await self.existing_fees(key)
                if winner is None:
                    # The conflict was not on the fee set key
                    raise
                logger.info("Fee set already committed", idempotency_key=key_string)
                return winner

        _audit_commit(key, fees)
        return list(fees)

    @staticmethod
    def _to_row(key_string: str, position: int, fee: Fee) -> BillingFeeTable:
        return BillingFeeTable(
            id=fee.id,
            idempotency_key=key_string,
            position=position,
            organization_id=fee.organization_id,
            invoice_id=fee.invoice_id,
            subscription_id=fee.subscription_id,
            charge_id=fee.charge_id,
            group_id=fee.group_id,
            fee_type=fee.fee_type.value,
            amount_cents=fee.amount_cents,
            amount_currency=fee.amount_currency,
            units=fee.units,
            events_count=fee.events_count,
            taxes_amount_cents=fee.taxes_amount_cents,
            taxes_rate=fee.taxes_rate,
            payment_status=fee.payment_status.value,
            properties=dict(fee.properties),
            true_up_parent_fee_id=fee.true_up_parent_fee_id,
            pay_in_advance_event_id=fee.pay_in_advance_event_id,
            created_at=fee.created_at,
        )

    @staticmethod
    def _to_fee(row: BillingFeeTable) -> Fee:
        return Fee(
            id=row.id,
            organization_id=row.organization_id,
            invoice_id=row.invoice_id,
            subscription_id=row.subscription_id,
            charge_id=row.charge_id,
            group_id=row.group_id,
            fee_type=FeeType(row.fee_type),
            amount_cents=row.amount_cents,
            amount_currency=row.amount_currency,
            units=row.units,
            events_count=row.events_count,
            taxes_amount_cents=row.taxes_amount_cents,
            taxes_rate=row.taxes_rate,
            payment_status=PaymentStatus(row.payment_status),
            properties=row.properties or {},
            true_up_parent_fee_id=row.true_up_parent_fee_id,
            pay_in_advance_event_id=row.pay_in_advance_event_id,
            created_at=row.created_at,
        )
