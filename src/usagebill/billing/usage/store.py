"""
Usage event and recurring item stores.

The aggregators read usage through the ``EventStore`` and
``RecurringItemStore`` protocols. In-memory implementations back tests and
previews; the SQLAlchemy implementations read the ``billing_usage_events``
and ``billing_recurring_items`` tables.
"""

from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Any, Protocol

import structlog
from pydantic import Field, field_validator
from sqlalchemy import and_, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from usagebill.billing.core.models import BillingRecord, Event, Group, ensure_utc
from usagebill.billing.models import BillingRecurringItemTable, BillingUsageEventTable
from usagebill.db import get_async_session_maker

logger = structlog.get_logger(__name__)


def _in_window(timestamp: datetime, from_datetime: datetime, to_datetime: datetime) -> bool:
    return from_datetime <= timestamp < to_datetime


def _sorted(events: Iterable[Event]) -> list[Event]:
    return sorted(events, key=lambda event: (event.timestamp, event.transaction_id))


class EventStore(Protocol):
    """Read access to ingested usage events."""

    async def events_matching(
        self,
        metric_code: str,
        subscription_id: str,
        group: Group | None,
        from_datetime: datetime,
        to_datetime: datetime,
    ) -> list[Event]:
        """Events in ``[from_datetime, to_datetime)`` ordered by timestamp."""
        ...  # pragma: no cover - protocol


class RecurringItem(BillingRecord):
    """A recurring billable item (seat, license...) tracked across periods."""

    organization_id: str
    billable_metric_id: str
    subscription_id: str
    external_id: str
    properties: dict[str, Any] = Field(default_factory=dict)
    added_at: datetime
    removed_at: datetime | None = None

    @field_validator("added_at", "removed_at")
    @classmethod
    def validate_utc(cls, v: datetime | None) -> datetime | None:
        return ensure_utc(v) if v is not None else None

    def active_at(self, at: datetime) -> bool:
        return self.added_at < at and (self.removed_at is None or self.removed_at >= at)


class RecurringItemStore(Protocol):
    """Read access to persisted recurring items."""

    async def active_items(
        self,
        billable_metric_id: str,
        subscription_id: str,
        group: Group | None,
        at: datetime,
    ) -> set[str]:
        """External ids of the items active at ``at``."""
        ...  # pragma: no cover - protocol


# ============================================================================
# In-memory implementations
# ============================================================================


class InMemoryEventStore:
    """Event store holding events in process memory."""

    def __init__(self, events: Iterable[Event] = ()) -> None:
        self._events: dict[tuple[str, str], Event] = {}
        for event in events:
            self.add(event)

    def add(self, event: Event) -> bool:
        """Store an event; returns False when the transaction id was already seen."""
        key = (event.organization_id, event.transaction_id)
        if key in self._events:
            logger.debug(
                "Duplicate usage event ignored",
                organization_id=event.organization_id,
                transaction_id=event.transaction_id,
            )
            return False
        self._events[key] = event
        return True

    async def events_matching(
        self,
        metric_code: str,
        subscription_id: str,
        group: Group | None,
        from_datetime: datetime,
        to_datetime: datetime,
    ) -> list[Event]:
        return _sorted(
            event
            for event in self._events.values()
            if event.code == metric_code
            and event.subscription_id == subscription_id
            and _in_window(event.timestamp, from_datetime, to_datetime)
            and (group is None or group.matches(event))
        )


class InMemoryRecurringItemStore:
    """Recurring item store holding items in process memory."""

    def __init__(self, items: Iterable[RecurringItem] = ()) -> None:
        self._items = list(items)

    def add(self, item: RecurringItem) -> None:
        self._items.append(item)

    async def active_items(
        self,
        billable_metric_id: str,
        subscription_id: str,
        group: Group | None,
        at: datetime,
    ) -> set[str]:
        return {
            item.external_id
            for item in self._items
            if item.billable_metric_id == billable_metric_id
            and item.subscription_id == subscription_id
            and item.active_at(at)
            and (group is None or group.matches_properties(item.properties))
        }


# ============================================================================
# SQLAlchemy implementations
# ============================================================================


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    return value.replace(tzinfo=UTC) if value.tzinfo is None else value


class SqlEventStore:
    """Event store backed by the ``billing_usage_events`` table."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession] | None = None) -> None:
        self.session_maker = session_maker or get_async_session_maker()

    async def add(self, event: Event) -> bool:
        """Insert an event; returns False when the transaction id already exists."""
        async with self.session_maker() as session:
            session.add(
                BillingUsageEventTable(
                    organization_id=event.organization_id,
                    subscription_id=event.subscription_id,
                    code=event.code,
                    transaction_id=event.transaction_id,
                    timestamp=event.timestamp,
                    properties=dict(event.properties),
                    group_value=event.group_value,
                )
            )
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                logger.debug(
                    "Duplicate usage event ignored",
                    organization_id=event.organization_id,
                    transaction_id=event.transaction_id,
                )
                return False
        return True

    async def events_matching(
        self,
        metric_code: str,
        subscription_id: str,
        group: Group | None,
        from_datetime: datetime,
        to_datetime: datetime,
    ) -> list[Event]:
        stmt = (
            select(BillingUsageEventTable)
            .where(
                and_(
                    BillingUsageEventTable.code == metric_code,
                    BillingUsageEventTable.subscription_id == subscription_id,
                    BillingUsageEventTable.timestamp >= from_datetime,
                    BillingUsageEventTable.timestamp < to_datetime,
                )
            )
            .order_by(BillingUsageEventTable.timestamp, BillingUsageEventTable.transaction_id)
        )
        async with self.session_maker() as session:
            rows = (await session.execute(stmt)).scalars().all()

        events = [
            Event(
                organization_id=row.organization_id,
                subscription_id=row.subscription_id,
                code=row.code,
                transaction_id=row.transaction_id,
                timestamp=_as_utc(row.timestamp),
                properties=row.properties or {},
                group_value=row.group_value,
            )
            for row in rows
        ]
        # JSON property matching stays in Python to remain portable across backends
        if group is not None:
            events = [event for event in events if group.matches(event)]
        return events


class SqlRecurringItemStore:
    """Recurring item store backed by the ``billing_recurring_items`` table."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession] | None = None) -> None:
        self.session_maker = session_maker or get_async_session_maker()

    async def add(self, item: RecurringItem) -> None:
        async with self.session_maker() as session:
            session.add(
                BillingRecurringItemTable(
                    organization_id=item.organization_id,
                    billable_metric_id=item.billable_metric_id,
                    subscription_id=item.subscription_id,
                    external_id=item.external_id,
                    properties=dict(item.properties),
                    added_at=item.added_at,
                    removed_at=item.removed_at,
                )
            )
            await session.commit()

    async def active_items(
        self,
        billable_metric_id: str,
        subscription_id: str,
        group: Group | None,
        at: datetime,
    ) -> set[str]:
        stmt = select(BillingRecurringItemTable).where(
            and_(
                BillingRecurringItemTable.billable_metric_id == billable_metric_id,
                BillingRecurringItemTable.subscription_id == subscription_id,
                BillingRecurringItemTable.added_at < at,
                or_(
                    BillingRecurringItemTable.removed_at.is_(None),
                    BillingRecurringItemTable.removed_at >= at,
                ),
            )
        )
        async with self.session_maker() as session:
            rows = (await session.execute(stmt)).scalars().all()

        return {
            row.external_id
            for row in rows
            if group is None or group.matches_properties(row.properties or {})
        }
