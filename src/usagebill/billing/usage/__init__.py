"""Usage event and recurring item stores."""

from usagebill.billing.usage.store import (
    EventStore,
    InMemoryEventStore,
    InMemoryRecurringItemStore,
    RecurringItem,
    RecurringItemStore,
    SqlEventStore,
    SqlRecurringItemStore,
)

__all__ = [
    "EventStore",
    "InMemoryEventStore",
    "InMemoryRecurringItemStore",
    "RecurringItem",
    "RecurringItemStore",
    "SqlEventStore",
    "SqlRecurringItemStore",
]
