#!/usr/bin/env python
"""
CLI management commands for the usage billing engine.
"""

import asyncio
import json
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import click
from pydantic import Field, ValidationError

from usagebill.billing.config import BillingConfig, get_billing_config
from usagebill.billing.core.models import (
    BillingRecord,
    Boundaries,
    Charge,
    Event,
    Fee,
    Invoice,
    Subscription,
)
from usagebill.billing.exceptions import BillingError
from usagebill.billing.fees import FeeChargeService, InMemoryFeeStore
from usagebill.billing.money_utils import MoneyHandler, get_money_handler
from usagebill.billing.usage import InMemoryEventStore, InMemoryRecurringItemStore, RecurringItem
from usagebill.db import create_all_tables_async
from usagebill.events import EventBus


class PreviewScenario(BillingRecord):
    """Input of ``preview-fees``: one subscription, its charges and its events."""

    subscription: Subscription
    invoice: Invoice | None = None
    boundaries: Boundaries
    charges: list[Charge]
    events: list[Event] = Field(default_factory=list)
    recurring_items: list[RecurringItem] = Field(default_factory=list)


@dataclass
class CLIDependencies:
    """Bundle of injectable dependencies used by CLI commands."""

    create_tables: Callable[[], Awaitable[None]]
    billing_config: Callable[[], BillingConfig]
    money_handler: Callable[[], MoneyHandler]


def _get_cli_dependencies() -> CLIDependencies:
    """Return the default dependency bundle for CLI commands."""
    return CLIDependencies(
        create_tables=create_all_tables_async,
        billing_config=get_billing_config,
        money_handler=get_money_handler,
    )


async def preview_scenario(
    scenario: PreviewScenario,
    config: BillingConfig,
    money_handler: MoneyHandler,
) -> list[Fee]:
    """Current-usage fees of every charge in the scenario; nothing is persisted."""
    event_store = InMemoryEventStore(scenario.events)
    recurring_item_store = InMemoryRecurringItemStore(scenario.recurring_items)
    fee_store = InMemoryFeeStore()
    # Previews publish nothing, so a private bus keeps them off the global one
    event_bus = EventBus()

    fees: list[Fee] = []
    for charge in scenario.charges:
        service = FeeChargeService(
            scenario.invoice,
            charge,
            scenario.subscription,
            scenario.boundaries,
            event_store=event_store,
            fee_store=fee_store,
            recurring_item_store=recurring_item_store,
            money_handler=money_handler,
            config=config,
            event_bus=event_bus,
        )
        fees.extend(await service.current_usage())
    return fees


def _fee_row(fee: Fee, money_handler: MoneyHandler) -> dict[str, Any]:
    return {
        "charge_id": fee.charge_id,
        "group_id": fee.group_id,
        "units": str(fee.units),
        "events_count": fee.events_count,
        "amount": money_handler.format_minor_units(fee.amount_cents, fee.amount_currency),
        "taxes": money_handler.format_minor_units(fee.taxes_amount_cents, fee.amount_currency),
    }


@click.group()
def cli() -> None:
    """Usage billing engine CLI."""
    pass


@cli.command()
def init_database() -> None:
    """Create the billing tables."""
    deps = _get_cli_dependencies()
    click.echo("Initializing database...")
    asyncio.run(deps.create_tables())
    click.echo("Database initialized successfully!")


@cli.command()
@click.argument("scenario_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--output",
    type=click.Choice(["table", "json"]),
    default="table",
    show_default=True,
    help="Output format",
)
def preview_fees(scenario_path: Path, output: str) -> None:
    """Preview the fees of a JSON scenario without committing anything."""
    deps = _get_cli_dependencies()

    try:
        scenario = PreviewScenario.model_validate(json.loads(scenario_path.read_text()))
    except (json.JSONDecodeError, ValidationError) as exc:
        raise click.ClickException(f"Invalid scenario file: {exc}") from exc

    money_handler = deps.money_handler()
    try:
        fees = asyncio.run(preview_scenario(scenario, deps.billing_config(), money_handler))
    except BillingError as exc:
        raise click.ClickException(f"{exc.error_code}: {exc.message} {exc.context}") from exc

    if output == "json":
        click.echo(json.dumps([fee.model_dump(mode="json") for fee in fees], indent=2))
        return

    if not fees:
        click.echo("No fees.")
        return

    for fee in fees:
        row = _fee_row(fee, money_handler)
        group = f" [{row['group_id']}]" if row["group_id"] else ""
        click.echo(
            f"{row['charge_id']}{group}: {row['units']} units, "
            f"{row['events_count']} events, {row['amount']} (taxes {row['taxes']})"
        )


if __name__ == "__main__":
    cli()
