"""Tests for fee stores."""

import asyncio
from decimal import Decimal

import pytest

from usagebill.billing.core.enums import FeeType
from usagebill.billing.core.models import Fee, FeeKey
from usagebill.billing.exceptions import FeeValidationError
from usagebill.billing.fees import InMemoryFeeStore, SqlFeeStore


@pytest.fixture
def fee_key():
    return FeeKey(invoice_id="inv-001", charge_id="charge-1", subscription_id="sub-456")


@pytest.fixture
def make_fee(organization_id, boundaries):
    def _make(amount_cents: int, group_id: str | None = None, **kwargs) -> Fee:
        return Fee(
            organization_id=organization_id,
            invoice_id="inv-001",
            subscription_id="sub-456",
            charge_id="charge-1",
            group_id=group_id,
            amount_cents=amount_cents,
            amount_currency="USD",
            units=Decimal("12.5"),
            events_count=3,
            taxes_amount_cents=amount_cents // 10,
            taxes_rate=Decimal("10"),
            properties=boundaries.to_properties(),
            **kwargs,
        )

    return _make


@pytest.mark.unit
class TestFeeKey:
    """Test idempotency keys."""

    def test_key_string(self, fee_key):
        """Test every key component is part of the string form."""
        assert fee_key.as_string() == "inv-001:charge-1:sub-456:-"

    def test_pay_in_advance_key(self):
        """Test pay in advance keys carry the event transaction."""
        key = FeeKey(
            invoice_id=None,
            charge_id="charge-1",
            subscription_id="sub-456",
            event_transaction_id="tx-0001",
        )

        assert key.as_string() == "-:charge-1:sub-456:tx-0001"


@pytest.mark.asyncio
@pytest.mark.unit
class TestInMemoryFeeStore:
    """Test the in-memory fee store."""

    async def test_nothing_committed(self, fee_store, fee_key):
        """Test an unknown key has no fees."""
        assert await fee_store.existing_fees(fee_key) is None

    async def test_commit_then_read(self, fee_store, fee_key, make_fee):
        """Test committed fees are returned in order."""
        fees = [make_fee(100, "grp-usa"), make_fee(50, "grp-europe")]

        committed = await fee_store.commit_fees(fee_key, fees)

        assert committed == fees
        assert await fee_store.existing_fees(fee_key) == fees

    async def test_first_commit_wins(self, fee_store, fee_key, make_fee):
        """Test a later commit for the same key gets the winner's fees."""
        winner = [make_fee(100)]
        await fee_store.commit_fees(fee_key, winner)

        result = await fee_store.commit_fees(fee_key, [make_fee(999)])

        assert result == winner
        assert len(fee_store.all_fees()) == 1

    async def test_concurrent_commits(self, fee_key, make_fee):
        """Test concurrent commits agree on a single winner."""
        store = InMemoryFeeStore()
        candidates = [[make_fee(amount)] for amount in (100, 200, 300)]

        results = await asyncio.gather(*(store.commit_fees(fee_key, fees) for fees in candidates))

        assert len({result[0].id for result in results}) == 1
        assert len(store.all_fees()) == 1

    async def test_empty_fee_set_is_rejected(self, fee_store, fee_key):
        """Test a fee set must hold at least one fee."""
        with pytest.raises(FeeValidationError):
            await fee_store.commit_fees(fee_key, [])

        assert await fee_store.existing_fees(fee_key) is None


@pytest.mark.asyncio
@pytest.mark.integration
class TestSqlFeeStore:
    """Test the SQLAlchemy fee store against SQLite."""

    @pytest.fixture
    def store(self, sqlite_session_maker):
        return SqlFeeStore(sqlite_session_maker)

    async def test_nothing_committed(self, store, fee_key):
        """Test an unknown key has no fees."""
        assert await store.existing_fees(fee_key) is None

    async def test_commit_round_trip(self, store, fee_key, make_fee):
        """Test committed fees are read back field for field, in order."""
        usa = make_fee(100, "grp-usa")
        europe = make_fee(50, "grp-europe")
        true_up = make_fee(850, fee_type=FeeType.TRUE_UP, true_up_parent_fee_id=usa.id)

        await store.commit_fees(fee_key, [usa, europe, true_up])
        stored = await store.existing_fees(fee_key)

        assert [fee.id for fee in stored] == [usa.id, europe.id, true_up.id]
        assert [fee.group_id for fee in stored] == ["grp-usa", "grp-europe", None]
        assert [fee.amount_cents for fee in stored] == [100, 50, 850]
        assert stored[0].units == Decimal("12.5")
        assert stored[0].taxes_rate == Decimal("10")
        assert stored[0].taxes_amount_cents == 10
        assert stored[0].properties == usa.properties
        assert stored[2].fee_type == FeeType.TRUE_UP
        assert stored[2].true_up_parent_fee_id == usa.id

    async def test_first_commit_wins(self, store, fee_key, make_fee):
        """Test a conflicting commit returns the fees already stored."""
        winner = make_fee(100)
        await store.commit_fees(fee_key, [winner])

        result = await store.commit_fees(fee_key, [make_fee(999), make_fee(1)])

        assert [fee.id for fee in result] == [winner.id]
        assert [fee.amount_cents for fee in result] == [100]

    async def test_pay_in_advance_keys_are_distinct(self, store, make_fee):
        """Test each event transaction gets its own fee set."""
        keys = [
            FeeKey(
                invoice_id=None,
                charge_id="charge-1",
                subscription_id="sub-456",
                event_transaction_id=transaction_id,
            )
            for transaction_id in ("tx-0001", "tx-0002")
        ]

        for key in keys:
            fee = make_fee(100, pay_in_advance_event_id=key.event_transaction_id)
            await store.commit_fees(key, [fee])

        stored = [await store.existing_fees(key) for key in keys]
        assert [fees[0].pay_in_advance_event_id for fees in stored] == ["tx-0001", "tx-0002"]

    async def test_empty_fee_set_is_rejected(self, store, fee_key):
        """Test a fee set must hold at least one fee."""
        with pytest.raises(FeeValidationError):
            await store.commit_fees(fee_key, [])
