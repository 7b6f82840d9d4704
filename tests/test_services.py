"""Tests for the ledger accessor and budget registry."""

import asyncio
from decimal import Decimal
from uuid import uuid4

import pytest

from budget_engine.models.ledger import IncomeEntryDraft
from budget_engine.services import BudgetRegistry, LedgerAccessor
from budget_engine.services.storage import (
    InMemoryBudgetStorage,
    InMemoryLedgerStorage,
    NotFoundError,
    PersistenceError,
    StorageTimeoutError,
)

from conftest import OTHER_USER, USER, add_income, budget, expense


class SlowLedgerStorage(InMemoryLedgerStorage):
    async def list_transactions(self, user_key, filters=None):
        await asyncio.sleep(5)
        return await super().list_transactions(user_key, filters)


class BrokenBudgetStorage(InMemoryBudgetStorage):
    async def list_budgets(self, user_key):
        raise RuntimeError("socket closed")


class LeakyLedgerStorage(InMemoryLedgerStorage):
    """Ignores the owner key on reads."""

    async def list_transactions(self, user_key, filters=None):
        return list(self._transactions.values())


@pytest.mark.asyncio
class TestLedgerAccessor:

    async def test_insert_and_list(self, ledger):
        tx = await ledger.insert_transaction(expense("12.50"))
        rows = await ledger.list_transactions(USER)
        assert [r.id for r in rows] == [tx.id]

    async def test_other_users_rows_hidden(self, ledger):
        await ledger.insert_transaction(expense("10", user_key=OTHER_USER))
        assert await ledger.list_transactions(USER) == []

    async def test_owner_enforced_even_if_backend_leaks(self):
        storage = LeakyLedgerStorage()
        ledger = LedgerAccessor(storage, timeout_seconds=1.0)
        await ledger.insert_transaction(expense("10", user_key=OTHER_USER))
        assert await ledger.list_transactions(USER) == []

    async def test_delete_requires_ownership(self, ledger):
        tx = await ledger.insert_transaction(expense("10", user_key=OTHER_USER))
        with pytest.raises(NotFoundError):
            await ledger.delete_transaction(tx.id, USER)
        assert len(await ledger.list_transactions(OTHER_USER)) == 1

    async def test_delete_unknown(self, ledger):
        with pytest.raises(NotFoundError):
            await ledger.delete_transaction(uuid4(), USER)

    async def test_income_source_is_idempotent(self, ledger):
        first = await ledger.get_or_create_income_source(USER)
        second = await ledger.get_or_create_income_source(USER)
        other = await ledger.get_or_create_income_source(OTHER_USER)
        assert first.id == second.id
        assert other.id != first.id

    async def test_concurrent_first_access_creates_one_source(self, ledger):
        sources = await asyncio.gather(
            *[ledger.get_or_create_income_source(USER) for _ in range(5)]
        )
        assert len({source.id for source in sources}) == 1

    async def test_income_entries(self, ledger):
        entry = await add_income(ledger, "1500")
        assert [e.id for e in await ledger.list_income_entries(USER)] == [entry.id]
        assert await ledger.list_income_entries(OTHER_USER) == []

        await ledger.delete_income_entry(entry.id, USER)
        assert await ledger.list_income_entries(USER) == []

    async def test_income_entry_needs_own_source(self, ledger):
        await ledger.get_or_create_income_source(USER)
        with pytest.raises(NotFoundError):
            await ledger.insert_income_entry(IncomeEntryDraft(
                user_key=USER,
                source_id=uuid4(),
                amount=Decimal("10"),
                description="Gift",
                entry_date="2024-03-01",
            ))

    async def test_delete_income_entry_of_other_user(self, ledger):
        entry = await add_income(ledger, "10", user_key=OTHER_USER)
        with pytest.raises(NotFoundError):
            await ledger.delete_income_entry(entry.id, USER)

    async def test_slow_storage_times_out(self):
        ledger = LedgerAccessor(SlowLedgerStorage(), timeout_seconds=0.05)
        with pytest.raises(StorageTimeoutError):
            await ledger.list_transactions(USER)

    async def test_timeout_is_a_persistence_error(self):
        assert issubclass(StorageTimeoutError, PersistenceError)


@pytest.mark.asyncio
class TestBudgetRegistry:

    async def test_insert_get_delete(self, budgets):
        created = await budgets.insert_budget(budget("300"))
        fetched = await budgets.get_budget(created.id, USER)
        assert fetched.amount == Decimal("300")

        await budgets.delete_budget(created.id, USER)
        with pytest.raises(NotFoundError):
            await budgets.get_budget(created.id, USER)

    async def test_other_users_budget_not_found(self, budgets):
        created = await budgets.insert_budget(budget("300", user_key=OTHER_USER))
        with pytest.raises(NotFoundError):
            await budgets.get_budget(created.id, USER)
        with pytest.raises(NotFoundError):
            await budgets.delete_budget(created.id, USER)
        assert await budgets.list_budgets(USER) == []

    async def test_unexpected_failure_becomes_persistence_error(self):
        registry = BudgetRegistry(BrokenBudgetStorage(), timeout_seconds=1.0)
        with pytest.raises(PersistenceError) as exc_info:
            await registry.list_budgets(USER)
        assert "socket closed" in str(exc_info.value)
