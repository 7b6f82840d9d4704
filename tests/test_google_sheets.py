"""Sheets backends against a fake worksheet (no network)."""

import time
from datetime import date
from decimal import Decimal

import pytest

from budget_engine.models.audit import AuditEventBuilder
from budget_engine.models.ledger import RecurringInterval
from budget_engine.services import LedgerAccessor
from budget_engine.services.storage import (
    GoogleSheetsAuditStorage,
    GoogleSheetsBudgetStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStorage,
    PersistenceError,
    StorageTimeoutError,
)
from budget_engine.services.storage.google_sheets import (
    AUDIT_COLUMNS,
    BUDGET_COLUMNS,
    TRANSACTION_COLUMNS,
)

from conftest import OTHER_USER, USER, budget, expense


class FakeSheet:
    def __init__(self, columns):
        self.rows = [list(columns)]

    def get_all_values(self):
        return [list(row) for row in self.rows]

    def append_row(self, row, value_input_option=None):
        self.rows.append([str(cell) for cell in row])

    def delete_rows(self, index):
        del self.rows[index - 1]


class FakeClient:
    def __init__(self):
        self.transactions = FakeSheet(TRANSACTION_COLUMNS)
        self.budgets = FakeSheet(BUDGET_COLUMNS)
        self.audit = FakeSheet(AUDIT_COLUMNS)

    def get_transactions_sheet(self):
        return self.transactions

    def get_budgets_sheet(self):
        return self.budgets

    def get_audit_sheet(self):
        return self.audit

    # Reads go through the real threaded, retried path
    read_rows = GoogleSheetsClient.read_rows


class StalledSheet(FakeSheet):
    """Blocks the calling thread the way a slow gspread request does."""

    def get_all_values(self):
        time.sleep(0.5)
        return super().get_all_values()


class UnreachableClient(FakeClient):
    def get_transactions_sheet(self):
        raise OSError("network down")


@pytest.fixture
def client():
    return FakeClient()


@pytest.mark.asyncio
class TestSheetsLedger:

    async def test_rows_survive_a_round_trip(self, client):
        storage = GoogleSheetsLedgerStorage(client)
        saved = await storage.insert_transaction(expense(
            "12.50",
            "Food",
            date(2024, 3, 2),
            is_recurring=True,
            recurring_interval=RecurringInterval.WEEKLY,
        ))

        [loaded] = await storage.list_transactions(USER)
        assert loaded == saved
        assert loaded.amount == Decimal("12.50")

    async def test_delete_checks_owner(self, client):
        storage = GoogleSheetsLedgerStorage(client)
        saved = await storage.insert_transaction(expense("5", user_key=OTHER_USER))

        assert await storage.delete_transaction(saved.id, USER) is False
        assert await storage.delete_transaction(saved.id, OTHER_USER) is True
        assert await storage.list_transactions(OTHER_USER) == []

    async def test_malformed_rows_skipped(self, client):
        storage = GoogleSheetsLedgerStorage(client)
        client.transactions.rows.append(["not-a-uuid", USER, "garbage"])
        await storage.insert_transaction(expense("5"))
        assert len(await storage.list_transactions(USER)) == 1

    async def test_failures_become_persistence_errors(self):
        storage = GoogleSheetsLedgerStorage(UnreachableClient())
        with pytest.raises(PersistenceError):
            await storage.list_transactions(USER)
        with pytest.raises(PersistenceError):
            await storage.insert_transaction(expense("5"))

    async def test_blocking_sheet_call_times_out(self, client):
        client.transactions = StalledSheet(TRANSACTION_COLUMNS)
        ledger = LedgerAccessor(GoogleSheetsLedgerStorage(client), timeout_seconds=0.05)

        started = time.monotonic()
        with pytest.raises(StorageTimeoutError):
            await ledger.list_transactions(USER)
        assert time.monotonic() - started < 0.4


@pytest.mark.asyncio
class TestSheetsBudgetsAndAudit:

    async def test_budget_round_trip(self, client):
        storage = GoogleSheetsBudgetStorage(client)
        saved = await storage.insert_budget(budget(
            "300",
            start_date=date(2024, 3, 1),
            end_date=date(2024, 3, 31),
        ))
        assert await storage.get_budget(saved.id, USER) == saved
        assert await storage.get_budget(saved.id, OTHER_USER) is None

    async def test_audit_events_by_correlation(self, client):
        storage = GoogleSheetsAuditStorage(client)
        event = AuditEventBuilder.summary_computed(USER, "3/2024", 2)
        assert await storage.append_event(event) is True

        [loaded] = await storage.get_recent_events()
        assert loaded.event_id == event.event_id
        assert loaded.details == {"period": "3/2024", "category_count": 2}
