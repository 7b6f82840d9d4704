"""
In-Memory Storage Implementation

Used as the default backend in development and by the test suite.
Rows live in plain dicts keyed by id; every query re-checks the owner
key so tenant isolation holds here exactly as it does in Sheets.
"""

from typing import Optional
from uuid import UUID

from budget_engine.models.ledger import (
    Budget,
    BudgetDraft,
    IncomeEntry,
    IncomeEntryDraft,
    IncomeSource,
    Transaction,
    TransactionDraft,
    TransactionFilters,
)
from budget_engine.models.audit import AuditEvent
from budget_engine.services.storage.interface import (
    AuditStorageInterface,
    BudgetStorageInterface,
    DuplicateError,
    LedgerStorageInterface,
)


class InMemoryLedgerStorage(LedgerStorageInterface):
    """Transactions, income sources and income entries held in memory."""

    def __init__(self):
        self._transactions: dict[UUID, Transaction] = {}
        self._sources: dict[str, IncomeSource] = {}
        self._entries: dict[UUID, IncomeEntry] = {}

    async def list_transactions(
        self,
        user_key: str,
        filters: Optional[TransactionFilters] = None,
    ) -> list[Transaction]:
        filters = filters or TransactionFilters()
        rows = [
            tx.model_copy()
            for tx in self._transactions.values()
            if tx.user_key == user_key and filters.matches(tx)
        ]
        rows.sort(key=lambda tx: (tx.transaction_date, tx.created_at), reverse=True)
        return rows

    async def insert_transaction(self, draft: TransactionDraft) -> Transaction:
        transaction = Transaction.from_draft(draft)
        if transaction.id in self._transactions:
            raise DuplicateError(f"Transaction already exists: {transaction.id}")
        self._transactions[transaction.id] = transaction
        return transaction.model_copy()

    async def delete_transaction(self, transaction_id: UUID, user_key: str) -> bool:
        existing = self._transactions.get(transaction_id)
        if existing is None or existing.user_key != user_key:
            return False
        del self._transactions[transaction_id]
        return True

    async def get_or_create_income_source(self, user_key: str) -> IncomeSource:
        # No await between lookup and insert, so this is atomic on the loop
        source = self._sources.get(user_key)
        if source is None:
            source = IncomeSource(user_key=user_key)
            self._sources[user_key] = source
        return source.model_copy()

    async def list_income_entries(
        self,
        user_key: str,
        source_id: UUID,
    ) -> list[IncomeEntry]:
        rows = [
            entry.model_copy()
            for entry in self._entries.values()
            if entry.user_key == user_key and entry.source_id == source_id
        ]
        rows.sort(key=lambda e: (e.entry_date, e.created_at), reverse=True)
        return rows

    async def insert_income_entry(self, draft: IncomeEntryDraft) -> IncomeEntry:
        entry = IncomeEntry.from_draft(draft)
        self._entries[entry.id] = entry
        return entry.model_copy()

    async def delete_income_entry(self, entry_id: UUID, user_key: str) -> bool:
        existing = self._entries.get(entry_id)
        if existing is None or existing.user_key != user_key:
            return False
        del self._entries[entry_id]
        return True


class InMemoryBudgetStorage(BudgetStorageInterface):
    """Budget caps held in memory."""

    def __init__(self):
        self._budgets: dict[UUID, Budget] = {}

    async def list_budgets(self, user_key: str) -> list[Budget]:
        rows = [
            budget.model_copy()
            for budget in self._budgets.values()
            if budget.user_key == user_key
        ]
        rows.sort(key=lambda b: b.created_at, reverse=True)
        return rows

    async def get_budget(self, budget_id: UUID, user_key: str) -> Optional[Budget]:
        budget = self._budgets.get(budget_id)
        if budget is None or budget.user_key != user_key:
            return None
        return budget.model_copy()

    async def insert_budget(self, draft: BudgetDraft) -> Budget:
        budget = Budget.from_draft(draft)
        self._budgets[budget.id] = budget
        return budget.model_copy()

    async def delete_budget(self, budget_id: UUID, user_key: str) -> bool:
        existing = self._budgets.get(budget_id)
        if existing is None or existing.user_key != user_key:
            return False
        del self._budgets[budget_id]
        return True


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only audit log held in memory."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        events = sorted(self._events, key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
