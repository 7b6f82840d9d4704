"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap Google Sheets for a real database later
2. Use in-memory storage for testing
3. Keep the aggregation engine decoupled from storage implementation

The interface is intentionally simple - keyed CRUD, nothing more.
Every read and write takes the owner's user key: implementations must
never return or delete a row that belongs to someone else.
"""

from abc import ABC, abstractmethod
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
    ValidationIssue,
)
from budget_engine.models.audit import AuditEvent


class LedgerStorageInterface(ABC):
    """
    Abstract interface for transaction and income storage.

    Any storage implementation (Google Sheets, PostgreSQL, etc.)
    must implement these methods.
    """

    @abstractmethod
    async def list_transactions(
        self,
        user_key: str,
        filters: Optional[TransactionFilters] = None,
    ) -> list[Transaction]:
        """
        List a user's transactions with optional filters.

        Args:
            user_key: Owner of the transactions
            filters: Date range, category and type constraints (AND)

        Returns:
            Matching transactions, newest date first
        """
        pass

    @abstractmethod
    async def insert_transaction(self, draft: TransactionDraft) -> Transaction:
        """
        Persist a transaction.

        Storage assigns the id and creation time.

        Raises:
            PersistenceError: If the write fails
        """
        pass

    @abstractmethod
    async def delete_transaction(self, transaction_id: UUID, user_key: str) -> bool:
        """
        Delete a transaction owned by ``user_key``.

        Returns:
            True if a row was deleted, False if none matched
        """
        pass

    @abstractmethod
    async def get_or_create_income_source(self, user_key: str) -> IncomeSource:
        """
        Return the user's income source, creating it on first access.

        Idempotent: repeated calls return the same identity.
        """
        pass

    @abstractmethod
    async def list_income_entries(
        self,
        user_key: str,
        source_id: UUID,
    ) -> list[IncomeEntry]:
        """
        List income entries under a source, newest first.
        """
        pass

    @abstractmethod
    async def insert_income_entry(self, draft: IncomeEntryDraft) -> IncomeEntry:
        """
        Persist an income entry.

        Raises:
            PersistenceError: If the write fails
        """
        pass

    @abstractmethod
    async def delete_income_entry(self, entry_id: UUID, user_key: str) -> bool:
        """
        Delete an income entry owned by ``user_key``.

        Returns:
            True if a row was deleted
        """
        pass


class BudgetStorageInterface(ABC):
    """
    Abstract interface for budget-cap storage.

    Budgets are create/delete only; there is no update.
    """

    @abstractmethod
    async def list_budgets(self, user_key: str) -> list[Budget]:
        """
        List a user's budgets, newest first.
        """
        pass

    @abstractmethod
    async def get_budget(self, budget_id: UUID, user_key: str) -> Optional[Budget]:
        """
        Retrieve one budget.

        Returns:
            The budget if it exists and belongs to ``user_key``, None otherwise
        """
        pass

    @abstractmethod
    async def insert_budget(self, draft: BudgetDraft) -> Budget:
        """
        Persist a budget.

        Raises:
            PersistenceError: If the write fails
        """
        pass

    @abstractmethod
    async def delete_budget(self, budget_id: UUID, user_key: str) -> bool:
        """
        Delete a budget owned by ``user_key``.

        Returns:
            True if a row was deleted
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (e.g., one proposal and its confirmation).

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events (newest first).
        """
        pass


class PersistenceError(Exception):
    """
    Base exception for storage operations.

    Retryable: the engine never retries on its own, the caller decides.
    """
    pass


class StorageTimeoutError(PersistenceError):
    """Storage did not answer within the configured timeout."""
    pass


class ConnectionError(PersistenceError):
    """Could not connect to storage backend."""
    pass


class DuplicateError(PersistenceError):
    """Attempted to insert a duplicate entity."""
    pass


class NotFoundError(Exception):
    """
    Referenced entity does not exist for this user.

    Not a storage failure: retrying will not help.
    """
    pass


class ValidationError(Exception):
    """
    Malformed or out-of-range input.

    Raised before any computation or write; always recoverable by the
    caller correcting its input.
    """

    def __init__(self, issues: list[ValidationIssue]):
        self.issues = issues
        messages = "; ".join(issue.message for issue in issues) or "Invalid input"
        super().__init__(messages)

    def to_dict(self) -> dict:
        return {"errors": [issue.model_dump() for issue in self.issues]}
