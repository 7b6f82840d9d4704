"""Services package."""

from budget_engine.services.budgets import BudgetRegistry
from budget_engine.services.ledger import LedgerAccessor
from budget_engine.services.storage import (
    AuditStorageInterface,
    BudgetStorageInterface,
    ConnectionError,
    DuplicateError,
    GoogleSheetsAuditStorage,
    GoogleSheetsBudgetStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStorage,
    InMemoryAuditStorage,
    InMemoryBudgetStorage,
    InMemoryLedgerStorage,
    LedgerStorageInterface,
    NotFoundError,
    PersistenceError,
    StorageTimeoutError,
)

__all__ = [
    # Accessors
    "BudgetRegistry",
    "LedgerAccessor",
    # Storage services
    "AuditStorageInterface",
    "BudgetStorageInterface",
    "ConnectionError",
    "DuplicateError",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsBudgetStorage",
    "GoogleSheetsClient",
    "GoogleSheetsLedgerStorage",
    "InMemoryAuditStorage",
    "InMemoryBudgetStorage",
    "InMemoryLedgerStorage",
    "LedgerStorageInterface",
    "NotFoundError",
    "PersistenceError",
    "StorageTimeoutError",
]
