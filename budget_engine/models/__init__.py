"""
Data Models Package

This package contains all Pydantic models used by the budget engine.
All data flowing through the engine must conform to these schemas.
"""

from budget_engine.models.ledger import (
    Budget,
    BudgetDraft,
    IncomeCategory,
    IncomeEntry,
    IncomeEntryDraft,
    IncomeSource,
    RecurringInterval,
    Transaction,
    TransactionDraft,
    TransactionFilters,
    TransactionType,
    ValidationIssue,
    ValidationResult,
    normalize_category,
)
from budget_engine.models.reports import (
    BalanceSnapshot,
    BudgetUsage,
    BudgetUsageLine,
    CategoryAmount,
    FinancialHealth,
    FinancialOverview,
    HealthStatus,
    PeriodSummary,
    ThresholdClass,
)
from budget_engine.models.guard import (
    GuardDecision,
    GuardState,
    OverspendPending,
    ProposalKind,
)
from budget_engine.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "Budget",
    "BudgetDraft",
    "IncomeCategory",
    "IncomeEntry",
    "IncomeEntryDraft",
    "IncomeSource",
    "RecurringInterval",
    "Transaction",
    "TransactionDraft",
    "TransactionFilters",
    "TransactionType",
    "ValidationIssue",
    "ValidationResult",
    "normalize_category",
    # Report models
    "BalanceSnapshot",
    "BudgetUsage",
    "BudgetUsageLine",
    "CategoryAmount",
    "FinancialHealth",
    "FinancialOverview",
    "HealthStatus",
    "PeriodSummary",
    "ThresholdClass",
    # Guard models
    "GuardDecision",
    "GuardState",
    "OverspendPending",
    "ProposalKind",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
