"""Shared fixtures: in-memory storage, accessors and engines."""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from budget_engine.audit import AuditLogger
from budget_engine.config import get_settings
from budget_engine.engine import AggregationEngine, OverspendGuard, PeriodSummaryBuilder
from budget_engine.models.ledger import (
    BudgetDraft,
    IncomeEntryDraft,
    TransactionDraft,
    TransactionType,
)
from budget_engine.orchestrator import FinanceEngine
from budget_engine.services import BudgetRegistry, LedgerAccessor
from budget_engine.services.storage import (
    InMemoryAuditStorage,
    InMemoryBudgetStorage,
    InMemoryLedgerStorage,
)

USER = "user-1"
OTHER_USER = "user-2"


class Clock:
    """Settable stand-in for the guard's clock."""

    def __init__(self):
        self.now = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now


@pytest.fixture(autouse=True)
def fresh_settings():
    """Re-read settings for every test so env overrides never leak."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def ledger_storage():
    return InMemoryLedgerStorage()


@pytest.fixture
def budget_storage():
    return InMemoryBudgetStorage()


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage):
    return AuditLogger(audit_storage)


@pytest.fixture
def ledger(ledger_storage):
    return LedgerAccessor(ledger_storage, timeout_seconds=1.0)


@pytest.fixture
def budgets(budget_storage):
    return BudgetRegistry(budget_storage, timeout_seconds=1.0)


@pytest.fixture
def aggregation(ledger, budgets):
    return AggregationEngine(ledger, budgets)


@pytest.fixture
def summaries(aggregation):
    return PeriodSummaryBuilder(aggregation)


@pytest.fixture
def guard(aggregation, ledger, budgets, audit_logger):
    return OverspendGuard(aggregation, ledger, budgets, audit_logger=audit_logger)


@pytest.fixture
def engine(ledger_storage, budget_storage, audit_logger):
    return FinanceEngine(ledger_storage, budget_storage, audit_logger=audit_logger)


def expense(amount, category="Food", day=date(2024, 3, 10), user_key=USER, **extra):
    return TransactionDraft(
        user_key=user_key,
        category=category,
        amount=Decimal(amount),
        type=TransactionType.EXPENSE,
        transaction_date=day,
        **extra,
    )


def income_tx(amount, day=date(2024, 3, 1), user_key=USER):
    return TransactionDraft(
        user_key=user_key,
        category="Salary",
        amount=Decimal(amount),
        type=TransactionType.INCOME,
        transaction_date=day,
    )


def budget(amount, name="Food", user_key=USER, **extra):
    return BudgetDraft(user_key=user_key, name=name, amount=Decimal(amount), **extra)


async def add_income(ledger, amount, day=date(2024, 3, 1), user_key=USER):
    source = await ledger.get_or_create_income_source(user_key)
    return await ledger.insert_income_entry(IncomeEntryDraft(
        user_key=user_key,
        source_id=source.id,
        amount=Decimal(amount),
        description="Salary",
        entry_date=day,
    ))
