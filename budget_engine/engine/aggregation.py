"""
Aggregation Engine

Derives every number the rest of the system shows: income and expense
totals, per-budget usage, financial health, per-category breakdowns.

DESIGN DECISION: Nothing here is cached or stored. Each call re-reads
the live ledger through the Ledger Accessor and Budget Registry, so a
deleted transaction stops counting on the very next read.

All sums are exact Decimal arithmetic. Rounding only happens on the
percentages handed back to the caller.
"""

from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional

import structlog

from budget_engine.config import Settings, get_settings
from budget_engine.models.ledger import (
    Budget,
    Transaction,
    TransactionFilters,
    TransactionType,
)
from budget_engine.models.reports import (
    BalanceSnapshot,
    BudgetUsage,
    BudgetUsageLine,
    CategoryAmount,
    FinancialHealth,
    FinancialOverview,
    HealthStatus,
    ThresholdClass,
)
from budget_engine.services.budgets import BudgetRegistry
from budget_engine.services.ledger import LedgerAccessor

logger = structlog.get_logger(__name__)

ZERO = Decimal("0")
HUNDRED = Decimal("100")

# (exclusive lower bound on expenses/income, label, class), checked top-down
HEALTH_BANDS = (
    (Decimal("1"), HealthStatus.OVER_BUDGET, ThresholdClass.CRITICAL),
    (Decimal("0.9"), HealthStatus.AT_RISK, ThresholdClass.WARNING),
    (Decimal("0.7"), HealthStatus.CAUTION, ThresholdClass.CAUTION),
)


def percent_of(part: Decimal, whole: Decimal) -> int:
    """
    ``part / whole`` as a whole percent, capped at 100.

    Zero whole or zero part gives 0 rather than an error.
    """
    if whole <= 0 or part <= 0:
        return 0
    ratio = min(part / whole, Decimal("1"))
    return int((ratio * HUNDRED).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def compute_usage(cap: Decimal, spent: Decimal) -> BudgetUsage:
    """Usage of a cap given what has been spent against it."""
    return BudgetUsage(
        spent=spent,
        remaining=cap - spent,
        usage_percent=percent_of(spent, cap),
    )


def classify_health(income: Decimal, expenses: Decimal) -> FinancialHealth:
    """Band the expense/income ratio. No income is checked first."""
    if income <= 0:
        return FinancialHealth(
            label=HealthStatus.NO_INCOME,
            threshold_class=ThresholdClass.NEUTRAL,
        )

    ratio = expenses / income
    for lower_bound, label, threshold_class in HEALTH_BANDS:
        if ratio > lower_bound:
            return FinancialHealth(label=label, threshold_class=threshold_class, ratio=ratio)
    return FinancialHealth(
        label=HealthStatus.HEALTHY,
        threshold_class=ThresholdClass.OK,
        ratio=ratio,
    )


def group_by_category(
    transactions: Iterable[Transaction],
    uncategorized_label: str,
) -> list[CategoryAmount]:
    """
    Sum expense transactions per category.

    Categories that differ only in case or surrounding space share a
    group. Ordered by amount descending, then label ascending.
    """
    totals: dict[str, Decimal] = {}
    labels: dict[str, str] = {}

    for tx in transactions:
        if not tx.is_expense:
            continue
        key = tx.category_key
        label = tx.category.strip() if key else uncategorized_label
        key = key or ""
        totals[key] = totals.get(key, ZERO) + tx.amount
        # Smallest spelling wins so the label does not depend on read order
        labels[key] = min(labels.get(key, label), label)

    items = [
        CategoryAmount(category=labels[key], amount=amount)
        for key, amount in totals.items()
    ]
    items.sort(key=lambda item: (-item.amount, item.category))
    return items


class AggregationEngine:
    """
    Read-only calculations over one user's ledger and budgets.

    Usage:
        engine = AggregationEngine(ledger, budgets)
        usage = await engine.budget_usage(budget, "user-1")
    """

    def __init__(
        self,
        ledger: LedgerAccessor,
        budgets: BudgetRegistry,
        settings: Optional[Settings] = None,
    ):
        self.ledger = ledger
        self.budgets = budgets
        self._settings = (settings or get_settings()).app

    # -------------------------------------------------------------------------
    # Totals
    # -------------------------------------------------------------------------

    async def total_income(
        self,
        user_key: str,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> Decimal:
        """Income entries plus income-type transactions in the window."""
        entries = await self.ledger.list_income_entries(user_key, date_from, date_to)
        income_transactions = await self.ledger.list_transactions(
            user_key,
            TransactionFilters(
                date_from=date_from,
                date_to=date_to,
                type=TransactionType.INCOME,
            ),
        )
        return (
            sum((entry.amount for entry in entries), ZERO)
            + sum((tx.amount for tx in income_transactions), ZERO)
        )

    async def total_expenses(
        self,
        user_key: str,
        filters: Optional[TransactionFilters] = None,
    ) -> Decimal:
        """Sum of expense transactions matching every present filter."""
        filters = filters or TransactionFilters()
        if filters.type == TransactionType.INCOME:
            return ZERO

        transactions = await self.ledger.list_transactions(
            user_key,
            filters.model_copy(update={"type": TransactionType.EXPENSE}),
        )
        return sum((tx.amount for tx in transactions if tx.is_expense), ZERO)

    async def balance_snapshot(self, user_key: str) -> BalanceSnapshot:
        return BalanceSnapshot(
            total_income=await self.total_income(user_key),
            total_expenses=await self.total_expenses(user_key),
        )

    # -------------------------------------------------------------------------
    # Budgets
    # -------------------------------------------------------------------------

    @staticmethod
    def _spent_against(budget: Budget, transactions: Iterable[Transaction]) -> Decimal:
        key = budget.grouping_key
        return sum(
            (
                tx.amount
                for tx in transactions
                if tx.is_expense
                and tx.category_key == key
                and budget.covers(tx.transaction_date)
            ),
            ZERO,
        )

    async def budget_usage(self, budget: Budget, user_key: str) -> BudgetUsage:
        """
        Spent, remaining and percent used for one budget.

        Only expenses whose category matches the budget's grouping key
        and whose date sits inside the budget's window count.
        """
        transactions = await self.ledger.list_transactions(
            user_key,
            TransactionFilters(
                date_from=budget.start_date,
                date_to=budget.end_date,
                type=TransactionType.EXPENSE,
            ),
        )
        return compute_usage(budget.amount, self._spent_against(budget, transactions))

    async def budget_usage_report(self, user_key: str) -> list[BudgetUsageLine]:
        """Usage for every budget of the user, newest budget first."""
        budgets = await self.budgets.list_budgets(user_key)
        transactions = await self.ledger.list_transactions(
            user_key,
            TransactionFilters(type=TransactionType.EXPENSE),
        )

        lines = []
        for budget in sorted(budgets, key=lambda b: b.created_at, reverse=True):
            usage = compute_usage(budget.amount, self._spent_against(budget, transactions))
            lines.append(BudgetUsageLine(
                budget=budget,
                spent=usage.spent,
                remaining=usage.remaining,
                usage_percent=usage.usage_percent,
            ))
        return lines

    # -------------------------------------------------------------------------
    # Classification and breakdowns
    # -------------------------------------------------------------------------

    @staticmethod
    def financial_health(income: Decimal, expenses: Decimal) -> FinancialHealth:
        return classify_health(income, expenses)

    async def expenses_by_category(
        self,
        user_key: str,
        filters: Optional[TransactionFilters] = None,
    ) -> list[CategoryAmount]:
        filters = filters or TransactionFilters()
        if filters.type == TransactionType.INCOME:
            return []
        transactions = await self.ledger.list_transactions(
            user_key,
            filters.model_copy(update={"type": TransactionType.EXPENSE}),
        )
        return group_by_category(transactions, self._settings.uncategorized_label)

    async def overview(self, user_key: str) -> FinancialOverview:
        """Dashboard totals, budget allocation and health in one read."""
        snapshot = await self.balance_snapshot(user_key)
        budgets = await self.budgets.list_budgets(user_key)

        overview = FinancialOverview(
            total_income=snapshot.total_income,
            total_expenses=snapshot.total_expenses,
            net_savings=snapshot.available,
            total_budget_allocated=sum((b.amount for b in budgets), ZERO),
            spending_progress=percent_of(snapshot.total_expenses, snapshot.total_income),
            health=classify_health(snapshot.total_income, snapshot.total_expenses),
            budget_count=len(budgets),
        )
        logger.debug(
            "overview_computed",
            user_key=user_key,
            health=overview.health.label.value,
        )
        return overview
