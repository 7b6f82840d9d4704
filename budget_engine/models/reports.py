"""
Report Models

Plain result structures produced by the Aggregation Engine and the
Period Summary Builder. None of these are persisted: they are recomputed
from the live ledger on every read.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from budget_engine.models.ledger import Budget


class HealthStatus(str, Enum):
    """Financial health label, by expense/income ratio."""
    NO_INCOME = "No Income"
    OVER_BUDGET = "Over Budget"
    AT_RISK = "At Risk"
    CAUTION = "Caution"
    HEALTHY = "Healthy"


class ThresholdClass(str, Enum):
    """Severity class that goes with a health label."""
    NEUTRAL = "neutral"
    CRITICAL = "critical"
    WARNING = "warning"
    CAUTION = "caution"
    OK = "ok"


class FinancialHealth(BaseModel):
    """Classification of a user's expense/income ratio."""

    label: HealthStatus
    threshold_class: ThresholdClass
    ratio: Optional[Decimal] = Field(
        default=None,
        description="expenses / income; None when there is no income"
    )


class BudgetUsage(BaseModel):
    """
    Derived usage of a single budget.

    ``remaining`` goes negative on overspend. ``usage_percent`` is capped
    at 100 for display, ``is_overspent`` is not.
    """

    spent: Decimal = Field(ge=0)
    remaining: Decimal
    usage_percent: int = Field(ge=0, le=100)

    @property
    def is_overspent(self) -> bool:
        return self.remaining < 0


class BudgetUsageLine(BaseModel):
    """One row of the budget usage report."""

    budget: Budget
    spent: Decimal
    remaining: Decimal
    usage_percent: int


class CategoryAmount(BaseModel):
    """Total expense for one category."""

    category: str
    amount: Decimal


class BalanceSnapshot(BaseModel):
    """Income and expense totals read at a single point in time."""

    total_income: Decimal
    total_expenses: Decimal

    @property
    def available(self) -> Decimal:
        return self.total_income - self.total_expenses


class PeriodSummary(BaseModel):
    """
    Month/year bounded summary.

    Mirrors the response of the ``GET /summary?month&year`` surface.
    """

    month: int = Field(ge=1, le=12)
    year: int
    window_start: date
    window_end: date
    total_income: Decimal
    total_expenses: Decimal
    net_savings: Decimal
    savings_rate: Decimal = Field(
        description="Percent of income saved, two decimal places; 0 without income"
    )
    expenses_by_category: list[CategoryAmount] = Field(default_factory=list)

    @property
    def period(self) -> str:
        return f"{self.month}/{self.year}"

    def to_response_dict(self) -> dict:
        """
        Render as the JSON shape the request layer returns.

        Amounts become strings so no float conversion happens here.
        """
        return {
            "period": self.period,
            "totalIncome": str(self.total_income),
            "totalExpenses": str(self.total_expenses),
            "netSavings": str(self.net_savings),
            "savingsRate": str(self.savings_rate),
            "expensesByCategory": [
                {"name": item.category, "amount": str(item.amount)}
                for item in self.expenses_by_category
            ],
        }


class FinancialOverview(BaseModel):
    """Dashboard-level totals across the whole ledger."""

    total_income: Decimal
    total_expenses: Decimal
    net_savings: Decimal
    total_budget_allocated: Decimal
    spending_progress: int = Field(
        ge=0,
        le=100,
        description="Expenses as a percent of income, capped at 100"
    )
    health: FinancialHealth
    budget_count: int = Field(ge=0)
