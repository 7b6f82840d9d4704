"""
Period Summary Builder

Month/year summaries: income, expenses, net savings, savings rate and
the expense breakdown, all bounded to one calendar month.
"""

from decimal import ROUND_HALF_UP, Decimal

import structlog

from budget_engine.engine.aggregation import ZERO, AggregationEngine
from budget_engine.engine.periods import month_window
from budget_engine.models.ledger import TransactionFilters, TransactionType
from budget_engine.models.reports import PeriodSummary

logger = structlog.get_logger(__name__)

CENT = Decimal("0.01")


def savings_rate(income: Decimal, net_savings: Decimal) -> Decimal:
    """Percent of income saved, two decimal places. 0 when there is no income."""
    if income <= 0:
        return ZERO.quantize(CENT)
    return (net_savings / income * Decimal("100")).quantize(CENT, rounding=ROUND_HALF_UP)


class PeriodSummaryBuilder:
    """Builds a PeriodSummary from the live ledger."""

    def __init__(self, aggregation: AggregationEngine):
        self.aggregation = aggregation

    async def summarize(self, user_key: str, month: int, year: int) -> PeriodSummary:
        """
        Summarize one calendar month for a user.

        Raises:
            ValidationError: If month is outside 1..12 or year is invalid
        """
        window_start, window_end = month_window(month, year)
        expense_filters = TransactionFilters(
            date_from=window_start,
            date_to=window_end,
            type=TransactionType.EXPENSE,
        )

        income = await self.aggregation.total_income(user_key, window_start, window_end)
        expenses = await self.aggregation.total_expenses(user_key, expense_filters)
        by_category = await self.aggregation.expenses_by_category(user_key, expense_filters)

        net = income - expenses
        summary = PeriodSummary(
            month=month,
            year=year,
            window_start=window_start,
            window_end=window_end,
            total_income=income,
            total_expenses=expenses,
            net_savings=net,
            savings_rate=savings_rate(income, net),
            expenses_by_category=by_category,
        )

        logger.info(
            "period_summarized",
            user_key=user_key,
            period=summary.period,
            category_count=len(by_category),
        )
        return summary
