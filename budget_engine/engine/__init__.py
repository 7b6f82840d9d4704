"""Aggregation, period summaries and the overspend guard."""

from budget_engine.engine.aggregation import (
    AggregationEngine,
    classify_health,
    compute_usage,
    group_by_category,
    percent_of,
)
from budget_engine.engine.guard import (
    ConfirmationExpiredError,
    OverspendGuard,
    OverspendPending,
    PendingProposal,
)
from budget_engine.engine.periods import month_window
from budget_engine.engine.summary import PeriodSummaryBuilder, savings_rate

__all__ = [
    # Aggregation
    "AggregationEngine",
    "classify_health",
    "compute_usage",
    "group_by_category",
    "percent_of",
    # Summaries
    "PeriodSummaryBuilder",
    "month_window",
    "savings_rate",
    # Guard
    "ConfirmationExpiredError",
    "OverspendGuard",
    "OverspendPending",
    "PendingProposal",
]
