"""Calendar-month windows for period summaries."""

from datetime import date, timedelta

from budget_engine.services.storage.interface import ValidationError
from budget_engine.models.ledger import ValidationIssue


def month_window(month: int, year: int) -> tuple[date, date]:
    """
    Return the inclusive first and last day of a 1-indexed month.

    The last day is the day before the first of the following month, so
    28/29/30/31-day months and leap years come out right, and December
    never spills into the next year's January.
    """
    issues = []
    if not isinstance(month, int) or isinstance(month, bool) or not 1 <= month <= 12:
        issues.append(ValidationIssue(
            field="month",
            issue_type="out_of_range",
            message="Month must be a number between 1 and 12",
            severity="error",
        ))
    if not isinstance(year, int) or isinstance(year, bool) or not 1 <= year <= 9999:
        issues.append(ValidationIssue(
            field="year",
            issue_type="out_of_range",
            message="Year must be a number between 1 and 9999",
            severity="error",
        ))
    if issues:
        raise ValidationError(issues)

    first_day = date(year, month, 1)
    if month == 12:
        if year == 9999:
            return first_day, date(9999, 12, 31)
        first_of_next = date(year + 1, 1, 1)
    else:
        first_of_next = date(year, month + 1, 1)
    return first_day, first_of_next - timedelta(days=1)
