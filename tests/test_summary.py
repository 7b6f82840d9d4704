"""Tests for month summaries."""

from datetime import date
from decimal import Decimal

import pytest

from budget_engine.engine.summary import savings_rate
from budget_engine.validation import ValidationError

from conftest import USER, add_income, expense


class TestSavingsRate:

    def test_no_income(self):
        assert savings_rate(Decimal("0"), Decimal("-50")) == Decimal("0.00")

    def test_two_decimals_half_up(self):
        # 1/3 of income saved
        assert savings_rate(Decimal("3"), Decimal("1")) == Decimal("33.33")
        assert savings_rate(Decimal("8"), Decimal("1")) == Decimal("12.50")
        assert savings_rate(Decimal("1600"), Decimal("1")) == Decimal("0.06")

    def test_negative_when_overspent(self):
        assert savings_rate(Decimal("100"), Decimal("-25")) == Decimal("-25.00")


@pytest.mark.asyncio
class TestPeriodSummaryBuilder:

    async def test_food_and_rent_example(self, summaries, ledger):
        await add_income(ledger, "3000", day=date(2024, 3, 1))
        await ledger.insert_transaction(expense("200", "Food", date(2024, 3, 3)))
        await ledger.insert_transaction(expense("1200", "Rent", date(2024, 3, 1)))
        await ledger.insert_transaction(expense("150", "Food", date(2024, 3, 31)))
        # Outside the window
        await ledger.insert_transaction(expense("999", "Food", date(2024, 4, 1)))
        await ledger.insert_transaction(expense("999", "Rent", date(2024, 2, 29)))

        summary = await summaries.summarize(USER, 3, 2024)

        assert summary.period == "3/2024"
        assert summary.window_start == date(2024, 3, 1)
        assert summary.window_end == date(2024, 3, 31)
        assert summary.total_income == Decimal("3000")
        assert summary.total_expenses == Decimal("1550")
        assert summary.net_savings == Decimal("1450")
        assert summary.savings_rate == Decimal("48.33")
        assert [(c.category, c.amount) for c in summary.expenses_by_category] == [
            ("Rent", Decimal("1200")),
            ("Food", Decimal("350")),
        ]

    async def test_zero_income_month(self, summaries, ledger):
        await ledger.insert_transaction(expense("40", "Food", date(2024, 2, 29)))

        summary = await summaries.summarize(USER, 2, 2024)
        assert summary.total_income == Decimal("0")
        assert summary.net_savings == Decimal("-40")
        assert summary.savings_rate == Decimal("0.00")

    async def test_empty_month(self, summaries):
        summary = await summaries.summarize(USER, 12, 2023)
        assert summary.total_expenses == Decimal("0")
        assert summary.expenses_by_category == []
        assert summary.to_response_dict()["expensesByCategory"] == []

    async def test_invalid_month_rejected(self, summaries):
        with pytest.raises(ValidationError):
            await summaries.summarize(USER, 13, 2024)
