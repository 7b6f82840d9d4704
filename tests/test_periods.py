"""Tests for calendar-month windows."""

from datetime import date

import pytest

from budget_engine.engine.periods import month_window
from budget_engine.services.storage import ValidationError as StorageValidationError
from budget_engine.validation import ValidationError


class TestMonthWindow:

    def test_leap_february(self):
        assert month_window(2, 2024) == (date(2024, 2, 1), date(2024, 2, 29))

    def test_common_february(self):
        assert month_window(2, 2025) == (date(2025, 2, 1), date(2025, 2, 28))

    def test_century_not_leap(self):
        assert month_window(2, 1900)[1] == date(1900, 2, 28)
        assert month_window(2, 2000)[1] == date(2000, 2, 29)

    @pytest.mark.parametrize("month,last_day", [(1, 31), (4, 30), (6, 30), (7, 31), (11, 30)])
    def test_month_lengths(self, month, last_day):
        assert month_window(month, 2023)[1] == date(2023, month, last_day)

    def test_december_stays_in_year(self):
        assert month_window(12, 2023) == (date(2023, 12, 1), date(2023, 12, 31))

    def test_last_representable_month(self):
        assert month_window(12, 9999) == (date(9999, 12, 1), date(9999, 12, 31))

    @pytest.mark.parametrize("month", [0, 13, -1, True])
    def test_invalid_month(self, month):
        with pytest.raises(ValidationError) as exc_info:
            month_window(month, 2024)
        assert exc_info.value.issues[0].field == "month"

    def test_invalid_year(self):
        with pytest.raises(ValidationError) as exc_info:
            month_window(1, 0)
        assert exc_info.value.issues[0].field == "year"

    def test_error_shared_with_storage_taxonomy(self):
        with pytest.raises(StorageValidationError):
            month_window(13, 2024)
        assert ValidationError is StorageValidationError
