"""
Two-Stage Validation Pipeline

DESIGN DECISION: Validation happens in two distinct stages:

STAGE 1 - SCHEMA VALIDATION:
- Required field presence
- Numeric, positive, two-decimal amounts
- ISO dates, known transaction types and intervals
- Any failure here is an error and nothing downstream runs

STAGE 2 - SEMANTIC VALIDATION:
- Suspiciously large amounts
- Dates far in the future or far in the past
- These are warnings: the proposal still goes to the guard

Payloads arrive in the request-layer field shape (``categoryId``,
``isRecurring``, ``startDate`` ...) and leave as typed drafts.

IMPORTANT: Validation NEVER silently fixes issues.
It reports them so the caller can correct its input.
"""

from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Optional
from uuid import UUID

from pydantic import ValidationError as SchemaError

from budget_engine.config import get_settings
from budget_engine.models.ledger import (
    BudgetDraft,
    IncomeCategory,
    IncomeEntryDraft,
    RecurringInterval,
    TransactionDraft,
    TransactionFilters,
    TransactionType,
    ValidationIssue,
    ValidationResult,
)
from budget_engine.services.storage.interface import ValidationError

CENT = Decimal("0.01")


def _error(field: str, issue_type: str, message: str) -> ValidationIssue:
    return ValidationIssue(
        field=field,
        issue_type=issue_type,
        message=message,
        severity="error",
    )


def _warning(field: str, issue_type: str, message: str) -> ValidationIssue:
    return ValidationIssue(
        field=field,
        issue_type=issue_type,
        message=message,
        severity="warning",
    )


def _first(payload: dict, *keys: str) -> Any:
    """Value of the first key present (request and python spellings)."""
    for key in keys:
        if key in payload and payload[key] not in (None, ""):
            return payload[key]
    return None


class ProposalValidator:
    """
    Validates request payloads into typed drafts.

    Every ``validate_*`` method either returns a draft plus its
    ValidationResult (warnings only) or raises ValidationError.
    """

    def __init__(self):
        self._settings = get_settings().app

    # -------------------------------------------------------------------------
    # Field parsers (stage 1)
    # -------------------------------------------------------------------------

    def _parse_amount(
        self,
        value: Any,
        issues: list[ValidationIssue],
        field: str = "amount",
    ) -> Optional[Decimal]:
        if value is None:
            issues.append(_error(field, "missing", "Amount is required"))
            return None
        if isinstance(value, bool):
            issues.append(_error(field, "invalid_format", "Amount must be a number"))
            return None

        try:
            amount = Decimal(str(value).strip()) if not isinstance(value, Decimal) else value
        except InvalidOperation:
            issues.append(_error(field, "invalid_format", "Amount must be a number"))
            return None

        if not amount.is_finite():
            issues.append(_error(field, "invalid_format", "Amount must be a finite number"))
            return None
        if amount <= 0:
            issues.append(_error(field, "invalid_value", "Amount must be a positive number"))
            return None
        try:
            cents = amount.quantize(CENT)
        except InvalidOperation:
            issues.append(_error(field, "invalid_value", "Amount is too large"))
            return None
        if cents != amount:
            issues.append(_error(
                field,
                "invalid_format",
                "Amount can have at most two decimal places",
            ))
            return None
        return cents

    def _parse_date(
        self,
        value: Any,
        field: str,
        issues: list[ValidationIssue],
        required: bool = True,
    ) -> Optional[date]:
        if value is None:
            if required:
                issues.append(_error(field, "missing", f"{field} is required"))
            return None
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value

        text = str(value).strip()
        try:
            return date.fromisoformat(text)
        except ValueError:
            pass
        try:
            return datetime.fromisoformat(text).date()
        except ValueError:
            issues.append(_error(field, "invalid_format", f"{field} must be an ISO 8601 date"))
            return None

    def _parse_flag(self, value: Any, field: str, issues: list[ValidationIssue]) -> bool:
        if value is None:
            return False
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in ("true", "1", "yes"):
            return True
        if text in ("false", "0", "no"):
            return False
        issues.append(_error(field, "invalid_format", f"{field} must be true or false"))
        return False

    def _parse_enum(self, enum_cls, value: Any, field: str, issues: list[ValidationIssue]):
        try:
            return enum_cls(str(value).strip().lower())
        except ValueError:
            allowed = ", ".join(member.value for member in enum_cls)
            issues.append(_error(field, "invalid_value", f"{field} must be one of: {allowed}"))
            return None

    def _build(self, model_cls, fields: dict, issues: list[ValidationIssue]):
        """Construct a draft, turning pydantic errors into issues."""
        try:
            return model_cls(**fields)
        except SchemaError as e:
            for err in e.errors():
                location = ".".join(str(part) for part in err["loc"]) or "payload"
                issues.append(_error(location, "invalid_value", err["msg"]))
            return None

    # -------------------------------------------------------------------------
    # Semantic checks (stage 2)
    # -------------------------------------------------------------------------

    def _check_semantics(
        self,
        amount: Decimal,
        day: Optional[date],
        date_field: str,
    ) -> list[ValidationIssue]:
        issues = []
        today = date.today()

        max_amount = Decimal(str(self._settings.max_transaction_amount))
        if amount > max_amount:
            issues.append(_warning(
                "amount",
                "suspicious_value",
                f"Amount ({amount:,.2f}) seems unusually high",
            ))

        if day is not None:
            max_future = today + timedelta(days=self._settings.future_date_tolerance_days)
            if day > max_future:
                issues.append(_warning(
                    date_field,
                    "future_date",
                    f"Date ({day}) is in the future",
                ))
            oldest = today - timedelta(days=365 * self._settings.stale_date_years)
            if day < oldest:
                issues.append(_warning(
                    date_field,
                    "suspicious_date",
                    f"Date ({day}) seems unusually old",
                ))

        return issues

    def _finish(self, draft, issues: list[ValidationIssue]):
        if draft is None or any(issue.severity == "error" for issue in issues):
            raise ValidationError([i for i in issues if i.severity == "error"])
        return draft, ValidationResult(is_valid=True, issues=issues)

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def validate_transaction(
        self,
        user_key: str,
        payload: dict,
    ) -> tuple[TransactionDraft, ValidationResult]:
        """
        Validate a ``POST /transactions`` style payload.

        Expenses need a category; income-style transactions may omit it.
        """
        issues: list[ValidationIssue] = []

        amount = self._parse_amount(payload.get("amount"), issues)
        day = self._parse_date(
            _first(payload, "date", "transaction_date"), "date", issues
        )

        raw_type = _first(payload, "type")
        tx_type = (
            self._parse_enum(TransactionType, raw_type, "type", issues)
            if raw_type is not None
            else TransactionType.EXPENSE
        )

        category = _first(payload, "categoryId", "category_id", "category")
        if category is not None:
            category = str(category).strip() or None
        if category is None and tx_type == TransactionType.EXPENSE:
            issues.append(_error("categoryId", "missing", "Category is required for expenses"))

        is_recurring = self._parse_flag(
            _first(payload, "isRecurring", "is_recurring"), "isRecurring", issues
        )
        raw_interval = _first(payload, "recurringInterval", "recurring_interval")
        interval = None
        if raw_interval is not None:
            interval = self._parse_enum(RecurringInterval, raw_interval, "recurringInterval", issues)

        is_tax_related = self._parse_flag(
            _first(payload, "isTaxRelated", "is_tax_related"), "isTaxRelated", issues
        )

        if issues:
            raise ValidationError(issues)

        draft = self._build(TransactionDraft, {
            "user_key": user_key,
            "category": category,
            "amount": amount,
            "type": tx_type,
            "description": _first(payload, "description"),
            "transaction_date": day,
            "is_recurring": is_recurring,
            "recurring_interval": interval,
            "is_tax_related": is_tax_related,
        }, issues)

        if draft is not None:
            issues.extend(self._check_semantics(draft.amount, draft.transaction_date, "date"))
        return self._finish(draft, issues)

    def validate_budget(
        self,
        user_key: str,
        payload: dict,
    ) -> tuple[BudgetDraft, ValidationResult]:
        """Validate a budget creation payload."""
        issues: list[ValidationIssue] = []

        name = _first(payload, "name")
        if name is None or not str(name).strip():
            issues.append(_error("name", "missing", "Budget name is required"))

        amount = self._parse_amount(payload.get("amount"), issues)
        start = self._parse_date(
            _first(payload, "startDate", "start_date"), "startDate", issues, required=False
        )
        end = self._parse_date(
            _first(payload, "endDate", "end_date"), "endDate", issues, required=False
        )

        if issues:
            raise ValidationError(issues)

        category = _first(payload, "categoryId", "category_id", "category")
        draft = self._build(BudgetDraft, {
            "user_key": user_key,
            "name": str(name),
            "amount": amount,
            "category": str(category) if category is not None else None,
            "description": _first(payload, "description"),
            "start_date": start,
            "end_date": end,
        }, issues)

        if draft is not None:
            issues.extend(self._check_semantics(draft.amount, None, "startDate"))
        return self._finish(draft, issues)

    def validate_income_entry(
        self,
        user_key: str,
        source_id: UUID,
        payload: dict,
    ) -> tuple[IncomeEntryDraft, ValidationResult]:
        """Validate an income entry payload against the user's source."""
        issues: list[ValidationIssue] = []

        amount = self._parse_amount(payload.get("amount"), issues)
        description = _first(payload, "name", "description")
        if description is None or not str(description).strip():
            issues.append(_error("name", "missing", "Income description is required"))

        raw_category = _first(payload, "category")
        category = (
            self._parse_enum(IncomeCategory, raw_category, "category", issues)
            if raw_category is not None
            else IncomeCategory.OTHER
        )
        day = self._parse_date(
            _first(payload, "date", "entry_date"), "date", issues, required=False
        ) or date.today()

        if issues:
            raise ValidationError(issues)

        draft = self._build(IncomeEntryDraft, {
            "user_key": user_key,
            "source_id": source_id,
            "amount": amount,
            "description": str(description),
            "category": category,
            "entry_date": day,
        }, issues)

        if draft is not None:
            issues.extend(self._check_semantics(draft.amount, draft.entry_date, "date"))
        return self._finish(draft, issues)

    def parse_transaction_query(self, query: Optional[dict]) -> TransactionFilters:
        """
        Parse ``GET /transactions?startDate&endDate&categoryId&type``.

        Absent keys impose no constraint.
        """
        query = query or {}
        issues: list[ValidationIssue] = []

        date_from = self._parse_date(
            _first(query, "startDate", "date_from"), "startDate", issues, required=False
        )
        date_to = self._parse_date(
            _first(query, "endDate", "date_to"), "endDate", issues, required=False
        )
        raw_type = _first(query, "type")
        tx_type = (
            self._parse_enum(TransactionType, raw_type, "type", issues)
            if raw_type is not None
            else None
        )
        category = _first(query, "categoryId", "category_id", "category")

        if issues:
            raise ValidationError(issues)

        filters = self._build(TransactionFilters, {
            "date_from": date_from,
            "date_to": date_to,
            "category": str(category) if category is not None else None,
            "type": tx_type,
        }, issues)
        if filters is None:
            raise ValidationError(issues)
        return filters

    def parse_summary_query(self, month: Any, year: Any) -> tuple[int, int]:
        """Coerce ``month``/``year`` query values to integers."""
        issues = []
        parsed = []
        for field, value, low, high in (("month", month, 1, 12), ("year", year, 1, 9999)):
            try:
                number = int(str(value).strip())
            except (TypeError, ValueError):
                issues.append(_error(field, "invalid_format", f"{field} must be a number"))
                continue
            if not low <= number <= high:
                issues.append(_error(
                    field,
                    "out_of_range",
                    f"{field} must be a number between {low} and {high}",
                ))
                continue
            parsed.append(number)

        if issues:
            raise ValidationError(issues)
        return parsed[0], parsed[1]

    def get_user_friendly_summary(self, result: ValidationResult) -> str:
        """
        Generate a user-friendly summary of validation results.
        """
        if result.is_valid and not result.warnings:
            return "All checks passed."

        lines = []
        if result.has_errors:
            lines.append("Some input needs fixing:")
            for issue in result.issues:
                if issue.severity == "error":
                    lines.append(f"   • {issue.message}")

        if result.warnings:
            lines.append("Please verify the following:")
            for warning in result.warnings:
                lines.append(f"   • {warning}")

        return "\n".join(lines)
