"""
Core Ledger Models for the Budget Engine

These models define the strict schemas for everything the engine reads
from or writes to storage:
1. Ledger transactions (expense and income legs)
2. Budget caps
3. The per-user income source and its entries

DESIGN DECISION: Amounts are always stored non-negative with at most two
decimal places. The sign of a transaction is implied by its type, never
by the amount itself.

Drafts carry what the user submits. Storage turns a draft into a record
by assigning identity and creation time.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Annotated, Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    model_validator,
)


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def normalize_category(name: Optional[str]) -> Optional[str]:
    """Grouping key for a category name (case and surrounding space ignored)."""
    if name is None:
        return None
    key = name.strip().casefold()
    return key or None


Money = Annotated[
    Decimal,
    Field(gt=0, decimal_places=2, description="Positive amount, two decimal places at most"),
]


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class TransactionType(str, Enum):
    """Which leg of the ledger a transaction belongs to."""
    EXPENSE = "expense"
    INCOME = "income"


class RecurringInterval(str, Enum):
    """
    Recurrence metadata.

    Stored for display only. The engine never schedules anything.
    """
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class IncomeCategory(str, Enum):
    """Tag for an income entry."""
    SALARY = "salary"
    FREELANCE = "freelance"
    INVESTMENT = "investment"
    GIFT = "gift"
    OTHER = "other"


# =============================================================================
# TRANSACTIONS
# =============================================================================

class TransactionDraft(BaseModel):
    """
    A transaction as submitted by the user, before storage assigns an id.

    This is what the Overspend Guard evaluates.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    user_key: str = Field(
        ...,
        min_length=1,
        description="Opaque owner key from the identity provider"
    )
    category: Optional[str] = Field(
        default=None,
        max_length=100,
        description="Category name; optional for income-style entries"
    )
    amount: Money
    type: TransactionType = Field(
        default=TransactionType.EXPENSE,
        description="Expense or income"
    )
    description: Optional[str] = Field(
        default=None,
        max_length=500,
    )
    transaction_date: date = Field(
        ...,
        description="Calendar date the transaction occurred"
    )

    # Recurrence and tax flags are metadata only
    is_recurring: bool = False
    recurring_interval: Optional[RecurringInterval] = None
    is_tax_related: bool = False

    @model_validator(mode='after')
    def validate_recurrence(self) -> 'TransactionDraft':
        """An interval only makes sense on a recurring transaction."""
        if self.is_recurring and self.recurring_interval is None:
            raise ValueError("Recurring transactions need a recurring interval")
        if not self.is_recurring and self.recurring_interval is not None:
            raise ValueError("Recurring interval given for a non-recurring transaction")
        return self

    @property
    def category_key(self) -> Optional[str]:
        return normalize_category(self.category)

    @property
    def is_expense(self) -> bool:
        return self.type == TransactionType.EXPENSE


class Transaction(TransactionDraft):
    """
    A persisted ledger transaction.

    Never mutated after creation. The only lifecycle event is deletion.
    """

    id: UUID = Field(
        default_factory=uuid4,
        description="Unique transaction ID"
    )
    created_at: datetime = Field(
        default_factory=utcnow,
        description="When the transaction was written to storage"
    )

    @classmethod
    def from_draft(cls, draft: TransactionDraft) -> 'Transaction':
        return cls(**draft.model_dump())


class TransactionFilters(BaseModel):
    """
    Optional filters for listing or summing transactions.

    Absent filters impose no constraint; present ones compose with AND.
    """

    date_from: Optional[date] = None
    date_to: Optional[date] = None
    category: Optional[str] = None
    type: Optional[TransactionType] = None

    @model_validator(mode='after')
    def validate_range(self) -> 'TransactionFilters':
        if self.date_from and self.date_to and self.date_to < self.date_from:
            raise ValueError("date_to cannot be before date_from")
        return self

    def matches(self, transaction: TransactionDraft) -> bool:
        """Check one transaction against every present filter."""
        if self.date_from and transaction.transaction_date < self.date_from:
            return False
        if self.date_to and transaction.transaction_date > self.date_to:
            return False
        if self.category is not None:
            if transaction.category_key != normalize_category(self.category):
                return False
        if self.type and transaction.type != self.type:
            return False
        return True


# =============================================================================
# BUDGETS
# =============================================================================

class BudgetDraft(BaseModel):
    """A budget cap as submitted by the user."""
    model_config = ConfigDict(str_strip_whitespace=True)

    user_key: str = Field(..., min_length=1)
    name: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Budget name"
    )
    amount: Money
    category: Optional[str] = Field(
        default=None,
        max_length=100,
        description="Expense category this cap tracks; defaults to the name"
    )
    description: Optional[str] = Field(
        default=None,
        max_length=500,
    )
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    @model_validator(mode='after')
    def validate_window(self) -> 'BudgetDraft':
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("Budget end date cannot be before start date")
        return self

    @property
    def grouping_key(self) -> str:
        """Normalized category the budget's usage is computed against."""
        return normalize_category(self.category) or normalize_category(self.name)

    def covers(self, day: date) -> bool:
        """True if ``day`` falls inside the budget's validity window."""
        if self.start_date and day < self.start_date:
            return False
        if self.end_date and day > self.end_date:
            return False
        return True


class Budget(BudgetDraft):
    """
    A persisted budget cap.

    The cap is immutable. Usage is derived from the live ledger on every
    read and is never stored on the budget.
    """

    id: UUID = Field(default_factory=uuid4)
    created_at: datetime = Field(default_factory=utcnow)

    @classmethod
    def from_draft(cls, draft: BudgetDraft) -> 'Budget':
        return cls(**draft.model_dump())


# =============================================================================
# INCOME
# =============================================================================

class IncomeSource(BaseModel):
    """The single implicit income source a user owns."""

    id: UUID = Field(default_factory=uuid4)
    user_key: str = Field(..., min_length=1)
    name: str = Field(default="Income", min_length=1, max_length=100)
    created_at: datetime = Field(default_factory=utcnow)


class IncomeEntryDraft(BaseModel):
    """An income entry as submitted by the user."""
    model_config = ConfigDict(str_strip_whitespace=True)

    user_key: str = Field(..., min_length=1)
    source_id: UUID
    amount: Money
    description: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="What the income was for"
    )
    category: IncomeCategory = IncomeCategory.OTHER
    entry_date: date


class IncomeEntry(IncomeEntryDraft):
    """A persisted income entry."""

    id: UUID = Field(default_factory=uuid4)
    created_at: datetime = Field(default_factory=utcnow)

    @classmethod
    def from_draft(cls, draft: IncomeEntryDraft) -> 'IncomeEntry':
        return cls(**draft.model_dump())


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_format', 'suspicious_value')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )


class ValidationResult(BaseModel):
    """
    Result of the two-stage validation.

    Stage 1: Schema validation (types, required fields)
    Stage 2: Semantic validation (suspicious but admissible values)
    """

    validated_at: datetime = Field(default_factory=utcnow)
    is_valid: bool
    issues: list[ValidationIssue] = Field(default_factory=list)

    @property
    def warnings(self) -> list[str]:
        return [issue.message for issue in self.issues if issue.severity == "warning"]

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")
