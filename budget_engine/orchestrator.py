"""
Main Orchestrator for the Budget Engine

This module ties the components together behind the request-layer
surface:
1. Summaries and reports (payload -> validate -> aggregate)
2. Proposals (payload -> validate -> guard -> admit or park)
3. Confirmation (token -> guard -> persist once)
4. Ledger maintenance (delete, income entries)

DESIGN DECISION: The orchestrator enforces the boundaries:
- Nothing reaches the engine without passing the validator
- No expense or budget persists past income without confirmation
- Every mutation is audited

Callers pass plain payload dicts in the HTTP field shape and get typed
models back. Errors surface as ValidationError, NotFoundError,
PersistenceError, or OverspendPending when the caller asks for it.
"""

from typing import Optional, Union
from uuid import UUID

import structlog

from budget_engine.audit import AuditLogger, create_correlation_id
from budget_engine.config import get_settings, validate_all_settings
from budget_engine.engine import AggregationEngine, OverspendGuard, PeriodSummaryBuilder
from budget_engine.models.guard import GuardDecision
from budget_engine.models.ledger import (
    Budget,
    IncomeEntry,
    IncomeSource,
    Transaction,
    ValidationIssue,
    ValidationResult,
)
from budget_engine.models.reports import (
    BalanceSnapshot,
    BudgetUsageLine,
    FinancialOverview,
    PeriodSummary,
)
from budget_engine.services import BudgetRegistry, LedgerAccessor
from budget_engine.services.storage import (
    AuditStorageInterface,
    BudgetStorageInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsBudgetStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStorage,
    InMemoryBudgetStorage,
    InMemoryLedgerStorage,
    LedgerStorageInterface,
    PersistenceError,
)
from budget_engine.validation import ProposalValidator, ValidationError

logger = structlog.get_logger(__name__)


def _parse_id(value: Union[str, UUID], field: str) -> UUID:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        raise ValidationError([ValidationIssue(
            field=field,
            issue_type="invalid_format",
            message=f"{field} is not a valid identifier",
            severity="error",
        )])


class FinanceEngine:
    """
    Request-layer facade over the aggregation engine and overspend guard.

    Usage:
        engine, _ = create_app_components(use_storage=False)
        decision, checks = await engine.evaluate_proposed_transaction(
            "user-1", {"categoryId": "Food", "amount": "12.50", "date": "2024-03-02"}
        )
    """

    def __init__(
        self,
        ledger_storage: LedgerStorageInterface,
        budget_storage: BudgetStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        validator: Optional[ProposalValidator] = None,
    ):
        self._audit_logger = audit_logger or AuditLogger()
        self._validator = validator or ProposalValidator()

        self.ledger = LedgerAccessor(ledger_storage)
        self.budgets = BudgetRegistry(budget_storage)
        self.aggregation = AggregationEngine(self.ledger, self.budgets)
        self.summaries = PeriodSummaryBuilder(self.aggregation)
        self.guard = OverspendGuard(
            self.aggregation,
            self.ledger,
            self.budgets,
            audit_logger=self._audit_logger,
        )

    async def _log_rejection(
        self,
        subject: str,
        error: ValidationError,
        user_key: Optional[str],
    ) -> None:
        await self._audit_logger.log_validation_failed(subject, error.issues, user_key)

    # -------------------------------------------------------------------------
    # Reports
    # -------------------------------------------------------------------------

    async def compute_summary(self, user_key: str, month, year) -> PeriodSummary:
        """
        Month summary for ``GET /summary?month&year``.

        ``month`` and ``year`` may arrive as query strings.
        """
        try:
            month, year = self._validator.parse_summary_query(month, year)
        except ValidationError as e:
            await self._log_rejection("summary", e, user_key)
            raise

        summary = await self.summaries.summarize(user_key, month, year)
        await self._audit_logger.log_summary_computed(
            user_key,
            summary.period,
            len(summary.expenses_by_category),
        )
        return summary

    async def budget_usage_report(self, user_key: str) -> list[BudgetUsageLine]:
        return await self.aggregation.budget_usage_report(user_key)

    async def financial_overview(self, user_key: str) -> FinancialOverview:
        return await self.aggregation.overview(user_key)

    async def balance(self, user_key: str) -> BalanceSnapshot:
        return await self.aggregation.balance_snapshot(user_key)

    # -------------------------------------------------------------------------
    # Proposals
    # -------------------------------------------------------------------------

    async def evaluate_proposed_transaction(
        self,
        user_key: str,
        payload: dict,
    ) -> tuple[GuardDecision, ValidationResult]:
        """
        Validate and evaluate a new transaction.

        Returns:
            (decision, validation_result) - the result carries any
            non-blocking warnings for the caller to show
        """
        try:
            draft, checks = self._validator.validate_transaction(user_key, payload)
        except ValidationError as e:
            await self._log_rejection("transaction", e, user_key)
            raise

        decision = await self.guard.evaluate_transaction(
            user_key,
            draft,
            correlation_id=create_correlation_id(),
        )
        return decision, checks

    async def evaluate_proposed_budget(
        self,
        user_key: str,
        payload: dict,
    ) -> tuple[GuardDecision, ValidationResult]:
        """Validate and evaluate a new budget."""
        try:
            draft, checks = self._validator.validate_budget(user_key, payload)
        except ValidationError as e:
            await self._log_rejection("budget", e, user_key)
            raise

        decision = await self.guard.evaluate_budget(
            user_key,
            draft,
            correlation_id=create_correlation_id(),
        )
        return decision, checks

    async def confirm_admission(self, token: str) -> Union[Transaction, Budget]:
        """
        Persist a proposal the user chose to keep despite the shortfall.

        CRITICAL: Call this ONLY after explicit user confirmation.
        """
        return await self.guard.confirm(token)

    async def cancel_proposal(self, token: str) -> GuardDecision:
        return await self.guard.cancel(token)

    # -------------------------------------------------------------------------
    # Ledger
    # -------------------------------------------------------------------------

    async def list_transactions(
        self,
        user_key: str,
        query: Optional[dict] = None,
    ) -> list[Transaction]:
        """Transactions for ``GET /transactions``, newest first."""
        try:
            filters = self._validator.parse_transaction_query(query)
        except ValidationError as e:
            await self._log_rejection("transaction_query", e, user_key)
            raise
        return await self.ledger.list_transactions(user_key, filters)

    async def delete_transaction(self, user_key: str, transaction_id: Union[str, UUID]) -> None:
        transaction_id = _parse_id(transaction_id, "transaction_id")
        try:
            await self.ledger.delete_transaction(transaction_id, user_key)
        except PersistenceError as e:
            await self._audit_logger.log_storage_error("delete_transaction", str(e), user_key)
            raise
        await self._audit_logger.log_transaction_deleted(user_key, transaction_id)

    async def delete_budget(self, user_key: str, budget_id: Union[str, UUID]) -> None:
        budget_id = _parse_id(budget_id, "budget_id")
        try:
            await self.budgets.delete_budget(budget_id, user_key)
        except PersistenceError as e:
            await self._audit_logger.log_storage_error("delete_budget", str(e), user_key)
            raise
        await self._audit_logger.log_budget_deleted(user_key, budget_id)

    # -------------------------------------------------------------------------
    # Income
    # -------------------------------------------------------------------------

    async def get_income_source(self, user_key: str) -> IncomeSource:
        """The user's income source, created on first access."""
        return await self.ledger.get_or_create_income_source(user_key)

    async def list_income_entries(self, user_key: str) -> list[IncomeEntry]:
        return await self.ledger.list_income_entries(user_key)

    async def add_income_entry(
        self,
        user_key: str,
        payload: dict,
    ) -> tuple[IncomeEntry, ValidationResult]:
        """
        Record income under the user's source.

        Income never pushes expenses past income, so no guard is involved.
        """
        source = await self.ledger.get_or_create_income_source(user_key)
        try:
            draft, checks = self._validator.validate_income_entry(user_key, source.id, payload)
        except ValidationError as e:
            await self._log_rejection("income_entry", e, user_key)
            raise

        try:
            entry = await self.ledger.insert_income_entry(draft)
        except PersistenceError as e:
            await self._audit_logger.log_storage_error("insert_income_entry", str(e), user_key)
            raise
        await self._audit_logger.log_income_entry_saved(entry)
        return entry, checks

    async def delete_income_entry(self, user_key: str, entry_id: Union[str, UUID]) -> None:
        entry_id = _parse_id(entry_id, "entry_id")
        try:
            await self.ledger.delete_income_entry(entry_id, user_key)
        except PersistenceError as e:
            await self._audit_logger.log_storage_error("delete_income_entry", str(e), user_key)
            raise
        await self._audit_logger.log_income_entry_deleted(user_key, entry_id)


def create_app_components(
    use_storage: bool = True,
) -> tuple[FinanceEngine, Optional[GoogleSheetsClient]]:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to initialize Google Sheets storage.
                    Set to False for testing without storage. Also
                    ignored unless the configured backend is google_sheets.

    Returns:
        (finance_engine, sheets_client)
    """
    settings = get_settings()
    sheets_client = None
    ledger_storage: LedgerStorageInterface = InMemoryLedgerStorage()
    budget_storage: BudgetStorageInterface = InMemoryBudgetStorage()
    audit_storage: Optional[AuditStorageInterface] = None

    if use_storage and settings.app.uses_google_sheets:
        readiness = validate_all_settings()
        if not readiness.get("google_sheets"):
            # Missing spreadsheet id and the like - continue in memory
            logger.warning(
                "storage_settings_invalid",
                error=readiness.get("google_sheets_error"),
            )
        else:
            try:
                sheets_client = GoogleSheetsClient()
                sheets_client.connect()
                ledger_storage = GoogleSheetsLedgerStorage(sheets_client)
                budget_storage = GoogleSheetsBudgetStorage(sheets_client)
                audit_storage = GoogleSheetsAuditStorage(sheets_client)
            except Exception as e:
                # Storage not configured - continue in memory
                logger.warning("storage_not_configured", error=str(e))
                sheets_client = None
                ledger_storage = InMemoryLedgerStorage()
                budget_storage = InMemoryBudgetStorage()
                audit_storage = None

    # Local-only logging when audit_storage is None
    audit_logger = AuditLogger(audit_storage)

    engine = FinanceEngine(
        ledger_storage=ledger_storage,
        budget_storage=budget_storage,
        audit_logger=audit_logger,
    )
    return engine, sheets_client
