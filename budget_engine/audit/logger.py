"""
Audit Logger

DESIGN DECISION: Every ledger mutation and every guard transition is
logged. This provides:
1. A trail of why a record was admitted
2. Who confirmed an overspend, and against what balance
3. Debugging capability

The audit logger:
- Is async so it can share the event loop with storage calls
- Gracefully handles failures (an audit write never breaks the main flow)
- Supports correlation IDs to tie a proposal to its confirmation
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from budget_engine.models.audit import AuditEvent, AuditEventBuilder
from budget_engine.models.guard import GuardDecision
from budget_engine.models.ledger import Budget, IncomeEntry, Transaction, ValidationIssue
from budget_engine.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log
    2. Audit storage, when one is configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        elif event.severity.value == "debug":
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    # -------------------------------------------------------------------------
    # Ledger and budgets
    # -------------------------------------------------------------------------

    async def log_transaction_saved(
        self,
        transaction: Transaction,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.transaction_saved(
            user_key=transaction.user_key,
            transaction_id=transaction.id,
            transaction_type=transaction.type.value,
            amount=str(transaction.amount),
            category=transaction.category,
            correlation_id=correlation_id,
        ))

    async def log_transaction_deleted(self, user_key: str, transaction_id: UUID) -> None:
        await self.log(AuditEventBuilder.transaction_deleted(user_key, transaction_id))

    async def log_budget_saved(
        self,
        budget: Budget,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.budget_saved(
            user_key=budget.user_key,
            budget_id=budget.id,
            name=budget.name,
            amount=str(budget.amount),
            correlation_id=correlation_id,
        ))

    async def log_budget_deleted(self, user_key: str, budget_id: UUID) -> None:
        await self.log(AuditEventBuilder.budget_deleted(user_key, budget_id))

    async def log_income_entry_saved(self, entry: IncomeEntry) -> None:
        await self.log(AuditEventBuilder.income_entry_saved(
            user_key=entry.user_key,
            entry_id=entry.id,
            amount=str(entry.amount),
            category=entry.category.value,
        ))

    async def log_income_entry_deleted(self, user_key: str, entry_id: UUID) -> None:
        await self.log(AuditEventBuilder.income_entry_deleted(user_key, entry_id))

    # -------------------------------------------------------------------------
    # Overspend guard
    # -------------------------------------------------------------------------

    async def log_overspend_pending(self, decision: GuardDecision) -> None:
        """Log a proposal parked for confirmation."""
        await self.log(AuditEventBuilder.overspend_pending(
            user_key=decision.user_key,
            kind=decision.kind.value,
            amount=str(decision.amount),
            shortfall=str(decision.shortfall),
            correlation_id=decision.correlation_id,
        ))

    async def log_user_confirmed(
        self,
        user_key: str,
        kind: str,
        entity_id: UUID,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.user_confirmed(
            user_key=user_key,
            kind=kind,
            entity_id=entity_id,
            correlation_id=correlation_id,
        ))

    async def log_user_rejected(self, user_key: str, kind: str, correlation_id: UUID) -> None:
        await self.log(AuditEventBuilder.user_rejected(user_key, kind, correlation_id))

    async def log_confirmation_expired(
        self,
        user_key: str,
        kind: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.confirmation_expired(user_key, kind, correlation_id))

    # -------------------------------------------------------------------------
    # Validation, reporting, failures
    # -------------------------------------------------------------------------

    async def log_validation_failed(
        self,
        subject: str,
        issues: list[ValidationIssue],
        user_key: Optional[str] = None,
    ) -> None:
        await self.log(AuditEventBuilder.validation_failed(
            subject=subject,
            issues=[issue.model_dump() for issue in issues],
            user_key=user_key,
        ))

    async def log_summary_computed(
        self,
        user_key: str,
        period: str,
        category_count: int,
    ) -> None:
        await self.log(AuditEventBuilder.summary_computed(user_key, period, category_count))

    async def log_storage_error(
        self,
        operation: str,
        error_message: str,
        user_key: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.storage_error(
            operation=operation,
            error_message=error_message,
            user_key=user_key,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this when a proposal is first evaluated and carry it through
    to the confirmation or cancellation.
    """
    return uuid4()
