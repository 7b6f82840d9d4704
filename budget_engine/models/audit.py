"""
Audit Models for the Budget Engine

Every ledger mutation and every guard transition is logged for audit
purposes. This makes it possible to reconstruct why a transaction or
budget was admitted, who confirmed an overspend, and what the balance
looked like at that moment.

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from budget_engine.models.ledger import utcnow


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Ledger
    TRANSACTION_SAVED = "transaction_saved"
    TRANSACTION_DELETED = "transaction_deleted"
    INCOME_ENTRY_SAVED = "income_entry_saved"
    INCOME_ENTRY_DELETED = "income_entry_deleted"

    # Budgets
    BUDGET_SAVED = "budget_saved"
    BUDGET_DELETED = "budget_deleted"

    # Overspend guard
    OVERSPEND_PENDING = "overspend_pending"
    USER_CONFIRMED = "user_confirmed"
    USER_REJECTED = "user_rejected"
    CONFIRMATION_EXPIRED = "confirmation_expired"

    # Validation
    VALIDATION_FAILED = "validation_failed"

    # Reporting
    SUMMARY_COMPUTED = "summary_computed"

    # System events
    STORAGE_ERROR = "storage_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(default_factory=uuid4)
    timestamp: datetime = Field(
        default_factory=utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # Context - whose ledger, and which entity
    user_key: Optional[str] = Field(
        default=None,
        description="Owner of the ledger the event touched"
    )
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'transaction', 'budget', 'proposal')"
    )
    entity_id: Optional[UUID] = None

    # Correlation - ties a proposal to its confirmation or rejection
    correlation_id: Optional[UUID] = None

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(default_factory=dict)

    # Error information (if applicable)
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "user_key": self.user_key,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, user_key, entity_type,
         entity_id, correlation_id, description, details_json, error_message,
         is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.user_key or "",
            self.entity_type or "",
            str(self.entity_id) if self.entity_id else "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.transaction_saved(transaction, correlation_id)
        event = AuditEventBuilder.user_confirmed(user_key, kind, entity_id, correlation_id)
    """

    @staticmethod
    def transaction_saved(
        user_key: str,
        transaction_id: UUID,
        transaction_type: str,
        amount: str,
        category: Optional[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_SAVED,
            user_key=user_key,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"{transaction_type.capitalize()} saved: {amount}",
            details={
                "type": transaction_type,
                "amount": amount,
                "category": category,
            },
        )

    @staticmethod
    def transaction_deleted(user_key: str, transaction_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_DELETED,
            user_key=user_key,
            entity_type="transaction",
            entity_id=transaction_id,
            description="Transaction deleted",
            is_user_action=True,
        )

    @staticmethod
    def budget_saved(
        user_key: str,
        budget_id: UUID,
        name: str,
        amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUDGET_SAVED,
            user_key=user_key,
            entity_type="budget",
            entity_id=budget_id,
            correlation_id=correlation_id,
            description=f"Budget saved: {name} - {amount}",
            details={
                "name": name,
                "amount": amount,
            },
        )

    @staticmethod
    def budget_deleted(user_key: str, budget_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUDGET_DELETED,
            user_key=user_key,
            entity_type="budget",
            entity_id=budget_id,
            description="Budget deleted",
            is_user_action=True,
        )

    @staticmethod
    def income_entry_saved(
        user_key: str,
        entry_id: UUID,
        amount: str,
        category: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INCOME_ENTRY_SAVED,
            user_key=user_key,
            entity_type="income_entry",
            entity_id=entry_id,
            description=f"Income entry saved: {amount} ({category})",
            details={
                "amount": amount,
                "category": category,
            },
            is_user_action=True,
        )

    @staticmethod
    def income_entry_deleted(user_key: str, entry_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INCOME_ENTRY_DELETED,
            user_key=user_key,
            entity_type="income_entry",
            entity_id=entry_id,
            description="Income entry deleted",
            is_user_action=True,
        )

    @staticmethod
    def overspend_pending(
        user_key: str,
        kind: str,
        amount: str,
        shortfall: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.OVERSPEND_PENDING,
            severity=AuditSeverity.WARNING,
            user_key=user_key,
            entity_type="proposal",
            correlation_id=correlation_id,
            description=f"Proposed {kind} of {amount} exceeds income by {shortfall}",
            details={
                "kind": kind,
                "amount": amount,
                "shortfall": shortfall,
            },
        )

    @staticmethod
    def user_confirmed(
        user_key: str,
        kind: str,
        entity_id: UUID,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.USER_CONFIRMED,
            user_key=user_key,
            entity_type=kind,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"User confirmed {kind} despite overspend",
            is_user_action=True,
        )

    @staticmethod
    def user_rejected(
        user_key: str,
        kind: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.USER_REJECTED,
            user_key=user_key,
            entity_type="proposal",
            correlation_id=correlation_id,
            description=f"User cancelled proposed {kind}",
            details={"kind": kind},
            is_user_action=True,
        )

    @staticmethod
    def confirmation_expired(
        user_key: str,
        kind: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CONFIRMATION_EXPIRED,
            severity=AuditSeverity.WARNING,
            user_key=user_key,
            entity_type="proposal",
            correlation_id=correlation_id,
            description=f"Confirmation window for proposed {kind} expired",
            details={"kind": kind},
        )

    @staticmethod
    def validation_failed(
        subject: str,
        issues: list[dict],
        user_key: Optional[str] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            user_key=user_key,
            entity_type=subject,
            description=f"{subject.capitalize()} validation failed with {len(issues)} issues",
            details={"issues": issues},
        )

    @staticmethod
    def summary_computed(
        user_key: str,
        period: str,
        category_count: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SUMMARY_COMPUTED,
            severity=AuditSeverity.DEBUG,
            user_key=user_key,
            entity_type="summary",
            description=f"Summary computed for {period}",
            details={
                "period": period,
                "category_count": category_count,
            },
        )

    @staticmethod
    def storage_error(
        operation: str,
        error_message: str,
        user_key: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORAGE_ERROR,
            severity=AuditSeverity.ERROR,
            user_key=user_key,
            correlation_id=correlation_id,
            description=f"Storage error during {operation}",
            error_message=error_message,
            details={"operation": operation},
        )
