"""
Overspend Guard

DESIGN DECISION: No write that would push a user's expenses past their
income happens without an explicit confirmation.

    PROPOSED -> ADMITTED                                  (fits in income)
    PROPOSED -> AWAITING_CONFIRMATION -> ADMITTED         (user confirmed)
    PROPOSED -> AWAITING_CONFIRMATION -> REJECTED         (cancelled/expired)

The balance check and the write happen under one per-user lock, so two
proposals for the same user can never both pass against the same stale
balance. Different users never wait on each other.

A pending proposal is held in memory behind an opaque token and expires
after ``confirmation_ttl_seconds``. A token is consumed exactly once.
Every evaluation first sweeps out proposals past their window.
"""

import secrets
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, Optional, Union
from uuid import UUID

import structlog
from pydantic import BaseModel

from budget_engine.audit import AuditLogger, create_correlation_id
from budget_engine.config import get_settings
from budget_engine.engine.aggregation import AggregationEngine
from budget_engine.models.guard import (
    GuardDecision,
    GuardState,
    OverspendPending,
    ProposalKind,
)
from budget_engine.models.ledger import (
    Budget,
    BudgetDraft,
    Transaction,
    TransactionDraft,
    ValidationIssue,
    utcnow,
)
from budget_engine.services.base import UserLocks
from budget_engine.services.budgets import BudgetRegistry
from budget_engine.services.ledger import LedgerAccessor
from budget_engine.services.storage.interface import (
    NotFoundError,
    PersistenceError,
    ValidationError,
)

logger = structlog.get_logger(__name__)

__all__ = [
    "ConfirmationExpiredError",
    "OverspendGuard",
    "OverspendPending",
    "PendingProposal",
]


class ConfirmationExpiredError(NotFoundError):
    """The pending proposal outlived its confirmation window."""
    pass


class PendingProposal(BaseModel):
    """A proposal parked until the user confirms or cancels it."""

    kind: ProposalKind
    user_key: str
    draft: Union[TransactionDraft, BudgetDraft]
    decision: GuardDecision
    expires_at: datetime


class OverspendGuard:
    """
    Admits or parks proposed transactions and budgets.

    Usage:
        decision = await guard.evaluate_transaction("user-1", draft)
        if decision.requires_confirmation:
            record = await guard.confirm(decision.token)
    """

    def __init__(
        self,
        aggregation: AggregationEngine,
        ledger: LedgerAccessor,
        budgets: BudgetRegistry,
        audit_logger: Optional[AuditLogger] = None,
        ttl_seconds: Optional[int] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.aggregation = aggregation
        self.ledger = ledger
        self.budgets = budgets
        self.audit = audit_logger or AuditLogger()
        if ttl_seconds is None:
            ttl_seconds = get_settings().app.confirmation_ttl_seconds
        self._ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock or utcnow

        self._locks = UserLocks()
        self._pending: dict[str, PendingProposal] = {}

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    # -------------------------------------------------------------------------
    # Evaluation
    # -------------------------------------------------------------------------

    async def evaluate_transaction(
        self,
        user_key: str,
        draft: TransactionDraft,
        correlation_id: Optional[UUID] = None,
    ) -> GuardDecision:
        """
        Admit a transaction if it fits within income, else park it.

        Income-type transactions only ever raise the balance and are
        always admitted.
        """
        return await self._evaluate(
            ProposalKind.TRANSACTION,
            user_key,
            draft,
            always_admit=not draft.is_expense,
            correlation_id=correlation_id,
        )

    async def evaluate_budget(
        self,
        user_key: str,
        draft: BudgetDraft,
        correlation_id: Optional[UUID] = None,
    ) -> GuardDecision:
        """Admit a budget if its cap fits within remaining income, else park it."""
        return await self._evaluate(
            ProposalKind.BUDGET,
            user_key,
            draft,
            always_admit=False,
            correlation_id=correlation_id,
        )

    async def _evaluate(
        self,
        kind: ProposalKind,
        user_key: str,
        draft: Union[TransactionDraft, BudgetDraft],
        always_admit: bool,
        correlation_id: Optional[UUID],
    ) -> GuardDecision:
        if draft.user_key != user_key:
            raise ValidationError([ValidationIssue(
                field="user_key",
                issue_type="mismatch",
                message="Proposal belongs to a different user",
                severity="error",
            )])

        correlation_id = correlation_id or create_correlation_id()
        await self.purge_expired()

        async with self._locks[user_key]:
            snapshot = await self.aggregation.balance_snapshot(user_key)
            projected = snapshot.total_expenses + (
                Decimal("0") if always_admit else draft.amount
            )

            decision = GuardDecision(
                kind=kind,
                state=GuardState.PROPOSED,
                user_key=user_key,
                correlation_id=correlation_id,
                amount=draft.amount,
                total_income=snapshot.total_income,
                total_expenses=snapshot.total_expenses,
                projected_expenses=projected,
            )

            if always_admit or projected <= snapshot.total_income:
                record = await self._persist(kind, draft, correlation_id)
                logger.info(
                    "proposal_admitted",
                    kind=kind.value,
                    user_key=user_key,
                    correlation_id=str(correlation_id),
                )
                return decision.model_copy(update={
                    "state": GuardState.ADMITTED,
                    "record": record,
                })

            token = secrets.token_urlsafe(24)
            expires_at = self._clock() + self._ttl
            decision = decision.model_copy(update={
                "state": GuardState.AWAITING_CONFIRMATION,
                "shortfall": projected - snapshot.total_income,
                "token": token,
                "expires_at": expires_at,
                "reason": "Projected expenses exceed total income",
            })
            self._pending[token] = PendingProposal(
                kind=kind,
                user_key=user_key,
                draft=draft,
                decision=decision,
                expires_at=expires_at,
            )

        await self.audit.log_overspend_pending(decision)
        return decision

    async def _persist(
        self,
        kind: ProposalKind,
        draft: Union[TransactionDraft, BudgetDraft],
        correlation_id: UUID,
    ) -> Union[Transaction, Budget]:
        """The only place the guard writes."""
        try:
            if kind == ProposalKind.TRANSACTION:
                record = await self.ledger.insert_transaction(draft)
            else:
                record = await self.budgets.insert_budget(draft)
        except PersistenceError as e:
            await self.audit.log_storage_error(
                operation=f"insert_{kind.value}",
                error_message=str(e),
                user_key=draft.user_key,
                correlation_id=correlation_id,
            )
            raise

        if kind == ProposalKind.TRANSACTION:
            await self.audit.log_transaction_saved(record, correlation_id)
        else:
            await self.audit.log_budget_saved(record, correlation_id)
        return record

    # -------------------------------------------------------------------------
    # Confirmation
    # -------------------------------------------------------------------------

    def _is_expired(self, proposal: PendingProposal) -> bool:
        return self._clock() >= proposal.expires_at

    async def confirm(self, token: str) -> Union[Transaction, Budget]:
        """
        Persist a parked proposal. Each token works once.

        Raises:
            NotFoundError: Unknown or already consumed token
            ConfirmationExpiredError: The confirmation window has passed
            PersistenceError: The write failed; the token stays usable
        """
        proposal = self._pending.get(token)
        if proposal is None:
            raise NotFoundError("No pending proposal for this confirmation token")

        async with self._locks[proposal.user_key]:
            proposal = self._pending.pop(token, None)
            if proposal is None:
                raise NotFoundError("No pending proposal for this confirmation token")

            correlation_id = proposal.decision.correlation_id
            if self._is_expired(proposal):
                await self.audit.log_confirmation_expired(
                    proposal.user_key,
                    proposal.kind.value,
                    correlation_id,
                )
                raise ConfirmationExpiredError(
                    f"Confirmation for proposed {proposal.kind.value} has expired"
                )

            try:
                record = await self._persist(proposal.kind, proposal.draft, correlation_id)
            except PersistenceError:
                self._pending[token] = proposal
                raise

        await self.audit.log_user_confirmed(
            user_key=proposal.user_key,
            kind=proposal.kind.value,
            entity_id=record.id,
            correlation_id=correlation_id,
        )
        return record

    async def cancel(self, token: str) -> GuardDecision:
        """
        Drop a parked proposal without writing anything.

        Raises:
            NotFoundError: Unknown or already consumed token
        """
        proposal = self._pending.get(token)
        if proposal is None:
            raise NotFoundError("No pending proposal for this confirmation token")

        async with self._locks[proposal.user_key]:
            proposal = self._pending.pop(token, None)
            if proposal is None:
                raise NotFoundError("No pending proposal for this confirmation token")

        await self.audit.log_user_rejected(
            proposal.user_key,
            proposal.kind.value,
            proposal.decision.correlation_id,
        )
        return proposal.decision.model_copy(update={
            "state": GuardState.REJECTED,
            "token": None,
            "expires_at": None,
            "reason": "Cancelled by user",
        })

    async def purge_expired(self) -> int:
        """Reject every proposal past its window. Returns how many were dropped."""
        expired = [
            token for token, proposal in self._pending.items()
            if self._is_expired(proposal)
        ]
        for token in expired:
            proposal = self._pending.pop(token, None)
            if proposal is None:
                continue
            await self.audit.log_confirmation_expired(
                proposal.user_key,
                proposal.kind.value,
                proposal.decision.correlation_id,
            )
        if expired:
            logger.info("expired_proposals_purged", count=len(expired))
        return len(expired)
