"""
Overspend Guard Models

A proposed mutation (new transaction or new budget) moves through:

    PROPOSED -> ADMITTED
    PROPOSED -> AWAITING_CONFIRMATION -> ADMITTED | REJECTED

CRITICAL: Only ADMITTED writes to storage.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field

from budget_engine.models.ledger import Budget, Transaction


class GuardState(str, Enum):
    """Where a proposal sits in the confirm-before-overspend workflow."""
    PROPOSED = "proposed"
    ADMITTED = "admitted"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    REJECTED = "rejected"


class ProposalKind(str, Enum):
    """What kind of mutation is being proposed."""
    TRANSACTION = "transaction"
    BUDGET = "budget"


class GuardDecision(BaseModel):
    """
    Outcome of evaluating one proposal.

    When ``state`` is AWAITING_CONFIRMATION the caller shows the shortfall
    and either confirms or cancels with ``token``.
    """

    kind: ProposalKind
    state: GuardState
    user_key: str
    correlation_id: UUID
    amount: Decimal

    # Balance the decision was made against
    total_income: Decimal
    total_expenses: Decimal
    projected_expenses: Decimal
    shortfall: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        description="How far projected expenses exceed income"
    )

    # Confirmation handle, only while awaiting confirmation
    token: Optional[str] = None
    expires_at: Optional[datetime] = None

    # Stored record, only once admitted
    record: Optional[Union[Transaction, Budget]] = None

    reason: Optional[str] = None

    @property
    def is_admitted(self) -> bool:
        return self.state == GuardState.ADMITTED

    @property
    def requires_confirmation(self) -> bool:
        return self.state == GuardState.AWAITING_CONFIRMATION

    def raise_if_pending(self) -> 'GuardDecision':
        """
        Raise OverspendPending if the proposal awaits confirmation.

        For callers that prefer exception flow over checking ``state``.
        """
        if self.requires_confirmation:
            raise OverspendPending(self)
        return self


class OverspendPending(Exception):
    """
    The proposal is waiting for explicit confirmation.

    Not a failure: it does not derive from any storage or validation
    error, so callers can render a confirmation prompt instead of an
    error message.
    """

    def __init__(self, decision: GuardDecision):
        self.decision = decision
        super().__init__(
            f"Proposal would exceed income by {decision.shortfall}; "
            "confirmation required"
        )
