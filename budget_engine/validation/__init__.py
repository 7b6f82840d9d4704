"""Input validation package."""

from budget_engine.validation.validator import ProposalValidator, ValidationError

__all__ = ["ProposalValidator", "ValidationError"]
