"""
Budget Registry

Reads and writes budget caps. Budgets are created and deleted, never
edited; their usage is derived elsewhere from the live ledger.
"""

from typing import Optional
from uuid import UUID

from budget_engine.models.ledger import Budget, BudgetDraft
from budget_engine.services.base import StorageBoundService
from budget_engine.services.storage.interface import (
    BudgetStorageInterface,
    NotFoundError,
)


class BudgetRegistry(StorageBoundService):
    """Keyed access to a user's budgets."""

    def __init__(
        self,
        storage: BudgetStorageInterface,
        timeout_seconds: Optional[float] = None,
    ):
        super().__init__(timeout_seconds)
        self._storage = storage

    async def list_budgets(self, user_key: str) -> list[Budget]:
        rows = await self._call("list_budgets", self._storage.list_budgets(user_key))
        return [budget for budget in rows if budget.user_key == user_key]

    async def get_budget(self, budget_id: UUID, user_key: str) -> Budget:
        """
        Raises:
            NotFoundError: If the user owns no such budget
        """
        budget = await self._call(
            "get_budget",
            self._storage.get_budget(budget_id, user_key),
        )
        if budget is None or budget.user_key != user_key:
            raise NotFoundError(f"Budget not found: {budget_id}")
        return budget

    async def insert_budget(self, draft: BudgetDraft) -> Budget:
        budget = await self._call("insert_budget", self._storage.insert_budget(draft))
        self._logger.info("budget_inserted", budget_id=str(budget.id), name=budget.name)
        return budget

    async def delete_budget(self, budget_id: UUID, user_key: str) -> None:
        """
        Raises:
            NotFoundError: If the user owns no such budget
        """
        deleted = await self._call(
            "delete_budget",
            self._storage.delete_budget(budget_id, user_key),
        )
        if not deleted:
            raise NotFoundError(f"Budget not found: {budget_id}")
