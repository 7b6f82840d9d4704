"""
Ledger Accessor

Reads and writes transactions and income entries for one user key.
The accessor is the only path from the engine to ledger storage, and it
enforces tenant isolation on top of whatever the backend does: a row
whose owner does not match the requesting user is never returned.
"""

from datetime import date
from typing import Optional
from uuid import UUID

from budget_engine.models.ledger import (
    IncomeEntry,
    IncomeEntryDraft,
    IncomeSource,
    Transaction,
    TransactionDraft,
    TransactionFilters,
)
from budget_engine.services.base import StorageBoundService, UserLocks
from budget_engine.services.storage.interface import (
    LedgerStorageInterface,
    NotFoundError,
)


class LedgerAccessor(StorageBoundService):
    """Keyed access to a user's ledger."""

    def __init__(
        self,
        storage: LedgerStorageInterface,
        timeout_seconds: Optional[float] = None,
    ):
        super().__init__(timeout_seconds)
        self._storage = storage
        # Serializes first-access creation of the income source per user
        self._source_locks = UserLocks()

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    async def list_transactions(
        self,
        user_key: str,
        filters: Optional[TransactionFilters] = None,
    ) -> list[Transaction]:
        rows = await self._call(
            "list_transactions",
            self._storage.list_transactions(user_key, filters),
        )
        return [tx for tx in rows if tx.user_key == user_key]

    async def insert_transaction(self, draft: TransactionDraft) -> Transaction:
        transaction = await self._call(
            "insert_transaction",
            self._storage.insert_transaction(draft),
        )
        self._logger.info(
            "transaction_inserted",
            transaction_id=str(transaction.id),
            type=transaction.type.value,
        )
        return transaction

    async def delete_transaction(self, transaction_id: UUID, user_key: str) -> None:
        """
        Delete a transaction.

        Raises:
            NotFoundError: If the user owns no such transaction
        """
        deleted = await self._call(
            "delete_transaction",
            self._storage.delete_transaction(transaction_id, user_key),
        )
        if not deleted:
            raise NotFoundError(f"Transaction not found: {transaction_id}")

    # -------------------------------------------------------------------------
    # Income
    # -------------------------------------------------------------------------

    async def get_or_create_income_source(self, user_key: str) -> IncomeSource:
        """Idempotent: the same user always gets the same source back."""
        async with self._source_locks[user_key]:
            return await self._call(
                "get_or_create_income_source",
                self._storage.get_or_create_income_source(user_key),
            )

    async def list_income_entries(
        self,
        user_key: str,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> list[IncomeEntry]:
        """All entries under the user's income source, optionally date-bounded."""
        source = await self.get_or_create_income_source(user_key)
        rows = await self._call(
            "list_income_entries",
            self._storage.list_income_entries(user_key, source.id),
        )
        return [
            entry
            for entry in rows
            if entry.user_key == user_key
            and (date_from is None or entry.entry_date >= date_from)
            and (date_to is None or entry.entry_date <= date_to)
        ]

    async def insert_income_entry(self, draft: IncomeEntryDraft) -> IncomeEntry:
        source = await self.get_or_create_income_source(draft.user_key)
        if draft.source_id != source.id:
            raise NotFoundError(f"Income source not found: {draft.source_id}")
        return await self._call(
            "insert_income_entry",
            self._storage.insert_income_entry(draft),
        )

    async def delete_income_entry(self, entry_id: UUID, user_key: str) -> None:
        """
        Delete an income entry.

        Raises:
            NotFoundError: If the user owns no such entry
        """
        deleted = await self._call(
            "delete_income_entry",
            self._storage.delete_income_entry(entry_id, user_key),
        )
        if not deleted:
            raise NotFoundError(f"Income entry not found: {entry_id}")
