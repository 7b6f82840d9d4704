"""
Shared plumbing for services that talk to storage.

Every storage call may be slow or fail. Calls are bounded by the
configured timeout and any unexpected exception is surfaced as a
PersistenceError, so callers only ever see the engine's error taxonomy.
"""

import asyncio
import weakref
from typing import Awaitable, Optional, TypeVar

import structlog

from budget_engine.config import get_settings
from budget_engine.services.storage.interface import (
    NotFoundError,
    PersistenceError,
    StorageTimeoutError,
)

T = TypeVar("T")


class StorageBoundService:
    """Base class for the Ledger Accessor and Budget Registry."""

    def __init__(self, timeout_seconds: Optional[float] = None):
        if timeout_seconds is None:
            timeout_seconds = get_settings().app.storage_timeout_seconds
        self._timeout = timeout_seconds
        self._logger = structlog.get_logger(type(self).__name__)

    async def _call(self, operation: str, call: Awaitable[T]) -> T:
        """
        Await a storage call under the timeout.

        No retry happens here; PersistenceError is retryable by the caller.
        """
        try:
            return await asyncio.wait_for(call, timeout=self._timeout)
        except asyncio.TimeoutError:
            self._logger.error("storage_timeout", operation=operation, timeout=self._timeout)
            raise StorageTimeoutError(
                f"Storage did not answer {operation} within {self._timeout}s"
            )
        except (PersistenceError, NotFoundError):
            raise
        except Exception as e:
            self._logger.error("storage_failed", operation=operation, error=str(e))
            raise PersistenceError(f"{operation} failed: {e}") from e


class UserLocks:
    """
    One asyncio.Lock per user key.

    A user's lock lives only while someone holds or awaits it, so the
    table does not grow with every user ever seen.
    """

    def __init__(self):
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def __getitem__(self, user_key: str) -> asyncio.Lock:
        lock = self._locks.get(user_key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[user_key] = lock
        return lock

    def __len__(self) -> int:
        return len(self._locks)
