"""
Abstract Remote Ledger Interface

DESIGN DECISION: The shared ledger is modelled as a live, multi-writer
document collection per ledger id. Any backend (Google Sheets today, a
document database later, an in-memory fake in tests) must offer:

1. A live query that pushes the COMPLETE current result set on every
   change, including once right after subscribing. Never a diff.
2. Append with a server-assigned id and timestamp.
3. Idempotent delete by id.
4. Bulk append where every record stands alone; partial success is
   reported as a count.

Collections are namespaced by application id and ledger id, so two
deployments or two ledgers never share rows.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Callable, Iterable, Optional

import structlog

from kirana_ledger.models.transaction import Transaction, TransactionInput


COLLECTION_NAME = "daily_finances"

SnapshotCallback = Callable[[list[Transaction]], None]
ErrorCallback = Callable[[Exception], None]

logger = structlog.get_logger(__name__)


def collection_path(app_id: str, ledger_id: str) -> str:
    """Address of a ledger's transactions in the remote store."""
    return f"artifacts/{app_id}/users/{ledger_id}/{COLLECTION_NAME}"


class Subscription:
    """
    Handle for a live query.

    unsubscribe() stops delivery. Calling it again is a no-op, so
    teardown paths do not need to track whether it already ran.
    """

    def __init__(self, on_unsubscribe: Optional[Callable[[], None]] = None):
        self._active = True
        self._on_unsubscribe = on_unsubscribe

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        if not self._active:
            return
        self._active = False
        if self._on_unsubscribe is not None:
            self._on_unsubscribe()


class RemoteStoreInterface(ABC):
    """
    Abstract interface for the shared ledger.

    Mutations raise RemoteUnavailableError on any network or permission
    failure; callers must treat the record as not persisted.
    """

    @abstractmethod
    def subscribe(
        self,
        ledger_id: str,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ) -> Subscription:
        """
        Start a live view of a ledger.

        Args:
            ledger_id: Ledger to watch
            on_snapshot: Called with the full current result set, right
                after subscribing and after every change
            on_error: Called at most once on a fatal error, after which
                no more snapshots are delivered

        Returns:
            Subscription handle; unsubscribe() stops delivery
        """
        pass

    @abstractmethod
    async def append(self, ledger_id: str, data: TransactionInput) -> str:
        """
        Create one record.

        Returns:
            The server-assigned id

        Raises:
            RemoteUnavailableError: If the record was not stored
        """
        pass

    @abstractmethod
    async def remove_by_id(self, ledger_id: str, transaction_id: str) -> None:
        """
        Delete one record. Deleting an unknown id is not an error.

        Raises:
            RemoteUnavailableError: If the store could not be reached
        """
        pass

    async def append_each(
        self,
        ledger_id: str,
        items: Iterable[TransactionInput],
    ) -> list[Optional[str]]:
        """
        Append many records independently.

        A failure in one append does not stop the others.

        Returns:
            One entry per item: the server-assigned id, or None if that
            append failed
        """
        items = list(items)
        if not items:
            return []

        results = await asyncio.gather(
            *(self.append(ledger_id, item) for item in items),
            return_exceptions=True,
        )

        ids: list[Optional[str]] = []
        for item, result in zip(items, results):
            if isinstance(result, BaseException):
                logger.warning(
                    "bulk_append_item_failed",
                    ledger_id=ledger_id,
                    date=item.date.isoformat(),
                    error=str(result),
                )
                ids.append(None)
            else:
                ids.append(result)
        return ids

    async def bulk_append(
        self,
        ledger_id: str,
        items: Iterable[TransactionInput],
    ) -> int:
        """
        Append many records independently.

        Returns:
            Number of records successfully appended
        """
        ids = await self.append_each(ledger_id, items)
        return sum(1 for i in ids if i is not None)

    def close(self) -> None:
        """Release backend resources. Default: nothing to release."""
        pass


class RemoteStoreError(Exception):
    """Base exception for remote ledger operations."""
    pass


class RemoteUnavailableError(RemoteStoreError):
    """The remote ledger could not be reached or refused the operation."""
    pass
