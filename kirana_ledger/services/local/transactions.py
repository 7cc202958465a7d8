"""
Local Transaction Queue

The device-resident transaction log for one ledger. In local-only mode it
is the whole ledger; while the shared ledger is live it only holds entries
recorded offline that are waiting for upload.

Both operations fail soft. A corrupt or unreadable queue loads as empty,
and a failed save is logged and dropped; the in-memory view stays
authoritative for the session either way.
"""

from typing import Iterable

import structlog
from pydantic import TypeAdapter

from kirana_ledger.models.transaction import Transaction
from kirana_ledger.services.local.interface import KeyValueStore


QUEUE_KEY = "jp_kirana_local_transactions"

_queue_adapter = TypeAdapter(list[Transaction])

logger = structlog.get_logger(__name__)


class LocalTransactionStore:
    """Pending transaction queue for a single ledger."""

    def __init__(self, kv: KeyValueStore, ledger_id: str):
        self._kv = kv
        self._ledger_id = ledger_id

    @property
    def ledger_id(self) -> str:
        return self._ledger_id

    @property
    def key(self) -> str:
        return f"{QUEUE_KEY}:{self._ledger_id}"

    def load(self) -> list[Transaction]:
        """Read the queue in stored order. Never raises."""
        try:
            raw = self._kv.get_item(self.key)
            if not raw:
                return []
            return _queue_adapter.validate_json(raw)
        except Exception as e:
            logger.warning(
                "local_queue_load_failed",
                ledger_id=self._ledger_id,
                error=str(e),
            )
            return []

    def save(self, transactions: Iterable[Transaction]) -> None:
        """Replace the whole queue. Never raises."""
        try:
            payload = _queue_adapter.dump_json(list(transactions))
            self._kv.set_item(self.key, payload.decode("utf-8"))
        except Exception as e:
            logger.error(
                "local_queue_save_failed",
                ledger_id=self._ledger_id,
                error=str(e),
            )

    def pending(self) -> list[Transaction]:
        """Entries recorded on this device that have not been uploaded."""
        return [t for t in self.load() if t.is_local]

    def clear(self) -> None:
        """Drop the queue after a fully successful upload. Never raises."""
        try:
            self._kv.remove_item(self.key)
        except Exception as e:
            logger.error(
                "local_queue_clear_failed",
                ledger_id=self._ledger_id,
                error=str(e),
            )

    def adopt(self, other: "LocalTransactionStore") -> int:
        """
        Move another ledger's pending entries into this queue.

        Used when an offline session signs in and its ledger id changes.
        Returns the number of entries moved.
        """
        if other.key == self.key:
            return 0
        moved = other.pending()
        if not moved:
            return 0
        existing = self.load()
        known = {t.id for t in existing}
        self.save(existing + [t for t in moved if t.id not in known])
        other.clear()
        return len(moved)
