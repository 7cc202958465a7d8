"""
In-Memory Remote Ledger

A process-local implementation of RemoteStoreInterface. Snapshots are
pushed synchronously: on subscribe and after every successful write.

Used by the test suite and for demos without Google credentials. It also
exposes knobs to simulate the failure modes of a real backend:

- available: False makes every call fail with RemoteUnavailableError
- reject: predicate; matching appends fail (partial bulk failures)
- fail_subscriptions: new subscriptions error out immediately
- gate: an asyncio.Event writes wait on before applying (in-flight writes)
- push_snapshot / fail_subscribers: replay stale data or kill live queries
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Callable, Iterable, Optional
from uuid import uuid4

from kirana_ledger.models.transaction import RemoteRef, Transaction, TransactionInput
from kirana_ledger.services.remote.interface import (
    ErrorCallback,
    RemoteStoreInterface,
    RemoteUnavailableError,
    SnapshotCallback,
    Subscription,
    collection_path,
)


@dataclass
class _Subscriber:
    subscription: Subscription
    on_snapshot: SnapshotCallback
    on_error: ErrorCallback


class InMemoryRemoteStore(RemoteStoreInterface):
    """Dict-backed shared ledger with synchronous snapshot delivery."""

    def __init__(self, app_id: str = "default-app-id"):
        self._app_id = app_id
        self._collections: dict[str, dict[str, Transaction]] = {}
        self._subscribers: dict[str, list[_Subscriber]] = {}
        self._last_timestamp = 0.0

        self.available = True
        self.reject: Optional[Callable[[TransactionInput], bool]] = None
        self.fail_subscriptions = False
        self.gate: Optional[asyncio.Event] = None

        self.append_calls = 0
        self.remove_calls: list[str] = []

    def _path(self, ledger_id: str) -> str:
        return collection_path(self._app_id, ledger_id)

    def _server_timestamp(self) -> float:
        # Strictly increasing so server order is always recoverable
        now = max(time.time(), self._last_timestamp + 1e-6)
        self._last_timestamp = now
        return now

    def _check_available(self) -> None:
        if not self.available:
            raise RemoteUnavailableError("Remote ledger is unreachable")

    def _store(self, path: str, data: TransactionInput) -> str:
        transaction_id = uuid4().hex
        self._collections.setdefault(path, {})[transaction_id] = Transaction(
            ref=RemoteRef(id=transaction_id),
            date=data.date,
            description=data.description,
            income=data.income,
            expense=data.expense,
            timestamp=self._server_timestamp(),
        )
        return transaction_id

    def _notify(self, path: str) -> None:
        snapshot = list(self._collections.get(path, {}).values())
        for subscriber in list(self._subscribers.get(path, [])):
            if subscriber.subscription.active:
                subscriber.on_snapshot(list(snapshot))

    # -------------------------------------------------------------------------
    # RemoteStoreInterface
    # -------------------------------------------------------------------------

    def subscribe(
        self,
        ledger_id: str,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ) -> Subscription:
        path = self._path(ledger_id)

        if self.fail_subscriptions or not self.available:
            subscription = Subscription()
            subscription.unsubscribe()
            on_error(RemoteUnavailableError(f"Cannot subscribe to {path}"))
            return subscription

        subscription = Subscription(
            on_unsubscribe=lambda: self._drop(path, subscription)
        )
        self._subscribers.setdefault(path, []).append(
            _Subscriber(subscription, on_snapshot, on_error)
        )
        on_snapshot(list(self._collections.get(path, {}).values()))
        return subscription

    def _drop(self, path: str, subscription: Subscription) -> None:
        self._subscribers[path] = [
            s for s in self._subscribers.get(path, [])
            if s.subscription is not subscription
        ]

    async def append(self, ledger_id: str, data: TransactionInput) -> str:
        self.append_calls += 1
        if self.gate is not None:
            await self.gate.wait()
        self._check_available()
        if self.reject is not None and self.reject(data):
            raise RemoteUnavailableError(f"Append rejected: {data.description!r}")

        path = self._path(ledger_id)
        transaction_id = self._store(path, data)
        self._notify(path)
        return transaction_id

    async def remove_by_id(self, ledger_id: str, transaction_id: str) -> None:
        self.remove_calls.append(transaction_id)
        if self.gate is not None:
            await self.gate.wait()
        self._check_available()

        path = self._path(ledger_id)
        if self._collections.get(path, {}).pop(transaction_id, None) is not None:
            self._notify(path)

    # -------------------------------------------------------------------------
    # Test and demo helpers
    # -------------------------------------------------------------------------

    def records(self, ledger_id: str) -> list[Transaction]:
        """Current contents of a ledger, in insertion order."""
        return list(self._collections.get(self._path(ledger_id), {}).values())

    def seed(self, ledger_id: str, items: Iterable[TransactionInput]) -> list[str]:
        """Insert records directly, without notifying subscribers."""
        path = self._path(ledger_id)
        return [self._store(path, data) for data in items]

    def push_snapshot(self, ledger_id: str, records: list[Transaction]) -> None:
        """Deliver an arbitrary (possibly stale) snapshot to live subscribers."""
        for subscriber in list(self._subscribers.get(self._path(ledger_id), [])):
            if subscriber.subscription.active:
                subscriber.on_snapshot(list(records))

    def fail_subscribers(self, ledger_id: str, error: Optional[Exception] = None) -> None:
        """Kill every live query on a ledger with a fatal error."""
        path = self._path(ledger_id)
        error = error or RemoteUnavailableError(f"Live query on {path} lost")
        for subscriber in list(self._subscribers.get(path, [])):
            if subscriber.subscription.active:
                subscriber.subscription.unsubscribe()
                subscriber.on_error(error)

    def subscriber_count(self, ledger_id: str) -> int:
        return sum(
            1 for s in self._subscribers.get(self._path(ledger_id), [])
            if s.subscription.active
        )
