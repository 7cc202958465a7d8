"""
Sync Engine

Keeps the device's view of one ledger consistent with the shared remote
copy, and keeps working when the remote copy is out of reach.

Modes:
- INITIALIZING: signing in and resolving the ledger
- REMOTE_LIVE: a live query feeds the authoritative list; entries made
  while offline wait in the local queue
- UPLOADING: REMOTE_LIVE while the local queue is being pushed
- LOCAL_ONLY: no usable remote; the local queue is the whole ledger

DESIGN DECISION: The engine is single-threaded asyncio. Snapshot callbacks
and user mutations interleave only at await points, and every
session-scoped callback is tagged with a generation number so deliveries
from a torn-down session are dropped instead of overwriting the new one.

Deletes are optimistic: the id goes into an overlay before any I/O and
stays hidden for the rest of the session, whether or not the remote
delete succeeds.
"""

import time
from typing import Callable, Optional

import structlog

from kirana_ledger.audit.logger import SyncAuditLogger
from kirana_ledger.identity.provider import IdentityProvider
from kirana_ledger.models.events import SyncEventBuilder
from kirana_ledger.models.ledger import EngineState, Principal, SyncStatus
from kirana_ledger.models.transaction import (
    LocalRef,
    Transaction,
    TransactionInput,
    ref_from_id,
    sort_transactions,
)
from kirana_ledger.services.local.device import DeviceSettings
from kirana_ledger.services.local.interface import KeyValueStore
from kirana_ledger.services.local.transactions import LocalTransactionStore
from kirana_ledger.services.remote.interface import (
    RemoteStoreInterface,
    Subscription,
)
from kirana_ledger.sync.resolver import LedgerResolver


logger = structlog.get_logger(__name__)


class LedgerNotResolvedError(Exception):
    """A mutation was attempted before the engine knew which ledger to use."""
    pass


class SyncEngine:
    """
    Offline-first sync for a single ledger.

    Usage:
        engine = SyncEngine(kv, identity, remote)
        await engine.start(online=True)
        await engine.add_transaction(TransactionInput(...))
        await engine.set_online(False)
        ...
        await engine.stop()
    """

    def __init__(
        self,
        kv: KeyValueStore,
        identity: IdentityProvider,
        remote: Optional[RemoteStoreInterface] = None,
        resolver: Optional[LedgerResolver] = None,
        audit_logger: Optional[SyncAuditLogger] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._kv = kv
        self._identity = identity
        self._remote = remote
        self._device = DeviceSettings(kv)
        self._resolver = resolver or LedgerResolver(self._device)
        self._audit = audit_logger or SyncAuditLogger()
        self._clock = clock

        self._state = EngineState.INITIALIZING
        self._online = True
        self._principal: Optional[Principal] = None
        self._ledger_id: Optional[str] = None
        self._queue: Optional[LocalTransactionStore] = None

        self._remote_records: list[Transaction] = []
        self._local_records: list[Transaction] = []
        self._deleted_ids: set[str] = set()

        self._subscription: Optional[Subscription] = None
        self._subscription_failed = False
        self._uploading = False
        self._loading = False
        self._generation = 0

        self._listeners: list[Callable[[], None]] = []

    # -------------------------------------------------------------------------
    # Read-only state
    # -------------------------------------------------------------------------

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def status(self) -> SyncStatus:
        """
        Badge status.

        SYNCING while an upload is in flight; LOCAL while offline, while
        the remote is not live, or while entries wait in the queue.
        """
        if self._uploading:
            return SyncStatus.SYNCING
        if (
            not self._online
            or self._state != EngineState.REMOTE_LIVE
            or self.pending_count > 0
        ):
            return SyncStatus.LOCAL
        return SyncStatus.SYNCED

    @property
    def online(self) -> bool:
        return self._online

    @property
    def principal(self) -> Optional[Principal]:
        return self._principal

    @property
    def ledger_id(self) -> Optional[str]:
        return self._ledger_id

    @property
    def is_linked(self) -> bool:
        """True when viewing a ledger other than the principal's own."""
        return (
            self._principal is not None
            and self._ledger_id is not None
            and self._ledger_id != self._principal.id
        )

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def deleted_ids(self) -> frozenset[str]:
        return frozenset(self._deleted_ids)

    @property
    def pending_count(self) -> int:
        return sum(1 for t in self._local_records if t.is_local)

    @property
    def audit_logger(self) -> SyncAuditLogger:
        return self._audit

    @property
    def device_settings(self) -> DeviceSettings:
        return self._device

    @property
    def transactions(self) -> list[Transaction]:
        """The unified, sorted view with deleted ids removed."""
        if self._state in (EngineState.REMOTE_LIVE, EngineState.UPLOADING):
            source = self._remote_records + self._local_records
        else:
            source = self._local_records
        return sort_transactions(
            t for t in source if t.id not in self._deleted_ids
        )

    def add_listener(self, listener: Callable[[], None]) -> Callable[[], None]:
        """Be told whenever the view or status may have changed."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:
                logger.exception("view_listener_failed")

    # -------------------------------------------------------------------------
    # Session lifecycle
    # -------------------------------------------------------------------------

    def _remote_capable(self) -> bool:
        return (
            self._remote is not None
            and self._principal is not None
            and not self._principal.is_ephemeral
            and not self._subscription_failed
        )

    async def start(self, online: bool = True) -> None:
        """Sign in, resolve the ledger and mount the first session."""
        self._online = online
        await self._mount()

    async def _sign_in(self) -> Principal:
        if not self._online:
            return self._identity.offline_principal()
        principal = await self._identity.sign_in()
        if principal.is_offline_fallback:
            self._audit.record(
                SyncEventBuilder.auth_degraded(
                    self._identity.last_error or "sign-in failed"
                )
            )
        return principal

    async def _mount(self) -> None:
        self._generation += 1
        self._state = EngineState.INITIALIZING
        self._loading = True
        self._notify()

        if self._principal is None:
            self._principal = await self._sign_in()

        self._ledger_id = self._resolver.resolve(self._principal)
        self._queue = LocalTransactionStore(self._kv, self._ledger_id)
        logger.info(
            "session_mounted",
            ledger_id=self._ledger_id,
            principal_id=self._principal.id,
            online=self._online,
        )

        if self._remote_capable():
            self._subscribe()
            if self._online and self._state == EngineState.REMOTE_LIVE:
                await self._upload_pending()
        else:
            self._enter_local_only()

    def _subscribe(self) -> None:
        generation = self._generation
        ledger_id = self._ledger_id
        self._state = EngineState.REMOTE_LIVE
        self._loading = True
        self._remote_records = []
        self._local_records = self._queue.pending()

        subscription = self._remote.subscribe(
            ledger_id,
            lambda records: self._on_snapshot(generation, records),
            lambda error: self._on_subscription_error(generation, error),
        )

        # The error callback may already have run inside subscribe()
        if generation != self._generation or self._subscription_failed:
            subscription.unsubscribe()
            return

        self._subscription = subscription
        self._audit.record(SyncEventBuilder.subscription_started(ledger_id))
        self._notify()

    def _on_snapshot(self, generation: int, records: list[Transaction]) -> None:
        if generation != self._generation:
            logger.debug("stale_snapshot_dropped", generation=generation)
            return
        self._remote_records = list(records)
        self._loading = False
        self._notify()

    def _on_subscription_error(self, generation: int, error: Exception) -> None:
        if generation != self._generation:
            return
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        self._subscription_failed = True
        self._audit.record(
            SyncEventBuilder.subscription_failed(self._ledger_id, str(error))
        )
        self._enter_local_only()

    def _enter_local_only(self) -> None:
        self._state = EngineState.LOCAL_ONLY
        self._remote_records = []
        self._local_records = sort_transactions(self._queue.load())
        self._loading = False
        self._notify()

    def _teardown(self) -> None:
        self._generation += 1
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        self._remote_records = []
        self._local_records = []
        self._deleted_ids = set()
        self._subscription_failed = False
        self._uploading = False
        self._state = EngineState.INITIALIZING

    async def reset(self) -> None:
        """
        Tear the session down and mount a fresh one.

        The principal is kept; the ledger is resolved again, so this is
        how link and unlink take effect.
        """
        old_ledger_id = self._ledger_id
        self._teardown()
        self._notify()
        await self._mount()
        if old_ledger_id is not None and old_ledger_id != self._ledger_id:
            self._audit.record(
                SyncEventBuilder.ledger_switched(old_ledger_id, self._ledger_id)
            )

    async def link_ledger(self, ledger_id: str) -> None:
        """
        View another device's ledger.

        Raises:
            ValueError: If the ledger id is blank
        """
        self._resolver.link(ledger_id)
        await self.reset()

    async def unlink_ledger(self) -> None:
        """Go back to the principal's own ledger."""
        self._resolver.unlink()
        await self.reset()

    async def stop(self) -> None:
        """Stop the live query and drop in-memory state."""
        self._teardown()
        self._loading = False
        self._notify()

    # -------------------------------------------------------------------------
    # Connectivity and upload
    # -------------------------------------------------------------------------

    async def set_online(self, online: bool) -> None:
        """Feed a connectivity edge. Repeated values are ignored."""
        if online == self._online:
            return
        self._online = online
        self._audit.record(SyncEventBuilder.connectivity_changed(online))
        self._notify()
        if online:
            await self._on_online()

    async def sync_now(self) -> int:
        """
        Manual sync trigger.

        Returns:
            Number of queued entries uploaded
        """
        if not self._online or self._state == EngineState.INITIALIZING:
            return 0
        return await self._on_online()

    async def _on_online(self) -> int:
        if self._remote is None or self._subscription_failed:
            return 0

        if self._principal is not None and self._principal.is_offline_fallback:
            await self._upgrade_principal()

        if not self._remote_capable():
            return 0
        if self._state == EngineState.LOCAL_ONLY:
            self._subscribe()
            if self._state != EngineState.REMOTE_LIVE:
                return 0
        return await self._upload_pending()

    async def _upgrade_principal(self) -> None:
        """Sign in again and carry the device queue to the resolved ledger."""
        old_ledger_id = self._ledger_id
        old_queue = self._queue

        principal = await self._sign_in()
        if principal.is_ephemeral:
            return

        self._principal = principal
        ledger_id = self._resolver.resolve(principal)
        self._audit.record(
            SyncEventBuilder.principal_upgraded(old_ledger_id, ledger_id)
        )
        if ledger_id == old_ledger_id:
            return

        # New ledger, same session: deleted ids stay hidden
        self._generation += 1
        self._ledger_id = ledger_id
        self._queue = LocalTransactionStore(self._kv, ledger_id)
        moved = self._queue.adopt(old_queue) if old_queue is not None else 0
        logger.info(
            "local_queue_adopted",
            from_ledger=old_queue.ledger_id if old_queue else None,
            to_ledger=ledger_id,
            moved=moved,
        )

    async def _upload_pending(self) -> int:
        """Push the local queue to the remote ledger in one bulk append."""
        if self._uploading or self._queue is None:
            return 0

        pending = self._queue.pending()
        if not pending:
            return 0

        queue = self._queue
        ledger_id = self._ledger_id
        generation = self._generation

        self._uploading = True
        self._state = EngineState.UPLOADING
        self._audit.record(
            SyncEventBuilder.bulk_upload_started(ledger_id, len(pending))
        )
        self._notify()

        uploaded = 0
        remote_ids: list[Optional[str]] = []
        try:
            remote_ids = await self._remote.append_each(
                ledger_id, [t.to_input() for t in pending]
            )
        except Exception as e:
            self._audit.record(
                SyncEventBuilder.bulk_upload_failed(
                    ledger_id, uploaded, len(pending), str(e)
                )
            )
        else:
            uploaded = sum(1 for i in remote_ids if i is not None)
            if uploaded == len(pending):
                uploaded_ids = {t.id for t in pending}
                remaining = [t for t in queue.load() if t.id not in uploaded_ids]
                if remaining:
                    queue.save(remaining)
                else:
                    queue.clear()
                if generation == self._generation:
                    self._local_records = [
                        t for t in self._local_records if t.id not in uploaded_ids
                    ]
                self._audit.record(
                    SyncEventBuilder.bulk_upload_completed(
                        ledger_id, uploaded, len(pending)
                    )
                )
            else:
                # Partial success: keep everything queued
                self._audit.record(
                    SyncEventBuilder.bulk_upload_failed(
                        ledger_id, uploaded, len(pending)
                    )
                )

        # Entries deleted while their upload was in flight
        orphans = [
            remote_id
            for t, remote_id in zip(pending, remote_ids)
            if remote_id is not None and t.id in self._deleted_ids
        ]
        if generation == self._generation:
            self._deleted_ids.update(orphans)
            self._uploading = False
            if self._state == EngineState.UPLOADING:
                self._state = EngineState.REMOTE_LIVE
            self._notify()

        for remote_id in orphans:
            await self._remove_remote(ledger_id, remote_id)
        return uploaded

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def _find(self, transaction_id: str) -> Optional[Transaction]:
        for t in self._remote_records + self._local_records:
            if t.id == transaction_id:
                return t
        return None

    async def add_transaction(self, data: TransactionInput) -> str:
        """
        Record a transaction.

        Goes straight to the remote ledger when it is live and reachable;
        otherwise it is queued on the device.

        Returns:
            The id of the new record (server id or local id)

        Raises:
            LedgerNotResolvedError: If no ledger is resolved yet
            RemoteUnavailableError: If the remote append failed
        """
        if self._ledger_id is None or self._queue is None:
            raise LedgerNotResolvedError("No ledger resolved; call start() first")

        if (
            self._state in (EngineState.REMOTE_LIVE, EngineState.UPLOADING)
            and self._online
            and self._remote_capable()
        ):
            transaction_id = await self._remote.append(self._ledger_id, data)
            self._audit.record(
                SyncEventBuilder.transaction_added(self._ledger_id, transaction_id)
            )
            return transaction_id

        record = Transaction.new_local(data, now=self._clock())
        self._local_records = sort_transactions([record] + self._local_records)
        self._queue.save(self._local_records)
        self._audit.record(
            SyncEventBuilder.transaction_queued(self._ledger_id, record.id)
        )
        self._notify()
        return record.id

    async def delete_transaction(self, transaction_id: str) -> None:
        """
        Delete a transaction from the view immediately.

        A failed remote delete is logged, not raised; the record stays
        hidden for the rest of the session.
        """
        self._deleted_ids.add(transaction_id)
        self._notify()

        record = self._find(transaction_id)
        ref = record.ref if record is not None else ref_from_id(transaction_id)
        ledger_id = self._ledger_id

        if (
            isinstance(ref, LocalRef)
            or self._remote is None
            or self._principal is None
            or self._principal.is_ephemeral
        ):
            self._local_records = [
                t for t in self._local_records if t.id != transaction_id
            ]
            if self._queue is not None:
                self._queue.save(self._local_records)
            self._audit.record(
                SyncEventBuilder.transaction_deleted(ledger_id, transaction_id, "local")
            )
            return

        if ledger_id is None:
            return

        await self._remove_remote(ledger_id, transaction_id)

    async def _remove_remote(self, ledger_id: str, transaction_id: str) -> None:
        try:
            await self._remote.remove_by_id(ledger_id, transaction_id)
        except Exception as e:
            logger.warning(
                "remote_delete_failed",
                ledger_id=ledger_id,
                transaction_id=transaction_id,
                error=str(e),
            )
            self._audit.record(
                SyncEventBuilder.remote_delete_failed(ledger_id, transaction_id, str(e))
            )
            return

        self._audit.record(
            SyncEventBuilder.transaction_deleted(ledger_id, transaction_id, "remote")
        )
