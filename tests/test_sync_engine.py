"""
Tests for the sync engine.

Each class covers one part of the engine's behaviour: mounting, adding,
uploading after reconnect, deleting, live query failure, identity
upgrade, ledger switching. Remote and identity are in-memory fakes.
"""

import asyncio
from decimal import Decimal

import pytest

from conftest import ScriptedIdentityProvider, make_input
from kirana_ledger.identity import LocalIdentityProvider
from kirana_ledger.models import (
    OFFLINE_PRINCIPAL_ID,
    EngineState,
    SyncEventType,
    SyncStatus,
    Transaction,
)
from kirana_ledger.queries import compute_totals
from kirana_ledger.services.local import DeviceSettings, LocalTransactionStore
from kirana_ledger.services.remote import InMemoryRemoteStore, RemoteUnavailableError
from kirana_ledger.sync import LedgerNotResolvedError, SyncEngine


async def _settle():
    for _ in range(10):
        await asyncio.sleep(0)


def _event_types(engine: SyncEngine) -> list[SyncEventType]:
    return [e.event_type for e in engine.audit_logger.recent_events(limit=200)]


class RecordingRemoteStore(InMemoryRemoteStore):
    """Keeps every snapshot callback so stale deliveries can be replayed."""

    def __init__(self):
        super().__init__()
        self.callbacks = []

    def subscribe(self, ledger_id, on_snapshot, on_error):
        self.callbacks.append((ledger_id, on_snapshot, on_error))
        return super().subscribe(ledger_id, on_snapshot, on_error)


class TestMount:
    """Tests for engine start-up."""

    @pytest.mark.asyncio
    async def test_start_online_goes_remote_live(self, engine, remote):
        remote.seed("user-1", [make_input(income="10"), make_input(expense="4")])

        await engine.start(online=True)

        assert engine.state == EngineState.REMOTE_LIVE
        assert engine.status == SyncStatus.SYNCED
        assert engine.ledger_id == "user-1"
        assert not engine.loading
        assert len(engine.transactions) == 2
        assert remote.subscriber_count("user-1") == 1

    @pytest.mark.asyncio
    async def test_no_remote_goes_local_only(self, local_engine):
        await local_engine.start()
        assert local_engine.state == EngineState.LOCAL_ONLY
        assert local_engine.status == SyncStatus.LOCAL
        assert local_engine.ledger_id == "local-user"
        assert local_engine.transactions == []

    @pytest.mark.asyncio
    async def test_start_offline_skips_sign_in(self, engine, identity):
        await engine.start(online=False)
        assert identity.sign_in_calls == 0
        assert engine.principal.id == OFFLINE_PRINCIPAL_ID
        assert engine.state == EngineState.LOCAL_ONLY

    @pytest.mark.asyncio
    async def test_failed_sign_in_degrades_to_local_only(self, kv, remote):
        engine = SyncEngine(kv, ScriptedIdentityProvider(fail=True), remote=remote)
        await engine.start()

        assert engine.principal.is_offline_fallback
        assert engine.state == EngineState.LOCAL_ONLY
        assert SyncEventType.AUTH_DEGRADED in _event_types(engine)

    @pytest.mark.asyncio
    async def test_leftover_queue_uploaded_at_start(self, kv, identity, remote):
        queue = LocalTransactionStore(kv, "user-1")
        queue.save([Transaction.new_local(make_input(income="30"))])

        engine = SyncEngine(kv, identity, remote=remote)
        await engine.start(online=True)

        assert len(remote.records("user-1")) == 1
        assert queue.load() == []
        assert engine.status == SyncStatus.SYNCED

    @pytest.mark.asyncio
    async def test_add_before_start_raises(self, engine):
        with pytest.raises(LedgerNotResolvedError):
            await engine.add_transaction(make_input(income="1"))


class TestAddTransaction:
    """Tests for recording transactions."""

    @pytest.mark.asyncio
    async def test_online_add_goes_to_remote(self, engine, remote, kv):
        await engine.start()

        transaction_id = await engine.add_transaction(make_input(income="50"))

        assert not transaction_id.startswith("local_")
        assert [t.id for t in remote.records("user-1")] == [transaction_id]
        assert [t.id for t in engine.transactions] == [transaction_id]
        assert LocalTransactionStore(kv, "user-1").load() == []

    @pytest.mark.asyncio
    async def test_online_add_failure_propagates(self, engine, remote):
        await engine.start()
        remote.available = False
        with pytest.raises(RemoteUnavailableError):
            await engine.add_transaction(make_input(income="50"))
        assert engine.transactions == []

    @pytest.mark.asyncio
    async def test_offline_add_is_queued(self, engine, remote, kv):
        await engine.start()
        await engine.set_online(False)

        transaction_id = await engine.add_transaction(make_input(income="50"))

        assert transaction_id.startswith("local_")
        assert remote.append_calls == 0
        assert [t.id for t in engine.transactions] == [transaction_id]
        assert [t.id for t in LocalTransactionStore(kv, "user-1").pending()] == [transaction_id]
        assert engine.status == SyncStatus.LOCAL

    @pytest.mark.asyncio
    async def test_local_only_add_persists_across_restart(self, local_engine, kv):
        await local_engine.start()
        await local_engine.add_transaction(make_input(income="10", description="Milk"))

        restarted = SyncEngine(kv, LocalIdentityProvider())
        await restarted.start()
        assert [t.description for t in restarted.transactions] == ["Milk"]

    @pytest.mark.asyncio
    async def test_view_ordering(self, local_engine):
        await local_engine.start()
        first = await local_engine.add_transaction(make_input(day="2024-05-01", income="1"))
        newest_day = await local_engine.add_transaction(make_input(day="2024-05-03", income="1"))
        second = await local_engine.add_transaction(make_input(day="2024-05-01", income="1"))

        assert [t.id for t in local_engine.transactions] == [newest_day, second, first]

    @pytest.mark.asyncio
    async def test_same_day_entries_offline_newest_first_with_totals(self, engine):
        await engine.start()
        await engine.set_online(False)
        await engine.add_transaction(
            make_input(day="2024-05-01", income="150", description="Milk")
        )
        await engine.add_transaction(
            make_input(day="2024-05-01", expense="500", description="Rent")
        )

        assert [t.description for t in engine.transactions] == ["Rent", "Milk"]
        totals = compute_totals(engine.transactions)
        assert totals.income == Decimal("150")
        assert totals.expense == Decimal("500")

    @pytest.mark.asyncio
    async def test_listeners_notified(self, local_engine):
        await local_engine.start()
        calls = []
        local_engine.add_listener(lambda: calls.append(1))
        await local_engine.add_transaction(make_input(income="1"))
        assert calls


class TestReconnectUpload:
    """Tests for the bulk upload after an offline -> online edge."""

    @pytest.mark.asyncio
    async def test_upload_clears_queue_on_full_success(self, engine, remote, kv):
        await engine.start()
        await engine.set_online(False)
        await engine.add_transaction(make_input(income="10"))
        await engine.add_transaction(make_input(expense="5"))

        await engine.set_online(True)

        assert len(remote.records("user-1")) == 2
        assert LocalTransactionStore(kv, "user-1").load() == []
        assert engine.state == EngineState.REMOTE_LIVE
        assert engine.status == SyncStatus.SYNCED
        # Queued copies are replaced by the server copies, not duplicated
        assert len(engine.transactions) == 2
        assert all(not t.is_local for t in engine.transactions)
        assert SyncEventType.BULK_UPLOAD_COMPLETED in _event_types(engine)

    @pytest.mark.asyncio
    async def test_partial_failure_keeps_whole_queue(self, engine, remote, kv):
        await engine.start()
        await engine.set_online(False)
        await engine.add_transaction(make_input(income="10", description="ok"))
        await engine.add_transaction(make_input(income="20", description="bad"))
        remote.reject = lambda data: data.description == "bad"

        await engine.set_online(True)

        assert len(LocalTransactionStore(kv, "user-1").pending()) == 2
        assert len(remote.records("user-1")) == 1
        assert engine.state == EngineState.REMOTE_LIVE
        assert engine.status == SyncStatus.LOCAL
        assert SyncEventType.BULK_UPLOAD_FAILED in _event_types(engine)

    @pytest.mark.asyncio
    async def test_status_syncing_while_upload_in_flight(self, engine, remote):
        await engine.start()
        await engine.set_online(False)
        await engine.add_transaction(make_input(income="10"))

        remote.gate = asyncio.Event()
        task = asyncio.create_task(engine.set_online(True))
        await _settle()

        assert engine.state == EngineState.UPLOADING
        assert engine.status == SyncStatus.SYNCING

        remote.gate.set()
        await task
        assert engine.state == EngineState.REMOTE_LIVE
        assert engine.status == SyncStatus.SYNCED

    @pytest.mark.asyncio
    async def test_offline_edge_keeps_subscription(self, engine, remote):
        await engine.start()
        await engine.set_online(False)
        assert remote.subscriber_count("user-1") == 1
        assert engine.state == EngineState.REMOTE_LIVE
        assert engine.status == SyncStatus.LOCAL

    @pytest.mark.asyncio
    async def test_sync_now_retries_after_partial_failure(self, engine, remote, kv):
        await engine.start()
        await engine.set_online(False)
        await engine.add_transaction(make_input(income="10", description="ok"))
        await engine.add_transaction(make_input(income="20", description="bad"))
        remote.reject = lambda data: data.description == "bad"
        await engine.set_online(True)

        remote.reject = None
        assert await engine.sync_now() == 2

        # At-least-once: the entry that made it the first time is appended again
        assert len(remote.records("user-1")) == 3
        assert LocalTransactionStore(kv, "user-1").load() == []
        assert engine.status == SyncStatus.SYNCED

    @pytest.mark.asyncio
    async def test_sync_now_offline_is_noop(self, engine, remote):
        await engine.start()
        await engine.set_online(False)
        await engine.add_transaction(make_input(income="10"))
        assert await engine.sync_now() == 0
        assert remote.append_calls == 0

    @pytest.mark.asyncio
    async def test_unreachable_remote_keeps_queue(self, engine, remote, kv):
        await engine.start()
        await engine.set_online(False)
        queued = await engine.add_transaction(make_input(income="10"))
        remote.available = False

        await engine.set_online(True)

        assert [t.id for t in LocalTransactionStore(kv, "user-1").pending()] == [queued]
        assert remote.records("user-1") == []
        assert engine.state == EngineState.REMOTE_LIVE
        assert engine.status == SyncStatus.LOCAL
        assert [t.id for t in engine.transactions] == [queued]
        assert SyncEventType.BULK_UPLOAD_FAILED in _event_types(engine)


class TestDelete:
    """Tests for optimistic deletes and the deleted-id overlay."""

    @pytest.mark.asyncio
    async def test_hidden_before_remote_delete_completes(self, engine, remote):
        (remote_id,) = remote.seed("user-1", [make_input(income="10")])
        await engine.start()

        remote.gate = asyncio.Event()
        task = asyncio.create_task(engine.delete_transaction(remote_id))
        await _settle()

        assert engine.transactions == []
        assert len(remote.records("user-1")) == 1

        remote.gate.set()
        await task
        assert remote.records("user-1") == []

    @pytest.mark.asyncio
    async def test_failed_remote_delete_stays_hidden(self, engine, remote):
        (remote_id,) = remote.seed("user-1", [make_input(income="10")])
        await engine.start()
        remote.available = False

        await engine.delete_transaction(remote_id)

        assert remote_id in engine.deleted_ids
        assert engine.transactions == []
        assert SyncEventType.REMOTE_DELETE_FAILED in _event_types(engine)

        # A later snapshot still containing the record does not resurrect it
        remote.push_snapshot("user-1", remote.records("user-1"))
        assert engine.transactions == []

    @pytest.mark.asyncio
    async def test_delete_local_entry_offline(self, engine, remote, kv):
        await engine.start()
        await engine.set_online(False)
        transaction_id = await engine.add_transaction(make_input(income="10"))

        await engine.delete_transaction(transaction_id)

        assert remote.remove_calls == []
        assert LocalTransactionStore(kv, "user-1").load() == []
        assert engine.transactions == []

    @pytest.mark.asyncio
    async def test_delete_in_local_only_mode(self, local_engine, kv):
        await local_engine.start()
        keep = await local_engine.add_transaction(make_input(income="10"))
        drop = await local_engine.add_transaction(make_input(income="20"))

        await local_engine.delete_transaction(drop)

        assert [t.id for t in local_engine.transactions] == [keep]
        assert [t.id for t in LocalTransactionStore(kv, "local-user").load()] == [keep]

    @pytest.mark.asyncio
    async def test_delete_during_upload_removes_server_copy(self, engine, remote, kv):
        await engine.start()
        await engine.set_online(False)
        local_id = await engine.add_transaction(make_input(income="10", description="oops"))

        remote.gate = asyncio.Event()
        task = asyncio.create_task(engine.set_online(True))
        await _settle()
        assert engine.state == EngineState.UPLOADING

        await engine.delete_transaction(local_id)
        remote.gate.set()
        await task

        assert engine.transactions == []
        assert remote.records("user-1") == []
        assert len(remote.remove_calls) == 1
        assert LocalTransactionStore(kv, "user-1").load() == []

    @pytest.mark.asyncio
    async def test_delete_during_upload_hidden_when_remote_delete_fails(
        self, engine, remote, monkeypatch
    ):
        await engine.start()
        await engine.set_online(False)
        local_id = await engine.add_transaction(make_input(income="10", description="oops"))

        remote.gate = asyncio.Event()
        task = asyncio.create_task(engine.set_online(True))
        await _settle()
        await engine.delete_transaction(local_id)

        async def failing_remove(ledger_id, transaction_id):
            raise RemoteUnavailableError("offline")

        monkeypatch.setattr(remote, "remove_by_id", failing_remove)
        remote.gate.set()
        await task

        (server_copy,) = remote.records("user-1")
        assert server_copy.id in engine.deleted_ids
        assert engine.transactions == []
        assert SyncEventType.REMOTE_DELETE_FAILED in _event_types(engine)


class TestSubscriptionFailure:
    """Tests for losing the live query."""

    @pytest.mark.asyncio
    async def test_failure_at_subscribe_reads_local_store(self, kv, identity, remote):
        queue = LocalTransactionStore(kv, "user-1")
        queued = Transaction.new_local(make_input(income="10"))
        queue.save([queued])
        remote.fail_subscriptions = True

        engine = SyncEngine(kv, identity, remote=remote)
        await engine.start()

        assert engine.state == EngineState.LOCAL_ONLY
        assert [t.id for t in engine.transactions] == [queued.id]
        assert remote.append_calls == 0
        assert SyncEventType.SUBSCRIPTION_FAILED in _event_types(engine)

    @pytest.mark.asyncio
    async def test_failure_mid_session_stops_uploads(self, engine, remote):
        await engine.start()
        remote.fail_subscribers("user-1")

        assert engine.state == EngineState.LOCAL_ONLY
        assert remote.subscriber_count("user-1") == 0

        await engine.add_transaction(make_input(income="10"))
        await engine.set_online(False)
        await engine.set_online(True)
        assert await engine.sync_now() == 0
        assert remote.append_calls == 0
        assert len(engine.transactions) == 1


class TestIdentityUpgrade:
    """Tests for signing in after running as the offline principal."""

    @pytest.mark.asyncio
    async def test_queue_follows_principal_and_uploads(self, kv, remote):
        identity = ScriptedIdentityProvider(fail=True)
        engine = SyncEngine(kv, identity, remote=remote)
        await engine.start()
        await engine.add_transaction(make_input(income="10"))
        assert engine.ledger_id == OFFLINE_PRINCIPAL_ID

        identity.fail = False
        uploaded = await engine.sync_now()

        assert uploaded == 1
        assert engine.principal.id == "user-1"
        assert engine.ledger_id == "user-1"
        assert engine.state == EngineState.REMOTE_LIVE
        assert len(remote.records("user-1")) == 1
        assert LocalTransactionStore(kv, OFFLINE_PRINCIPAL_ID).load() == []
        assert LocalTransactionStore(kv, "user-1").load() == []
        assert SyncEventType.PRINCIPAL_UPGRADED in _event_types(engine)

    @pytest.mark.asyncio
    async def test_still_failing_sign_in_stays_local(self, kv, remote):
        engine = SyncEngine(kv, ScriptedIdentityProvider(fail=True), remote=remote)
        await engine.start()
        await engine.add_transaction(make_input(income="10"))

        assert await engine.sync_now() == 0
        assert engine.state == EngineState.LOCAL_ONLY
        assert len(engine.transactions) == 1

    @pytest.mark.asyncio
    async def test_started_offline_then_online_edge(self, engine, identity, remote):
        await engine.start(online=False)
        await engine.add_transaction(make_input(income="10"))

        await engine.set_online(True)

        assert identity.sign_in_calls == 1
        assert engine.state == EngineState.REMOTE_LIVE
        assert len(remote.records("user-1")) == 1


class TestLedgerSwitch:
    """Tests for linking to another device's ledger."""

    @pytest.mark.asyncio
    async def test_link_switches_view_and_subscription(self, engine, remote, kv):
        remote.seed("user-1", [make_input(income="1", description="mine")])
        remote.seed("shop-owner", [make_input(income="2", description="shared")])
        await engine.start()

        await engine.link_ledger("shop-owner")

        assert engine.ledger_id == "shop-owner"
        assert engine.is_linked
        assert [t.description for t in engine.transactions] == ["shared"]
        assert remote.subscriber_count("user-1") == 0
        assert remote.subscriber_count("shop-owner") == 1
        assert DeviceSettings(kv).get_linked_ledger_id() == "shop-owner"
        assert SyncEventType.LEDGER_SWITCHED in _event_types(engine)

    @pytest.mark.asyncio
    async def test_unlink_returns_to_own_ledger(self, engine, remote):
        remote.seed("user-1", [make_input(income="1", description="mine")])
        await engine.start()
        await engine.link_ledger("shop-owner")

        await engine.unlink_ledger()

        assert engine.ledger_id == "user-1"
        assert not engine.is_linked
        assert [t.description for t in engine.transactions] == ["mine"]

    @pytest.mark.asyncio
    async def test_blank_link_rejected(self, engine):
        await engine.start()
        with pytest.raises(ValueError):
            await engine.link_ledger("  ")
        assert engine.ledger_id == "user-1"

    @pytest.mark.asyncio
    async def test_reset_clears_overlay(self, engine, remote):
        (remote_id,) = remote.seed("user-1", [make_input(income="10")])
        await engine.start()
        remote.available = False
        await engine.delete_transaction(remote_id)
        remote.available = True

        await engine.reset()

        assert engine.deleted_ids == frozenset()
        assert [t.id for t in engine.transactions] == [remote_id]

    @pytest.mark.asyncio
    async def test_stale_snapshot_from_old_ledger_ignored(self, kv, identity):
        remote = RecordingRemoteStore()
        engine = SyncEngine(kv, identity, remote=remote)
        await engine.start()
        _, old_on_snapshot, _ = remote.callbacks[0]

        await engine.link_ledger("shop-owner")
        stale = Transaction.new_local(make_input(income="99"))
        old_on_snapshot([stale])

        assert engine.transactions == []

    @pytest.mark.asyncio
    async def test_offline_queues_stay_with_their_ledger(self, engine, kv):
        await engine.start()
        await engine.set_online(False)
        await engine.add_transaction(make_input(income="10"))

        await engine.link_ledger("shop-owner")

        assert engine.transactions == []
        assert len(LocalTransactionStore(kv, "user-1").pending()) == 1

    @pytest.mark.asyncio
    async def test_stop_unsubscribes(self, engine, remote):
        await engine.start()
        await engine.stop()
        assert remote.subscriber_count("user-1") == 0
        assert engine.state == EngineState.INITIALIZING
