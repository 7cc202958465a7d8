"""
Shared fixtures for the Kirana Ledger tests.

No test touches the network: the remote ledger is the in-memory store and
identity comes from a scripted provider.
"""

from datetime import date
from decimal import Decimal

import pytest

from kirana_ledger.identity import (
    AuthDegradedError,
    IdentityProvider,
    LocalIdentityProvider,
)
from kirana_ledger.models import Principal, TransactionInput
from kirana_ledger.services.local import InMemoryKeyValueStore
from kirana_ledger.services.remote import InMemoryRemoteStore
from kirana_ledger.sync import SyncEngine


class ScriptedIdentityProvider(IdentityProvider):
    """Signs in as a fixed principal, or fails while `fail` is set."""

    def __init__(self, principal_id: str = "user-1", fail: bool = False):
        super().__init__()
        self.principal_id = principal_id
        self.fail = fail
        self.sign_in_calls = 0

    async def _authenticate(self) -> Principal:
        self.sign_in_calls += 1
        if self.fail:
            raise AuthDegradedError("identity backend unreachable")
        return Principal(id=self.principal_id, is_ephemeral=False)


def make_input(
    day: str = "2024-05-01",
    income: str = "0",
    expense: str = "0",
    description: str = "",
) -> TransactionInput:
    return TransactionInput(
        date=date.fromisoformat(day),
        description=description,
        income=Decimal(income),
        expense=Decimal(expense),
    )


class TickingClock:
    """Deterministic wall clock: each call is one second later."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        self.now += 1.0
        return self.now


@pytest.fixture
def kv() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def remote() -> InMemoryRemoteStore:
    return InMemoryRemoteStore()


@pytest.fixture
def identity() -> ScriptedIdentityProvider:
    return ScriptedIdentityProvider()


@pytest.fixture
def clock() -> TickingClock:
    return TickingClock()


@pytest.fixture
def engine(kv, identity, remote, clock) -> SyncEngine:
    return SyncEngine(kv, identity, remote=remote, clock=clock)


@pytest.fixture
def local_engine(kv, clock) -> SyncEngine:
    """Engine with no remote configuration at all."""
    return SyncEngine(kv, LocalIdentityProvider(), clock=clock)
