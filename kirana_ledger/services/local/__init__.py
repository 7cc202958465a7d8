"""
Device Storage Package

Key-value persistence on the device, plus the typed stores built on it:
the per-ledger pending transaction queue and device settings.
"""

from kirana_ledger.services.local.interface import KeyValueStore, PersistenceError
from kirana_ledger.services.local.file_store import (
    FileKeyValueStore,
    InMemoryKeyValueStore,
)
from kirana_ledger.services.local.transactions import QUEUE_KEY, LocalTransactionStore
from kirana_ledger.services.local.device import DeviceSettings, PinChangeError

__all__ = [
    # Interface
    "KeyValueStore",
    "PersistenceError",
    # Backends
    "FileKeyValueStore",
    "InMemoryKeyValueStore",
    # Typed stores
    "QUEUE_KEY",
    "DeviceSettings",
    "LocalTransactionStore",
    "PinChangeError",
]
