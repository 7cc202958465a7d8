"""Services package."""

from kirana_ledger.services.local import (
    DeviceSettings,
    FileKeyValueStore,
    InMemoryKeyValueStore,
    KeyValueStore,
    LocalTransactionStore,
    PersistenceError,
    PinChangeError,
)
from kirana_ledger.services.remote import (
    GoogleSheetsClient,
    GoogleSheetsRemoteStore,
    InMemoryRemoteStore,
    RemoteStoreError,
    RemoteStoreInterface,
    RemoteUnavailableError,
    Subscription,
    collection_path,
)

__all__ = [
    # Device storage
    "DeviceSettings",
    "FileKeyValueStore",
    "InMemoryKeyValueStore",
    "KeyValueStore",
    "LocalTransactionStore",
    "PersistenceError",
    "PinChangeError",
    # Remote ledger
    "GoogleSheetsClient",
    "GoogleSheetsRemoteStore",
    "InMemoryRemoteStore",
    "RemoteStoreError",
    "RemoteStoreInterface",
    "RemoteUnavailableError",
    "Subscription",
    "collection_path",
]
