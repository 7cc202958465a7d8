"""
Remote Ledger Package

Provides the abstract interface for the shared, live, multi-writer ledger
and its implementations. Google Sheets is the production backend; the
in-memory store backs tests and credential-free demos.
"""

from kirana_ledger.services.remote.interface import (
    COLLECTION_NAME,
    RemoteStoreError,
    RemoteStoreInterface,
    RemoteUnavailableError,
    Subscription,
    collection_path,
)
from kirana_ledger.services.remote.memory import InMemoryRemoteStore
from kirana_ledger.services.remote.google_sheets import (
    GoogleSheetsClient,
    GoogleSheetsRemoteStore,
)

__all__ = [
    # Interface
    "COLLECTION_NAME",
    "RemoteStoreInterface",
    "Subscription",
    "collection_path",
    # Exceptions
    "RemoteStoreError",
    "RemoteUnavailableError",
    # Implementations
    "GoogleSheetsClient",
    "GoogleSheetsRemoteStore",
    "InMemoryRemoteStore",
]
