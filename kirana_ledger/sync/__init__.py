"""
Sync Package

The offline-first sync engine, the ledger resolver and the connectivity
signal that drives uploads.
"""

from kirana_ledger.sync.connectivity import ConnectivityMonitor
from kirana_ledger.sync.engine import LedgerNotResolvedError, SyncEngine
from kirana_ledger.sync.resolver import LedgerResolver

__all__ = [
    "ConnectivityMonitor",
    "LedgerNotResolvedError",
    "LedgerResolver",
    "SyncEngine",
]
