"""
Data Models Package

This package contains all Pydantic models used in Kirana Ledger.
All data flowing between the stores and the sync engine conforms to these schemas.
"""

from kirana_ledger.models.transaction import (
    LOCAL_ID_PREFIX,
    LocalRef,
    RemoteRef,
    Transaction,
    TransactionInput,
    TransactionRef,
    mint_local_id,
    ref_from_id,
    sort_transactions,
)
from kirana_ledger.models.ledger import (
    LOCAL_PRINCIPAL_ID,
    OFFLINE_PRINCIPAL_ID,
    DailyBucket,
    EngineState,
    LedgerTotals,
    Principal,
    SyncStatus,
)
from kirana_ledger.models.events import (
    SyncEvent,
    SyncEventBuilder,
    SyncEventSeverity,
    SyncEventType,
)

__all__ = [
    # Transaction models
    "LOCAL_ID_PREFIX",
    "LocalRef",
    "RemoteRef",
    "Transaction",
    "TransactionInput",
    "TransactionRef",
    "mint_local_id",
    "ref_from_id",
    "sort_transactions",
    # Ledger state
    "LOCAL_PRINCIPAL_ID",
    "OFFLINE_PRINCIPAL_ID",
    "DailyBucket",
    "EngineState",
    "LedgerTotals",
    "Principal",
    "SyncStatus",
    # Events
    "SyncEvent",
    "SyncEventBuilder",
    "SyncEventSeverity",
    "SyncEventType",
]
