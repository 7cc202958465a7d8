"""
Ledger State Models

Who is looking at which ledger, and how far the device is from the
shared copy. None of these are persisted; they are derived at runtime.
"""

import datetime as dt
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


# Principals that never write to the remote ledger
LOCAL_PRINCIPAL_ID = "local-user"      # no remote configuration at all
OFFLINE_PRINCIPAL_ID = "offline-user"  # sign-in attempted and failed


class SyncStatus(str, Enum):
    """What the header badge shows."""
    SYNCED = "synced"
    SYNCING = "syncing"
    LOCAL = "local"


class EngineState(str, Enum):
    """
    Sync engine modes.

    UPLOADING is a transient sub-state of REMOTE_LIVE entered right
    after an offline -> online edge.
    """
    INITIALIZING = "initializing"
    REMOTE_LIVE = "remote_live"
    UPLOADING = "uploading"
    LOCAL_ONLY = "local_only"


class Principal(BaseModel):
    """
    The signed-in identity as the sync engine sees it.

    The engine never looks at provider-specific fields.
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    is_ephemeral: bool = Field(
        default=False,
        description="Ephemeral principals keep everything on the device"
    )
    is_anonymous: bool = Field(
        default=True,
        description="Anonymous device sign-in rather than a token"
    )

    @classmethod
    def local(cls) -> 'Principal':
        return cls(id=LOCAL_PRINCIPAL_ID, is_ephemeral=True)

    @classmethod
    def offline(cls) -> 'Principal':
        return cls(id=OFFLINE_PRINCIPAL_ID, is_ephemeral=True)

    @property
    def is_offline_fallback(self) -> bool:
        return self.id == OFFLINE_PRINCIPAL_ID


class LedgerTotals(BaseModel):
    """Balance card numbers."""

    income: Decimal = Decimal("0")
    expense: Decimal = Decimal("0")

    @property
    def balance(self) -> Decimal:
        return self.income - self.expense


class DailyBucket(BaseModel):
    """One bar group of the daily chart."""

    date: dt.date
    income: Decimal = Decimal("0")
    expense: Decimal = Decimal("0")
