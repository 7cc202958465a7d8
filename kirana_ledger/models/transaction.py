"""
Transaction Models for Kirana Ledger

A transaction is one line in the shop's daily book: income and/or expense
on a calendar date with an optional description.

DESIGN DECISION: Origin is an explicit tag, not a naming convention.
A transaction is either LOCAL (recorded on this device, not yet uploaded)
or REMOTE (created in the shared ledger, id assigned by the server).
Code that needs to know where a record lives checks the ref type.

Local ids still carry a `local_` prefix. Queues written by older builds
have no tag, so the prefix is the fallback when reading them back.
"""

import datetime as dt
import random
import string
import time
from decimal import Decimal
from typing import Annotated, Any, Iterable, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    model_validator,
)


LOCAL_ID_PREFIX = "local_"

_ID_ALPHABET = string.ascii_lowercase + string.digits


# =============================================================================
# ORIGIN TAGS
# =============================================================================

class LocalRef(BaseModel):
    """Identity of a record queued on this device."""
    model_config = ConfigDict(frozen=True)

    origin: Literal["local"] = "local"
    id: str = Field(..., min_length=1)


class RemoteRef(BaseModel):
    """Identity of a record stored in the shared remote ledger."""
    model_config = ConfigDict(frozen=True)

    origin: Literal["remote"] = "remote"
    id: str = Field(..., min_length=1)


TransactionRef = Annotated[
    Union[LocalRef, RemoteRef],
    Field(discriminator="origin"),
]


def ref_from_id(transaction_id: str) -> Union[LocalRef, RemoteRef]:
    """Classify a bare id by its prefix (persistence boundary only)."""
    if transaction_id.startswith(LOCAL_ID_PREFIX):
        return LocalRef(id=transaction_id)
    return RemoteRef(id=transaction_id)


def mint_local_id(now: Optional[float] = None) -> str:
    """
    Mint a provisional device-side id.

    Format: local_<epoch millis>_<9 random base36 chars>
    """
    now = time.time() if now is None else now
    suffix = "".join(random.choices(_ID_ALPHABET, k=9))
    return f"{LOCAL_ID_PREFIX}{int(now * 1000)}_{suffix}"


# =============================================================================
# TRANSACTION MODELS
# =============================================================================

class TransactionInput(BaseModel):
    """
    What the entry form submits.

    At least one of income/expense must be nonzero. Both may be set
    on the same record (e.g. sales and stock purchase on one line).
    """
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    date: dt.date = Field(
        ...,
        description="Calendar date of the entry (YYYY-MM-DD)"
    )
    description: str = Field(
        default="",
        max_length=500,
        description="Free text, may be empty"
    )
    income: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        description="Money in"
    )
    expense: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        description="Money out"
    )

    @model_validator(mode='after')
    def validate_amounts(self) -> 'TransactionInput':
        """Reject entries with nothing to record."""
        if self.income == 0 and self.expense == 0:
            raise ValueError("At least one of income or expense must be nonzero")
        return self


class Transaction(BaseModel):
    """
    A recorded transaction, local or remote.

    Immutable once created. Deletion is tracked outside the record
    (the sync engine's deleted-id overlay).
    """
    model_config = ConfigDict(frozen=True)

    ref: TransactionRef
    date: dt.date
    description: str = ""
    income: Decimal = Field(default=Decimal("0"), ge=0)
    expense: Decimal = Field(default=Decimal("0"), ge=0)
    timestamp: Optional[float] = Field(
        default=None,
        description="Creation instant in epoch seconds; tie-breaker only"
    )

    @model_validator(mode='before')
    @classmethod
    def accept_legacy_shape(cls, data: Any) -> Any:
        """
        Read records persisted without an origin tag.

        Older queues store `{"id": ..., "timestamp": {"seconds": ...}}`.
        """
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if "ref" not in data and "id" in data:
            data["ref"] = ref_from_id(str(data.pop("id")))
        ts = data.get("timestamp")
        if isinstance(ts, dict):
            data["timestamp"] = ts.get("seconds")
        return data

    @property
    def id(self) -> str:
        return self.ref.id

    @property
    def is_local(self) -> bool:
        return isinstance(self.ref, LocalRef)

    @property
    def sort_key(self) -> tuple[dt.date, float]:
        return (self.date, self.timestamp or 0.0)

    def to_input(self) -> TransactionInput:
        """Strip identity so the record can be re-created elsewhere."""
        return TransactionInput(
            date=self.date,
            description=self.description,
            income=self.income,
            expense=self.expense,
        )

    @classmethod
    def new_local(
        cls,
        data: TransactionInput,
        now: Optional[float] = None,
    ) -> 'Transaction':
        """Create a device-side record with a fresh local id and wall-clock timestamp."""
        now = time.time() if now is None else now
        return cls(
            ref=LocalRef(id=mint_local_id(now)),
            date=data.date,
            description=data.description,
            income=data.income,
            expense=data.expense,
            timestamp=now,
        )


def sort_transactions(items: Iterable[Transaction]) -> list[Transaction]:
    """
    Order a view: date descending, ties by timestamp descending.

    Records without a timestamp sort as 0 (oldest within their date).
    The sort is stable, so equal keys keep their incoming order.
    """
    return sorted(items, key=lambda t: t.sort_key, reverse=True)
