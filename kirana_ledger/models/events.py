"""
Sync Event Models

Every decision the sync engine makes (mode switch, upload, degraded
delete) is recorded as a SyncEvent. Events go to the structured log and
to a short in-memory history the settings screen can show.

DESIGN DECISION: Events are append-only. We never delete or modify them.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class SyncEventType(str, Enum):
    """Types of events we record."""
    # Mutations
    TRANSACTION_ADDED = "transaction_added"
    TRANSACTION_QUEUED = "transaction_queued"
    TRANSACTION_DELETED = "transaction_deleted"
    REMOTE_DELETE_FAILED = "remote_delete_failed"

    # Bulk upload
    BULK_UPLOAD_STARTED = "bulk_upload_started"
    BULK_UPLOAD_COMPLETED = "bulk_upload_completed"
    BULK_UPLOAD_FAILED = "bulk_upload_failed"

    # Live subscription
    SUBSCRIPTION_STARTED = "subscription_started"
    SUBSCRIPTION_FAILED = "subscription_failed"

    # Session
    CONNECTIVITY_CHANGED = "connectivity_changed"
    AUTH_DEGRADED = "auth_degraded"
    PRINCIPAL_UPGRADED = "principal_upgraded"
    LEDGER_SWITCHED = "ledger_switched"


class SyncEventSeverity(str, Enum):
    """Severity level for sync events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class SyncEvent(BaseModel):
    """A single recorded sync decision."""

    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC)"
    )
    event_type: SyncEventType
    severity: SyncEventSeverity = SyncEventSeverity.INFO

    ledger_id: Optional[str] = Field(
        default=None,
        description="Ledger the event applies to"
    )
    transaction_id: Optional[str] = None

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(default_factory=dict)
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "ledger_id": self.ledger_id,
            "transaction_id": self.transaction_id,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
        }


class SyncEventBuilder:
    """
    Helper class to build sync events with common patterns.

    Usage:
        event = SyncEventBuilder.transaction_queued(ledger_id, tx_id)
        event = SyncEventBuilder.bulk_upload_completed(ledger_id, 3, 3)
    """

    @staticmethod
    def transaction_added(ledger_id: str, transaction_id: str) -> SyncEvent:
        return SyncEvent(
            event_type=SyncEventType.TRANSACTION_ADDED,
            ledger_id=ledger_id,
            transaction_id=transaction_id,
            description="Transaction written to shared ledger",
        )

    @staticmethod
    def transaction_queued(ledger_id: str, transaction_id: str) -> SyncEvent:
        return SyncEvent(
            event_type=SyncEventType.TRANSACTION_QUEUED,
            ledger_id=ledger_id,
            transaction_id=transaction_id,
            description="Transaction saved on device, pending upload",
        )

    @staticmethod
    def transaction_deleted(
        ledger_id: str,
        transaction_id: str,
        origin: str,
    ) -> SyncEvent:
        return SyncEvent(
            event_type=SyncEventType.TRANSACTION_DELETED,
            ledger_id=ledger_id,
            transaction_id=transaction_id,
            description=f"Transaction deleted ({origin})",
            details={"origin": origin},
        )

    @staticmethod
    def remote_delete_failed(
        ledger_id: str,
        transaction_id: str,
        error_message: str,
    ) -> SyncEvent:
        return SyncEvent(
            event_type=SyncEventType.REMOTE_DELETE_FAILED,
            severity=SyncEventSeverity.WARNING,
            ledger_id=ledger_id,
            transaction_id=transaction_id,
            description="Remote delete failed; record stays hidden for this session only",
            error_message=error_message,
        )

    @staticmethod
    def bulk_upload_started(ledger_id: str, pending: int) -> SyncEvent:
        return SyncEvent(
            event_type=SyncEventType.BULK_UPLOAD_STARTED,
            ledger_id=ledger_id,
            description=f"Uploading {pending} queued transactions",
            details={"pending": pending},
        )

    @staticmethod
    def bulk_upload_completed(
        ledger_id: str,
        uploaded: int,
        pending: int,
    ) -> SyncEvent:
        return SyncEvent(
            event_type=SyncEventType.BULK_UPLOAD_COMPLETED,
            ledger_id=ledger_id,
            description=f"Uploaded {uploaded} of {pending} queued transactions",
            details={"uploaded": uploaded, "pending": pending},
        )

    @staticmethod
    def bulk_upload_failed(
        ledger_id: str,
        uploaded: int,
        pending: int,
        error_message: Optional[str] = None,
    ) -> SyncEvent:
        return SyncEvent(
            event_type=SyncEventType.BULK_UPLOAD_FAILED,
            severity=SyncEventSeverity.WARNING,
            ledger_id=ledger_id,
            description=(
                f"Upload incomplete ({uploaded} of {pending}); "
                "device queue kept for retry"
            ),
            details={"uploaded": uploaded, "pending": pending},
            error_message=error_message,
        )

    @staticmethod
    def subscription_started(ledger_id: str) -> SyncEvent:
        return SyncEvent(
            event_type=SyncEventType.SUBSCRIPTION_STARTED,
            ledger_id=ledger_id,
            description="Live ledger subscription established",
        )

    @staticmethod
    def subscription_failed(ledger_id: str, error_message: str) -> SyncEvent:
        return SyncEvent(
            event_type=SyncEventType.SUBSCRIPTION_FAILED,
            severity=SyncEventSeverity.ERROR,
            ledger_id=ledger_id,
            description="Live subscription failed, switching to local view",
            error_message=error_message,
        )

    @staticmethod
    def connectivity_changed(online: bool) -> SyncEvent:
        return SyncEvent(
            event_type=SyncEventType.CONNECTIVITY_CHANGED,
            description="Device is online" if online else "Device is offline",
            details={"online": online},
        )

    @staticmethod
    def auth_degraded(error_message: str) -> SyncEvent:
        return SyncEvent(
            event_type=SyncEventType.AUTH_DEGRADED,
            severity=SyncEventSeverity.WARNING,
            description="Sign-in failed, continuing as offline user",
            error_message=error_message,
        )

    @staticmethod
    def principal_upgraded(old_ledger_id: str, new_ledger_id: str) -> SyncEvent:
        return SyncEvent(
            event_type=SyncEventType.PRINCIPAL_UPGRADED,
            ledger_id=new_ledger_id,
            description="Signed in after running offline",
            details={"previous_ledger_id": old_ledger_id},
        )

    @staticmethod
    def ledger_switched(
        old_ledger_id: Optional[str],
        new_ledger_id: str,
    ) -> SyncEvent:
        return SyncEvent(
            event_type=SyncEventType.LEDGER_SWITCHED,
            ledger_id=new_ledger_id,
            description=f"Active ledger changed to {new_ledger_id}",
            details={"previous_ledger_id": old_ledger_id},
        )
