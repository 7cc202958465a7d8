"""Sync activity logging package."""

from kirana_ledger.audit.logger import SyncAuditLogger, configure_logging

__all__ = ["SyncAuditLogger", "configure_logging"]
