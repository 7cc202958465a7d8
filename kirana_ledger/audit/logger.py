"""
Sync Activity Logger

DESIGN DECISION: Every sync decision is logged.
This provides:
1. Traceability of why a record is (or isn't) on the shared ledger
2. Debugging capability for offline/online transitions
3. A short activity history the settings screen can show

The logger:
- Is synchronous (the engine records from snapshot callbacks too)
- Never raises (logging must not break the sync flow)
- Keeps a bounded in-memory history, newest last
"""

import logging
from collections import deque
from typing import Optional

import structlog

from kirana_ledger.models.events import SyncEvent, SyncEventSeverity


def configure_logging(level: Optional[str] = None) -> None:
    """
    Configure structlog for JSON output over the stdlib logging tree.

    Called once at import with defaults. Entry points call it again
    with the configured level to also set up the root handler.
    """
    if level is not None:
        logging.basicConfig(
            format="%(message)s",
            level=getattr(logging, level.upper(), logging.INFO),
        )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer()
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


configure_logging()


class SyncAuditLogger:
    """
    Central sync activity log.

    Logs events both to:
    1. Structured local log (for debugging)
    2. An in-memory ring buffer (for the UI)
    """

    def __init__(self, history_size: int = 200):
        self._history: deque[SyncEvent] = deque(maxlen=history_size)
        self._logger = structlog.get_logger("kirana_ledger.sync")

    def record(self, event: SyncEvent) -> None:
        """Log an event at its severity and append it to the history."""
        self._history.append(event)
        log_dict = event.to_log_dict()

        if event.severity == SyncEventSeverity.ERROR:
            self._logger.error("sync_event", **log_dict)
        elif event.severity == SyncEventSeverity.WARNING:
            self._logger.warning("sync_event", **log_dict)
        elif event.severity == SyncEventSeverity.DEBUG:
            self._logger.debug("sync_event", **log_dict)
        else:
            self._logger.info("sync_event", **log_dict)

    def recent_events(self, limit: int = 50) -> list[SyncEvent]:
        """Most recent events, newest first."""
        return list(reversed(self._history))[:limit]
