"""
Ledger Resolver

Decides which ledger a principal is looking at: a linked ledger shared by
another device if one is stored, otherwise the principal's own.

Changing the link does not re-key anything in place. The two ledgers'
transactions are disjoint, so the engine tears down and re-derives its
state (SyncEngine.reset) after every change.
"""

from typing import Optional

from kirana_ledger.models.ledger import Principal
from kirana_ledger.services.local.device import DeviceSettings


class LedgerResolver:
    """Maps a principal to the active ledger id."""

    def __init__(self, device: DeviceSettings):
        self._device = device

    @property
    def linked_ledger_id(self) -> Optional[str]:
        return self._device.get_linked_ledger_id()

    def resolve(self, principal: Principal) -> str:
        return self.linked_ledger_id or principal.id

    def is_linked(self, principal: Principal) -> bool:
        return self.resolve(principal) != principal.id

    def link(self, ledger_id: str) -> str:
        """
        Store a linked ledger override.

        Raises:
            ValueError: If the id is blank or not usable as a path segment
        """
        ledger_id = (ledger_id or "").strip()
        if not ledger_id:
            raise ValueError("Ledger id cannot be empty")
        if "/" in ledger_id:
            raise ValueError(f"Invalid ledger id: {ledger_id!r}")
        self._device.set_linked_ledger_id(ledger_id)
        return ledger_id

    def unlink(self) -> None:
        """Return to the principal's own ledger."""
        self._device.set_linked_ledger_id(None)
