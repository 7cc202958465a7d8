"""
Abstract Device Storage Interface

DESIGN DECISION: Device persistence is a flat key-value store of strings,
the same shape a browser's localStorage offers. Everything the device keeps
(pending queue, linked ledger, display name, PIN) is one value under one key.

Backends raise PersistenceError. The typed stores built on top of this
(LocalTransactionStore, DeviceSettings) catch it and degrade.
"""

from abc import ABC, abstractmethod
from typing import Optional


class KeyValueStore(ABC):
    """Abstract interface for device-local string storage."""

    @abstractmethod
    def get_item(self, key: str) -> Optional[str]:
        """
        Read a value.

        Returns:
            The stored string, or None if the key is absent

        Raises:
            PersistenceError: If the backend cannot be read
        """
        pass

    @abstractmethod
    def set_item(self, key: str, value: str) -> None:
        """
        Replace the value under key.

        The write is atomic from the caller's point of view: a reader
        sees either the old value or the new one.

        Raises:
            PersistenceError: If the backend cannot be written
        """
        pass

    @abstractmethod
    def remove_item(self, key: str) -> None:
        """Remove key. Removing an absent key is not an error."""
        pass


class PersistenceError(Exception):
    """Device storage could not be read or written."""
    pass
