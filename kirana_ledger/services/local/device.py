"""
Device Settings

Small single-value settings kept on the device: the linked ledger
override, the anonymous device principal, the display name and the
app PIN. Reads and writes fail soft like the transaction queue.
"""

from typing import Optional
from uuid import uuid4

import structlog

from kirana_ledger.services.local.interface import KeyValueStore


LINKED_LEDGER_KEY = "jp_kirana_linked_ledger_id"
DEVICE_PRINCIPAL_KEY = "jp_kirana_device_principal_id"
USER_NAME_KEY = "jp_kirana_user_name"
PIN_KEY = "jp_kirana_app_pin"

MIN_PIN_LENGTH = 4

logger = structlog.get_logger(__name__)


class PinChangeError(ValueError):
    """PIN change rejected; message is shown to the user as-is."""
    pass


class DeviceSettings:
    """Typed accessors over the device key-value store."""

    def __init__(self, kv: KeyValueStore):
        self._kv = kv

    def _get(self, key: str) -> Optional[str]:
        try:
            return self._kv.get_item(key)
        except Exception as e:
            logger.warning("device_setting_read_failed", key=key, error=str(e))
            return None

    def _set(self, key: str, value: Optional[str]) -> bool:
        try:
            if value is None:
                self._kv.remove_item(key)
            else:
                self._kv.set_item(key, value)
            return True
        except Exception as e:
            logger.error("device_setting_write_failed", key=key, error=str(e))
            return False

    # Ledger linking

    def get_linked_ledger_id(self) -> Optional[str]:
        value = self._get(LINKED_LEDGER_KEY)
        return value.strip() if value and value.strip() else None

    def set_linked_ledger_id(self, ledger_id: Optional[str]) -> bool:
        return self._set(LINKED_LEDGER_KEY, ledger_id)

    # Anonymous sign-in

    def get_or_create_device_principal_id(self) -> str:
        """Stable id for anonymous sign-in on this device."""
        existing = self._get(DEVICE_PRINCIPAL_KEY)
        if existing:
            return existing
        principal_id = uuid4().hex
        self._set(DEVICE_PRINCIPAL_KEY, principal_id)
        return principal_id

    # Profile

    def get_display_name(self) -> str:
        return self._get(USER_NAME_KEY) or ""

    def set_display_name(self, name: str) -> bool:
        return self._set(USER_NAME_KEY, name.strip())

    # PIN

    def get_pin(self) -> Optional[str]:
        return self._get(PIN_KEY)

    def has_pin(self) -> bool:
        return bool(self.get_pin())

    def verify_pin(self, pin: str) -> bool:
        stored = self.get_pin()
        return stored is not None and stored == pin

    def change_pin(self, old_pin: str, new_pin: str, confirm_pin: str) -> None:
        """
        Set a new PIN.

        The current PIN is only checked when one is set.

        Raises:
            PinChangeError: With a user-facing message
        """
        stored = self.get_pin()
        if stored and old_pin != stored:
            raise PinChangeError("Incorrect current PIN")
        if len(new_pin) < MIN_PIN_LENGTH:
            raise PinChangeError(f"New PIN must be at least {MIN_PIN_LENGTH} digits")
        if not new_pin.isdigit():
            raise PinChangeError("PIN must contain only digits")
        if new_pin != confirm_pin:
            raise PinChangeError("New PINs do not match")
        self._set(PIN_KEY, new_pin)

    def clear_pin(self) -> bool:
        return self._set(PIN_KEY, None)
