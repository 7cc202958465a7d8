"""
Identity Providers

Supplies the principal the sync engine works as. Sign-in never fails from
the caller's point of view: if the backend cannot be reached or the token
is unusable, the provider hands back the ephemeral `offline-user`
principal and the engine keeps everything on the device until a later
sign-in succeeds.

DESIGN DECISION: Providers are explicitly constructed objects passed into
the engine, with sign_in() / close() as their lifecycle. Nothing is held
in module-level state, so tests swap in a fake provider freely.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Optional

import structlog
from google.auth import jwt

from kirana_ledger.models.ledger import Principal
from kirana_ledger.services.local.device import DeviceSettings
from kirana_ledger.services.remote.google_sheets import GoogleSheetsClient


logger = structlog.get_logger(__name__)


class AuthDegradedError(Exception):
    """Sign-in failed; the session continues as an ephemeral principal."""
    pass


class IdentityProvider(ABC):
    """Base class for principal providers."""

    def __init__(self):
        self._current: Optional[Principal] = None
        self._last_error: Optional[str] = None

    @property
    def current(self) -> Optional[Principal]:
        return self._current

    @property
    def last_error(self) -> Optional[str]:
        """Why the most recent sign-in degraded, if it did."""
        return self._last_error

    @abstractmethod
    async def _authenticate(self) -> Principal:
        """
        Obtain a principal from the backend.

        Raises:
            AuthDegradedError: Or any other exception, on failure
        """
        pass

    async def sign_in(self) -> Principal:
        """Sign in, degrading to the offline principal on any failure."""
        try:
            principal = await self._authenticate()
            self._last_error = None
        except Exception as e:
            self._last_error = str(e)
            logger.warning("auth_degraded", error=str(e))
            principal = Principal.offline()
        self._current = principal
        return principal

    def offline_principal(self) -> Principal:
        """Principal to use when starting without connectivity."""
        self._current = Principal.offline()
        return self._current

    def close(self) -> None:
        self._current = None


class LocalIdentityProvider(IdentityProvider):
    """Used when no remote ledger is configured: always `local-user`."""

    async def _authenticate(self) -> Principal:
        return Principal.local()

    def offline_principal(self) -> Principal:
        self._current = Principal.local()
        return self._current


class GoogleIdentityProvider(IdentityProvider):
    """
    Sign-in against the Google backend.

    Connecting the Sheets client proves the credentials and connectivity.
    With an initial auth token the principal is the token's `uid` (or
    `sub`) claim; otherwise it is this device's stable anonymous id.

    The token is decoded without signature verification: it only selects
    which ledger the device writes to, access control lives in the sheet
    sharing settings.
    """

    def __init__(
        self,
        client: GoogleSheetsClient,
        device: DeviceSettings,
        initial_auth_token: Optional[str] = None,
    ):
        super().__init__()
        self._client = client
        self._device = device
        self._token = initial_auth_token

    async def _authenticate(self) -> Principal:
        try:
            await asyncio.to_thread(self._client.connect)
        except Exception as e:
            raise AuthDegradedError(f"Cannot reach identity backend: {e}")

        if self._token:
            return self._principal_from_token(self._token)

        return Principal(
            id=self._device.get_or_create_device_principal_id(),
            is_ephemeral=False,
            is_anonymous=True,
        )

    def _principal_from_token(self, token: str) -> Principal:
        try:
            claims = jwt.decode(token, verify=False)
        except Exception as e:
            raise AuthDegradedError(f"Unreadable sign-in token: {e}")

        uid = claims.get("uid") or claims.get("sub")
        if not uid:
            raise AuthDegradedError("Sign-in token carries no uid or sub claim")
        return Principal(id=str(uid), is_ephemeral=False, is_anonymous=False)

    def close(self) -> None:
        super().close()
        self._client.close()
