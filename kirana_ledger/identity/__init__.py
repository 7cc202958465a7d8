"""Identity providers package."""

from kirana_ledger.identity.provider import (
    AuthDegradedError,
    GoogleIdentityProvider,
    IdentityProvider,
    LocalIdentityProvider,
)

__all__ = [
    "AuthDegradedError",
    "GoogleIdentityProvider",
    "IdentityProvider",
    "LocalIdentityProvider",
]
