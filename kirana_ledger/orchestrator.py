"""
Application Wiring for Kirana Ledger

Builds the sync engine and its collaborators from configuration.

DESIGN DECISION: A missing or broken remote configuration is not an
error. The factory falls back to local-only components: the shop keeps
recording transactions on the device, and the same queue is uploaded once
the app is started with working Sheets settings.
"""

from typing import Optional

import structlog

from kirana_ledger.audit import SyncAuditLogger, configure_logging
from kirana_ledger.config import get_settings
from kirana_ledger.identity import (
    GoogleIdentityProvider,
    IdentityProvider,
    LocalIdentityProvider,
)
from kirana_ledger.services.local import (
    DeviceSettings,
    FileKeyValueStore,
    KeyValueStore,
)
from kirana_ledger.services.remote import (
    GoogleSheetsClient,
    GoogleSheetsRemoteStore,
    RemoteStoreInterface,
)
from kirana_ledger.sync import ConnectivityMonitor, LedgerResolver, SyncEngine


logger = structlog.get_logger(__name__)


def create_app_components(
    use_remote: bool = True,
    kv: Optional[KeyValueStore] = None,
) -> tuple[SyncEngine, ConnectivityMonitor, Optional[GoogleSheetsClient]]:
    """
    Factory function to create all application components.

    Args:
        use_remote: Whether to initialize the Google Sheets ledger.
                    Set to False for local-only operation.
        kv: Device store; defaults to files under the configured data dir.

    Returns:
        (engine, connectivity, sheets_client)

    The engine is not started; call `await engine.start(connectivity.is_online)`.
    """
    app_settings = get_settings().app
    configure_logging(app_settings.log_level)

    kv = kv or FileKeyValueStore(app_settings.data_dir)
    device = DeviceSettings(kv)
    resolver = LedgerResolver(device)
    audit_logger = SyncAuditLogger()

    sheets_client: Optional[GoogleSheetsClient] = None
    remote: Optional[RemoteStoreInterface] = None
    identity: IdentityProvider

    if use_remote:
        try:
            sheets_client = GoogleSheetsClient()
            remote = GoogleSheetsRemoteStore(sheets_client, app_id=app_settings.app_id)
            identity = GoogleIdentityProvider(
                sheets_client,
                device,
                initial_auth_token=get_settings().identity.initial_auth_token,
            )
        except Exception as e:
            # Remote not configured - continue on the device only
            logger.warning("remote_not_configured", error=str(e))
            sheets_client = None
            remote = None
            identity = LocalIdentityProvider()
    else:
        identity = LocalIdentityProvider()

    engine = SyncEngine(
        kv,
        identity,
        remote=remote,
        resolver=resolver,
        audit_logger=audit_logger,
    )

    connectivity = ConnectivityMonitor()
    connectivity.add_listener(engine.set_online)

    return engine, connectivity, sheets_client
