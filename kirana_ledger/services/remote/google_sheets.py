"""
Google Sheets Remote Ledger

DESIGN DECISION: Google Sheets is the shared ledger backend because:
1. Shop owners can open their books directly in Sheets
2. No database setup required
3. Several devices (family members) can write to one spreadsheet
4. Easy to export/migrate later

TRADEOFFS:
- No push notifications: live queries poll the worksheet and push the
  full result set whenever it changed since the last delivery
- No transactions: bulk upload appends row by row (partial success is
  expected and reported as a count)
- Limited query capabilities (we filter by collection path in Python)

All ledgers of all deployments share one worksheet; each row carries its
collection path (artifacts/<app-id>/users/<ledger>/daily_finances).
"""

import asyncio
import time
from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import uuid4

import gspread
import structlog
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from kirana_ledger.config import GoogleSheetsSettings, get_settings
from kirana_ledger.models.transaction import RemoteRef, Transaction, TransactionInput
from kirana_ledger.services.remote.interface import (
    ErrorCallback,
    RemoteStoreInterface,
    RemoteUnavailableError,
    SnapshotCallback,
    Subscription,
    collection_path,
)


# Column mappings for the Transactions sheet
TRANSACTION_COLUMNS = [
    "id",
    "collection",
    "date",
    "description",
    "income",
    "expense",
    "timestamp",
]

logger = structlog.get_logger(__name__)


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.

    Lifecycle: construct, connect() (lazily on first use), close() on
    teardown. There is no module-level client; every component that
    needs Sheets is handed this object.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

    @property
    def settings(self) -> GoogleSheetsSettings:
        return self._settings

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise RemoteUnavailableError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise RemoteUnavailableError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise RemoteUnavailableError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_transactions_sheet(self) -> gspread.Worksheet:
        """Get or create the Transactions worksheet."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(self._settings.transactions_sheet_name)
        except gspread.WorksheetNotFound:
            # Create the sheet with headers
            sheet = spreadsheet.add_worksheet(
                title=self._settings.transactions_sheet_name,
                rows=1000,
                cols=len(TRANSACTION_COLUMNS),
            )
            sheet.append_row(TRANSACTION_COLUMNS)
        return sheet

    def close(self) -> None:
        """Drop the authorized session; the next call reconnects."""
        self._spreadsheet = None
        self._client = None


class GoogleSheetsRemoteStore(RemoteStoreInterface):
    """
    Google Sheets implementation of the shared ledger.

    One transaction per row. Ids are uuid4 hex and timestamps are taken
    at append time; both stand in for server-assigned values.
    """

    def __init__(
        self,
        client: Optional[GoogleSheetsClient] = None,
        app_id: Optional[str] = None,
        poll_interval_seconds: Optional[float] = None,
    ):
        self._client = client or GoogleSheetsClient()
        self._app_id = app_id or get_settings().app.app_id
        self._poll_interval = (
            poll_interval_seconds
            if poll_interval_seconds is not None
            else self._client.settings.poll_interval_seconds
        )
        self._poll_tasks: set[asyncio.Task] = set()

    def _path(self, ledger_id: str) -> str:
        return collection_path(self._app_id, ledger_id)

    def _transaction_to_row(
        self,
        transaction_id: str,
        path: str,
        data: TransactionInput,
        timestamp: float,
    ) -> list:
        """Convert a new record to a spreadsheet row."""
        return [
            transaction_id,
            path,
            data.date.isoformat(),
            data.description,
            str(data.income),
            str(data.expense),
            f"{timestamp:.6f}",
        ]

    def _row_to_transaction(self, row: list) -> Transaction:
        """Convert a spreadsheet row to a Transaction."""
        # Handle missing columns gracefully
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        return Transaction(
            ref=RemoteRef(id=safe_get(0)),
            date=date.fromisoformat(safe_get(2)),
            description=safe_get(3),
            income=Decimal(safe_get(4, "0")),
            expense=Decimal(safe_get(5, "0")),
            timestamp=float(safe_get(6)) if safe_get(6) else None,
        )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def fetch_snapshot(self, path: str) -> list[Transaction]:
        """Read every row of one collection, in sheet order."""
        try:
            sheet = self._client.get_transactions_sheet()
            all_rows = sheet.get_all_values()[1:]  # Skip header
        except RemoteUnavailableError:
            raise
        except Exception as e:
            raise RemoteUnavailableError(f"Failed to read ledger: {e}")

        records = []
        for row in all_rows:
            if not row or not row[0] or len(row) < 2 or row[1] != path:
                continue
            try:
                records.append(self._row_to_transaction(row))
            except Exception:
                continue  # Skip malformed rows
        return records

    # -------------------------------------------------------------------------
    # Live queries
    # -------------------------------------------------------------------------

    def subscribe(
        self,
        ledger_id: str,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ) -> Subscription:
        path = self._path(ledger_id)
        loop = asyncio.get_running_loop()
        task: Optional[asyncio.Task] = None

        def stop_polling() -> None:
            if task is not None and task is not asyncio.current_task():
                task.cancel()

        subscription = Subscription(on_unsubscribe=stop_polling)
        task = loop.create_task(
            self._poll(path, subscription, on_snapshot, on_error)
        )
        self._poll_tasks.add(task)
        task.add_done_callback(self._poll_tasks.discard)
        return subscription

    async def _poll(
        self,
        path: str,
        subscription: Subscription,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ) -> None:
        last: Optional[list[Transaction]] = None
        while subscription.active:
            try:
                # Sheets calls block; keep them off the event loop
                records = await asyncio.to_thread(self.fetch_snapshot, path)
            except Exception as e:
                if subscription.active:
                    subscription.unsubscribe()
                    logger.error("live_query_failed", collection=path, error=str(e))
                    on_error(
                        e if isinstance(e, RemoteUnavailableError)
                        else RemoteUnavailableError(str(e))
                    )
                return

            if not subscription.active:
                return
            if records != last:
                last = records
                on_snapshot(list(records))
            await asyncio.sleep(self._poll_interval)

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def append(self, ledger_id: str, data: TransactionInput) -> str:
        """Append one transaction row."""
        return await asyncio.to_thread(self._append_row, self._path(ledger_id), data)

    def _append_row(self, path: str, data: TransactionInput) -> str:
        try:
            sheet = self._client.get_transactions_sheet()
            transaction_id = uuid4().hex
            row = self._transaction_to_row(transaction_id, path, data, time.time())
            sheet.append_row(row, value_input_option="RAW")
            return transaction_id
        except Exception as e:
            raise RemoteUnavailableError(f"Failed to append transaction: {e}")

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def remove_by_id(self, ledger_id: str, transaction_id: str) -> None:
        """Delete a transaction row; unknown ids are ignored."""
        await asyncio.to_thread(self._delete_row, self._path(ledger_id), transaction_id)

    def _delete_row(self, path: str, transaction_id: str) -> None:
        try:
            sheet = self._client.get_transactions_sheet()
            all_rows = sheet.get_all_values()

            for idx, row in enumerate(all_rows[1:], start=2):  # Row 1 is header
                if len(row) > 1 and row[0] == transaction_id and row[1] == path:
                    sheet.delete_rows(idx)
                    return
        except Exception as e:
            raise RemoteUnavailableError(f"Failed to delete transaction: {e}")

    def close(self) -> None:
        """Stop every live query and drop the Sheets session."""
        for task in list(self._poll_tasks):
            task.cancel()
        self._poll_tasks.clear()
        self._client.close()
