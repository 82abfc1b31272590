"""
Google Sheets Table Store

DESIGN DECISION: Google Sheets is a usable remote backend for a personal
ledger because:
1. The owner can look at their data directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

TRADEOFFS:
- Not suitable for high-volume data (we're fine for personal use)
- No transactions (the ledger engines compensate explicitly)
- Limited query capabilities (we filter in Python)
- Every cell is text; rows come back as strings and are validated into
  models by the ledger store

Each table is one worksheet named <prefix><table> whose first row holds
the column names from TABLE_COLUMNS.
"""

from datetime import date, datetime
from typing import Any, Optional

import gspread
from google.oauth2.service_account import Credentials
from gspread.utils import rowcol_to_a1
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from spendly.config import get_settings
from spendly.config.settings import GoogleSheetsSettings
from spendly.services.storage.interface import (
    TABLE_COLUMNS,
    UNIQUE_KEYS,
    ConflictError,
    Filters,
    StorageError,
    TableStore,
    TransportError,
    row_matches,
)


INT_COLUMNS = {"month", "year", "total_months", "start_month", "start_year"}
BOOL_COLUMNS = {"is_settled", "is_active"}

# Retry transient backend failures only; conflicts and bad input are final
transient_retry = retry(
    retry=retry_if_exception_type(TransportError),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    reraise=True,
)


def encode_cell(value: Any) -> str:
    """Convert a Python value to the text stored in a cell."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "True" if value else "False"
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def decode_cell(column: str, value: str) -> Any:
    """Convert cell text back to a Python value (None for blanks)."""
    if value == "":
        return None
    if column in INT_COLUMNS:
        return int(value)
    if column in BOOL_COLUMNS:
        return value.lower() == "true"
    return value


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._worksheets: dict[str, gspread.Worksheet] = {}
        self._settings = settings or get_settings().google_sheets

    @transient_retry
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
                raise StorageError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise TransportError(f"Failed to connect to Google Sheets: {e}")

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
                raise StorageError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_table_sheet(self, table: str) -> gspread.Worksheet:
        """Get or create the worksheet backing a table."""
        if table not in TABLE_COLUMNS:
            raise StorageError(f"Unknown table: {table}")

        if table not in self._worksheets:
            spreadsheet = self.get_spreadsheet()
            title = f"{self._settings.worksheet_prefix}{table}"
            columns = TABLE_COLUMNS[table]
            try:
                sheet = spreadsheet.worksheet(title)
            except gspread.WorksheetNotFound:
                # Create the sheet with headers
                sheet = spreadsheet.add_worksheet(
                    title=title,
                    rows=1000,
                    cols=len(columns),
                )
                sheet.append_row(list(columns))
            self._worksheets[table] = sheet
        return self._worksheets[table]


class GoogleSheetsTableStore(TableStore):
    """
    Google Sheets implementation of the table store.

    Rows are stored one per sheet row in TABLE_COLUMNS order.
    Unique keys are checked in Python before writing.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_values(self, table: str, row: dict[str, Any]) -> list[str]:
        return [encode_cell(row.get(column)) for column in TABLE_COLUMNS[table]]

    def _values_to_row(self, table: str, values: list[str]) -> dict[str, Any]:
        # Handle short rows (trailing blank cells are not returned)
        def safe_get(index: int) -> str:
            try:
                return values[index]
            except IndexError:
                return ""

        return {
            column: decode_cell(column, safe_get(i))
            for i, column in enumerate(TABLE_COLUMNS[table])
        }

    def _read(self, table: str) -> tuple[gspread.Worksheet, list[tuple[int, dict[str, Any]]]]:
        """All rows of a table with their 1-based sheet row numbers."""
        try:
            sheet = self._client.get_table_sheet(table)
            all_values = sheet.get_all_values()[1:]  # Skip header
        except StorageError:
            raise
        except gspread.exceptions.APIError as e:
            raise TransportError(f"Failed to read {table}: {e}")
        except Exception as e:
            raise StorageError(f"Failed to read {table}: {e}")

        rows = []
        for idx, values in enumerate(all_values, start=2):
            if not values or not any(values):  # Skip empty rows
                continue
            rows.append((idx, self._values_to_row(table, values)))
        return sheet, rows

    def _check_unique(
        self,
        table: str,
        existing: list[dict[str, Any]],
        new_rows: list[dict[str, Any]],
    ) -> None:
        keys = UNIQUE_KEYS.get(table)
        if not keys:
            return
        taken = {tuple(encode_cell(r.get(k)) for k in keys) for r in existing}
        for row in new_rows:
            marker = tuple(encode_cell(row.get(k)) for k in keys)
            if marker in taken:
                raise ConflictError(f"Duplicate {table} row for {dict(zip(keys, marker))}")
            taken.add(marker)

    def _write_row(self, sheet: gspread.Worksheet, table: str, idx: int, row: dict[str, Any]) -> None:
        values = self._row_to_values(table, row)
        sheet.update(
            range_name=f"{rowcol_to_a1(idx, 1)}:{rowcol_to_a1(idx, len(values))}",
            values=[values],
            value_input_option="RAW",
        )

    @transient_retry
    async def select(
        self,
        table: str,
        filters: Optional[Filters] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> list[dict[str, Any]]:
        """Read all rows and filter in Python."""
        _, indexed = self._read(table)
        rows = [row for _, row in indexed if row_matches(row, filters, coerce=encode_cell)]
        if order_by:
            rows.sort(
                key=lambda r: (r.get(order_by) is None, encode_cell(r.get(order_by))),
                reverse=descending,
            )
        return rows

    @transient_retry
    async def insert(
        self,
        table: str,
        rows: list[dict[str, Any]],
    ) -> list[dict[str, Any]]:
        """Append rows after checking unique keys."""
        sheet, indexed = self._read(table)
        self._check_unique(table, [row for _, row in indexed], rows)
        try:
            sheet.append_rows(
                [self._row_to_values(table, row) for row in rows],
                value_input_option="RAW",
            )
        except gspread.exceptions.APIError as e:
            raise TransportError(f"Failed to insert into {table}: {e}")
        return [self._values_to_row(table, self._row_to_values(table, row)) for row in rows]

    @transient_retry
    async def update(
        self,
        table: str,
        filters: Filters,
        patch: dict[str, Any],
    ) -> list[dict[str, Any]]:
        """Rewrite every matching row with the patch applied."""
        sheet, indexed = self._read(table)
        updated = []
        try:
            for idx, row in indexed:
                if not row_matches(row, filters, coerce=encode_cell):
                    continue
                row.update(patch)
                self._write_row(sheet, table, idx, row)
                updated.append(self._values_to_row(table, self._row_to_values(table, row)))
        except gspread.exceptions.APIError as e:
            raise TransportError(f"Failed to update {table}: {e}")
        return updated

    @transient_retry
    async def upsert(
        self,
        table: str,
        row: dict[str, Any],
        conflict_keys: tuple[str, ...],
    ) -> dict[str, Any]:
        """Update the row sharing the conflict keys, or append a new one."""
        sheet, indexed = self._read(table)
        key_filter = {k: row.get(k) for k in conflict_keys}
        try:
            for idx, existing in indexed:
                if row_matches(existing, key_filter, coerce=encode_cell):
                    existing.update({k: v for k, v in row.items() if k not in ("id", "created_at")})
                    self._write_row(sheet, table, idx, existing)
                    return self._values_to_row(table, self._row_to_values(table, existing))

            sheet.append_row(self._row_to_values(table, row), value_input_option="RAW")
        except gspread.exceptions.APIError as e:
            raise TransportError(f"Failed to upsert into {table}: {e}")
        return self._values_to_row(table, self._row_to_values(table, row))

    @transient_retry
    async def delete(
        self,
        table: str,
        filters: Filters,
    ) -> int:
        """Delete matching rows bottom-up so row numbers stay valid."""
        sheet, indexed = self._read(table)
        doomed = [idx for idx, row in indexed if row_matches(row, filters, coerce=encode_cell)]
        try:
            for idx in reversed(doomed):
                sheet.delete_rows(idx)
        except gspread.exceptions.APIError as e:
            raise TransportError(f"Failed to delete from {table}: {e}")
        return len(doomed)
