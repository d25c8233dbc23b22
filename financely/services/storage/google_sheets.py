"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is offered as an alternative backend because:
1. Non-technical users can view their household data directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

TRADEOFFS:
- No transactions. A save validates the new snapshot first, then sends
  every named worksheet in one values batch update, so a failed save
  leaves the sheets as they were.
- Limited query capabilities (we load everything and work in Python)

Layout: one worksheet per collection, one row per entity, header row
first. Nested lists (expense splits, trip expenses) are JSON columns.
"""

import json
from typing import Any, Optional

import gspread
import structlog
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from financely.config import GoogleSheetsSettings, get_settings
from financely.models.audit import AuditEvent, AuditEventType, AuditSeverity
from financely.models.household import Household, HouseholdUpdate
from financely.services.storage.interface import (
    AuditStorageInterface,
    HouseholdStorageInterface,
    NotFoundError,
    StorageError,
    StoreConnectionError,
)
from financely.services.storage.seed import build_demo_household

logger = structlog.get_logger(__name__)


# Worksheet title -> column order. JSON_COLUMNS hold nested lists.
COLLECTION_COLUMNS: dict[str, list[str]] = {
    "members": ["id", "name", "avatar_url"],
    "categories": ["id", "name", "icon"],
    "rules": ["id", "keyword", "category_id"],
    "expenses": ["id", "description", "amount", "date", "member_id", "category_id", "splits"],
    "budgets": ["id", "category_id", "amount"],
    "bucket_goals": ["id", "name", "target_amount", "current_amount"],
    "trips": ["id", "name", "start_date", "end_date", "budget", "expenses"],
    "subscriptions": ["id", "description", "amount", "frequency", "next_due_date", "category_id"],
    "notifications": ["id", "message", "timestamp", "severity", "is_read"],
}

JSON_COLUMNS = {"splits", "expenses"}
BOOL_COLUMNS = {"is_read"}

SETTINGS_SHEET = "settings"
SETTINGS_COLUMNS = ["id", "name", "email_alerts_enabled", "monthly_income"]

# Column mappings for Audit sheet
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

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
            except FileNotFoundError as e:
                raise StoreConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                ) from e
            except Exception as e:
                raise StoreConnectionError(f"Failed to connect to Google Sheets: {e}") from e

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(self._settings.spreadsheet_id)
            except gspread.SpreadsheetNotFound as e:
                raise StoreConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                ) from e
        return self._spreadsheet

    def get_sheet(self, title: str, columns: list[str], rows: int = 1000) -> gspread.Worksheet:
        """Get or create a worksheet with the given header row."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(title=title, rows=rows, cols=len(columns))
            sheet.append_row(columns)
        return sheet

    def get_audit_sheet(self) -> gspread.Worksheet:
        """Get or create the Audit worksheet."""
        return self.get_sheet(self._settings.audit_sheet_name, AUDIT_COLUMNS, rows=5000)


def _cell(column: str, value: Any) -> Any:
    if column in JSON_COLUMNS:
        return json.dumps(value)
    if isinstance(value, bool):
        return str(value)
    return value


def _parse_cell(column: str, value: Any) -> Any:
    if column in JSON_COLUMNS:
        return json.loads(value) if value else []
    if column in BOOL_COLUMNS:
        return str(value).lower() == "true"
    return value


def _rows_for(collection: str, items: list[Any]) -> list[list]:
    """Convert a list of models to sheet rows in column order."""
    columns = COLLECTION_COLUMNS[collection]
    rows = []
    for item in items:
        data = item.model_dump(mode="json")
        rows.append([_cell(column, data.get(column)) for column in columns])
    return rows


def _records_for(collection: str, values: list[list]) -> list[dict]:
    """Convert raw sheet values (header first) to dicts ready for model_validate."""
    columns = COLLECTION_COLUMNS[collection]
    records = []
    for row in values[1:]:
        if not row or not row[0]:
            continue
        padded = list(row) + [""] * (len(columns) - len(row))
        records.append({
            column: _parse_cell(column, padded[i])
            for i, column in enumerate(columns)
        })
    return records


class GoogleSheetsHouseholdStorage(HouseholdStorageInterface):
    """
    Google Sheets implementation of household storage.

    Values are written RAW so ids and ISO dates come back as text
    exactly as they went in.
    """

    def __init__(
        self,
        client: Optional[GoogleSheetsClient] = None,
        seed_demo_data: bool = True,
    ):
        self._client = client or GoogleSheetsClient()
        self._seed_demo_data = seed_demo_data
        self._is_open = False

    async def open(self) -> None:
        try:
            settings_sheet = self._client.get_sheet(SETTINGS_SHEET, SETTINGS_COLUMNS, rows=10)
            for title, columns in COLLECTION_COLUMNS.items():
                self._client.get_sheet(title, columns)
            is_empty = len(settings_sheet.get_all_values()) <= 1
        except StorageError:
            raise
        except Exception as e:
            raise StoreConnectionError(f"Failed to open Google Sheets store: {e}") from e

        self._is_open = True
        if is_empty:
            household = build_demo_household() if self._seed_demo_data else Household()
            logger.info("sheets_store_seeded", demo=self._seed_demo_data)
            self._write_household(household, full=True)

    async def close(self) -> None:
        self._is_open = False

    async def load(self) -> Household:
        if not self._is_open:
            raise StorageError("Store is not open")
        try:
            settings_values = self._client.get_sheet(
                SETTINGS_SHEET, SETTINGS_COLUMNS
            ).get_all_values()
            if len(settings_values) <= 1:
                raise NotFoundError("No household stored")

            row = list(settings_values[1]) + [""] * len(SETTINGS_COLUMNS)
            data: dict[str, Any] = {
                "id": row[0],
                "name": row[1] or "My Household",
                "email_alerts_enabled": str(row[2]).lower() != "false",
                "monthly_income": int(row[3] or 0),
            }
            for title, columns in COLLECTION_COLUMNS.items():
                values = self._client.get_sheet(title, columns).get_all_values()
                data[title] = _records_for(title, values)

            return Household.model_validate(data)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to load household: {e}") from e

    async def save(self, update: HouseholdUpdate) -> bool:
        if not self._is_open:
            raise StorageError("Store is not open")

        current = await self.load()
        try:
            household = current.apply_update(update)
        except ValueError as e:
            raise StorageError(f"Failed to save household: {e}") from e

        changed = update.changed_fields
        self._write_household(
            household,
            collections=[name for name in changed if name in COLLECTION_COLUMNS],
            settings=any(name not in COLLECTION_COLUMNS for name in changed),
        )
        return True

    def _write_household(
        self,
        household: Household,
        collections: Optional[list[str]] = None,
        settings: bool = True,
        full: bool = False,
    ) -> None:
        """
        Replace the named worksheets with one values batch update.

        Every sheet is resolved and every row built before anything is
        written. The batch is a single API request, so either all named
        collections change or none do. Rows left over from a longer
        previous version are overwritten with blanks instead of cleared.
        """
        if full:
            collections = list(COLLECTION_COLUMNS)

        targets: list[tuple[str, list[str], list[list]]] = []
        if settings or full:
            targets.append((SETTINGS_SHEET, SETTINGS_COLUMNS, [[
                household.id,
                household.name,
                str(household.email_alerts_enabled),
                household.monthly_income,
            ]]))
        for title in collections or []:
            targets.append((
                title,
                COLLECTION_COLUMNS[title],
                _rows_for(title, getattr(household, title)),
            ))

        try:
            data = []
            for title, columns, rows in targets:
                sheet = self._client.get_sheet(title, columns)
                values = [columns] + rows
                stale = len(sheet.get_all_values()) - len(values)
                if len(values) > sheet.row_count:
                    sheet.add_rows(len(values) - sheet.row_count)
                data.append({
                    "range": f"'{title}'!A1",
                    "values": values + [[""] * len(columns)] * max(stale, 0),
                })
            self._client.get_spreadsheet().values_batch_update(
                body={"valueInputOption": "RAW", "data": data}
            )
        except Exception as e:
            raise StorageError(f"Failed to write household: {e}") from e


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        return AuditEvent(
            event_id=safe_get(0),
            timestamp=safe_get(1),
            event_type=AuditEventType(safe_get(2)),
            severity=AuditSeverity(safe_get(3)),
            entity_type=safe_get(4) or None,
            entity_id=safe_get(5) or None,
            correlation_id=safe_get(6) or None,
            description=safe_get(7),
            details=json.loads(safe_get(8)) if safe_get(8) else {},
            error_message=safe_get(9) or None,
            is_user_action=safe_get(10).lower() == "true",
        )

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            # Audit logging should not break the main flow
            logger.warning("audit_write_failed", error=str(e))
            return False

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        """Get recent events."""
        try:
            sheet = self._client.get_audit_sheet()
            all_rows = sheet.get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}") from e

        events = []
        for row in all_rows:
            if row and row[0]:
                try:
                    events.append(self._row_to_event(row))
                except ValueError:
                    continue  # Skip malformed rows

        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
