"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is offered as a storage backend because:
1. Users can view their ledger directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

TRADEOFFS:
- Not suitable for high-volume data (fine for a personal ledger)
- No transactions (the guard's per-user lock orders our writes)
- Limited query capabilities (we filter in Python)

Reads and connection setup are retried with tenacity. Appends are not:
a retried append whose first attempt actually landed would write the
row twice.

gspread is blocking, so every sheet call from the async storage methods
runs in a worker thread via ``asyncio.to_thread``. The event loop stays
free while Sheets is slow, and the services' timeouts can fire. Read
retries back off with ``asyncio.sleep`` (tenacity's async retry).
"""

import asyncio
import json
from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from budget_engine.config import get_settings
from budget_engine.models.ledger import (
    Budget,
    BudgetDraft,
    IncomeCategory,
    IncomeEntry,
    IncomeEntryDraft,
    IncomeSource,
    RecurringInterval,
    Transaction,
    TransactionDraft,
    TransactionFilters,
    TransactionType,
)
from budget_engine.models.audit import AuditEvent, AuditEventType, AuditSeverity
from budget_engine.services.storage.interface import (
    AuditStorageInterface,
    BudgetStorageInterface,
    ConnectionError,
    LedgerStorageInterface,
    PersistenceError,
)


logger = structlog.get_logger(__name__)


TRANSACTION_COLUMNS = [
    "id",
    "user_key",
    "created_at",
    "type",
    "category",
    "amount",
    "transaction_date",
    "description",
    "is_recurring",
    "recurring_interval",
    "is_tax_related",
]

BUDGET_COLUMNS = [
    "id",
    "user_key",
    "created_at",
    "name",
    "amount",
    "category",
    "description",
    "start_date",
    "end_date",
]

INCOME_SOURCE_COLUMNS = [
    "id",
    "user_key",
    "created_at",
    "name",
]

INCOME_ENTRY_COLUMNS = [
    "id",
    "source_id",
    "user_key",
    "created_at",
    "amount",
    "description",
    "category",
    "entry_date",
]

AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "user_key",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]

_read_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    reraise=True,
)


def _cell(row: list, index: int, default: str = "") -> str:
    """Read a cell, tolerating short rows."""
    try:
        return row[index] if row[index] else default
    except IndexError:
        return default


def _optional_date(value: str) -> Optional[date]:
    return date.fromisoformat(value) if value else None


def _flag(value: str) -> bool:
    return value.lower() == "true"


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and worksheet creation.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets

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
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

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
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_sheet(self, title: str, columns: list[str], rows: int = 1000) -> gspread.Worksheet:
        """Get a worksheet, creating it with a header row if missing."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def get_transactions_sheet(self) -> gspread.Worksheet:
        return self.get_sheet(self._settings.transactions_sheet_name, TRANSACTION_COLUMNS)

    def get_budgets_sheet(self) -> gspread.Worksheet:
        return self.get_sheet(self._settings.budgets_sheet_name, BUDGET_COLUMNS)

    def get_income_sources_sheet(self) -> gspread.Worksheet:
        return self.get_sheet(self._settings.income_sources_sheet_name, INCOME_SOURCE_COLUMNS)

    def get_income_entries_sheet(self) -> gspread.Worksheet:
        return self.get_sheet(self._settings.income_entries_sheet_name, INCOME_ENTRY_COLUMNS)

    def get_audit_sheet(self) -> gspread.Worksheet:
        # More rows for audit log
        return self.get_sheet(self._settings.audit_sheet_name, AUDIT_COLUMNS, rows=5000)

    @_read_retry
    async def read_rows(self, sheet: gspread.Worksheet) -> list[list]:
        """All data rows of a sheet (header excluded)."""
        all_rows = await asyncio.to_thread(sheet.get_all_values)
        return all_rows[1:]


def _delete_owned_row(
    sheet: gspread.Worksheet,
    row_id: UUID,
    user_key: str,
    owner_column: int,
) -> bool:
    """Delete the row with ``row_id`` if ``user_key`` owns it."""
    all_rows = sheet.get_all_values()
    for idx, row in enumerate(all_rows[1:], start=2):  # Row 1 is the header
        if row and row[0] == str(row_id):
            if _cell(row, owner_column) != user_key:
                return False
            sheet.delete_rows(idx)
            return True
    return False


class GoogleSheetsLedgerStorage(LedgerStorageInterface):
    """
    Google Sheets implementation of ledger storage.

    Transactions, income sources and income entries each live in their
    own worksheet, one record per row.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _transaction_to_row(self, tx: Transaction) -> list:
        return [
            str(tx.id),
            tx.user_key,
            tx.created_at.isoformat(),
            tx.type.value,
            tx.category or "",
            str(tx.amount),
            tx.transaction_date.isoformat(),
            tx.description or "",
            str(tx.is_recurring),
            tx.recurring_interval.value if tx.recurring_interval else "",
            str(tx.is_tax_related),
        ]

    def _row_to_transaction(self, row: list) -> Transaction:
        interval = _cell(row, 9)
        return Transaction(
            id=UUID(_cell(row, 0)),
            user_key=_cell(row, 1),
            created_at=datetime.fromisoformat(_cell(row, 2)),
            type=TransactionType(_cell(row, 3)),
            category=_cell(row, 4) or None,
            amount=Decimal(_cell(row, 5)),
            transaction_date=date.fromisoformat(_cell(row, 6)),
            description=_cell(row, 7) or None,
            is_recurring=_flag(_cell(row, 8)),
            recurring_interval=RecurringInterval(interval) if interval else None,
            is_tax_related=_flag(_cell(row, 10)),
        )

    def _entry_to_row(self, entry: IncomeEntry) -> list:
        return [
            str(entry.id),
            str(entry.source_id),
            entry.user_key,
            entry.created_at.isoformat(),
            str(entry.amount),
            entry.description,
            entry.category.value,
            entry.entry_date.isoformat(),
        ]

    def _row_to_entry(self, row: list) -> IncomeEntry:
        return IncomeEntry(
            id=UUID(_cell(row, 0)),
            source_id=UUID(_cell(row, 1)),
            user_key=_cell(row, 2),
            created_at=datetime.fromisoformat(_cell(row, 3)),
            amount=Decimal(_cell(row, 4)),
            description=_cell(row, 5),
            category=IncomeCategory(_cell(row, 6, "other")),
            entry_date=date.fromisoformat(_cell(row, 7)),
        )

    async def list_transactions(
        self,
        user_key: str,
        filters: Optional[TransactionFilters] = None,
    ) -> list[Transaction]:
        filters = filters or TransactionFilters()
        try:
            sheet = await asyncio.to_thread(self._client.get_transactions_sheet)
            all_rows = await self._client.read_rows(sheet)
        except Exception as e:
            raise PersistenceError(f"Failed to list transactions: {e}")

        transactions = []
        for row in all_rows:
            if not row or not row[0] or _cell(row, 1) != user_key:
                continue
            try:
                tx = self._row_to_transaction(row)
            except Exception:
                logger.warning("malformed_transaction_row", row_id=row[0])
                continue
            if filters.matches(tx):
                transactions.append(tx)

        transactions.sort(key=lambda t: (t.transaction_date, t.created_at), reverse=True)
        return transactions

    async def insert_transaction(self, draft: TransactionDraft) -> Transaction:
        transaction = Transaction.from_draft(draft)
        try:
            sheet = await asyncio.to_thread(self._client.get_transactions_sheet)
            await asyncio.to_thread(
                sheet.append_row,
                self._transaction_to_row(transaction),
                value_input_option="RAW",
            )
        except Exception as e:
            raise PersistenceError(f"Failed to save transaction: {e}")
        return transaction

    async def delete_transaction(self, transaction_id: UUID, user_key: str) -> bool:
        try:
            sheet = await asyncio.to_thread(self._client.get_transactions_sheet)
            return await asyncio.to_thread(
                _delete_owned_row, sheet, transaction_id, user_key, 1
            )
        except Exception as e:
            raise PersistenceError(f"Failed to delete transaction: {e}")

    async def get_or_create_income_source(self, user_key: str) -> IncomeSource:
        try:
            sheet = await asyncio.to_thread(self._client.get_income_sources_sheet)
            for row in await self._client.read_rows(sheet):
                if row and row[0] and _cell(row, 1) == user_key:
                    return IncomeSource(
                        id=UUID(_cell(row, 0)),
                        user_key=user_key,
                        created_at=datetime.fromisoformat(_cell(row, 2)),
                        name=_cell(row, 3, "Income"),
                    )

            source = IncomeSource(user_key=user_key)
            await asyncio.to_thread(
                sheet.append_row,
                [str(source.id), user_key, source.created_at.isoformat(), source.name],
                value_input_option="RAW",
            )
            return source
        except Exception as e:
            raise PersistenceError(f"Failed to get income source: {e}")

    async def list_income_entries(
        self,
        user_key: str,
        source_id: UUID,
    ) -> list[IncomeEntry]:
        try:
            sheet = await asyncio.to_thread(self._client.get_income_entries_sheet)
            all_rows = await self._client.read_rows(sheet)
        except Exception as e:
            raise PersistenceError(f"Failed to list income entries: {e}")

        entries = []
        for row in all_rows:
            if (
                row
                and row[0]
                and _cell(row, 1) == str(source_id)
                and _cell(row, 2) == user_key
            ):
                try:
                    entries.append(self._row_to_entry(row))
                except Exception:
                    logger.warning("malformed_income_entry_row", row_id=row[0])
                    continue

        entries.sort(key=lambda e: (e.entry_date, e.created_at), reverse=True)
        return entries

    async def insert_income_entry(self, draft: IncomeEntryDraft) -> IncomeEntry:
        entry = IncomeEntry.from_draft(draft)
        try:
            sheet = await asyncio.to_thread(self._client.get_income_entries_sheet)
            await asyncio.to_thread(
                sheet.append_row, self._entry_to_row(entry), value_input_option="RAW"
            )
        except Exception as e:
            raise PersistenceError(f"Failed to save income entry: {e}")
        return entry

    async def delete_income_entry(self, entry_id: UUID, user_key: str) -> bool:
        try:
            sheet = await asyncio.to_thread(self._client.get_income_entries_sheet)
            return await asyncio.to_thread(
                _delete_owned_row, sheet, entry_id, user_key, 2
            )
        except Exception as e:
            raise PersistenceError(f"Failed to delete income entry: {e}")


class GoogleSheetsBudgetStorage(BudgetStorageInterface):
    """
    Google Sheets implementation of budget storage.

    Budgets are stored as rows in a worksheet with one budget per row.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _budget_to_row(self, budget: Budget) -> list:
        return [
            str(budget.id),
            budget.user_key,
            budget.created_at.isoformat(),
            budget.name,
            str(budget.amount),
            budget.category or "",
            budget.description or "",
            budget.start_date.isoformat() if budget.start_date else "",
            budget.end_date.isoformat() if budget.end_date else "",
        ]

    def _row_to_budget(self, row: list) -> Budget:
        return Budget(
            id=UUID(_cell(row, 0)),
            user_key=_cell(row, 1),
            created_at=datetime.fromisoformat(_cell(row, 2)),
            name=_cell(row, 3),
            amount=Decimal(_cell(row, 4)),
            category=_cell(row, 5) or None,
            description=_cell(row, 6) or None,
            start_date=_optional_date(_cell(row, 7)),
            end_date=_optional_date(_cell(row, 8)),
        )

    async def list_budgets(self, user_key: str) -> list[Budget]:
        try:
            sheet = await asyncio.to_thread(self._client.get_budgets_sheet)
            all_rows = await self._client.read_rows(sheet)
        except Exception as e:
            raise PersistenceError(f"Failed to list budgets: {e}")

        budgets = []
        for row in all_rows:
            if not row or not row[0] or _cell(row, 1) != user_key:
                continue
            try:
                budgets.append(self._row_to_budget(row))
            except Exception:
                logger.warning("malformed_budget_row", row_id=row[0])
                continue

        budgets.sort(key=lambda b: b.created_at, reverse=True)
        return budgets

    async def get_budget(self, budget_id: UUID, user_key: str) -> Optional[Budget]:
        for budget in await self.list_budgets(user_key):
            if budget.id == budget_id:
                return budget
        return None

    async def insert_budget(self, draft: BudgetDraft) -> Budget:
        budget = Budget.from_draft(draft)
        try:
            sheet = await asyncio.to_thread(self._client.get_budgets_sheet)
            await asyncio.to_thread(
                sheet.append_row, self._budget_to_row(budget), value_input_option="RAW"
            )
        except Exception as e:
            raise PersistenceError(f"Failed to save budget: {e}")
        return budget

    async def delete_budget(self, budget_id: UUID, user_key: str) -> bool:
        try:
            sheet = await asyncio.to_thread(self._client.get_budgets_sheet)
            return await asyncio.to_thread(
                _delete_owned_row, sheet, budget_id, user_key, 1
            )
        except Exception as e:
            raise PersistenceError(f"Failed to delete budget: {e}")


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        return AuditEvent(
            event_id=UUID(_cell(row, 0)),
            timestamp=datetime.fromisoformat(_cell(row, 1)),
            event_type=AuditEventType(_cell(row, 2)),
            severity=AuditSeverity(_cell(row, 3)),
            user_key=_cell(row, 4) or None,
            entity_type=_cell(row, 5) or None,
            entity_id=UUID(_cell(row, 6)) if _cell(row, 6) else None,
            correlation_id=UUID(_cell(row, 7)) if _cell(row, 7) else None,
            description=_cell(row, 8),
            details=json.loads(_cell(row, 9)) if _cell(row, 9) else {},
            error_message=_cell(row, 10) or None,
            is_user_action=_flag(_cell(row, 11)),
        )

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            sheet = await asyncio.to_thread(self._client.get_audit_sheet)
            await asyncio.to_thread(
                sheet.append_row, event.to_sheets_row(), value_input_option="RAW"
            )
            return True
        except Exception as e:
            # Audit logging should not break the main flow
            logger.warning("audit_append_failed", error=str(e), event_id=str(event.event_id))
            return False

    async def _read_events(self) -> list[AuditEvent]:
        sheet = await asyncio.to_thread(self._client.get_audit_sheet)
        events = []
        for row in await self._client.read_rows(sheet):
            if row and row[0]:
                try:
                    events.append(self._row_to_event(row))
                except Exception:
                    continue
        return events

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get events by correlation ID."""
        try:
            events = [
                e for e in await self._read_events()
                if e.correlation_id == correlation_id
            ]
        except Exception as e:
            raise PersistenceError(f"Failed to get audit events: {e}")

        # Sort chronologically
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        """Get recent events."""
        try:
            events = await self._read_events()
        except Exception as e:
            raise PersistenceError(f"Failed to get audit events: {e}")

        # Sort newest first
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
