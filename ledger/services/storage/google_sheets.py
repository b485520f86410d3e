"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is kept as a storage backend because:
1. Non-technical users can view their ledger directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)
4. Easy to export/migrate later

TRADEOFFS:
- Not suitable for high-volume data (we're fine for personal use)
- Limited query capabilities (we filter in Python)
- No row locking: the count-then-delete of an account is only atomic
  with respect to this process

TRANSACTIONS: Writes made inside ``transaction()`` are buffered and sent as
ONE ``spreadsheets.batchUpdate`` call on exit. The Sheets API applies a
batchUpdate all-or-nothing, so an installment plan or a partial payment
never lands half-written. Reads inside a transaction see the buffered writes.

Connection and reads are retried; writes are NOT retried because a commit
that failed after reaching Google might have been applied.
"""

import json
from contextlib import asynccontextmanager
from contextvars import ContextVar
from datetime import date, datetime
from decimal import Decimal
from typing import AsyncIterator, Optional
from uuid import UUID

import gspread
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from ledger.config import get_settings
from ledger.errors import NotFoundError
from ledger.models.account import Account, AccountType
from ledger.models.audit import AuditEvent, AuditEventType, AuditSeverity
from ledger.models.entry import LedgerEntry
from ledger.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    LedgerStorageInterface,
    StorageError,
    TransactionError,
    entry_matches,
    entry_sort_key,
)


# Column mappings for Accounts sheet
ACCOUNT_COLUMNS = [
    "id",
    "owner_id",
    "name",
    "type",
    "sort_order",
    "is_active",
    "created_at",
    "updated_at",
]

# Column mappings for Entries sheet
ENTRY_COLUMNS = [
    "id",
    "account_id",
    "amount",
    "description",
    "tx_date",
    "posted_year",
    "posted_month",
    "installment_group_id",
    "installment_index",
    "installment_total",
    "is_carry_over",
    "carry_from_year",
    "carry_from_month",
    "is_partially_paid",
    "created_at",
    "updated_at",
]

# Column mappings for Audit sheet
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "owner_id",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_code",
    "error_message",
]

ACCOUNTS = "accounts"
ENTRIES = "entries"

read_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    reraise=True,
)


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets

    @read_retry
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

    def _get_or_create_sheet(self, title: str, columns: list[str], rows: int) -> gspread.Worksheet:
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            # Create the sheet with headers
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def get_accounts_sheet(self) -> gspread.Worksheet:
        """Get or create the Accounts worksheet."""
        return self._get_or_create_sheet(
            self._settings.accounts_sheet_name, ACCOUNT_COLUMNS, 200
        )

    def get_entries_sheet(self) -> gspread.Worksheet:
        """Get or create the Entries worksheet."""
        return self._get_or_create_sheet(
            self._settings.entries_sheet_name, ENTRY_COLUMNS, 5000
        )

    def get_audit_sheet(self) -> gspread.Worksheet:
        """Get or create the Audit worksheet."""
        return self._get_or_create_sheet(
            self._settings.audit_sheet_name, AUDIT_COLUMNS, 5000
        )


def _safe_getter(row: list):
    """Handle short rows (trailing empty cells are dropped by Sheets)."""
    def safe_get(index: int, default: str = "") -> str:
        try:
            return row[index] if row[index] else default
        except IndexError:
            return default
    return safe_get


def _opt_int(value: str) -> Optional[int]:
    return int(value) if value else None


def _row_data(row: list[str]) -> dict:
    """Wrap a row as CellData, stored verbatim like value_input_option=RAW."""
    return {"values": [{"userEnteredValue": {"stringValue": value}} for value in row]}


class _PendingWrites:
    """Writes buffered for one sheet during a transaction."""

    def __init__(self):
        self.inserts: dict[str, list[str]] = {}
        self.updates: dict[str, list[str]] = {}
        self.deletes: set[str] = set()

    def __bool__(self) -> bool:
        return bool(self.inserts or self.updates or self.deletes)

    def insert(self, row: list[str]) -> None:
        self.inserts[row[0]] = row

    def update(self, row: list[str]) -> None:
        if row[0] in self.inserts:
            self.inserts[row[0]] = row
        else:
            self.updates[row[0]] = row

    def delete(self, row_id: str) -> None:
        if self.inserts.pop(row_id, None) is not None:
            return
        self.updates.pop(row_id, None)
        self.deletes.add(row_id)

    def overlay(self, rows: list[list[str]]) -> list[list[str]]:
        """Apply buffered writes on top of rows read from the sheet."""
        merged = []
        for row in rows:
            if not row or not row[0] or row[0] in self.deletes:
                continue
            merged.append(self.updates.get(row[0], row))
        merged.extend(self.inserts.values())
        return merged


class GoogleSheetsLedgerStorage(LedgerStorageInterface):
    """
    Google Sheets implementation of ledger storage.

    Accounts and entries live in two worksheets, one record per row.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
        self._pending: ContextVar[Optional[dict[str, _PendingWrites]]] = ContextVar(
            f"sheets_pending_{id(self)}", default=None
        )

    # -------------------------------------------------------------------------
    # Row conversion
    # -------------------------------------------------------------------------

    def _account_to_row(self, account: Account) -> list[str]:
        return [
            str(account.id),
            account.owner_id,
            account.name,
            account.type.value,
            str(account.sort_order),
            str(account.is_active),
            account.created_at.isoformat(),
            account.updated_at.isoformat(),
        ]

    def _row_to_account(self, row: list) -> Account:
        safe_get = _safe_getter(row)
        return Account(
            id=UUID(safe_get(0)),
            owner_id=safe_get(1),
            name=safe_get(2),
            type=AccountType(safe_get(3)),
            sort_order=int(safe_get(4, "0")),
            is_active=safe_get(5, "True").lower() == "true",
            created_at=datetime.fromisoformat(safe_get(6)),
            updated_at=datetime.fromisoformat(safe_get(7)),
        )

    def _entry_to_row(self, entry: LedgerEntry) -> list[str]:
        return [
            str(entry.id),
            str(entry.account_id),
            str(entry.amount),
            entry.description,
            entry.tx_date.isoformat(),
            str(entry.posted_year),
            str(entry.posted_month),
            str(entry.installment_group_id) if entry.installment_group_id else "",
            str(entry.installment_index) if entry.installment_index is not None else "",
            str(entry.installment_total) if entry.installment_total is not None else "",
            str(entry.is_carry_over),
            str(entry.carry_from_year) if entry.carry_from_year is not None else "",
            str(entry.carry_from_month) if entry.carry_from_month is not None else "",
            str(entry.is_partially_paid),
            entry.created_at.isoformat(),
            entry.updated_at.isoformat(),
        ]

    def _row_to_entry(self, row: list) -> LedgerEntry:
        safe_get = _safe_getter(row)
        return LedgerEntry(
            id=UUID(safe_get(0)),
            account_id=UUID(safe_get(1)),
            amount=Decimal(safe_get(2)),
            description=safe_get(3),
            tx_date=date.fromisoformat(safe_get(4)),
            posted_year=int(safe_get(5)),
            posted_month=int(safe_get(6)),
            installment_group_id=UUID(safe_get(7)) if safe_get(7) else None,
            installment_index=_opt_int(safe_get(8)),
            installment_total=_opt_int(safe_get(9)),
            is_carry_over=safe_get(10).lower() == "true",
            carry_from_year=_opt_int(safe_get(11)),
            carry_from_month=_opt_int(safe_get(12)),
            is_partially_paid=safe_get(13).lower() == "true",
            created_at=datetime.fromisoformat(safe_get(14)),
            updated_at=datetime.fromisoformat(safe_get(15)),
        )

    # -------------------------------------------------------------------------
    # Sheet access
    # -------------------------------------------------------------------------

    def _sheet(self, name: str) -> gspread.Worksheet:
        if name == ACCOUNTS:
            return self._client.get_accounts_sheet()
        return self._client.get_entries_sheet()

    @read_retry
    def _fetch_rows(self, name: str) -> list[list[str]]:
        """All data rows of a sheet, header excluded."""
        try:
            return self._sheet(name).get_all_values()[1:]
        except ConnectionError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to read {name}: {e}")

    def _rows(self, name: str) -> list[list[str]]:
        """Rows as the current transaction sees them."""
        rows = self._fetch_rows(name)
        pending = self._pending.get()
        if pending is not None:
            return pending[name].overlay(rows)
        return [row for row in rows if row and row[0]]

    def _accounts(self) -> list[Account]:
        accounts = []
        for row in self._rows(ACCOUNTS):
            try:
                accounts.append(self._row_to_account(row))
            except Exception:
                continue  # Skip malformed rows
        return accounts

    def _entries(self) -> list[LedgerEntry]:
        entries = []
        for row in self._rows(ENTRIES):
            try:
                entries.append(self._row_to_entry(row))
            except Exception:
                continue  # Skip malformed rows
        return entries

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        if self._pending.get() is not None:
            yield
            return

        pending = {ACCOUNTS: _PendingWrites(), ENTRIES: _PendingWrites()}
        token = self._pending.set(pending)
        try:
            yield
        finally:
            self._pending.reset(token)
        # Only reached when the block did not raise
        self._commit(pending)

    def _commit(self, pending: dict[str, _PendingWrites]) -> None:
        """Send every buffered write as a single batchUpdate."""
        requests = []
        for name, writes in pending.items():
            if not writes:
                continue
            sheet = self._sheet(name)
            index_of = {}
            for idx, row in enumerate(self._fetch_rows(name), start=1):  # Row 0 is header
                if row and row[0]:
                    index_of[row[0]] = idx

            for row_id, row in writes.updates.items():
                if row_id not in index_of:
                    raise TransactionError(f"Row vanished before commit: {row_id}")
                idx = index_of[row_id]
                requests.append({
                    "updateCells": {
                        "range": {
                            "sheetId": sheet.id,
                            "startRowIndex": idx,
                            "endRowIndex": idx + 1,
                            "startColumnIndex": 0,
                            "endColumnIndex": len(row),
                        },
                        "rows": [_row_data(row)],
                        "fields": "userEnteredValue",
                    }
                })

            # Bottom-up so earlier deletes don't shift later indices
            doomed = sorted(
                (index_of[row_id] for row_id in writes.deletes if row_id in index_of),
                reverse=True,
            )
            for idx in doomed:
                requests.append({
                    "deleteDimension": {
                        "range": {
                            "sheetId": sheet.id,
                            "dimension": "ROWS",
                            "startIndex": idx,
                            "endIndex": idx + 1,
                        }
                    }
                })

            if writes.inserts:
                requests.append({
                    "appendCells": {
                        "sheetId": sheet.id,
                        "rows": [_row_data(row) for row in writes.inserts.values()],
                        "fields": "userEnteredValue",
                    }
                })

        if not requests:
            return

        try:
            self._client.get_spreadsheet().batch_update({"requests": requests})
        except Exception as e:
            raise TransactionError(f"Failed to commit {len(requests)} sheet changes: {e}")

    def _writes(self, name: str) -> _PendingWrites:
        pending = self._pending.get()
        if pending is None:
            raise TransactionError("Sheet writes must happen inside transaction()")
        return pending[name]

    # -------------------------------------------------------------------------
    # Accounts
    # -------------------------------------------------------------------------

    async def get_account(self, account_id: UUID) -> Optional[Account]:
        for account in self._accounts():
            if account.id == account_id:
                return account
        return None

    async def list_accounts(
        self,
        owner_id: str,
        active_only: bool = False,
        account_type: Optional[AccountType] = None,
    ) -> list[Account]:
        accounts = [
            a for a in self._accounts()
            if a.owner_id == owner_id
            and (not active_only or a.is_active)
            and (account_type is None or a.type == account_type)
        ]
        accounts.sort(key=lambda a: a.sort_order)
        return accounts

    async def max_sort_order(self, owner_id: str) -> Optional[int]:
        orders = [a.sort_order for a in self._accounts() if a.owner_id == owner_id]
        return max(orders) if orders else None

    async def insert_account(self, account: Account) -> Account:
        async with self.transaction():
            if await self.get_account(account.id) is not None:
                raise DuplicateError(f"Account already exists: {account.id}")
            self._writes(ACCOUNTS).insert(self._account_to_row(account))
        return account

    async def update_account(self, account: Account) -> Account:
        async with self.transaction():
            if await self.get_account(account.id) is None:
                raise NotFoundError(f"Account not found: {account.id}")
            self._writes(ACCOUNTS).update(self._account_to_row(account))
        return account

    async def delete_account(self, account_id: UUID) -> bool:
        async with self.transaction():
            if await self.get_account(account_id) is None:
                return False
            self._writes(ACCOUNTS).delete(str(account_id))
        return True

    # -------------------------------------------------------------------------
    # Ledger entries
    # -------------------------------------------------------------------------

    async def get_entry(self, entry_id: UUID) -> Optional[LedgerEntry]:
        for entry in self._entries():
            if entry.id == entry_id:
                return entry
        return None

    async def list_entries(self, account_ids=None, **filters) -> list[LedgerEntry]:
        entries = [
            e for e in self._entries()
            if entry_matches(e, account_ids=account_ids, **filters)
        ]
        entries.sort(key=entry_sort_key, reverse=True)
        return entries

    async def count_entries(self, account_id: UUID) -> int:
        return sum(1 for e in self._entries() if e.account_id == account_id)

    async def insert_entries(self, entries: list[LedgerEntry]) -> list[LedgerEntry]:
        async with self.transaction():
            existing = {e.id for e in self._entries()}
            ids = [e.id for e in entries]
            if len(set(ids)) != len(ids) or existing.intersection(ids):
                raise DuplicateError("Entry batch contains an existing or repeated ID")
            writes = self._writes(ENTRIES)
            for entry in entries:
                writes.insert(self._entry_to_row(entry))
        return entries

    async def update_entry(self, entry: LedgerEntry) -> LedgerEntry:
        async with self.transaction():
            if await self.get_entry(entry.id) is None:
                raise NotFoundError(f"Entry not found: {entry.id}")
            self._writes(ENTRIES).update(self._entry_to_row(entry))
        return entry

    async def delete_entry(self, entry_id: UUID) -> bool:
        async with self.transaction():
            if await self.get_entry(entry_id) is None:
                return False
            self._writes(ENTRIES).delete(str(entry_id))
        return True

    async def delete_entries_by_group(self, group_id: UUID) -> int:
        async with self.transaction():
            doomed = [e.id for e in self._entries() if e.installment_group_id == group_id]
            writes = self._writes(ENTRIES)
            for entry_id in doomed:
                writes.delete(str(entry_id))
        return len(doomed)


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        safe_get = _safe_getter(row)
        return AuditEvent(
            event_id=UUID(safe_get(0)),
            timestamp=datetime.fromisoformat(safe_get(1)),
            event_type=AuditEventType(safe_get(2)),
            severity=AuditSeverity(safe_get(3)),
            owner_id=safe_get(4) or None,
            entity_type=safe_get(5) or None,
            entity_id=UUID(safe_get(6)) if safe_get(6) else None,
            correlation_id=UUID(safe_get(7)) if safe_get(7) else None,
            description=safe_get(8),
            details=json.loads(safe_get(9)) if safe_get(9) else {},
            error_code=safe_get(10) or None,
            error_message=safe_get(11) or None,
        )

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event. Failures propagate to the AuditLogger."""
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            raise StorageError(f"Failed to write audit event: {e}")

    @read_retry
    def _all_events(self) -> list[AuditEvent]:
        try:
            all_rows = self._client.get_audit_sheet().get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

        events = []
        for row in all_rows:
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
        events = [e for e in self._all_events() if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        """Get events by entity."""
        events = [
            e for e in self._all_events()
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get recent events, newest first."""
        events = self._all_events()
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
