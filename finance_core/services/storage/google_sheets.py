"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is offered as a persistent backend because:
1. Users can view their accounts and ledger directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

TRADEOFFS:
- Not suitable for high-volume data (we're fine for personal use)
- No transactions. Batch balance writes check every version first, then
  write row by row, and restore the rows already written if a later
  write fails (compensating action).
- No compare-and-set either: the version check and the row write are two
  API calls. The backend is therefore SINGLE-WRITER. Each database holds
  a lease row in its own worksheet and only the lease holder may write;
  inside the holder, every write runs under one asyncio.Lock, so
  check-then-write cannot interleave. A second process (the auto-save
  worker next to the app, say) gets WriterLeaseError until the lease
  lapses writer_lease_seconds after the holder's last write.
- Limited query capabilities (we filter in Python)

Each collection is one worksheet with one document per row:
[id, owner_id, version, updated_at, document_json]
"""

import asyncio
import json
from datetime import datetime, timedelta
from typing import Generic, Optional, Type
from uuid import UUID, uuid4

import gspread
from gspread.utils import rowcol_to_a1
import structlog
from google.oauth2.service_account import Credentials
from tenacity import (
    retry,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from finance_core.config import get_settings
from finance_core.models.audit import AuditEvent, AuditEventType, AuditSeverity
from finance_core.models.base import utc_now
from finance_core.models.ledger import Account, Category, Transaction
from finance_core.models.planning import Budget, Goal
from finance_core.services.storage.documents import (
    DocumentAccountStorage,
    DocumentBudgetStorage,
    DocumentCategoryStorage,
    DocumentCollection,
    DocumentGoalStorage,
    DocumentTransactionStorage,
    T,
)
from finance_core.services.storage.interface import (
    AuditStorageInterface,
    ConcurrencyError,
    ConnectionError,
    DuplicateError,
    NotFoundError,
    StorageError,
    WriterLeaseError,
)

logger = structlog.get_logger(__name__)


DOCUMENT_COLUMNS = [
    "id",
    "owner_id",
    "version",
    "updated_at",
    "document_json",
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
    "error_message",
    "is_user_action",
]

WRITER_LEASE_COLUMNS = ["writer_id", "expires_at"]


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets

    @property
    def settings(self):
        return self._settings

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

    def get_worksheet(self, title: str, columns: list[str]) -> gspread.Worksheet:
        """Get or create a worksheet with the given header row."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=1000,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet


class WriterLease:
    """
    Single-writer guard for one spreadsheet.

    The lease is one row [writer_id, expires_at]. A writer claims it unless
    another writer holds it unexpired, then re-reads it: if another process
    claimed it in the same instant, the re-read shows their ID and this
    writer backs off.
    """

    def __init__(self, client: GoogleSheetsClient, sheet_name: str, ttl_seconds: int):
        self.writer_id = str(uuid4())
        self.lock = asyncio.Lock()
        self._client = client
        self._sheet_name = sheet_name
        self._ttl = timedelta(seconds=ttl_seconds)

    def _sheet(self) -> gspread.Worksheet:
        return self._client.get_worksheet(self._sheet_name, WRITER_LEASE_COLUMNS)

    def _read(self, sheet: gspread.Worksheet) -> tuple[Optional[str], Optional[datetime]]:
        rows = sheet.get_all_values()
        if len(rows) < 2 or len(rows[1]) < 2 or not rows[1][0]:
            return None, None
        return rows[1][0], datetime.fromisoformat(rows[1][1])

    def acquire(self) -> None:
        """
        Make sure this writer holds the lease. Call under self.lock.

        Raises:
            WriterLeaseError: If another writer holds an unexpired lease
        """
        sheet = self._sheet()
        holder, expires_at = self._read(sheet)
        now = utc_now()

        if holder == self.writer_id and expires_at - now > self._ttl / 2:
            return
        if holder is not None and holder != self.writer_id and expires_at > now:
            raise WriterLeaseError(holder, expires_at)

        sheet.update(
            range_name="A2:B2",
            values=[[self.writer_id, (now + self._ttl).isoformat()]],
            value_input_option="RAW",
        )
        holder, expires_at = self._read(sheet)
        if holder != self.writer_id:
            raise WriterLeaseError(holder, expires_at)
        logger.debug("sheets_writer_lease_renewed", writer_id=self.writer_id)


class GoogleSheetsCollection(DocumentCollection[T], Generic[T]):
    """
    A document collection stored in one worksheet.

    Every method re-reads the sheet: another process may have written
    before this one took the lease over. Writes hold the database lease.
    """

    def __init__(
        self,
        client: GoogleSheetsClient,
        sheet_name: str,
        model: Type[T],
        lease: WriterLease,
    ):
        self._client = client
        self._sheet_name = sheet_name
        self._model = model
        self._lease = lease

    def _sheet(self) -> gspread.Worksheet:
        return self._client.get_worksheet(self._sheet_name, DOCUMENT_COLUMNS)

    def _document_to_row(self, document: T) -> list:
        """Convert a document to a spreadsheet row."""
        owner_id = getattr(document, "owner_id", None)
        return [
            str(document.id),
            str(owner_id) if owner_id else "",
            str(document.version),
            document.updated_at.isoformat(),
            document.model_dump_json(),
        ]

    def _row_to_document(self, row: list) -> T:
        """Convert a spreadsheet row to a document."""
        return self._model.model_validate_json(row[4])

    def _find(self, all_rows: list[list], document_id: UUID) -> tuple[int, Optional[list]]:
        """Return (sheet row index, row) for a document, (0, None) if absent."""
        for idx, row in enumerate(all_rows[1:], start=2):  # Row 1 is header
            if row and row[0] == str(document_id):
                return idx, row
        return 0, None

    def _write_row(self, sheet: gspread.Worksheet, idx: int, row: list) -> None:
        # One call per row, so a reader never sees half a document
        sheet.update(
            range_name=f"A{idx}:{rowcol_to_a1(idx, len(row))}",
            values=[row],
            value_input_option="RAW",
        )

    def _next_version(self, document: T) -> T:
        return document.model_copy(update={
            "version": document.version + 1,
            "updated_at": utc_now(),
        })

    def _check_version(self, all_rows: list[list], document_id: UUID, version: int) -> int:
        idx, row = self._find(all_rows, document_id)
        if row is None:
            raise NotFoundError(f"{self._model.__name__} not found: {document_id}")
        stored_version = int(row[2])
        if stored_version != version:
            raise ConcurrencyError(document_id, version, stored_version)
        return idx

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_not_exception_type((DuplicateError, WriterLeaseError)),
        reraise=True,
    )
    async def insert(self, document: T) -> T:
        async with self._lease.lock:
            try:
                self._lease.acquire()
                sheet = self._sheet()
                _, existing = self._find(sheet.get_all_values(), document.id)
                if existing is not None:
                    raise DuplicateError(f"{self._model.__name__} already exists: {document.id}")
                stored = document.model_copy(update={"version": 1})
                sheet.append_row(self._document_to_row(stored), value_input_option="RAW")
                return stored
            except (DuplicateError, WriterLeaseError):
                raise
            except Exception as e:
                raise StorageError(f"Failed to save {self._model.__name__}: {e}")

    async def get(self, document_id: UUID) -> Optional[T]:
        try:
            _, row = self._find(self._sheet().get_all_values(), document_id)
            return self._row_to_document(row) if row else None
        except Exception as e:
            raise StorageError(f"Failed to get {self._model.__name__}: {e}")

    async def replace(self, document: T) -> T:
        async with self._lease.lock:
            try:
                self._lease.acquire()
                sheet = self._sheet()
                idx = self._check_version(sheet.get_all_values(), document.id, document.version)
                stored = self._next_version(document)
                self._write_row(sheet, idx, self._document_to_row(stored))
                return stored
            except (NotFoundError, ConcurrencyError, WriterLeaseError):
                raise
            except Exception as e:
                raise StorageError(f"Failed to update {self._model.__name__}: {e}")

    async def replace_many(self, documents: list[T]) -> list[T]:
        async with self._lease.lock:
            self._lease.acquire()
            sheet = self._sheet()
            all_rows = sheet.get_all_values()

            # Check every version before writing anything
            targets = [
                (self._check_version(all_rows, doc.id, doc.version), doc)
                for doc in documents
            ]

            written: list[tuple[int, list]] = []
            stored_documents = []
            try:
                for idx, document in targets:
                    stored = self._next_version(document)
                    self._write_row(sheet, idx, self._document_to_row(stored))
                    written.append((idx, all_rows[idx - 1]))
                    stored_documents.append(stored)
            except Exception as e:
                # Compensate: put back the rows we already overwrote
                for idx, original in written:
                    try:
                        self._write_row(sheet, idx, original)
                    except Exception as restore_error:
                        logger.error(
                            "sheets_compensation_failed",
                            sheet=self._sheet_name,
                            row=idx,
                            error=str(restore_error),
                        )
                raise StorageError(f"Failed to update {self._model.__name__} batch: {e}")

            return stored_documents

    async def delete(self, document_id: UUID, expected_version: Optional[int] = None) -> bool:
        async with self._lease.lock:
            try:
                self._lease.acquire()
                sheet = self._sheet()
                all_rows = sheet.get_all_values()
                idx, row = self._find(all_rows, document_id)
                if row is None:
                    return False
                if expected_version is not None:
                    self._check_version(all_rows, document_id, expected_version)
                sheet.delete_rows(idx)
                return True
            except (ConcurrencyError, WriterLeaseError):
                raise
            except Exception as e:
                raise StorageError(f"Failed to delete {self._model.__name__}: {e}")

    async def all(self) -> list[T]:
        try:
            all_rows = self._sheet().get_all_values()[1:]  # Skip header
        except Exception as e:
            raise StorageError(f"Failed to list {self._model.__name__}: {e}")

        documents = []
        for row in all_rows:
            if not row or not row[0]:  # Skip empty rows
                continue
            try:
                documents.append(self._row_to_document(row))
            except ValueError:
                logger.warning("sheets_malformed_row", sheet=self._sheet_name, id=row[0])
        return documents


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _sheet(self) -> gspread.Worksheet:
        return self._client.get_worksheet(
            self._client.settings.audit_sheet_name, AUDIT_COLUMNS
        )

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        return AuditEvent(
            event_id=UUID(safe_get(0)),
            timestamp=datetime.fromisoformat(safe_get(1)),
            event_type=AuditEventType(safe_get(2)),
            severity=AuditSeverity(safe_get(3)),
            owner_id=UUID(safe_get(4)) if safe_get(4) else None,
            entity_type=safe_get(5) or None,
            entity_id=UUID(safe_get(6)) if safe_get(6) else None,
            correlation_id=UUID(safe_get(7)) if safe_get(7) else None,
            description=safe_get(8),
            details=json.loads(safe_get(9)) if safe_get(9) else {},
            error_message=safe_get(10) or None,
            is_user_action=safe_get(11).lower() == "true",
        )

    def _load_events(self) -> list[AuditEvent]:
        events = []
        for row in self._sheet().get_all_values()[1:]:
            if not row or not row[0]:
                continue
            try:
                events.append(self._row_to_event(row))
            except ValueError:
                continue
        return events

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            self._sheet().append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            # Audit logging must not break the main flow
            logger.warning("audit_sheet_write_failed", error=str(e))
            return False

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        try:
            events = [e for e in self._load_events() if e.correlation_id == correlation_id]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        try:
            events = [
                e for e in self._load_events()
                if e.entity_type == entity_type and e.entity_id == entity_id
            ]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        try:
            events = self._load_events()
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]


class GoogleSheetsDatabase:
    """
    All entity storages backed by one spreadsheet.

    Collections share one WriterLease: only one database instance, in one
    process, writes to a spreadsheet at a time.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self.client = client or GoogleSheetsClient()
        names = self.client.settings
        self.lease = WriterLease(
            self.client, names.writer_lease_sheet_name, names.writer_lease_seconds
        )

        def collection(sheet_name, model):
            return GoogleSheetsCollection(self.client, sheet_name, model, self.lease)

        self.accounts = DocumentAccountStorage(collection(names.accounts_sheet_name, Account))
        self.transactions = DocumentTransactionStorage(
            collection(names.transactions_sheet_name, Transaction)
        )
        self.categories = DocumentCategoryStorage(
            collection(names.categories_sheet_name, Category)
        )
        self.budgets = DocumentBudgetStorage(collection(names.budgets_sheet_name, Budget))
        self.goals = DocumentGoalStorage(collection(names.goals_sheet_name, Goal))
        self.audit = GoogleSheetsAuditStorage(self.client)
