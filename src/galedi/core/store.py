"""
Record store for logistics records.

Automatically creates the galedi schema, sequence and table if they don't
exist. De-duplication is enforced by the database itself:
``pending_fingerprint`` carries the content fingerprint while a record is not
yet delivered and is cleared on delivery, and ``UNIQUE (partner_id,
pending_fingerprint)`` rejects a second pending copy of the same line. NULLs
never collide, so delivered history does not block re-ingestion.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date, datetime, time
from enum import Enum
from typing import Any

import ibis

from galedi.config.settings import DEFAULT_BATCH_SIZE, StoreConfig
from galedi.connections.base import BaseConnection
from galedi.connections.manager import create_store_connection
from galedi.core.records import ParsedRecord, PendingRecord, RecordValidationError, parse_fields
from galedi.exceptions import StoreConnectionError, StoreError
from galedi.utils.logging import get_logger

logger = get_logger("galedi.store")

SCHEMA_NAME = "galedi"
TABLE_NAME = f"{SCHEMA_NAME}.le_records"
SEQUENCE_NAME = f"{SCHEMA_NAME}.le_records_id_seq"

_CONNECTIVITY_ERRORS = ("OperationalError", "InterfaceError", "ConnectionException", "IOException")


def _escape_sql_string(value: str) -> str:
    """Escape single quotes for SQL strings."""
    return value.replace("'", "''")


def _sql_value(value: Any) -> str:
    """Convert Python value to SQL literal."""
    if value is None:
        return "NULL"
    # bool before int: bool is a subclass of int
    elif isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    elif isinstance(value, int):
        return str(value)
    elif isinstance(value, datetime):
        return f"TIMESTAMP '{value.isoformat(sep=' ')}'"
    elif isinstance(value, date):
        return f"DATE '{value.isoformat()}'"
    elif isinstance(value, time):
        return f"TIME '{value.strftime('%H:%M:%S')}'"
    else:
        return f"'{_escape_sql_string(str(value))}'"


def _is_unique_violation(exc: BaseException) -> bool:
    """Backend-neutral check for a unique constraint violation (DuckDB or psycopg)."""
    name = type(exc).__name__
    if name == "UniqueViolation":
        return True
    if name in ("ConstraintException", "IntegrityError"):
        text = str(exc).lower()
        return "duplicate" in text or "unique" in text
    return False


def _is_connectivity_error(exc: BaseException) -> bool:
    return type(exc).__name__ in _CONNECTIVITY_ERRORS or isinstance(exc, ConnectionError)


class InsertOutcome(str, Enum):
    INSERTED = "inserted"
    DUPLICATE_REJECTED = "duplicate_rejected"
    VALIDATION_FAILED = "validation_failed"


@dataclass(frozen=True)
class InsertResult:
    outcome: InsertOutcome
    record_id: int | None = None
    fingerprint: str | None = None
    reason: str | None = None

    @property
    def inserted(self) -> bool:
        return self.outcome is InsertOutcome.INSERTED


class RecordStore:
    """Persists logistics records for all partners."""

    def __init__(self, config: StoreConfig, connection: BaseConnection | None = None):
        """
        Initialize record store.

        Args:
            config: Store configuration
            connection: Pre-built connection wrapper (default: built from config)
        """
        self.config = config
        self.batch_size = config.batch_size or DEFAULT_BATCH_SIZE
        self._conn_wrapper = connection or create_store_connection(config)
        self._connection: ibis.BaseBackend | None = None
        self._initialized = False
        # One backend handle is shared by the ingest and export workers
        self._lock = threading.RLock()

    # --- plumbing ---------------------------------------------------------

    def _get_connection(self) -> ibis.BaseBackend:
        if self._connection is None:
            self._connection = self._conn_wrapper.connection
        if not self._initialized:
            self._initialize_schema(self._connection)
        return self._connection

    def _initialize_schema(self, conn: ibis.BaseBackend) -> None:
        """Create galedi schema, sequence and records table if they don't exist."""
        for statement in (
            f"CREATE SCHEMA IF NOT EXISTS {SCHEMA_NAME}",
            f"CREATE SEQUENCE IF NOT EXISTS {SEQUENCE_NAME} START 1",
            f"""
            CREATE TABLE IF NOT EXISTS {TABLE_NAME} (
                id BIGINT PRIMARY KEY DEFAULT nextval('{SEQUENCE_NAME}'),
                partner_id VARCHAR NOT NULL,
                le BIGINT NOT NULL,
                planned_destination VARCHAR NOT NULL,
                actual_destination VARCHAR NOT NULL,
                status INTEGER NOT NULL,
                record_date DATE NOT NULL,
                record_time TIME NOT NULL,
                content_fingerprint VARCHAR NOT NULL,
                pending_fingerprint VARCHAR,       -- = content_fingerprint until delivered, then NULL
                delivered BOOLEAN NOT NULL DEFAULT FALSE,
                inserted_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
                delivered_at TIMESTAMP,
                UNIQUE (partner_id, pending_fingerprint)
            )
            """,
        ):
            self._execute(conn, statement)

        self._initialized = True
        logger.debug(f"Record store initialized ({TABLE_NAME})")

    def _execute(self, conn: ibis.BaseBackend, query: str, fetch: bool = False) -> list[tuple]:
        """
        Run one statement through the backend's ``raw_sql``.

        DuckDB's ``raw_sql`` hands back the native connection itself, which must
        stay open; other backends return a cursor that is closed here.
        """
        try:
            cursor = conn.raw_sql(query)
        except Exception:
            _rollback(conn)
            raise
        try:
            rows = cursor.fetchall() if fetch else []
        finally:
            if cursor is not getattr(conn, "con", None) and hasattr(cursor, "close"):
                cursor.close()
        _commit(conn)
        return rows

    def _run(self, query: str, *, fetch: bool = False, action: str) -> list[tuple]:
        """Execute with the store lock held, mapping backend failures onto StoreError."""
        with self._lock:
            try:
                conn = self._get_connection()
                return self._execute(conn, query, fetch=fetch)
            except StoreError:
                raise
            except Exception as e:
                if _is_unique_violation(e):
                    raise
                if _is_connectivity_error(e):
                    self._drop_connection()
                    raise StoreConnectionError(f"Store unavailable during {action}: {e}") from e
                raise StoreError(f"Store failure during {action}: {e}") from e

    def initialize(self) -> None:
        """Open the backend and make sure the schema exists."""
        with self._lock:
            try:
                self._get_connection()
            except StoreError:
                raise
            except Exception as e:
                raise StoreConnectionError(f"Cannot initialize record store: {e}") from e

    def _drop_connection(self) -> None:
        self._conn_wrapper.reset()
        self._connection = None
        self._initialized = False

    def close(self) -> None:
        with self._lock:
            self._conn_wrapper.close()
            self._connection = None
            self._initialized = False

    # --- operations -------------------------------------------------------

    def insert(self, partner_id: str, raw_fields: Sequence[str]) -> InsertResult:
        """
        Validate and persist one record.

        Validation failures and duplicates are outcomes, not exceptions; only
        store infrastructure failures raise.

        Raises:
            StoreError: If the store cannot be reached or the statement fails
        """
        try:
            record = parse_fields(tuple(raw_fields))
        except RecordValidationError as e:
            return InsertResult(outcome=InsertOutcome.VALIDATION_FAILED, reason=str(e))

        return self.insert_parsed(partner_id, record)

    def insert_parsed(self, partner_id: str, record: ParsedRecord) -> InsertResult:
        fingerprint = record.fingerprint
        values = ", ".join(
            _sql_value(v)
            for v in (
                partner_id,
                record.le,
                record.planned_destination,
                record.actual_destination,
                record.status,
                record.record_date,
                record.record_time,
                fingerprint,
                fingerprint,
            )
        )
        query = (
            f"INSERT INTO {TABLE_NAME} "
            f"(partner_id, le, planned_destination, actual_destination, status, record_date, record_time, "
            f"content_fingerprint, pending_fingerprint) "
            f"VALUES ({values}) RETURNING id"
        )
        try:
            rows = self._run(query, fetch=True, action=f"insert for {partner_id}")
        except Exception as e:
            if _is_unique_violation(e):
                return InsertResult(
                    outcome=InsertOutcome.DUPLICATE_REJECTED,
                    fingerprint=fingerprint,
                    reason="identical record is already pending",
                )
            raise

        record_id = int(rows[0][0]) if rows else None
        return InsertResult(outcome=InsertOutcome.INSERTED, record_id=record_id, fingerprint=fingerprint)

    def read_pending(self, partner_id: str, limit: int | None = None) -> list[PendingRecord]:
        """
        Oldest pending records for a partner, at most ``batch_size`` of them.
        """
        batch = self.batch_size if limit is None else max(0, min(int(limit), self.batch_size))
        query = (
            f"SELECT id, le, planned_destination, actual_destination, status, record_date, record_time "
            f"FROM {TABLE_NAME} "
            f"WHERE partner_id = {_sql_value(partner_id)} AND delivered = FALSE "
            f"ORDER BY inserted_at ASC, id ASC "
            f"LIMIT {batch}"
        )
        rows = self._run(query, fetch=True, action=f"read_pending for {partner_id}")
        return [
            PendingRecord(
                record_id=int(row[0]),
                le=int(row[1]),
                planned_destination=str(row[2]),
                actual_destination=str(row[3]),
                status=int(row[4]),
                record_date=_as_date(row[5]),
                record_time=_as_time(row[6]),
            )
            for row in rows
        ]

    def mark_delivered(self, partner_id: str, record_ids: Iterable[int]) -> int:
        """
        Flag the given pending records as delivered.

        Returns:
            Number of rows that changed (already delivered ids are not counted)
        """
        ids = sorted({int(i) for i in record_ids})
        if not ids:
            return 0
        id_list = ", ".join(str(i) for i in ids)
        query = (
            f"UPDATE {TABLE_NAME} "
            f"SET delivered = TRUE, pending_fingerprint = NULL, delivered_at = CURRENT_TIMESTAMP "
            f"WHERE partner_id = {_sql_value(partner_id)} AND id IN ({id_list}) AND delivered = FALSE "
            f"RETURNING id"
        )
        rows = self._run(query, fetch=True, action=f"mark_delivered for {partner_id}")
        return len(rows)

    def pending_count(self, partner_id: str) -> int:
        query = f"SELECT COUNT(*) FROM {TABLE_NAME} WHERE partner_id = {_sql_value(partner_id)} AND delivered = FALSE"
        rows = self._run(query, fetch=True, action=f"pending_count for {partner_id}")
        return int(rows[0][0]) if rows else 0

    def get_record(self, record_id: int) -> dict[str, Any] | None:
        """Full row as a dict, or None."""
        columns = (
            "id",
            "partner_id",
            "le",
            "planned_destination",
            "actual_destination",
            "status",
            "record_date",
            "record_time",
            "content_fingerprint",
            "delivered",
            "inserted_at",
            "delivered_at",
        )
        query = f"SELECT {', '.join(columns)} FROM {TABLE_NAME} WHERE id = {int(record_id)}"
        rows = self._run(query, fetch=True, action=f"get_record {record_id}")
        if not rows:
            return None
        return dict(zip(columns, rows[0], strict=True))


def _as_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value))


def _as_time(value: Any) -> time:
    if isinstance(value, time):
        return value
    if hasattr(value, "total_seconds"):
        # Some drivers hand TIME back as a timedelta
        seconds = int(value.total_seconds())
        return time(seconds // 3600, (seconds % 3600) // 60, seconds % 60)
    return time.fromisoformat(str(value))


def _commit(conn: ibis.BaseBackend) -> None:
    native = getattr(conn, "con", None)
    if native is not None and getattr(native, "autocommit", True) is False:
        native.commit()


def _rollback(conn: ibis.BaseBackend) -> None:
    native = getattr(conn, "con", None)
    if native is not None and getattr(native, "autocommit", True) is False:
        try:
            native.rollback()
        except Exception as e:
            logger.debug(f"Rollback failed: {e}")
