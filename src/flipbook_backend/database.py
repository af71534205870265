"""
SQLite database for persistent magazine storage.

One row per magazine. Pages and display config are stored as JSON columns;
``share_id`` carries a UNIQUE constraint so share tokens can never collide,
even when several uploads create records at the same time.
"""

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .errors import DuplicateRecordError, InvalidStatusTransition
from .models import DisplayConfig, MagazineRecord, MagazineStatus, PageImage


# Default database path
DEFAULT_DB_PATH = Path("data/flipbook.db")

# Columns the owner or the pipeline may change with update_magazine
UPDATABLE_COLUMNS = frozenset({"name", "config", "total_pages", "pdf_url", "pdf_public_id"})


def _ensure_db_dir(db_path: Path) -> None:
    """Ensure the database directory exists."""
    db_path.parent.mkdir(parents=True, exist_ok=True)


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


def _serialize_datetime(dt: datetime) -> Optional[str]:
    """Serialize datetime to ISO format string."""
    return dt.isoformat() if dt else None


def _deserialize_datetime(s: str) -> Optional[datetime]:
    """Deserialize ISO format string to datetime."""
    if not s:
        return None
    return datetime.fromisoformat(s)


def _serialize_value(column: str, value: Any) -> Any:
    if column == "config":
        return json.dumps(value.model_dump())
    if column == "pages":
        return json.dumps([page.model_dump() for page in value])
    if isinstance(value, MagazineStatus):
        return value.value
    return value


class MagazineDatabase:
    """
    SQLite database for magazine persistence.

    Thread-safe: every call opens its own connection and SQLite serializes
    writers in WAL mode.
    """

    def __init__(self, db_path: Path = DEFAULT_DB_PATH):
        self.db_path = db_path
        _ensure_db_dir(db_path)
        self._init_db()

    @contextmanager
    def _get_connection(self):
        """Get a database connection with proper settings."""
        conn = sqlite3.connect(str(self.db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_db(self) -> None:
        """Initialize database schema."""
        with self._get_connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS magazines (
                    id TEXT PRIMARY KEY,
                    share_id TEXT NOT NULL UNIQUE,
                    name TEXT NOT NULL,
                    pdf_url TEXT,
                    pdf_public_id TEXT,
                    pages TEXT NOT NULL DEFAULT '[]',
                    total_pages INTEGER NOT NULL DEFAULT 0,
                    config TEXT NOT NULL,
                    status TEXT NOT NULL,
                    error_message TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)

            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_magazines_created_at
                ON magazines(created_at DESC)
            """)

            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_magazines_status
                ON magazines(status)
            """)

    def create_magazine(self, record: MagazineRecord) -> MagazineRecord:
        """
        Insert a new magazine.

        Raises:
            DuplicateRecordError: if the id or share id already exists
        """
        try:
            with self._get_connection() as conn:
                conn.execute("""
                    INSERT INTO magazines (
                        id, share_id, name, pdf_url, pdf_public_id, pages,
                        total_pages, config, status, error_message,
                        created_at, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """, (
                    record.id,
                    record.share_id,
                    record.name,
                    record.pdf_url,
                    record.pdf_public_id,
                    _serialize_value("pages", record.pages),
                    record.total_pages,
                    _serialize_value("config", record.config),
                    record.status.value,
                    record.error_message,
                    _serialize_datetime(record.created_at),
                    _serialize_datetime(record.updated_at),
                ))
        except sqlite3.IntegrityError as exc:
            raise DuplicateRecordError(str(exc)) from exc
        return record

    def get_magazine(self, magazine_id: str) -> Optional[MagazineRecord]:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM magazines WHERE id = ?", (magazine_id,)
            ).fetchone()
            return self._row_to_record(row) if row else None

    def get_by_share_id(self, share_id: str) -> Optional[MagazineRecord]:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM magazines WHERE share_id = ?", (share_id,)
            ).fetchone()
            return self._row_to_record(row) if row else None

    def update_magazine(self, magazine_id: str, **fields: Any) -> Optional[MagazineRecord]:
        """
        Update plain columns and refresh ``updated_at``.

        Status and pages are not accepted here; they change only through
        the status transitions below.

        Returns:
            The updated record, or None if it does not exist
        """
        unknown = set(fields) - UPDATABLE_COLUMNS
        if unknown:
            raise ValueError(f"Columns not updatable: {', '.join(sorted(unknown))}")

        updates = ["updated_at = ?"]
        values: List[Any] = [_serialize_datetime(_utcnow())]
        for column, value in fields.items():
            updates.append(f"{column} = ?")
            values.append(_serialize_value(column, value))
        values.append(magazine_id)

        with self._get_connection() as conn:
            cursor = conn.execute(
                f"UPDATE magazines SET {', '.join(updates)} WHERE id = ?",
                values,
            )
            if cursor.rowcount == 0:
                return None
            row = conn.execute(
                "SELECT * FROM magazines WHERE id = ?", (magazine_id,)
            ).fetchone()
            return self._row_to_record(row)

    def mark_ready(self, magazine_id: str, pages: Sequence[PageImage]) -> MagazineRecord:
        """Move a processing magazine to ready with its pages."""
        return self._transition(
            magazine_id,
            MagazineStatus.READY,
            pages=list(pages),
            total_pages=len(pages),
            error_message=None,
        )

    def mark_failed(self, magazine_id: str, error_message: str) -> MagazineRecord:
        """Move a processing magazine to failed, clearing any pages."""
        return self._transition(
            magazine_id,
            MagazineStatus.FAILED,
            pages=[],
            error_message=error_message,
        )

    def _transition(self, magazine_id: str, status: MagazineStatus, **fields: Any) -> MagazineRecord:
        """
        Apply a terminal status change.

        The update only matches rows still in ``processing``, so terminal
        states can never be left or re-entered.

        Raises:
            InvalidStatusTransition: if the record is missing or already terminal
        """
        updates = ["status = ?", "updated_at = ?"]
        values: List[Any] = [status.value, _serialize_datetime(_utcnow())]
        for column, value in fields.items():
            updates.append(f"{column} = ?")
            values.append(_serialize_value(column, value))
        values.extend([magazine_id, MagazineStatus.PROCESSING.value])

        with self._get_connection() as conn:
            cursor = conn.execute(
                f"UPDATE magazines SET {', '.join(updates)} WHERE id = ? AND status = ?",
                values,
            )
            if cursor.rowcount == 0:
                row = conn.execute(
                    "SELECT status FROM magazines WHERE id = ?", (magazine_id,)
                ).fetchone()
                current = row["status"] if row else "missing"
                raise InvalidStatusTransition(
                    f"Cannot move magazine {magazine_id} from {current} to {status.value}"
                )
            row = conn.execute(
                "SELECT * FROM magazines WHERE id = ?", (magazine_id,)
            ).fetchone()
            return self._row_to_record(row)

    def delete_magazine(self, magazine_id: str) -> bool:
        """
        Delete a magazine record.

        Returns:
            True if deleted, False if not found
        """
        with self._get_connection() as conn:
            cursor = conn.execute("DELETE FROM magazines WHERE id = ?", (magazine_id,))
            return cursor.rowcount > 0

    def list_ready(self, offset: int, limit: int) -> Tuple[List[MagazineRecord], int]:
        """
        List ready magazines, newest first.

        Returns:
            (records for the requested window, total number of ready magazines)
        """
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM magazines WHERE status = ? "
                "ORDER BY created_at DESC LIMIT ? OFFSET ?",
                (MagazineStatus.READY.value, limit, offset),
            ).fetchall()
            total = conn.execute(
                "SELECT COUNT(*) FROM magazines WHERE status = ?",
                (MagazineStatus.READY.value,),
            ).fetchone()[0]
            return [self._row_to_record(row) for row in rows], total

    def count_magazines(self) -> int:
        with self._get_connection() as conn:
            return conn.execute("SELECT COUNT(*) FROM magazines").fetchone()[0]

    def _row_to_record(self, row: sqlite3.Row) -> MagazineRecord:
        """Convert a database row to a MagazineRecord."""
        data: Dict[str, Any] = {
            "id": row["id"],
            "share_id": row["share_id"],
            "name": row["name"],
            "pdf_url": row["pdf_url"],
            "pdf_public_id": row["pdf_public_id"],
            "pages": json.loads(row["pages"] or "[]"),
            "total_pages": row["total_pages"],
            "config": DisplayConfig.model_validate(json.loads(row["config"])),
            "status": MagazineStatus(row["status"]),
            "error_message": row["error_message"],
            "created_at": _deserialize_datetime(row["created_at"]),
            "updated_at": _deserialize_datetime(row["updated_at"]),
        }
        return MagazineRecord.model_validate(data)
