"""SQLite key-value store for TabSplit."""

import logging
import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from .exceptions import StorageUnavailableError
from .models import utc_now

logger = logging.getLogger(__name__)


def _timestamp(moment: datetime) -> str:
    """Fixed-width UTC ISO timestamp so stored values compare as text."""
    return moment.astimezone(UTC).isoformat(timespec="microseconds")


@dataclass(frozen=True)
class StoredRecord:
    """A value read from the store together with its write version."""

    key: str
    value: str
    version: int


class Database:
    """SQLite-backed key-value store with versioned writes and set membership.

    Every record carries a version number that is bumped on each write.
    ``put_record`` only succeeds if the caller saw the current version, which
    lets callers run read-modify-write cycles without losing updates.
    """

    def __init__(self, db_path: Path):
        """Initialize database connection."""
        self.db_path = db_path
        self._lock = threading.Lock()
        try:
            self.conn = sqlite3.connect(str(db_path), check_same_thread=False)
        except sqlite3.Error as e:
            raise StorageUnavailableError(f"Cannot open database {db_path}: {e}") from e
        self.conn.row_factory = sqlite3.Row
        self._init_schema()

    def _init_schema(self):
        """Initialize database schema."""
        with self._cursor() as cursor:
            # Versioned key-value records
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS records (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    version INTEGER NOT NULL,
                    expires_at TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """
            )

            # Set membership (e.g. tab ids per group)
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS set_members (
                    key TEXT NOT NULL,
                    member TEXT NOT NULL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    PRIMARY KEY (key, member)
                )
            """
            )

    @contextmanager
    def _cursor(self) -> Iterator[sqlite3.Cursor]:
        """Run statements under the connection lock and commit on success."""
        with self._lock:
            try:
                cursor = self.conn.cursor()
                yield cursor
                self.conn.commit()
            except sqlite3.Error as e:
                self.conn.rollback()
                raise StorageUnavailableError(f"Database error: {e}") from e

    def close(self):
        """Close database connection."""
        self.conn.close()

    # ========================================================================
    # Record operations
    # ========================================================================

    def get_record(self, key: str) -> StoredRecord | None:
        """Get a record by key, ignoring it if it has expired."""
        with self._cursor() as cursor:
            cursor.execute(
                "SELECT key, value, version, expires_at FROM records WHERE key = ?",
                (key,),
            )
            row = cursor.fetchone()

        if not row:
            return None

        if row["expires_at"] and datetime.fromisoformat(row["expires_at"]) <= utc_now():
            logger.debug(f"Record {key} expired")
            return None

        return StoredRecord(key=row["key"], value=row["value"], version=row["version"])

    def put_record(
        self,
        key: str,
        value: str,
        expected_version: int | None,
        expires_at: datetime | None = None,
    ) -> bool:
        """
        Write a record if nobody else wrote it since it was read.

        Args:
            key: Record key
            value: Serialized value
            expected_version: Version returned by ``get_record``, or None if the
                record was absent (or expired) when read
            expires_at: Optional expiry time for the record

        Returns:
            True if written, False on a version conflict
        """
        expires = _timestamp(expires_at) if expires_at else None
        now = _timestamp(utc_now())

        with self._cursor() as cursor:
            if expected_version is None:
                # Absent or expired rows may be replaced; live rows may not
                cursor.execute(
                    """
                    INSERT INTO records (key, value, version, expires_at, updated_at)
                    VALUES (?, ?, 1, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET
                        value = excluded.value,
                        version = records.version + 1,
                        expires_at = excluded.expires_at,
                        updated_at = excluded.updated_at
                    WHERE records.expires_at IS NOT NULL
                        AND records.expires_at <= excluded.updated_at
                    """,
                    (key, value, expires, now),
                )
            else:
                cursor.execute(
                    """
                    UPDATE records
                    SET value = ?, version = version + 1, expires_at = ?,
                        updated_at = ?
                    WHERE key = ? AND version = ?
                    """,
                    (value, expires, now, key, expected_version),
                )
            written = cursor.rowcount == 1

        if not written:
            logger.debug(f"Version conflict writing {key}")
        return written

    def delete_record(self, key: str):
        """Delete a record unconditionally."""
        with self._cursor() as cursor:
            cursor.execute("DELETE FROM records WHERE key = ?", (key,))

    def purge_expired(self) -> int:
        """Delete all expired records and return how many were removed."""
        with self._cursor() as cursor:
            cursor.execute(
                "DELETE FROM records WHERE expires_at IS NOT NULL AND expires_at <= ?",
                (_timestamp(utc_now()),),
            )
            removed = cursor.rowcount

        if removed:
            logger.info(f"Purged {removed} expired records")
        return removed

    # ========================================================================
    # Set operations
    # ========================================================================

    def add_to_set(self, key: str, member: str):
        """Add a member to a set (no-op if already present)."""
        with self._cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO set_members (key, member, created_at)
                VALUES (?, ?, ?)
                ON CONFLICT(key, member) DO NOTHING
                """,
                (key, member, _timestamp(utc_now())),
            )

    def get_set_members(self, key: str) -> list[str]:
        """Get all members of a set in insertion order."""
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT member FROM set_members
                WHERE key = ?
                ORDER BY created_at, rowid
                """,
                (key,),
            )
            return [str(row["member"]) for row in cursor.fetchall()]
