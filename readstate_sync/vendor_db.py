"""
Vendor Database - SQLite access to the e-reader's central progress database
"""

import logging
import os
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional

from readstate_sync.exceptions import StoreUnavailable

DEFAULT_DB_TIMEOUT = 5.0


class VendorDatabase:
    """SQLite-backed vendor store: one progress row per book plus its chapter list"""

    def __init__(self, db_path: str, timeout: float = DEFAULT_DB_TIMEOUT):
        self.db_path = db_path
        self.timeout = timeout
        self.logger = logging.getLogger(__name__)
        # Single in-flight writer; the vendor's own processes may hold transient locks
        self._write_lock = threading.Lock()
        self.logger.debug(f"VendorDatabase: {self.db_path} (absolute: {os.path.abspath(self.db_path)}, timeout: {timeout}s)")

    @contextmanager
    def _connection(self, create: bool = False) -> Iterator[sqlite3.Connection]:
        """Open a connection with a bounded busy timeout, closing it afterwards"""
        mode = "rwc" if create else "rw"
        try:
            uri = f"{Path(self.db_path).absolute().as_uri()}?mode={mode}"
            conn = sqlite3.connect(uri, uri=True, timeout=self.timeout)
        except sqlite3.OperationalError as e:
            raise StoreUnavailable(f"Cannot open vendor database {self.db_path}: {str(e)}")
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        except sqlite3.OperationalError as e:
            conn.rollback()
            raise StoreUnavailable(f"Vendor database error: {str(e)}")
        finally:
            conn.close()

    @contextmanager
    def _write_locked(self) -> Iterator[None]:
        """Hold the single-writer lock, giving up after the database timeout"""
        if not self._write_lock.acquire(timeout=self.timeout):
            raise StoreUnavailable(f"Timed out waiting for vendor write lock ({self.timeout}s)")
        try:
            yield
        finally:
            self._write_lock.release()

    def create_schema(self) -> None:
        """Create the progress and chapter tables if they do not exist"""
        db_dir = os.path.dirname(self.db_path)
        if db_dir and not os.path.exists(db_dir):
            os.makedirs(db_dir, exist_ok=True)
            self.logger.info(f"Created database directory: {db_dir}")

        with self._connection(create=True) as conn:
            cursor = conn.cursor()
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS content (
                    content_id TEXT PRIMARY KEY,
                    percent_read INTEGER NOT NULL DEFAULT 0,
                    timestamp TEXT,
                    read_status INTEGER NOT NULL DEFAULT 0,
                    chapter_token BLOB
                )
            """)
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS chapters (
                    content_id TEXT NOT NULL,
                    chapter_index INTEGER NOT NULL,
                    chapter_id TEXT NOT NULL,
                    PRIMARY KEY (content_id, chapter_index)
                )
            """)
            conn.commit()
        self.logger.info(f"Vendor database schema initialized at {self.db_path}")

    def fetch_progress_row(self, content_id: str) -> Optional[sqlite3.Row]:
        """Return the progress row for a book, or None when there is none"""
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT content_id, percent_read, timestamp, read_status, chapter_token FROM content WHERE content_id = ?",
                (content_id,),
            )
            return cursor.fetchone()

    def upsert_progress_row(
        self,
        content_id: str,
        percent_read: int,
        timestamp: str,
        read_status: int,
        chapter_token: Optional[bytes],
    ) -> None:
        """Write a complete progress row in a single statement"""
        with self._write_locked(), self._connection() as conn:
            conn.execute(
                """
                INSERT INTO content (content_id, percent_read, timestamp, read_status, chapter_token)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(content_id) DO UPDATE SET
                    percent_read = excluded.percent_read,
                    timestamp = excluded.timestamp,
                    read_status = excluded.read_status,
                    chapter_token = excluded.chapter_token
                """,
                (
                    content_id,
                    percent_read,
                    timestamp,
                    read_status,
                    sqlite3.Binary(chapter_token) if chapter_token is not None else None,
                ),
            )
            conn.commit()
        self.logger.debug(f"Wrote vendor row for {content_id}: {percent_read}% status={read_status} at {timestamp}")

    def list_content_ids(self) -> List[str]:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT content_id FROM content ORDER BY content_id")
            return [row["content_id"] for row in cursor.fetchall()]

    def count_chapters(self, content_id: str) -> int:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT COUNT(*) AS total FROM chapters WHERE content_id = ?", (content_id,))
            return int(cursor.fetchone()["total"])

    def fetch_chapter_id(self, content_id: str, chapter_index: int) -> Optional[str]:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT chapter_id FROM chapters WHERE content_id = ? AND chapter_index = ?",
                (content_id, chapter_index),
            )
            row = cursor.fetchone()
            return row["chapter_id"] if row else None

    def replace_chapters(self, content_id: str, chapter_ids: List[str]) -> None:
        """Replace the chapter list of a book, in reading order"""
        with self._write_locked(), self._connection() as conn:
            conn.execute("DELETE FROM chapters WHERE content_id = ?", (content_id,))
            conn.executemany(
                "INSERT INTO chapters (content_id, chapter_index, chapter_id) VALUES (?, ?, ?)",
                [(content_id, index, chapter_id) for index, chapter_id in enumerate(chapter_ids)],
            )
            conn.commit()
        self.logger.debug(f"Stored {len(chapter_ids)} chapters for {content_id}")


class SqliteBookCatalog:
    """Book-catalog collaborator backed by the chapters table of the vendor database"""

    def __init__(self, database: VendorDatabase):
        self.database = database

    def get_chapter_count(self, book_id: str) -> int:
        return self.database.count_chapters(book_id)

    def get_chapter_id(self, book_id: str, index: int) -> Optional[str]:
        return self.database.fetch_chapter_id(book_id, index)

    def store_chapters(self, book_id: str, chapter_ids: List[str]) -> None:
        self.database.replace_chapters(book_id, chapter_ids)
