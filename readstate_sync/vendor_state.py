"""
Vendor State - Reads and writes reading progress in the vendor database
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from readstate_sync.exceptions import NotFound, ParseError, StoreUnavailable, TranslationError
from readstate_sync.models import EPOCH_MIN, PositionToken, ReadingProgress, ReadStatus, clamp_percent
from readstate_sync.utils import (
    chapter_index_for_percent,
    format_vendor_timestamp,
    parse_vendor_timestamp,
    retry_on_failure,
    to_vendor_percent,
    utc_now,
)
from readstate_sync.vendor_db import VendorDatabase

DEFAULT_WRITE_RETRY_DELAY = 0.5
WRITE_ATTEMPTS = 2  # first try plus one retry


class VendorStateReader:
    """Reads one book's progress row and turns it into a ReadingProgress"""

    def __init__(self, database: VendorDatabase):
        self.database = database
        self.logger = logging.getLogger(__name__)

    def read(self, book_id: str) -> Optional[ReadingProgress]:
        """
        Read vendor progress for a book

        Returns None when the book has no progress row. A malformed timestamp
        degrades to EPOCH_MIN so one corrupt row cannot block the others.
        """
        try:
            row = self._fetch_row(book_id)
        except NotFound as e:
            self.logger.debug(e.detail)
            return None

        try:
            timestamp = parse_vendor_timestamp(row["timestamp"])
        except ParseError as e:
            self.logger.warning(f"{e.detail} for book {book_id}, treating as oldest possible")
            timestamp = EPOCH_MIN

        status = self._parse_status(book_id, row["read_status"])

        try:
            percent_read = int(row["percent_read"] or 0)
        except (TypeError, ValueError):
            self.logger.warning(f"Invalid percent_read {row['percent_read']!r} for book {book_id}, using 0")
            percent_read = 0

        percent = clamp_percent(percent_read / 100.0)
        if status == ReadStatus.FINISHED and percent == 0.0:
            # Finished books sometimes keep a zero percent column
            percent = 1.0
            self.logger.debug(f"Book {book_id} marked finished with 0%, reading as 100%")

        progress = ReadingProgress(
            book_id=book_id,
            percent=percent,
            timestamp=timestamp,
            status=status,
            position_token=PositionToken.from_column(row["chapter_token"]),
        )
        self.logger.debug(
            f"Loaded vendor progress for {book_id}: {progress.percent * 100:.1f}% "
            f"status={progress.status.name} last_read={row['timestamp']}"
        )
        return progress

    def read_or_default(self, book_id: str) -> ReadingProgress:
        """Read vendor progress, substituting the zero record for a missing row"""
        progress = self.read(book_id)
        if progress is None:
            return ReadingProgress.empty(book_id)
        return progress

    def _fetch_row(self, book_id: str):
        row = self.database.fetch_progress_row(book_id)
        if row is None:
            raise NotFound(book_id)
        return row

    def _parse_status(self, book_id: str, value) -> ReadStatus:
        try:
            return ReadStatus(int(value))
        except (TypeError, ValueError):
            self.logger.warning(f"Unknown read_status {value!r} for book {book_id}, treating as READING")
            return ReadStatus.READING


@dataclass(frozen=True)
class VendorProgressRecord:
    """Fully translated vendor row, computed before anything is written"""

    book_id: str
    percent_read: int
    timestamp: str
    read_status: ReadStatus
    position_token: PositionToken
    chapter_index: int
    chapter_count: int


class VendorStateWriter:
    """
    Writes host progress into the vendor database.

    The vendor coordinate encoding is undocumented, so the writer never builds
    one from parts: it picks the chapter containing the target percent
    (rounding down) and writes a start-of-chapter placeholder token. A
    mid-chapter host position therefore lands at the start of its chapter on
    the vendor side, which never marks unread content as read.
    """

    def __init__(
        self,
        database: VendorDatabase,
        catalog,
        retry_delay: float = DEFAULT_WRITE_RETRY_DELAY,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.database = database
        self.catalog = catalog
        self.retry_delay = retry_delay
        self.clock = clock
        self.logger = logging.getLogger(__name__)

    def translate(self, book_id: str, percent: float) -> VendorProgressRecord:
        """Translate a percent fraction into a complete vendor row"""
        percent = clamp_percent(percent)

        try:
            chapter_count = self.catalog.get_chapter_count(book_id)
        except StoreUnavailable:
            raise
        except Exception as e:
            raise TranslationError(book_id, f"chapter count lookup failed: {str(e)}")

        if not isinstance(chapter_count, int) or chapter_count <= 0:
            raise TranslationError(book_id, f"no chapter count (got {chapter_count!r})")

        chapter_index = chapter_index_for_percent(percent, chapter_count)

        try:
            chapter_id = self.catalog.get_chapter_id(book_id, chapter_index)
        except StoreUnavailable:
            raise
        except Exception as e:
            raise TranslationError(book_id, f"chapter lookup failed: {str(e)}")

        if not chapter_id:
            raise TranslationError(book_id, f"no identifier for chapter {chapter_index} of {chapter_count}")

        percent_read = to_vendor_percent(percent)
        record = VendorProgressRecord(
            book_id=book_id,
            percent_read=percent_read,
            timestamp=format_vendor_timestamp(self.clock()),
            # Status follows the stored integer so a row never reads 100% unfinished
            read_status=ReadStatus.from_percent(percent_read / 100.0),
            position_token=PositionToken.chapter_start(chapter_id),
            chapter_index=chapter_index,
            chapter_count=chapter_count,
        )
        self.logger.debug(
            f"Translated {percent * 100:.2f}% for {book_id} -> chapter {chapter_index + 1}/{chapter_count} "
            f"({chapter_id}), {record.percent_read}%, status={record.read_status.name}"
        )
        return record

    def write(self, book_id: str, percent: float) -> VendorProgressRecord:
        """
        Translate and persist host progress for a book

        StoreUnavailable is retried once after retry_delay seconds; a second
        failure propagates to the caller.
        """
        record = self.translate(book_id, percent)

        commit = retry_on_failure(
            max_retries=WRITE_ATTEMPTS, delay=self.retry_delay, exceptions=(StoreUnavailable,)
        )(self._commit)
        commit(record)

        self.logger.info(
            f"Wrote vendor progress for {book_id}: {record.percent_read}% "
            f"(chapter {record.chapter_index + 1}/{record.chapter_count}, {record.read_status.name})"
        )
        return record

    def _commit(self, record: VendorProgressRecord) -> None:
        self.database.upsert_progress_row(
            record.book_id,
            record.percent_read,
            record.timestamp,
            int(record.read_status),
            record.position_token.raw,
        )
