"""
Host State - The second reading application's per-book metadata store
"""

import json
import logging
import os
import tempfile
import time
from datetime import datetime
from typing import Any, Dict, List, Optional

import pytz

from readstate_sync.exceptions import HostStoreError
from readstate_sync.models import EPOCH_MIN, ReadingProgress, ReadStatus, clamp_percent
from readstate_sync.utils import book_id_to_filename, filename_to_book_id

METADATA_SUFFIX = ".json"

HOST_STATUS_NAMES = {
    ReadStatus.UNREAD: "",
    ReadStatus.READING: "reading",
    ReadStatus.FINISHED: "complete",
}


class SidecarHostStore:
    """
    Per-document metadata files, one JSON file per book

    Files are named by the percent-encoded book id, and list_book_ids
    decodes them back. The file's modification time is the record's
    timestamp, so every set_percent advances it to now.
    """

    def __init__(self, metadata_dir: str):
        self.metadata_dir = metadata_dir
        self.logger = logging.getLogger(__name__)

    def _path_for(self, book_id: str) -> str:
        return os.path.join(self.metadata_dir, book_id_to_filename(book_id) + METADATA_SUFFIX)

    def _load(self, book_id: str) -> Optional[Dict[str, Any]]:
        path = self._path_for(book_id)
        if not os.path.exists(path):
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise HostStoreError(f"Cannot read host metadata {path}: {str(e)}")
        if not isinstance(data, dict):
            raise HostStoreError(f"Host metadata {path} is not an object")
        return data

    def get_percent(self, book_id: str) -> float:
        data = self._load(book_id)
        if data is None:
            return 0.0
        return clamp_percent(data.get("percent_finished", 0.0))

    def get_status(self, book_id: str) -> str:
        data = self._load(book_id)
        if data is None:
            return ""
        summary = data.get("summary") or {}
        return summary.get("status", "") if isinstance(summary, dict) else ""

    def get_timestamp(self, book_id: str) -> datetime:
        path = self._path_for(book_id)
        try:
            mtime = os.path.getmtime(path)
        except FileNotFoundError:
            return EPOCH_MIN
        except OSError as e:
            raise HostStoreError(f"Cannot stat host metadata {path}: {str(e)}")
        return datetime.fromtimestamp(mtime, pytz.utc)

    def set_percent(self, book_id: str, percent: float, status: Optional[ReadStatus] = None) -> None:
        """Store a percent (and optionally a status); the file timestamp becomes now"""
        path = self._path_for(book_id)
        data = self._load(book_id) or {}
        percent = clamp_percent(percent)
        data["percent_finished"] = percent
        data["last_percent"] = percent
        if status is not None:
            summary = data.get("summary")
            if not isinstance(summary, dict):
                summary = {}
            summary["status"] = HOST_STATUS_NAMES[ReadStatus(status)]
            data["summary"] = summary

        try:
            os.makedirs(self.metadata_dir, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=self.metadata_dir, suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, sort_keys=True)
            os.replace(tmp_path, path)
            now = time.time()
            os.utime(path, (now, now))
        except OSError as e:
            raise HostStoreError(f"Cannot write host metadata {path}: {str(e)}")

        self.logger.debug(f"Stored host progress for {book_id}: {percent * 100:.2f}%")

    def list_book_ids(self) -> List[str]:
        if not os.path.isdir(self.metadata_dir):
            return []
        book_ids = []
        for name in os.listdir(self.metadata_dir):
            if name.endswith(METADATA_SUFFIX):
                book_ids.append(filename_to_book_id(name[: -len(METADATA_SUFFIX)]))
        return sorted(book_ids)


class HostStateReader:
    """Builds a ReadingProgress from the host store; no record reads as zero progress"""

    def __init__(self, store):
        self.store = store
        self.logger = logging.getLogger(__name__)

    def read(self, book_id: str) -> ReadingProgress:
        percent = clamp_percent(self.store.get_percent(book_id) or 0.0)
        timestamp = self.store.get_timestamp(book_id) or EPOCH_MIN
        if timestamp.tzinfo is None:
            timestamp = pytz.utc.localize(timestamp)

        progress = ReadingProgress(
            book_id=book_id,
            percent=percent,
            timestamp=timestamp.astimezone(pytz.utc),
            status=ReadStatus.from_percent(percent),
        )
        self.logger.debug(f"Loaded host progress for {book_id}: {percent * 100:.1f}% at {progress.timestamp.isoformat()}")
        return progress


class HostStateWriter:
    """Pushes vendor progress into the host store"""

    def __init__(self, store):
        self.store = store
        self.logger = logging.getLogger(__name__)

    def write(self, book_id: str, percent: float, status: Optional[ReadStatus] = None) -> None:
        percent = clamp_percent(percent)
        if percent >= 1.0:
            status = ReadStatus.FINISHED
        self.store.set_percent(book_id, percent, status=status)
        self.logger.info(
            f"Wrote host progress for {book_id}: {percent * 100:.1f}%"
            + (f" ({status.name})" if status is not None else "")
        )
