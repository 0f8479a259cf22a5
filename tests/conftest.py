"""Shared fixtures: a real vendor SQLite database and a sidecar host store under tmp_path"""

import os
from datetime import datetime

import pytest

from readstate_sync.host_state import HostStateReader, HostStateWriter, SidecarHostStore
from readstate_sync.sync_manager import ReadingStateSyncCoordinator
from readstate_sync.vendor_db import SqliteBookCatalog, VendorDatabase
from readstate_sync.vendor_state import VendorStateReader, VendorStateWriter


@pytest.fixture
def vendor_db(tmp_path):
    database = VendorDatabase(str(tmp_path / "KoboReader.sqlite"), timeout=0.2)
    database.create_schema()
    return database


@pytest.fixture
def catalog(vendor_db):
    return SqliteBookCatalog(vendor_db)


@pytest.fixture
def host_store(tmp_path):
    return SidecarHostStore(str(tmp_path / "docsettings"))


@pytest.fixture
def set_host_progress(host_store):
    """Store host progress and pin the metadata file's mtime"""

    def _set(book_id: str, percent: float, when: datetime) -> None:
        host_store.set_percent(book_id, percent)
        stamp = when.timestamp()
        os.utime(host_store._path_for(book_id), (stamp, stamp))

    return _set


@pytest.fixture
def coordinator(vendor_db, catalog, host_store):
    return ReadingStateSyncCoordinator(
        vendor_reader=VendorStateReader(vendor_db),
        host_reader=HostStateReader(host_store),
        vendor_writer=VendorStateWriter(vendor_db, catalog, retry_delay=0),
        host_writer=HostStateWriter(host_store),
        book_sources=[vendor_db.list_content_ids, host_store.list_book_ids],
    )
