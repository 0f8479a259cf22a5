"""Tests for the sidecar host store and its reader/writer wrappers"""

import json
import os
from datetime import datetime, timedelta

import pytest
import pytz

from readstate_sync.exceptions import HostStoreError
from readstate_sync.host_state import HostStateReader, HostStateWriter
from readstate_sync.models import EPOCH_MIN, ReadStatus


class TestSidecarHostStore:
    """Per-book JSON metadata files"""

    def test_missing_record(self, host_store) -> None:
        assert host_store.get_percent("BOOK-1") == 0.0
        assert host_store.get_timestamp("BOOK-1") == EPOCH_MIN
        assert host_store.get_status("BOOK-1") == ""
        assert host_store.list_book_ids() == []

    def test_set_percent_advances_timestamp(self, host_store) -> None:
        before = datetime.now(pytz.utc) - timedelta(seconds=2)

        host_store.set_percent("BOOK-1", 0.42)

        assert host_store.get_percent("BOOK-1") == pytest.approx(0.42)
        assert host_store.get_timestamp("BOOK-1") >= before

    def test_later_write_is_newer(self, host_store, set_host_progress) -> None:
        old = datetime(2024, 1, 1, 9, 0, tzinfo=pytz.utc)
        set_host_progress("BOOK-1", 0.2, old)
        assert host_store.get_timestamp("BOOK-1") == old

        host_store.set_percent("BOOK-1", 0.4)

        assert host_store.get_timestamp("BOOK-1") > old

    def test_status_recorded(self, host_store) -> None:
        host_store.set_percent("BOOK-1", 0.3, status=ReadStatus.READING)
        assert host_store.get_status("BOOK-1") == "reading"

        host_store.set_percent("BOOK-1", 1.0, status=ReadStatus.FINISHED)
        assert host_store.get_status("BOOK-1") == "complete"

    def test_keeps_unrelated_settings(self, host_store) -> None:
        os.makedirs(host_store.metadata_dir, exist_ok=True)
        with open(host_store._path_for("BOOK-1"), "w") as f:
            json.dump({"percent_finished": 0.1, "font_size": 22, "summary": {"note": "good"}}, f)

        host_store.set_percent("BOOK-1", 0.5, status=ReadStatus.READING)

        with open(host_store._path_for("BOOK-1")) as f:
            data = json.load(f)
        assert data["font_size"] == 22
        assert data["summary"] == {"note": "good", "status": "reading"}
        assert data["percent_finished"] == 0.5

    def test_corrupt_record(self, host_store) -> None:
        os.makedirs(host_store.metadata_dir, exist_ok=True)
        with open(host_store._path_for("BOOK-1"), "w") as f:
            f.write("{not json")

        with pytest.raises(HostStoreError):
            host_store.get_percent("BOOK-1")

    def test_list_book_ids(self, host_store) -> None:
        host_store.set_percent("BOOK-B", 0.1)
        host_store.set_percent("BOOK-A", 0.2)
        assert host_store.list_book_ids() == ["BOOK-A", "BOOK-B"]

    def test_file_url_book_id(self, host_store) -> None:
        book_id = "file:///mnt/onboard/Books/Dune.epub"
        host_store.set_percent(book_id, 0.42)

        assert host_store.list_book_ids() == [book_id]
        assert host_store.get_percent(book_id) == pytest.approx(0.42)
        assert os.listdir(host_store.metadata_dir) == [os.path.basename(host_store._path_for(book_id))]

    def test_similar_ids_keep_separate_records(self, host_store) -> None:
        host_store.set_percent("a:b", 0.3)
        host_store.set_percent("a/b", 0.9)
        host_store.set_percent("a_b", 0.5)

        assert host_store.get_percent("a:b") == pytest.approx(0.3)
        assert host_store.get_percent("a/b") == pytest.approx(0.9)
        assert host_store.get_percent("a_b") == pytest.approx(0.5)
        assert host_store.list_book_ids() == sorted(["a:b", "a/b", "a_b"])

    def test_dot_ids_stay_inside_directory(self, host_store) -> None:
        for book_id in ["..", ".hidden"]:
            host_store.set_percent(book_id, 0.2)
            assert os.path.dirname(host_store._path_for(book_id)) == host_store.metadata_dir
            assert not os.path.basename(host_store._path_for(book_id)).startswith(".")

        assert host_store.list_book_ids() == sorted(["..", ".hidden"])


class TestHostStateReaderWriter:
    """Wrappers that produce and consume ReadingProgress"""

    def test_reader_no_record(self, host_store) -> None:
        progress = HostStateReader(host_store).read("BOOK-1")
        assert progress.percent == 0.0
        assert progress.timestamp == EPOCH_MIN
        assert progress.status == ReadStatus.UNREAD

    def test_reader_infers_status(self, host_store) -> None:
        reader = HostStateReader(host_store)

        host_store.set_percent("BOOK-1", 0.25)
        assert reader.read("BOOK-1").status == ReadStatus.READING

        host_store.set_percent("BOOK-1", 1.0)
        assert reader.read("BOOK-1").status == ReadStatus.FINISHED

    def test_writer_full_percent_is_complete(self, host_store) -> None:
        HostStateWriter(host_store).write("BOOK-1", 1.0, ReadStatus.READING)
        assert host_store.get_status("BOOK-1") == "complete"

    def test_writer_forwards_status(self, host_store) -> None:
        HostStateWriter(host_store).write("BOOK-1", 0.99, ReadStatus.FINISHED)
        assert host_store.get_percent("BOOK-1") == pytest.approx(0.99)
        assert host_store.get_status("BOOK-1") == "complete"
