"""Basic tests for the Reading-State Sync Tool: configuration, utilities and CLI"""

import os
import subprocess
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
import pytz

from readstate_sync.exceptions import ParseError, StoreUnavailable

ROOT = Path(__file__).resolve().parent.parent
EXAMPLE_CONFIG = ROOT / "config" / "config.yaml.example"


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ["READSTATE_VENDOR_DB", "READSTATE_HOST_DIR", "READSTATE_DRY_RUN"]:
        monkeypatch.delenv(name, raising=False)


class TestConfig:
    """Test configuration loading"""

    def test_example_config(self) -> None:
        from readstate_sync.config import Config

        config = Config(config_path=str(EXAMPLE_CONFIG), env_file=None)
        global_config = config.get_global()

        assert isinstance(global_config, dict)
        for key in ["vendor_db_path", "host_metadata_dir", "timestamp_tolerance_seconds", "parallel", "workers", "dry_run"]:
            assert key in global_config
        assert config.get_cron_config() == {"schedule": "*/30 * * * *", "timezone": "Etc/UTC"}

    def test_missing_file(self, tmp_path) -> None:
        from readstate_sync.config import Config

        with pytest.raises(FileNotFoundError):
            Config(config_path=str(tmp_path / "nope.yaml"), env_file=None)

    def test_defaults_and_validation(self, tmp_path) -> None:
        from readstate_sync.config import Config

        path = tmp_path / "config.yaml"
        path.write_text("global:\n  vendor_db_path: /tmp/v.sqlite\n  host_metadata_dir: /tmp/docs\n")
        config = Config(config_path=str(path), env_file=None)
        assert config.get_global()["timestamp_tolerance_seconds"] == 5
        assert config.get_global()["sync_to_vendor"] is True

        path.write_text("global:\n  host_metadata_dir: /tmp/docs\n  workers: 0\n  dry_run: maybe\n")
        with pytest.raises(ValueError) as excinfo:
            Config(config_path=str(path), env_file=None)
        message = str(excinfo.value)
        assert "vendor_db_path" in message
        assert "workers" in message
        assert "dry_run" in message

    def test_env_overrides(self, tmp_path, monkeypatch) -> None:
        from readstate_sync.config import Config

        env_file = tmp_path / ".env"
        env_file.write_text("READSTATE_VENDOR_DB=/data/override.sqlite\nREADSTATE_DRY_RUN=yes\n")
        monkeypatch.setenv("READSTATE_HOST_DIR", "/data/docs")

        # load_dotenv writes into os.environ
        with patch.dict(os.environ):
            config = Config(config_path=str(EXAMPLE_CONFIG), env_file=str(env_file))

        assert config.get_global()["vendor_db_path"] == "/data/override.sqlite"
        assert config.get_global()["host_metadata_dir"] == "/data/docs"
        assert config.get_global()["dry_run"] is True


class TestUtils:
    """Test utility functions"""

    def test_parse_vendor_timestamp(self) -> None:
        from readstate_sync.utils import parse_vendor_timestamp

        expected = datetime(2024, 1, 1, 10, 0, 0, tzinfo=pytz.utc)
        assert parse_vendor_timestamp("2024-01-01T10:00:00Z") == expected
        assert parse_vendor_timestamp("2024-01-01 10:00:00.000+00:00") == expected
        assert parse_vendor_timestamp("2024-01-01T12:00:00+02:00") == expected
        assert parse_vendor_timestamp("2024-01-01T10:00:00") == expected
        assert parse_vendor_timestamp("2024-01-01T10:00:00.1234567Z").replace(microsecond=0) == expected
        assert parse_vendor_timestamp("2024-01-01T10:00:00Z").tzinfo is not None

    def test_parse_vendor_timestamp_invalid(self) -> None:
        from readstate_sync.utils import parse_vendor_timestamp

        for value in ["", None, "yesterday", "2024-13-45T99:00:00Z"]:
            with pytest.raises(ParseError):
                parse_vendor_timestamp(value)

    def test_format_vendor_timestamp(self) -> None:
        from readstate_sync.utils import format_vendor_timestamp

        moment = datetime(2024, 1, 1, 12, 0, 0, 987000, tzinfo=timezone(timedelta(hours=2)))
        assert format_vendor_timestamp(moment) == "2024-01-01T10:00:00.000+00:00"

    def test_to_vendor_percent(self) -> None:
        from readstate_sync.utils import to_vendor_percent

        assert to_vendor_percent(0.0) == 0
        assert to_vendor_percent(0.15) == 15
        assert to_vendor_percent(0.604) == 60
        assert to_vendor_percent(1.0) == 100
        assert to_vendor_percent(-0.5) == 0
        assert to_vendor_percent(3.0) == 100

    def test_chapter_index_for_percent(self) -> None:
        from readstate_sync.utils import chapter_index_for_percent, chapter_start_percent

        assert chapter_index_for_percent(0.0, 10) == 0
        assert chapter_index_for_percent(0.15, 10) == 1
        assert chapter_index_for_percent(0.999, 10) == 9
        assert chapter_index_for_percent(1.0, 10) == 9
        assert chapter_start_percent(3, 10) == pytest.approx(0.3)
        with pytest.raises(ValueError):
            chapter_index_for_percent(0.5, 0)

    def test_book_id_filenames(self) -> None:
        from readstate_sync.utils import book_id_to_filename, filename_to_book_id

        assert book_id_to_filename("BOOK-1") == "BOOK-1"
        assert book_id_to_filename("a/b:c") == "a%2Fb%3Ac"
        assert book_id_to_filename("..") == "%2E."
        for book_id in ["file:///mnt/onboard/Books/Dune.epub", "a:b", "a/b", "a_b", "..", "100% done"]:
            assert "/" not in book_id_to_filename(book_id)
            assert filename_to_book_id(book_id_to_filename(book_id)) == book_id

    def test_format_duration(self) -> None:
        from readstate_sync.utils import format_duration

        assert format_duration(12.34) == "12.3s"
        assert format_duration(90) == "1.5m"
        assert format_duration(5400) == "1.5h"

    def test_retry_on_failure(self) -> None:
        from readstate_sync.utils import retry_on_failure

        flaky = MagicMock(side_effect=[StoreUnavailable(), "ok"])
        flaky.__name__ = "flaky"
        assert retry_on_failure(max_retries=2, delay=0, exceptions=(StoreUnavailable,))(flaky)() == "ok"

        broken = MagicMock(side_effect=KeyError("not retried"))
        broken.__name__ = "broken"
        with pytest.raises(KeyError):
            retry_on_failure(max_retries=2, delay=0, exceptions=(StoreUnavailable,))(broken)()
        assert broken.call_count == 1


class TestModels:
    """Value types"""

    def test_read_status_from_percent(self) -> None:
        from readstate_sync.models import ReadStatus

        assert ReadStatus.from_percent(0.0) == ReadStatus.UNREAD
        assert ReadStatus.from_percent(0.01) == ReadStatus.READING
        assert ReadStatus.from_percent(1.0) == ReadStatus.FINISHED

    def test_position_token_is_opaque(self) -> None:
        from readstate_sync.models import PositionToken

        token = PositionToken.chapter_start("OEBPS/ch3.xhtml")
        assert token == PositionToken(b"OEBPS/ch3.xhtml#kobo.1.1")
        assert PositionToken.from_column(None) is None
        assert PositionToken.from_column("x#y") == PositionToken(b"x#y")

    def test_progress_percent_clamped(self) -> None:
        from readstate_sync.models import EPOCH_MIN, ReadingProgress, ReadStatus

        assert ReadingProgress("B", -1, EPOCH_MIN, ReadStatus.UNREAD).percent == 0.0
        assert ReadingProgress("B", float("nan"), EPOCH_MIN, ReadStatus.UNREAD).percent == 0.0
        assert ReadingProgress("B", 1.5, EPOCH_MIN, ReadStatus.READING).percent == 1.0


class TestCLI:
    """Test CLI functionality"""

    def test_main_import(self) -> None:
        from readstate_sync import main

        assert main is not None

    def test_cli_help(self) -> None:
        try:
            result = subprocess.run(
                [sys.executable, "-m", "readstate_sync.main", "--help"],
                capture_output=True,
                text=True,
                timeout=30,
                cwd=str(ROOT),
            )
        except subprocess.TimeoutExpired:
            pytest.skip("CLI help test timed out")
        assert result.returncode == 0
        assert "Reading-State Sync Tool" in result.stdout

    def test_status_command(self, tmp_path, capsys, monkeypatch) -> None:
        from readstate_sync import main as cli
        from readstate_sync.vendor_db import VendorDatabase

        database = VendorDatabase(str(tmp_path / "vendor.sqlite"))
        database.create_schema()
        database.upsert_progress_row("BOOK-1", 40, "2024-01-01T10:00:00Z", 1, None)
        config_path = tmp_path / "config.yaml"
        config_path.write_text(
            f"global:\n  vendor_db_path: {database.db_path}\n  host_metadata_dir: {tmp_path / 'docs'}\n"
        )
        monkeypatch.chdir(tmp_path)
        monkeypatch.setattr(sys, "argv", ["readstate-sync", "status", "BOOK-1", "--config", str(config_path)])

        cli.main()

        output = capsys.readouterr().out
        assert "Vendor:  40.0%  READING" in output
        assert "push_vendor_to_host" in output
