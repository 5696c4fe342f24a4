"""Tests for logging module."""

import re
from datetime import datetime, timezone

from aznfs.core.logging import (
    GREEN,
    NORMAL,
    RED,
    YELLOW,
    Logger,
    format_timestamp,
    get_logger,
    set_logger,
)

LINE_RE = re.compile(r"^\w{3} \w{3} \d{2} \d{2}:\d{2}:\d{2} UTC \d{4} testhost: ")


class TestFormatTimestamp:
    def test_matches_date_u(self):
        now = datetime(2026, 3, 5, 7, 8, 9, tzinfo=timezone.utc)
        assert format_timestamp(now) == "Thu Mar 05 07:08:09 UTC 2026"


class TestLogger:
    """Tests for Logger class."""

    def test_line_format(self, tmp_path):
        """Lines carry timestamp, hostname and color codes."""
        logger = Logger(tmp_path / "aznfs.log", hostname="testhost")

        logger.plain("hello")

        line = (tmp_path / "aznfs.log").read_text()
        assert LINE_RE.match(line)
        assert line.endswith(f"{NORMAL}hello{NORMAL}\n")

    def test_severity_colors(self, tmp_path):
        """Each wrapper uses its own color."""
        logger = Logger(tmp_path / "aznfs.log", hostname="testhost")

        logger.success("ok")
        logger.warning("careful")
        logger.error("bad")

        lines = (tmp_path / "aznfs.log").read_text().splitlines()
        assert f"{GREEN}ok{NORMAL}" in lines[0]
        assert f"{YELLOW}careful{NORMAL}" in lines[1]
        assert f"{RED}bad{NORMAL}" in lines[2]

    def test_appends(self, tmp_path):
        """Existing content is kept."""
        log_path = tmp_path / "aznfs.log"
        log_path.write_text("previous\n")
        logger = Logger(log_path, hostname="testhost")

        logger.plain("next")

        lines = log_path.read_text().splitlines()
        assert lines[0] == "previous"
        assert len(lines) == 2

    def test_no_newline(self, tmp_path):
        """no_newline leaves the line open."""
        logger = Logger(tmp_path / "aznfs.log", hostname="testhost")

        logger.plain("partial", no_newline=True)

        assert not (tmp_path / "aznfs.log").read_text().endswith("\n")

    def test_verbose_disabled_by_default(self, tmp_path):
        logger = Logger(tmp_path / "aznfs.log", hostname="testhost")

        logger.verbose("debug detail")

        assert not (tmp_path / "aznfs.log").exists()

    def test_verbose_enabled(self, tmp_path):
        logger = Logger(tmp_path / "aznfs.log", hostname="testhost", verbose=True)

        logger.verbose("debug detail")

        assert "debug detail" in (tmp_path / "aznfs.log").read_text()

    def test_falls_back_when_log_unwritable(self, tmp_path):
        """An unwritable log path goes to the fallback file instead of raising."""
        logger = Logger(tmp_path / "missing-dir" / "aznfs.log", hostname="testhost")
        logger.fallback_path = tmp_path / "fallback.log"

        logger.error("still logged")

        assert "still logged" in (tmp_path / "fallback.log").read_text()

    def test_falls_back_to_stderr(self, tmp_path, capsys):
        logger = Logger(tmp_path / "missing-dir" / "aznfs.log", hostname="testhost")
        logger.fallback_path = tmp_path / "also-missing" / "fallback.log"

        logger.error("last resort")

        assert "last resort" in capsys.readouterr().err


class TestProcessLogger:
    """Tests for the process-wide logger."""

    def test_built_from_config(self, tmp_path, monkeypatch):
        monkeypatch.setenv("AZNFS_OPTDIR", str(tmp_path / "opt"))
        monkeypatch.setenv("AZNFS_VERBOSE", "1")
        set_logger(None)

        logger = get_logger()

        assert logger.log_path == tmp_path / "opt" / "aznfs.log"
        assert logger.verbose_enabled is True
        assert get_logger() is logger

    def test_set_logger_replaces(self, tmp_path):
        custom = Logger(tmp_path / "custom.log", hostname="testhost")
        set_logger(custom)

        assert get_logger() is custom
