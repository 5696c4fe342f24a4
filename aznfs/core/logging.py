"""Colored, host-tagged line logging to the aznfs log file."""

import socket
import sys
import tempfile
from datetime import datetime, timezone
from pathlib import Path

RED = "\x1b[2;31m"
GREEN = "\x1b[2;32m"
YELLOW = "\x1b[2;33m"
NORMAL = "\x1b[0m"

FALLBACK_LOG_NAME = "aznfs.log"


def format_timestamp(now: datetime | None = None) -> str:
    """Format a timestamp the way `date -u` prints it."""
    if now is None:
        now = datetime.now(timezone.utc)
    return now.strftime("%a %b %d %H:%M:%S UTC %Y")


class Logger:
    """
    Line logger shared by the mount helper and the watchdog.

    Each call appends "<UTC timestamp> <hostname>: <color><message><reset>".
    The file is opened per write since several processes append to it.
    Logging never raises: when the log file is not writable the line goes
    to a fallback file in the temp directory, then to stderr.
    """

    def __init__(
        self,
        log_path: Path,
        hostname: str | None = None,
        verbose: bool = False,
    ):
        self.log_path = Path(log_path)
        self.hostname = hostname or socket.gethostname()
        self.verbose_enabled = verbose
        self.fallback_path = Path(tempfile.gettempdir()) / FALLBACK_LOG_NAME

    def _write(self, line: str) -> None:
        for path in (self.log_path, self.fallback_path):
            try:
                with open(path, "a") as f:
                    f.write(line)
                return
            except OSError:
                continue
        try:
            sys.stderr.write(line)
        except (OSError, ValueError):
            pass

    def log(self, color: str, message: str, no_newline: bool = False) -> None:
        """Write one log line."""
        line = f"{format_timestamp()} {self.hostname}: {color}{message}{NORMAL}"
        if not no_newline:
            line += "\n"
        self._write(line)

    def plain(self, message: str, no_newline: bool = False) -> None:
        self.log(NORMAL, message, no_newline)

    def success(self, message: str, no_newline: bool = False) -> None:
        self.log(GREEN, message, no_newline)

    def warning(self, message: str, no_newline: bool = False) -> None:
        self.log(YELLOW, message, no_newline)

    def error(self, message: str, no_newline: bool = False) -> None:
        self.log(RED, message, no_newline)

    def verbose(self, message: str, no_newline: bool = False) -> None:
        """Log only when verbosity is enabled."""
        if not self.verbose_enabled:
            return
        self.log(NORMAL, message, no_newline)


_logger: Logger | None = None


def get_logger() -> Logger:
    """
    Get the process-wide logger.

    Built from the loaded configuration on first use.
    """
    global _logger
    if _logger is None:
        from aznfs.core.config import load_config

        config = load_config()
        _logger = Logger(config.log_file, verbose=config.verbose)
    return _logger


def set_logger(logger: Logger | None) -> None:
    """Replace the process-wide logger (None resets to lazy default)."""
    global _logger
    _logger = logger
