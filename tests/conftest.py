"""Shared test fixtures."""

import subprocess
from pathlib import Path

import pytest

from aznfs.core.logging import Logger, set_logger


class MockContext:
    """Mock Context for testing without real system access."""

    def __init__(
        self,
        tools_available: list[str] | None = None,
        command_outputs: dict[tuple, "str | Exception | subprocess.CompletedProcess"] | None = None,
    ):
        self.tools_available = set(tools_available or [])
        self.command_outputs = command_outputs or {}
        self.commands_run: list[list[str]] = []

    def check_tool(self, name: str) -> bool:
        """Check if tool is in mocked available list."""
        return name in self.tools_available

    def run(
        self,
        cmd: list[str],
        check: bool = False,
        **kwargs,
    ) -> subprocess.CompletedProcess:
        """Return mocked command output."""
        self.commands_run.append(cmd)
        key = tuple(cmd)
        if key not in self.command_outputs:
            raise KeyError(f"No mock output for command: {cmd}")

        output = self.command_outputs[key]
        if isinstance(output, Exception):
            raise output

        # Allow passing CompletedProcess directly for more control (e.g., non-zero returncode)
        if isinstance(output, subprocess.CompletedProcess):
            if check and output.returncode != 0:
                raise subprocess.CalledProcessError(output.returncode, cmd)
            return output

        return subprocess.CompletedProcess(
            cmd,
            returncode=0,
            stdout=output,
            stderr="",
        )


def failed(cmd: list[str] | tuple, returncode: int = 1, stderr: str = "") -> subprocess.CompletedProcess:
    """A CompletedProcess for a command that exited non-zero."""
    return subprocess.CompletedProcess(list(cmd), returncode=returncode, stdout="", stderr=stderr)


def route_probe(address: str) -> tuple:
    """Command used to check a full address against the routing table."""
    return ("ip", "-4", "route", "show", "match", address)


def fib_probe(prefix: str) -> tuple:
    """Command used to check a prefix with a fib match."""
    return ("ip", "-4", "route", "get", "fibmatch", prefix)


def chattr_outputs(path: Path) -> dict[tuple, str]:
    """Successful chattr calls for a mountmap path."""
    return {
        ("chattr", "-i", str(path)): "",
        ("chattr", "+i", str(path)): "",
    }


def log_text(logger: Logger) -> str:
    """Everything a test logger has written."""
    if not logger.log_path.exists():
        return ""
    return logger.log_path.read_text()


@pytest.fixture
def mock_context():
    """Factory fixture for creating MockContext instances."""
    def _create(**kwargs) -> MockContext:
        return MockContext(**kwargs)
    return _create


@pytest.fixture
def logger(tmp_path) -> Logger:
    """Logger writing to a temp file."""
    return Logger(tmp_path / "aznfs.log", hostname="testhost")


@pytest.fixture(autouse=True)
def isolated_logging(tmp_path, monkeypatch):
    """Keep the process-wide logger and config away from /opt and /etc."""
    monkeypatch.setenv("AZNFS_CONFIG", str(tmp_path / "no-such-config.yaml"))
    monkeypatch.delenv("AZNFS_OPTDIR", raising=False)
    monkeypatch.delenv("AZNFS_VERBOSE", raising=False)
    set_logger(Logger(tmp_path / "default.log", hostname="testhost"))
    yield
    set_logger(None)
