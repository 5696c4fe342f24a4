"""Process utilities for system commands."""

import subprocess
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from aznfs.core.context import Context


class CommandError(Exception):
    """Error running a command."""

    pass


def _default_context() -> "Context":
    from aznfs.core.context import Context
    return Context()


def run_command(
    cmd: list[str],
    context: "Context | None" = None,
    check: bool = False,
    timeout: int | None = None,
) -> str:
    """
    Run a command and return its output.

    Args:
        cmd: Command and arguments
        context: Execution context (for testing)
        check: Raise on non-zero exit
        timeout: Timeout in seconds (default: context default)

    Returns:
        Command stdout

    Raises:
        CommandError: If the command cannot be run, times out, or
            check=True and it exits non-zero
    """
    if context is None:
        context = _default_context()

    kwargs = {} if timeout is None else {"timeout": timeout}
    try:
        result = context.run(cmd, check=check, **kwargs)
    except subprocess.TimeoutExpired as e:
        raise CommandError(f"Command timed out: {cmd}") from e
    except (OSError, subprocess.CalledProcessError) as e:
        raise CommandError(f"Command failed: {cmd}") from e

    if check and result.returncode != 0:
        raise CommandError(f"Command failed: {cmd}")
    return result.stdout


def command_succeeds(
    cmd: list[str],
    context: "Context | None" = None,
    timeout: int | None = None,
) -> bool:
    """
    Run a command only for its exit status.

    Returns:
        True if the command ran and exited 0. A missing binary or a
        timeout counts as failure.
    """
    if context is None:
        context = _default_context()

    kwargs = {} if timeout is None else {"timeout": timeout}
    try:
        result = context.run(cmd, **kwargs)
    except (OSError, subprocess.SubprocessError):
        return False
    return result.returncode == 0


def check_tool(
    name: str,
    context: "Context | None" = None,
    required: bool = False,
) -> bool:
    """
    Check if a tool exists in PATH.

    Args:
        name: Tool name to check
        context: Execution context (for testing)
        required: Raise if tool is missing

    Returns:
        True if tool exists

    Raises:
        CommandError: If required=True and tool is missing
    """
    if context is None:
        context = _default_context()

    exists = context.check_tool(name)

    if required and not exists:
        raise CommandError(f"Required tool not found: {name}")

    return exists
