"""Shared utility library for aznfs."""

from aznfs.lib.process import CommandError, check_tool, command_succeeds, run_command

__all__ = [
    "CommandError",
    "check_tool",
    "command_succeeds",
    "run_command",
]
