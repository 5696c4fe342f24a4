"""Core aznfs functionality."""

from aznfs.core.config import Config, StoreInitError, ensure_layout, load_config
from aznfs.core.context import Context
from aznfs.core.logging import Logger, get_logger, set_logger

__all__ = [
    "Config",
    "Context",
    "Logger",
    "StoreInitError",
    "ensure_layout",
    "get_logger",
    "load_config",
    "set_logger",
]
