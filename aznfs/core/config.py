"""Configuration loading with layered overrides."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml

from aznfs.core.context import DEFAULT_TIMEOUT

if TYPE_CHECKING:
    from aznfs.core.context import Context
    from aznfs.core.logging import Logger

APPNAME = "aznfs"
DEFAULT_OPT_DIR = Path("/opt/microsoft") / APPNAME
DEFAULT_CONFIG_PATH = Path("/etc") / APPNAME / "config.yaml"


class StoreInitError(Exception):
    """The application directory, log file or mountmap could not be created."""

    pass


@dataclass
class Config:
    """Resolved runtime configuration."""

    opt_dir: Path = DEFAULT_OPT_DIR
    verbose: bool = False
    command_timeout: int = DEFAULT_TIMEOUT
    immutable: bool = True

    @property
    def log_file(self) -> Path:
        return self.opt_dir / f"{APPNAME}.log"

    @property
    def mountmap_file(self) -> Path:
        return self.opt_dir / "mountmap"


def load_config_file(path: Path) -> dict[str, Any]:
    """Load a YAML config file if it exists."""
    if not path.exists():
        return {}
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError):
        return {}
    return data if isinstance(data, dict) else {}


def verbose_from_env(value: str | None) -> bool:
    """AZNFS_VERBOSE is off when unset or "0", on otherwise."""
    return bool(value) and value != "0"


def load_config(
    path: Path | None = None,
    environ: dict[str, str] | None = None,
) -> Config:
    """
    Build the configuration: defaults -> config file -> environment.

    Args:
        path: Config file (default: $AZNFS_CONFIG or /etc/aznfs/config.yaml)
        environ: Environment mapping (default: os.environ)

    Returns:
        Resolved Config
    """
    if environ is None:
        environ = dict(os.environ)

    if path is None:
        path = Path(environ.get("AZNFS_CONFIG", DEFAULT_CONFIG_PATH))

    data = load_config_file(path)
    config = Config()

    if "opt_dir" in data:
        config.opt_dir = Path(data["opt_dir"])
    if "verbose" in data:
        config.verbose = bool(data["verbose"])
    if "command_timeout" in data:
        try:
            config.command_timeout = int(data["command_timeout"])
        except (TypeError, ValueError):
            pass
    if "immutable" in data:
        config.immutable = bool(data["immutable"])

    # Environment wins over the file
    if environ.get("AZNFS_OPTDIR"):
        config.opt_dir = Path(environ["AZNFS_OPTDIR"])
    if "AZNFS_VERBOSE" in environ:
        config.verbose = verbose_from_env(environ["AZNFS_VERBOSE"])

    return config


def ensure_layout(
    config: Config,
    context: "Context | None" = None,
    logger: "Logger | None" = None,
) -> None:
    """
    Create the application directory, log file and mountmap.

    The mountmap is left immutable when config.immutable is set.

    Raises:
        StoreInitError: If any of the three cannot be created
    """
    if logger is None:
        from aznfs.core.logging import get_logger
        logger = get_logger()

    steps = [
        (config.opt_dir, lambda: config.opt_dir.mkdir(parents=True, exist_ok=True)),
        (config.log_file, lambda: config.log_file.touch(exist_ok=True)),
        (config.mountmap_file, lambda: config.mountmap_file.touch(exist_ok=True)),
    ]
    for target, create in steps:
        try:
            create()
        except OSError as e:
            logger.error(f"[FATAL] Not able to create '{target}'.")
            raise StoreInitError(f"Not able to create '{target}': {e}") from e

    if config.immutable:
        from aznfs.lib.process import command_succeeds

        cmd = ["chattr", "+i", str(config.mountmap_file)]
        if not command_succeeds(cmd, context=context, timeout=config.command_timeout):
            logger.warning(f"Could not set immutable attribute on '{config.mountmap_file}'.")
