"""Tests for aznfs.core.config module."""

from pathlib import Path

import pytest

from aznfs.core.config import (
    DEFAULT_OPT_DIR,
    Config,
    StoreInitError,
    ensure_layout,
    load_config,
    load_config_file,
    verbose_from_env,
)
from tests.conftest import failed, log_text


class TestLoadConfigFile:
    """Tests for load_config_file."""

    def test_returns_empty_dict_if_file_missing(self, tmp_path):
        """Returns empty dict when file doesn't exist."""
        assert load_config_file(tmp_path / "nonexistent.yaml") == {}

    def test_loads_yaml_file(self, tmp_path):
        """Loads and parses YAML config file."""
        config_file = tmp_path / "config.yaml"
        config_file.write_text("opt_dir: /var/lib/aznfs\nverbose: true\n")

        assert load_config_file(config_file) == {"opt_dir": "/var/lib/aznfs", "verbose": True}

    def test_returns_empty_dict_on_invalid_yaml(self, tmp_path):
        """Returns empty dict when YAML is invalid."""
        config_file = tmp_path / "config.yaml"
        config_file.write_text("invalid: yaml: content: [")

        assert load_config_file(config_file) == {}

    def test_returns_empty_dict_for_non_mapping(self, tmp_path):
        """A YAML list is not a config."""
        config_file = tmp_path / "config.yaml"
        config_file.write_text("- a\n- b\n")

        assert load_config_file(config_file) == {}


class TestVerboseFromEnv:
    """AZNFS_VERBOSE semantics."""

    @pytest.mark.parametrize("value,expected", [
        (None, False),
        ("", False),
        ("0", False),
        ("1", True),
        ("yes", True),
    ])
    def test_values(self, value, expected):
        assert verbose_from_env(value) is expected


class TestLoadConfig:
    """Tests for load_config layering."""

    def test_defaults(self, tmp_path):
        """No file and no environment gives defaults."""
        config = load_config(tmp_path / "missing.yaml", environ={})

        assert config.opt_dir == DEFAULT_OPT_DIR
        assert config.log_file == DEFAULT_OPT_DIR / "aznfs.log"
        assert config.mountmap_file == DEFAULT_OPT_DIR / "mountmap"
        assert config.verbose is False
        assert config.immutable is True

    def test_file_values(self, tmp_path):
        """Values from the YAML file are applied."""
        config_file = tmp_path / "config.yaml"
        config_file.write_text(
            "opt_dir: /srv/aznfs\nverbose: true\ncommand_timeout: 5\nimmutable: false\n"
        )

        config = load_config(config_file, environ={})

        assert config.opt_dir == Path("/srv/aznfs")
        assert config.verbose is True
        assert config.command_timeout == 5
        assert config.immutable is False

    def test_bad_timeout_keeps_default(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("command_timeout: soon\n")

        assert load_config(config_file, environ={}).command_timeout == Config().command_timeout

    def test_environment_overrides_file(self, tmp_path):
        """AZNFS_OPTDIR and AZNFS_VERBOSE win over the file."""
        config_file = tmp_path / "config.yaml"
        config_file.write_text("opt_dir: /srv/aznfs\nverbose: true\n")

        config = load_config(
            config_file,
            environ={"AZNFS_OPTDIR": str(tmp_path), "AZNFS_VERBOSE": "0"},
        )

        assert config.opt_dir == tmp_path
        assert config.verbose is False

    def test_config_path_from_environment(self, tmp_path):
        """AZNFS_CONFIG names the file when no path is given."""
        config_file = tmp_path / "custom.yaml"
        config_file.write_text("command_timeout: 7\n")

        config = load_config(environ={"AZNFS_CONFIG": str(config_file)})

        assert config.command_timeout == 7


class TestEnsureLayout:
    """Tests for startup layout creation."""

    def test_creates_directory_and_files(self, tmp_path, logger, mock_context):
        config = Config(opt_dir=tmp_path / "opt" / "aznfs")
        ctx = mock_context(command_outputs={("chattr", "+i", str(config.mountmap_file)): ""})

        ensure_layout(config, context=ctx, logger=logger)

        assert config.log_file.exists()
        assert config.mountmap_file.exists()
        assert ["chattr", "+i", str(config.mountmap_file)] in ctx.commands_run

    def test_keeps_existing_mountmap(self, tmp_path, logger, mock_context):
        config = Config(opt_dir=tmp_path, immutable=False)
        config.mountmap_file.write_text("a 10.0.0.1 20.0.0.1\n")

        ensure_layout(config, context=mock_context(), logger=logger)

        assert config.mountmap_file.read_text() == "a 10.0.0.1 20.0.0.1\n"

    def test_skips_chattr_when_not_immutable(self, tmp_path, logger, mock_context):
        config = Config(opt_dir=tmp_path, immutable=False)
        ctx = mock_context()

        ensure_layout(config, context=ctx, logger=logger)

        assert ctx.commands_run == []

    def test_chattr_failure_is_a_warning(self, tmp_path, logger, mock_context):
        config = Config(opt_dir=tmp_path)
        cmd = ("chattr", "+i", str(config.mountmap_file))
        ctx = mock_context(command_outputs={cmd: failed(cmd)})

        ensure_layout(config, context=ctx, logger=logger)

        assert "Could not set immutable attribute" in log_text(logger)

    def test_unwritable_directory_is_fatal(self, tmp_path, logger, mock_context):
        """A regular file where the directory should be is fatal."""
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        config = Config(opt_dir=blocker / "aznfs", immutable=False)

        with pytest.raises(StoreInitError):
            ensure_layout(config, context=mock_context(), logger=logger)

        assert "[FATAL] Not able to create" in log_text(logger)
