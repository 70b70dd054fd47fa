"""Tests for buildpack_actions.config."""

from __future__ import annotations

from pathlib import Path

import pytest

from buildpack_actions.config import DEFAULT_TARGETS, ActionsConfig, load_config
from buildpack_actions.errors import ConfigError


class TestLoadConfig:
    def test_defaults_without_file(self, tmp_path: Path) -> None:
        config = load_config(tmp_path)
        assert config == ActionsConfig()
        assert config.package_dir == "packaged"
        assert config.targets == DEFAULT_TARGETS

    def test_reads_file(self, tmp_path: Path) -> None:
        (tmp_path / "buildpack-actions.toml").write_text(
            'package_dir = "out"\n'
            'ignore = ["fixtures/*"]\n\n'
            "[[targets]]\n"
            'os = "linux"\n'
            'arch = "amd64"\n'
            'compiler_triple = "x86_64-unknown-linux-gnu"\n'
        )
        config = load_config(tmp_path)
        assert config.package_dir == "out"
        assert config.ignore == ["fixtures/*"]
        assert len(config.targets) == 1
        target = config.find_target("linux", "amd64")
        assert target is not None
        assert target.compiler_triple == "x86_64-unknown-linux-gnu"
        assert config.find_target("linux", "arm64") is None

    def test_unknown_key_suggests(self, tmp_path: Path) -> None:
        (tmp_path / "buildpack-actions.toml").write_text('package_dirs = "out"\n')
        with pytest.raises(ConfigError, match="Did you mean 'package_dir'"):
            load_config(tmp_path)

    def test_wrong_type(self, tmp_path: Path) -> None:
        (tmp_path / "buildpack-actions.toml").write_text("ignore = 3\n")
        with pytest.raises(ConfigError, match="buildpack-actions.toml"):
            load_config(tmp_path)

    def test_empty_targets(self, tmp_path: Path) -> None:
        (tmp_path / "buildpack-actions.toml").write_text("targets = []\n")
        with pytest.raises(ConfigError, match="at least one target"):
            load_config(tmp_path)

    def test_invalid_toml(self, tmp_path: Path) -> None:
        (tmp_path / "buildpack-actions.toml").write_text("package_dir = \n")
        with pytest.raises(ConfigError):
            load_config(tmp_path)
