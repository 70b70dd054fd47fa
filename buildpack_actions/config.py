"""Repository configuration for buildpack-actions.

An optional ``buildpack-actions.toml`` at the repository root tunes the
scanner and the release matrix. Every key has a default, so most
repositories never need the file::

    package_dir = "packaged"          # where packaged buildpacks are written
    ignore = ["examples/*"]           # extra directory globs to skip

    [[targets]]                        # the enumerated target set
    os = "linux"
    arch = "amd64"
    compiler_triple = "x86_64-unknown-linux-musl"
"""

from __future__ import annotations

import difflib
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError
from tomlkit.exceptions import TOMLKitError

from .errors import ConfigError
from .models import TargetSpec
from .toml import load_toml

CONFIG_FILENAME = "buildpack-actions.toml"

DEFAULT_TARGETS = (
    TargetSpec(os="linux", arch="amd64", compiler_triple="x86_64-unknown-linux-musl"),
    TargetSpec(os="linux", arch="arm64", compiler_triple="aarch64-unknown-linux-musl"),
)

# libcnb assumes linux/amd64 when a compiled buildpack declares no targets.
DEFAULT_TARGET = DEFAULT_TARGETS[0]


class ActionsConfig(BaseModel):
    """Validated repository configuration.

    Attributes:
        package_dir: Directory (relative to the repository root) that
            packaged buildpacks are written to. Never scanned.
        ignore: Extra fnmatch globs for directories the scanner skips.
        targets: The repository's enumerated target set.
    """

    package_dir: str = "packaged"
    ignore: list[str] = Field(default_factory=list)
    targets: tuple[TargetSpec, ...] = DEFAULT_TARGETS

    def find_target(self, os_name: str, arch: str) -> TargetSpec | None:
        for target in self.targets:
            if target.os == os_name and target.arch == arch:
                return target
        return None


VALID_KEYS = frozenset(ActionsConfig.model_fields)


def _suggest_key(unknown: str) -> str:
    matches = difflib.get_close_matches(unknown, VALID_KEYS, n=1, cutoff=0.6)
    if matches:
        return f"Did you mean '{matches[0]}'?"
    return f"Valid keys are: {', '.join(sorted(VALID_KEYS))}"


def load_config(root: Path) -> ActionsConfig:
    """Load and validate ``buildpack-actions.toml`` from the repository root.

    Returns the defaults when the file does not exist.

    Raises:
        ConfigError: If the file cannot be parsed, has unknown keys, or has
            values of the wrong type.
    """
    path = root / CONFIG_FILENAME
    if not path.is_file():
        return ActionsConfig()

    try:
        doc = load_toml(path)
    except (OSError, TOMLKitError) as exc:
        raise ConfigError(path, str(exc)) from exc

    raw: dict[str, Any] = doc.unwrap()
    for key in raw:
        if key not in VALID_KEYS:
            raise ConfigError(path, f"Unknown key '{key}'. {_suggest_key(key)}")

    try:
        config = ActionsConfig.model_validate(raw)
    except ValidationError as exc:
        raise ConfigError(path, str(exc)) from exc

    if not config.targets:
        raise ConfigError(path, "at least one target is required")
    return config
