"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest


def buildpack_toml(
    bp_id: str,
    version: str,
    *,
    order: list[list[str | tuple[str, str]]] | None = None,
    targets: list[tuple[str, str]] | None = None,
    repository: str | None = None,
    extra: str = "",
) -> str:
    """Render a buildpack.toml.

    ``order`` is a list of groups; each group entry is an id, or an
    (id, version) pair for a pinned reference.
    """
    lines = [
        'api = "0.10"',
        "",
        "[buildpack]",
        f'id = "{bp_id}"',
        f'version = "{version}"',
        f'name = "Test {bp_id}"',
    ]
    for os_name, arch in targets or []:
        lines += ["", "[[targets]]", f'os = "{os_name}"', f'arch = "{arch}"']
    for group in order or []:
        lines += ["", "[[order]]"]
        for entry in group:
            dep_id, dep_version = entry if isinstance(entry, tuple) else (entry, None)
            lines += ["", "[[order.group]]", f'id = "{dep_id}"']
            if dep_version:
                lines.append(f'version = "{dep_version}"')
    if repository:
        lines += ["", "[metadata.release.image]", f'repository = "{repository}"']
    if extra:
        lines += ["", extra.strip()]
    return "\n".join(lines) + "\n"


@pytest.fixture
def write_buildpack(tmp_path: Path) -> Callable[..., Path]:
    """Create a buildpack directory under tmp_path.

    ``kind`` is "cargo" (compiled), "bash" (bin/detect + bin/build),
    "composite" (no build files; pass ``order``) or "none" (descriptor
    only).
    """

    def _write(
        rel_dir: str,
        bp_id: str,
        version: str = "1.0.0",
        *,
        kind: str = "cargo",
        **toml_options,
    ) -> Path:
        directory = tmp_path / rel_dir
        directory.mkdir(parents=True, exist_ok=True)
        (directory / "buildpack.toml").write_text(
            buildpack_toml(bp_id, version, **toml_options)
        )
        if kind == "cargo":
            (directory / "Cargo.toml").write_text(
                f'[package]\nname = "{bp_id.replace("/", "-")}"\n'
            )
        elif kind == "bash":
            (directory / "bin").mkdir(exist_ok=True)
            for name in ("detect", "build"):
                (directory / "bin" / name).write_text("#!/usr/bin/env bash\n")
        return directory

    return _write


def changelog_text(
    unreleased: str = "",
    releases: list[tuple[str, str, str]] | None = None,
) -> str:
    """Render a Keep a Changelog document.

    ``releases`` holds (version, date, body) tuples, newest first.
    """
    parts = [
        "# Changelog",
        "",
        "All notable changes to this project will be documented in this file.",
        "",
        "## [Unreleased]",
        "",
    ]
    if unreleased:
        parts += [unreleased.strip(), ""]
    for version, date, body in releases or []:
        parts += [f"## [{version}] - {date}", ""]
        if body:
            parts += [body.strip(), ""]
    return "\n".join(parts)


@pytest.fixture
def write_changelog() -> Callable[..., Path]:
    """Write CHANGELOG.md into a buildpack directory."""

    def _write(
        directory: Path,
        unreleased: str = "",
        releases: list[tuple[str, str, str]] | None = None,
    ) -> Path:
        path = directory / "CHANGELOG.md"
        path.write_text(changelog_text(unreleased, releases))
        return path

    return _write
