"""TOML reading and writing utilities.

Uses tomlkit to preserve formatting and comments when modifying
buildpack.toml and builder.toml files. Both are hand-maintained and
reviewed in pull requests, so rewrites must only touch the fields that
actually change.
"""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path
from typing import Any

import tomlkit


def load_toml(path: Path) -> tomlkit.TOMLDocument:
    """Load and parse a TOML file.

    Returns a TOMLDocument that preserves formatting when modified and saved.

    Raises:
        OSError: If the file cannot be read.
        TOMLKitError: If the file is not valid TOML.
    """
    return tomlkit.parse(path.read_text())


def save_toml(path: Path, doc: tomlkit.TOMLDocument) -> None:
    """Save a TOMLDocument back to disk, preserving original formatting."""
    path.write_text(tomlkit.dumps(doc))


def parse_toml(text: str) -> tomlkit.TOMLDocument:
    return tomlkit.parse(text)


def get_buildpack_id(doc: tomlkit.TOMLDocument) -> str | None:
    """Extract [buildpack].id, or None if missing or not a string."""
    value = doc.get("buildpack", {}).get("id")
    return str(value) if isinstance(value, str) else None


def get_buildpack_version(doc: tomlkit.TOMLDocument) -> str | None:
    """Extract [buildpack].version, or None if missing or not a string."""
    value = doc.get("buildpack", {}).get("version")
    return str(value) if isinstance(value, str) else None


def set_buildpack_version(doc: tomlkit.TOMLDocument, version: str) -> None:
    buildpack = doc["buildpack"]
    buildpack["version"] = version  # type: ignore[index]


def get_image_repository(doc: tomlkit.TOMLDocument) -> str | None:
    """Extract [metadata.release.image].repository if present."""
    value = (
        doc.get("metadata", {})
        .get("release", {})
        .get("image", {})
        .get("repository")
    )
    return str(value) if isinstance(value, str) else None


def get_targets(doc: tomlkit.TOMLDocument) -> list[tuple[str | None, str | None]]:
    """Collect (os, arch) pairs from [[targets]].

    Composite buildpacks cannot declare [[targets]] in the CNB spec, so
    [[metadata.targets]] is consulted as a fallback.
    """
    targets = doc.get("targets")
    if not targets:
        targets = doc.get("metadata", {}).get("targets", [])
    pairs: list[tuple[str | None, str | None]] = []
    for target in targets or []:
        os_name = target.get("os")
        arch = target.get("arch")
        pairs.append(
            (
                str(os_name) if isinstance(os_name, str) else None,
                str(arch) if isinstance(arch, str) else None,
            )
        )
    return pairs


def has_order(doc: tomlkit.TOMLDocument) -> bool:
    return "order" in doc


def iter_group_tables(
    items: Any, path: tuple[int, ...] = ()
) -> Iterator[tuple[tuple[int, ...], Any]]:
    """Yield (path, table) for every buildpack entry in nested order groups.

    ``items`` is the value of an ``order`` key: a list of orders, each a
    table with a ``group`` list. A group entry that itself has a ``group``
    list is a nested group and is descended into; every other entry is a
    buildpack reference. The path records the index taken at each level.

    The yielded tables are the live tomlkit containers, so callers may
    rewrite fields in place.
    """
    for index, entry in enumerate(items or []):
        entry_path = (*path, index)
        nested = entry.get("group") if hasattr(entry, "get") else None
        if nested is not None:
            yield from iter_group_tables(nested, entry_path)
        else:
            yield entry_path, entry
