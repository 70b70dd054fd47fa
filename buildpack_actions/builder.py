"""Builder reference propagation.

A builder repository holds one directory per builder, each with a
builder.toml listing the buildpacks it ships::

    [[buildpacks]]
    id = "heroku/java"
    uri = "docker://docker.io/heroku/buildpack-java@sha256:..."

    [[order]]
    [[order.group]]
    id = "heroku/java"
    version = "1.0.0"

Order groups may nest: an entry with its own ``group`` array is a group,
every other entry references a buildpack. After a release, the new
version and image address of each published buildpack are written into
every reference, at any depth.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import tomlkit
from tomlkit.exceptions import TOMLKitError

from .errors import MalformedBuilder, UnknownBuilder
from .models import BuilderReference, BuildpackRef, BuildpackUpdate, Group, OrderNode
from .output import info, step
from .toml import iter_group_tables, load_toml, save_toml

BUILDER_FILENAME = "builder.toml"


@dataclass
class PropagationResult:
    """Updated builder documents and how many references changed in each."""

    documents: dict[str, tomlkit.TOMLDocument] = field(default_factory=dict)
    updated_counts: dict[str, int] = field(default_factory=dict)


def walk_order(doc: tomlkit.TOMLDocument) -> Iterator[tuple[tuple[int, ...], Any]]:
    """Yield (path, table) for every buildpack reference in [[order]]."""
    yield from iter_group_tables(doc.get("order"))


def _require_order(builder_name: str, doc: tomlkit.TOMLDocument) -> None:
    if "order" not in doc:
        raise MalformedBuilder(builder_name, "missing required key 'order'")


def _entry_id(builder_name: str, path: tuple[int, ...], entry: Any) -> str:
    value = entry.get("id") if hasattr(entry, "get") else None
    if not isinstance(value, str):
        location = ".".join(str(i) for i in path)
        raise MalformedBuilder(builder_name, f"order entry {location} has no id")
    return str(value)


def parse_order(doc: tomlkit.TOMLDocument, builder_name: str = "") -> list[OrderNode]:
    """Build the order tree of a builder.

    Raises:
        MalformedBuilder: If [[order]] is missing or an entry has no id.
    """
    _require_order(builder_name, doc)

    def nodes(items: Any, path: tuple[int, ...]) -> list[OrderNode]:
        result: list[OrderNode] = []
        for index, entry in enumerate(items or []):
            entry_path = (*path, index)
            nested = entry.get("group") if hasattr(entry, "get") else None
            if nested is not None:
                children = nodes(nested, entry_path)
                result.append(Group(path=entry_path, children=children))
                continue
            version = entry.get("version")
            result.append(
                BuildpackRef(
                    id=_entry_id(builder_name, entry_path, entry),
                    version=str(version) if version is not None else None,
                    path=entry_path,
                )
            )
        return result

    return nodes(doc["order"], ())


def _buildpack_uris(doc: tomlkit.TOMLDocument) -> dict[str, str]:
    uris: dict[str, str] = {}
    for entry in doc.get("buildpacks", []):
        bp_id, uri = entry.get("id"), entry.get("uri")
        if isinstance(bp_id, str) and isinstance(uri, str):
            uris[str(bp_id)] = str(uri)
    return uris


def find_references(
    builder_name: str, doc: tomlkit.TOMLDocument
) -> list[BuilderReference]:
    """Every buildpack reference in a builder's order groups, in document order.

    ``current_address`` is the uri the builder's [[buildpacks]] table holds
    for the referenced id, if any.
    """
    _require_order(builder_name, doc)
    uris = _buildpack_uris(doc)
    references = []
    for path, entry in walk_order(doc):
        bp_id = _entry_id(builder_name, path, entry)
        references.append(
            BuilderReference(
                builder_name=builder_name,
                order_group_path=path,
                buildpack_id=bp_id,
                current_address=uris.get(bp_id),
            )
        )
    return references


def _set(table: Any, key: str, value: str) -> None:
    # Leave unchanged values alone so their formatting survives.
    if table.get(key) != value:
        table[key] = value


def propagate(
    builder_docs: Mapping[str, tomlkit.TOMLDocument],
    updates: Mapping[str, BuildpackUpdate],
    builder_names: Iterable[str],
) -> PropagationResult:
    """Write new buildpack versions and addresses into builder documents.

    Documents are changed in place. In each selected builder, the uri of
    every matching [[buildpacks]] entry and the version of every matching
    order-group reference, at any depth, are rewritten. Ids that match
    nothing are not an error; they show up as a zero count.

    Raises:
        UnknownBuilder: If a name is not in builder_docs. Raised before any
            document is touched.
        MalformedBuilder: If a selected builder has no [[order]] or an
            order entry without an id.
    """
    names = list(builder_names)
    for name in names:
        if name not in builder_docs:
            raise UnknownBuilder(name, sorted(builder_docs))
    for name in names:
        _require_order(name, builder_docs[name])
        for path, entry in walk_order(builder_docs[name]):
            _entry_id(name, path, entry)

    result = PropagationResult()
    for name in names:
        doc = builder_docs[name]
        count = 0
        for entry in doc.get("buildpacks", []):
            update = updates.get(entry.get("id"))
            if update is not None:
                _set(entry, "uri", update.address)
                count += 1
        for _, entry in walk_order(doc):
            update = updates.get(entry.get("id"))
            if update is not None:
                _set(entry, "version", update.version)
                count += 1
        result.documents[name] = doc
        result.updated_counts[name] = count
    return result


def available_builders(builder_repo: Path) -> list[str]:
    if not builder_repo.is_dir():
        return []
    return sorted(
        child.name
        for child in builder_repo.iterdir()
        if (child / BUILDER_FILENAME).is_file()
    )


def load_builders(
    builder_repo: Path, names: Iterable[str]
) -> dict[str, tomlkit.TOMLDocument]:
    """Read <builder_repo>/<name>/builder.toml for every name.

    Raises:
        UnknownBuilder: If a builder.toml does not exist.
        MalformedBuilder: If a builder.toml is not valid TOML.
    """
    step("Loading builders")
    docs: dict[str, tomlkit.TOMLDocument] = {}
    for name in names:
        path = builder_repo / name / BUILDER_FILENAME
        if not path.is_file():
            raise UnknownBuilder(name, available_builders(builder_repo))
        try:
            docs[name] = load_toml(path)
        except (OSError, TOMLKitError) as exc:
            raise MalformedBuilder(name, str(exc)) from exc
        info(str(path))
    return docs


def save_builders(
    builder_repo: Path, documents: Mapping[str, tomlkit.TOMLDocument]
) -> None:
    for name, doc in documents.items():
        path = builder_repo / name / BUILDER_FILENAME
        save_toml(path, doc)
        info(f"Updated builder: {path}")
