"""Coordinated version bumps and changelog aggregation.

prepare_release() bumps every buildpack that has unreleased changes,
promotes their Unreleased changelog sections and aggregates the new
sections into one release note. generate_changelog() renders that same
aggregate for an existing version without touching any file.
"""

from __future__ import annotations

import datetime
from collections.abc import Iterable
from pathlib import Path

import tomlkit
from tomlkit.exceptions import TOMLKitError

from .changelog import (
    Changelog,
    parse_changelog,
    promote_unreleased,
    update_link_declarations,
)
from .errors import ChangelogError, MalformedDescriptor
from .graph import DependencyGraph
from .models import (
    BuildpackDescriptor,
    BuildpackKind,
    Bump,
    ReleasePlan,
    VersionBump,
)
from .output import info, step
from .toml import iter_group_tables, load_toml, set_buildpack_version
from .versions import bump_version, highest_version

NO_CHANGES = "- No changes."


def read_changelog_text(descriptor: BuildpackDescriptor) -> str | None:
    """Contents of a buildpack's CHANGELOG.md, or None if it has none."""
    path = descriptor.changelog_path
    if not path.is_file():
        return None
    try:
        return path.read_text()
    except OSError as exc:
        raise ChangelogError(path, str(exc)) from exc


def _parse(descriptor: BuildpackDescriptor, text: str) -> Changelog:
    try:
        return parse_changelog(text, descriptor.id)
    except ChangelogError as exc:
        raise ChangelogError(descriptor.changelog_path, exc.reason) from exc


def update_descriptor(
    descriptor: BuildpackDescriptor,
    version: str,
    dependency_versions: dict[str, str],
) -> str:
    """Rewrite buildpack.toml with a new version and dependency pins.

    Only [buildpack].version and the version of order-group entries whose
    id is in dependency_versions change; the rest of the file is kept as is.
    """
    path = descriptor.descriptor_path
    try:
        doc = load_toml(path)
    except (OSError, TOMLKitError) as exc:
        raise MalformedDescriptor(path, str(exc)) from exc

    set_buildpack_version(doc, version)
    if dependency_versions and "order" in doc:
        for _, entry in iter_group_tables(doc["order"]):
            dep_id = entry.get("id")
            if dep_id in dependency_versions and "version" in entry:
                entry["version"] = dependency_versions[dep_id]
    return tomlkit.dumps(doc)


def prepare_release(
    graph: DependencyGraph,
    descriptors: Iterable[BuildpackDescriptor],
    bump: Bump,
    *,
    date: datetime.date | None = None,
    dependency_updates: bool = True,
    repository_url: str | None = None,
    starting_version: str | None = None,
    write: bool = True,
) -> ReleasePlan:
    """Bump every buildpack with unreleased changes.

    Args:
        graph: Validated dependency graph.
        descriptors: Buildpacks to consider for release.
        bump: SemVer increment applied to every released buildpack.
        date: Release date; defaults to today.
        dependency_updates: Pin released dependencies in released composites
            and announce them in the composite's changelog.
        repository_url: When given, regenerate the changelog's release link
            definitions against this repository.
        starting_version: Oldest version to generate link definitions for.
        write: Write buildpack.toml and CHANGELOG.md changes to disk.

    Returns:
        The release plan. Buildpacks without a changelog or with an empty
        Unreleased section are absent from it.

    Raises:
        InvalidBump: If a released buildpack's version cannot be bumped.
        ChangelogError: If a changelog cannot be read, parsed or written.
        MalformedDescriptor: If a buildpack.toml cannot be rewritten or
            written.
    """
    step(f"Preparing {bump} release")
    date = date or datetime.date.today()
    wanted = {d.id: d for d in descriptors}
    order = [bp_id for bp_id in graph.topological_order() if bp_id in wanted]

    changelogs: dict[str, str] = {}
    bumps: dict[str, VersionBump] = {}
    for bp_id in order:
        descriptor = wanted[bp_id]
        text = read_changelog_text(descriptor)
        if text is None:
            info(f"{bp_id}: no CHANGELOG.md, skipping")
            continue
        if _parse(descriptor, text).unreleased is None:
            info(f"{bp_id}: no unreleased changes, skipping")
            continue
        changelogs[bp_id] = text
        bumps[bp_id] = VersionBump(
            old=descriptor.version,
            new=bump_version(descriptor.version, bump, bp_id),
        )

    # Nothing is written until every change has been computed.
    writes: list[tuple[Path, str, type[ChangelogError | MalformedDescriptor]]] = []
    sections: list[str] = []
    for bp_id, version_bump in bumps.items():
        descriptor = wanted[bp_id]
        dependency_versions: dict[str, str] = {}
        if dependency_updates and descriptor.kind is BuildpackKind.COMPOSITE:
            dependency_versions = {
                dep: bumps[dep].new
                for dep in sorted(descriptor.dependencies)
                if dep in bumps
            }

        contents = update_descriptor(descriptor, version_bump.new, dependency_versions)
        changelog = promote_unreleased(
            changelogs[bp_id], version_bump.new, date, dependency_versions
        )
        if changelog is None:
            raise ChangelogError(
                descriptor.changelog_path, "Unreleased section vanished"
            )
        if repository_url:
            changelog = update_link_declarations(
                changelog, repository_url, starting_version
            )

        entry = _parse(descriptor, changelog).releases[version_bump.new]
        sections.append(f"## {bp_id}\n\n{entry.body or NO_CHANGES}")
        writes.append((descriptor.descriptor_path, contents, MalformedDescriptor))
        writes.append((descriptor.changelog_path, changelog, ChangelogError))

    if write:
        for path, contents, error in writes:
            try:
                path.write_text(contents)
            except OSError as exc:
                raise error(path, f"could not write: {exc}") from exc

    for bp_id, version_bump in bumps.items():
        info(f"{bp_id}: {version_bump.old} → {version_bump.new}")

    return ReleasePlan(
        bump=bump,
        per_buildpack=bumps,
        aggregate_changelog="\n\n".join(sections),
    )


def version_range(plan: ReleasePlan) -> tuple[str | None, str | None]:
    """Highest version before and after the release."""
    old = highest_version([b.old for b in plan.per_buildpack.values()])
    new = highest_version([b.new for b in plan.per_buildpack.values()])
    return old, new


def generate_changelog(
    graph: DependencyGraph,
    descriptors: Iterable[BuildpackDescriptor],
    version: str | None = None,
) -> str:
    """Render one section per buildpack for a version, or for Unreleased.

    Buildpacks appear in topological order as "## <id>" followed by the
    section body, or "- No changes." when the body is empty. Buildpacks
    whose changelog lacks the requested version are left out. Nothing is
    written.

    Raises:
        ChangelogError: If a changelog cannot be read or parsed.
    """
    wanted = {d.id: d for d in descriptors}
    sections: list[str] = []
    for bp_id in graph.topological_order():
        if bp_id not in wanted:
            continue
        descriptor = wanted[bp_id]
        text = read_changelog_text(descriptor)
        if text is None:
            continue
        changelog = _parse(descriptor, text)
        if version is None:
            body = changelog.unreleased
        else:
            entry = changelog.releases.get(version)
            if entry is None:
                continue
            body = entry.body
        sections.append(f"## {bp_id}\n\n{body or NO_CHANGES}")
    return "\n\n".join(sections).strip() + "\n\n"
