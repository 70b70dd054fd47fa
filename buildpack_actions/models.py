"""Data models for buildpack-actions.

These Pydantic models represent the core data structures shared by the
scanner, the dependency graph, the release matrix, the changelog
coordinator and the builder propagator.
"""

from __future__ import annotations

import datetime
import re
from enum import Enum
from pathlib import Path
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

Bump = Literal["major", "minor", "patch"]

# CNB buildpack ids: lowercase alphanumerics plus ".", "-" and "/" separators.
_BUILDPACK_ID_RE = re.compile(r"^[a-z0-9][a-z0-9.\-]*(/[a-z0-9][a-z0-9.\-]*)*$")
_RESERVED_IDS = {"app", "config", "sbom"}


def parse_buildpack_id(value: str) -> str:
    """Validate a buildpack id and return it unchanged.

    Raises:
        ValueError: If the id is empty, reserved, or contains characters
            outside the CNB id alphabet.
    """
    if not value:
        raise ValueError("buildpack id must not be empty")
    if value in _RESERVED_IDS:
        raise ValueError(f"buildpack id {value!r} is reserved")
    if not _BUILDPACK_ID_RE.match(value):
        raise ValueError(f"invalid buildpack id {value!r}")
    return value


def buildpack_directory_name(buildpack_id: str) -> str:
    """Stem for packaged output paths (heroku/procfile → heroku_procfile)."""
    return buildpack_id.replace("/", "_")


class BuildpackKind(str, Enum):
    SIMPLE = "simple"
    COMPOSITE = "composite"


class ChangeKind(str, Enum):
    """Keep a Changelog change types."""

    ADDED = "Added"
    CHANGED = "Changed"
    DEPRECATED = "Deprecated"
    REMOVED = "Removed"
    FIXED = "Fixed"
    SECURITY = "Security"


class TargetSpec(BaseModel):
    """One cell of the cross-compilation matrix.

    Attributes:
        os: Target operating system (e.g. "linux").
        arch: Target architecture (e.g. "amd64").
        compiler_triple: Compiler target triple used for compiled buildpacks.
    """

    model_config = ConfigDict(frozen=True)

    os: str
    arch: str
    compiler_triple: str

    @classmethod
    def implicit(cls) -> TargetSpec:
        """The single target of a platform-independent (script-only) buildpack."""
        return cls(os="any", arch="any", compiler_triple="noarch")

    @property
    def is_implicit(self) -> bool:
        return self == TargetSpec.implicit()

    @property
    def name(self) -> str:
        """Suffix used in tags and .cnb filenames (e.g. "linux-amd64")."""
        return f"{self.os}-{self.arch}"

    @property
    def platform(self) -> str:
        """OCI platform string (e.g. "linux/amd64")."""
        return f"{self.os}/{self.arch}"


class BuildpackDescriptor(BaseModel):
    """A buildpack discovered in the repository.

    Attributes:
        id: Buildpack id from [buildpack].id.
        version: Current version from [buildpack].version.
        kind: Simple (compiled or script) or composite (has [[order]]).
        source_dir: Directory holding buildpack.toml.
        dependencies: Ids referenced by a composite's order groups. Always
            empty for simple buildpacks.
        targets: Applicable targets. Empty for composites, non-empty for
            simple buildpacks.
        script_only: True when there is nothing to compile (no Cargo.toml):
            bash buildpacks and descriptor-only buildpacks.
        image_repository: Image repository from
            [metadata.release.image].repository; defaults to the id.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    version: str
    kind: BuildpackKind
    source_dir: Path
    dependencies: frozenset[str] = frozenset()
    targets: tuple[TargetSpec, ...] = ()
    script_only: bool = False
    image_repository: str | None = None

    @property
    def descriptor_path(self) -> Path:
        return self.source_dir / "buildpack.toml"

    @property
    def changelog_path(self) -> Path:
        return self.source_dir / "CHANGELOG.md"

    @property
    def repository(self) -> str:
        return self.image_repository or self.id


class PackageJob(BaseModel):
    """One row of the release matrix.

    Consumed by the CI matrix fan-out; one external packaging/publishing
    job runs per row.
    """

    model_config = ConfigDict(frozen=True)

    buildpack_id: str
    buildpack_kind: BuildpackKind
    buildpack_version: str
    output_dir: str
    target: TargetSpec | None
    temporary_tag: str
    stable_tag: str
    oci_target: str | None
    cnb_file: str
    stage: int = 0
    dependency_outputs: dict[str, list[str]] = Field(default_factory=dict)


class ImageIndex(BaseModel):
    """Multi-platform image index for a buildpack published to several targets."""

    model_config = ConfigDict(frozen=True)

    buildpack_id: str
    stable_tag: str
    temporary_tag: str
    manifests: tuple[str, ...]


class ChangelogEntry(BaseModel):
    """One buildpack's changes for a single version (or Unreleased).

    Attributes:
        buildpack_id: Buildpack the entry belongs to.
        version: Released version, or None for the Unreleased section.
        date: Release date, or None for the Unreleased section.
        body: Section text exactly as it appears in CHANGELOG.md.
    """

    buildpack_id: str
    version: str | None = None
    date: datetime.date | None = None
    body: str = ""

    @property
    def sections(self) -> dict[ChangeKind, list[str]]:
        """Bullets grouped by their "### Kind" sub-heading.

        Bullets before any sub-heading, or under an unknown sub-heading,
        are filed under Changed.
        """
        sections: dict[ChangeKind, list[str]] = {}
        current = ChangeKind.CHANGED
        for line in self.body.splitlines():
            stripped = line.strip()
            if stripped.startswith("### "):
                title = stripped[4:].strip().capitalize()
                try:
                    current = ChangeKind(title)
                except ValueError:
                    current = ChangeKind.CHANGED
            elif stripped.startswith(("- ", "* ")):
                sections.setdefault(current, []).append(stripped[2:].strip())
            elif stripped and line.startswith((" ", "\t")) and current in sections:
                # continuation of a wrapped bullet
                sections[current][-1] += " " + stripped
        return sections


class VersionBump(BaseModel):
    """Records a version change for a buildpack.

    Attributes:
        old: The version before bumping.
        new: The version after bumping.
    """

    old: str
    new: str


class ReleasePlan(BaseModel):
    """Outcome of prepare_release.

    Attributes:
        bump: The repository-wide bump instruction.
        per_buildpack: Version changes, only for buildpacks being released.
        aggregate_changelog: Markdown of every released buildpack's new
            section, in topological order.
    """

    bump: Bump
    per_buildpack: dict[str, VersionBump] = Field(default_factory=dict)
    aggregate_changelog: str = ""


class BuilderReference(BaseModel):
    """A buildpack reference found inside a builder's order groups."""

    model_config = ConfigDict(frozen=True)

    builder_name: str
    order_group_path: tuple[int, ...]
    buildpack_id: str
    current_address: str | None


class BuildpackUpdate(BaseModel):
    """A newly published buildpack, as reported by the publish step."""

    model_config = ConfigDict(frozen=True)

    version: str
    address: str


class BuildpackRef(BaseModel):
    kind: Literal["buildpack"] = "buildpack"
    id: str
    version: str | None = None
    path: tuple[int, ...]


class Group(BaseModel):
    kind: Literal["group"] = "group"
    path: tuple[int, ...]
    children: list[OrderNode] = Field(default_factory=list)


OrderNode = Annotated[Union[BuildpackRef, Group], Field(discriminator="kind")]

Group.model_rebuild()
