"""Error taxonomy for buildpack-actions.

Every failure the core can produce is a subclass of BuildpackActionsError.
The CLI converts these into click exceptions, so the message of each error
must name the buildpack, builder, path or cycle that was involved.
"""

from __future__ import annotations

from pathlib import Path


class BuildpackActionsError(Exception):
    """Base class for all buildpack-actions errors."""


class ConfigError(BuildpackActionsError):
    """Raised when buildpack-actions.toml is invalid."""

    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Invalid configuration\nPath: {path}\nError: {reason}")


class ScanError(BuildpackActionsError):
    """Raised when the repository cannot be scanned."""


class MalformedDescriptor(ScanError):
    """A buildpack.toml is missing required fields or has invalid values."""

    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(
            f"Failed to read buildpack descriptor\nPath: {path}\nError: {reason}"
        )


class GraphError(BuildpackActionsError):
    """Raised when the buildpack dependency graph is inconsistent."""


class DuplicateId(GraphError):
    def __init__(self, buildpack_id: str, paths: list[Path]) -> None:
        self.buildpack_id = buildpack_id
        self.paths = paths
        locations = "\n".join(f"  - {p}" for p in paths)
        super().__init__(
            f"Buildpack id {buildpack_id} is declared more than once:\n{locations}"
        )


class DanglingReference(GraphError):
    def __init__(self, source: str, target: str) -> None:
        self.source = source
        self.target = target
        super().__init__(
            f"Composite buildpack {source} references unknown buildpack {target}"
        )


class CyclicDependency(GraphError):
    def __init__(self, cycle: list[str]) -> None:
        self.cycle = cycle
        super().__init__(f"Dependency cycle detected: {' → '.join(cycle)}")


class VersionError(BuildpackActionsError):
    """Raised when a version cannot be computed."""


class InvalidBump(VersionError):
    def __init__(self, version: str, reason: str, buildpack_id: str | None = None):
        self.version = version
        self.reason = reason
        self.buildpack_id = buildpack_id
        subject = f" of {buildpack_id}" if buildpack_id else ""
        super().__init__(f"Cannot bump version {version!r}{subject}: {reason}")


class ChangelogError(BuildpackActionsError):
    """Raised when a CHANGELOG.md cannot be read, parsed or updated."""

    def __init__(self, path: Path | None, reason: str) -> None:
        self.path = path
        self.reason = reason
        where = f"\nPath: {path}" if path else ""
        super().__init__(f"Changelog error{where}\nError: {reason}")


class PropagationError(BuildpackActionsError):
    """Raised when builder documents cannot be updated."""


class UnknownBuilder(PropagationError):
    def __init__(self, name: str, known: list[str]) -> None:
        self.name = name
        self.known = known
        available = ", ".join(known) if known else "<none>"
        super().__init__(f"Unknown builder {name!r} (available: {available})")


class MalformedBuilder(PropagationError):
    def __init__(self, builder_name: str, reason: str) -> None:
        self.builder_name = builder_name
        self.reason = reason
        super().__init__(f"Builder {builder_name} is malformed: {reason}")
