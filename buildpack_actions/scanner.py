"""Buildpack repository scanner.

Walks a repository tree, finds every directory with a buildpack.toml at
its root, and turns each one into a BuildpackDescriptor.
"""

from __future__ import annotations

from fnmatch import fnmatch
from pathlib import Path

from tomlkit.exceptions import TOMLKitError

from .config import DEFAULT_TARGET, ActionsConfig
from .errors import MalformedDescriptor
from .models import BuildpackDescriptor, BuildpackKind, TargetSpec, parse_buildpack_id
from .output import info, step
from .toml import (
    get_buildpack_id,
    get_buildpack_version,
    get_image_repository,
    get_targets,
    has_order,
    iter_group_tables,
    load_toml,
)
from .versions import parse_version

DESCRIPTOR_FILENAME = "buildpack.toml"

# Build output and vendored trees that never contain releasable buildpacks.
ALWAYS_IGNORED = ("target", "node_modules", "vendor")


def read_ignore_patterns(root: Path, config: ActionsConfig) -> list[str]:
    """Collect directory patterns to skip while scanning.

    Combines the built-in ignores, the configured package dir and extra
    globs, and the plain (non-negated) patterns from the root .gitignore.
    Only the root .gitignore is read; nested .gitignore files are not.
    """
    patterns = [*ALWAYS_IGNORED, config.package_dir.strip("/"), *config.ignore]
    gitignore = root / ".gitignore"
    if gitignore.is_file():
        for line in gitignore.read_text().splitlines():
            line = line.strip()
            # Negations can't un-ignore a directory we never descend into.
            if not line or line.startswith(("#", "!")):
                continue
            patterns.append(line.strip("/"))
    return patterns


def _is_ignored(path: Path, root: Path, patterns: list[str]) -> bool:
    if path.name.startswith("."):
        return True
    rel = path.relative_to(root).as_posix()
    for pattern in patterns:
        # "**/x" also matches a top-level x.
        while pattern.startswith("**/"):
            pattern = pattern[3:]
        if fnmatch(path.name, pattern) or fnmatch(rel, pattern):
            return True
    return False


def find_buildpack_dirs(root: Path, patterns: list[str]) -> list[Path]:
    """Find directories that contain a buildpack.toml, in sorted order.

    Does not descend into a buildpack directory once found, so nested
    descriptors (fixtures, test data) are not picked up.
    """
    found: list[Path] = []

    def visit(directory: Path) -> None:
        if (directory / DESCRIPTOR_FILENAME).is_file():
            found.append(directory)
            return
        for child in sorted(directory.iterdir()):
            if child.is_dir() and not child.is_symlink():
                if not _is_ignored(child, root, patterns):
                    visit(child)

    visit(root)
    return found


def _resolve_targets(
    path: Path,
    pairs: list[tuple[str | None, str | None]],
    config: ActionsConfig,
) -> list[TargetSpec]:
    targets: list[TargetSpec] = []
    for os_name, arch in pairs:
        if not os_name or not arch:
            raise MalformedDescriptor(path, "targets must declare both os and arch")
        target = config.find_target(os_name, arch)
        if target is None:
            raise MalformedDescriptor(path, f"unsupported target {os_name}/{arch}")
        if target not in targets:
            targets.append(target)
    return targets


def read_descriptor(directory: Path, config: ActionsConfig) -> BuildpackDescriptor:
    """Parse one buildpack directory into a BuildpackDescriptor.

    Raises:
        MalformedDescriptor: If buildpack.toml cannot be parsed, is missing
            [buildpack].id or [buildpack].version, has an invalid id or
            version, or has both a Cargo.toml and bin/ scripts.
    """
    path = directory / DESCRIPTOR_FILENAME
    try:
        doc = load_toml(path)
    except (OSError, TOMLKitError) as exc:
        raise MalformedDescriptor(path, str(exc)) from exc

    raw_id = get_buildpack_id(doc)
    if raw_id is None:
        raise MalformedDescriptor(path, "missing required field buildpack.id")
    try:
        buildpack_id = parse_buildpack_id(raw_id)
    except ValueError as exc:
        raise MalformedDescriptor(path, str(exc)) from exc

    version = get_buildpack_version(doc)
    if version is None:
        raise MalformedDescriptor(path, "missing required field buildpack.version")
    try:
        parse_version(version)
    except ValueError as exc:
        raise MalformedDescriptor(path, f"invalid version: {exc}") from exc

    has_cargo = (directory / "Cargo.toml").is_file()
    has_bin = all((directory / "bin" / name).is_file() for name in ("detect", "build"))
    image_repository = get_image_repository(doc)

    if has_order(doc):
        if has_cargo or has_bin:
            raise MalformedDescriptor(
                path, "composite buildpack must not contain Cargo.toml or bin/ scripts"
            )
        dependencies: set[str] = set()
        for group_path, entry in iter_group_tables(doc["order"]):
            dep_id = entry.get("id") if hasattr(entry, "get") else None
            if not isinstance(dep_id, str):
                location = ".".join(str(i) for i in group_path)
                raise MalformedDescriptor(
                    path, f"order group entry {location} is missing id"
                )
            try:
                dependencies.add(parse_buildpack_id(str(dep_id)))
            except ValueError as exc:
                raise MalformedDescriptor(path, str(exc)) from exc
        return BuildpackDescriptor(
            id=buildpack_id,
            version=version,
            kind=BuildpackKind.COMPOSITE,
            source_dir=directory,
            dependencies=frozenset(dependencies),
            image_repository=image_repository,
        )

    if has_cargo and has_bin:
        raise MalformedDescriptor(
            path, "buildpack has both Cargo.toml and bin/ scripts"
        )

    # Anything without a Cargo.toml ships as-is: bash scripts, or just the
    # descriptor and whatever files sit next to it.
    script_only = not has_cargo
    targets = _resolve_targets(path, get_targets(doc), config)
    if not targets:
        if script_only:
            targets = [TargetSpec.implicit()]
        else:
            default = config.find_target(DEFAULT_TARGET.os, DEFAULT_TARGET.arch)
            targets = [default or DEFAULT_TARGET]

    return BuildpackDescriptor(
        id=buildpack_id,
        version=version,
        kind=BuildpackKind.SIMPLE,
        source_dir=directory,
        targets=tuple(targets),
        script_only=script_only,
        image_repository=image_repository,
    )


def releasable(descriptors: list[BuildpackDescriptor]) -> list[BuildpackDescriptor]:
    """Buildpacks that keep a CHANGELOG.md and so take part in releases."""
    return [d for d in descriptors if d.changelog_path.is_file()]


def scan(
    root: Path,
    config: ActionsConfig | None = None,
    *,
    releasable_only: bool = False,
) -> list[BuildpackDescriptor]:
    """Discover every buildpack under root.

    Args:
        root: Repository root to scan.
        config: Repository configuration; defaults are used when omitted.
        releasable_only: Only keep buildpacks that have a CHANGELOG.md.

    Returns:
        Descriptors sorted by buildpack id.

    Raises:
        MalformedDescriptor: On the first buildpack.toml that fails to parse.
    """
    step("Discovering buildpacks")

    config = config or ActionsConfig()
    root = root.resolve()
    patterns = read_ignore_patterns(root, config)

    dirs = find_buildpack_dirs(root, patterns)
    descriptors = [read_descriptor(d, config) for d in dirs]
    if releasable_only:
        descriptors = releasable(descriptors)
    descriptors.sort(key=lambda d: d.id)

    for descriptor in descriptors:
        deps = (
            f" → [{', '.join(sorted(descriptor.dependencies))}]"
            if descriptor.dependencies
            else ""
        )
        info(
            f"{descriptor.id} {descriptor.version} "
            f"({descriptor.source_dir.relative_to(root)}){deps}"
        )

    return descriptors
