"""CLI entry point for buildpack-actions.

Each command prints a single line of JSON on stdout and, inside GitHub
Actions, writes the same values as step outputs.
"""

from __future__ import annotations

import functools
import json
from pathlib import Path

import click

from . import builder, matrix, release
from .config import ActionsConfig, load_config
from .errors import BuildpackActionsError
from .graph import DependencyGraph, build_graph
from .models import BuildpackDescriptor, BuildpackUpdate, TargetSpec, parse_buildpack_id
from .output import set_output, set_summary, warn
from .scanner import releasable, scan
from .versions import is_valid_version


def handle_errors(func):
    """Report BuildpackActionsError as a click error (exit status 1)."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except BuildpackActionsError as exc:
            raise click.ClickException(str(exc)) from exc

    return wrapper


def _emit(outputs: dict[str, object]) -> None:
    for name, value in outputs.items():
        if not isinstance(value, str):
            value = json.dumps(value, sort_keys=True, separators=(",", ":"))
        set_output(name, value)
    click.echo(json.dumps(outputs, sort_keys=True))


def _load(
    root: Path,
) -> tuple[ActionsConfig, DependencyGraph, list[BuildpackDescriptor]]:
    """Scan a repository and return its graph and releasable buildpacks."""
    root = root.resolve()
    config = load_config(root)
    descriptors = scan(root, config)
    if not descriptors:
        raise click.ClickException(f"No buildpacks found under {root}")
    return config, build_graph(descriptors), releasable(descriptors)


def _parse_targets(values: tuple[str, ...], config: ActionsConfig) -> list[TargetSpec]:
    if not values:
        return list(config.targets)
    targets = []
    for value in values:
        os_name, _, arch = value.partition("/")
        target = config.find_target(os_name, arch)
        if target is None:
            known = ", ".join(t.platform for t in config.targets)
            raise click.BadParameter(
                f"{value!r} is not a configured target (known: {known})",
                param_hint="--target",
            )
        targets.append(target)
    return targets


@click.group()
@click.version_option(package_name="buildpack-actions")
def cli() -> None:
    """Release automation for buildpack repositories."""


@cli.command("generate-buildpack-matrix")
@click.option(
    "--source-dir",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=".",
    show_default=True,
    help="Repository to scan for buildpacks.",
)
@click.option(
    "--package-dir",
    default=None,
    help="Directory packaged buildpacks are written to. [default: from config]",
)
@click.option(
    "--temporary-id",
    required=True,
    help="Unique id of this run, used for temporary image tags.",
)
@click.option(
    "--target",
    "target_values",
    multiple=True,
    metavar="OS/ARCH",
    help="Limit the matrix to these targets. Repeatable.",
)
@handle_errors
def generate_buildpack_matrix(
    source_dir: Path,
    package_dir: str | None,
    temporary_id: str,
    target_values: tuple[str, ...],
) -> None:
    """Compute the packaging/publishing matrix."""
    config, graph, descriptors = _load(source_dir)
    targets = _parse_targets(target_values, config)

    jobs = matrix.generate(
        graph,
        descriptors,
        targets,
        temporary_id,
        package_dir or config.package_dir,
    )

    _emit(
        {
            "buildpacks": [job.model_dump(mode="json") for job in jobs],
            "image_indexes": [
                index.model_dump(mode="json") for index in matrix.image_indexes(jobs)
            ],
            "version": matrix.shared_version(descriptors) or "",
            "compiler_triples": matrix.compiler_triples(jobs),
        }
    )
    set_summary(matrix.summary_markdown(jobs))


@cli.command("generate-changelog")
@click.option("--unreleased", is_flag=True, help="Render the Unreleased sections.")
@click.option("--version", "version", default=None, help="Render this version.")
@click.option(
    "--path",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=".",
    show_default=True,
    help="Repository to scan for buildpacks.",
)
@handle_errors
def generate_changelog(unreleased: bool, version: str | None, path: Path) -> None:
    """Aggregate one changelog section from every buildpack."""
    if unreleased and version:
        raise click.UsageError("--unreleased and --version are mutually exclusive")
    if version and not is_valid_version(version):
        raise click.BadParameter(
            f"{version!r} is not a version", param_hint="--version"
        )

    _, graph, descriptors = _load(path)
    changelog = release.generate_changelog(graph, descriptors, version)
    if not changelog.strip():
        if version:
            warn(f"No buildpack changelog has a {version} entry")
        else:
            warn("No buildpack has a CHANGELOG.md")
    _emit({"changelog": changelog})


@cli.command("prepare-release")
@click.option(
    "--bump",
    type=click.Choice(["major", "minor", "patch"]),
    required=True,
    help="SemVer increment applied to every buildpack with changes.",
)
@click.option(
    "--working-dir",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=".",
    show_default=True,
    help="Repository to release.",
)
@click.option(
    "--repository-url",
    default=None,
    help="Regenerate changelog release links against this repository URL.",
)
@click.option(
    "--declarations-starting-version",
    default=None,
    help="Oldest version to generate release links for.",
)
@click.option(
    "--no-dependency-updates",
    is_flag=True,
    help="Don't pin released dependencies in composite buildpacks.",
)
@click.option("--dry-run", is_flag=True, help="Compute the plan without writing.")
@handle_errors
def prepare_release(
    bump: str,
    working_dir: Path,
    repository_url: str | None,
    declarations_starting_version: str | None,
    no_dependency_updates: bool,
    dry_run: bool,
) -> None:
    """Bump versions and promote changelogs for a release."""
    if declarations_starting_version and not is_valid_version(
        declarations_starting_version
    ):
        raise click.BadParameter(
            f"{declarations_starting_version!r} is not a version",
            param_hint="--declarations-starting-version",
        )

    _, graph, descriptors = _load(working_dir)
    plan = release.prepare_release(
        graph,
        descriptors,
        bump,  # type: ignore[arg-type]
        dependency_updates=not no_dependency_updates,
        repository_url=repository_url,
        starting_version=declarations_starting_version,
        write=not dry_run,
    )
    if not plan.per_buildpack:
        warn("No buildpacks have unreleased changes")

    from_version, to_version = release.version_range(plan)
    _emit(
        {
            "from_version": from_version or "",
            "to_version": to_version or "",
            "versions": {
                bp_id: version_bump.model_dump()
                for bp_id, version_bump in plan.per_buildpack.items()
            },
            "changelog": plan.aggregate_changelog,
        }
    )


@cli.command("update-builder")
@click.option(
    "--path",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    required=True,
    help="Checkout of the builder repository.",
)
@click.option("--buildpack-id", "ids", multiple=True, required=True)
@click.option("--buildpack-version", "versions", multiple=True, required=True)
@click.option("--buildpack-uri", "uris", multiple=True, required=True)
@click.option(
    "--builders",
    required=True,
    help="Comma-separated builder names, e.g. builder-22,builder-24.",
)
@handle_errors
def update_builder(
    path: Path,
    ids: tuple[str, ...],
    versions: tuple[str, ...],
    uris: tuple[str, ...],
    builders: str,
) -> None:
    """Point builders at newly published buildpack images.

    --buildpack-id, --buildpack-version and --buildpack-uri are repeated
    once per buildpack and matched up by position.
    """
    if not len(ids) == len(versions) == len(uris):
        raise click.UsageError(
            "--buildpack-id, --buildpack-version and --buildpack-uri "
            "must be given the same number of times"
        )

    updates: dict[str, BuildpackUpdate] = {}
    for bp_id, version, uri in zip(ids, versions, uris):
        try:
            parse_buildpack_id(bp_id)
        except ValueError as exc:
            raise click.BadParameter(str(exc), param_hint="--buildpack-id") from exc
        if not is_valid_version(version):
            raise click.BadParameter(
                f"{version!r} is not a version", param_hint="--buildpack-version"
            )
        updates[bp_id] = BuildpackUpdate(version=version, address=uri)

    names = [name.strip() for name in builders.split(",") if name.strip()]
    if not names:
        raise click.BadParameter("no builder names given", param_hint="--builders")

    docs = builder.load_builders(path, names)
    result = builder.propagate(docs, updates, names)
    for name, count in result.updated_counts.items():
        if count == 0:
            warn(f"{name}: none of {', '.join(sorted(updates))} is referenced")
    builder.save_builders(path, result.documents)

    _emit({"updated": result.updated_counts})
