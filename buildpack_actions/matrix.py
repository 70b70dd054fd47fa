"""Release matrix generation.

Turns the buildpack graph into the list of packaging/publishing jobs that
the CI workflow fans out over: one job per (buildpack, target) for simple
buildpacks and one job per composite buildpack.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Sequence
from pathlib import Path

from .graph import DependencyGraph
from .models import (
    BuildpackDescriptor,
    BuildpackKind,
    ImageIndex,
    PackageJob,
    TargetSpec,
    buildpack_directory_name,
)
from .output import info, step
from .versions import highest_version

NOARCH_DIR = "noarch"


def generate_tag(repository: str, tag: str, suffix: str | None = None) -> str:
    """Build an image reference, e.g. generate_tag("a/b", "1.0.0") → "a/b:1.0.0"."""
    return f"{repository}:{tag}_{suffix}" if suffix else f"{repository}:{tag}"


def cnb_file(buildpack_id: str, suffix: str | None = None) -> str:
    name = buildpack_directory_name(buildpack_id)
    return f"{name}_{suffix}.cnb" if suffix else f"{name}.cnb"


def output_dir(package_dir: str | Path, target_dirname: str, buildpack_id: str) -> str:
    """Where the external packager writes a buildpack for one target.

    Mirrors the libcnb layout: <package_dir>/<target>/release/<dir_name>.
    """
    path = Path(package_dir) / target_dirname / "release"
    return (path / buildpack_directory_name(buildpack_id)).as_posix()


def applicable_targets(
    descriptor: BuildpackDescriptor, targets: Sequence[TargetSpec]
) -> list[TargetSpec | None]:
    """Targets a simple buildpack is packaged for in this run.

    The implicit platform-independent target is always applicable and maps
    to a single job without a target.
    """
    wanted = {(t.os, t.arch) for t in targets}
    selected: list[TargetSpec | None] = []
    for target in descriptor.targets:
        if target.is_implicit:
            selected.append(None)
        elif (target.os, target.arch) in wanted:
            selected.append(target)
    return selected


def _job_sort_key(job: PackageJob) -> tuple[str, bool, str, str]:
    if job.target is None:
        return (job.buildpack_id, False, "", "")
    return (job.buildpack_id, True, job.target.os, job.target.arch)


def generate(
    graph: DependencyGraph,
    descriptors: Iterable[BuildpackDescriptor],
    targets: Sequence[TargetSpec],
    run_id: str,
    package_dir: str | Path,
) -> list[PackageJob]:
    """Compute the release matrix.

    Args:
        graph: Validated dependency graph over every scanned buildpack.
        descriptors: Buildpacks to produce jobs for.
        targets: Targets enabled for this run.
        run_id: Identifier of the CI run, used in temporary tags.
        package_dir: Directory the external packager writes into.

    Returns:
        Jobs sorted by (buildpack id, os, arch), jobs without a target first.

    Raises:
        ValueError: If run_id is empty.
    """
    if not run_id:
        raise ValueError("run_id must not be empty")

    step("Generating release matrix")

    wanted = {d.id: d for d in descriptors}
    stages = {bp_id: i for i, layer in enumerate(graph.layers()) for bp_id in layer}
    outputs: dict[str, list[str]] = {}
    jobs: list[PackageJob] = []

    # Topological order guarantees every dependency's output dirs are known
    # before the composite that points at them.
    for bp_id in graph.topological_order():
        descriptor = graph.descriptor(bp_id)
        repo = descriptor.repository

        if descriptor.kind is BuildpackKind.COMPOSITE:
            dependency_outputs = {
                dep: list(outputs.get(dep, []))
                for dep in sorted(descriptor.dependencies)
            }
            directory = output_dir(package_dir, NOARCH_DIR, bp_id)
            outputs[bp_id] = [directory]
            if bp_id not in wanted:
                continue
            jobs.append(
                PackageJob(
                    buildpack_id=bp_id,
                    buildpack_kind=descriptor.kind,
                    buildpack_version=descriptor.version,
                    output_dir=directory,
                    target=None,
                    temporary_tag=generate_tag(repo, f"_{run_id}"),
                    stable_tag=generate_tag(repo, descriptor.version),
                    oci_target=None,
                    cnb_file=cnb_file(bp_id),
                    stage=stages[bp_id],
                    dependency_outputs=dependency_outputs,
                )
            )
            continue

        selected = applicable_targets(descriptor, targets)
        multi = len(selected) > 1
        bp_jobs: list[PackageJob] = []
        for target in selected:
            suffix = target.name if multi and target is not None else None
            if target is None:
                dirname = NOARCH_DIR
            elif descriptor.script_only:
                dirname = target.name
            else:
                dirname = target.compiler_triple
            bp_jobs.append(
                PackageJob(
                    buildpack_id=bp_id,
                    buildpack_kind=descriptor.kind,
                    buildpack_version=descriptor.version,
                    output_dir=output_dir(package_dir, dirname, bp_id),
                    target=target,
                    temporary_tag=generate_tag(repo, f"_{run_id}", suffix),
                    stable_tag=generate_tag(repo, descriptor.version, suffix),
                    oci_target=target.platform if target is not None else None,
                    cnb_file=cnb_file(bp_id, suffix),
                    stage=stages[bp_id],
                )
            )
        outputs[bp_id] = [job.output_dir for job in bp_jobs]
        if bp_id not in wanted:
            continue
        if not bp_jobs:
            info(f"{bp_id}: no enabled targets, skipping")
        jobs.extend(bp_jobs)

    jobs.sort(key=_job_sort_key)
    for job in jobs:
        info(f"{job.stable_tag} → {job.output_dir}")
    return jobs


def image_indexes(jobs: Iterable[PackageJob]) -> list[ImageIndex]:
    """Image indexes for buildpacks published to more than one target.

    The index carries the unsuffixed tags and lists every per-target stable
    tag as a manifest.
    """
    by_id: dict[str, list[PackageJob]] = {}
    for job in jobs:
        by_id.setdefault(job.buildpack_id, []).append(job)

    indexes: list[ImageIndex] = []
    for bp_id in sorted(by_id):
        bp_jobs = sorted(by_id[bp_id], key=_job_sort_key)
        if len(bp_jobs) < 2:
            continue
        first = bp_jobs[0]
        suffix = f"_{first.target.name}" if first.target else ""
        indexes.append(
            ImageIndex(
                buildpack_id=bp_id,
                stable_tag=first.stable_tag.removesuffix(suffix),
                temporary_tag=first.temporary_tag.removesuffix(suffix),
                manifests=tuple(job.stable_tag for job in bp_jobs),
            )
        )
    return indexes


def matrix_json(jobs: Iterable[PackageJob]) -> str:
    """Serialize jobs deterministically; equal inputs give identical bytes."""
    return json.dumps(
        [job.model_dump(mode="json") for job in jobs],
        sort_keys=True,
        separators=(",", ":"),
    )


def shared_version(descriptors: Iterable[BuildpackDescriptor]) -> str | None:
    """The version published for the whole matrix: the highest buildpack version."""
    return highest_version([d.version for d in descriptors])


def compiler_triples(jobs: Iterable[PackageJob]) -> list[str]:
    """Distinct compiler triples the CI toolchain must be set up for."""
    return sorted(
        {job.target.compiler_triple for job in jobs if job.target is not None}
    )


def summary_markdown(jobs: Iterable[PackageJob]) -> str:
    """Collapsible job-summary block showing the matrix."""
    pretty = json.dumps(json.loads(matrix_json(jobs)), indent=2, sort_keys=True)
    return (
        "<details><summary>Buildpack Matrix</summary>\n\n"
        f"```json\n{pretty}\n```\n</details>"
    )
