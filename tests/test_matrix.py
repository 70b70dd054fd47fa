"""Tests for buildpack_actions.matrix."""

from __future__ import annotations

from pathlib import Path

import pytest

from buildpack_actions.config import DEFAULT_TARGETS
from buildpack_actions.graph import build_graph
from buildpack_actions.matrix import (
    compiler_triples,
    generate,
    image_indexes,
    matrix_json,
    shared_version,
    summary_markdown,
)
from buildpack_actions.models import BuildpackDescriptor, BuildpackKind, TargetSpec

AMD64, ARM64 = DEFAULT_TARGETS


def compiled(
    bp_id: str,
    version: str = "1.0.0",
    targets: tuple[TargetSpec, ...] = (AMD64,),
    repository: str | None = None,
) -> BuildpackDescriptor:
    return BuildpackDescriptor(
        id=bp_id,
        version=version,
        kind=BuildpackKind.SIMPLE,
        source_dir=Path(f"/repo/{bp_id}"),
        targets=targets,
        image_repository=repository,
    )


def script(bp_id: str) -> BuildpackDescriptor:
    return BuildpackDescriptor(
        id=bp_id,
        version="1.0.0",
        kind=BuildpackKind.SIMPLE,
        source_dir=Path(f"/repo/{bp_id}"),
        targets=(TargetSpec.implicit(),),
        script_only=True,
    )


def composite(bp_id: str, deps: list[str], version: str = "1.0.0") -> BuildpackDescriptor:
    return BuildpackDescriptor(
        id=bp_id,
        version=version,
        kind=BuildpackKind.COMPOSITE,
        source_dir=Path(f"/repo/{bp_id}"),
        dependencies=frozenset(deps),
    )


def run(descriptors: list[BuildpackDescriptor], run_id: str = "123", targets=None):
    graph = build_graph(descriptors)
    return generate(
        graph, descriptors, targets or list(DEFAULT_TARGETS), run_id, "packaged"
    )


class TestGenerate:
    def test_simple_and_composite(self) -> None:
        descriptors = [
            compiled("heroku/a"),
            compiled("heroku/b"),
            composite("heroku/c", ["heroku/a", "heroku/b"]),
        ]
        jobs = run(descriptors, targets=[AMD64])

        assert [job.buildpack_id for job in jobs] == ["heroku/a", "heroku/b", "heroku/c"]

        a = jobs[0]
        assert a.target == AMD64
        assert a.oci_target == "linux/amd64"
        assert a.output_dir == "packaged/x86_64-unknown-linux-musl/release/heroku_a"
        assert a.stable_tag == "heroku/a:1.0.0"
        assert a.temporary_tag == "heroku/a:_123"
        assert a.cnb_file == "heroku_a.cnb"
        assert a.stage == 0

        c = jobs[2]
        assert c.target is None
        assert c.oci_target is None
        assert c.buildpack_kind is BuildpackKind.COMPOSITE
        assert c.output_dir == "packaged/noarch/release/heroku_c"
        assert c.stage == 1
        assert c.dependency_outputs == {
            "heroku/a": ["packaged/x86_64-unknown-linux-musl/release/heroku_a"],
            "heroku/b": ["packaged/x86_64-unknown-linux-musl/release/heroku_b"],
        }

    def test_multiple_targets_suffix_tags(self) -> None:
        descriptors = [
            compiled(
                "heroku/go",
                "2.0.0",
                targets=(ARM64, AMD64),
                repository="docker.io/heroku/buildpack-go",
            )
        ]
        jobs = run(descriptors, run_id="run-9")

        assert [job.oci_target for job in jobs] == ["linux/amd64", "linux/arm64"]
        assert [job.stable_tag for job in jobs] == [
            "docker.io/heroku/buildpack-go:2.0.0_linux-amd64",
            "docker.io/heroku/buildpack-go:2.0.0_linux-arm64",
        ]
        assert jobs[1].temporary_tag == "docker.io/heroku/buildpack-go:_run-9_linux-arm64"
        assert jobs[1].cnb_file == "heroku_go_linux-arm64.cnb"
        assert jobs[1].output_dir == "packaged/aarch64-unknown-linux-musl/release/heroku_go"

        [index] = image_indexes(jobs)
        assert index.buildpack_id == "heroku/go"
        assert index.stable_tag == "docker.io/heroku/buildpack-go:2.0.0"
        assert index.temporary_tag == "docker.io/heroku/buildpack-go:_run-9"
        assert index.manifests == tuple(job.stable_tag for job in jobs)

    def test_single_target_has_no_index(self) -> None:
        jobs = run([compiled("heroku/a")])
        assert image_indexes(jobs) == []

    def test_script_only_buildpack(self) -> None:
        [job] = run([script("heroku/sh")])
        assert job.target is None
        assert job.oci_target is None
        assert job.output_dir == "packaged/noarch/release/heroku_sh"
        assert job.cnb_file == "heroku_sh.cnb"

    def test_script_only_with_targets_uses_target_name(self) -> None:
        descriptor = script("heroku/sh").model_copy(
            update={"targets": (AMD64, ARM64)}
        )
        jobs = run([descriptor])
        assert [job.output_dir for job in jobs] == [
            "packaged/linux-amd64/release/heroku_sh",
            "packaged/linux-arm64/release/heroku_sh",
        ]

    def test_target_filter(self) -> None:
        descriptors = [
            compiled("heroku/a", targets=(AMD64, ARM64)),
            compiled("heroku/b", targets=(ARM64,)),
        ]
        jobs = run(descriptors, targets=[AMD64])

        assert [(job.buildpack_id, job.oci_target) for job in jobs] == [
            ("heroku/a", "linux/amd64")
        ]
        # one applicable target left, so no suffix
        assert jobs[0].stable_tag == "heroku/a:1.0.0"

    def test_only_requested_descriptors(self) -> None:
        a, b = compiled("heroku/a"), compiled("heroku/b")
        c = composite("heroku/c", ["heroku/a", "heroku/b"])
        graph = build_graph([a, b, c])

        jobs = generate(graph, [c], [AMD64], "1", "out")

        assert [job.buildpack_id for job in jobs] == ["heroku/c"]
        assert jobs[0].dependency_outputs["heroku/a"] == [
            "out/x86_64-unknown-linux-musl/release/heroku_a"
        ]

    def test_nested_composites(self) -> None:
        descriptors = [
            compiled("heroku/leaf"),
            composite("heroku/inner", ["heroku/leaf"]),
            composite("heroku/outer", ["heroku/inner"]),
        ]
        jobs = {job.buildpack_id: job for job in run(descriptors)}

        assert jobs["heroku/outer"].stage == 2
        assert jobs["heroku/outer"].dependency_outputs == {
            "heroku/inner": ["packaged/noarch/release/heroku_inner"]
        }

    def test_empty_run_id(self) -> None:
        with pytest.raises(ValueError, match="run_id"):
            run([compiled("heroku/a")], run_id="")


class TestDeterminism:
    def test_same_inputs_same_bytes(self) -> None:
        descriptors = [
            compiled("heroku/b", targets=(AMD64, ARM64)),
            compiled("heroku/a"),
            composite("heroku/c", ["heroku/a", "heroku/b"]),
        ]
        reordered = list(reversed(descriptors))
        assert matrix_json(run(descriptors)) == matrix_json(run(reordered))

    def test_stable_tag_ignores_run_id(self) -> None:
        first = run([compiled("heroku/a")], run_id="1")
        second = run([compiled("heroku/a")], run_id="2")
        assert first[0].stable_tag == second[0].stable_tag
        assert first[0].temporary_tag != second[0].temporary_tag


class TestSummaries:
    def test_shared_version_is_highest(self) -> None:
        assert shared_version([compiled("a", "1.2.0"), compiled("b", "1.10.0")]) == "1.10.0"
        assert shared_version([]) is None

    def test_compiler_triples(self) -> None:
        jobs = run(
            [
                compiled("heroku/a", targets=(AMD64, ARM64)),
                compiled("heroku/b"),
                script("heroku/sh"),
            ]
        )
        assert compiler_triples(jobs) == [
            "aarch64-unknown-linux-musl",
            "x86_64-unknown-linux-musl",
        ]

    def test_summary_markdown(self) -> None:
        markdown = summary_markdown(run([compiled("heroku/a")]))
        assert markdown.startswith("<details><summary>Buildpack Matrix</summary>")
        assert '"buildpack_id": "heroku/a"' in markdown
        assert markdown.endswith("</details>")
