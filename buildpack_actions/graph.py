"""Buildpack dependency graph.

Composite buildpacks reference other buildpacks by id. Those references
form a directed acyclic graph that determines packaging order: a
composite's manifest points at the packaged output of its dependencies,
so every dependency must be packaged first.

The graph is an adjacency mapping over buildpack ids plus its reverse.
It is built once per run and never mutated.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from pathlib import Path
from types import MappingProxyType

from .errors import CyclicDependency, DanglingReference, DuplicateId
from .models import BuildpackDescriptor


def topo_sort(edges: Mapping[str, Iterable[str]]) -> list[str]:
    """Topologically sort nodes by their dependencies.

    Uses Kahn's algorithm to produce an order where dependencies come
    before dependents. Nodes that become ready at the same time are taken
    alphabetically for deterministic output.

    Args:
        edges: Map of node → the nodes it depends on. Dependencies that are
            not themselves keys are ignored.

    Returns:
        List of nodes in build order (dependencies first).

    Raises:
        CyclicDependency: If the nodes cannot be ordered.

    Example:
        If A depends on B, and B depends on C:
        topo_sort({A: [B], B: [C], C: []}) → [C, B, A]
    """
    # Count incoming edges (dependencies) for each node
    in_degree = {n: 0 for n in edges}
    # Track reverse dependencies (who depends on each node)
    reverse_deps: dict[str, list[str]] = {n: [] for n in edges}

    for name, deps in edges.items():
        for dep in set(deps):
            if dep in edges:
                in_degree[name] += 1
                reverse_deps[dep].append(name)

    queue = sorted(n for n, d in in_degree.items() if d == 0)
    order: list[str] = []

    while queue:
        node = queue.pop(0)
        order.append(node)
        for dependent in sorted(reverse_deps[node]):
            in_degree[dependent] -= 1
            if in_degree[dependent] == 0:
                queue.append(dependent)
        queue.sort()

    if len(order) != len(edges):
        remaining = {n: [d for d in deps if d in edges] for n, deps in edges.items()}
        raise CyclicDependency(find_cycle(remaining) or sorted(set(edges) - set(order)))

    return order


def find_cycle(edges: Mapping[str, Iterable[str]]) -> list[str] | None:
    """Return the first cycle found by a depth-first search, or None.

    The cycle is reported as a closed path, e.g. ["a", "b", "a"], so the
    whole loop is visible in error messages.
    """
    visited: set[str] = set()
    stack: list[str] = []
    on_stack: set[str] = set()

    def visit(node: str) -> list[str] | None:
        visited.add(node)
        stack.append(node)
        on_stack.add(node)
        for dep in sorted(edges.get(node, ())):
            if dep in on_stack:
                return [*stack[stack.index(dep) :], dep]
            if dep not in visited and dep in edges:
                cycle = visit(dep)
                if cycle:
                    return cycle
        stack.pop()
        on_stack.discard(node)
        return None

    for node in sorted(edges):
        if node not in visited:
            cycle = visit(node)
            if cycle:
                return cycle
    return None


class DependencyGraph:
    """Immutable dependency graph over buildpack ids.

    Use build_graph() to construct one; it validates the descriptors
    before any graph exists.
    """

    def __init__(self, descriptors: Mapping[str, BuildpackDescriptor]) -> None:
        self._descriptors = MappingProxyType(dict(descriptors))
        self._edges = MappingProxyType(
            {bp_id: d.dependencies for bp_id, d in self._descriptors.items()}
        )
        reverse: dict[str, set[str]] = {bp_id: set() for bp_id in self._descriptors}
        for bp_id, deps in self._edges.items():
            for dep in deps:
                reverse[dep].add(bp_id)
        self._reverse = MappingProxyType({k: frozenset(v) for k, v in reverse.items()})
        self._order = topo_sort(self._edges)

    def __contains__(self, buildpack_id: object) -> bool:
        return buildpack_id in self._descriptors

    def __len__(self) -> int:
        return len(self._descriptors)

    @property
    def nodes(self) -> list[str]:
        return sorted(self._descriptors)

    @property
    def descriptors(self) -> Mapping[str, BuildpackDescriptor]:
        return self._descriptors

    def descriptor(self, buildpack_id: str) -> BuildpackDescriptor:
        return self._descriptors[buildpack_id]

    def dependencies(self, buildpack_id: str) -> frozenset[str]:
        """Buildpacks that buildpack_id's order groups reference directly."""
        return self._edges[buildpack_id]

    def dependents(self, buildpack_id: str) -> frozenset[str]:
        """Composite buildpacks that reference buildpack_id directly."""
        return self._reverse[buildpack_id]

    def topological_order(self) -> list[str]:
        """Buildpack ids with every dependency before its dependents."""
        return list(self._order)

    def layers(self) -> list[list[str]]:
        """Group buildpack ids into stages that can be packaged in parallel.

        Stage 0 holds buildpacks without dependencies; every other
        buildpack sits one stage after its deepest dependency.
        """
        depth: dict[str, int] = {}
        for bp_id in self._order:
            deps = self._edges[bp_id]
            depth[bp_id] = 1 + max((depth[d] for d in deps), default=-1)
        count = max(depth.values(), default=-1) + 1
        layers: list[list[str]] = [[] for _ in range(count)]
        for bp_id in self._order:
            layers[depth[bp_id]].append(bp_id)
        return layers

    def stage(self, buildpack_id: str) -> int:
        for index, layer in enumerate(self.layers()):
            if buildpack_id in layer:
                return index
        raise KeyError(buildpack_id)


def build_graph(descriptors: Iterable[BuildpackDescriptor]) -> DependencyGraph:
    """Assemble scanned buildpacks into a validated dependency graph.

    Raises:
        DuplicateId: If two descriptors share an id.
        DanglingReference: If a composite references an unknown id.
        CyclicDependency: If composite references form a cycle; the error
            carries the full cycle path.
    """
    by_id: dict[str, BuildpackDescriptor] = {}
    paths: dict[str, list[Path]] = {}
    for descriptor in descriptors:
        paths.setdefault(descriptor.id, []).append(descriptor.descriptor_path)
        by_id.setdefault(descriptor.id, descriptor)

    for bp_id in sorted(paths):
        if len(paths[bp_id]) > 1:
            raise DuplicateId(bp_id, paths[bp_id])

    for bp_id in sorted(by_id):
        for dep in sorted(by_id[bp_id].dependencies):
            if dep not in by_id:
                raise DanglingReference(bp_id, dep)

    cycle = find_cycle({bp_id: d.dependencies for bp_id, d in by_id.items()})
    if cycle:
        raise CyclicDependency(cycle)

    return DependencyGraph(by_id)
