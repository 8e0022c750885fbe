"""Deterministic dependency graph construction and cycle detection for work units.

Edges point from a dependency to its dependent (``u -> v`` when ``v`` depends on ``u``).
Dangling references and duplicate ids become findings and never abort the pass.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass
from typing import Protocol

from linebuild_engine.domain.issues import (
    IssueKind,
    ValidationIssue,
    error,
    sort_issues,
)


class GraphNode(Protocol):
    """Anything with an id and ordered dependency ids (work units, migrated units)."""

    @property
    def id(self) -> str: ...

    @property
    def dependency_ids(self) -> tuple[str, ...]: ...


class CycleError(ValueError):
    """Raised by :func:`assert_acyclic` when the dependency graph contains a cycle."""

    cycles: tuple[tuple[str, ...], ...]

    def __init__(self, cycles: Iterable[Sequence[str]]) -> None:
        normalized: tuple[tuple[str, ...], ...] = tuple(tuple(path) for path in cycles)
        self.cycles = normalized

        if not normalized:
            message = "Dependency graph contains at least one cycle."
        else:
            preview = ", ".join(" -> ".join(path) for path in normalized[:3])
            suffix = "..." if len(normalized) > 3 else ""
            message = f"Dependency graph contains cycle(s): {preview}{suffix}"
        super().__init__(message)


class DependencyGraph:
    """Directed graph with deterministic traversal order."""

    __slots__ = ("_nodes", "_children", "_parents", "_declared")

    def __init__(
        self,
        nodes: Iterable[str] | None = None,
        edges: Iterable[tuple[str, str]] | None = None,
    ) -> None:
        self._nodes: set[str] = set()
        self._children: dict[str, set[str]] = {}
        self._parents: dict[str, set[str]] = {}
        # Dependencies per node in declaration order; drives predecessor tie-breaks.
        self._declared: dict[str, list[str]] = {}

        if nodes is not None:
            for node_id in nodes:
                self.add_node(node_id)

        if edges is not None:
            for dependency, dependent in edges:
                self.add_edge(dependency, dependent)

    @property
    def nodes(self) -> tuple[str, ...]:
        """All node IDs in deterministic order."""
        return tuple(sorted(self._nodes))

    @property
    def edges(self) -> tuple[tuple[str, str], ...]:
        """All edges as ``(dependency, dependent)`` pairs in deterministic order."""
        ordered_edges: list[tuple[str, str]] = []
        for parent in sorted(self._nodes):
            for child in sorted(self._children[parent]):
                ordered_edges.append((parent, child))
        return tuple(ordered_edges)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def add_node(self, node_id: str) -> None:
        """Add a node if it does not already exist."""
        if not isinstance(node_id, str) or not node_id.strip():
            raise ValueError("node IDs must be non-empty strings")
        if node_id in self._nodes:
            return

        self._nodes.add(node_id)
        self._children[node_id] = set()
        self._parents[node_id] = set()
        self._declared[node_id] = []

    def add_edge(self, dependency: str, dependent: str) -> None:
        """Record that ``dependent`` depends on ``dependency``."""
        self.add_node(dependency)
        self.add_node(dependent)

        if dependent in self._children[dependency]:
            return

        self._children[dependency].add(dependent)
        self._parents[dependent].add(dependency)
        self._declared[dependent].append(dependency)

    def dependencies_of(self, node_id: str) -> tuple[str, ...]:
        """Direct dependencies in the order they were declared."""
        self._assert_node_exists(node_id)
        return tuple(self._declared[node_id])

    def dependents_of(self, node_id: str) -> tuple[str, ...]:
        self._assert_node_exists(node_id)
        return tuple(sorted(self._children[node_id]))

    def in_degree(self) -> dict[str, int]:
        return {node: len(self._parents[node]) for node in self._nodes}

    def entry_points(self) -> tuple[str, ...]:
        """Nodes without any resolvable dependency."""
        return tuple(node for node in sorted(self._nodes) if not self._parents[node])

    def detect_cycles(self) -> tuple[tuple[str, ...], ...]:
        """
        Detect directed cycles with a white/gray/black depth-first traversal.

        Returns closed paths such as ``("A", "B", "C", "A")``. Paths describe what
        was found while walking; use :meth:`cycle_members` for the complete set of
        units that sit on any cycle.
        """
        state: dict[str, int] = {}
        stack: list[str] = []
        stack_index: dict[str, int] = {}
        cycles: dict[tuple[str, ...], None] = {}

        for start in sorted(self._nodes):
            if state.get(start, 0) != 0:
                continue

            state[start] = 1
            stack.append(start)
            stack_index[start] = len(stack) - 1
            frames: list[tuple[str, Iterator[str]]] = [(start, iter(sorted(self._children[start])))]

            while frames:
                node, child_iter = frames[-1]

                try:
                    child = next(child_iter)
                except StopIteration:
                    frames.pop()
                    state[node] = 2
                    stack.pop()
                    del stack_index[node]
                    continue

                child_state = state.get(child, 0)
                if child_state == 0:
                    state[child] = 1
                    stack_index[child] = len(stack)
                    stack.append(child)
                    frames.append((child, iter(sorted(self._children[child]))))
                    continue

                if child_state == 1:
                    start_index = stack_index[child]
                    cycle = tuple(stack[start_index:] + [child])
                    cycles[_canonicalize_cycle(cycle)] = None

        return tuple(sorted(cycles))

    def strongly_connected_components(self) -> tuple[tuple[str, ...], ...]:
        """Kosaraju decomposition; each component and the result are sorted."""
        visited: set[str] = set()
        finish_order: list[str] = []

        for start in sorted(self._nodes):
            if start in visited:
                continue
            visited.add(start)
            frames: list[tuple[str, Iterator[str]]] = [(start, iter(sorted(self._children[start])))]
            while frames:
                node, child_iter = frames[-1]
                child = next(child_iter, None)
                if child is None:
                    frames.pop()
                    finish_order.append(node)
                    continue
                if child not in visited:
                    visited.add(child)
                    frames.append((child, iter(sorted(self._children[child]))))

        assigned: set[str] = set()
        components: list[tuple[str, ...]] = []
        for start in reversed(finish_order):
            if start in assigned:
                continue
            assigned.add(start)
            component: list[str] = []
            pending = [start]
            while pending:
                node = pending.pop()
                component.append(node)
                for parent in sorted(self._parents[node]):
                    if parent not in assigned:
                        assigned.add(parent)
                        pending.append(parent)
            components.append(tuple(sorted(component)))

        return tuple(sorted(components))

    def cycle_members(self) -> tuple[str, ...]:
        """Every node that lies on at least one cycle, self-loops included."""
        members: set[str] = set()
        for component in self.strongly_connected_components():
            if len(component) > 1:
                members.update(component)
            elif component[0] in self._children[component[0]]:
                members.add(component[0])
        return tuple(sorted(members))

    def connected_components(self) -> tuple[tuple[str, ...], ...]:
        """Weakly connected components found by undirected breadth-first search."""
        seen: set[str] = set()
        components: list[tuple[str, ...]] = []
        for start in sorted(self._nodes):
            if start in seen:
                continue
            seen.add(start)
            queue: deque[str] = deque([start])
            component: list[str] = []
            while queue:
                node = queue.popleft()
                component.append(node)
                for neighbor in sorted(self._children[node] | self._parents[node]):
                    if neighbor not in seen:
                        seen.add(neighbor)
                        queue.append(neighbor)
            components.append(tuple(sorted(component)))
        return tuple(components)

    def _assert_node_exists(self, node_id: str) -> None:
        if node_id not in self._nodes:
            raise KeyError(f"Unknown node: {node_id!r}")


@dataclass(frozen=True, slots=True)
class GraphCheck:
    """Adjacency plus every structural finding for one unit list."""

    graph: DependencyGraph
    cycles: tuple[tuple[str, ...], ...]
    issues: tuple[ValidationIssue, ...]

    @property
    def has_cycles(self) -> bool:
        return any(issue.kind is IssueKind.CYCLE for issue in self.issues)

    @property
    def cycle_unit_ids(self) -> tuple[str, ...]:
        return tuple(
            issue.unit_id
            for issue in self.issues
            if issue.kind is IssueKind.CYCLE and issue.unit_id is not None
        )

    @property
    def dangling_issues(self) -> tuple[ValidationIssue, ...]:
        return tuple(issue for issue in self.issues if issue.kind is IssueKind.DANGLING_REFERENCE)


def build_dependency_graph(
    units: Sequence[GraphNode],
) -> tuple[DependencyGraph, tuple[ValidationIssue, ...]]:
    """Build adjacency from dependency references.

    Conditional references are traversed exactly like bare ones. Returns the graph
    and the duplicate-id and dangling-reference findings.
    """
    graph = DependencyGraph()
    issues: list[ValidationIssue] = []
    first_seen: dict[str, GraphNode] = {}

    for unit in units:
        if unit.id in first_seen:
            issues.append(
                error(
                    IssueKind.DUPLICATE_ID,
                    f"unit id {unit.id!r} is declared more than once; "
                    "the first declaration is used",
                    unit_id=unit.id,
                    field="id",
                )
            )
            continue
        first_seen[unit.id] = unit
        graph.add_node(unit.id)

    for unit_id in sorted(first_seen):
        unit = first_seen[unit_id]
        for index, ref_id in enumerate(unit.dependency_ids):
            if ref_id not in first_seen:
                issues.append(
                    error(
                        IssueKind.DANGLING_REFERENCE,
                        f"unit {unit_id!r} depends on unknown unit {ref_id!r}",
                        unit_id=unit_id,
                        field=f"depends_on[{index}]",
                    )
                )
                continue
            graph.add_edge(ref_id, unit_id)

    return graph, sort_issues(issues)


def detect_cycle_issues(
    graph: DependencyGraph,
) -> tuple[tuple[tuple[str, ...], ...], tuple[ValidationIssue, ...]]:
    """Return cycle paths and one finding per unit participating in a cycle."""
    cycles = graph.detect_cycles()
    issues: list[ValidationIssue] = []
    for unit_id in graph.cycle_members():
        path = next((cycle for cycle in cycles if unit_id in cycle), None)
        if path is not None:
            detail = " -> ".join(path)
        else:
            detail = "a strongly connected group of units"
        issues.append(
            error(
                IssueKind.CYCLE,
                f"unit {unit_id!r} participates in a dependency cycle: {detail}",
                unit_id=unit_id,
                field="depends_on",
            )
        )
    return cycles, tuple(issues)


def check_graph(units: Sequence[GraphNode]) -> GraphCheck:
    """Run the complete structural pass over ``units``."""
    graph, structural = build_dependency_graph(units)
    cycles, cycle_issues = detect_cycle_issues(graph)
    return GraphCheck(
        graph=graph,
        cycles=cycles,
        issues=sort_issues((*structural, *cycle_issues)),
    )


def assert_acyclic(units: Sequence[GraphNode]) -> DependencyGraph:
    """Return the graph, raising ``CycleError`` when any cycle exists."""
    graph, _ = build_dependency_graph(units)
    if graph.cycle_members():
        raise CycleError(graph.detect_cycles())
    return graph


def _canonicalize_cycle(cycle: Sequence[str]) -> tuple[str, ...]:
    if len(cycle) < 2:
        return tuple(cycle)
    body = list(cycle[:-1])
    pivot = body.index(min(body))
    rotated = body[pivot:] + body[:pivot]
    return tuple(rotated + [rotated[0]])


__all__ = [
    "CycleError",
    "DependencyGraph",
    "GraphCheck",
    "GraphNode",
    "assert_acyclic",
    "build_dependency_graph",
    "check_graph",
    "detect_cycle_issues",
]
