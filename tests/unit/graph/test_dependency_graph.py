"""
linebuild-engine — unit tests for the dependency graph builder and cycle detector.

Purpose
- Validate adjacency construction, dangling and duplicate findings, and cycle reporting.

What this test file should cover
- Conditional references traverse like bare ones.
- Every unit on a cycle gets exactly one finding; findings are deterministic.
- Seeded random graphs: reported cycle units are exactly the units Kahn cannot drain.

Non-functional requirements
- Deterministic and offline.
"""

from __future__ import annotations

import random

import pytest

from linebuild_engine.domain.issues import IssueKind
from linebuild_engine.domain.models import ConditionalStepRef, WorkUnit
from linebuild_engine.graph.dependency_graph import (
    CycleError,
    assert_acyclic,
    build_dependency_graph,
    check_graph,
)


def _unit(unit_id: str, *deps: str | ConditionalStepRef) -> WorkUnit:
    return WorkUnit(id=unit_id, action="prep", depends_on=tuple(deps))


def _undrainable(units: list[WorkUnit]) -> set[str]:
    ids = {unit.id for unit in units}
    indegree = {unit.id: sum(1 for dep in unit.dependency_ids if dep in ids) for unit in units}
    children: dict[str, list[str]] = {unit.id: [] for unit in units}
    for unit in units:
        for dep in unit.dependency_ids:
            if dep in ids:
                children[dep].append(unit.id)
    ready = [unit_id for unit_id, degree in indegree.items() if degree == 0]
    drained: set[str] = set()
    while ready:
        current = ready.pop()
        drained.add(current)
        for child in children[current]:
            indegree[child] -= 1
            if indegree[child] == 0:
                ready.append(child)
    return ids - drained


def test_edges_point_from_dependency_to_dependent() -> None:
    graph, issues = build_dependency_graph([_unit("a"), _unit("b", "a"), _unit("c", "a", "b")])

    assert issues == ()
    assert graph.edges == (("a", "b"), ("a", "c"), ("b", "c"))
    assert graph.dependencies_of("c") == ("a", "b")
    assert graph.entry_points() == ("a",)


def test_conditional_reference_is_traversed_like_a_bare_reference() -> None:
    conditional = ConditionalStepRef(step_id="a", requires_customization_value_ids=("extra",))
    graph, issues = build_dependency_graph([_unit("a"), _unit("b", conditional)])

    assert issues == ()
    assert graph.edges == (("a", "b"),)


def test_dangling_reference_is_reported_and_pass_continues() -> None:
    check = check_graph([_unit("a", "ghost"), _unit("b", "a")])

    assert [issue.kind for issue in check.issues] == [IssueKind.DANGLING_REFERENCE]
    dangling = check.dangling_issues[0]
    assert dangling.unit_id == "a"
    assert dangling.field == "depends_on[0]"
    assert dangling.is_error
    assert check.graph.edges == (("a", "b"),)
    assert not check.has_cycles


def test_duplicate_id_keeps_first_declaration() -> None:
    check = check_graph([_unit("a"), _unit("b", "a"), _unit("a", "b")])

    assert [issue.kind for issue in check.issues] == [IssueKind.DUPLICATE_ID]
    assert not check.has_cycles


def test_every_unit_on_a_cycle_gets_one_finding() -> None:
    units = [_unit("a", "c"), _unit("b", "a"), _unit("c", "b"), _unit("d", "c")]

    check = check_graph(units)

    assert check.has_cycles
    assert check.cycle_unit_ids == ("a", "b", "c")
    assert check.cycles == (("a", "b", "c", "a"),)
    assert all("a -> b -> c -> a" in issue.message for issue in check.issues)


def test_self_dependency_is_a_cycle() -> None:
    check = check_graph([_unit("solo", "solo"), _unit("other")])

    assert check.cycle_unit_ids == ("solo",)


def test_cycle_findings_do_not_depend_on_declaration_order() -> None:
    units = [_unit("x", "y"), _unit("y", "z"), _unit("z", "x"), _unit("w")]
    shuffled = list(reversed(units))

    assert check_graph(units).issues == check_graph(shuffled).issues


def test_assert_acyclic_raises_cycle_error_with_paths() -> None:
    with pytest.raises(CycleError) as excinfo:
        assert_acyclic([_unit("a", "b"), _unit("b", "a")])

    assert excinfo.value.cycles == (("a", "b", "a"),)
    assert isinstance(excinfo.value, ValueError)


def test_assert_acyclic_returns_graph_for_dag() -> None:
    graph = assert_acyclic([_unit("a"), _unit("b", "a")])
    assert graph.nodes == ("a", "b")


def test_connected_components_are_weak() -> None:
    graph, _ = build_dependency_graph([_unit("a"), _unit("b", "a"), _unit("c"), _unit("d", "c")])
    assert graph.connected_components() == (("a", "b"), ("c", "d"))


@pytest.mark.parametrize("seed", [3, 11, 29, 47, 101])
def test_random_graphs_report_exactly_the_undrainable_cycle_members(seed: int) -> None:
    rng = random.Random(seed)
    ids = [f"u{index:02d}" for index in range(25)]
    units = [_unit(unit_id, *rng.sample(ids, k=rng.randint(0, 2))) for unit_id in ids]

    check = check_graph(units)
    flagged = set(check.cycle_unit_ids)

    # Units downstream of a cycle are undrainable but not on a cycle.
    assert flagged <= _undrainable(units)
    assert bool(flagged) == bool(_undrainable(units))
    for path in check.cycles:
        assert path[0] == path[-1]
        assert set(path) <= flagged
