"""Critical path and build health over resolved durations."""

from __future__ import annotations

from linebuild_engine.domain.models import ActionFamily, ConfidenceTier, UnitTime, WorkUnit
from linebuild_engine.graph.critical_path import (
    EMPTY_CRITICAL_PATH,
    compute_build_health,
    compute_critical_path,
)
from linebuild_engine.timing.duration import DurationEstimate, DurationSource


def _timed(unit_id: str, seconds: float, *deps: str) -> WorkUnit:
    return WorkUnit(
        id=unit_id,
        action=ActionFamily.PREP,
        time=UnitTime(duration_seconds=seconds),
        depends_on=deps,
    )


def _explicit(units: list[WorkUnit]) -> dict[str, DurationEstimate]:
    return {
        unit.id: DurationEstimate(
            seconds=unit.time.duration_seconds if unit.time else 0.0,
            source=DurationSource.EXPLICIT,
            confidence=ConfidenceTier.HIGH,
        )
        for unit in units
    }


def test_chain_sums_every_unit() -> None:
    units = [_timed("a", 10), _timed("b", 20, "a")]

    path = compute_critical_path(units, _explicit(units))

    assert path.node_ids == ("a", "b")
    assert path.edge_ids == ("a->b",)
    assert path.total_seconds == 30
    assert path.total_seconds_explicit == 30


def test_diamond_follows_the_slower_branch() -> None:
    units = [
        _timed("a", 10),
        _timed("b", 30, "a"),
        _timed("c", 5, "a"),
        _timed("d", 10, "b", "c"),
    ]

    path = compute_critical_path(units, _explicit(units))

    assert path.node_ids == ("a", "b", "d")
    assert path.edge_ids == ("a->b", "b->d")
    assert path.total_seconds == 50


def test_equal_branches_keep_the_first_declared_predecessor() -> None:
    units = [
        _timed("a", 5),
        _timed("b", 10, "a"),
        _timed("c", 10, "a"),
        _timed("d", 5, "c", "b"),
    ]

    first = compute_critical_path(units, _explicit(units))
    again = compute_critical_path(list(reversed(units)), _explicit(units))

    assert first.node_ids == ("a", "c", "d")
    assert first.edge_ids == ("a->c", "c->d")
    assert first.total_seconds == 20
    assert again == first


def test_estimated_durations_are_excluded_from_the_explicit_total() -> None:
    units = [_timed("a", 10), _timed("b", 20, "a")]
    durations = _explicit(units)
    durations["b"] = DurationEstimate(
        seconds=20, source=DurationSource.TECHNIQUE, confidence=ConfidenceTier.MEDIUM
    )

    path = compute_critical_path(units, durations)

    assert path.total_seconds == 30
    assert path.total_seconds_explicit == 10


def test_ties_end_on_the_lowest_id() -> None:
    units = [_timed("y", 15), _timed("x", 15)]

    assert compute_critical_path(units, _explicit(units)).node_ids == ("x",)


def test_empty_unit_list_has_an_empty_path() -> None:
    assert compute_critical_path([], {}) == EMPTY_CRITICAL_PATH
    assert EMPTY_CRITICAL_PATH.to_dict() == {
        "nodeIds": [],
        "edgeIds": [],
        "totalSeconds": 0.0,
        "totalSecondsExplicit": 0.0,
    }


def test_build_health_reports_entry_points_and_components() -> None:
    units = [
        _timed("a", 10),
        _timed("b", 30, "a"),
        _timed("c", 5, "a"),
        _timed("d", 10, "b", "c"),
        _timed("lonely", 1),
    ]

    health = compute_build_health(units, _explicit(units))

    assert health.unit_count == 5
    assert health.entry_point_count == 2
    assert health.entry_point_pct == 40
    assert health.connected_components == 2
    assert health.total_estimated_seconds == 56
    assert health.critical_path_seconds == 50
