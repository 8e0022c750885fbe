"""Longest duration-weighted chain and build-wide graph aggregates."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from linebuild_engine.domain.models import WorkUnit
from linebuild_engine.graph.dependency_graph import build_dependency_graph
from linebuild_engine.graph.ordering import global_order, resolved_dependencies, unique_units
from linebuild_engine.timing.duration import DurationEstimate


@dataclass(frozen=True, slots=True)
class CriticalPath:
    node_ids: tuple[str, ...]
    edge_ids: tuple[str, ...]
    total_seconds: float
    total_seconds_explicit: float

    def to_dict(self) -> dict[str, object]:
        return {
            "nodeIds": list(self.node_ids),
            "edgeIds": list(self.edge_ids),
            "totalSeconds": self.total_seconds,
            "totalSecondsExplicit": self.total_seconds_explicit,
        }


@dataclass(frozen=True, slots=True)
class BuildHealth:
    unit_count: int
    entry_point_count: int
    entry_point_pct: int
    connected_components: int
    total_estimated_seconds: float
    critical_path_seconds: float

    def to_dict(self) -> dict[str, object]:
        return {
            "unitCount": self.unit_count,
            "entryPointCount": self.entry_point_count,
            "entryPointPct": self.entry_point_pct,
            "connectedComponents": self.connected_components,
            "totalEstimatedSeconds": self.total_estimated_seconds,
            "criticalPathSeconds": self.critical_path_seconds,
        }


EMPTY_CRITICAL_PATH = CriticalPath(
    node_ids=(), edge_ids=(), total_seconds=0.0, total_seconds_explicit=0.0
)


def compute_critical_path(
    units: Sequence[WorkUnit],
    durations: Mapping[str, DurationEstimate],
) -> CriticalPath:
    """
    Longest path by earliest finish over a fresh cross-track topological order.

    ``earliest_finish(v) = duration(v) + max(earliest_finish(u) for u in deps(v), 0)``.
    The best predecessor is the first declared dependency reaching that maximum; the
    chain ends at the greatest earliest finish, lowest id on ties. A dependency not yet
    finished when its dependent is visited (only possible on a cycle) counts as 0.
    """
    catalog = unique_units(units)
    if not catalog:
        return EMPTY_CRITICAL_PATH

    finish: dict[str, float] = {}
    best_predecessor: dict[str, str | None] = {}

    for unit_id in global_order(units):
        best: str | None = None
        best_finish = -1.0
        for ref_id in resolved_dependencies(catalog[unit_id], catalog):
            candidate = finish.get(ref_id, 0.0)
            if candidate > best_finish:
                best_finish = candidate
                best = ref_id
        finish[unit_id] = _seconds(durations, unit_id) + max(best_finish, 0.0)
        best_predecessor[unit_id] = best

    end = min(finish, key=lambda unit_id: (-finish[unit_id], unit_id))

    chain: list[str] = []
    seen: set[str] = set()
    cursor: str | None = end
    while cursor is not None and cursor not in seen:
        seen.add(cursor)
        chain.append(cursor)
        cursor = best_predecessor.get(cursor)
    chain.reverse()

    explicit_total = sum(
        durations[unit_id].seconds
        for unit_id in chain
        if unit_id in durations and durations[unit_id].is_explicit
    )
    return CriticalPath(
        node_ids=tuple(chain),
        edge_ids=tuple(
            f"{source}->{target}" for source, target in zip(chain, chain[1:], strict=False)
        ),
        total_seconds=sum(_seconds(durations, unit_id) for unit_id in chain),
        total_seconds_explicit=float(explicit_total),
    )


def compute_build_health(
    units: Sequence[WorkUnit],
    durations: Mapping[str, DurationEstimate],
    critical_path: CriticalPath | None = None,
) -> BuildHealth:
    """Entry points, weakly connected components and summed duration for a unit list."""
    graph, _ = build_dependency_graph(units)
    unit_count = len(graph)
    entry_points = len(graph.entry_points())
    path = critical_path if critical_path is not None else compute_critical_path(units, durations)
    return BuildHealth(
        unit_count=unit_count,
        entry_point_count=entry_points,
        entry_point_pct=round(entry_points * 100 / unit_count) if unit_count else 0,
        connected_components=len(graph.connected_components()),
        total_estimated_seconds=sum(_seconds(durations, unit_id) for unit_id in graph.nodes),
        critical_path_seconds=path.total_seconds,
    )


def _seconds(durations: Mapping[str, DurationEstimate], unit_id: str) -> float:
    estimate = durations.get(unit_id)
    return estimate.seconds if estimate is not None else 0.0


__all__ = [
    "BuildHealth",
    "CriticalPath",
    "EMPTY_CRITICAL_PATH",
    "compute_build_health",
    "compute_critical_path",
]
