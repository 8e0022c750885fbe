"""Deterministic per-track execution ordering.

Ordinals are best-effort display data: units that cannot be placed because of a
cycle are appended in ``(order_index, id)`` order instead of failing.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, replace
from heapq import heapify, heappop, heappush

from linebuild_engine.domain.models import Build, WorkUnit

_Priority = tuple[int, int, str]


@dataclass(frozen=True, slots=True)
class DerivedOrder:
    """Per-track ordinals plus the per-track sequences they were read from."""

    order_index: Mapping[str, int]
    by_track: Mapping[str, tuple[str, ...]]
    unresolved: tuple[str, ...] = ()

    def ordinal(self, unit_id: str) -> int:
        return self.order_index[unit_id]

    def to_dict(self) -> dict[str, object]:
        return {
            "orderIndex": dict(sorted(self.order_index.items())),
            "tracks": {track: list(ids) for track, ids in sorted(self.by_track.items())},
            "unresolved": list(self.unresolved),
        }


def unique_units(units: Iterable[WorkUnit]) -> dict[str, WorkUnit]:
    """Index units by id, keeping the first declaration of a duplicated id."""
    catalog: dict[str, WorkUnit] = {}
    for unit in units:
        catalog.setdefault(unit.id, unit)
    return catalog


def resolved_dependencies(unit: WorkUnit, catalog: Mapping[str, WorkUnit]) -> tuple[str, ...]:
    """Dependency ids that exist in ``catalog``, deduplicated in declaration order."""
    seen: dict[str, None] = {}
    for ref_id in unit.dependency_ids:
        if ref_id in catalog:
            seen.setdefault(ref_id, None)
    return tuple(seen)


def global_order(units: Sequence[WorkUnit]) -> tuple[str, ...]:
    """Cross-track topological order with ``(order_index, id)`` tie-breaks.

    Units left over by a cycle are appended in the same order.
    """
    catalog = unique_units(units)
    sequence, leftovers = _kahn(
        catalog,
        frozenset(catalog),
        lambda unit_id: (0, catalog[unit_id].order_index, unit_id),
    )
    return sequence + leftovers


def derive_order(units: Sequence[WorkUnit]) -> DerivedOrder:
    """Assign gap-free ordinals starting at 0 within each track.

    Each track is ordered by Kahn's algorithm over the full cross-track graph. Units
    of other tracks always drain first, so a track chooses between its own ready
    units only once every cross-track prerequisite that can finish has finished;
    re-deriving from already derived ordinals therefore reproduces them.
    """
    catalog = unique_units(units)
    tracks: dict[str, list[str]] = {}
    for unit_id, unit in catalog.items():
        tracks.setdefault(unit.track, []).append(unit_id)

    order_index: dict[str, int] = {}
    by_track: dict[str, tuple[str, ...]] = {}
    unresolved: list[str] = []

    for track in sorted(tracks):
        members = frozenset(tracks[track])
        scope = _with_ancestors(catalog, members)

        def priority(unit_id: str, members: frozenset[str] = members) -> _Priority:
            rank = 1 if unit_id in members else 0
            return (rank, catalog[unit_id].order_index, unit_id)

        sequence, leftovers = _kahn(catalog, scope, priority)
        placed = [unit_id for unit_id in sequence if unit_id in members]
        stuck = [unit_id for unit_id in leftovers if unit_id in members]
        ordered = tuple(placed + stuck)
        for ordinal, unit_id in enumerate(ordered):
            order_index[unit_id] = ordinal
        by_track[track] = ordered
        unresolved.extend(stuck)

    return DerivedOrder(
        order_index=order_index,
        by_track=by_track,
        unresolved=tuple(sorted(unresolved)),
    )


def with_order_indices(build: Build, order_index: Mapping[str, int]) -> Build:
    """Return a new build with ordinals taken from ``order_index``; unlisted units keep theirs."""
    return build.replace_units(
        replace(unit, order_index=order_index[unit.id]) if unit.id in order_index else unit
        for unit in build.units
    )


def apply_derived_order(build: Build) -> Build:
    """Return a new build whose units carry freshly derived ordinals."""
    return with_order_indices(build, derive_order(build.units).order_index)


def _with_ancestors(catalog: Mapping[str, WorkUnit], members: frozenset[str]) -> frozenset[str]:
    scope = set(members)
    pending = sorted(members)
    while pending:
        unit_id = pending.pop()
        for ref_id in resolved_dependencies(catalog[unit_id], catalog):
            if ref_id not in scope:
                scope.add(ref_id)
                pending.append(ref_id)
    return frozenset(scope)


def _kahn(
    catalog: Mapping[str, WorkUnit],
    scope: frozenset[str],
    priority: Callable[[str], _Priority],
) -> tuple[tuple[str, ...], tuple[str, ...]]:
    indegree: dict[str, int] = {}
    dependents: dict[str, list[str]] = {unit_id: [] for unit_id in scope}
    for unit_id in scope:
        deps = [ref for ref in resolved_dependencies(catalog[unit_id], catalog) if ref in scope]
        indegree[unit_id] = len(deps)
        for ref_id in deps:
            dependents[ref_id].append(unit_id)

    ready: list[tuple[_Priority, str]] = [
        (priority(unit_id), unit_id) for unit_id, degree in indegree.items() if degree == 0
    ]
    heapify(ready)

    sequence: list[str] = []
    while ready:
        _, unit_id = heappop(ready)
        sequence.append(unit_id)
        for child in dependents[unit_id]:
            indegree[child] -= 1
            if indegree[child] == 0:
                heappush(ready, (priority(child), child))

    placed = set(sequence)
    leftovers = sorted((unit_id for unit_id in scope if unit_id not in placed), key=priority)
    return tuple(sequence), tuple(leftovers)


__all__ = [
    "DerivedOrder",
    "apply_derived_order",
    "derive_order",
    "global_order",
    "resolved_dependencies",
    "unique_units",
    "with_order_indices",
]
