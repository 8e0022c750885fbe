"""Derived-view document: every computed analysis for one build plus its source hash.

The view is a cache. ``source_hash`` covers the units and assemblies with ordinals
stripped, so a build that already carries its derived ordinals hashes the same as
the build it was derived from.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime

from linebuild_engine.constants import DERIVATION_VERSION
from linebuild_engine.domain.models import Build, JSONValue, iso8601z
from linebuild_engine.flow.continuity import (
    DerivedTransfer,
    derive_transfers,
    summarize_transfers,
)
from linebuild_engine.flow.pods import PodLayout
from linebuild_engine.graph.critical_path import (
    BuildHealth,
    CriticalPath,
    compute_build_health,
    compute_critical_path,
)
from linebuild_engine.graph.ordering import DerivedOrder, derive_order
from linebuild_engine.reference.tables import ReferenceTables
from linebuild_engine.scoring.complexity import ComplexityScore, score_build
from linebuild_engine.timing.duration import DurationEstimate, resolve_build_durations
from linebuild_engine.utils.hashing import sha256_json


@dataclass(frozen=True, slots=True)
class DerivedBuildData:
    build_id: str
    source_hash: str
    derivation_version: int
    computed_at: datetime
    order: DerivedOrder
    durations: Mapping[str, DurationEstimate]
    critical_path: CriticalPath
    transfers: tuple[DerivedTransfer, ...]
    health: BuildHealth
    complexity: ComplexityScore

    @property
    def order_index(self) -> Mapping[str, int]:
        return self.order.order_index

    def to_dict(self) -> dict[str, object]:
        return {
            "buildId": self.build_id,
            "sourceHash": self.source_hash,
            "derivationVersion": self.derivation_version,
            "computedAt": iso8601z(self.computed_at),
            "orderIndex": dict(sorted(self.order.order_index.items())),
            "durations": {
                unit_id: estimate.to_dict() for unit_id, estimate in sorted(self.durations.items())
            },
            "criticalPath": self.critical_path.to_dict(),
            "transfers": [transfer.to_dict() for transfer in self.transfers],
            "transferSummary": summarize_transfers(self.transfers).to_dict(),
            "health": self.health.to_dict(),
            "complexity": self.complexity.to_dict(),
        }


def source_hash(build: Build) -> str:
    """SHA-256 of the canonical units and assemblies, ignoring ordinals."""
    units: list[JSONValue] = []
    for unit in build.units:
        payload = unit.to_dict()
        payload.pop("orderIndex", None)
        units.append(payload)
    return sha256_json(
        {
            "units": units,
            "assemblies": [assembly.to_dict() for assembly in build.assemblies],
            "menuItemType": build.menu_item_type,
        }
    )


def derive_build(
    build: Build,
    tables: ReferenceTables,
    pods: PodLayout | None = None,
    *,
    include_transfers: bool = True,
    now: datetime | None = None,
) -> DerivedBuildData:
    durations = resolve_build_durations(build, tables)
    critical_path = compute_critical_path(build.units, durations)
    transfers = derive_transfers(build, tables, pods)
    return DerivedBuildData(
        build_id=build.id,
        source_hash=source_hash(build),
        derivation_version=DERIVATION_VERSION,
        computed_at=now if now is not None else datetime.now(tz=UTC),
        order=derive_order(build.units),
        durations=durations,
        critical_path=critical_path,
        transfers=transfers,
        health=compute_build_health(build.units, durations, critical_path),
        complexity=score_build(
            build,
            tables,
            durations=durations,
            transfers=transfers,
            include_transfers=include_transfers,
        ),
    )


def is_stale(derived: DerivedBuildData, build: Build) -> bool:
    """True when ``derived`` was computed from different content or an older derivation."""
    return (
        derived.build_id != build.id
        or derived.derivation_version != DERIVATION_VERSION
        or derived.source_hash != source_hash(build)
    )


__all__ = ["DerivedBuildData", "derive_build", "is_stale", "source_hash"]
