"""
linebuild-engine — location continuity checking and transfer derivation.

Purpose
- Verify that every consumer picks up an assembly where its producer left it.
- Synthesize a transfer for every producer/consumer pair whose locations differ.

Functional requirements
- Producers are indexed by assembly id; the last declared producer wins.
- Transfers producing back into the same unit are never emitted or counted.
- Transfer cost comes from the registered transfer-type weights, never from
  the duration resolver.
- A missing producer is a warning, not an error: an in-build assembly with no producing
  unit is usually pulled from storage or a rail, so the build stays valid. Checking
  continues for the remaining pairs.

Non-functional requirements
- Pure and deterministic: output depends only on the build, tables and pod layout.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Final

from linebuild_engine.domain.issues import IssueKind, ValidationIssue, error, sort_issues, warning
from linebuild_engine.domain.models import (
    ActionFamily,
    AssemblyRef,
    Build,
    JSONValue,
    Location,
    SublocationType,
    TransferType,
    WorkUnit,
)
from linebuild_engine.flow.pods import PodLayout
from linebuild_engine.graph.ordering import unique_units
from linebuild_engine.reference.tables import ReferenceTables

_RETRIEVAL_SUBLOCATIONS: Final[frozenset[SublocationType]] = frozenset(
    {
        SublocationType.COLD_STORAGE,
        SublocationType.FREEZER,
        SublocationType.KIT_STORAGE,
        SublocationType.PACKAGING,
        SublocationType.COLD_RAIL,
        SublocationType.DRY_RAIL,
    }
)
_HANDOFF_STATION: Final[str] = "expo"


class TransferTechnique(StrEnum):
    PLACE = "place"
    RETRIEVE = "retrieve"
    PASS = "pass"
    HANDOFF = "handoff"


@dataclass(frozen=True, slots=True)
class DerivedTransfer:
    """Synthetic movement of one assembly between a producer and a consumer."""

    id: str
    assembly_id: str
    transfer_type: TransferType
    technique: TransferTechnique
    from_location: Location
    to_location: Location
    complexity: float
    estimated_seconds: float
    producer_unit_id: str
    consumer_unit_id: str
    from_pod_id: str | None = None
    to_pod_id: str | None = None

    @property
    def action_family(self) -> ActionFamily:
        return ActionFamily.TRANSFER

    def to_dict(self) -> dict[str, JSONValue]:
        payload: dict[str, JSONValue] = {
            "id": self.id,
            "action": {"family": ActionFamily.TRANSFER.value, "techniqueId": self.technique.value},
            "assemblyId": self.assembly_id,
            "transferType": self.transfer_type.value,
            "from": self.from_location.to_dict(),
            "to": self.to_location.to_dict(),
            "complexityScore": self.complexity,
            "estimatedTimeSeconds": self.estimated_seconds,
            "producerUnitId": self.producer_unit_id,
            "consumerUnitId": self.consumer_unit_id,
            "derived": True,
        }
        if self.from_pod_id is not None:
            payload["fromPodId"] = self.from_pod_id
        if self.to_pod_id is not None:
            payload["toPodId"] = self.to_pod_id
        return payload


@dataclass(frozen=True, slots=True)
class ContinuityReport:
    transfers: tuple[DerivedTransfer, ...]
    issues: tuple[ValidationIssue, ...]


@dataclass(frozen=True, slots=True)
class TransferSummary:
    total: int
    by_type: Mapping[str, int]
    total_complexity: float
    total_seconds: float
    crosses_pods: bool

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "totalTransfers": self.total,
            "byType": dict(self.by_type),
            "totalComplexity": self.total_complexity,
            "totalEstimatedSeconds": self.total_seconds,
            "crossesPods": self.crosses_pods,
        }


@dataclass(frozen=True, slots=True)
class _Producer:
    unit: WorkUnit
    ref: AssemblyRef


def producer_location(unit: WorkUnit, ref: AssemblyRef) -> Location | None:
    """Where ``unit`` leaves the assembly: output ``to``, unit ``to``, then work location."""
    for candidate in (ref.to_location, unit.to_location):
        if candidate is not None and candidate.is_meaningful:
            return candidate.with_fallback_station(unit.station_id)
    return unit.work_location_ref


def consumer_location(unit: WorkUnit, ref: AssemblyRef) -> Location | None:
    """Where ``unit`` expects the assembly: input ``from``, unit ``from``, then work location."""
    for candidate in (ref.from_location, unit.from_location):
        if candidate is not None and candidate.is_meaningful:
            return candidate.with_fallback_station(unit.station_id)
    return unit.work_location_ref


def classify_transfer(
    source: Location, target: Location, pods: PodLayout
) -> TransferType | None:
    """Classify a move, or return ``None`` when the locations already match."""
    if source.matches(target):
        return None
    from_pod = pods.pod_for(source)
    to_pod = pods.pod_for(target)
    if from_pod is not None and to_pod is not None and from_pod != to_pod:
        return TransferType.INTER_POD
    if source.station_id != target.station_id:
        return TransferType.INTER_STATION
    return TransferType.SAME_STATION


def infer_technique(source: Location, target: Location) -> TransferTechnique:
    if (
        target.station_id == _HANDOFF_STATION
        or target.sublocation_type is SublocationType.WINDOW_SHELF
    ):
        return TransferTechnique.HANDOFF
    if source.sublocation_type in _RETRIEVAL_SUBLOCATIONS:
        return TransferTechnique.RETRIEVE
    if (
        source.station_id is not None
        and target.station_id is not None
        and source.station_id != target.station_id
    ):
        return TransferTechnique.PASS
    return TransferTechnique.PLACE


def check_continuity(
    build: Build,
    tables: ReferenceTables,
    pods: PodLayout | None = None,
) -> ContinuityReport:
    """Check every (assembly, producer, consumer) triple and derive transfers."""
    layout = pods if pods is not None else tables.pods
    catalog = unique_units(build.units)
    known_assemblies = build.assembly_ids
    issues: list[ValidationIssue] = []
    transfers: dict[str, DerivedTransfer] = {}

    producers: dict[str, _Producer] = {}
    for unit in catalog.values():
        for index, ref in enumerate(unit.outputs):
            if ref.is_external:
                continue
            if ref.assembly_id not in known_assemblies:
                issues.append(_unknown_assembly(unit.id, ref.assembly_id, f"outputs[{index}]"))
            producers[ref.assembly_id] = _Producer(unit=unit, ref=ref)

    for consumer_id in sorted(catalog):
        consumer = catalog[consumer_id]
        for index, ref in enumerate(consumer.inputs):
            if ref.is_external:
                continue
            field_path = f"inputs[{index}]"
            if ref.assembly_id not in known_assemblies:
                issues.append(_unknown_assembly(consumer_id, ref.assembly_id, field_path))

            producer = producers.get(ref.assembly_id)
            if producer is None:
                issues.append(
                    warning(
                        IssueKind.MISSING_PRODUCER,
                        f"assembly {ref.assembly_id!r} consumed by {consumer_id!r} "
                        "has no producing unit in this build",
                        unit_id=consumer_id,
                        field=field_path,
                    )
                )
                continue
            if producer.unit.id == consumer_id:
                continue

            source = producer_location(producer.unit, producer.ref)
            target = consumer_location(consumer, ref)
            if source is None or target is None:
                continue
            transfer_type = classify_transfer(source, target, layout)
            if transfer_type is None:
                continue

            weight = tables.transfer_weight(transfer_type)
            transfer = DerivedTransfer(
                id=f"transfer-{producer.unit.id}__{consumer_id}__{ref.assembly_id}",
                assembly_id=ref.assembly_id,
                transfer_type=transfer_type,
                technique=infer_technique(source, target),
                from_location=source,
                to_location=target,
                complexity=weight.complexity,
                estimated_seconds=weight.seconds,
                producer_unit_id=producer.unit.id,
                consumer_unit_id=consumer_id,
                from_pod_id=layout.pod_for(source),
                to_pod_id=layout.pod_for(target),
            )
            if transfer.id in transfers:
                continue
            transfers[transfer.id] = transfer
            issues.append(
                warning(
                    IssueKind.LOCATION_MISMATCH,
                    f"assembly {ref.assembly_id!r} leaves {producer.unit.id!r} at "
                    f"{describe_location(source)} but {consumer_id!r} expects it at "
                    f"{describe_location(target)} ({transfer_type.value})",
                    unit_id=consumer_id,
                    field=field_path,
                )
            )

    return ContinuityReport(
        transfers=tuple(transfers[key] for key in sorted(transfers)),
        issues=sort_issues(issues),
    )


def derive_transfers(
    build: Build,
    tables: ReferenceTables,
    pods: PodLayout | None = None,
) -> tuple[DerivedTransfer, ...]:
    return check_continuity(build, tables, pods).transfers


def group_transfers_by_type(
    transfers: Iterable[DerivedTransfer],
) -> dict[TransferType, tuple[DerivedTransfer, ...]]:
    groups: dict[TransferType, list[DerivedTransfer]] = {kind: [] for kind in TransferType}
    for transfer in transfers:
        groups[transfer.transfer_type].append(transfer)
    return {kind: tuple(items) for kind, items in groups.items()}


def summarize_transfers(transfers: Iterable[DerivedTransfer]) -> TransferSummary:
    items = tuple(transfers)
    grouped = group_transfers_by_type(items)
    return TransferSummary(
        total=len(items),
        by_type={kind.value: len(grouped[kind]) for kind in TransferType},
        total_complexity=sum(item.complexity for item in items),
        total_seconds=sum(item.estimated_seconds for item in items),
        crosses_pods=bool(grouped[TransferType.INTER_POD]),
    )


def describe_location(location: Location) -> str:
    station = location.station_id or "?"
    if location.sublocation is None:
        return station
    text = f"{station}/{location.sublocation.type.value}"
    if location.equipment_id is not None:
        text = f"{text}:{location.equipment_id}"
    return text


def _unknown_assembly(unit_id: str, assembly_id: str, field_path: str) -> ValidationIssue:
    return error(
        IssueKind.UNKNOWN_ASSEMBLY,
        f"assembly {assembly_id!r} is neither defined in this build nor marked external",
        unit_id=unit_id,
        field=field_path,
    )


__all__ = [
    "ContinuityReport",
    "DerivedTransfer",
    "TransferSummary",
    "TransferTechnique",
    "check_continuity",
    "classify_transfer",
    "consumer_location",
    "derive_transfers",
    "describe_location",
    "group_transfers_by_type",
    "infer_technique",
    "producer_location",
    "summarize_transfers",
]
