"""Layered duration estimation for work units.

The fallback chain trusts explicit authoring first, equipment-specific timing over
generic technique timing, and coarse family averages only as the last resort.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum

from linebuild_engine.domain.models import ActionFamily, Build, ConfidenceTier, WorkUnit
from linebuild_engine.graph.ordering import unique_units
from linebuild_engine.reference.tables import ReferenceTables


class DurationSource(StrEnum):
    EXPLICIT = "explicit"
    EQUIPMENT_PRESET = "equipment_preset"
    TECHNIQUE = "technique"
    ASSEMBLY = "assembly"
    FAMILY_DEFAULT = "family_default"


@dataclass(frozen=True, slots=True)
class DurationContext:
    """Optional hints used when resolving assembly work."""

    menu_item_type: str | None = None
    build_id: str | None = None
    build_name: str | None = None

    @classmethod
    def for_build(cls, build: Build) -> DurationContext:
        return cls(
            menu_item_type=build.menu_item_type,
            build_id=build.id,
            build_name=build.name,
        )


@dataclass(frozen=True, slots=True)
class DurationEstimate:
    seconds: float
    source: DurationSource
    confidence: ConfidenceTier
    source_detail: str | None = None

    @property
    def is_explicit(self) -> bool:
        return self.source is DurationSource.EXPLICIT

    def as_tuple(self) -> tuple[float, str, str]:
        return (self.seconds, self.source.value, self.confidence.value)

    def to_dict(self) -> dict[str, object]:
        return {
            "seconds": self.seconds,
            "source": self.source.value,
            "sourceDetail": self.source_detail,
            "confidence": self.confidence.value,
        }


def resolve_duration(
    unit: WorkUnit,
    tables: ReferenceTables,
    context: DurationContext | None = None,
) -> DurationEstimate:
    """Resolve ``unit`` to an estimate; the first matching rule wins.

    1. explicit positive duration on the unit (high)
    2. heat with an appliance: preset table keyed by (appliance, preset or "default") (high)
    3. technique table (medium)
    4. assemble: per-type base duration from the item-type hint or build lookup (medium)
    5. per-family default (low)
    """
    ctx = context if context is not None else DurationContext()

    if unit.time is not None and unit.time.duration_seconds > 0:
        return DurationEstimate(
            seconds=unit.time.duration_seconds,
            source=DurationSource.EXPLICIT,
            confidence=ConfidenceTier.HIGH,
            source_detail="authored",
        )

    family = unit.action.family
    if family is ActionFamily.HEAT and unit.equipment is not None:
        preset_id = unit.equipment.preset_id
        seconds = tables.preset_seconds(unit.equipment.appliance_id, preset_id)
        if seconds is not None:
            return DurationEstimate(
                seconds=seconds,
                source=DurationSource.EQUIPMENT_PRESET,
                confidence=ConfidenceTier.HIGH,
                source_detail=f"{unit.equipment.appliance_id}:{preset_id or 'default'}",
            )

    technique_id = unit.action.technique_id
    if technique_id:
        seconds = tables.technique_seconds(technique_id)
        if seconds is not None:
            return DurationEstimate(
                seconds=seconds,
                source=DurationSource.TECHNIQUE,
                confidence=ConfidenceTier.MEDIUM,
                source_detail=technique_id,
            )

    if family is ActionFamily.ASSEMBLE:
        assembly_type = _assembly_type_hint(ctx, tables)
        if assembly_type is not None:
            seconds = tables.assembly_type_seconds(assembly_type)
            if seconds is not None:
                return DurationEstimate(
                    seconds=seconds,
                    source=DurationSource.ASSEMBLY,
                    confidence=ConfidenceTier.MEDIUM,
                    source_detail=assembly_type,
                )

    return DurationEstimate(
        seconds=tables.family_seconds(family),
        source=DurationSource.FAMILY_DEFAULT,
        confidence=ConfidenceTier.LOW,
        source_detail=family.value,
    )


def resolve_build_durations(
    build: Build, tables: ReferenceTables
) -> Mapping[str, DurationEstimate]:
    """Resolve every unit of ``build`` keyed by unit id (first declaration wins)."""
    context = DurationContext.for_build(build)
    return {
        unit_id: resolve_duration(unit, tables, context)
        for unit_id, unit in unique_units(build.units).items()
    }


def _assembly_type_hint(context: DurationContext, tables: ReferenceTables) -> str | None:
    if context.menu_item_type:
        return context.menu_item_type
    return tables.assembly_type_for_build(context.build_id) or tables.assembly_type_for_build(
        context.build_name
    )


__all__ = [
    "DurationContext",
    "DurationEstimate",
    "DurationSource",
    "resolve_build_durations",
    "resolve_duration",
]
