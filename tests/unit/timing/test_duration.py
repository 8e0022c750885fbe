"""
linebuild-engine — unit tests for layered duration estimation.

Purpose
- Pin the fallback order: explicit, equipment preset, technique, assembly type, family default.

What this test file should cover
- Each rung of the chain reports its source and confidence tier.
- Lookups are case-insensitive and overrides replace only the named sections.
- Build-level resolution keeps the first declaration of a duplicated id.

Non-functional requirements
- Deterministic and offline; no files are read.
"""

from __future__ import annotations

import pytest

from linebuild_engine.domain.models import (
    ActionDescriptor,
    ActionFamily,
    Build,
    ConfidenceTier,
    EquipmentRef,
    UnitTime,
    WorkUnit,
)
from linebuild_engine.reference.tables import ReferenceTables, default_reference_tables
from linebuild_engine.timing.duration import (
    DurationContext,
    DurationSource,
    resolve_build_durations,
    resolve_duration,
)


@pytest.fixture()
def tables() -> ReferenceTables:
    return default_reference_tables()


def test_explicit_positive_duration_wins(tables: ReferenceTables) -> None:
    unit = WorkUnit(
        id="sear",
        action=ActionDescriptor(family=ActionFamily.HEAT, technique_id="dice"),
        equipment=EquipmentRef(appliance_id="turbo"),
        time=UnitTime(duration_seconds=42),
    )

    estimate = resolve_duration(unit, tables)

    assert estimate.as_tuple() == (42.0, "explicit", "high")
    assert estimate.is_explicit


def test_zero_duration_is_not_treated_as_explicit(tables: ReferenceTables) -> None:
    unit = WorkUnit(id="u", action="prep", time=UnitTime(duration_seconds=0))

    estimate = resolve_duration(unit, tables)

    assert estimate.source is DurationSource.FAMILY_DEFAULT
    assert estimate.seconds == 10


def test_heat_without_preset_uses_the_appliance_default(tables: ReferenceTables) -> None:
    unit = WorkUnit(id="u", action="heat", equipment=EquipmentRef(appliance_id="Waterbath"))

    estimate = resolve_duration(unit, tables)

    assert estimate.seconds == 360
    assert estimate.source is DurationSource.EQUIPMENT_PRESET
    assert estimate.confidence is ConfidenceTier.HIGH
    assert estimate.source_detail == "Waterbath:default"


def test_heat_with_named_preset(tables: ReferenceTables) -> None:
    unit = WorkUnit(
        id="u",
        action="heat",
        equipment=EquipmentRef(appliance_id="waterbath", preset_id="chicken_pouch"),
    )

    assert resolve_duration(unit, tables).seconds == 300


def test_unknown_preset_falls_through_to_family_default(tables: ReferenceTables) -> None:
    unit = WorkUnit(
        id="u",
        action="heat",
        equipment=EquipmentRef(appliance_id="turbo", preset_id="mystery"),
    )

    estimate = resolve_duration(unit, tables)

    assert estimate.source is DurationSource.FAMILY_DEFAULT
    assert estimate.seconds == 60
    assert estimate.confidence is ConfidenceTier.LOW


def test_heat_without_appliance_uses_family_default(tables: ReferenceTables) -> None:
    estimate = resolve_duration(WorkUnit(id="u", action="heat"), tables)

    assert estimate.as_tuple() == (60, "family_default", "low")


def test_presets_only_apply_to_heat(tables: ReferenceTables) -> None:
    unit = WorkUnit(id="u", action="prep", equipment=EquipmentRef(appliance_id="turbo"))

    assert resolve_duration(unit, tables).source is DurationSource.FAMILY_DEFAULT


def test_technique_lookup_is_medium_confidence(tables: ReferenceTables) -> None:
    unit = WorkUnit(id="u", action=ActionDescriptor(family="prep", technique_id="DICE"))

    estimate = resolve_duration(unit, tables)

    assert estimate.as_tuple() == (20, "technique", "medium")


def test_assembly_uses_menu_item_type_hint(tables: ReferenceTables) -> None:
    unit = WorkUnit(id="u", action="assemble")

    estimate = resolve_duration(unit, tables, DurationContext(menu_item_type="burrito"))

    assert estimate.as_tuple() == (30, "assembly", "medium")


def test_assembly_type_can_come_from_the_build_id_lookup(tables: ReferenceTables) -> None:
    build = Build(id="8006896", item_id="8006896", units=(WorkUnit(id="u", action="assemble"),))

    durations = resolve_build_durations(build, tables)

    assert durations["u"].source is DurationSource.ASSEMBLY
    assert durations["u"].seconds == 15
    assert durations["u"].source_detail == "quesadilla"


def test_assembly_without_a_hint_uses_family_default(tables: ReferenceTables) -> None:
    estimate = resolve_duration(WorkUnit(id="u", action="assemble"), tables)

    assert estimate.source is DurationSource.FAMILY_DEFAULT
    assert estimate.seconds == 15


def test_overrides_replace_only_named_sections(tables: ReferenceTables) -> None:
    custom = tables.with_overrides({"family_defaults": {"heat": 90}})

    assert resolve_duration(WorkUnit(id="u", action="heat"), custom).seconds == 90
    assert resolve_duration(WorkUnit(id="v", action="prep"), custom).seconds == 10


def test_build_resolution_keeps_first_declaration(tables: ReferenceTables) -> None:
    build = Build(
        id="b",
        item_id="i",
        units=(
            WorkUnit(id="u", action="prep", time=UnitTime(duration_seconds=7)),
            WorkUnit(id="u", action="heat"),
        ),
    )

    durations = resolve_build_durations(build, tables)

    assert list(durations) == ["u"]
    assert durations["u"].seconds == 7
