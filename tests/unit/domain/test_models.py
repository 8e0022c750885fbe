"""Unit tests for line-build entity models."""

from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta, timezone

import pytest

from linebuild_engine.domain.issues import (
    IssueKind,
    Severity,
    error,
    sort_issues,
    split_by_severity,
    warning,
)
from linebuild_engine.domain.models import (
    ActionDescriptor,
    ActionFamily,
    Assembly,
    AssemblyRef,
    Build,
    BuildStatus,
    ConditionalStepRef,
    ExternalBuildRef,
    Location,
    StepRef,
    Sublocation,
    SublocationType,
    UnitTime,
    WorkUnit,
    iso8601z,
)


def _sample_build() -> Build:
    return Build(
        id="b-1",
        item_id="item-1",
        version=2,
        status=BuildStatus.PUBLISHED,
        name="Barbacoa Bowl",
        menu_item_type="bowl",
        created_at=datetime(2026, 2, 1, 12, 0, 0, tzinfo=UTC),
        units=(
            WorkUnit(
                id="heat-beef",
                action=ActionDescriptor(family=ActionFamily.HEAT),
                track_id="hot",
                station_id="hot",
                work_location=Sublocation(type=SublocationType.EQUIPMENT, equipment_id="waterbath"),
                time=UnitTime(duration_seconds=360, is_active=False),
                outputs=(AssemblyRef(assembly_id="beef"),),
            ),
            WorkUnit(
                id="build-bowl",
                action=ActionDescriptor(family=ActionFamily.ASSEMBLE, technique_id="place"),
                order_index=1,
                depends_on=(
                    "heat-beef",
                    ConditionalStepRef(
                        step_id="heat-beef", requires_customization_value_ids=("x",)
                    ),
                ),
                inputs=(
                    AssemblyRef(assembly_id="beef"),
                    AssemblyRef(
                        assembly_id="tortilla",
                        external=ExternalBuildRef(item_id="tort-1", version=3),
                        from_location=Location(station_id="line"),
                    ),
                ),
            ),
        ),
        assemblies=(
            Assembly(id="beef", name="Beef"),
            Assembly(id="bowl", sub_assemblies=("beef",)),
        ),
    )


def test_build_json_roundtrip_is_canonical() -> None:
    build = _sample_build()

    encoded = build.to_json()
    decoded = Build.from_json(encoded)

    assert decoded == build
    assert decoded.to_json() == encoded
    assert json.loads(encoded)["createdAt"] == "2026-02-01T12:00:00.000000Z"


def test_dependency_strings_become_step_refs() -> None:
    unit = WorkUnit(id="u", action="prep", depends_on=["a", {"stepId": "b"}])

    assert unit.depends_on == (StepRef("a"), StepRef("b"))
    assert unit.dependency_ids == ("a", "b")


def test_conditional_dependency_serializes_with_its_condition() -> None:
    unit = WorkUnit.from_dict(
        {
            "id": "u",
            "action": {"family": "prep"},
            "dependsOn": [
                {"stepId": "a", "condition": {"requiresCustomizationValueIds": ["extra"]}}
            ],
        }
    )

    assert unit.depends_on == (
        ConditionalStepRef(step_id="a", requires_customization_value_ids=("extra",)),
    )
    assert unit.to_dict()["dependsOn"] == [
        {"stepId": "a", "condition": {"requiresCustomizationValueIds": ["extra"]}}
    ]


def test_enum_values_parse_case_insensitively() -> None:
    unit = WorkUnit.from_dict({"id": "u", "action": {"family": " HEAT "}, "cookingPhase": "Cook"})

    assert unit.family is ActionFamily.HEAT
    assert unit.cooking_phase is not None
    assert unit.cooking_phase.value == "cook"


def test_invalid_enum_names_the_allowed_values() -> None:
    with pytest.raises(ValueError, match=r"invalid value 'boil'; expected one of: .*heat"):
        WorkUnit(id="u", action="boil")


def test_unknown_fields_are_rejected_with_a_path() -> None:
    with pytest.raises(ValueError, match=r"WorkUnit: unexpected fields: \['colour'\]"):
        WorkUnit.from_dict({"id": "u", "action": {"family": "prep"}, "colour": "red"})


def test_missing_required_field_is_rejected() -> None:
    with pytest.raises(ValueError, match="missing required fields"):
        Build.from_dict({"id": "b"})


def test_blank_identifier_is_rejected() -> None:
    with pytest.raises(ValueError, match="WorkUnit.id"):
        WorkUnit(id="   ", action="prep")


def test_naive_timestamps_are_rejected() -> None:
    with pytest.raises(ValueError, match="timezone-aware"):
        Build(id="b", item_id="i", created_at=datetime(2026, 1, 1))


@pytest.mark.parametrize(
    ("value", "timespec", "expected"),
    [
        (
            datetime(2026, 1, 2, 3, 4, 5, 678901, tzinfo=UTC),
            "milliseconds",
            "2026-01-02T03:04:05.678Z",
        ),
        (datetime(2026, 1, 2, 3, 4, 5, tzinfo=UTC), "microseconds", "2026-01-02T03:04:05.000000Z"),
        (
            datetime(2026, 1, 2, 5, 4, 5, tzinfo=timezone(timedelta(hours=2))),
            "milliseconds",
            "2026-01-02T03:04:05.000Z",
        ),
        (datetime(2026, 1, 2, 3, 4, 5), "milliseconds", "2026-01-02T03:04:05.000Z"),
    ],
)
def test_timestamps_render_as_utc_with_a_z_suffix(
    value: datetime, timespec: str, expected: str
) -> None:
    assert iso8601z(value, timespec=timespec) == expected


def test_non_positive_duration_is_accepted_for_later_validation() -> None:
    unit = WorkUnit(id="u", action="prep", time={"durationSeconds": 0})

    assert unit.time == UnitTime(duration_seconds=0)


def test_external_assembly_source_roundtrip() -> None:
    ref = AssemblyRef.from_dict(
        {"source": {"type": "external_build", "itemId": "tort-1", "version": "v2"}}
    )

    assert ref.is_external
    assert ref.assembly_id == "tort-1"
    assert ref.to_dict()["source"] == {
        "type": "external_build",
        "itemId": "tort-1",
        "version": "v2",
        "assemblyId": "tort-1",
    }


def test_location_matching_compares_equipment_only_for_equipment() -> None:
    turbo = Location(station_id="hot", sublocation=Sublocation("equipment", "turbo"))
    bath = Location(station_id="hot", sublocation=Sublocation("equipment", "bath"))
    rail = Location(station_id="hot", sublocation=Sublocation(type="cold_rail"))

    assert not turbo.matches(bath)
    assert rail.matches(Location(station_id="hot", sublocation=Sublocation(type="cold_rail")))
    assert not rail.matches(Location(station_id="line", sublocation=Sublocation(type="cold_rail")))


def test_track_falls_back_to_the_default_lane() -> None:
    assert WorkUnit(id="u", action="prep").track == "default"
    assert WorkUnit(id="u", action="prep", track_id="hot").track == "hot"


def test_issue_helpers_sort_and_split() -> None:
    issues = [
        warning(IssueKind.LOCATION_MISMATCH, "moved", unit_id="b"),
        error(IssueKind.CYCLE, "loop", unit_id="a"),
        error(IssueKind.DANGLING_REFERENCE, "ghost", unit_id="a", field="depends_on[0]"),
    ]

    ordered = sort_issues(issues)
    errors, warnings = split_by_severity(ordered)

    assert [issue.kind for issue in ordered] == [
        IssueKind.CYCLE,
        IssueKind.DANGLING_REFERENCE,
        IssueKind.LOCATION_MISMATCH,
    ]
    assert [issue.severity for issue in errors] == [Severity.ERROR, Severity.ERROR]
    assert warnings[0].to_dict() == {
        "severity": "warning",
        "ruleId": "location_mismatch",
        "kind": "location_mismatch",
        "message": "moved",
        "unitId": "b",
    }
