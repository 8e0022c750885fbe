"""
linebuild-engine — migration validation and routing.

Purpose
- Check one converted legacy item and decide whether it can be accepted without a
  human looking at it.

Functional requirements
- Every check runs; the finding list is never short-circuited.
- Structural checks reuse the dependency-graph builder and cycle detector.
- Auto-accept iff there is no error finding and no low-confidence finding.
  A structurally perfect item extracted with low confidence still goes to review.

Non-functional requirements
- Pure: identical input yields identical findings in identical order.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Final

from linebuild_engine.constants import (
    CONFIDENCE_TIER_THRESHOLDS,
    EXTRACTION_CONFIDENCE_ABSENT,
    EXTRACTION_CONFIDENCE_SCORES,
    LOW_CONFIDENCE_ERROR_BELOW,
)
from linebuild_engine.domain.issues import IssueKind, ValidationIssue, error, sort_issues, warning
from linebuild_engine.domain.models import ConfidenceTier
from linebuild_engine.graph.dependency_graph import build_dependency_graph, detect_cycle_issues
from linebuild_engine.migration.models import MigratedWorkUnit

VALID_ACTIONS: Final[tuple[str, ...]] = (
    "PREP",
    "HEAT",
    "TRANSFER",
    "ASSEMBLE",
    "PORTION",
    "PLATE",
    "FINISH",
    "QUALITY_CHECK",
)
VALID_PHASES: Final[tuple[str, ...]] = ("PRE_COOK", "COOK", "POST_COOK", "ASSEMBLY", "PASS")
VALID_EQUIPMENT: Final[tuple[str, ...]] = (
    "waterbath",
    "turbo",
    "fryer",
    "microwave",
    "grill",
    "oven",
    "stovetop",
    "salamander",
)
VALID_TIME_UNITS: Final[tuple[str, ...]] = ("sec", "min")
VALID_TIME_TYPES: Final[tuple[str, ...]] = ("active", "passive")

ACTION_REQUIREMENTS: Final[dict[str, tuple[str, ...]]] = {
    "HEAT": ("equipment", "time"),
    "TRANSFER": ("equipment",),
    "PORTION": ("equipment",),
}
_SUGGESTED_EQUIPMENT: Final[str] = "stovetop"

ConfidenceThreshold = str | ConfidenceTier | int


@dataclass(frozen=True, slots=True)
class RoutingDecision:
    issues: tuple[ValidationIssue, ...]
    auto_accept: bool
    threshold: int

    @property
    def error_count(self) -> int:
        return sum(1 for issue in self.issues if issue.is_error)

    @property
    def warning_count(self) -> int:
        return len(self.issues) - self.error_count


def resolve_threshold(tier: ConfidenceThreshold) -> int:
    """Map a tier name (``high``/``medium``/``low``) or an explicit score to a threshold."""
    if isinstance(tier, bool):
        raise ValueError("confidence tier: expected tier name or score, got bool")
    if isinstance(tier, int):
        if not 0 <= tier <= 100:
            raise ValueError(f"confidence tier: score must be within 0..100, got {tier}")
        return tier
    key = str(tier).strip().lower()
    if key not in CONFIDENCE_TIER_THRESHOLDS:
        raise ValueError(
            f"confidence tier: unknown tier {tier!r}; "
            f"expected one of {sorted(CONFIDENCE_TIER_THRESHOLDS)}"
        )
    return CONFIDENCE_TIER_THRESHOLDS[key]


def confidence_score(unit: MigratedWorkUnit) -> int:
    if unit.extraction_confidence is None:
        return EXTRACTION_CONFIDENCE_ABSENT
    return EXTRACTION_CONFIDENCE_SCORES[unit.extraction_confidence.value]


class MigrationValidator:
    """Schema, structure and confidence checks for converted legacy items."""

    def __init__(self, *, low_confidence_error_below: int = LOW_CONFIDENCE_ERROR_BELOW) -> None:
        self._error_below = low_confidence_error_below

    def validate_required(self, unit: MigratedWorkUnit) -> list[ValidationIssue]:
        issues: list[ValidationIssue] = []
        if not unit.action:
            issues.append(
                error(
                    IssueKind.MISSING_REQUIRED_FIELD,
                    "action type is required",
                    unit_id=unit.id,
                    field="action",
                )
            )
        elif unit.action not in VALID_ACTIONS:
            issues.append(
                error(
                    IssueKind.INVALID_ENUM,
                    f"invalid action type: {unit.action}",
                    unit_id=unit.id,
                    field="action",
                    suggested_value=VALID_ACTIONS[0],
                )
            )
        if not unit.target_name:
            issues.append(
                error(
                    IssueKind.MISSING_REQUIRED_FIELD,
                    "target ingredient is required",
                    unit_id=unit.id,
                    field="target",
                )
            )

        for requirement in ACTION_REQUIREMENTS.get(unit.action or "", ()):
            if requirement == "equipment" and not unit.equipment:
                issues.append(
                    error(
                        IssueKind.MISSING_REQUIRED_FIELD,
                        f"{unit.action} action requires equipment",
                        unit_id=unit.id,
                        field="equipment",
                        suggested_value=_SUGGESTED_EQUIPMENT,
                    )
                )
            if requirement == "time" and unit.time is None:
                issues.append(
                    error(
                        IssueKind.MISSING_REQUIRED_FIELD,
                        f"{unit.action} action requires timing",
                        unit_id=unit.id,
                        field="time",
                    )
                )
        return issues

    def validate_field_formats(self, unit: MigratedWorkUnit) -> list[ValidationIssue]:
        issues: list[ValidationIssue] = []
        if unit.phase and unit.phase not in VALID_PHASES:
            issues.append(
                warning(
                    IssueKind.INVALID_ENUM,
                    f"invalid phase: {unit.phase}",
                    unit_id=unit.id,
                    field="phase",
                    suggested_value="COOK",
                )
            )
        if unit.equipment and unit.equipment not in VALID_EQUIPMENT:
            issues.append(
                warning(
                    IssueKind.INVALID_ENUM,
                    f"equipment {unit.equipment!r} is not in the standard list",
                    unit_id=unit.id,
                    field="equipment",
                    suggested_value=_SUGGESTED_EQUIPMENT,
                )
            )
        if unit.time is not None:
            if unit.time.value <= 0:
                issues.append(
                    error(
                        IssueKind.NON_POSITIVE_VALUE,
                        f"time value must be positive, got {unit.time.value:g}",
                        unit_id=unit.id,
                        field="time.value",
                    )
                )
            if unit.time.unit not in VALID_TIME_UNITS:
                issues.append(
                    error(
                        IssueKind.INVALID_ENUM,
                        f"invalid time unit: {unit.time.unit}",
                        unit_id=unit.id,
                        field="time.unit",
                        suggested_value="min",
                    )
                )
            if unit.time.type not in VALID_TIME_TYPES:
                issues.append(
                    error(
                        IssueKind.INVALID_ENUM,
                        f"invalid time type: {unit.time.type}",
                        unit_id=unit.id,
                        field="time.type",
                        suggested_value="active",
                    )
                )
        return issues

    def validate_structure(self, units: Sequence[MigratedWorkUnit]) -> list[ValidationIssue]:
        graph, structural = build_dependency_graph(units)
        _, cycle_issues = detect_cycle_issues(graph)
        return [*structural, *cycle_issues]

    def validate_confidence(
        self, units: Iterable[MigratedWorkUnit], threshold: int
    ) -> list[ValidationIssue]:
        issues: list[ValidationIssue] = []
        for unit in units:
            score = confidence_score(unit)
            if score >= threshold:
                continue
            build_issue = error if score < self._error_below else warning
            issues.append(
                build_issue(
                    IssueKind.LOW_CONFIDENCE_EXTRACTION,
                    f"extraction confidence {score}% below threshold {threshold}%",
                    unit_id=unit.id,
                    field="extraction_confidence",
                )
            )
        return issues

    def validate(
        self, units: Sequence[MigratedWorkUnit], tier: ConfidenceThreshold = "high"
    ) -> tuple[ValidationIssue, ...]:
        threshold = resolve_threshold(tier)
        findings: list[ValidationIssue] = []
        for unit in units:
            findings.extend(self.validate_required(unit))
            findings.extend(self.validate_field_formats(unit))
        findings.extend(self.validate_structure(units))
        findings.extend(self.validate_confidence(units, threshold))
        return sort_issues(findings)

    def route(
        self, units: Sequence[MigratedWorkUnit], tier: ConfidenceThreshold = "high"
    ) -> RoutingDecision:
        issues = self.validate(units, tier)
        return RoutingDecision(
            issues=issues,
            auto_accept=should_auto_accept(issues),
            threshold=resolve_threshold(tier),
        )


def should_auto_accept(issues: Iterable[ValidationIssue]) -> bool:
    for issue in issues:
        if issue.is_error or issue.kind is IssueKind.LOW_CONFIDENCE_EXTRACTION:
            return False
    return True


__all__ = [
    "ACTION_REQUIREMENTS",
    "MigrationValidator",
    "RoutingDecision",
    "VALID_ACTIONS",
    "VALID_EQUIPMENT",
    "VALID_PHASES",
    "VALID_TIME_TYPES",
    "VALID_TIME_UNITS",
    "confidence_score",
    "resolve_threshold",
    "should_auto_accept",
]
