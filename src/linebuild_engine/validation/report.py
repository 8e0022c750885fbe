"""
linebuild-engine — build validation report.

Purpose
- Run every structural rule against one build and package the findings into the
  validation document consumed by viewers and publishing gates.

Functional requirements
- A build is valid iff no finding has error severity.
- Hard errors and warnings are listed in a deterministic order.
- External semantic judges may contribute warnings; a judge that raises is reported
  as a warning under its rule id and never aborts validation.

Non-functional requirements
- Apart from the timestamp, the report depends only on the build, tables and judges.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Protocol, runtime_checkable

from linebuild_engine.domain.issues import (
    IssueKind,
    ValidationIssue,
    error,
    sort_issues,
    split_by_severity,
    warning,
)
from linebuild_engine.domain.models import (
    ActionFamily,
    Build,
    JSONValue,
    WorkUnit,
    iso8601z,
)
from linebuild_engine.flow.continuity import check_continuity
from linebuild_engine.flow.pods import PodLayout
from linebuild_engine.graph.dependency_graph import check_graph
from linebuild_engine.reference.tables import ReferenceTables


@dataclass(frozen=True, slots=True)
class JudgeVerdict:
    passed: bool
    reasoning: str = ""


@runtime_checkable
class SemanticJudge(Protocol):
    """External rule evaluated against a whole build (e.g. a language-model reviewer)."""

    rule_id: str

    def evaluate(self, build: Build) -> JudgeVerdict: ...


@dataclass(frozen=True, slots=True)
class ValidationReport:
    build_id: str
    item_id: str
    timestamp: datetime
    valid: bool
    hard_errors: tuple[ValidationIssue, ...]
    warnings: tuple[ValidationIssue, ...]

    @property
    def issues(self) -> tuple[ValidationIssue, ...]:
        return self.hard_errors + self.warnings

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "buildId": self.build_id,
            "itemId": self.item_id,
            "timestamp": iso8601z(self.timestamp),
            "valid": self.valid,
            "hardErrors": [issue.to_dict() for issue in self.hard_errors],
            "warnings": [issue.to_dict() for issue in self.warnings],
        }


def validate_build(
    build: Build,
    tables: ReferenceTables,
    pods: PodLayout | None = None,
    judges: Sequence[SemanticJudge] = (),
    *,
    now: datetime | None = None,
) -> ValidationReport:
    """Validate ``build`` against graph, continuity, timing and assembly rules."""
    findings: list[ValidationIssue] = []
    findings.extend(check_graph(build.units).issues)
    findings.extend(check_continuity(build, tables, pods).issues)
    findings.extend(check_unit_rules(build.units))
    findings.extend(check_sub_assemblies(build))
    findings.extend(run_judges(build, judges))

    errors, warnings = split_by_severity(sort_issues(findings))
    return ValidationReport(
        build_id=build.id,
        item_id=build.item_id,
        timestamp=now if now is not None else _utc_now(),
        valid=not errors,
        hard_errors=errors,
        warnings=warnings,
    )


def check_unit_rules(units: Iterable[WorkUnit]) -> list[ValidationIssue]:
    """Per-unit rules: explicit durations must be positive; heat needs an appliance."""
    findings: list[ValidationIssue] = []
    for unit in units:
        if unit.time is not None and unit.time.duration_seconds <= 0:
            findings.append(
                error(
                    IssueKind.NON_POSITIVE_VALUE,
                    f"unit {unit.id!r} declares a non-positive duration "
                    f"({unit.time.duration_seconds:g}s)",
                    unit_id=unit.id,
                    field="time.duration_seconds",
                )
            )
        if unit.family is ActionFamily.HEAT and unit.equipment is None:
            findings.append(
                warning(
                    IssueKind.MISSING_REQUIRED_FIELD,
                    f"heat unit {unit.id!r} does not name an appliance",
                    unit_id=unit.id,
                    field="equipment",
                )
            )
    return findings


def check_sub_assemblies(build: Build) -> list[ValidationIssue]:
    known = build.assembly_ids
    findings: list[ValidationIssue] = []
    for assembly in build.assemblies:
        for index, child_id in enumerate(assembly.sub_assemblies):
            if child_id not in known:
                findings.append(
                    warning(
                        IssueKind.UNDEFINED_SUB_ASSEMBLY,
                        f"assembly {assembly.id!r} lists undefined sub-assembly {child_id!r}",
                        field=f"assemblies[{assembly.id}].sub_assemblies[{index}]",
                    )
                )
    return findings


def run_judges(build: Build, judges: Sequence[SemanticJudge]) -> list[ValidationIssue]:
    findings: list[ValidationIssue] = []
    for judge in judges:
        try:
            verdict = judge.evaluate(build)
        except Exception as exc:  # noqa: BLE001
            findings.append(
                warning(
                    IssueKind.SEMANTIC_RULE,
                    f"judge {judge.rule_id!r} failed to evaluate: {exc}",
                    rule_id=judge.rule_id,
                )
            )
            continue
        if not verdict.passed:
            findings.append(
                warning(
                    IssueKind.SEMANTIC_RULE,
                    verdict.reasoning or f"judge {judge.rule_id!r} rejected the build",
                    rule_id=judge.rule_id,
                )
            )
    return findings


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


__all__ = [
    "JudgeVerdict",
    "SemanticJudge",
    "ValidationReport",
    "check_sub_assemblies",
    "check_unit_rules",
    "run_judges",
    "validate_build",
]
