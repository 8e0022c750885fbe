"""Validation findings shared by every checker.

Findings are values: checkers collect and return them, they never raise them.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from enum import StrEnum

from linebuild_engine.domain.models import JSONValue


class Severity(StrEnum):
    ERROR = "error"
    WARNING = "warning"


class IssueKind(StrEnum):
    # structural
    DANGLING_REFERENCE = "dangling_reference"
    CYCLE = "cycle"
    DUPLICATE_ID = "duplicate_id"
    MISSING_PRODUCER = "missing_producer"
    UNKNOWN_ASSEMBLY = "unknown_assembly"
    LOCATION_MISMATCH = "location_mismatch"
    UNDEFINED_SUB_ASSEMBLY = "undefined_sub_assembly"
    # schema
    MISSING_REQUIRED_FIELD = "missing_required_field"
    INVALID_ENUM = "invalid_enum"
    NON_POSITIVE_VALUE = "non_positive_value"
    # trust
    LOW_CONFIDENCE_EXTRACTION = "low_confidence_extraction"
    SEMANTIC_RULE = "semantic_rule"
    # environmental
    CONVERSION_FAILURE = "conversion_failure"


@dataclass(frozen=True, slots=True)
class ValidationIssue:
    """Single finding with an optional affected unit, field path and suggested value."""

    kind: IssueKind
    severity: Severity
    message: str
    unit_id: str | None = None
    field: str | None = None
    suggested_value: str | None = None
    rule_id: str | None = None

    @property
    def is_error(self) -> bool:
        return self.severity is Severity.ERROR

    @property
    def rule(self) -> str:
        return self.rule_id if self.rule_id is not None else self.kind.value

    def to_dict(self) -> dict[str, JSONValue]:
        payload: dict[str, JSONValue] = {
            "severity": self.severity.value,
            "ruleId": self.rule,
            "kind": self.kind.value,
            "message": self.message,
        }
        if self.unit_id is not None:
            payload["unitId"] = self.unit_id
        if self.field is not None:
            payload["field"] = self.field
        if self.suggested_value is not None:
            payload["suggestedValue"] = self.suggested_value
        return payload


def error(kind: IssueKind, message: str, **details: str | None) -> ValidationIssue:
    return ValidationIssue(kind=kind, severity=Severity.ERROR, message=message, **details)


def warning(kind: IssueKind, message: str, **details: str | None) -> ValidationIssue:
    return ValidationIssue(kind=kind, severity=Severity.WARNING, message=message, **details)


def sort_issues(issues: Iterable[ValidationIssue]) -> tuple[ValidationIssue, ...]:
    """Order findings by unit, kind, field and message for diff-friendly output."""
    return tuple(
        sorted(
            issues,
            key=lambda item: (
                item.unit_id or "",
                item.kind.value,
                item.field or "",
                item.message,
            ),
        )
    )


def split_by_severity(
    issues: Iterable[ValidationIssue],
) -> tuple[tuple[ValidationIssue, ...], tuple[ValidationIssue, ...]]:
    """Return ``(errors, warnings)`` preserving input order."""
    errors: list[ValidationIssue] = []
    warnings: list[ValidationIssue] = []
    for issue in issues:
        (errors if issue.is_error else warnings).append(issue)
    return tuple(errors), tuple(warnings)


__all__ = [
    "IssueKind",
    "Severity",
    "ValidationIssue",
    "error",
    "sort_issues",
    "split_by_severity",
    "warning",
]
