"""Entity model for line builds: work units, assemblies, locations and findings."""

from linebuild_engine.domain.issues import IssueKind, Severity, ValidationIssue
from linebuild_engine.domain.models import (
    ActionDescriptor,
    ActionFamily,
    Assembly,
    AssemblyRef,
    Build,
    BuildStatus,
    ConditionalStepRef,
    ConfidenceTier,
    DependencyRef,
    EquipmentRef,
    Location,
    StepRef,
    Sublocation,
    SublocationType,
    UnitTime,
    WorkUnit,
    dependency_id,
)

__all__ = [
    "ActionDescriptor",
    "ActionFamily",
    "Assembly",
    "AssemblyRef",
    "Build",
    "BuildStatus",
    "ConditionalStepRef",
    "ConfidenceTier",
    "DependencyRef",
    "EquipmentRef",
    "IssueKind",
    "Location",
    "Severity",
    "StepRef",
    "Sublocation",
    "SublocationType",
    "UnitTime",
    "ValidationIssue",
    "WorkUnit",
    "dependency_id",
]
