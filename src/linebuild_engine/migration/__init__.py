"""Legacy line-build migration: loading, heuristic conversion, validation and routing."""

from linebuild_engine.migration.legacy import (
    LegacyItem,
    LegacyItemError,
    LegacyLoadError,
    LegacyProcedureStep,
    load_legacy_items,
    normalize_legacy_item,
)
from linebuild_engine.migration.mapper import LegacyMapper, extract_fields
from linebuild_engine.migration.models import (
    JobStatus,
    MigratedTime,
    MigratedWorkUnit,
    MigrationJob,
    MigrationResult,
    MigrationStatus,
)
from linebuild_engine.migration.service import MigrationService, result_to_build
from linebuild_engine.migration.validator import (
    MigrationValidator,
    RoutingDecision,
    should_auto_accept,
)

__all__ = [
    "JobStatus",
    "LegacyItem",
    "LegacyItemError",
    "LegacyLoadError",
    "LegacyMapper",
    "LegacyProcedureStep",
    "MigratedTime",
    "MigratedWorkUnit",
    "MigrationJob",
    "MigrationResult",
    "MigrationService",
    "MigrationStatus",
    "MigrationValidator",
    "RoutingDecision",
    "extract_fields",
    "load_legacy_items",
    "normalize_legacy_item",
    "result_to_build",
    "should_auto_accept",
]
