"""
linebuild-engine — batch migration of legacy items.

Purpose
- Normalize, convert, validate and route every item of a legacy export, producing one
  job document with per-item results.

Functional requirements
- One malformed item fails alone; the rest of the batch proceeds.
- The progress callback receives ``(current, total)`` after each item, with ``current``
  strictly increasing from 1 to ``total``.
- A source file that cannot be loaded yields a failed job carrying the error string.

Non-functional requirements
- Routing decisions and the job lifecycle are logged with ``structlog`` under the job's
  correlation scope.
- Clock and id factory are injectable so job documents are reproducible in tests.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import replace
from datetime import UTC, datetime
from typing import Any

import structlog

from linebuild_engine.constants import LOW_CONFIDENCE_ERROR_BELOW
from linebuild_engine.domain.issues import IssueKind, ValidationIssue, error, warning
from linebuild_engine.domain.models import Build, BuildStatus
from linebuild_engine.migration.legacy import (
    LegacyItemError,
    LegacyLoadError,
    PathLike,
    load_legacy_items,
    normalize_legacy_item,
)
from linebuild_engine.migration.mapper import LegacyMapper
from linebuild_engine.migration.models import (
    JobStatus,
    MigrationJob,
    MigrationResult,
    MigrationStatus,
)
from linebuild_engine.migration.validator import (
    ConfidenceThreshold,
    MigrationValidator,
    resolve_threshold,
)
from linebuild_engine.observability.logging import correlation_scope
from linebuild_engine.utils.hashing import sha256_file

ProgressCallback = Callable[[int, int], None]
Clock = Callable[[], datetime]
IdFactory = Callable[[], str]


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


def _new_job_id() -> str:
    return f"migration-{uuid.uuid4().hex[:12]}"


class MigrationService:
    """Drive legacy items through mapping and validation into a ``MigrationJob``."""

    def __init__(
        self,
        *,
        mapper: LegacyMapper | None = None,
        validator: MigrationValidator | None = None,
        logger: Any | None = None,
        clock: Clock | None = None,
        id_factory: IdFactory | None = None,
        default_tier: ConfidenceThreshold = "high",
    ) -> None:
        self._mapper = mapper if mapper is not None else LegacyMapper()
        self._validator = validator if validator is not None else MigrationValidator()
        self._log = logger if logger is not None else structlog.get_logger(__name__)
        self._clock = clock if clock is not None else _utc_now
        self._id_factory = id_factory if id_factory is not None else _new_job_id
        self._default_tier = default_tier

    @classmethod
    def from_config(
        cls, config: Mapping[str, Any], *, logger: Any | None = None
    ) -> MigrationService:
        """Build a service from the ``[migration]`` section of a loaded config."""
        section = config.get("migration", {})
        validator = MigrationValidator(
            low_confidence_error_below=section.get(
                "low_confidence_error_below", LOW_CONFIDENCE_ERROR_BELOW
            )
        )
        return cls(
            validator=validator,
            logger=logger,
            default_tier=section.get("confidence_tier", "high"),
        )

    def convert_item(
        self, raw: object, index: int = 0, tier: ConfidenceThreshold | None = None
    ) -> MigrationResult:
        """Convert and route one raw legacy item; malformed input yields a failed result."""
        tier = self._default_tier if tier is None else tier
        fallback_id = _raw_item_id(raw) or f"legacy-{index}"
        try:
            item = normalize_legacy_item(raw, index)
        except LegacyItemError as exc:
            return self._failed(fallback_id, f"item-{index}", "Unknown Item", str(exc))

        try:
            units = self._mapper.convert_item(item)
            decision = self._validator.route(units, tier)
        except ValueError as exc:
            return self._failed(item.source_id, item.item_id, item.item_name, str(exc))

        quality = tuple(
            warning(IssueKind.MISSING_REQUIRED_FIELD, note, field="procedures")
            for note in item.quality_warnings()
        )
        status = MigrationStatus.SUCCESS if decision.auto_accept else MigrationStatus.REVIEW_NEEDED
        self._log.info(
            "migration_item_routed",
            item_id=item.item_id,
            decision=status.value,
            unit_count=len(units),
            error_count=decision.error_count,
            warning_count=decision.warning_count,
            threshold=decision.threshold,
        )
        return MigrationResult(
            source_id=item.source_id,
            item_id=item.item_id,
            item_name=item.item_name,
            status=status,
            work_units=units,
            issues=(*decision.issues, *quality),
            processed_at=self._clock(),
        )

    def run(
        self,
        items: Sequence[object],
        *,
        tier: ConfidenceThreshold | None = None,
        on_progress: ProgressCallback | None = None,
        job_id: str | None = None,
        source_sha256: str | None = None,
    ) -> MigrationJob:
        tier = self._default_tier if tier is None else tier
        # Fail fast on a bad tier before any item is processed.
        threshold = resolve_threshold(tier)
        job = MigrationJob(
            id=job_id or self._id_factory(),
            status=JobStatus.IN_PROGRESS,
            legacy_count=len(items),
            started_at=self._clock(),
            source_sha256=source_sha256,
        )
        with correlation_scope(job_id=job.id):
            self._log.info(
                "migration_job_started", job_id=job.id, item_count=len(items), threshold=threshold
            )
            results: list[MigrationResult] = []
            for index, raw in enumerate(items):
                results.append(self.convert_item(raw, index, tier))
                if on_progress is not None:
                    on_progress(index + 1, len(items))
            job = self._complete(job, results)
            self._log.info(
                "migration_job_completed",
                job_id=job.id,
                converted=job.converted_count,
                review=job.review_count,
                failed=job.failed_count,
            )
        return job

    def run_file(
        self,
        path: PathLike,
        *,
        tier: ConfidenceThreshold | None = None,
        on_progress: ProgressCallback | None = None,
        job_id: str | None = None,
    ) -> MigrationJob:
        """Load a legacy export and migrate it; an unreadable file yields a failed job."""
        try:
            items = load_legacy_items(path)
        except LegacyLoadError as exc:
            failed = MigrationJob(
                id=job_id or self._id_factory(),
                status=JobStatus.FAILED,
                error=str(exc),
                started_at=self._clock(),
                completed_at=self._clock(),
            )
            self._log.error("migration_job_failed", job_id=failed.id, error=failed.error)
            return failed
        return self.run(
            items,
            tier=tier,
            on_progress=on_progress,
            job_id=job_id,
            source_sha256=sha256_file(path),
        )

    def _failed(
        self, source_id: str, item_id: str, item_name: str, message: str
    ) -> MigrationResult:
        self._log.warning("migration_item_failed", item_id=item_id, error=message)
        return MigrationResult(
            source_id=source_id,
            item_id=item_id,
            item_name=item_name,
            status=MigrationStatus.FAILED,
            issues=(error(IssueKind.CONVERSION_FAILURE, message),),
            processed_at=self._clock(),
            error=message,
        )

    def _complete(self, job: MigrationJob, results: Iterable[MigrationResult]) -> MigrationJob:
        collected = tuple(results)
        return replace(
            job,
            status=JobStatus.COMPLETE,
            results=collected,
            converted_count=_count(collected, MigrationStatus.SUCCESS),
            review_count=_count(collected, MigrationStatus.REVIEW_NEEDED),
            failed_count=_count(collected, MigrationStatus.FAILED),
            completed_at=self._clock(),
        )


def result_to_build(result: MigrationResult, *, build_id: str | None = None) -> Build:
    """Draft build from an accepted or reviewed result, ordinals following unit order."""
    if result.status is MigrationStatus.FAILED:
        raise ValueError(f"MigrationResult[{result.item_id}]: cannot build from a failed result")
    return Build(
        id=build_id or f"{result.item_id}-migrated",
        item_id=result.item_id,
        status=BuildStatus.DRAFT,
        name=result.item_name,
        units=tuple(
            unit.to_work_unit(order_index=index) for index, unit in enumerate(result.work_units)
        ),
    )


def blocking_issues(result: MigrationResult) -> tuple[ValidationIssue, ...]:
    """Findings a reviewer must resolve before the result can be accepted."""
    return tuple(
        issue
        for issue in result.issues
        if issue.is_error or issue.kind is IssueKind.LOW_CONFIDENCE_EXTRACTION
    )


def _raw_item_id(raw: object) -> str | None:
    if isinstance(raw, dict):
        value = raw.get("item_id")
        if isinstance(value, str) and value.strip():
            return value.strip()
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
    return None


def _count(results: Iterable[MigrationResult], status: MigrationStatus) -> int:
    return sum(1 for result in results if result.status is status)


__all__ = [
    "MigrationService",
    "ProgressCallback",
    "blocking_issues",
    "result_to_build",
]
