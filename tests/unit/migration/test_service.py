"""
linebuild-engine — unit tests for the batch migration service.

Purpose
- Validate per-item isolation, routing outcomes, progress reporting and job documents.

What this test file should cover
- One malformed item fails alone; the rest of the batch proceeds.
- Progress is reported once per item with a strictly increasing counter.
- Unreadable sources produce a failed job instead of raising.
- Accepted results convert into draft builds with ordinals in step order.

Non-functional requirements
- Deterministic: the clock and job id factory are injected.
"""

from __future__ import annotations

import json
from datetime import UTC, datetime
from pathlib import Path

import pytest

from linebuild_engine.domain.issues import IssueKind
from linebuild_engine.domain.models import BuildStatus
from linebuild_engine.migration.models import JobStatus, MigrationStatus
from linebuild_engine.migration.service import (
    MigrationService,
    blocking_issues,
    result_to_build,
)
from linebuild_engine.utils.hashing import sha256_file

_NOW = datetime(2026, 3, 1, 9, 30, tzinfo=UTC)


class _RecordingLogger:
    def __init__(self) -> None:
        self.events: list[tuple[str, str, dict[str, object]]] = []

    def info(self, event: str, **fields: object) -> None:
        self.events.append(("info", event, fields))

    def warning(self, event: str, **fields: object) -> None:
        self.events.append(("warning", event, fields))

    def error(self, event: str, **fields: object) -> None:
        self.events.append(("error", event, fields))

    def names(self) -> list[str]:
        return [event for _, event, _ in self.events]


def _service(logger: _RecordingLogger | None = None, **kwargs: object) -> MigrationService:
    return MigrationService(
        logger=logger or _RecordingLogger(),
        clock=lambda: _NOW,
        id_factory=lambda: "migration-test",
        **kwargs,  # type: ignore[arg-type]
    )


def _confident_item(item_id: str = "chicken-1") -> dict[str, object]:
    return {
        "item_id": item_id,
        "item_name": "Chicken",
        "procedures": [
            {
                "id": "s1",
                "activity_type": "COOK",
                "title": "Cook chicken in waterbath for 10 min",
                "related_item_number": "4471",
            }
        ],
    }


def _review_item() -> dict[str, object]:
    return {
        "item_id": "bowl-1",
        "item_name": "Bowl",
        "procedures": [
            {"title": "Cook rice in waterbath for 20 min", "related_item_number": "1"},
            {"title": "Place on plate"},
        ],
    }


def test_confident_item_is_accepted() -> None:
    result = _service().convert_item(_confident_item())

    assert result.status is MigrationStatus.SUCCESS
    assert result.issues == ()
    assert [unit.id for unit in result.work_units] == ["chicken-1-wu-001"]
    assert result.processed_at == _NOW


def test_medium_confidence_step_routes_to_review() -> None:
    result = _service().convert_item(_review_item())

    assert result.status is MigrationStatus.REVIEW_NEEDED
    assert [issue.kind for issue in blocking_issues(result)] == [
        IssueKind.LOW_CONFIDENCE_EXTRACTION
    ]
    assert result.needs_review


def test_tier_override_changes_the_decision() -> None:
    assert _service().convert_item(_review_item(), tier="low").status is MigrationStatus.SUCCESS


def test_from_config_reads_the_migration_section() -> None:
    service = MigrationService.from_config(
        {"migration": {"confidence_tier": "low", "low_confidence_error_below": 70}},
        logger=_RecordingLogger(),
    )

    assert service.convert_item(_review_item()).status is MigrationStatus.SUCCESS


def test_free_text_items_carry_a_quality_warning() -> None:
    raw = _confident_item()
    raw["procedures"][0].pop("related_item_number")  # type: ignore[index]

    result = _service().convert_item(raw)

    assert result.status is MigrationStatus.SUCCESS
    (note,) = result.issues
    assert note.kind is IssueKind.MISSING_REQUIRED_FIELD
    assert note.field == "procedures"
    assert not note.is_error


def test_malformed_item_fails_alone_and_progress_is_monotonic() -> None:
    logger = _RecordingLogger()
    progress: list[tuple[int, int]] = []
    items: list[object] = [
        _confident_item(),
        "not an object",
        {"item_id": 7, "procedures": "oops"},
        _review_item(),
    ]

    job = _service(logger).run(
        items, on_progress=lambda current, total: progress.append((current, total))
    )

    assert progress == [(1, 4), (2, 4), (3, 4), (4, 4)]
    assert job.status is JobStatus.COMPLETE
    assert (job.converted_count, job.review_count, job.failed_count) == (1, 1, 2)
    failed = job.results[1]
    assert (failed.source_id, failed.item_id, failed.item_name) == (
        "legacy-1",
        "item-1",
        "Unknown Item",
    )
    assert failed.issues[0].kind is IssueKind.CONVERSION_FAILURE
    assert job.results[2].source_id == "7"
    assert job.summary()["successRate"] == "25.0%"
    assert logger.names()[0] == "migration_job_started"
    assert logger.names()[-1] == "migration_job_completed"
    assert logger.names().count("migration_item_failed") == 2
    assert logger.names().count("migration_item_routed") == 2


def test_bad_tier_fails_before_any_item_runs() -> None:
    progress: list[tuple[int, int]] = []

    with pytest.raises(ValueError, match="unknown tier"):
        _service().run(
            [_confident_item()],
            tier="lenient",
            on_progress=lambda current, total: progress.append((current, total)),
        )

    assert progress == []


def test_run_file_records_the_source_hash(tmp_path: Path) -> None:
    source = tmp_path / "export.json"
    source.write_text(json.dumps({"items": [_confident_item()]}), encoding="utf-8")

    job = _service().run_file(source)

    assert job.id == "migration-test"
    assert job.source_sha256 == sha256_file(source)
    assert job.to_dict()["sourceSha256"] == job.source_sha256
    assert job.to_dict()["startedAt"] == "2026-03-01T09:30:00.000Z"


def test_unreadable_source_yields_a_failed_job(tmp_path: Path) -> None:
    logger = _RecordingLogger()
    source = tmp_path / "export.json"
    source.write_text("{not json", encoding="utf-8")

    job = _service(logger).run_file(source)

    assert job.status is JobStatus.FAILED
    assert job.error is not None and "invalid JSON" in job.error
    assert job.results == ()
    assert logger.names() == ["migration_job_failed"]


def test_accepted_result_becomes_a_draft_build() -> None:
    result = _service().convert_item(_review_item())

    build = result_to_build(result)

    assert build.id == "bowl-1-migrated"
    assert build.status is BuildStatus.DRAFT
    assert build.name == "Bowl"
    assert [unit.order_index for unit in build.units] == [0, 1]
    assert build.units[1].dependency_ids == ("bowl-1-wu-001",)


def test_failed_result_cannot_become_a_build() -> None:
    result = _service().convert_item("broken", index=3)

    with pytest.raises(ValueError, match="failed result"):
        result_to_build(result)
