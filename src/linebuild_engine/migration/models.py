"""Migration records: extracted units, per-item results and batch job documents.

Extracted values stay raw strings until validated; conversion to typed work units
happens only once a result is accepted or reviewed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Final

from linebuild_engine.domain.issues import ValidationIssue
from linebuild_engine.domain.models import (
    ActionFamily,
    ConfidenceTier,
    CookingPhase,
    EquipmentRef,
    JSONValue,
    TargetRef,
    UnitTime,
    WorkUnit,
    iso8601z,
)

LEGACY_ACTION_FAMILIES: Final[dict[str, ActionFamily]] = {
    "PREP": ActionFamily.PREP,
    "HEAT": ActionFamily.HEAT,
    "TRANSFER": ActionFamily.TRANSFER,
    "ASSEMBLE": ActionFamily.ASSEMBLE,
    "PORTION": ActionFamily.PORTION,
    "PLATE": ActionFamily.PORTION,
    "FINISH": ActionFamily.ASSEMBLE,
    "QUALITY_CHECK": ActionFamily.CHECK,
}
TIME_UNIT_SECONDS: Final[dict[str, int]] = {"sec": 1, "min": 60}
_PHASE_VALUES: Final[frozenset[str]] = frozenset(item.value for item in CookingPhase)


class MigrationStatus(StrEnum):
    SUCCESS = "success"
    REVIEW_NEEDED = "review_needed"
    FAILED = "failed"


class JobStatus(StrEnum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class MigratedTime:
    value: float
    unit: str
    type: str

    @property
    def seconds(self) -> float | None:
        factor = TIME_UNIT_SECONDS.get(self.unit)
        return None if factor is None else self.value * factor

    def to_dict(self) -> dict[str, JSONValue]:
        return {"value": self.value, "unit": self.unit, "type": self.type}


@dataclass(frozen=True, slots=True)
class MigratedWorkUnit:
    """Work unit as extracted from legacy text, before vocabulary validation."""

    id: str
    action: str | None
    target_name: str | None
    bom_id: str | None = None
    equipment: str | None = None
    time: MigratedTime | None = None
    phase: str | None = None
    depends_on: tuple[str, ...] = ()
    legacy_source_id: str | None = None
    extraction_confidence: ConfidenceTier | None = None
    confidence_score: int | None = None
    instruction: str | None = None
    customization_option_id: str | None = None

    @property
    def dependency_ids(self) -> tuple[str, ...]:
        return self.depends_on

    def to_work_unit(self, order_index: int = 0) -> WorkUnit:
        """Convert to a typed unit; raises ``ValueError`` for an unknown or missing action."""
        if self.action is None or self.action not in LEGACY_ACTION_FAMILIES:
            raise ValueError(f"MigratedWorkUnit[{self.id}].action: unsupported {self.action!r}")
        phase = None
        if self.phase is not None and self.phase.lower() in _PHASE_VALUES:
            phase = CookingPhase(self.phase.lower())
        seconds = self.time.seconds if self.time is not None else None
        return WorkUnit(
            id=self.id,
            action=LEGACY_ACTION_FAMILIES[self.action],
            order_index=order_index,
            target=TargetRef(name=self.target_name, bom_id=self.bom_id)
            if self.target_name is not None or self.bom_id is not None
            else None,
            equipment=EquipmentRef(appliance_id=self.equipment) if self.equipment else None,
            time=UnitTime(duration_seconds=seconds, is_active=self.time.type != "passive")
            if self.time is not None and seconds is not None
            else None,
            cooking_phase=phase,
            depends_on=self.depends_on,
            notes=self.instruction,
        )

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "id": self.id,
            "action": self.action,
            "target": {"name": self.target_name, "bomId": self.bom_id},
            "equipment": self.equipment,
            "time": None if self.time is None else self.time.to_dict(),
            "phase": self.phase,
            "dependsOn": list(self.depends_on),
            "metadata": {
                "legacySourceId": self.legacy_source_id,
                "extractionConfidence": None
                if self.extraction_confidence is None
                else self.extraction_confidence.value,
                "confidenceScore": self.confidence_score,
                "customizationOptionId": self.customization_option_id,
            },
            "instruction": self.instruction,
        }


@dataclass(frozen=True, slots=True)
class MigrationResult:
    source_id: str
    item_id: str
    item_name: str
    status: MigrationStatus
    work_units: tuple[MigratedWorkUnit, ...] = ()
    issues: tuple[ValidationIssue, ...] = ()
    processed_at: datetime = field(default_factory=lambda: datetime.now(tz=UTC))
    error: str | None = None

    @property
    def needs_review(self) -> bool:
        return self.status is MigrationStatus.REVIEW_NEEDED

    def to_dict(self) -> dict[str, JSONValue]:
        payload: dict[str, JSONValue] = {
            "legacyItemId": self.source_id,
            "itemId": self.item_id,
            "itemName": self.item_name,
            "status": self.status.value,
            "workUnits": [unit.to_dict() for unit in self.work_units],
            "issues": [issue.to_dict() for issue in self.issues],
            "processedAt": iso8601z(self.processed_at),
        }
        if self.error is not None:
            payload["error"] = self.error
        return payload


@dataclass(frozen=True, slots=True)
class MigrationJob:
    id: str
    status: JobStatus = JobStatus.PENDING
    legacy_count: int = 0
    converted_count: int = 0
    review_count: int = 0
    failed_count: int = 0
    results: tuple[MigrationResult, ...] = ()
    error: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    source_sha256: str | None = None

    def summary(self) -> dict[str, JSONValue]:
        rate = self.converted_count * 100 / self.legacy_count if self.legacy_count else 0.0
        return {
            "total": self.legacy_count,
            "success": self.converted_count,
            "reviewNeeded": self.review_count,
            "failed": self.failed_count,
            "successRate": f"{rate:.1f}%",
        }

    def to_dict(self) -> dict[str, JSONValue]:
        payload: dict[str, JSONValue] = {
            "id": self.id,
            "status": self.status.value,
            "legacyBuildCount": self.legacy_count,
            "convertedCount": self.converted_count,
            "reviewQueueCount": self.review_count,
            "failedCount": self.failed_count,
            "results": [result.to_dict() for result in self.results],
            "startedAt": None if self.started_at is None else iso8601z(self.started_at),
            "completedAt": None if self.completed_at is None else iso8601z(self.completed_at),
        }
        if self.error is not None:
            payload["error"] = self.error
        if self.source_sha256 is not None:
            payload["sourceSha256"] = self.source_sha256
        return payload


__all__ = [
    "JobStatus",
    "LEGACY_ACTION_FAMILIES",
    "MigratedTime",
    "MigratedWorkUnit",
    "MigrationJob",
    "MigrationResult",
    "MigrationStatus",
    "TIME_UNIT_SECONDS",
]
