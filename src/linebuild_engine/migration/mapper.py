"""Heuristic conversion of legacy free-text procedure steps into migrated work units."""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass, field, replace
from typing import Final

from linebuild_engine.constants import CONFIDENCE_TIER_THRESHOLDS
from linebuild_engine.domain.models import ConfidenceTier
from linebuild_engine.migration.legacy import LegacyItem, LegacyProcedureStep
from linebuild_engine.migration.models import MigratedTime, MigratedWorkUnit

ACTIVITY_TYPE_MAP: Final[dict[str, str]] = {
    "GARNISH": "FINISH",
    "COOK": "HEAT",
    "COMPLETE": "ASSEMBLE",
    "VEND": "PLATE",
}
FALLBACK_ACTION: Final[str] = "PREP"

# First matching rule wins; order matters ("cook" before "place", "fryer" before "oven").
_ACTION_KEYWORDS: Final[tuple[tuple[str, tuple[str, ...]], ...]] = (
    ("PREP", ("chop", "cut", "slice")),
    ("HEAT", ("cook", "bake", "heat")),
    ("PLATE", ("plate", "plating")),
    ("FINISH", ("finish", "garnish")),
    ("ASSEMBLE", ("assemble", "combine")),
    ("TRANSFER", ("transfer", "move", "place")),
)
_EQUIPMENT_KEYWORDS: Final[tuple[tuple[str, tuple[str, ...]], ...]] = (
    ("waterbath", ("waterbath", "water bath")),
    ("fryer", ("fryer", "fry")),
    ("oven", ("oven", "bake")),
    ("turbo", ("turbo", "combi")),
    ("grill", ("grill",)),
    ("microwave", ("microwave",)),
    ("stovetop", ("stovetop", "stove")),
    ("salamander", ("salamander", "broiler")),
)
_TIME_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"(\d+)\s*(min|minute|sec|second|hour)", re.IGNORECASE
)
_BASE_CONFIDENCE: Final[int] = 50
_CONFIDENCE_PER_FIELD: Final[int] = 10


@dataclass(frozen=True, slots=True)
class ExtractedFields:
    action: str | None = None
    target_name: str | None = None
    equipment: str | None = None
    time: MigratedTime | None = None
    phase: str | None = None

    def detected(self) -> tuple[str, ...]:
        names = ("action", "target", "equipment", "time", "phase")
        values = (self.action, self.target_name, self.equipment, self.time, self.phase)
        return tuple(name for name, value in zip(names, values, strict=True) if value)


@dataclass(frozen=True, slots=True)
class ExtractionResult:
    fields: ExtractedFields
    confidence: int
    reasoning: str

    @property
    def tier(self) -> ConfidenceTier:
        return confidence_tier(self.confidence)


@dataclass(frozen=True, slots=True)
class ExtractionContext:
    item_name: str
    step_index: int
    all_steps: tuple[str, ...] = field(default_factory=tuple)


def confidence_tier(score: float) -> ConfidenceTier:
    if score >= CONFIDENCE_TIER_THRESHOLDS["high"]:
        return ConfidenceTier.HIGH
    if score >= CONFIDENCE_TIER_THRESHOLDS["medium"]:
        return ConfidenceTier.MEDIUM
    return ConfidenceTier.LOW


def extract_fields(instruction: str, context: ExtractionContext) -> ExtractionResult:
    """Keyword extraction; confidence is 50 plus 10 per detected field, capped at 100."""
    lower = instruction.lower()
    fields = ExtractedFields(
        action=_first_match(lower, _ACTION_KEYWORDS),
        target_name=context.item_name or None,
        equipment=_first_match(lower, _EQUIPMENT_KEYWORDS),
        time=_extract_time(instruction),
        phase=_extract_phase(lower, context.step_index),
    )
    detected = fields.detected()
    confidence = min(100, _BASE_CONFIDENCE + _CONFIDENCE_PER_FIELD * len(detected))
    reasoning = (
        f"Detected: {', '.join(detected)}"
        if detected
        else "No structured patterns found; manual review needed"
    )
    return ExtractionResult(fields=fields, confidence=confidence, reasoning=reasoning)


class LegacyMapper:
    """Convert normalized legacy items into linearly chained migrated units."""

    def map_activity_type(self, activity_type: str) -> str:
        return ACTIVITY_TYPE_MAP.get(activity_type.upper(), FALLBACK_ACTION)

    def convert_step(
        self,
        step: LegacyProcedureStep,
        context: ExtractionContext,
        unit_id: str,
    ) -> MigratedWorkUnit:
        extraction = extract_fields(step.title, context)
        extracted = extraction.fields
        return MigratedWorkUnit(
            id=unit_id,
            action=extracted.action or self.map_activity_type(step.activity_type),
            target_name=extracted.target_name or context.item_name,
            bom_id=step.related_item_number,
            equipment=extracted.equipment,
            time=extracted.time,
            phase=extracted.phase,
            legacy_source_id=step.id,
            extraction_confidence=extraction.tier,
            confidence_score=extraction.confidence,
            instruction=step.title,
            customization_option_id=step.customization_option_id,
        )

    def convert_item(self, item: LegacyItem) -> tuple[MigratedWorkUnit, ...]:
        """Convert every step; each unit depends on the one before it."""
        titles = tuple(step.title for step in item.steps)
        units: list[MigratedWorkUnit] = []
        for index, step in enumerate(item.steps):
            context = ExtractionContext(
                item_name=item.item_name, step_index=index, all_steps=titles
            )
            unit = self.convert_step(step, context, migrated_unit_id(item.item_id, index + 1))
            if units:
                unit = replace(unit, depends_on=(units[-1].id,))
            units.append(unit)
        return tuple(units)


def migrated_unit_id(item_id: str, position: int) -> str:
    return f"{item_id}-wu-{position:03d}"


def _first_match(
    text: str, rules: Sequence[tuple[str, tuple[str, ...]]]
) -> str | None:
    for value, keywords in rules:
        if any(keyword in text for keyword in keywords):
            return value
    return None


def _extract_time(instruction: str) -> MigratedTime | None:
    match = _TIME_PATTERN.search(instruction)
    if match is None:
        return None
    value = float(match.group(1))
    unit_word = match.group(2).lower()
    if unit_word.startswith("sec"):
        unit = "sec"
    elif unit_word == "hour":
        value, unit = value * 60, "min"
    else:
        unit = "min"
    time_type = "passive" if "passive" in instruction.lower() else "active"
    return MigratedTime(value=value, unit=unit, type=time_type)


def _extract_phase(lower: str, step_index: int) -> str | None:
    if step_index == 0 or "prep" in lower:
        return "PRE_COOK"
    if "cook" in lower or "heat" in lower:
        return "COOK"
    if "plate" in lower or "finish" in lower or "garnish" in lower:
        return "ASSEMBLY"
    return None


__all__ = [
    "ACTIVITY_TYPE_MAP",
    "ExtractedFields",
    "ExtractionContext",
    "ExtractionResult",
    "LegacyMapper",
    "confidence_tier",
    "extract_fields",
    "migrated_unit_id",
]
