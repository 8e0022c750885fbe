"""
linebuild-engine — legacy line-build source documents.

Purpose
- Read legacy procedure exports and normalize each item into a typed record.

Functional requirements
- Accept a top-level JSON list or an object wrapping the list under ``items``.
- Flatten nested ``procedure_steps``; inner steps inherit the outer activity type.
- Skip steps whose instruction title is empty.
- Fallback ids are positional so repeated loads of one file produce identical ids.

Non-functional requirements
- File-level problems raise ``LegacyLoadError``; a malformed item raises
  ``LegacyItemError`` so callers can fail that item alone.
"""

from __future__ import annotations

import json
import os
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import Final

PathLike = str | os.PathLike[str]

_DEFAULT_ITEM_NAME: Final[str] = "Unknown Item"


class LegacyActivityType(StrEnum):
    GARNISH = "GARNISH"
    COOK = "COOK"
    COMPLETE = "COMPLETE"
    VEND = "VEND"


class LegacyLoadError(ValueError):
    """Raised when a legacy source file cannot be read or has the wrong shape."""


class LegacyItemError(ValueError):
    """Raised when a single legacy item is malformed."""


@dataclass(frozen=True, slots=True)
class LegacyProcedureStep:
    id: str
    activity_type: str
    title: str
    related_item_number: str | None = None
    appliance_config_id: str | None = None
    customization_option_id: str | None = None


@dataclass(frozen=True, slots=True)
class LegacyItem:
    source_id: str
    item_id: str
    item_name: str
    steps: tuple[LegacyProcedureStep, ...]
    location: str | None = None
    variant_id: str | None = None

    def quality_warnings(self) -> tuple[str, ...]:
        """Data-quality notes that do not prevent conversion."""
        warnings: list[str] = []
        if not self.steps:
            warnings.append("no procedures found")
        elif all(step.related_item_number is None for step in self.steps):
            warnings.append("all steps are free text (no BOM references)")
        return tuple(warnings)


def load_legacy_items(path: PathLike) -> list[object]:
    """Read raw item payloads; items are normalized one by one by the caller."""
    source = Path(path)
    try:
        raw = source.read_text(encoding="utf-8")
    except OSError as exc:
        raise LegacyLoadError(f"{source}: unable to read legacy items ({exc})") from exc
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise LegacyLoadError(f"{source}: invalid JSON ({exc})") from exc

    if isinstance(data, list):
        return list(data)
    if isinstance(data, Mapping):
        items = data.get("items", [])
        if not isinstance(items, list):
            raise LegacyLoadError(f"{source}.items: expected list, got {type(items).__name__}")
        return list(items)
    raise LegacyLoadError(
        f"{source}: expected a list of items or an object with 'items', "
        f"got {type(data).__name__}"
    )


def normalize_legacy_item(raw: object, index: int = 0) -> LegacyItem:
    path = f"items[{index}]"
    if not isinstance(raw, Mapping):
        raise LegacyItemError(f"{path}: expected object, got {type(raw).__name__}")

    item_id = _optional_text(raw.get("item_id"), f"{path}.item_id")
    procedures = raw.get("procedures")
    if procedures is None:
        procedures = _nested_procedures(raw)
    if not isinstance(procedures, Sequence) or isinstance(procedures, (str, bytes)):
        raise LegacyItemError(
            f"{path}.procedures: expected list, got {type(procedures).__name__}"
        )

    return LegacyItem(
        source_id=item_id or f"legacy-{index}",
        item_id=item_id or f"item-{index}",
        item_name=_optional_text(raw.get("item_name"), f"{path}.item_name") or _DEFAULT_ITEM_NAME,
        steps=_flatten_procedures(procedures, f"{path}.procedures"),
        location=_optional_text(raw.get("location"), f"{path}.location"),
        variant_id=_optional_text(raw.get("variant_id"), f"{path}.variant_id"),
    )


def _nested_procedures(raw: Mapping[str, object]) -> object:
    """``line_builds[0].tasks[0].procedures`` in older exports."""
    line_builds = raw.get("line_builds")
    if not isinstance(line_builds, list) or not line_builds:
        return []
    first_build = line_builds[0]
    tasks = first_build.get("tasks") if isinstance(first_build, Mapping) else None
    if not isinstance(tasks, list) or not tasks:
        return []
    first_task = tasks[0]
    if not isinstance(first_task, Mapping):
        return []
    return first_task.get("procedures", [])


def _flatten_procedures(
    procedures: Sequence[object], path: str
) -> tuple[LegacyProcedureStep, ...]:
    steps: list[LegacyProcedureStep] = []
    for proc_index, proc in enumerate(procedures):
        proc_path = f"{path}[{proc_index}]"
        if not isinstance(proc, Mapping):
            raise LegacyItemError(f"{proc_path}: expected object, got {type(proc).__name__}")
        outer_activity = _optional_text(proc.get("activity_type"), f"{proc_path}.activity_type")
        nested = proc.get("procedure_steps")
        if isinstance(nested, list):
            for step_index, step in enumerate(nested):
                step_path = f"{proc_path}.procedure_steps[{step_index}]"
                if not isinstance(step, Mapping):
                    raise LegacyItemError(
                        f"{step_path}: expected object, got {type(step).__name__}"
                    )
                steps.append(
                    _step(step, step_path, f"step-{proc_index}-{step_index}", outer_activity)
                )
            continue
        steps.append(_step(proc, proc_path, f"proc-{proc_index}", None))
    return tuple(step for step in steps if step.title.strip())


def _step(
    raw: Mapping[str, object], path: str, fallback_id: str, inherited_activity: str | None
) -> LegacyProcedureStep:
    activity = (
        _optional_text(raw.get("activity_type"), f"{path}.activity_type")
        or inherited_activity
        or LegacyActivityType.GARNISH.value
    )
    title = _optional_text(raw.get("sub_steps_title"), f"{path}.sub_steps_title")
    if title is None:
        title = _optional_text(raw.get("title"), f"{path}.title")
    return LegacyProcedureStep(
        id=_optional_text(raw.get("id"), f"{path}.id") or fallback_id,
        activity_type=activity.upper(),
        title=title or "",
        related_item_number=_optional_text(
            raw.get("related_item_number"), f"{path}.related_item_number"
        ),
        appliance_config_id=_optional_text(
            raw.get("appliance_config_id"), f"{path}.appliance_config_id"
        ),
        customization_option_id=_optional_text(
            raw.get("customization_option_id"), f"{path}.customization_option_id"
        ),
    )


def _optional_text(value: object, path: str) -> str | None:
    if value is None:
        return None
    if isinstance(value, bool):
        raise LegacyItemError(f"{path}: expected string, got bool")
    if isinstance(value, int):
        return str(value)
    if not isinstance(value, str):
        raise LegacyItemError(f"{path}: expected string, got {type(value).__name__}")
    stripped = value.strip()
    return stripped or None


__all__ = [
    "LegacyActivityType",
    "LegacyItem",
    "LegacyItemError",
    "LegacyLoadError",
    "LegacyProcedureStep",
    "load_legacy_items",
    "normalize_legacy_item",
]
